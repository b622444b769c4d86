"""
Account provisioning: mirrors a Supabase sign-up into users + profiles.
"""
import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.entitlement_rules import STANDARD_ROLE
from app.core.errors import InternalFailure
from app.models.profile import Profile
from app.models.user import User
from app.models.user_role import UserRole

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def find_user_by_email(db: Session, email: str) -> Optional[User]:
    """Case-insensitive exact match (no LIKE wildcards)."""
    return db.query(User).filter(func.lower(User.email) == normalize_email(email)).first()


def find_user_by_supabase_id(db: Session, supabase_id: Optional[str]) -> Optional[User]:
    """Resolve an identity-provider subject. Email is never used to authenticate."""
    if not supabase_id:
        return None
    return db.query(User).filter(User.supabase_id == supabase_id).first()


def _relink_identity(db: Session, user: User, supabase_id: str, created_at: Optional[datetime]) -> User:
    """
    Bind an account left behind by an earlier identity to the new one with the
    same email. The entitlement record, trial history included, stays with it.
    """
    logger.warning(
        "[Provisioning] Relinking account %s from identity %s to %s",
        user.id, user.supabase_id, supabase_id,
    )
    user.supabase_id = supabase_id
    if created_at and created_at < user.created_at:
        user.created_at = created_at
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[Provisioning] Failed to relink account %s", user.id)
        raise InternalFailure("Account could not be linked")
    db.refresh(user)
    return user


def get_or_create_profile(db: Session, user: User) -> Profile:
    """Return the user's entitlement record, creating the empty one if it is missing."""
    profile = db.query(Profile).filter(Profile.user_id == user.id).first()
    if profile:
        return profile
    profile = Profile(user_id=user.id)
    db.add(profile)
    try:
        db.commit()
    except IntegrityError:
        # Created concurrently by another request
        db.rollback()
        return db.query(Profile).filter(Profile.user_id == user.id).one()
    db.refresh(profile)
    logger.warning("[Provisioning] Created missing profile for user %s", user.id)
    return profile


def sync_account(
    db: Session,
    supabase_id: str,
    email: str,
    full_name: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Tuple[User, bool]:
    """
    Create the account, its empty entitlement record and the standard role
    in one transaction. created_at is the identity provider's creation time.
    Idempotent: an existing account is returned unchanged. Returns (user, created).
    """
    existing = find_user_by_supabase_id(db, supabase_id)
    if existing:
        return existing, False

    orphaned = find_user_by_email(db, email)
    if orphaned:
        return _relink_identity(db, orphaned, supabase_id, created_at), False

    user = User(
        supabase_id=supabase_id,
        email=normalize_email(email),
        full_name=full_name,
        created_at=created_at or datetime.utcnow(),
    )
    user.profile = Profile()
    user.roles.append(UserRole(role=STANDARD_ROLE))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent sign-up sync for the same identity won the race
        db.rollback()
        existing = find_user_by_supabase_id(db, supabase_id)
        if existing:
            return existing, False
        raise InternalFailure("Account could not be created")
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[Provisioning] Failed to create account for %s", supabase_id)
        raise InternalFailure("Account could not be created")

    db.refresh(user)
    logger.info("[Provisioning] Created account %s with empty entitlement record", user.id)
    return user, True
