"""
Free trial activation: one 30-day trial per account, ever.

Guards run in a fixed order and each one ends the request:
  1. already subscribed
  2. trial currently active
  3. trial issued before (trial_expires_at present, even if lapsed)
  4. account older than the sign-up window
The grant itself is a conditional UPDATE that re-checks guards 1-3 in the
same statement, so two concurrent calls cannot both issue a trial.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.entitlement_rules import (
    TRIAL_LENGTH,
    TRIAL_SIGNUP_WINDOW,
    REASON_ALREADY_SUBSCRIBED,
    REASON_TRIAL_ACTIVE,
    REASON_TRIAL_USED,
    REASON_ACCOUNT_TOO_OLD,
    NOTIFY_NEW_ACCOUNT,
)
from app.core.errors import Unauthenticated, InternalFailure
from app.models.profile import Profile
from app.models.user import User
from app.services.account_provisioning import get_or_create_profile
from app.utils.timestamps import to_utc_iso

logger = logging.getLogger(__name__)


@dataclass
class TrialResult:
    granted: bool
    reason: Optional[str] = None
    expires_at: Optional[datetime] = None

    def to_response(self) -> dict:
        body = {"granted": self.granted}
        if self.reason:
            body["reason"] = self.reason
        if self.expires_at:
            body["expiresAt"] = to_utc_iso(self.expires_at)
        return body


def _refusal_reason(profile: Profile) -> Optional[str]:
    if profile.subscription_active:
        return REASON_ALREADY_SUBSCRIBED
    if profile.trial_active:
        return REASON_TRIAL_ACTIVE
    if profile.trial_expires_at is not None:
        return REASON_TRIAL_USED
    return None


def _account_age(user: User, now: datetime):
    created_at = user.created_at
    if created_at.tzinfo is not None:
        created_at = created_at.replace(tzinfo=None) - created_at.utcoffset()
    return now - created_at


def activate_trial(db: Session, user: Optional[User], now: Optional[datetime] = None) -> TrialResult:
    if user is None:
        raise Unauthenticated()

    now = now or datetime.utcnow()
    profile = get_or_create_profile(db, user)

    reason = _refusal_reason(profile)
    if reason:
        logger.info("[Trial] Not granted for user %s: %s", user.id, reason)
        return TrialResult(granted=False, reason=reason)

    if _account_age(user, now) > TRIAL_SIGNUP_WINDOW:
        logger.warning("[Trial] Refused for user %s: account created at %s", user.id, user.created_at)
        return TrialResult(granted=False, reason=REASON_ACCOUNT_TOO_OLD)

    expires_at = now + TRIAL_LENGTH
    try:
        updated = (
            db.query(Profile)
            .filter(
                Profile.user_id == user.id,
                Profile.trial_expires_at.is_(None),
                Profile.trial_active.is_(False),
                Profile.subscription_active.is_(False),
            )
            .update(
                {
                    Profile.trial_active: True,
                    Profile.trial_expires_at: expires_at,
                    Profile.access_authorized: True,
                    Profile.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[Trial] Failed to activate trial for user %s", user.id)
        raise InternalFailure("Failed to activate trial")

    if updated != 1:
        # A concurrent request changed the record between the read and the write
        db.expire_all()
        profile = db.query(Profile).filter(Profile.user_id == user.id).one()
        reason = _refusal_reason(profile) or REASON_TRIAL_USED
        logger.info("[Trial] Lost activation race for user %s: %s", user.id, reason)
        return TrialResult(granted=False, reason=reason)

    logger.info("[Trial] Activated for user %s until %s", user.id, expires_at.isoformat())
    return TrialResult(granted=True, expires_at=expires_at)


def trial_notification(user: User) -> dict:
    """Arguments for notify_admins announcing a granted trial."""
    name = user.full_name or "Usuário"
    return {
        "type_": NOTIFY_NEW_ACCOUNT,
        "title": "Trial activated",
        "message": f"New 30-day trial activated for: {user.email} ({name})",
        "reference_id": user.supabase_id,
    }
