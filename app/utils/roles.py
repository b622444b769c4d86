"""
Role lookups against the user_roles relation.
Privilege is a capability check, never a column on the account.
"""
from typing import List

from sqlalchemy.orm import Session

from app.core.entitlement_rules import PRIVILEGED_ROLE
from app.models.user_role import UserRole


def has_role(db: Session, user_id: int, role: str) -> bool:
    return db.query(UserRole.id).filter(
        UserRole.user_id == user_id,
        UserRole.role == role
    ).first() is not None


def is_privileged(db: Session, user_id: int) -> bool:
    return has_role(db, user_id, PRIVILEGED_ROLE)


def get_user_ids_with_role(db: Session, role: str) -> List[int]:
    rows = db.query(UserRole.user_id).filter(UserRole.role == role).distinct().all()
    return [row.user_id for row in rows]
