"""
Operator notification fan-out.

Writes one inbox row per admin. Best-effort by contract: every failure is
logged and swallowed so the calling operation is never affected.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.core.entitlement_rules import PRIVILEGED_ROLE
from app.db.session import SessionLocal
from app.models.notification import Notification
from app.utils.roles import get_user_ids_with_role

logger = logging.getLogger(__name__)


def notify_admins(
    db: Session,
    type_: str,
    title: str,
    message: str,
    reference_id: Optional[str] = None,
) -> int:
    """Returns the number of inbox rows written (0 on any failure)."""
    try:
        admin_ids = get_user_ids_with_role(db, PRIVILEGED_ROLE)
        if not admin_ids:
            logger.warning("[Notify] No admin users to notify (type=%s)", type_)
            return 0

        db.add_all([
            Notification(
                user_id=admin_id,
                type=type_,
                title=title,
                message=message,
                reference_id=reference_id,
            )
            for admin_id in admin_ids
        ])
        db.commit()
        logger.info("[Notify] %s notification sent to %s admin(s)", type_, len(admin_ids))
        return len(admin_ids)
    except Exception:
        db.rollback()
        logger.exception("[Notify] Could not create admin notifications (type=%s)", type_)
        return 0


def notify_admins_in_background(
    type_: str,
    title: str,
    message: str,
    reference_id: Optional[str] = None,
) -> None:
    """Entry point for BackgroundTasks: runs after the response on its own session."""
    db = SessionLocal()
    try:
        notify_admins(db, type_, title, message, reference_id)
    finally:
        db.close()
