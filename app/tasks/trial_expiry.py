import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.celery_app import celery_app
from app.db.session import SessionLocal
from app.models.profile import Profile

logger = logging.getLogger(__name__)


def expire_lapsed_trials(db: Session, now: Optional[datetime] = None) -> int:
    """
    Turn off trials whose period has ended. trial_expires_at is left in place
    (it records that a trial was issued), and access falls back to the
    subscription flag in the same UPDATE.
    """
    now = now or datetime.utcnow()
    expired = (
        db.query(Profile)
        .filter(
            Profile.trial_active.is_(True),
            Profile.trial_expires_at.isnot(None),
            Profile.trial_expires_at <= now,
        )
        .update(
            {
                Profile.trial_active: False,
                Profile.access_authorized: Profile.subscription_active,
                Profile.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return expired


@celery_app.task(name="expire_lapsed_trials")
def expire_lapsed_trials_task():
    db = SessionLocal()
    try:
        expired = expire_lapsed_trials(db)
        logger.info("[Trial expiry] %s trial(s) expired", expired)
        return {"status": "success", "expired": expired}
    except Exception:
        db.rollback()
        logger.exception("[Trial expiry] Run failed")
        raise
    finally:
        db.close()
