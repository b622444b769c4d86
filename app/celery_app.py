from celery import Celery
from celery.schedules import crontab

from app.core.config import settings

celery_app = Celery(
    "entitlements",
    broker=settings.celery_broker_url,
    include=["app.tasks.trial_expiry"],
)

celery_app.conf.update(
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    beat_schedule={
        "expire-lapsed-trials": {
            "task": "expire_lapsed_trials",
            "schedule": crontab(minute=0),  # Hourly
        },
    },
)
