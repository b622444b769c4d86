from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime

from app.db.base import Base


class ProcessedWebhookEvent(Base):
    """
    Gateway deliveries that completed promotion, login link and email.

    Only written after full success, so a delivery that failed half-way is
    reprocessed on redelivery. Not keyed to users: kept after account deletion.
    """

    __tablename__ = "processed_webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String, nullable=False, unique=True, index=True)
    event_type = Column(String, nullable=False)
    payment_id = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    processed_at = Column(DateTime, default=datetime.utcnow)
