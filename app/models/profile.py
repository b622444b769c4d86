from datetime import datetime

from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.db.base import Base


class Profile(Base):
    """
    Entitlement record, exactly one per user.

    trial_expires_at is written once and never cleared: its presence alone
    means a trial was issued at some point, independent of trial_active.
    access_authorized is the gate read by downstream checks and is always
    written in the same UPDATE as the flag that changes it.
    """

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    trial_active = Column(Boolean, default=False, nullable=False)
    trial_expires_at = Column(DateTime, nullable=True)
    subscription_active = Column(Boolean, default=False, nullable=False)
    access_authorized = Column(Boolean, default=False, nullable=False)

    # Compliance flags set on paid activation
    contract_accepted = Column(Boolean, default=False, nullable=False)
    pricing_accepted = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="profile")

    @property
    def trial_was_issued(self) -> bool:
        return self.trial_expires_at is not None

    def has_access(self, now: datetime) -> bool:
        """Subscription wins; otherwise an active trial that has not lapsed yet."""
        if self.subscription_active:
            return True
        return bool(self.trial_active and self.trial_expires_at and self.trial_expires_at > now)
