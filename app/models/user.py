from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from app.db.base import Base


class User(Base):
    """Account: identity mirrored from Supabase Auth."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    supabase_id = Column(String, unique=True, index=True, nullable=False)  # auth.users.id
    email = Column(String, unique=True, index=True, nullable=False)  # Always stored lower-cased
    full_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # ORM-side cascade mirrors the ON DELETE CASCADE foreign keys
    profile = relationship(
        "Profile", back_populates="user", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True,
    )
    roles = relationship(
        "UserRole", back_populates="user",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    notifications = relationship(
        "Notification", back_populates="user",
        cascade="all, delete-orphan", passive_deletes=True,
    )
