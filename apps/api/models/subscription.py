"""Subscription model holding the authoritative credit balance."""

from datetime import datetime, timezone
import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Subscription(Base):
    """Plan subscription for one account; at most one row per account is active."""

    __tablename__ = "subscriptions"
    __table_args__ = (
        Index(
            "uq_subscriptions_one_active_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("active = 1"),
            postgresql_where=text("active IS TRUE"),
        ),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_type = Column(String(20), nullable=False)  # Basic, Premium
    credits_allocated = Column(Integer, nullable=False)
    credits_remaining = Column(Integer, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    start_date = Column(DateTime(timezone=True), default=_utcnow)
    end_date = Column(DateTime(timezone=True), nullable=True)
    # Client-side default keeps microseconds; "most recent" ordering depends on it.
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    user = relationship("User", back_populates="subscriptions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "planType": self.plan_type,
            "creditsAllocated": self.credits_allocated,
            "creditsRemaining": self.credits_remaining,
            "active": bool(self.active),
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
