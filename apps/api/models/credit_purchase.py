"""CreditPurchase model: append-only top-up audit trail."""

from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from database import Base


class CreditPurchase(Base):
    """Immutable record of a credit top-up."""

    __tablename__ = "credit_purchases"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    credits = Column(Integer, nullable=False)
    amount = Column(Integer, nullable=False)  # minor currency units (paise)
    purchase_date = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)

    user = relationship("User", back_populates="credit_purchases")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "credits": self.credits,
            "amount": self.amount,
            "purchaseDate": self.purchase_date.isoformat() if self.purchase_date else None,
        }
