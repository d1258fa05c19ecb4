"""Work experience entry model."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class Experience(Base):
    __tablename__ = "experiences"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(255), nullable=True)
    company = Column(String(255), nullable=True)
    duration = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="experiences")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "role": self.role,
            "company": self.company,
            "duration": self.duration,
            "description": self.description,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
