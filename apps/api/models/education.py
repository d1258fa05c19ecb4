"""Education entry model."""

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base


class Education(Base):
    __tablename__ = "education"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    degree = Column(String(255), nullable=True)
    university = Column(String(255), nullable=True)
    duration = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="education")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "degree": self.degree,
            "university": self.university,
            "duration": self.duration,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
