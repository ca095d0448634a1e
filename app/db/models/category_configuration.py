"""
Per-category rules for the verified badge.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Boolean, Integer, DateTime
from app.db.base import Base


class CategoryConfiguration(Base):
    __tablename__ = "category_configurations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    category_id = Column(String(36), nullable=False, unique=True, index=True)
    allows_verified_badge = Column(Boolean, nullable=False, default=False)
    min_certifications_for_badge = Column(Integer, nullable=False, default=0)
    # Badge is withdrawn when premium lapses
    badge_requires_premium = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return (
            f"<CategoryConfiguration(category_id={self.category_id}, "
            f"allows_badge={self.allows_verified_badge}, min={self.min_certifications_for_badge})>"
        )
