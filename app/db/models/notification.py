"""
In-app notifications delivered to sellers.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, JSON, Boolean, Index
from app.db.base import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    seller_id = Column(String(36), nullable=False, index=True)
    event_kind = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_notification_seller_created", "seller_id", "created_at"),
    )

    def __repr__(self):
        return f"<Notification(id={self.id}, seller_id={self.seller_id}, kind='{self.event_kind}')>"
