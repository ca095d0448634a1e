"""
Audit trail for premium status and payment changes.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, Text, JSON, Index
from app.db.base import Base


class PremiumAuditLog(Base):
    __tablename__ = "premium_audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    action = Column(String(100), nullable=False, index=True)
    seller_id = Column(String(36), nullable=True, index=True)
    admin_id = Column(String(36), nullable=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=False)
    reason = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )

    def __repr__(self):
        return f"<PremiumAuditLog(action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
