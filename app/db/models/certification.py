"""
Seller certifications. Only approved ones count toward the verified badge.
"""
import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, Enum, Index
from app.db.base import Base


class CertificationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Certification(Base):
    __tablename__ = "certifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    seller_id = Column(String(36), nullable=False, index=True)
    category_id = Column(String(36), nullable=True)
    name = Column(String(255), nullable=False)
    status = Column(Enum(CertificationStatus), nullable=False, default=CertificationStatus.PENDING)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_cert_seller_status", "seller_id", "status"),
    )

    def __repr__(self):
        return f"<Certification(id={self.id}, seller_id={self.seller_id}, status='{self.status}')>"
