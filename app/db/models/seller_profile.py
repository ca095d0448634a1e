"""
SellerProfile model.

Only the premium projection fields are owned by this service; the rest of
the profile is maintained by the seller profile subsystem.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Boolean, DateTime, Integer
from app.db.base import Base


class SellerProfile(Base):
    __tablename__ = "seller_profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=True, index=True)
    company_name = Column(String(255), nullable=False)
    primary_category_id = Column(String(36), nullable=True, index=True)

    # Premium projection, written only by recompute_premium_projection
    is_premium = Column(Boolean, nullable=False, default=False)
    premium_since = Column(DateTime, nullable=True)
    has_verified_badge = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<SellerProfile(id={self.id}, company='{self.company_name}', is_premium={self.is_premium})>"
