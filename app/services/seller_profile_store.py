"""
Seller profile store: premium projection writes and badge inputs.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.db.models.seller_profile import SellerProfile
from app.db.models.certification import Certification, CertificationStatus
from app.db.models.category_configuration import CategoryConfiguration

logger = logging.getLogger(__name__)


def get_seller_profile(db: Session, seller_id: str) -> Optional[SellerProfile]:
    return db.query(SellerProfile).filter(SellerProfile.id == seller_id).first()


def set_premium_flags(
    db: Session,
    seller: SellerProfile,
    is_premium: bool,
    premium_since: Optional[datetime],
    now: Optional[datetime] = None
) -> SellerProfile:
    """
    Write is_premium and premium_since.

    updated_at is always touched so the row version moves even when the
    flags are unchanged; two writers for the same seller then conflict.
    """
    seller.is_premium = is_premium
    seller.premium_since = premium_since
    seller.updated_at = now or datetime.utcnow()
    db.flush()
    return seller


def set_verified_badge(db: Session, seller: SellerProfile, has_badge: bool) -> SellerProfile:
    if seller.has_verified_badge != has_badge:
        logger.info(f"Verified badge changed: seller_id={seller.id}, has_badge={has_badge}")
    seller.has_verified_badge = has_badge
    db.flush()
    return seller


def get_approved_certification_count(db: Session, seller_id: str) -> int:
    return (
        db.query(Certification)
        .filter(
            Certification.seller_id == seller_id,
            Certification.status == CertificationStatus.APPROVED,
        )
        .count()
    )


def get_category_configuration(db: Session, category_id: Optional[str]) -> Optional[CategoryConfiguration]:
    if not category_id:
        return None
    return (
        db.query(CategoryConfiguration)
        .filter(CategoryConfiguration.category_id == category_id)
        .first()
    )
