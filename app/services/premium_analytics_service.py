"""
Premium listings and analytics for administrators.

Read-only queries; every function takes the caller's session.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.db.models.payment import Payment, PaymentStatus, PaymentPurpose
from app.db.models.seller_profile import SellerProfile
from app.db.models.subscription import Subscription
from app.services.premium_subscription_service import SubscriptionSnapshot

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


@dataclass
class PremiumStatus:
    """Seller-level premium view."""
    seller_id: str
    company_name: str
    is_premium: bool
    premium_since: Optional[datetime]
    has_verified_badge: bool
    subscription: Optional[SubscriptionSnapshot] = None

    @property
    def expires_at(self) -> Optional[datetime]:
        return self.subscription.end_date if self.subscription else None

    @property
    def is_auto_renewing(self) -> bool:
        return bool(self.subscription and self.subscription.is_auto_renewing)


@dataclass
class PremiumAnalytics:
    period_start: datetime
    period_end: datetime
    total_premium_sellers: int = 0
    new_premium_sellers: int = 0
    renewed_premium_sellers: int = 0
    total_revenue: Decimal = Decimal("0.00")
    total_refunded: Decimal = Decimal("0.00")
    average_monthly_fee: Decimal = Decimal("0.00")
    subscriptions_by_plan: dict = field(default_factory=dict)


def list_premium_sellers(
    db: Session,
    page: int,
    page_size: int,
    now: datetime
) -> Tuple[List[PremiumStatus], int]:
    """
    Sellers with a current premium subscription, most recent first.

    Returns:
        (page of PremiumStatus, total count)
    """
    query = (
        db.query(SellerProfile, Subscription)
        .join(Subscription, Subscription.seller_id == SellerProfile.id)
        .filter(
            Subscription.is_active.is_(True),
            or_(Subscription.end_date.is_(None), Subscription.end_date > now),
        )
    )
    total = query.count()
    rows = (
        query.order_by(Subscription.start_date.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    items = [
        PremiumStatus(
            seller_id=seller.id,
            company_name=seller.company_name,
            is_premium=seller.is_premium,
            premium_since=seller.premium_since,
            has_verified_badge=seller.has_verified_badge,
            subscription=SubscriptionSnapshot.from_model(sub),
        )
        for seller, sub in rows
    ]
    return items, total


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(_CENTS)


def get_premium_analytics(db: Session, start: datetime, end: datetime) -> PremiumAnalytics:
    """
    Premium figures for the period [start, end).

    Revenue counts payments completed in the period, net of refunds on
    those payments.
    """
    result = PremiumAnalytics(period_start=start, period_end=end)

    result.total_premium_sellers = (
        db.query(func.count(SellerProfile.id)).filter(SellerProfile.is_premium.is_(True)).scalar() or 0
    )

    result.new_premium_sellers = (
        db.query(func.count(func.distinct(Subscription.seller_id)))
        .filter(Subscription.created_at >= start, Subscription.created_at < end)
        .scalar() or 0
    )

    settled = (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)
    result.renewed_premium_sellers = (
        db.query(func.count(func.distinct(Payment.seller_id)))
        .filter(
            Payment.purpose == PaymentPurpose.RENEWAL,
            Payment.status.in_(settled),
            Payment.completed_at >= start,
            Payment.completed_at < end,
        )
        .scalar() or 0
    )

    gross, refunded = (
        db.query(func.sum(Payment.amount), func.sum(Payment.refunded_amount))
        .filter(
            Payment.status.in_(settled),
            Payment.completed_at >= start,
            Payment.completed_at < end,
        )
        .one()
    )
    result.total_refunded = _money(refunded)
    result.total_revenue = _money(gross) - result.total_refunded

    average_fee = (
        db.query(func.avg(Subscription.monthly_fee))
        .filter(Subscription.is_active.is_(True), Subscription.monthly_fee > 0)
        .scalar()
    )
    result.average_monthly_fee = _money(average_fee)

    by_plan = (
        db.query(Subscription.plan_id, func.count(Subscription.id))
        .filter(Subscription.is_active.is_(True))
        .group_by(Subscription.plan_id)
        .all()
    )
    result.subscriptions_by_plan = {plan_id: count for plan_id, count in by_plan}

    logger.debug(f"Premium analytics computed: start={start}, end={end}, revenue={result.total_revenue}")
    return result
