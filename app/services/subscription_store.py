"""
Subscription store.

Thin query layer over premium_subscriptions. Functions take the caller's
session and never commit; the lifecycle service owns transactions.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_, exists
from sqlalchemy.orm import Session

from app.db.models.payment import Payment, PaymentPurpose, OUTSTANDING_PAYMENT_STATUSES
from app.db.models.subscription import Subscription

logger = logging.getLogger(__name__)


def create_subscription(db: Session, subscription: Subscription) -> Subscription:
    """Add a new subscription and flush so it gets its id and version."""
    db.add(subscription)
    db.flush()
    logger.debug(f"Subscription created: id={subscription.id}, seller_id={subscription.seller_id}")
    return subscription


def update_subscription(db: Session, subscription: Subscription, now: Optional[datetime] = None) -> Subscription:
    """
    Flush pending changes on a subscription.

    The version column makes this a compare-and-swap: a concurrent writer
    surfaces as StaleDataError from the flush.
    """
    subscription.updated_at = now or datetime.utcnow()
    db.flush()
    return subscription


def get_subscription_by_id(db: Session, subscription_id: str) -> Optional[Subscription]:
    return db.query(Subscription).filter(Subscription.id == subscription_id).first()


def get_open_subscription_for_seller(db: Session, seller_id: str) -> Optional[Subscription]:
    """Subscription with is_active set, even if its end_date has already passed."""
    return (
        db.query(Subscription)
        .filter(Subscription.seller_id == seller_id, Subscription.is_active.is_(True))
        .order_by(Subscription.start_date.desc())
        .first()
    )


def get_active_subscription_for_seller(
    db: Session,
    seller_id: str,
    now: Optional[datetime] = None
) -> Optional[Subscription]:
    """
    Subscription granting premium right now.

    A due subscription whose renewal charge is still awaiting the
    provider's verdict keeps granting premium until that payment settles.

    Args:
        db: Database session
        seller_id: Seller profile id
        now: Reference time (defaults to utcnow)

    Returns:
        Active subscription whose end_date is null, in the future, or
        covered by an outstanding renewal payment
    """
    now = now or datetime.utcnow()
    renewal_in_flight = exists().where(
        Payment.subscription_id == Subscription.id,
        Payment.purpose == PaymentPurpose.RENEWAL,
        Payment.status.in_(OUTSTANDING_PAYMENT_STATUSES),
    )
    return (
        db.query(Subscription)
        .filter(
            Subscription.seller_id == seller_id,
            Subscription.is_active.is_(True),
            or_(
                Subscription.end_date.is_(None),
                Subscription.end_date > now,
                renewal_in_flight,
            ),
        )
        .order_by(Subscription.start_date.desc())
        .first()
    )


def list_subscriptions_for_seller(
    db: Session,
    seller_id: str,
    page: int = 1,
    page_size: int = 20
) -> List[Subscription]:
    """Subscription history for a seller, newest first."""
    return (
        db.query(Subscription)
        .filter(Subscription.seller_id == seller_id)
        .order_by(Subscription.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )


def count_subscriptions_for_seller(db: Session, seller_id: str) -> int:
    return db.query(Subscription).filter(Subscription.seller_id == seller_id).count()


def list_due_subscriptions(db: Session, now: datetime, limit: Optional[int] = None) -> List[str]:
    """Ids of active subscriptions whose end_date has been reached."""
    query = (
        db.query(Subscription.id)
        .filter(
            Subscription.is_active.is_(True),
            Subscription.end_date.isnot(None),
            Subscription.end_date <= now,
        )
        .order_by(Subscription.end_date.asc())
    )
    if limit:
        query = query.limit(limit)
    return [row.id for row in query.all()]
