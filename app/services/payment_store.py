"""
Payment store.

Same conventions as subscription_store: caller-owned session, flush only.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.db.models.payment import (
    Payment,
    PaymentPurpose,
    OUTSTANDING_PAYMENT_STATUSES,
)

logger = logging.getLogger(__name__)


def create_payment(db: Session, payment: Payment) -> Payment:
    db.add(payment)
    db.flush()
    logger.debug(f"Payment created: id={payment.id}, seller_id={payment.seller_id}, amount={payment.amount}")
    return payment


def update_payment(db: Session, payment: Payment, now: Optional[datetime] = None) -> Payment:
    """Flush pending changes; a concurrent writer raises StaleDataError."""
    payment.updated_at = now or datetime.utcnow()
    db.flush()
    return payment


def get_payment_by_id(db: Session, payment_id: str) -> Optional[Payment]:
    return db.query(Payment).filter(Payment.id == payment_id).first()


def get_payment_by_provider_transaction_id(db: Session, provider_transaction_id: str) -> Optional[Payment]:
    return (
        db.query(Payment)
        .filter(Payment.provider_transaction_id == provider_transaction_id)
        .first()
    )


def list_pending_or_processing_older_than(
    db: Session,
    threshold: datetime,
    limit: Optional[int] = None
) -> List[str]:
    """
    Ids of payments still awaiting confirmation that were created before
    `threshold`, oldest first.
    """
    query = (
        db.query(Payment.id)
        .filter(
            Payment.status.in_(OUTSTANDING_PAYMENT_STATUSES),
            Payment.created_at < threshold,
        )
        .order_by(Payment.created_at.asc())
    )
    if limit:
        query = query.limit(limit)
    return [row.id for row in query.all()]


def get_outstanding_purchase_payment(db: Session, seller_id: str) -> Optional[Payment]:
    """An unconfirmed purchase payment for the seller, if one exists."""
    return (
        db.query(Payment)
        .filter(
            Payment.seller_id == seller_id,
            Payment.purpose == PaymentPurpose.PURCHASE,
            Payment.status.in_(OUTSTANDING_PAYMENT_STATUSES),
        )
        .order_by(Payment.created_at.desc())
        .first()
    )


def get_outstanding_renewal_payment(db: Session, subscription_id: str) -> Optional[Payment]:
    """An unconfirmed renewal payment for the subscription, if one exists."""
    return (
        db.query(Payment)
        .filter(
            Payment.subscription_id == subscription_id,
            Payment.purpose == PaymentPurpose.RENEWAL,
            Payment.status.in_(OUTSTANDING_PAYMENT_STATUSES),
        )
        .order_by(Payment.created_at.desc())
        .first()
    )


def list_payments_for_seller(db: Session, seller_id: str, limit: int = 50) -> List[Payment]:
    return (
        db.query(Payment)
        .filter(Payment.seller_id == seller_id)
        .order_by(Payment.created_at.desc())
        .limit(limit)
        .all()
    )
