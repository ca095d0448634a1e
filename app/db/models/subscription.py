"""
Premium subscription model and its state machine.
"""
import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Boolean, DateTime, Integer, Numeric, Enum, Index, Text

from app.db.base import Base
from app.services.premium_errors import InvalidStateTransition


class SubscriptionStatus(str, enum.Enum):
    """Lifecycle states of a premium subscription."""
    ACTIVE = "active"
    CANCELLED_NO_REFUND = "cancelled_no_refund"  # auto-renew off, runs to end_date
    CANCELLED_WITH_REFUND = "cancelled_with_refund"
    EXPIRED = "expired"
    REVOKED = "revoked"


CLOSED_SUBSCRIPTION_STATUSES = frozenset({
    SubscriptionStatus.CANCELLED_WITH_REFUND,
    SubscriptionStatus.EXPIRED,
    SubscriptionStatus.REVOKED,
})

SUBSCRIPTION_TRANSITIONS = {
    SubscriptionStatus.ACTIVE: {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELLED_NO_REFUND,
        SubscriptionStatus.CANCELLED_WITH_REFUND,
        SubscriptionStatus.EXPIRED,
        SubscriptionStatus.REVOKED,
    },
    SubscriptionStatus.CANCELLED_NO_REFUND: {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELLED_NO_REFUND,
        SubscriptionStatus.CANCELLED_WITH_REFUND,
        SubscriptionStatus.EXPIRED,
        SubscriptionStatus.REVOKED,
    },
    SubscriptionStatus.CANCELLED_WITH_REFUND: set(),
    SubscriptionStatus.EXPIRED: set(),
    SubscriptionStatus.REVOKED: set(),
}


class Subscription(Base):
    """
    A seller's premium subscription.

    start_date is the start of the current billing cycle and moves forward
    on renewal. Rows are never deleted; closed subscriptions keep their
    final status and end_date as history.
    """
    __tablename__ = "premium_subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    seller_id = Column(String(36), nullable=False, index=True)
    plan_id = Column(String(50), nullable=False)
    monthly_fee = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(3), nullable=False)

    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_auto_renewing = Column(Boolean, nullable=False, default=True)
    status = Column(Enum(SubscriptionStatus), nullable=False, default=SubscriptionStatus.ACTIVE)

    payment_id = Column(String(36), nullable=True)
    granted_by_admin_id = Column(String(36), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_premium_sub_seller_active", "seller_id", "is_active"),
        Index("idx_premium_sub_active_end", "is_active", "end_date"),
    )

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_SUBSCRIPTION_STATUSES

    def is_current(self, now: datetime) -> bool:
        """Active and not past its end date."""
        return bool(self.is_active) and (self.end_date is None or self.end_date > now)

    def transition_to(self, target: SubscriptionStatus) -> None:
        """Move to `target`, raising InvalidStateTransition if the table forbids it."""
        current = self.status or SubscriptionStatus.ACTIVE
        if target not in SUBSCRIPTION_TRANSITIONS[current]:
            raise InvalidStateTransition("Subscription", current, target)
        self.status = target

    def __repr__(self):
        return f"<Subscription(id={self.id}, seller_id={self.seller_id}, status='{self.status}')>"
