"""
Payment model for premium purchases and renewals.
"""
import enum
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, Integer, Numeric, Enum, Index, Text

from app.db.base import Base
from app.services.premium_errors import InvalidStateTransition


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentPurpose(str, enum.Enum):
    PURCHASE = "purchase"
    RENEWAL = "renewal"


OUTSTANDING_PAYMENT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PROCESSING)

# Terminal outcomes of confirmation; REFUNDED can only follow COMPLETED
SETTLED_PAYMENT_STATUSES = frozenset({
    PaymentStatus.COMPLETED,
    PaymentStatus.FAILED,
    PaymentStatus.REFUNDED,
})

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PROCESSING, PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.PROCESSING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}


class Payment(Base):
    """
    A single charge against a seller.

    The row id doubles as the idempotency key sent to the payment provider.
    """
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    seller_id = Column(String(36), nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)

    plan_id = Column(String(50), nullable=False)
    purpose = Column(Enum(PaymentPurpose), nullable=False, default=PaymentPurpose.PURCHASE)
    subscription_id = Column(String(36), nullable=True, index=True)
    description = Column(String(255), nullable=True)

    provider = Column(String(50), nullable=False)
    provider_transaction_id = Column(String(255), nullable=True, index=True)
    payment_method = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    refunded_amount = Column(Numeric(18, 2), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_payment_status_created", "status", "created_at"),
        Index("idx_payment_seller_status", "seller_id", "status"),
    )

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_PAYMENT_STATUSES

    def transition_to(self, target: PaymentStatus) -> None:
        """Move to `target`, raising InvalidStateTransition if the table forbids it."""
        current = self.status or PaymentStatus.PENDING
        if target not in PAYMENT_TRANSITIONS[current]:
            raise InvalidStateTransition("Payment", current, target)
        self.status = target

    def __repr__(self):
        return f"<Payment(id={self.id}, seller_id={self.seller_id}, status='{self.status}', amount={self.amount})>"
