"""
Payment provider interface for abstracting payment gateways.

Every call carries an idempotency key so a retry after a timeout can never
charge or refund twice.
"""
import enum
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class ProviderPaymentStatus(str, enum.Enum):
    """What the gateway knows about a charge."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"
    NOT_FOUND = "not_found"


@dataclass
class CaptureResult:
    success: bool
    provider_transaction_id: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class RefundResult:
    success: bool
    provider_refund_id: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class StatusResult:
    status: ProviderPaymentStatus
    provider_transaction_id: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in (ProviderPaymentStatus.SUCCEEDED, ProviderPaymentStatus.FAILED)


class PaymentProvider(ABC):
    """Abstract base class for payment gateways."""

    name = "provider"

    @abstractmethod
    def capture(
        self,
        amount: Decimal,
        currency: str,
        payment_method: Optional[str],
        idempotency_key: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> CaptureResult:
        """
        Charge the seller.

        Args:
            amount: Amount in major currency units
            currency: ISO currency code
            payment_method: Gateway payment method reference
            idempotency_key: Key that makes retries safe (the payment id)
            metadata: Extra values stored with the charge

        Returns:
            CaptureResult; a decline is success=False, not an exception
        """
        pass

    @abstractmethod
    def refund(
        self,
        provider_transaction_id: str,
        amount: Decimal,
        idempotency_key: str
    ) -> RefundResult:
        """
        Refund part or all of a captured charge.

        Args:
            provider_transaction_id: Gateway id of the original charge
            amount: Amount to refund in major currency units
            idempotency_key: Key that makes retries safe

        Returns:
            RefundResult; a decline is success=False, not an exception
        """
        pass

    @abstractmethod
    def query_status(self, payment_id: str, provider_transaction_id: Optional[str] = None) -> StatusResult:
        """
        Look up the outcome of a charge.

        Args:
            payment_id: Local payment id (the idempotency key used for capture)
            provider_transaction_id: Gateway id if already known

        Returns:
            StatusResult
        """
        pass


class MockPaymentProvider(PaymentProvider):
    """
    In-process gateway used when Stripe is not configured.

    Payment methods containing "declined" fail; everything else succeeds.
    Results are remembered per idempotency key like a real gateway.
    """

    name = "mock"

    def __init__(self):
        self._lock = threading.Lock()
        self._captures: Dict[str, CaptureResult] = {}
        self._refunds: Dict[str, RefundResult] = {}

    def capture(self, amount, currency, payment_method, idempotency_key, metadata=None) -> CaptureResult:
        with self._lock:
            if idempotency_key in self._captures:
                return self._captures[idempotency_key]

            if payment_method and "declined" in payment_method:
                result = CaptureResult(success=False, error_message="Card declined")
            else:
                result = CaptureResult(success=True, provider_transaction_id=f"mock_txn_{uuid.uuid4().hex[:16]}")
            self._captures[idempotency_key] = result

        logger.info(f"Mock capture: key={idempotency_key}, amount={amount} {currency}, success={result.success}")
        return result

    def refund(self, provider_transaction_id, amount, idempotency_key) -> RefundResult:
        with self._lock:
            if idempotency_key in self._refunds:
                return self._refunds[idempotency_key]
            result = RefundResult(success=True, provider_refund_id=f"mock_re_{uuid.uuid4().hex[:16]}")
            self._refunds[idempotency_key] = result

        logger.info(f"Mock refund: txn={provider_transaction_id}, amount={amount}")
        return result

    def query_status(self, payment_id, provider_transaction_id=None) -> StatusResult:
        with self._lock:
            result = self._captures.get(payment_id)
        if result is None:
            return StatusResult(status=ProviderPaymentStatus.NOT_FOUND)
        if result.success:
            return StatusResult(
                status=ProviderPaymentStatus.SUCCEEDED,
                provider_transaction_id=result.provider_transaction_id,
            )
        return StatusResult(status=ProviderPaymentStatus.FAILED, error_message=result.error_message)
