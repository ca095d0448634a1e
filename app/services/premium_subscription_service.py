"""
Premium subscription lifecycle.

Owns every state change of premium subscriptions and their payments:
purchase, payment confirmation, renewal, expiry and cancellation with or
without refund.

Rules every operation follows:
- one DB transaction per state change, replayed when an optimistic
  version check fails (StaleDataError);
- payment provider calls happen outside any transaction and are bounded
  by a timeout;
- seller premium flags are only written by recompute_premium_projection;
- notifications go out after the transaction commits.
"""
import enum
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Tuple, Any, Dict

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import PROVIDER_TIMEOUT_SECONDS, CONCURRENCY_RETRY_ATTEMPTS
from app.core.badge_policy import evaluate_badge
from app.core.premium_plans import PremiumPlan, get_plan, period_end, add_months
from app.core.refund_policy import RefundQuote, compute_refund
from app.db.models.payment import Payment, PaymentStatus, PaymentPurpose
from app.db.models.subscription import Subscription, SubscriptionStatus
from app.services import audit_service, notification_service as notices
from app.services.payment_provider import PaymentProvider
from app.services.premium_errors import (
    PremiumError,
    AlreadyActive,
    SubscriptionNotFound,
    PaymentNotFound,
    SellerNotFound,
    SubscriptionNotActive,
    InvalidPlan,
    InvalidRequest,
    ProviderUnavailable,
    RefundFailed,
    ConcurrencyConflict,
)
from app.services.payment_store import (
    create_payment,
    update_payment,
    get_payment_by_id,
    get_outstanding_purchase_payment,
    get_outstanding_renewal_payment,
)
from app.services.subscription_store import (
    create_subscription,
    update_subscription,
    get_subscription_by_id,
    get_open_subscription_for_seller,
    get_active_subscription_for_seller,
    list_subscriptions_for_seller,
    count_subscriptions_for_seller,
)
from app.services.seller_profile_store import (
    get_seller_profile,
    set_premium_flags,
    set_verified_badge,
    get_approved_certification_count,
    get_category_configuration,
)

logger = logging.getLogger(__name__)

# (seller_id, event_kind, payload) queued until commit
Notice = Tuple[str, str, Dict[str, Any]]


class ExpiryOutcome(str, enum.Enum):
    NOT_DUE = "not_due"
    EXPIRED = "expired"
    RENEWED = "renewed"
    RENEWAL_FAILED = "renewal_failed"
    RENEWAL_PENDING = "renewal_pending"


@dataclass
class SubscriptionSnapshot:
    """Detached copy of a subscription row, safe to use after the session closes."""
    id: str
    seller_id: str
    plan_id: str
    monthly_fee: Decimal
    currency: str
    start_date: datetime
    end_date: Optional[datetime]
    is_active: bool
    is_auto_renewing: bool
    status: SubscriptionStatus
    payment_id: Optional[str]
    granted_by_admin_id: Optional[str]
    cancellation_reason: Optional[str]
    created_at: datetime

    @classmethod
    def from_model(cls, sub: Subscription) -> "SubscriptionSnapshot":
        return cls(
            id=sub.id,
            seller_id=sub.seller_id,
            plan_id=sub.plan_id,
            monthly_fee=sub.monthly_fee,
            currency=sub.currency,
            start_date=sub.start_date,
            end_date=sub.end_date,
            is_active=sub.is_active,
            is_auto_renewing=sub.is_auto_renewing,
            status=sub.status,
            payment_id=sub.payment_id,
            granted_by_admin_id=sub.granted_by_admin_id,
            cancellation_reason=sub.cancellation_reason,
            created_at=sub.created_at,
        )


@dataclass
class PurchaseHandle:
    payment_id: str
    seller_id: str
    plan_id: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    resumed: bool = False
    subscription_id: Optional[str] = None


@dataclass
class PaymentOutcome:
    payment_id: str
    status: PaymentStatus
    subscription_id: Optional[str] = None
    already_processed: bool = False


@dataclass
class CancellationResult:
    subscription_id: str
    status: SubscriptionStatus
    refund_percentage: int
    refund_amount: Decimal
    end_date: Optional[datetime]


@dataclass
class RefundEligibility:
    subscription_id: str
    eligible: bool
    refund_percentage: int
    refund_amount: Decimal
    hours_elapsed: float
    is_active: bool


@dataclass
class _RenewalCharge:
    payment_id: str
    amount: Decimal
    currency: str
    payment_method: Optional[str]
    seller_id: str
    subscription_id: str


def quote_refund(subscription: Subscription, now: datetime) -> RefundQuote:
    """Refund quote for cancelling `subscription` at `now`. Shared by quote and cancel paths."""
    return compute_refund(subscription.start_date, now, subscription.monthly_fee)


def recompute_premium_projection(db: Session, seller_id: str, now: datetime):
    """
    Derive a seller's premium flags and badge from their subscriptions.

    The only writer of is_premium, premium_since and has_verified_badge.
    premium_since is kept while premium continues (including renewals)
    and cleared when premium lapses.

    Args:
        db: Session inside the caller's transaction
        seller_id: Seller profile id
        now: Decision time

    Returns:
        The updated SellerProfile, or None if the seller does not exist
    """
    seller = get_seller_profile(db, seller_id)
    if seller is None:
        logger.warning(f"Premium projection skipped, seller missing: seller_id={seller_id}")
        return None

    active = get_active_subscription_for_seller(db, seller_id, now)
    is_premium = active is not None
    if is_premium:
        premium_since = seller.premium_since or now
    else:
        premium_since = None

    if seller.is_premium != is_premium:
        logger.info(f"Premium status changed: seller_id={seller_id}, is_premium={is_premium}")
    set_premium_flags(db, seller, is_premium, premium_since, now)

    config = get_category_configuration(db, seller.primary_category_id)
    approved = get_approved_certification_count(db, seller_id)
    has_badge = evaluate_badge(
        approved,
        config,
        is_premium=is_premium,
        has_category=bool(seller.primary_category_id),
    )
    set_verified_badge(db, seller, has_badge)
    return seller


def _plan_for(plan_id: str, fallback_fee: Decimal, currency: str) -> PremiumPlan:
    plan = get_plan(plan_id)
    if plan is not None:
        return plan
    # Plan retired from the catalogue; keep billing monthly at the paid price
    return PremiumPlan(plan_id=plan_id, name=plan_id, monthly_fee=fallback_fee, currency=currency)


class PremiumSubscriptionService:
    """
    Subscription lifecycle manager.

    Args:
        session_factory: Callable returning a new SQLAlchemy Session
        provider: PaymentProvider used for capture, refund and status queries
        notifier: NotificationService
        provider_timeout: Seconds to wait for any provider call
        retry_attempts: Transaction replays on version conflicts
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        provider: PaymentProvider,
        notifier,
        provider_timeout: float = PROVIDER_TIMEOUT_SECONDS,
        retry_attempts: int = CONCURRENCY_RETRY_ATTEMPTS,
    ):
        self.session_factory = session_factory
        self.provider = provider
        self.notifier = notifier
        self.provider_timeout = provider_timeout
        self.retry_attempts = retry_attempts
        self._executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="payment-provider")

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Infrastructure
    # ------------------------------------------------------------------

    def run_transaction(self, operation: str, fn: Callable[[Session, List[Notice]], Any]) -> Any:
        """
        Run fn(db, pending_notices) in one transaction, replaying on StaleDataError.

        Notices queued by the attempt that commits are sent afterwards.
        """
        for attempt in range(1, self.retry_attempts + 1):
            pending: List[Notice] = []
            db = self.session_factory()
            try:
                result = fn(db, pending)
                db.commit()
            except StaleDataError:
                db.rollback()
                logger.warning(f"Version conflict in {operation}, attempt {attempt}/{self.retry_attempts}")
                continue
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

            for seller_id, event_kind, payload in pending:
                self.notifier.notify(seller_id, event_kind, payload)
            return result

        logger.error(f"Giving up on {operation} after {self.retry_attempts} version conflicts")
        raise ConcurrencyConflict()

    def read(self, fn: Callable[[Session], Any]) -> Any:
        db = self.session_factory()
        try:
            return fn(db)
        finally:
            db.close()

    def call_provider(self, operation: str, fn: Callable, *args, **kwargs):
        """
        Call the payment provider with a timeout.

        Raises:
            ProviderUnavailable: on timeout or any unexpected provider error
        """
        future = self._executor.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=self.provider_timeout)
        except FuturesTimeout:
            logger.error(f"Payment provider {operation} timed out after {self.provider_timeout}s")
            raise ProviderUnavailable()
        except PremiumError:
            raise
        except Exception as e:
            logger.error(f"Payment provider {operation} failed: {e}", exc_info=True)
            raise ProviderUnavailable() from e

    @staticmethod
    def _load_subscription(db: Session, subscription_id: str) -> Subscription:
        sub = get_subscription_by_id(db, subscription_id)
        if sub is None:
            raise SubscriptionNotFound()
        return sub

    # ------------------------------------------------------------------
    # Purchase and confirmation
    # ------------------------------------------------------------------

    def initiate_purchase(
        self,
        seller_id: str,
        plan_id: str,
        payment_method: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> PurchaseHandle:
        """
        Start buying a premium plan.

        Creates a pending payment, or hands back the seller's outstanding one.
        With a payment method the charge is captured right away and
        confirmed; without one, confirmation arrives later via webhook or
        reconciliation.

        Raises:
            InvalidPlan, SellerNotFound, AlreadyActive, ProviderUnavailable,
            InvalidRequest when an outstanding purchase is for another plan
        """
        now = now or datetime.utcnow()
        plan = get_plan(plan_id)
        if plan is None:
            raise InvalidPlan()

        def _create(db: Session, pending: List[Notice]) -> PurchaseHandle:
            seller = get_seller_profile(db, seller_id)
            if seller is None:
                raise SellerNotFound()
            if get_active_subscription_for_seller(db, seller_id, now) is not None:
                raise AlreadyActive()

            existing = get_outstanding_purchase_payment(db, seller_id)
            if existing is not None:
                if existing.plan_id != plan.plan_id:
                    raise InvalidRequest(
                        f"A purchase of the {existing.plan_id} plan is already in progress"
                    )
                logger.info(f"Resuming outstanding purchase: payment_id={existing.id}, seller_id={seller_id}")
                return PurchaseHandle(
                    payment_id=existing.id,
                    seller_id=seller_id,
                    plan_id=existing.plan_id,
                    amount=existing.amount,
                    currency=existing.currency,
                    status=existing.status,
                    resumed=True,
                )

            payment = create_payment(db, Payment(
                seller_id=seller_id,
                amount=plan.monthly_fee,
                currency=plan.currency,
                status=PaymentStatus.PENDING,
                plan_id=plan.plan_id,
                purpose=PaymentPurpose.PURCHASE,
                provider=self.provider.name,
                payment_method=payment_method,
                description=f"Premium subscription - {plan.name}",
                created_at=now,
                updated_at=now,
            ))
            # Serialises concurrent purchases for the same seller
            seller.updated_at = now
            db.flush()

            logger.info(f"Purchase initiated: payment_id={payment.id}, seller_id={seller_id}, plan={plan.plan_id}")
            return PurchaseHandle(
                payment_id=payment.id,
                seller_id=seller_id,
                plan_id=plan.plan_id,
                amount=payment.amount,
                currency=payment.currency,
                status=payment.status,
            )

        handle = self.run_transaction("initiate_purchase", _create)

        if payment_method:
            outcome = self._capture_and_confirm(handle.payment_id, payment_method, now)
            handle.status = outcome.status
            handle.subscription_id = outcome.subscription_id
        return handle

    def _mark_processing(self, payment_id: str, payment_method: Optional[str]) -> Optional[_RenewalCharge]:
        """Move a pending payment to processing. Returns None when it is already settled."""

        def _mark(db: Session, pending: List[Notice]) -> Optional[_RenewalCharge]:
            payment = get_payment_by_id(db, payment_id)
            if payment is None:
                raise PaymentNotFound()
            if payment.is_settled:
                return None
            if payment.status == PaymentStatus.PENDING:
                payment.transition_to(PaymentStatus.PROCESSING)
            if payment_method:
                payment.payment_method = payment_method
            update_payment(db, payment)
            return _RenewalCharge(
                payment_id=payment.id,
                amount=payment.amount,
                currency=payment.currency,
                payment_method=payment.payment_method,
                seller_id=payment.seller_id,
                subscription_id=payment.subscription_id,
            )

        return self.run_transaction("mark_processing", _mark)

    def _capture_and_confirm(self, payment_id: str, payment_method: Optional[str], now: datetime) -> PaymentOutcome:
        charge = self._mark_processing(payment_id, payment_method)
        if charge is None:
            return self.read(lambda db: self._prior_outcome(get_payment_by_id(db, payment_id)))
        return self._capture_charge(charge, now)

    def _capture_charge(self, charge: _RenewalCharge, now: Optional[datetime] = None) -> PaymentOutcome:
        result = self.call_provider(
            "capture",
            self.provider.capture,
            charge.amount,
            charge.currency,
            charge.payment_method,
            idempotency_key=charge.payment_id,
            metadata={"payment_id": charge.payment_id, "seller_id": charge.seller_id},
        )
        return self.confirm_payment(
            charge.payment_id,
            success=result.success,
            provider_txn_id=result.provider_transaction_id,
            error_message=result.error_message,
            now=now,
        )

    @staticmethod
    def _prior_outcome(payment: Payment) -> PaymentOutcome:
        return PaymentOutcome(
            payment_id=payment.id,
            status=payment.status,
            subscription_id=payment.subscription_id,
            already_processed=True,
        )

    def confirm_payment(
        self,
        payment_id: str,
        success: bool,
        provider_txn_id: Optional[str] = None,
        error_message: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> PaymentOutcome:
        """
        Apply the provider's verdict on a payment.

        Idempotent: a payment that is already completed, failed or refunded
        returns its recorded outcome and nothing else happens.

        Args:
            payment_id: Local payment id
            success: Whether the provider captured the funds
            provider_txn_id: Gateway transaction id
            error_message: Provider failure text (stored, never shown to clients)
            now: Decision time

        Returns:
            PaymentOutcome
        """
        now = now or datetime.utcnow()

        def _confirm(db: Session, pending: List[Notice]) -> PaymentOutcome:
            payment = get_payment_by_id(db, payment_id)
            if payment is None:
                raise PaymentNotFound()
            if payment.is_settled:
                logger.info(f"Payment already settled: payment_id={payment_id}, status={payment.status.value}")
                return self._prior_outcome(payment)

            if provider_txn_id:
                payment.provider_transaction_id = provider_txn_id

            if success:
                return self._apply_success(db, payment, now, pending)
            return self._apply_failure(db, payment, error_message, now, pending)

        return self.run_transaction("confirm_payment", _confirm)

    def _apply_success(self, db: Session, payment: Payment, now: datetime, pending: List[Notice]) -> PaymentOutcome:
        payment.transition_to(PaymentStatus.COMPLETED)
        payment.completed_at = now
        payment.error_message = None

        sub = None
        renewed = False
        if payment.purpose == PaymentPurpose.RENEWAL and payment.subscription_id:
            candidate = get_subscription_by_id(db, payment.subscription_id)
            if candidate is not None and candidate.is_active:
                sub = candidate
                self._extend_cycle(db, sub, now)
                renewed = True
            else:
                logger.warning(f"Renewal paid for closed subscription: payment_id={payment.id}, subscription_id={payment.subscription_id}")

        if sub is None:
            sub, renewed = self._grant_from_purchase(db, payment, now)

        sub.payment_id = payment.id
        update_subscription(db, sub, now)
        payment.subscription_id = sub.id
        update_payment(db, payment, now)

        recompute_premium_projection(db, payment.seller_id, now)

        audit_service.record_audit(
            db, audit_service.PAYMENT_PROCESSED, "payment", payment.id,
            seller_id=payment.seller_id,
            details={"amount": str(payment.amount), "currency": payment.currency, "subscription_id": sub.id},
        )
        audit_service.record_audit(
            db,
            audit_service.SUBSCRIPTION_RENEWED if renewed else audit_service.SUBSCRIPTION_CREATED,
            "subscription", sub.id,
            seller_id=payment.seller_id,
            details={"end_date": sub.end_date.isoformat() if sub.end_date else None},
        )
        pending.append((
            payment.seller_id,
            notices.SUBSCRIPTION_RENEWED if renewed else notices.PAYMENT_SUCCESSFUL,
            {
                "payment_id": payment.id,
                "subscription_id": sub.id,
                "amount": str(payment.amount),
                "currency": payment.currency,
                "end_date": sub.end_date.isoformat() if sub.end_date else None,
            },
        ))

        logger.info(
            f"Payment completed: payment_id={payment.id}, seller_id={payment.seller_id}, "
            f"subscription_id={sub.id}, renewed={renewed}"
        )
        return PaymentOutcome(payment_id=payment.id, status=payment.status, subscription_id=sub.id)

    @staticmethod
    def _can_absorb(sub: Subscription, payment: Payment) -> bool:
        """Whether a paid purchase can extend `sub` instead of opening a new subscription."""
        return (
            sub.end_date is not None
            and sub.plan_id == payment.plan_id
            and sub.monthly_fee == payment.amount
        )

    def _grant_from_purchase(self, db: Session, payment: Payment, now: datetime) -> Tuple[Subscription, bool]:
        """
        Subscription for a paid purchase.

        A current subscription on the same plan and price is extended. Any
        other current subscription (a complimentary grant, say) is replaced
        by a new paid one, so the captured amount always backs the
        subscription it is recorded against.
        """
        plan = _plan_for(payment.plan_id, payment.amount, payment.currency)

        open_sub = get_open_subscription_for_seller(db, payment.seller_id)
        if open_sub is not None:
            if open_sub.is_current(now) and self._can_absorb(open_sub, payment):
                self._extend_cycle(db, open_sub, now)
                return open_sub, True
            if open_sub.is_current(now):
                # premium continues, so premium_since is kept
                logger.info(
                    f"Paid purchase replaces subscription: subscription_id={open_sub.id}, "
                    f"plan={open_sub.plan_id}, payment_id={payment.id}"
                )
                self._close(db, open_sub, SubscriptionStatus.EXPIRED, now, reason="Replaced by paid subscription")
            else:
                # Lapsed but not yet swept
                self._close(db, open_sub, SubscriptionStatus.EXPIRED, now, end_date=open_sub.end_date)
                # Premium lapsed in between, so premium_since restarts
                recompute_premium_projection(db, payment.seller_id, now)

        start = now
        sub = create_subscription(db, Subscription(
            seller_id=payment.seller_id,
            plan_id=plan.plan_id,
            monthly_fee=payment.amount,
            currency=payment.currency,
            start_date=start,
            end_date=period_end(plan, start),
            is_active=True,
            is_auto_renewing=plan.is_periodic,
            status=SubscriptionStatus.ACTIVE,
            payment_id=payment.id,
            created_at=now,
            updated_at=now,
        ))
        return sub, False

    def _extend_cycle(self, db: Session, sub: Subscription, now: datetime) -> None:
        """
        Move a subscription into its next billing cycle.

        Due renewals start the new cycle at the old end date so there is no
        gap; if even that cycle is already over, the cycle starts now.
        Early renewals keep the current cycle start and push the end out.
        Status and auto-renew setting are left as they are.
        """
        plan = _plan_for(sub.plan_id, sub.monthly_fee, sub.currency)
        months = plan.billing_period_months or 1

        if sub.end_date is None:
            return
        if sub.end_date > now:
            sub.end_date = add_months(sub.end_date, months)
        else:
            start = sub.end_date
            if add_months(start, months) <= now:
                start = now
            sub.start_date = start
            sub.end_date = add_months(start, months)

    def _apply_failure(
        self,
        db: Session,
        payment: Payment,
        error_message: Optional[str],
        now: datetime,
        pending: List[Notice]
    ) -> PaymentOutcome:
        payment.transition_to(PaymentStatus.FAILED)
        payment.error_message = error_message or "Payment failed"
        update_payment(db, payment, now)

        audit_service.record_audit(
            db, audit_service.PAYMENT_FAILED, "payment", payment.id,
            seller_id=payment.seller_id,
            reason=payment.error_message,
        )

        kind = notices.PAYMENT_FAILED
        if payment.purpose == PaymentPurpose.RENEWAL and payment.subscription_id:
            kind = notices.RENEWAL_FAILED
            sub = get_subscription_by_id(db, payment.subscription_id)
            if sub is not None and sub.is_active and sub.end_date is not None and sub.end_date <= now:
                self._close(db, sub, SubscriptionStatus.EXPIRED, now, end_date=sub.end_date, reason="Renewal payment failed")
                recompute_premium_projection(db, sub.seller_id, now)
                audit_service.record_audit(
                    db, audit_service.SUBSCRIPTION_EXPIRED, "subscription", sub.id,
                    seller_id=sub.seller_id, reason="Renewal payment failed",
                )

        pending.append((payment.seller_id, kind, {"payment_id": payment.id, "amount": str(payment.amount)}))
        logger.warning(f"Payment failed: payment_id={payment.id}, seller_id={payment.seller_id}, error={payment.error_message}")
        return PaymentOutcome(payment_id=payment.id, status=payment.status, subscription_id=payment.subscription_id)

    # ------------------------------------------------------------------
    # Cancellation and auto-renewal
    # ------------------------------------------------------------------

    def _close(
        self,
        db: Session,
        sub: Subscription,
        status: SubscriptionStatus,
        now: datetime,
        end_date: Optional[datetime] = None,
        reason: Optional[str] = None
    ) -> None:
        """
        Deactivate a subscription in a closed status.

        end_date defaults to max(now, start_date); it is never moved before
        the decision time.
        """
        sub.transition_to(status)
        sub.is_active = False
        sub.is_auto_renewing = False
        sub.end_date = end_date or max(now, sub.start_date)
        if reason:
            sub.cancellation_reason = reason
        update_subscription(db, sub, now)
        logger.info(f"Subscription closed: id={sub.id}, seller_id={sub.seller_id}, status={status.value}")

    def close_subscription(
        self,
        db: Session,
        sub: Subscription,
        status: SubscriptionStatus,
        now: datetime,
        end_date: Optional[datetime] = None,
        reason: Optional[str] = None
    ) -> None:
        """
        Deactivate and reproject, inside the caller's transaction.

        Used by admin revoke and by grants superseding a lapsed row, which
        pass the row's own end_date so its history is not rewritten.
        """
        self._close(db, sub, status, now, end_date=end_date, reason=reason)
        recompute_premium_projection(db, sub.seller_id, now)

    def cancel_with_refund(self, subscription_id: str, cancel_time: Optional[datetime] = None) -> CancellationResult:
        """
        Cancel an active subscription and refund per the elapsed-time policy.

        The subscription is only deactivated after the provider accepts the
        refund (or when the refund is zero).

        Raises:
            SubscriptionNotFound, SubscriptionNotActive, RefundFailed, ProviderUnavailable
        """
        now = cancel_time or datetime.utcnow()

        def _prepare(db: Session, pending: List[Notice]):
            sub = self._load_subscription(db, subscription_id)
            if not sub.is_current(now):
                raise SubscriptionNotActive()
            quote = quote_refund(sub, now)
            payment = get_payment_by_id(db, sub.payment_id) if sub.payment_id else None
            txn_id = None
            if payment is not None and payment.status == PaymentStatus.COMPLETED:
                txn_id = payment.provider_transaction_id
            return quote, txn_id

        quote, txn_id = self.run_transaction("cancel_with_refund.quote", _prepare)

        if quote.is_refundable:
            if not txn_id:
                logger.error(f"No captured payment to refund: subscription_id={subscription_id}")
                raise RefundFailed()
            result = self.call_provider(
                "refund",
                self.provider.refund,
                txn_id,
                quote.amount,
                idempotency_key=f"refund-{subscription_id}",
            )
            if not result.success:
                logger.error(f"Refund declined: subscription_id={subscription_id}, error={result.error_message}")
                raise RefundFailed()

        def _apply(db: Session, pending: List[Notice]) -> CancellationResult:
            sub = self._load_subscription(db, subscription_id)

            if quote.is_refundable and sub.payment_id:
                payment = get_payment_by_id(db, sub.payment_id)
                if payment is not None and payment.status == PaymentStatus.COMPLETED:
                    payment.transition_to(PaymentStatus.REFUNDED)
                    payment.refunded_amount = quote.amount
                    update_payment(db, payment, now)
                    audit_service.record_audit(
                        db, audit_service.PAYMENT_REFUNDED, "payment", payment.id,
                        seller_id=sub.seller_id,
                        details={"amount": str(quote.amount), "percentage": quote.percentage},
                    )

            if sub.is_active:
                self.close_subscription(db, sub, SubscriptionStatus.CANCELLED_WITH_REFUND, now, reason="Cancelled by seller")
                audit_service.record_audit(
                    db, audit_service.SUBSCRIPTION_CANCELLED, "subscription", sub.id,
                    seller_id=sub.seller_id,
                    details={"refund_amount": str(quote.amount), "refund_percentage": quote.percentage},
                )
                pending.append((sub.seller_id, notices.SUBSCRIPTION_CANCELLED, {
                    "subscription_id": sub.id,
                    "refund_amount": str(quote.amount),
                    "refund_percentage": quote.percentage,
                }))
            else:
                logger.warning(f"Subscription closed concurrently during refund: subscription_id={sub.id}")

            return CancellationResult(
                subscription_id=sub.id,
                status=sub.status,
                refund_percentage=quote.percentage,
                refund_amount=quote.amount,
                end_date=sub.end_date,
            )

        result = self.run_transaction("cancel_with_refund.apply", _apply)
        logger.info(
            f"Subscription cancelled with refund: subscription_id={subscription_id}, "
            f"percentage={result.refund_percentage}, amount={result.refund_amount}"
        )
        return result

    def cancel_auto_renewal(self, subscription_id: str) -> SubscriptionSnapshot:
        """Stop future renewals. Premium continues until end_date. Idempotent."""

        def _cancel(db: Session, pending: List[Notice]) -> SubscriptionSnapshot:
            sub = self._load_subscription(db, subscription_id)
            if sub.is_closed:
                raise SubscriptionNotActive()
            if not sub.is_auto_renewing and sub.status == SubscriptionStatus.CANCELLED_NO_REFUND:
                return SubscriptionSnapshot.from_model(sub)

            sub.is_auto_renewing = False
            sub.transition_to(SubscriptionStatus.CANCELLED_NO_REFUND)
            update_subscription(db, sub)
            audit_service.record_audit(
                db, audit_service.AUTO_RENEWAL_CHANGED, "subscription", sub.id,
                seller_id=sub.seller_id, details={"is_auto_renewing": False},
            )
            pending.append((sub.seller_id, notices.AUTO_RENEWAL_CANCELLED, {
                "subscription_id": sub.id,
                "end_date": sub.end_date.isoformat() if sub.end_date else None,
            }))
            return SubscriptionSnapshot.from_model(sub)

        return self.run_transaction("cancel_auto_renewal", _cancel)

    def enable_auto_renewal(self, subscription_id: str, now: Optional[datetime] = None) -> SubscriptionSnapshot:
        """Turn renewals back on for a subscription that has not yet ended."""
        now = now or datetime.utcnow()

        def _enable(db: Session, pending: List[Notice]) -> SubscriptionSnapshot:
            sub = self._load_subscription(db, subscription_id)
            if not sub.is_current(now) or sub.is_closed:
                raise SubscriptionNotActive()
            if sub.end_date is None:
                raise InvalidRequest("This subscription does not renew")
            if sub.is_auto_renewing and sub.status == SubscriptionStatus.ACTIVE:
                return SubscriptionSnapshot.from_model(sub)

            sub.is_auto_renewing = True
            sub.transition_to(SubscriptionStatus.ACTIVE)
            update_subscription(db, sub, now)
            audit_service.record_audit(
                db, audit_service.AUTO_RENEWAL_CHANGED, "subscription", sub.id,
                seller_id=sub.seller_id, details={"is_auto_renewing": True},
            )
            pending.append((sub.seller_id, notices.AUTO_RENEWAL_ENABLED, {"subscription_id": sub.id}))
            return SubscriptionSnapshot.from_model(sub)

        return self.run_transaction("enable_auto_renewal", _enable)

    def get_refund_eligibility(self, subscription_id: str, now: Optional[datetime] = None) -> RefundEligibility:
        """Read-only preview of what cancel_with_refund would refund right now."""
        now = now or datetime.utcnow()

        def _quote(db: Session) -> RefundEligibility:
            sub = self._load_subscription(db, subscription_id)
            quote = quote_refund(sub, now)
            active = sub.is_current(now)
            return RefundEligibility(
                subscription_id=sub.id,
                eligible=active and quote.is_refundable,
                refund_percentage=quote.percentage if active else 0,
                refund_amount=quote.amount if active else Decimal("0.00"),
                hours_elapsed=round(quote.elapsed.total_seconds() / 3600, 2),
                is_active=active,
            )

        return self.read(_quote)

    # ------------------------------------------------------------------
    # Expiry and renewal
    # ------------------------------------------------------------------

    def _new_renewal_payment(self, db: Session, sub: Subscription, now: datetime) -> _RenewalCharge:
        last_payment = get_payment_by_id(db, sub.payment_id) if sub.payment_id else None
        method = last_payment.payment_method if last_payment is not None else None

        payment = create_payment(db, Payment(
            seller_id=sub.seller_id,
            amount=sub.monthly_fee,
            currency=sub.currency,
            status=PaymentStatus.PROCESSING,
            plan_id=sub.plan_id,
            purpose=PaymentPurpose.RENEWAL,
            subscription_id=sub.id,
            provider=self.provider.name,
            payment_method=method,
            description=f"Premium renewal - {sub.plan_id}",
            created_at=now,
            updated_at=now,
        ))
        # Version bump: a second sweeper racing on this subscription conflicts here
        update_subscription(db, sub, now)
        logger.info(f"Renewal payment created: payment_id={payment.id}, subscription_id={sub.id}")
        return _RenewalCharge(
            payment_id=payment.id,
            amount=payment.amount,
            currency=payment.currency,
            payment_method=method,
            seller_id=sub.seller_id,
            subscription_id=sub.id,
        )

    def _settle_renewal(self, charge: _RenewalCharge, now: datetime) -> ExpiryOutcome:
        try:
            outcome = self._capture_charge(charge, now)
        except ProviderUnavailable:
            logger.warning(f"Renewal capture outcome unknown, left for reconciliation: payment_id={charge.payment_id}")
            return ExpiryOutcome.RENEWAL_PENDING
        if outcome.status == PaymentStatus.COMPLETED:
            return ExpiryOutcome.RENEWED
        return ExpiryOutcome.RENEWAL_FAILED

    def expire_if_due(self, subscription_id: str, now: Optional[datetime] = None) -> ExpiryOutcome:
        """
        Settle a subscription whose end date has been reached.

        Not auto-renewing: expire it. Auto-renewing: charge one renewal
        payment (never more than one outstanding) and extend on success.

        Returns:
            ExpiryOutcome
        """
        now = now or datetime.utcnow()

        def _check(db: Session, pending: List[Notice]):
            sub = self._load_subscription(db, subscription_id)
            if not sub.is_active or sub.end_date is None or sub.end_date > now:
                return ExpiryOutcome.NOT_DUE, None

            if not sub.is_auto_renewing:
                self._close(db, sub, SubscriptionStatus.EXPIRED, now, end_date=sub.end_date, reason="Reached end date")
                recompute_premium_projection(db, sub.seller_id, now)
                audit_service.record_audit(
                    db, audit_service.SUBSCRIPTION_EXPIRED, "subscription", sub.id, seller_id=sub.seller_id,
                )
                pending.append((sub.seller_id, notices.SUBSCRIPTION_EXPIRED, {"subscription_id": sub.id}))
                return ExpiryOutcome.EXPIRED, None

            if get_outstanding_renewal_payment(db, sub.id) is not None:
                return ExpiryOutcome.RENEWAL_PENDING, None

            return None, self._new_renewal_payment(db, sub, now)

        outcome, charge = self.run_transaction("expire_if_due", _check)
        if charge is None:
            return outcome
        return self._settle_renewal(charge, now)

    def process_renewal(self, subscription_id: str, now: Optional[datetime] = None) -> ExpiryOutcome:
        """Charge the next period of an active subscription immediately."""
        now = now or datetime.utcnow()

        def _start(db: Session, pending: List[Notice]):
            sub = self._load_subscription(db, subscription_id)
            if not sub.is_active or sub.is_closed:
                raise SubscriptionNotActive()
            if sub.end_date is None:
                raise InvalidRequest("This subscription does not renew")
            if get_outstanding_renewal_payment(db, sub.id) is not None:
                return None
            return self._new_renewal_payment(db, sub, now)

        charge = self.run_transaction("process_renewal", _start)
        if charge is None:
            return ExpiryOutcome.RENEWAL_PENDING
        return self._settle_renewal(charge, now)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_subscription(self, subscription_id: str) -> SubscriptionSnapshot:
        return self.read(lambda db: SubscriptionSnapshot.from_model(self._load_subscription(db, subscription_id)))

    def get_active_subscription_for_seller(
        self,
        seller_id: str,
        now: Optional[datetime] = None
    ) -> Optional[SubscriptionSnapshot]:
        def _get(db: Session):
            sub = get_active_subscription_for_seller(db, seller_id, now)
            return SubscriptionSnapshot.from_model(sub) if sub is not None else None

        return self.read(_get)

    def list_subscriptions_for_seller(
        self,
        seller_id: str,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[SubscriptionSnapshot], int]:
        """Paged history, newest first, with the total count."""
        def _list(db: Session):
            rows = list_subscriptions_for_seller(db, seller_id, page, page_size)
            return [SubscriptionSnapshot.from_model(sub) for sub in rows], count_subscriptions_for_seller(db, seller_id)

        return self.read(_list)
