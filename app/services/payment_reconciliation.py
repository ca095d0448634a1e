"""
Background reconciliation of payments and due subscriptions.

Every tick:
1. payments still pending/processing after the grace period are checked
   with the provider and confirmed when the provider has a verdict;
2. active subscriptions past their end date are expired or renewed.

Each item is handled on its own; one failure is logged and the sweep moves
on. All decisions go through PremiumSubscriptionService, whose confirmation
is idempotent, so a tick that overlaps a webhook or another instance is
harmless.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Optional

from app.core.config import (
    RECONCILIATION_INTERVAL_SECONDS,
    RECONCILIATION_GRACE_SECONDS,
    PAYMENT_ABANDON_AFTER_HOURS,
)
from app.db.models.payment import PaymentStatus
from app.services.payment_provider import ProviderPaymentStatus
from app.services.payment_store import get_payment_by_id, list_pending_or_processing_older_than
from app.services.subscription_store import list_due_subscriptions
from app.services.premium_subscription_service import PremiumSubscriptionService, ExpiryOutcome

logger = logging.getLogger(__name__)


@dataclass
class SweepSummary:
    payments_checked: int = 0
    payments_confirmed: int = 0
    payments_failed: int = 0
    payments_still_pending: int = 0
    subscriptions_checked: int = 0
    subscriptions_expired: int = 0
    subscriptions_renewed: int = 0
    renewals_failed: int = 0
    errors: int = 0
    stopped_early: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


class PaymentReconciliationWorker:
    """
    Periodic settlement of stuck payments and due subscriptions.

    Args:
        service: PremiumSubscriptionService that applies all state changes
        interval_seconds: Time between ticks
        grace_seconds: Minimum payment age before it is reconciled
        abandon_after: Age after which a payment unknown to the provider is failed
    """

    def __init__(
        self,
        service: PremiumSubscriptionService,
        interval_seconds: int = RECONCILIATION_INTERVAL_SECONDS,
        grace_seconds: int = RECONCILIATION_GRACE_SECONDS,
        abandon_after: timedelta = timedelta(hours=PAYMENT_ABANDON_AFTER_HOURS),
    ):
        self.service = service
        self.interval_seconds = interval_seconds
        self.grace = timedelta(seconds=grace_seconds)
        self.abandon_after = abandon_after
        self._stop = threading.Event()
        self._task: Optional[asyncio.Task] = None
        self.last_summary: Optional[SweepSummary] = None

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def run_once(self, now: Optional[datetime] = None) -> SweepSummary:
        """
        Run a single reconciliation sweep.

        Args:
            now: Sweep reference time (defaults to utcnow)

        Returns:
            SweepSummary with per-category counts
        """
        now = now or datetime.utcnow()
        summary = SweepSummary()

        for payment_id in self._stale_payment_ids(now):
            if self._stop.is_set():
                summary.stopped_early = True
                break
            summary.payments_checked += 1
            try:
                self._reconcile_payment(payment_id, now, summary)
            except Exception as e:
                summary.errors += 1
                logger.error(f"Reconciliation failed for payment_id={payment_id}: {e}", exc_info=True)

        if not summary.stopped_early:
            for subscription_id in self._due_subscription_ids(now):
                if self._stop.is_set():
                    summary.stopped_early = True
                    break
                summary.subscriptions_checked += 1
                try:
                    self._settle_subscription(subscription_id, now, summary)
                except Exception as e:
                    summary.errors += 1
                    logger.error(f"Expiry check failed for subscription_id={subscription_id}: {e}", exc_info=True)

        self.last_summary = summary
        logger.info(f"Reconciliation sweep complete: {summary.as_dict()}")
        return summary

    def _stale_payment_ids(self, now: datetime):
        db = self.service.session_factory()
        try:
            return list_pending_or_processing_older_than(db, now - self.grace)
        finally:
            db.close()

    def _due_subscription_ids(self, now: datetime):
        db = self.service.session_factory()
        try:
            return list_due_subscriptions(db, now)
        finally:
            db.close()

    def _reconcile_payment(self, payment_id: str, now: datetime, summary: SweepSummary) -> None:
        db = self.service.session_factory()
        try:
            payment = get_payment_by_id(db, payment_id)
            if payment is None or payment.is_settled:
                return
            txn_id = payment.provider_transaction_id
            created_at = payment.created_at
        finally:
            db.close()

        # No session is held while waiting on the provider
        status = self.service.call_provider(
            "query_status", self.service.provider.query_status, payment_id, txn_id
        )

        if status.status == ProviderPaymentStatus.SUCCEEDED:
            outcome = self.service.confirm_payment(
                payment_id, success=True, provider_txn_id=status.provider_transaction_id, now=now
            )
            self._count_confirmation(outcome.status, summary)
        elif status.status == ProviderPaymentStatus.FAILED:
            outcome = self.service.confirm_payment(
                payment_id, success=False, provider_txn_id=status.provider_transaction_id,
                error_message=status.error_message, now=now,
            )
            self._count_confirmation(outcome.status, summary)
        elif status.status == ProviderPaymentStatus.NOT_FOUND and now - created_at >= self.abandon_after:
            logger.warning(f"Abandoning payment unknown to provider: payment_id={payment_id}, created_at={created_at}")
            outcome = self.service.confirm_payment(
                payment_id, success=False, error_message="Payment abandoned", now=now
            )
            self._count_confirmation(outcome.status, summary)
        else:
            summary.payments_still_pending += 1

    @staticmethod
    def _count_confirmation(status: PaymentStatus, summary: SweepSummary) -> None:
        if status == PaymentStatus.COMPLETED:
            summary.payments_confirmed += 1
        elif status == PaymentStatus.FAILED:
            summary.payments_failed += 1

    def _settle_subscription(self, subscription_id: str, now: datetime, summary: SweepSummary) -> None:
        outcome = self.service.expire_if_due(subscription_id, now)
        if outcome == ExpiryOutcome.EXPIRED:
            summary.subscriptions_expired += 1
        elif outcome == ExpiryOutcome.RENEWED:
            summary.subscriptions_renewed += 1
        elif outcome == ExpiryOutcome.RENEWAL_FAILED:
            summary.renewals_failed += 1

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the sweep loop as an asyncio task on the running loop."""
        if self._task and not self._task.done():
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"PaymentReconciliationWorker started: interval={self.interval_seconds}s")

    async def stop(self) -> None:
        """Stop after the in-flight item; no new item or tick starts."""
        self._stop.set()
        if self._task:
            await self._task
            self._task = None
        logger.info("PaymentReconciliationWorker stopped")

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run_loop(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.to_thread(self.run_once)
            except Exception as exc:
                logger.exception(f"Reconciliation tick failed: {exc}")
            await self._sleep_until_next_tick()

    async def _sleep_until_next_tick(self) -> None:
        waited = 0.0
        while waited < self.interval_seconds and not self._stop.is_set():
            await asyncio.sleep(1.0)
            waited += 1.0
