"""
Service wiring for the API.

One PremiumContainer per application, kept on app.state. Routes depend on
the small getters below; tests swap the whole container through
app.dependency_overrides[get_container].
"""
import logging
from dataclasses import dataclass

from fastapi import Depends, Request

from app.core.config import STRIPE_SECRET_KEY, PROVIDER_TIMEOUT_SECONDS
from app.db.session import SessionLocal
from app.services.notification_service import NotificationService
from app.services.payment_provider import PaymentProvider, MockPaymentProvider
from app.services.payment_reconciliation import PaymentReconciliationWorker
from app.services.premium_assignment_service import PremiumAssignmentService
from app.services.premium_subscription_service import PremiumSubscriptionService

logger = logging.getLogger(__name__)


@dataclass
class PremiumContainer:
    """Services shared across the application lifecycle."""
    provider: PaymentProvider
    notifications: NotificationService
    subscriptions: PremiumSubscriptionService
    assignments: PremiumAssignmentService
    reconciliation: PaymentReconciliationWorker


def build_payment_provider() -> PaymentProvider:
    if STRIPE_SECRET_KEY:
        from app.services.stripe_service import StripePaymentProvider
        return StripePaymentProvider()
    return MockPaymentProvider()


def build_container(session_factory=SessionLocal, provider: PaymentProvider = None) -> PremiumContainer:
    provider = provider or build_payment_provider()
    notifications = NotificationService(session_factory)
    subscriptions = PremiumSubscriptionService(
        session_factory,
        provider,
        notifications,
        provider_timeout=PROVIDER_TIMEOUT_SECONDS,
    )
    logger.info(f"Premium services wired: provider={provider.name}")
    return PremiumContainer(
        provider=provider,
        notifications=notifications,
        subscriptions=subscriptions,
        assignments=PremiumAssignmentService(subscriptions),
        reconciliation=PaymentReconciliationWorker(subscriptions),
    )


def get_container(request: Request) -> PremiumContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        container = build_container()
        request.app.state.container = container
    return container


def get_subscription_service(container: PremiumContainer = Depends(get_container)) -> PremiumSubscriptionService:
    return container.subscriptions


def get_assignment_service(container: PremiumContainer = Depends(get_container)) -> PremiumAssignmentService:
    return container.assignments


def get_reconciliation_worker(container: PremiumContainer = Depends(get_container)) -> PaymentReconciliationWorker:
    return container.reconciliation


def get_notification_service(container: PremiumContainer = Depends(get_container)) -> NotificationService:
    return container.notifications
