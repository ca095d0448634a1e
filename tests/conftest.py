"""
Shared fixtures for premium subscription tests.

Every test gets a fresh in-memory SQLite database, a scriptable payment
provider and services wired against that database.
"""
import threading
import time
import uuid
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.db.models  # noqa: F401  registers every table on Base.metadata
from app.main import app
from app.db.base import Base
from app.db.models.category_configuration import CategoryConfiguration
from app.db.models.certification import Certification, CertificationStatus
from app.db.models.seller_profile import SellerProfile
from app.core.dependencies import PremiumContainer, get_container
from app.core.security import create_seller_token, create_admin_token
from app.services.notification_service import NotificationService
from app.services.payment_provider import (
    PaymentProvider,
    CaptureResult,
    RefundResult,
    StatusResult,
    ProviderPaymentStatus,
)
from app.services.payment_reconciliation import PaymentReconciliationWorker
from app.services.premium_assignment_service import PremiumAssignmentService
from app.services.premium_subscription_service import PremiumSubscriptionService


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

PROVIDER_TIMEOUT = 0.2
SLOW_CALL_SECONDS = 1.0


class ScriptedPaymentProvider(PaymentProvider):
    """
    Payment provider whose answers are set by the test.

    Captures and refunds succeed unless told otherwise. `slow_*` sets make
    the matching call sleep past the service timeout.
    """

    name = "scripted"

    def __init__(self):
        self._lock = threading.Lock()
        self.capture_calls = []
        self.refund_calls = []
        self.query_calls = []
        self.decline_captures = False
        self.decline_refunds = False
        self.fail_captures = False
        self.slow_captures = False
        self.slow_refunds = False
        self.slow_queries = set()
        self.statuses = {}

    def capture(self, amount, currency, payment_method, idempotency_key, metadata=None):
        with self._lock:
            self.capture_calls.append((idempotency_key, amount, currency, payment_method))
        if self.slow_captures:
            time.sleep(SLOW_CALL_SECONDS)
        if self.fail_captures:
            raise ConnectionError("gateway unreachable")
        if self.decline_captures:
            return CaptureResult(success=False, error_message="Card declined")
        return CaptureResult(success=True, provider_transaction_id=f"txn_{idempotency_key[:8]}")

    def refund(self, provider_transaction_id, amount, idempotency_key):
        with self._lock:
            self.refund_calls.append((provider_transaction_id, amount, idempotency_key))
        if self.slow_refunds:
            time.sleep(SLOW_CALL_SECONDS)
        if self.decline_refunds:
            return RefundResult(success=False, error_message="Refund rejected")
        return RefundResult(success=True, provider_refund_id=f"re_{uuid.uuid4().hex[:8]}")

    def query_status(self, payment_id, provider_transaction_id=None):
        with self._lock:
            self.query_calls.append(payment_id)
        if payment_id in self.slow_queries:
            time.sleep(SLOW_CALL_SECONDS)
        return self.statuses.get(payment_id, StatusResult(status=ProviderPaymentStatus.NOT_FOUND))

    def succeed(self, payment_id):
        self.statuses[payment_id] = StatusResult(
            status=ProviderPaymentStatus.SUCCEEDED,
            provider_transaction_id=f"txn_{payment_id[:8]}",
        )

    def fail(self, payment_id, message="Insufficient funds"):
        self.statuses[payment_id] = StatusResult(status=ProviderPaymentStatus.FAILED, error_message=message)


@pytest.fixture(scope="function", autouse=True)
def setup_db():
    """Create and drop tables for each test."""
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def db_session():
    """Provide a database session for tests."""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def provider():
    return ScriptedPaymentProvider()


@pytest.fixture
def notifier():
    return NotificationService(TestSessionLocal)


@pytest.fixture
def service(provider, notifier):
    """Lifecycle manager with a short provider timeout."""
    svc = PremiumSubscriptionService(
        TestSessionLocal,
        provider,
        notifier,
        provider_timeout=PROVIDER_TIMEOUT,
    )
    yield svc
    svc.shutdown()


@pytest.fixture
def stale_session():
    """Second session that keeps whatever it loads, to race against the services."""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def service_with_sessions(provider, notifier):
    """
    Build a lifecycle manager that uses the given sessions first, then
    fresh ones. Lets a test decide which session a transaction attempt sees.
    """
    built = []

    def _build(*first_sessions):
        queue = list(first_sessions)

        def _factory():
            return queue.pop(0) if queue else TestSessionLocal()

        svc = PremiumSubscriptionService(_factory, provider, notifier, provider_timeout=PROVIDER_TIMEOUT)
        built.append(svc)
        return svc

    yield _build
    for svc in built:
        svc.shutdown()


@pytest.fixture
def assignments(service):
    return PremiumAssignmentService(service)


@pytest.fixture
def worker(service):
    return PaymentReconciliationWorker(service, interval_seconds=1, grace_seconds=60)


@pytest.fixture
def container(provider, notifier, service, assignments, worker):
    return PremiumContainer(
        provider=provider,
        notifications=notifier,
        subscriptions=service,
        assignments=assignments,
        reconciliation=worker,
    )


@pytest.fixture
def client(container):
    """TestClient with the premium services swapped for the test ones."""
    app.dependency_overrides[get_container] = lambda: container
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_container, None)


@pytest.fixture
def badge_category(db_session):
    """Category that grants the badge at two approved certifications while premium."""
    config = CategoryConfiguration(
        category_id="cat-industrial",
        allows_verified_badge=True,
        min_certifications_for_badge=2,
        badge_requires_premium=True,
    )
    db_session.add(config)
    db_session.commit()
    return config


@pytest.fixture
def seller(db_session, badge_category):
    """Create a seller profile with enough approved certifications for the badge."""
    profile = SellerProfile(
        company_name="Acme Fasteners",
        user_id="user-1",
        primary_category_id=badge_category.category_id,
    )
    db_session.add(profile)
    db_session.flush()
    for name in ("ISO 9001", "ISO 14001"):
        db_session.add(Certification(
            seller_id=profile.id,
            category_id=badge_category.category_id,
            name=name,
            status=CertificationStatus.APPROVED,
        ))
    db_session.commit()
    db_session.refresh(profile)
    return profile


@pytest.fixture
def other_seller(db_session):
    profile = SellerProfile(company_name="Globex Parts", user_id="user-2")
    db_session.add(profile)
    db_session.commit()
    db_session.refresh(profile)
    return profile


@pytest.fixture
def seller_token(seller):
    """Create JWT token for the seller."""
    return create_seller_token(seller.user_id, seller.id)


@pytest.fixture
def admin_token():
    return create_admin_token("admin-1")


@pytest.fixture
def now():
    return datetime.utcnow().replace(microsecond=0)
