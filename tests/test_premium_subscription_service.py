"""
Tests for the premium subscription lifecycle: purchase, confirmation,
cancellation, auto-renewal, expiry and the seller premium projection.
"""
import logging

import pytest
from datetime import timedelta
from decimal import Decimal

from sqlalchemy.orm.exc import StaleDataError

from app.core.premium_plans import add_months
from app.db.models.payment import Payment, PaymentStatus, PaymentPurpose
from app.db.models.seller_profile import SellerProfile
from app.db.models.subscription import Subscription, SubscriptionStatus
from app.db.models.audit_log import PremiumAuditLog
from app.services import notification_service as notices
from app.services.premium_errors import (
    AlreadyActive,
    ConcurrencyConflict,
    InvalidPlan,
    InvalidRequest,
    PaymentNotFound,
    ProviderUnavailable,
    RefundFailed,
    SellerNotFound,
    SubscriptionNotActive,
    SubscriptionNotFound,
)
from app.services.premium_assignment_service import PremiumAssignmentService
from app.services.premium_subscription_service import ExpiryOutcome


def _reload(db_session, model, row_id):
    db_session.expire_all()
    return db_session.get(model, row_id)


def _kinds(notifier, seller_id):
    return [n.event_kind for n in notifier.list_for_seller(seller_id)]


def _purchase(service, seller, now, plan_id="premium"):
    handle = service.initiate_purchase(seller.id, plan_id, "pm_card_visa", now=now)
    assert handle.status == PaymentStatus.COMPLETED
    return service.get_subscription(handle.subscription_id)


# ============================================
# Purchase and confirmation
# ============================================

def test_purchase_with_payment_method_grants_premium(service, provider, notifier, db_session, seller, now):
    handle = service.initiate_purchase(seller.id, "premium", "pm_card_visa", now=now)

    assert handle.status == PaymentStatus.COMPLETED
    assert handle.amount == Decimal("59.99")
    assert provider.capture_calls[0][0] == handle.payment_id

    sub = service.get_subscription(handle.subscription_id)
    assert sub.status == SubscriptionStatus.ACTIVE
    assert sub.is_active and sub.is_auto_renewing
    assert sub.start_date == now
    assert sub.end_date == add_months(now, 1)
    assert sub.payment_id == handle.payment_id

    profile = _reload(db_session, SellerProfile, seller.id)
    assert profile.is_premium is True
    assert profile.premium_since == now
    assert profile.has_verified_badge is True

    assert _kinds(notifier, seller.id) == [notices.PAYMENT_SUCCESSFUL]


def test_confirmation_is_idempotent(service, notifier, db_session, seller, now):
    handle = service.initiate_purchase(seller.id, "basic", now=now)
    assert handle.status == PaymentStatus.PENDING
    assert handle.subscription_id is None

    first = service.confirm_payment(handle.payment_id, True, provider_txn_id="txn_abc", now=now)
    second = service.confirm_payment(handle.payment_id, True, provider_txn_id="txn_abc", now=now)
    late_failure = service.confirm_payment(handle.payment_id, False, error_message="late webhook", now=now)

    assert first.status == PaymentStatus.COMPLETED
    assert not first.already_processed
    assert second.already_processed and second.subscription_id == first.subscription_id
    assert late_failure.status == PaymentStatus.COMPLETED

    db_session.expire_all()
    assert db_session.query(Subscription).filter_by(seller_id=seller.id).count() == 1
    assert _kinds(notifier, seller.id) == [notices.PAYMENT_SUCCESSFUL]

    payment = _reload(db_session, Payment, handle.payment_id)
    assert payment.provider_transaction_id == "txn_abc"
    assert payment.completed_at == now


def test_second_purchase_while_active_is_rejected(service, seller, now):
    _purchase(service, seller, now)
    with pytest.raises(AlreadyActive):
        service.initiate_purchase(seller.id, "basic", "pm_card_visa", now=now + timedelta(hours=1))


def test_outstanding_purchase_is_resumed(service, db_session, seller, now):
    first = service.initiate_purchase(seller.id, "premium", now=now)
    again = service.initiate_purchase(seller.id, "premium", now=now + timedelta(minutes=1))

    assert again.resumed is True
    assert again.payment_id == first.payment_id
    assert again.plan_id == "premium"
    db_session.expire_all()
    assert db_session.query(Payment).filter_by(seller_id=seller.id).count() == 1


def test_outstanding_purchase_for_another_plan_is_rejected(service, provider, db_session, seller, now):
    first = service.initiate_purchase(seller.id, "basic", now=now)

    with pytest.raises(InvalidRequest):
        service.initiate_purchase(seller.id, "premium", "pm_card_visa", now=now + timedelta(minutes=1))

    # Nothing was charged for either plan
    assert provider.capture_calls == []
    payment = _reload(db_session, Payment, first.payment_id)
    assert payment.status == PaymentStatus.PENDING
    assert payment.plan_id == "basic"
    assert db_session.query(Payment).filter_by(seller_id=seller.id).count() == 1


def test_declined_capture_records_failure(service, provider, notifier, db_session, seller, now):
    provider.decline_captures = True
    handle = service.initiate_purchase(seller.id, "basic", "pm_card_declined", now=now)

    assert handle.status == PaymentStatus.FAILED
    assert handle.subscription_id is None

    payment = _reload(db_session, Payment, handle.payment_id)
    assert payment.error_message == "Card declined"
    profile = _reload(db_session, SellerProfile, seller.id)
    assert profile.is_premium is False
    assert _kinds(notifier, seller.id) == [notices.PAYMENT_FAILED]

    # A failed purchase does not block a new attempt
    provider.decline_captures = False
    retry = service.initiate_purchase(seller.id, "basic", "pm_card_visa", now=now)
    assert retry.payment_id != handle.payment_id
    assert retry.status == PaymentStatus.COMPLETED


def test_capture_timeout_leaves_payment_processing(service, provider, db_session, seller, now):
    provider.slow_captures = True
    with pytest.raises(ProviderUnavailable):
        service.initiate_purchase(seller.id, "basic", "pm_card_visa", now=now)

    db_session.expire_all()
    payment = db_session.query(Payment).filter_by(seller_id=seller.id).one()
    assert payment.status == PaymentStatus.PROCESSING
    assert db_session.query(Subscription).count() == 0


def test_paid_purchase_replaces_complimentary_grant(service, assignments, provider, db_session, seller, now):
    handle = service.initiate_purchase(seller.id, "premium", now=now)
    granted_at = now + timedelta(minutes=1)
    grant = assignments.assign_premium_status(seller.id, "admin-1", now=granted_at)

    paid_at = now + timedelta(minutes=5)
    outcome = service.confirm_payment(handle.payment_id, True, provider_txn_id="txn_late", now=paid_at)

    assert outcome.status == PaymentStatus.COMPLETED
    assert outcome.subscription_id != grant.id

    paid = service.get_subscription(outcome.subscription_id)
    assert paid.plan_id == "premium"
    assert paid.monthly_fee == Decimal("59.99")
    assert paid.start_date == paid_at
    assert paid.end_date == add_months(paid_at, 1)
    assert paid.payment_id == handle.payment_id

    replaced = service.get_subscription(grant.id)
    assert replaced.status == SubscriptionStatus.EXPIRED
    assert replaced.is_active is False
    assert replaced.end_date == paid_at
    assert replaced.payment_id is None

    profile = _reload(db_session, SellerProfile, seller.id)
    assert profile.is_premium is True
    assert profile.premium_since == granted_at

    # The captured amount is what a cancellation quotes and refunds
    cancel_at = paid_at + timedelta(hours=1)
    assert service.get_refund_eligibility(paid.id, now=cancel_at).refund_amount == Decimal("59.99")
    result = service.cancel_with_refund(paid.id, cancel_time=cancel_at)
    assert result.refund_amount == Decimal("59.99")
    assert provider.refund_calls == [("txn_late", Decimal("59.99"), f"refund-{paid.id}")]


def test_provider_exception_becomes_provider_unavailable(service, provider, seller, now):
    provider.fail_captures = True
    with pytest.raises(ProviderUnavailable):
        service.initiate_purchase(seller.id, "basic", "pm_card_visa", now=now)


def test_purchase_validation(service, seller, now):
    with pytest.raises(InvalidPlan):
        service.initiate_purchase(seller.id, "platinum", now=now)
    with pytest.raises(SellerNotFound):
        service.initiate_purchase("missing-seller", "basic", now=now)
    with pytest.raises(PaymentNotFound):
        service.confirm_payment("missing-payment", True)


def test_purchase_after_lapse_starts_new_subscription(service, db_session, seller, now):
    first = _purchase(service, seller, now)
    service.cancel_auto_renewal(first.id)

    later = first.end_date + timedelta(days=3)
    handle = service.initiate_purchase(seller.id, "basic", "pm_card_visa", now=later)

    assert handle.subscription_id != first.id
    old = service.get_subscription(first.id)
    assert old.status == SubscriptionStatus.EXPIRED
    assert old.is_active is False

    new = service.get_subscription(handle.subscription_id)
    assert new.start_date == later
    assert new.monthly_fee == Decimal("29.99")

    profile = _reload(db_session, SellerProfile, seller.id)
    assert profile.premium_since == later


# ============================================
# Cancellation with refund
# ============================================

@pytest.mark.parametrize("hours,percentage,amount", [
    (12, 100, Decimal("59.99")),
    (48, 50, Decimal("30.00")),
    (120, 0, Decimal("0.00")),
])
def test_cancel_with_refund_follows_policy(service, provider, notifier, db_session, seller, now, hours, percentage, amount):
    sub = _purchase(service, seller, now)

    result = service.cancel_with_refund(sub.id, cancel_time=sub.start_date + timedelta(hours=hours))

    assert result.refund_percentage == percentage
    assert result.refund_amount == amount
    assert result.status == SubscriptionStatus.CANCELLED_WITH_REFUND

    closed = service.get_subscription(sub.id)
    assert closed.is_active is False
    assert closed.is_auto_renewing is False
    assert closed.end_date == sub.start_date + timedelta(hours=hours)

    payment = _reload(db_session, Payment, sub.payment_id)
    if amount > 0:
        assert provider.refund_calls == [(payment.provider_transaction_id, amount, f"refund-{sub.id}")]
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refunded_amount == amount
    else:
        assert provider.refund_calls == []
        assert payment.status == PaymentStatus.COMPLETED

    profile = _reload(db_session, SellerProfile, seller.id)
    assert profile.is_premium is False
    assert profile.premium_since is None
    assert profile.has_verified_badge is False
    assert notices.SUBSCRIPTION_CANCELLED in _kinds(notifier, seller.id)


def test_declined_refund_keeps_subscription_active(service, provider, db_session, seller, now):
    sub = _purchase(service, seller, now)
    provider.decline_refunds = True

    with pytest.raises(RefundFailed):
        service.cancel_with_refund(sub.id, cancel_time=now + timedelta(hours=1))

    current = service.get_subscription(sub.id)
    assert current.status == SubscriptionStatus.ACTIVE
    assert current.is_active is True
    assert _reload(db_session, Payment, sub.payment_id).status == PaymentStatus.COMPLETED
    assert _reload(db_session, SellerProfile, seller.id).is_premium is True


def test_refund_timeout_keeps_subscription_active(service, provider, seller, now):
    sub = _purchase(service, seller, now)
    provider.slow_refunds = True

    with pytest.raises(ProviderUnavailable):
        service.cancel_with_refund(sub.id, cancel_time=now + timedelta(hours=1))

    assert service.get_subscription(sub.id).is_active is True


def test_cancel_requires_active_subscription(service, seller, now):
    sub = _purchase(service, seller, now)
    service.cancel_with_refund(sub.id, cancel_time=now + timedelta(days=4))

    with pytest.raises(SubscriptionNotActive):
        service.cancel_with_refund(sub.id, cancel_time=now + timedelta(days=5))
    with pytest.raises(SubscriptionNotFound):
        service.cancel_with_refund("missing")


def test_refund_eligibility_matches_cancellation(service, seller, now):
    sub = _purchase(service, seller, now)
    at = now + timedelta(hours=30)

    quote = service.get_refund_eligibility(sub.id, now=at)
    assert quote.eligible is True
    assert quote.refund_percentage == 50
    assert quote.hours_elapsed == 30.0

    result = service.cancel_with_refund(sub.id, cancel_time=at)
    assert result.refund_amount == quote.refund_amount

    after = service.get_refund_eligibility(sub.id, now=at)
    assert after.is_active is False
    assert after.eligible is False
    assert after.refund_amount == Decimal("0.00")


def test_audit_trail_records_purchase_and_refund(service, db_session, seller, now):
    sub = _purchase(service, seller, now)
    service.cancel_with_refund(sub.id, cancel_time=now + timedelta(hours=2))

    db_session.expire_all()
    actions = {row.action for row in db_session.query(PremiumAuditLog).filter_by(seller_id=seller.id)}
    assert {"payment_processed", "subscription_created", "payment_refunded", "subscription_cancelled"} <= actions


# ============================================
# Auto-renewal
# ============================================

def test_cancel_auto_renewal_keeps_premium_until_end(service, notifier, db_session, seller, now):
    sub = _purchase(service, seller, now)

    first = service.cancel_auto_renewal(sub.id)
    second = service.cancel_auto_renewal(sub.id)

    assert first.status == SubscriptionStatus.CANCELLED_NO_REFUND
    assert first.is_active is True
    assert first.is_auto_renewing is False
    assert second.status == SubscriptionStatus.CANCELLED_NO_REFUND
    assert _kinds(notifier, seller.id).count(notices.AUTO_RENEWAL_CANCELLED) == 1
    assert _reload(db_session, SellerProfile, seller.id).is_premium is True


def test_enable_auto_renewal(service, seller, now):
    sub = _purchase(service, seller, now)
    service.cancel_auto_renewal(sub.id)

    enabled = service.enable_auto_renewal(sub.id, now=now + timedelta(days=1))
    assert enabled.status == SubscriptionStatus.ACTIVE
    assert enabled.is_auto_renewing is True

    with pytest.raises(SubscriptionNotActive):
        service.enable_auto_renewal(sub.id, now=sub.end_date + timedelta(seconds=1))


# ============================================
# Expiry and renewal
# ============================================

def test_expire_without_auto_renewal(service, notifier, db_session, seller, now):
    sub = _purchase(service, seller, now)
    service.cancel_auto_renewal(sub.id)

    assert service.expire_if_due(sub.id, now=sub.end_date - timedelta(seconds=1)) == ExpiryOutcome.NOT_DUE
    assert service.expire_if_due(sub.id, now=sub.end_date) == ExpiryOutcome.EXPIRED

    expired = service.get_subscription(sub.id)
    assert expired.status == SubscriptionStatus.EXPIRED
    assert expired.is_active is False
    assert expired.end_date == sub.end_date

    profile = _reload(db_session, SellerProfile, seller.id)
    assert profile.is_premium is False
    assert profile.premium_since is None
    assert profile.has_verified_badge is False
    assert notices.SUBSCRIPTION_EXPIRED in _kinds(notifier, seller.id)

    assert service.expire_if_due(sub.id, now=sub.end_date + timedelta(days=1)) == ExpiryOutcome.NOT_DUE


def test_due_renewal_starts_at_previous_end(service, provider, notifier, db_session, seller, now):
    sub = _purchase(service, seller, now)

    outcome = service.expire_if_due(sub.id, now=sub.end_date)

    assert outcome == ExpiryOutcome.RENEWED
    renewed = service.get_subscription(sub.id)
    assert renewed.status == SubscriptionStatus.ACTIVE
    assert renewed.start_date == sub.end_date
    assert renewed.end_date == add_months(sub.end_date, 1)
    assert renewed.payment_id != sub.payment_id

    db_session.expire_all()
    renewals = db_session.query(Payment).filter_by(purpose=PaymentPurpose.RENEWAL).all()
    assert len(renewals) == 1
    assert renewals[0].status == PaymentStatus.COMPLETED
    assert renewals[0].payment_method == "pm_card_visa"
    assert len(provider.capture_calls) == 2

    profile = _reload(db_session, SellerProfile, seller.id)
    assert profile.is_premium is True
    assert profile.premium_since == now
    assert notices.SUBSCRIPTION_RENEWED in _kinds(notifier, seller.id)

    # Nothing is charged again for the same cycle
    assert service.expire_if_due(sub.id, now=sub.end_date) == ExpiryOutcome.NOT_DUE
    assert len(provider.capture_calls) == 2


def test_declined_renewal_expires_subscription(service, provider, notifier, db_session, seller, now):
    sub = _purchase(service, seller, now)
    provider.decline_captures = True

    assert service.expire_if_due(sub.id, now=sub.end_date) == ExpiryOutcome.RENEWAL_FAILED

    expired = service.get_subscription(sub.id)
    assert expired.status == SubscriptionStatus.EXPIRED
    assert expired.is_active is False
    assert _reload(db_session, SellerProfile, seller.id).is_premium is False
    assert notices.RENEWAL_FAILED in _kinds(notifier, seller.id)


def test_renewal_timeout_leaves_single_outstanding_payment(service, provider, db_session, seller, now):
    sub = _purchase(service, seller, now)
    provider.slow_captures = True

    assert service.expire_if_due(sub.id, now=sub.end_date) == ExpiryOutcome.RENEWAL_PENDING
    assert service.expire_if_due(sub.id, now=sub.end_date + timedelta(minutes=5)) == ExpiryOutcome.RENEWAL_PENDING

    db_session.expire_all()
    renewals = db_session.query(Payment).filter_by(purpose=PaymentPurpose.RENEWAL).all()
    assert len(renewals) == 1
    assert renewals[0].status == PaymentStatus.PROCESSING
    assert service.get_subscription(sub.id).is_active is True


def test_premium_continues_while_renewal_awaits_verdict(service, assignments, provider, db_session, seller, now):
    sub = _purchase(service, seller, now)
    provider.slow_captures = True
    waiting = sub.end_date + timedelta(hours=2)

    assert service.expire_if_due(sub.id, now=sub.end_date) == ExpiryOutcome.RENEWAL_PENDING

    # Seller flag and subscription lookups agree while the charge is outstanding
    assert _reload(db_session, SellerProfile, seller.id).is_premium is True
    current = service.get_active_subscription_for_seller(seller.id, now=waiting)
    assert current is not None and current.id == sub.id
    assert assignments.has_premium_status(seller.id, now=waiting) is True
    with pytest.raises(AlreadyActive):
        service.initiate_purchase(seller.id, "premium", now=waiting)

    db_session.expire_all()
    renewal = db_session.query(Payment).filter_by(purpose=PaymentPurpose.RENEWAL).one()
    service.confirm_payment(renewal.id, False, error_message="Card expired", now=waiting)

    assert _reload(db_session, SellerProfile, seller.id).is_premium is False
    assert service.get_active_subscription_for_seller(seller.id, now=waiting) is None
    assert assignments.has_premium_status(seller.id, now=waiting) is False


def test_early_renewal_extends_end_date(service, seller, now):
    sub = _purchase(service, seller, now)

    outcome = service.process_renewal(sub.id, now=now + timedelta(days=10))

    assert outcome == ExpiryOutcome.RENEWED
    renewed = service.get_subscription(sub.id)
    assert renewed.start_date == sub.start_date
    assert renewed.end_date == add_months(sub.end_date, 1)


def test_process_renewal_requires_active_subscription(service, seller, now):
    sub = _purchase(service, seller, now)
    service.cancel_with_refund(sub.id, cancel_time=now + timedelta(hours=1))

    with pytest.raises(SubscriptionNotActive):
        service.process_renewal(sub.id, now=now + timedelta(hours=2))


# ============================================
# Transactions
# ============================================

def test_version_conflicts_exhaust_into_concurrency_conflict(service):
    attempts = []

    def _always_stale(db, pending):
        attempts.append(1)
        raise StaleDataError("row changed")

    with pytest.raises(ConcurrencyConflict):
        service.run_transaction("test", _always_stale)
    assert len(attempts) == service.retry_attempts


def test_transaction_is_replayed_after_version_conflict(service, notifier, seller):
    attempts = []

    def _stale_once(db, pending):
        attempts.append(1)
        pending.append((seller.id, "probe", {}))
        if len(attempts) == 1:
            raise StaleDataError("row changed")
        return "done"

    assert service.run_transaction("test", _stale_once) == "done"
    assert len(attempts) == 2
    # Only the committed attempt's notices go out
    assert _kinds(notifier, seller.id) == ["probe"]


def test_confirmation_racing_a_committed_confirmation(
    service, service_with_sessions, stale_session, notifier, db_session, seller, now
):
    handle = service.initiate_purchase(seller.id, "premium", now=now)
    # Loaded before the first confirmation commits, so it still sees a pending payment
    stale_session.get(Payment, handle.payment_id)

    first = service.confirm_payment(handle.payment_id, True, provider_txn_id="txn_first", now=now)
    racer = service_with_sessions(stale_session)
    second = racer.confirm_payment(handle.payment_id, True, provider_txn_id="txn_second", now=now)

    assert first.already_processed is False
    assert second.already_processed is True
    assert second.status == PaymentStatus.COMPLETED
    assert second.subscription_id == first.subscription_id

    db_session.expire_all()
    subs = db_session.query(Subscription).filter_by(seller_id=seller.id).all()
    assert len(subs) == 1
    assert subs[0].end_date == add_months(now, 1)
    assert _reload(db_session, Payment, handle.payment_id).provider_transaction_id == "txn_first"
    assert _kinds(notifier, seller.id) == [notices.PAYMENT_SUCCESSFUL]


def test_admin_grant_racing_a_purchase_keeps_one_active_subscription(
    service, service_with_sessions, stale_session, db_session, seller, now, caplog
):
    # Seller row as it was before the purchase bumped its version
    stale_session.get(SellerProfile, seller.id)
    handle = service.initiate_purchase(seller.id, "premium", now=now)

    racer = service_with_sessions(stale_session)
    with caplog.at_level(logging.WARNING):
        grant = PremiumAssignmentService(racer).assign_premium_status(
            seller.id, "admin-1", now=now + timedelta(minutes=1)
        )
    assert "Version conflict in assign_premium_status" in caplog.text

    # The conflicting attempt was rolled back, only the replay's grant exists
    db_session.expire_all()
    assert db_session.query(Subscription).filter_by(seller_id=seller.id).count() == 1

    service.confirm_payment(handle.payment_id, True, provider_txn_id="txn_race", now=now + timedelta(minutes=2))

    db_session.expire_all()
    active = db_session.query(Subscription).filter_by(seller_id=seller.id, is_active=True).all()
    assert len(active) == 1
    assert active[0].plan_id == "premium"
    assert active[0].id != grant.id
    assert _reload(db_session, SellerProfile, seller.id).is_premium is True
