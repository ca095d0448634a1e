"""
Tests for subscription and payment state machines and plan arithmetic.
"""
import pytest
from datetime import datetime, timedelta

from app.core.premium_plans import add_months, period_end, get_plan, list_plans, COMPLIMENTARY_PLAN
from app.db.models.payment import Payment, PaymentStatus
from app.db.models.subscription import Subscription, SubscriptionStatus
from app.services.premium_errors import InvalidStateTransition


def test_cancelled_no_refund_can_be_reactivated():
    sub = Subscription(status=SubscriptionStatus.CANCELLED_NO_REFUND)
    sub.transition_to(SubscriptionStatus.ACTIVE)
    assert sub.status == SubscriptionStatus.ACTIVE


@pytest.mark.parametrize("closed", [
    SubscriptionStatus.CANCELLED_WITH_REFUND,
    SubscriptionStatus.EXPIRED,
    SubscriptionStatus.REVOKED,
])
def test_closed_subscriptions_are_final(closed):
    sub = Subscription(status=closed)
    assert sub.is_closed
    with pytest.raises(InvalidStateTransition):
        sub.transition_to(SubscriptionStatus.ACTIVE)


def test_is_current_respects_end_date():
    now = datetime(2026, 5, 10, 12, 0)
    sub = Subscription(is_active=True, end_date=now + timedelta(seconds=1))
    assert sub.is_current(now)

    sub.end_date = now
    assert not sub.is_current(now)

    sub.end_date = None
    assert sub.is_current(now)

    sub.is_active = False
    assert not sub.is_current(now)


def test_payment_transitions():
    payment = Payment(status=PaymentStatus.PENDING)
    payment.transition_to(PaymentStatus.PROCESSING)
    payment.transition_to(PaymentStatus.COMPLETED)
    payment.transition_to(PaymentStatus.REFUNDED)
    assert payment.is_settled

    with pytest.raises(InvalidStateTransition):
        payment.transition_to(PaymentStatus.COMPLETED)


def test_failed_payment_cannot_be_refunded():
    payment = Payment(status=PaymentStatus.FAILED)
    with pytest.raises(InvalidStateTransition):
        payment.transition_to(PaymentStatus.REFUNDED)


def test_add_months_clamps_to_month_end():
    assert add_months(datetime(2026, 1, 31, 8, 30), 1) == datetime(2026, 2, 28, 8, 30)
    assert add_months(datetime(2028, 1, 31), 1) == datetime(2028, 2, 29)
    assert add_months(datetime(2026, 11, 15), 3) == datetime(2027, 2, 15)


def test_period_end():
    start = datetime(2026, 4, 1)
    assert period_end(get_plan("basic"), start) == datetime(2026, 5, 1)
    assert period_end(COMPLIMENTARY_PLAN, start) is None


def test_plan_catalogue():
    assert get_plan("PREMIUM").plan_id == "premium"
    assert get_plan("gold") is None
    assert get_plan(None) is None
    assert [plan.plan_id for plan in list_plans()] == ["basic", "premium"]
    assert get_plan("complimentary") is None
