"""
Unit tests for the cancellation refund policy.
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from app.core.refund_policy import compute_refund, refund_percentage


START = datetime(2026, 3, 1, 9, 0, 0)


@pytest.mark.parametrize("elapsed,expected", [
    (timedelta(0), 100),
    (timedelta(hours=12), 100),
    (timedelta(hours=24), 100),
    (timedelta(hours=24, seconds=1), 50),
    (timedelta(days=2), 50),
    (timedelta(hours=72), 50),
    (timedelta(hours=72, seconds=1), 0),
    (timedelta(days=5), 0),
    (timedelta(days=40), 0),
])
def test_refund_percentage_tiers(elapsed, expected):
    """Boundaries belong to the more generous tier."""
    assert refund_percentage(elapsed) == expected


def test_full_refund_within_first_day():
    quote = compute_refund(START, START + timedelta(hours=12), Decimal("100.00"))
    assert quote.percentage == 100
    assert quote.amount == Decimal("100.00")
    assert quote.is_refundable


def test_half_refund_on_day_two():
    quote = compute_refund(START, START + timedelta(days=2), Decimal("100.00"))
    assert quote.percentage == 50
    assert quote.amount == Decimal("50.00")


def test_no_refund_after_three_days():
    quote = compute_refund(START, START + timedelta(days=5), Decimal("100.00"))
    assert quote.percentage == 0
    assert quote.amount == Decimal("0.00")
    assert not quote.is_refundable


def test_half_refund_rounds_half_up_to_cents():
    quote = compute_refund(START, START + timedelta(hours=30), Decimal("59.99"))
    assert quote.amount == Decimal("30.00")

    quote = compute_refund(START, START + timedelta(hours=30), Decimal("29.99"))
    assert quote.amount == Decimal("15.00")


def test_future_start_counts_as_zero_elapsed():
    """Clock skew never produces a negative elapsed time."""
    quote = compute_refund(START + timedelta(minutes=5), START, Decimal("29.99"))
    assert quote.elapsed == timedelta(0)
    assert quote.percentage == 100
    assert quote.amount == Decimal("29.99")


def test_free_subscription_is_never_refundable():
    quote = compute_refund(START, START + timedelta(hours=1), Decimal("0.00"))
    assert quote.percentage == 100
    assert quote.amount == Decimal("0.00")
    assert not quote.is_refundable


def test_fee_accepts_floats_and_none():
    assert compute_refund(START, START, 10.5).amount == Decimal("10.50")
    assert compute_refund(START, START, None).amount == Decimal("0.00")
