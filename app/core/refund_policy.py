"""
Cancellation refund policy.

Refund percentage depends only on how long the current billing cycle has
been running:

    elapsed <= 24h          -> 100%
    24h < elapsed <= 72h    -> 50%
    elapsed > 72h           -> 0%

Tier boundaries belong to the more generous tier.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Tuple

# (upper bound inclusive, percentage), most generous first
REFUND_TIERS: List[Tuple[timedelta, int]] = [
    (timedelta(hours=24), 100),
    (timedelta(hours=72), 50),
]

MINOR_UNIT = Decimal("0.01")


@dataclass(frozen=True)
class RefundQuote:
    """Refund the seller would get if they cancelled at `elapsed` into the cycle."""
    percentage: int
    amount: Decimal
    elapsed: timedelta

    @property
    def is_refundable(self) -> bool:
        return self.amount > 0


def refund_percentage(elapsed: timedelta) -> int:
    """Return the refund percentage for time elapsed since the cycle started."""
    if elapsed < timedelta(0):
        elapsed = timedelta(0)
    for upper_bound, percentage in REFUND_TIERS:
        if elapsed <= upper_bound:
            return percentage
    return 0


def compute_refund(subscription_start: datetime, now: datetime, monthly_fee) -> RefundQuote:
    """
    Compute the refund owed for cancelling a subscription.

    Total function, never raises. A start time in the future (clock skew)
    counts as zero elapsed time.

    Args:
        subscription_start: Start of the current billing cycle
        now: Cancellation decision time
        monthly_fee: Fee paid for the cycle

    Returns:
        RefundQuote with percentage and amount rounded half-up to cents
    """
    elapsed = now - subscription_start
    if elapsed < timedelta(0):
        elapsed = timedelta(0)

    percentage = refund_percentage(elapsed)
    fee = Decimal(str(monthly_fee or 0))
    amount = (fee * percentage / Decimal(100)).quantize(MINOR_UNIT, rounding=ROUND_HALF_UP)

    return RefundQuote(percentage=percentage, amount=amount, elapsed=elapsed)
