"""
Premium plan catalogue.

Single source of truth for the premium tiers a seller can buy.
billing_period_months of None means a one-off, non-expiring purchase.
"""
import calendar
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from app.core.config import DEFAULT_CURRENCY


@dataclass(frozen=True)
class PremiumPlan:
    """A purchasable premium tier."""
    plan_id: str
    name: str
    monthly_fee: Decimal
    currency: str = DEFAULT_CURRENCY
    billing_period_months: Optional[int] = 1
    features: tuple = ()

    @property
    def is_periodic(self) -> bool:
        return self.billing_period_months is not None


PREMIUM_PLANS: Dict[str, PremiumPlan] = {
    "basic": PremiumPlan(
        plan_id="basic",
        name="Basic Premium",
        monthly_fee=Decimal("29.99"),
        features=("priority_listing", "verified_badge_eligible"),
    ),
    "premium": PremiumPlan(
        plan_id="premium",
        name="Premium Plus",
        monthly_fee=Decimal("59.99"),
        features=("priority_listing", "verified_badge_eligible", "rfq_highlight", "analytics"),
    ),
}

# Admin-granted premium is not sold, so it is not listed for purchase.
COMPLIMENTARY_PLAN = PremiumPlan(
    plan_id="complimentary",
    name="Complimentary Premium",
    monthly_fee=Decimal("0.00"),
    billing_period_months=None,
)


def add_months(start: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def period_end(plan: PremiumPlan, start: datetime) -> Optional[datetime]:
    """End of a billing cycle starting at `start`, or None for non-periodic plans."""
    if not plan.is_periodic:
        return None
    return add_months(start, plan.billing_period_months)


def get_plan(plan_id: Optional[str]) -> Optional[PremiumPlan]:
    """
    Look up a purchasable plan.

    Args:
        plan_id: Plan identifier (basic, premium)

    Returns:
        PremiumPlan or None when the id is unknown
    """
    if not plan_id:
        return None
    return PREMIUM_PLANS.get(plan_id.lower())


def list_plans() -> List[PremiumPlan]:
    """Return purchasable plans ordered by price."""
    return sorted(PREMIUM_PLANS.values(), key=lambda plan: plan.monthly_fee)
