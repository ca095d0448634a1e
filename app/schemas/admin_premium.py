"""
Pydantic schemas for admin premium endpoints.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, field_validator

from app.schemas.premium import PremiumStatusResponse


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stored timestamps are naive UTC; convert aware input to match."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class AssignPremiumRequest(BaseModel):
    """Request body for granting complimentary premium."""
    expiration_date: Optional[datetime] = Field(None, description="UTC end of the grant; omit for open-ended")
    reason: Optional[str] = Field(None, max_length=500, description="Justification recorded in the audit trail")

    @field_validator("expiration_date")
    @classmethod
    def normalize_expiration(cls, value):
        return as_naive_utc(value)

    class Config:
        json_schema_extra = {
            "example": {
                "expiration_date": "2026-12-31T23:59:59",
                "reason": "Launch partner"
            }
        }


class RemovePremiumRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500, description="Justification recorded in the audit trail")


class UpdateExpirationRequest(BaseModel):
    expiration_date: Optional[datetime] = Field(None, description="New UTC end date; null makes premium open-ended")

    @field_validator("expiration_date")
    @classmethod
    def normalize_expiration(cls, value):
        return as_naive_utc(value)


class PremiumSellerListResponse(BaseModel):
    items: List[PremiumStatusResponse]
    page: int
    page_size: int
    total: int


class RenewalResponse(BaseModel):
    subscription_id: str
    outcome: str = Field(..., description="renewed, renewal_failed or renewal_pending")


class PremiumAnalyticsResponse(BaseModel):
    """Premium figures for a period."""
    period_start: datetime
    period_end: datetime
    total_premium_sellers: int
    new_premium_sellers: int
    renewed_premium_sellers: int
    total_revenue: Decimal = Field(..., description="Completed payments net of refunds")
    total_refunded: Decimal
    average_monthly_fee: Decimal
    subscriptions_by_plan: Dict[str, int] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "period_start": "2026-09-01T00:00:00",
                "period_end": "2026-10-01T00:00:00",
                "total_premium_sellers": 42,
                "new_premium_sellers": 7,
                "renewed_premium_sellers": 30,
                "total_revenue": "2219.63",
                "total_refunded": "59.99",
                "average_monthly_fee": "44.99",
                "subscriptions_by_plan": {"basic": 20, "premium": 18, "complimentary": 4}
            }
        }


class SweepSummaryResponse(BaseModel):
    """Counts from one reconciliation sweep."""
    payments_checked: int
    payments_confirmed: int
    payments_failed: int
    payments_still_pending: int
    subscriptions_checked: int
    subscriptions_expired: int
    subscriptions_renewed: int
    renewals_failed: int
    errors: int
    stopped_early: bool
