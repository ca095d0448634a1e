"""
Pydantic schemas for seller premium endpoints.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field


class PlanResponse(BaseModel):
    """A purchasable premium plan."""
    plan_id: str = Field(..., description="Plan identifier (basic, premium)")
    name: str = Field(..., description="Display name")
    monthly_fee: Decimal = Field(..., description="Price per billing period")
    currency: str = Field(..., description="ISO currency code")
    billing_period_months: Optional[int] = Field(None, description="Months per cycle (None for one-off plans)")
    features: List[str] = Field(default_factory=list, description="Features unlocked by the plan")

    class Config:
        json_schema_extra = {
            "example": {
                "plan_id": "basic",
                "name": "Basic Premium",
                "monthly_fee": "29.99",
                "currency": "USD",
                "billing_period_months": 1,
                "features": ["priority_listing", "verified_badge_eligible"]
            }
        }


class SubscribeRequest(BaseModel):
    """Request body for POST /premium/subscribe."""
    plan_id: str = Field(..., description="Plan to buy")
    payment_method: Optional[str] = Field(
        None,
        description="Gateway payment method reference; when omitted the payment stays pending until confirmed"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "plan_id": "premium",
                "payment_method": "pm_card_visa"
            }
        }


class PurchaseResponse(BaseModel):
    """Handle for a premium purchase."""
    payment_id: str = Field(..., description="Payment id, also the provider idempotency key")
    plan_id: str
    amount: Decimal
    currency: str
    status: str = Field(..., description="pending, processing, completed or failed")
    resumed: bool = Field(False, description="True when an outstanding purchase was returned instead of a new one")
    subscription_id: Optional[str] = Field(None, description="Set once the payment completed")

    class Config:
        json_schema_extra = {
            "example": {
                "payment_id": "0b7f3c1e-4d1e-4a55-9a0b-6c1f3e2d9a10",
                "plan_id": "premium",
                "amount": "59.99",
                "currency": "USD",
                "status": "completed",
                "resumed": False,
                "subscription_id": "8f1d2a7c-0e55-4b8b-9c51-2f0f5b7e4d33"
            }
        }


class SubscriptionResponse(BaseModel):
    """A premium subscription."""
    id: str
    seller_id: str
    plan_id: str
    monthly_fee: Decimal
    currency: str
    start_date: datetime = Field(..., description="Start of the current billing cycle")
    end_date: Optional[datetime] = Field(None, description="End of the current cycle (None for open-ended)")
    is_active: bool
    is_auto_renewing: bool
    status: str = Field(..., description="active, cancelled_no_refund, cancelled_with_refund, expired or revoked")
    granted_by_admin_id: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime


class SubscriptionHistoryResponse(BaseModel):
    items: List[SubscriptionResponse]
    page: int
    page_size: int
    total: int


class PremiumStatusResponse(BaseModel):
    """Seller-level premium state."""
    seller_id: str
    company_name: str
    is_premium: bool
    premium_since: Optional[datetime] = None
    has_verified_badge: bool
    expires_at: Optional[datetime] = None
    is_auto_renewing: bool = False
    subscription: Optional[SubscriptionResponse] = None


class RefundQuoteResponse(BaseModel):
    """What cancelling right now would refund."""
    subscription_id: str
    eligible: bool
    refund_percentage: int = Field(..., description="100, 50 or 0")
    refund_amount: Decimal
    hours_elapsed: float = Field(..., description="Hours since the current billing cycle started")
    is_active: bool

    class Config:
        json_schema_extra = {
            "example": {
                "subscription_id": "8f1d2a7c-0e55-4b8b-9c51-2f0f5b7e4d33",
                "eligible": True,
                "refund_percentage": 50,
                "refund_amount": "29.99",
                "hours_elapsed": 36.5,
                "is_active": True
            }
        }


class CancellationResponse(BaseModel):
    subscription_id: str
    status: str
    refund_percentage: int
    refund_amount: Decimal
    end_date: Optional[datetime] = None


class ErrorResponse(BaseModel):
    """Error body returned in HTTPException detail."""
    error: str = Field(..., description="Stable error code")
    message: str = Field(..., description="Human-readable message")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "already_active",
                "message": "Seller already has an active premium subscription"
            }
        }
