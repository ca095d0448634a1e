"""
Seller premium endpoints.

Plans, purchase, current subscription, history, refund quote and
cancellation. Sellers only see their own subscriptions.
"""
import logging
from dataclasses import asdict
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.auth_dependency import Principal, require_seller
from app.core.dependencies import get_subscription_service, get_assignment_service
from app.core.http_errors import to_http_exception
from app.core.premium_plans import list_plans
from app.schemas.premium import (
    PlanResponse,
    SubscribeRequest,
    PurchaseResponse,
    SubscriptionResponse,
    SubscriptionHistoryResponse,
    PremiumStatusResponse,
    RefundQuoteResponse,
    CancellationResponse,
)
from app.services.premium_assignment_service import PremiumAssignmentService
from app.services.premium_errors import PremiumError, SubscriptionNotFound
from app.services.premium_subscription_service import PremiumSubscriptionService, SubscriptionSnapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/premium", tags=["Premium"])


def subscription_to_response(snapshot: SubscriptionSnapshot) -> SubscriptionResponse:
    data = asdict(snapshot)
    data["status"] = snapshot.status.value
    return SubscriptionResponse(**data)


def status_to_response(premium_status) -> PremiumStatusResponse:
    return PremiumStatusResponse(
        seller_id=premium_status.seller_id,
        company_name=premium_status.company_name,
        is_premium=premium_status.is_premium,
        premium_since=premium_status.premium_since,
        has_verified_badge=premium_status.has_verified_badge,
        expires_at=premium_status.expires_at,
        is_auto_renewing=premium_status.is_auto_renewing,
        subscription=subscription_to_response(premium_status.subscription) if premium_status.subscription else None,
    )


def _owned_subscription(
    service: PremiumSubscriptionService,
    subscription_id: str,
    seller: Principal
) -> SubscriptionSnapshot:
    """Load a subscription, hiding other sellers' subscriptions as not found."""
    try:
        snapshot = service.get_subscription(subscription_id)
    except PremiumError as e:
        raise to_http_exception(e)
    if snapshot.seller_id != seller.seller_id:
        raise to_http_exception(SubscriptionNotFound())
    return snapshot


@router.get("/plans", response_model=List[PlanResponse])
def get_plans():
    """List purchasable premium plans, cheapest first."""
    return [
        PlanResponse(
            plan_id=plan.plan_id,
            name=plan.name,
            monthly_fee=plan.monthly_fee,
            currency=plan.currency,
            billing_period_months=plan.billing_period_months,
            features=list(plan.features),
        )
        for plan in list_plans()
    ]


@router.post("/subscribe", response_model=PurchaseResponse, status_code=status.HTTP_201_CREATED)
def subscribe(
    body: SubscribeRequest,
    seller: Principal = Depends(require_seller),
    service: PremiumSubscriptionService = Depends(get_subscription_service),
):
    """
    Start a premium purchase.

    With a payment method the charge is attempted immediately. Calling
    again while a purchase is outstanding returns the same payment.
    """
    try:
        handle = service.initiate_purchase(seller.seller_id, body.plan_id, body.payment_method)
    except PremiumError as e:
        raise to_http_exception(e)

    logger.info(f"Subscribe request: seller_id={seller.seller_id}, plan={body.plan_id}, payment_id={handle.payment_id}")
    return PurchaseResponse(
        payment_id=handle.payment_id,
        plan_id=handle.plan_id,
        amount=handle.amount,
        currency=handle.currency,
        status=handle.status.value,
        resumed=handle.resumed,
        subscription_id=handle.subscription_id,
    )


@router.get("/status", response_model=PremiumStatusResponse)
def get_my_premium_status(
    seller: Principal = Depends(require_seller),
    assignments: PremiumAssignmentService = Depends(get_assignment_service),
):
    """Premium flags, badge and current subscription of the calling seller."""
    try:
        return status_to_response(assignments.get_premium_status(seller.seller_id))
    except PremiumError as e:
        raise to_http_exception(e)


@router.get("/subscription", response_model=SubscriptionResponse)
def get_current_subscription(
    seller: Principal = Depends(require_seller),
    service: PremiumSubscriptionService = Depends(get_subscription_service),
):
    snapshot = service.get_active_subscription_for_seller(seller.seller_id)
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "subscription_not_found", "message": "No active premium subscription"}
        )
    return subscription_to_response(snapshot)


@router.get("/subscriptions", response_model=SubscriptionHistoryResponse)
def get_subscription_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    seller: Principal = Depends(require_seller),
    service: PremiumSubscriptionService = Depends(get_subscription_service),
):
    items, total = service.list_subscriptions_for_seller(seller.seller_id, page, page_size)
    return SubscriptionHistoryResponse(
        items=[subscription_to_response(item) for item in items],
        page=page,
        page_size=page_size,
        total=total,
    )


@router.get("/subscriptions/{subscription_id}/refund-quote", response_model=RefundQuoteResponse)
def get_refund_quote(
    subscription_id: str,
    seller: Principal = Depends(require_seller),
    service: PremiumSubscriptionService = Depends(get_subscription_service),
):
    """Refund the seller would receive for cancelling right now."""
    _owned_subscription(service, subscription_id, seller)
    eligibility = service.get_refund_eligibility(subscription_id)
    return RefundQuoteResponse(**asdict(eligibility))


@router.post("/subscriptions/{subscription_id}/cancel", response_model=CancellationResponse)
def cancel_subscription(
    subscription_id: str,
    seller: Principal = Depends(require_seller),
    service: PremiumSubscriptionService = Depends(get_subscription_service),
):
    """Cancel now and refund according to how long the current cycle has run."""
    _owned_subscription(service, subscription_id, seller)
    try:
        result = service.cancel_with_refund(subscription_id)
    except PremiumError as e:
        raise to_http_exception(e)

    return CancellationResponse(
        subscription_id=result.subscription_id,
        status=result.status.value,
        refund_percentage=result.refund_percentage,
        refund_amount=result.refund_amount,
        end_date=result.end_date,
    )


@router.post("/subscriptions/{subscription_id}/auto-renewal/cancel", response_model=SubscriptionResponse)
def cancel_auto_renewal(
    subscription_id: str,
    seller: Principal = Depends(require_seller),
    service: PremiumSubscriptionService = Depends(get_subscription_service),
):
    """Stop renewing; premium stays until the current end date."""
    _owned_subscription(service, subscription_id, seller)
    try:
        return subscription_to_response(service.cancel_auto_renewal(subscription_id))
    except PremiumError as e:
        raise to_http_exception(e)


@router.post("/subscriptions/{subscription_id}/auto-renewal/enable", response_model=SubscriptionResponse)
def enable_auto_renewal(
    subscription_id: str,
    seller: Principal = Depends(require_seller),
    service: PremiumSubscriptionService = Depends(get_subscription_service),
):
    _owned_subscription(service, subscription_id, seller)
    try:
        return subscription_to_response(service.enable_auto_renewal(subscription_id))
    except PremiumError as e:
        raise to_http_exception(e)
