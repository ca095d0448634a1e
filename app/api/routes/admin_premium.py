"""
Admin premium management endpoints.
"""
import logging
from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from app.core.auth_dependency import Principal, require_admin
from app.core.dependencies import (
    get_assignment_service,
    get_subscription_service,
    get_reconciliation_worker,
)
from app.core.http_errors import to_http_exception
from app.api.routes.premium import subscription_to_response, status_to_response
from app.schemas.admin_premium import (
    as_naive_utc,
    AssignPremiumRequest,
    RemovePremiumRequest,
    UpdateExpirationRequest,
    PremiumSellerListResponse,
    RenewalResponse,
    PremiumAnalyticsResponse,
    SweepSummaryResponse,
)
from app.schemas.premium import (
    SubscriptionResponse,
    SubscriptionHistoryResponse,
    PremiumStatusResponse,
    RefundQuoteResponse,
    CancellationResponse,
)
from app.services.payment_reconciliation import PaymentReconciliationWorker
from app.services.premium_assignment_service import PremiumAssignmentService
from app.services.premium_errors import PremiumError
from app.services.premium_subscription_service import PremiumSubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/premium", tags=["Admin Premium"])


@router.post("/sellers/{seller_id}/assign", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
def assign_premium(
    seller_id: str,
    body: AssignPremiumRequest,
    admin: Principal = Depends(require_admin),
    assignments: PremiumAssignmentService = Depends(get_assignment_service),
):
    """Grant complimentary premium to a seller."""
    try:
        snapshot = assignments.assign_premium_status(seller_id, admin.user_id, body.expiration_date, body.reason)
    except PremiumError as e:
        raise to_http_exception(e)
    return subscription_to_response(snapshot)


@router.post("/sellers/{seller_id}/remove", response_model=SubscriptionResponse)
def remove_premium(
    seller_id: str,
    body: RemovePremiumRequest,
    admin: Principal = Depends(require_admin),
    assignments: PremiumAssignmentService = Depends(get_assignment_service),
):
    """Revoke premium immediately without a refund."""
    try:
        snapshot = assignments.remove_premium_status(seller_id, admin.user_id, body.reason)
    except PremiumError as e:
        raise to_http_exception(e)
    return subscription_to_response(snapshot)


@router.put("/sellers/{seller_id}/expiration", response_model=SubscriptionResponse)
def update_expiration(
    seller_id: str,
    body: UpdateExpirationRequest,
    admin: Principal = Depends(require_admin),
    assignments: PremiumAssignmentService = Depends(get_assignment_service),
):
    try:
        snapshot = assignments.update_premium_expiration(seller_id, admin.user_id, body.expiration_date)
    except PremiumError as e:
        raise to_http_exception(e)
    return subscription_to_response(snapshot)


@router.get("/sellers", response_model=PremiumSellerListResponse)
def list_premium_sellers(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    admin: Principal = Depends(require_admin),
    assignments: PremiumAssignmentService = Depends(get_assignment_service),
):
    items, total = assignments.list_premium_sellers(page, page_size)
    return PremiumSellerListResponse(
        items=[status_to_response(item) for item in items],
        page=page,
        page_size=page_size,
        total=total,
    )


@router.get("/sellers/{seller_id}", response_model=PremiumStatusResponse)
def get_seller_premium_status(
    seller_id: str,
    admin: Principal = Depends(require_admin),
    assignments: PremiumAssignmentService = Depends(get_assignment_service),
):
    try:
        return status_to_response(assignments.get_premium_status(seller_id))
    except PremiumError as e:
        raise to_http_exception(e)


@router.get("/sellers/{seller_id}/subscriptions", response_model=SubscriptionHistoryResponse)
def get_seller_subscription_history(
    seller_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    admin: Principal = Depends(require_admin),
    assignments: PremiumAssignmentService = Depends(get_assignment_service),
):
    items, total = assignments.get_subscription_history(seller_id, page, page_size)
    return SubscriptionHistoryResponse(
        items=[subscription_to_response(item) for item in items],
        page=page,
        page_size=page_size,
        total=total,
    )


@router.get("/subscriptions/{subscription_id}", response_model=SubscriptionResponse)
def get_subscription(
    subscription_id: str,
    admin: Principal = Depends(require_admin),
    service: PremiumSubscriptionService = Depends(get_subscription_service),
):
    try:
        return subscription_to_response(service.get_subscription(subscription_id))
    except PremiumError as e:
        raise to_http_exception(e)


@router.get("/subscriptions/{subscription_id}/refund-quote", response_model=RefundQuoteResponse)
def get_refund_quote(
    subscription_id: str,
    admin: Principal = Depends(require_admin),
    service: PremiumSubscriptionService = Depends(get_subscription_service),
):
    try:
        return RefundQuoteResponse(**asdict(service.get_refund_eligibility(subscription_id)))
    except PremiumError as e:
        raise to_http_exception(e)


@router.post("/subscriptions/{subscription_id}/cancel", response_model=CancellationResponse)
def cancel_subscription(
    subscription_id: str,
    admin: Principal = Depends(require_admin),
    service: PremiumSubscriptionService = Depends(get_subscription_service),
):
    """Cancel on the seller's behalf with the standard refund policy."""
    try:
        result = service.cancel_with_refund(subscription_id)
    except PremiumError as e:
        raise to_http_exception(e)

    logger.info(f"Admin cancellation: subscription_id={subscription_id}, admin_id={admin.user_id}")
    return CancellationResponse(
        subscription_id=result.subscription_id,
        status=result.status.value,
        refund_percentage=result.refund_percentage,
        refund_amount=result.refund_amount,
        end_date=result.end_date,
    )


@router.post("/subscriptions/{subscription_id}/renew", response_model=RenewalResponse)
def renew_subscription(
    subscription_id: str,
    admin: Principal = Depends(require_admin),
    assignments: PremiumAssignmentService = Depends(get_assignment_service),
):
    """Charge the next billing period now."""
    try:
        outcome = assignments.renew_subscription(subscription_id, admin.user_id)
    except PremiumError as e:
        raise to_http_exception(e)
    return RenewalResponse(subscription_id=subscription_id, outcome=outcome.value)


@router.get("/analytics", response_model=PremiumAnalyticsResponse)
def get_analytics(
    start: datetime = Query(..., description="Period start (UTC)"),
    end: datetime = Query(..., description="Period end (UTC, exclusive)"),
    admin: Principal = Depends(require_admin),
    assignments: PremiumAssignmentService = Depends(get_assignment_service),
):
    try:
        result = assignments.get_premium_analytics(as_naive_utc(start), as_naive_utc(end))
    except PremiumError as e:
        raise to_http_exception(e)
    return PremiumAnalyticsResponse(**asdict(result))


@router.post("/reconciliation/run", response_model=SweepSummaryResponse)
def run_reconciliation(
    admin: Principal = Depends(require_admin),
    worker: PaymentReconciliationWorker = Depends(get_reconciliation_worker),
):
    """Run one reconciliation sweep synchronously."""
    logger.info(f"Manual reconciliation sweep requested by admin_id={admin.user_id}")
    summary = worker.run_once()
    return SweepSummaryResponse(**summary.as_dict())
