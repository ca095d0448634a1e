"""
Translate premium domain errors into HTTP responses.
"""
import logging
from fastapi import HTTPException, status

from app.services.premium_errors import (
    PremiumError,
    AlreadyActive,
    SubscriptionNotFound,
    PaymentNotFound,
    SellerNotFound,
    SubscriptionNotActive,
    InvalidPlan,
    InvalidRequest,
    ProviderUnavailable,
    RefundFailed,
    InvalidStateTransition,
    ConcurrencyConflict,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    AlreadyActive: status.HTTP_409_CONFLICT,
    InvalidStateTransition: status.HTTP_409_CONFLICT,
    ConcurrencyConflict: status.HTTP_409_CONFLICT,
    SubscriptionNotFound: status.HTTP_404_NOT_FOUND,
    PaymentNotFound: status.HTTP_404_NOT_FOUND,
    SellerNotFound: status.HTTP_404_NOT_FOUND,
    SubscriptionNotActive: status.HTTP_400_BAD_REQUEST,
    InvalidPlan: status.HTTP_400_BAD_REQUEST,
    InvalidRequest: status.HTTP_400_BAD_REQUEST,
    RefundFailed: status.HTTP_502_BAD_GATEWAY,
    ProviderUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(error: PremiumError) -> HTTPException:
    """
    Build the HTTPException for a domain error.

    Returns:
        HTTPException with detail {"error": kind, "message": safe message}
    """
    status_code = STATUS_BY_ERROR.get(type(error), status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        logger.warning(f"Premium request failed upstream: kind={error.kind}")
    return HTTPException(
        status_code=status_code,
        detail={"error": error.kind, "message": error.message},
    )
