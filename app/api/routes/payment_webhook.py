"""
Payment provider webhook.

Stripe reports PaymentIntent outcomes here; they are applied through the
same idempotent confirm_payment used by the synchronous purchase path and
the reconciliation worker, so duplicate or late deliveries are harmless.
"""
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from app.core.dependencies import get_subscription_service
from app.core.http_errors import to_http_exception
from app.schemas.payment import WebhookAck
from app.services import stripe_service
from app.services.premium_errors import PremiumError, PaymentNotFound
from app.services.premium_subscription_service import PremiumSubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payment Webhook"])

HANDLED_EVENTS = {
    "payment_intent.succeeded": True,
    "payment_intent.payment_failed": False,
}


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    service: PremiumSubscriptionService = Depends(get_subscription_service),
):
    payload = await request.body()

    try:
        event = stripe_service.verify_webhook(payload, stripe_signature)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "invalid_webhook", "message": "Webhook verification failed"}
        )

    event_type = event["type"]
    if event_type not in HANDLED_EVENTS:
        logger.debug(f"Ignoring webhook event: {event_type}")
        return WebhookAck(event_type=event_type, ignored=True)

    intent = event["data"]["object"]
    payment_id = (intent.get("metadata") or {}).get("payment_id")
    if not payment_id:
        logger.warning(f"Webhook without payment_id metadata: event={event['id']}, intent={intent.get('id')}")
        return WebhookAck(event_type=event_type, ignored=True)

    success = HANDLED_EVENTS[event_type]
    error_message = None
    if not success:
        error_message = (intent.get("last_payment_error") or {}).get("message") or "Payment failed"

    try:
        outcome = await run_in_threadpool(
            service.confirm_payment,
            payment_id,
            success,
            intent.get("id"),
            error_message,
        )
    except PaymentNotFound:
        # Not one of ours; acknowledge so the provider stops retrying
        logger.warning(f"Webhook for unknown payment_id={payment_id}")
        return WebhookAck(event_type=event_type, payment_id=payment_id, ignored=True)
    except PremiumError as e:
        raise to_http_exception(e)

    logger.info(f"Webhook applied: event={event_type}, payment_id={payment_id}, status={outcome.status.value}")
    return WebhookAck(event_type=event_type, payment_id=payment_id, status=outcome.status.value)
