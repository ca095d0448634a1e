"""
Stripe payment provider and webhook verification.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict

import stripe

from app.core.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET
from app.core.logging_config import sanitize_log_data
from app.services.payment_provider import (
    PaymentProvider,
    CaptureResult,
    RefundResult,
    StatusResult,
    ProviderPaymentStatus,
)
from app.services.premium_errors import ProviderUnavailable

logger = logging.getLogger(__name__)

# Initialize Stripe client
if STRIPE_SECRET_KEY:
    stripe.api_key = STRIPE_SECRET_KEY
else:
    logger.warning("STRIPE_SECRET_KEY not configured - using mock payment provider")

_PENDING_INTENT_STATUSES = {"processing", "requires_action", "requires_confirmation", "requires_capture"}


def to_minor_units(amount: Decimal) -> int:
    """Decimal dollars to integer cents as Stripe expects."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def map_intent_status(intent) -> StatusResult:
    """Translate a PaymentIntent into a provider-neutral StatusResult."""
    intent_status = intent["status"]
    if intent_status == "succeeded":
        return StatusResult(status=ProviderPaymentStatus.SUCCEEDED, provider_transaction_id=intent["id"])
    if intent_status in _PENDING_INTENT_STATUSES:
        return StatusResult(status=ProviderPaymentStatus.PENDING, provider_transaction_id=intent["id"])

    # canceled, or requires_payment_method after a failed attempt
    last_error = intent.get("last_payment_error") or {}
    return StatusResult(
        status=ProviderPaymentStatus.FAILED,
        provider_transaction_id=intent["id"],
        error_message=last_error.get("message") or f"PaymentIntent {intent_status}",
    )


class StripePaymentProvider(PaymentProvider):
    """PaymentIntents and Refunds through the Stripe API."""

    name = "stripe"

    def capture(
        self,
        amount: Decimal,
        currency: str,
        payment_method: Optional[str],
        idempotency_key: str,
        metadata: Optional[Dict[str, str]] = None
    ) -> CaptureResult:
        intent_metadata = dict(metadata or {})
        intent_metadata.setdefault("payment_id", idempotency_key)

        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency.lower(),
                payment_method=payment_method,
                confirm=True,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                metadata=intent_metadata,
                idempotency_key=idempotency_key,
            )
        except stripe.error.CardError as e:
            logger.warning(f"Stripe card declined: payment_id={idempotency_key}, code={e.code}")
            intent_id = None
            if e.error and getattr(e.error, "payment_intent", None):
                intent_id = e.error.payment_intent.get("id")
            return CaptureResult(success=False, provider_transaction_id=intent_id, error_message=e.user_message)

        logger.info(f"Stripe PaymentIntent created: payment_id={idempotency_key}, intent={intent.id}, status={intent.status}")
        if intent.status == "succeeded":
            return CaptureResult(success=True, provider_transaction_id=intent.id)
        if intent.status in _PENDING_INTENT_STATUSES:
            # Outcome not known yet; webhook or reconciliation settles it
            raise ProviderUnavailable("Payment is still being processed")
        return CaptureResult(
            success=False,
            provider_transaction_id=intent.id,
            error_message=f"PaymentIntent {intent.status}",
        )

    def refund(self, provider_transaction_id: str, amount: Decimal, idempotency_key: str) -> RefundResult:
        try:
            refund = stripe.Refund.create(
                payment_intent=provider_transaction_id,
                amount=to_minor_units(amount),
                idempotency_key=idempotency_key,
            )
        except (stripe.error.CardError, stripe.error.InvalidRequestError) as e:
            logger.error(f"Stripe refund rejected: intent={provider_transaction_id}, error={e}")
            return RefundResult(success=False, error_message=str(e))

        logger.info(f"Stripe refund created: intent={provider_transaction_id}, refund={refund.id}, status={refund.status}")
        if refund.status in ("succeeded", "pending"):
            return RefundResult(success=True, provider_refund_id=refund.id)
        return RefundResult(success=False, provider_refund_id=refund.id, error_message=f"Refund {refund.status}")

    def query_status(self, payment_id: str, provider_transaction_id: Optional[str] = None) -> StatusResult:
        if provider_transaction_id:
            intent = stripe.PaymentIntent.retrieve(provider_transaction_id)
            return map_intent_status(intent)

        result = stripe.PaymentIntent.search(query=f"metadata['payment_id']:'{payment_id}'", limit=1)
        if not result.data:
            return StatusResult(status=ProviderPaymentStatus.NOT_FOUND)
        return map_intent_status(result.data[0])


def verify_webhook(request_body: bytes, signature: str) -> dict:
    """
    Verify and parse Stripe webhook event.

    Args:
        request_body: Raw request body bytes
        signature: Stripe-Signature header value

    Returns:
        Parsed event dictionary

    Raises:
        ValueError: If webhook verification fails
    """
    if not STRIPE_WEBHOOK_SECRET:
        raise ValueError("STRIPE_WEBHOOK_SECRET not configured")

    try:
        event = stripe.Webhook.construct_event(
            request_body, signature, STRIPE_WEBHOOK_SECRET
        )
        logger.info(f"Verified webhook event: {event['type']}, id={event['id']}")
        logger.debug(f"Webhook payload: {sanitize_log_data(dict(event['data']['object']))}")
        return event
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        raise ValueError(f"Invalid webhook payload: {e}")
    except stripe.error.SignatureVerificationError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise ValueError(f"Invalid signature: {e}")
