"""
Domain errors for premium subscriptions and payments.

Every error carries a stable `kind` (used as the API error code) and a
message that is safe to show to clients. Provider error text is logged,
never put into these messages.
"""


class PremiumError(Exception):
    """Base class for premium subscription errors."""
    kind = "premium_error"
    default_message = "Premium subscription request failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AlreadyActive(PremiumError):
    kind = "already_active"
    default_message = "Seller already has an active premium subscription"


class SubscriptionNotFound(PremiumError):
    kind = "subscription_not_found"
    default_message = "Subscription not found"


class PaymentNotFound(PremiumError):
    kind = "payment_not_found"
    default_message = "Payment not found"


class SellerNotFound(PremiumError):
    kind = "seller_not_found"
    default_message = "Seller profile not found"


class SubscriptionNotActive(PremiumError):
    kind = "subscription_not_active"
    default_message = "Subscription is not active"


class InvalidPlan(PremiumError):
    kind = "invalid_plan"
    default_message = "Unknown premium plan"


class InvalidRequest(PremiumError):
    kind = "invalid_request"
    default_message = "Invalid request"


class ProviderUnavailable(PremiumError):
    """Payment provider timed out or could not be reached. Outcome unknown."""
    kind = "provider_unavailable"
    default_message = "Payment provider is temporarily unavailable, please retry"


class RefundFailed(PremiumError):
    """Provider declined the refund. Subscription stays active."""
    kind = "refund_failed"
    default_message = "Refund could not be processed"


class InvalidStateTransition(PremiumError):
    kind = "invalid_state_transition"
    default_message = "Operation not allowed in the current state"

    def __init__(self, entity: str = None, current=None, target=None):
        self.entity = entity
        self.current = current
        self.target = target
        message = None
        if entity:
            message = f"{entity} cannot move from {_label(current)} to {_label(target)}"
        super().__init__(message)


class ConcurrencyConflict(PremiumError):
    kind = "concurrency_conflict"
    default_message = "The record was modified concurrently, please retry"


def _label(value) -> str:
    return getattr(value, "value", value) or "unknown"
