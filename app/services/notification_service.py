"""
Seller notifications.

Fire-and-forget: a failure to record or deliver a notification is logged
and never propagates into the billing operation that triggered it.
"""
import logging
from typing import Dict, Any, Optional, List

from sqlalchemy.orm import Session

from app.db.models.notification import Notification

logger = logging.getLogger(__name__)

# Event kinds
PAYMENT_SUCCESSFUL = "payment_successful"
PAYMENT_FAILED = "payment_failed"
SUBSCRIPTION_RENEWED = "subscription_renewed"
RENEWAL_FAILED = "renewal_failed"
SUBSCRIPTION_EXPIRED = "subscription_expired"
SUBSCRIPTION_CANCELLED = "subscription_cancelled"
AUTO_RENEWAL_CANCELLED = "auto_renewal_cancelled"
AUTO_RENEWAL_ENABLED = "auto_renewal_enabled"
PREMIUM_GRANTED = "premium_granted"
PREMIUM_REVOKED = "premium_revoked"
PREMIUM_EXPIRATION_UPDATED = "premium_expiration_updated"

_TITLES = {
    PAYMENT_SUCCESSFUL: "Payment Successful",
    PAYMENT_FAILED: "Payment Failed",
    SUBSCRIPTION_RENEWED: "Premium Renewed",
    RENEWAL_FAILED: "Premium Renewal Failed",
    SUBSCRIPTION_EXPIRED: "Premium Expired",
    SUBSCRIPTION_CANCELLED: "Premium Cancelled",
    AUTO_RENEWAL_CANCELLED: "Auto-Renewal Cancelled",
    AUTO_RENEWAL_ENABLED: "Auto-Renewal Enabled",
    PREMIUM_GRANTED: "Premium Granted",
    PREMIUM_REVOKED: "Premium Removed",
    PREMIUM_EXPIRATION_UPDATED: "Premium Expiration Updated",
}


class NotificationService:
    """Stores in-app notifications in their own short transaction."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def notify(self, seller_id: str, event_kind: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """
        Record a notification for a seller.

        Args:
            seller_id: Seller profile id
            event_kind: One of the event kind constants in this module
            payload: JSON-serialisable details
        """
        body = dict(payload or {})
        body.setdefault("title", _TITLES.get(event_kind, event_kind))

        db: Session = self.session_factory()
        try:
            db.add(Notification(seller_id=seller_id, event_kind=event_kind, payload=body))
            db.commit()
            logger.info(f"Notification sent: seller_id={seller_id}, kind={event_kind}")
        except Exception as e:
            db.rollback()
            logger.error(f"Notification failed: seller_id={seller_id}, kind={event_kind}, error={e}", exc_info=True)
        finally:
            db.close()

    def list_for_seller(self, seller_id: str, limit: int = 50) -> List[Notification]:
        db: Session = self.session_factory()
        try:
            return (
                db.query(Notification)
                .filter(Notification.seller_id == seller_id)
                .order_by(Notification.created_at.desc())
                .limit(limit)
                .all()
            )
        finally:
            db.close()
