"""
Audit trail writes for premium and payment changes.
"""
import logging
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from app.db.models.audit_log import PremiumAuditLog

logger = logging.getLogger(__name__)

PAYMENT_PROCESSED = "payment_processed"
PAYMENT_FAILED = "payment_failed"
PAYMENT_REFUNDED = "payment_refunded"
SUBSCRIPTION_CREATED = "subscription_created"
SUBSCRIPTION_RENEWED = "subscription_renewed"
SUBSCRIPTION_CANCELLED = "subscription_cancelled"
SUBSCRIPTION_EXPIRED = "subscription_expired"
AUTO_RENEWAL_CHANGED = "auto_renewal_changed"
PREMIUM_ASSIGNED = "premium_assigned"
PREMIUM_REMOVED = "premium_removed"
PREMIUM_EXPIRATION_UPDATED = "premium_expiration_updated"


def record_audit(
    db: Session,
    action: str,
    entity_type: str,
    entity_id: str,
    seller_id: Optional[str] = None,
    admin_id: Optional[str] = None,
    reason: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> PremiumAuditLog:
    """
    Add an audit entry to the caller's transaction.

    The entry commits or rolls back together with the change it describes.
    """
    entry = PremiumAuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        seller_id=seller_id,
        admin_id=admin_id,
        reason=reason,
        details=details,
    )
    db.add(entry)
    logger.info(f"Audit: action={action}, {entity_type}={entity_id}, seller_id={seller_id}, admin_id={admin_id}")
    return entry


def list_audit_entries(db: Session, seller_id: str, limit: int = 100):
    return (
        db.query(PremiumAuditLog)
        .filter(PremiumAuditLog.seller_id == seller_id)
        .order_by(PremiumAuditLog.created_at.desc())
        .limit(limit)
        .all()
    )
