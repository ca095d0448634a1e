"""
Database models module.

Imports every model so it is registered on Base.metadata before table
creation and Alembic autogenerate.
"""
from app.db.models.seller_profile import SellerProfile
from app.db.models.subscription import Subscription, SubscriptionStatus
from app.db.models.payment import Payment, PaymentStatus, PaymentPurpose
from app.db.models.certification import Certification, CertificationStatus
from app.db.models.category_configuration import CategoryConfiguration
from app.db.models.notification import Notification
from app.db.models.audit_log import PremiumAuditLog

__all__ = [
    "SellerProfile",
    "Subscription",
    "SubscriptionStatus",
    "Payment",
    "PaymentStatus",
    "PaymentPurpose",
    "Certification",
    "CertificationStatus",
    "CategoryConfiguration",
    "Notification",
    "PremiumAuditLog",
]
