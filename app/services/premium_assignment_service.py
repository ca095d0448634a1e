"""
Admin-facing premium management.

Complimentary grants, removals, expiration overrides and status lookups.
Every state change is delegated to the lifecycle manager's primitives so
there is one implementation of deactivation and of the premium projection.
"""
import logging
from datetime import datetime
from typing import Optional, List, Tuple

from sqlalchemy.orm import Session

from app.core.premium_plans import COMPLIMENTARY_PLAN
from app.db.models.subscription import Subscription, SubscriptionStatus
from app.services import audit_service, notification_service as notices
from app.services import premium_analytics_service as analytics
from app.services.premium_analytics_service import PremiumStatus
from app.services.premium_errors import (
    AlreadyActive,
    InvalidRequest,
    SellerNotFound,
    SubscriptionNotActive,
)
from app.services.premium_subscription_service import (
    PremiumSubscriptionService,
    SubscriptionSnapshot,
    ExpiryOutcome,
    recompute_premium_projection,
)
from app.services.seller_profile_store import get_seller_profile
from app.services.subscription_store import (
    create_subscription,
    update_subscription,
    get_open_subscription_for_seller,
    get_active_subscription_for_seller,
)

logger = logging.getLogger(__name__)


class PremiumAssignmentService:
    """
    Facade over the lifecycle manager for administrators.

    Args:
        lifecycle: PremiumSubscriptionService
    """

    def __init__(self, lifecycle: PremiumSubscriptionService):
        self.lifecycle = lifecycle

    def _require_seller(self, db: Session, seller_id: str):
        seller = get_seller_profile(db, seller_id)
        if seller is None:
            raise SellerNotFound()
        return seller

    def assign_premium_status(
        self,
        seller_id: str,
        admin_id: str,
        expiration_date: Optional[datetime] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> SubscriptionSnapshot:
        """
        Grant complimentary premium without a payment.

        Args:
            seller_id: Seller profile id
            admin_id: Administrator performing the grant
            expiration_date: When the grant ends; None for open-ended
            reason: Free-text justification for the audit trail
            now: Decision time

        Raises:
            SellerNotFound, AlreadyActive, InvalidRequest
        """
        now = now or datetime.utcnow()
        if expiration_date is not None and expiration_date <= now:
            raise InvalidRequest("Expiration date must be in the future")

        def _assign(db: Session, pending) -> SubscriptionSnapshot:
            self._require_seller(db, seller_id)
            if get_active_subscription_for_seller(db, seller_id, now) is not None:
                raise AlreadyActive()
            open_sub = get_open_subscription_for_seller(db, seller_id)
            if open_sub is not None:
                # Lapsed but not yet swept; it ended at its own end_date
                self.lifecycle.close_subscription(
                    db, open_sub, SubscriptionStatus.EXPIRED, now,
                    end_date=open_sub.end_date, reason="Superseded by admin grant",
                )

            sub = create_subscription(db, Subscription(
                seller_id=seller_id,
                plan_id=COMPLIMENTARY_PLAN.plan_id,
                monthly_fee=COMPLIMENTARY_PLAN.monthly_fee,
                currency=COMPLIMENTARY_PLAN.currency,
                start_date=now,
                end_date=expiration_date,
                is_active=True,
                is_auto_renewing=False,
                status=SubscriptionStatus.ACTIVE,
                granted_by_admin_id=admin_id,
                created_at=now,
                updated_at=now,
            ))
            recompute_premium_projection(db, seller_id, now)
            audit_service.record_audit(
                db, audit_service.PREMIUM_ASSIGNED, "subscription", sub.id,
                seller_id=seller_id, admin_id=admin_id, reason=reason,
                details={"expiration_date": expiration_date.isoformat() if expiration_date else None},
            )
            pending.append((seller_id, notices.PREMIUM_GRANTED, {
                "subscription_id": sub.id,
                "end_date": expiration_date.isoformat() if expiration_date else None,
            }))
            return SubscriptionSnapshot.from_model(sub)

        snapshot = self.lifecycle.run_transaction("assign_premium_status", _assign)
        logger.info(f"Premium assigned: seller_id={seller_id}, admin_id={admin_id}, expires={expiration_date}")
        return snapshot

    def remove_premium_status(
        self,
        seller_id: str,
        admin_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> SubscriptionSnapshot:
        """
        Revoke a seller's premium immediately, without a refund.

        Raises:
            SellerNotFound, SubscriptionNotActive
        """
        now = now or datetime.utcnow()

        def _remove(db: Session, pending) -> SubscriptionSnapshot:
            self._require_seller(db, seller_id)
            sub = get_open_subscription_for_seller(db, seller_id)
            if sub is None:
                raise SubscriptionNotActive("Seller has no active premium subscription")

            self.lifecycle.close_subscription(db, sub, SubscriptionStatus.REVOKED, now, reason=reason or "Removed by administrator")
            audit_service.record_audit(
                db, audit_service.PREMIUM_REMOVED, "subscription", sub.id,
                seller_id=seller_id, admin_id=admin_id, reason=reason,
            )
            pending.append((seller_id, notices.PREMIUM_REVOKED, {"subscription_id": sub.id}))
            return SubscriptionSnapshot.from_model(sub)

        snapshot = self.lifecycle.run_transaction("remove_premium_status", _remove)
        logger.info(f"Premium removed: seller_id={seller_id}, admin_id={admin_id}, reason={reason}")
        return snapshot

    def update_premium_expiration(
        self,
        seller_id: str,
        admin_id: str,
        expiration_date: Optional[datetime],
        now: Optional[datetime] = None
    ) -> SubscriptionSnapshot:
        """
        Override the end date of the seller's active subscription.

        Args:
            expiration_date: New end date in the future, or None for open-ended
        """
        now = now or datetime.utcnow()
        if expiration_date is not None and expiration_date <= now:
            raise InvalidRequest("Expiration date must be in the future")

        def _update(db: Session, pending) -> SubscriptionSnapshot:
            self._require_seller(db, seller_id)
            sub = get_active_subscription_for_seller(db, seller_id, now)
            if sub is None:
                raise SubscriptionNotActive("Seller has no active premium subscription")

            previous = sub.end_date
            sub.end_date = expiration_date
            if expiration_date is None:
                sub.is_auto_renewing = False
            update_subscription(db, sub, now)
            recompute_premium_projection(db, seller_id, now)
            audit_service.record_audit(
                db, audit_service.PREMIUM_EXPIRATION_UPDATED, "subscription", sub.id,
                seller_id=seller_id, admin_id=admin_id,
                details={
                    "previous": previous.isoformat() if previous else None,
                    "new": expiration_date.isoformat() if expiration_date else None,
                },
            )
            pending.append((seller_id, notices.PREMIUM_EXPIRATION_UPDATED, {
                "subscription_id": sub.id,
                "end_date": expiration_date.isoformat() if expiration_date else None,
            }))
            return SubscriptionSnapshot.from_model(sub)

        return self.lifecycle.run_transaction("update_premium_expiration", _update)

    def has_premium_status(self, seller_id: str, now: Optional[datetime] = None) -> bool:
        return self.lifecycle.get_active_subscription_for_seller(seller_id, now) is not None

    def get_premium_status(self, seller_id: str, now: Optional[datetime] = None) -> PremiumStatus:
        now = now or datetime.utcnow()

        def _status(db: Session) -> PremiumStatus:
            seller = self._require_seller(db, seller_id)
            sub = get_active_subscription_for_seller(db, seller_id, now)
            return PremiumStatus(
                seller_id=seller.id,
                company_name=seller.company_name,
                is_premium=seller.is_premium,
                premium_since=seller.premium_since,
                has_verified_badge=seller.has_verified_badge,
                subscription=SubscriptionSnapshot.from_model(sub) if sub is not None else None,
            )

        return self.lifecycle.read(_status)

    def renew_subscription(self, subscription_id: str, admin_id: str, now: Optional[datetime] = None) -> ExpiryOutcome:
        outcome = self.lifecycle.process_renewal(subscription_id, now)
        logger.info(f"Admin renewal: subscription_id={subscription_id}, admin_id={admin_id}, outcome={outcome.value}")
        return outcome

    def list_premium_sellers(self, page: int = 1, page_size: int = 20, now: Optional[datetime] = None) -> Tuple[List[PremiumStatus], int]:
        now = now or datetime.utcnow()
        return self.lifecycle.read(lambda db: analytics.list_premium_sellers(db, page, page_size, now))

    def get_subscription_history(self, seller_id: str, page: int = 1, page_size: int = 20):
        return self.lifecycle.list_subscriptions_for_seller(seller_id, page, page_size)

    def get_premium_analytics(self, start: datetime, end: datetime) -> "analytics.PremiumAnalytics":
        if end <= start:
            raise InvalidRequest("Analytics period end must be after its start")
        return self.lifecycle.read(lambda db: analytics.get_premium_analytics(db, start, end))
