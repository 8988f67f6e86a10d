"""
Subscription persistence: the two operations the import flow needs.

The detector never writes; callers pass user-approved candidates here after
confirmation.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from subtrack.models import Subscription
from subtrack.schemas import ExistingSubscription, SubscriptionCandidate
from subtrack.services.merchant_normalizer import same_merchant
from subtrack.services.provider_catalog import ProviderCatalog

logger = logging.getLogger(__name__)


class SubscriptionStore:
    """Reads and upserts a single user's subscriptions."""

    def __init__(self, db: Session, user_id: str, catalog: Optional[ProviderCatalog] = None):
        self.db = db
        self.user_id = user_id
        self.catalog = catalog or ProviderCatalog.default()

    def _active_subscriptions(self) -> List[Subscription]:
        return self.db.query(Subscription).filter(
            Subscription.user_id == self.user_id,
            Subscription.active == True  # noqa: E712
        ).order_by(Subscription.created_at.asc()).all()

    def list_existing_subscriptions(self) -> List[ExistingSubscription]:
        """Active subscriptions in the shape used for reconciliation."""
        return [ExistingSubscription.model_validate(sub) for sub in self._active_subscriptions()]

    def _find_existing(self, candidate: SubscriptionCandidate) -> Optional[Subscription]:
        if candidate.existing_subscription_id:
            sub = self.db.query(Subscription).filter(
                Subscription.id == candidate.existing_subscription_id,
                Subscription.user_id == self.user_id,
            ).first()
            if sub:
                return sub

        # Fall back to provider id, then normalized name
        for sub in self._active_subscriptions():
            if candidate.provider_id and sub.provider_id == candidate.provider_id:
                return sub
            if same_merchant(sub.name, candidate.name, self.catalog):
                return sub
        return None

    def upsert_subscription(self, candidate: SubscriptionCandidate) -> Tuple[Subscription, bool]:
        """
        Create a subscription from a candidate, or refresh the matching one.

        Updates only touch price and next payment date; everything else on an
        existing subscription belongs to the user.

        Returns:
            (subscription, created_new)
        """
        existing = self._find_existing(candidate)

        if existing:
            existing.price = candidate.price
            existing.next_payment_date = candidate.next_payment_date
            self.db.add(existing)
            self.db.flush()
            logger.info(f"Updated subscription '{existing.name}' to {candidate.price} {candidate.currency}")
            return existing, False

        subscription = Subscription(
            user_id=self.user_id,
            name=candidate.name,
            provider_id=candidate.provider_id,
            price=candidate.price,
            currency=candidate.currency,
            interval=candidate.interval,
            start_date=candidate.start_date,
            next_payment_date=candidate.next_payment_date,
            notice_period_days=candidate.notice_period_days,
            payment_method=candidate.payment_method,
            category=candidate.category,
            active=True,
            status="active",
        )
        self.db.add(subscription)
        self.db.flush()
        logger.info(f"Created subscription '{subscription.name}' ({subscription.interval})")
        return subscription, True
