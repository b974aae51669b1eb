"""Service applying Stripe subscription lifecycle events to local state."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from ..core.clock import Clock, utc_now
from ..domain.errors import DomainLookupError, MissingUserIdError, SubscriptionNotFoundError
from ..domain.models import (
    CheckoutCompleted,
    HistoryEventType,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    PlanType,
    Subscription,
    SubscriptionDeleted,
    SubscriptionHistoryEntry,
    SubscriptionSnapshot,
    SubscriptionStatus,
    SubscriptionUpdated,
    fold_provider_status,
)
from ..domain.ports.payments import SubscriptionFetcher
from ..domain.ports.persistence import SubscriptionHistoryRepository, SubscriptionRepository
from .plan_resolver import PlanResolver

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_LENGTH = timedelta(days=30)


@dataclass(frozen=True, slots=True)
class CheckoutChange:
    """Everything needed to write a completed checkout, resolved ahead of the transaction."""

    user_id: str
    session_id: Optional[str]
    customer_id: str
    subscription: SubscriptionSnapshot
    subscription_id: str
    price_id: str
    plan_type: PlanType


@dataclass(frozen=True, slots=True)
class SubscriptionChange:
    subscription: SubscriptionSnapshot
    price_id: str
    plan_type: PlanType
    status: SubscriptionStatus


class SubscriptionService:
    """
    Subscription state writer.

    ``prepare_*`` methods talk to Stripe and resolve plans; they run before
    the database transaction so no lock is held across network calls. The
    ``apply_*`` methods only touch the repositories and are meant to run
    inside one transaction together with the idempotency mark.
    """

    def __init__(
        self,
        subscription_repository: SubscriptionRepository,
        history_repository: SubscriptionHistoryRepository,
        plan_resolver: PlanResolver,
        subscription_fetcher: SubscriptionFetcher,
        clock: Clock = utc_now,
    ):
        self.subscription_repository = subscription_repository
        self.history_repository = history_repository
        self.plan_resolver = plan_resolver
        self.subscription_fetcher = subscription_fetcher
        self._clock = clock

    # Preparation -------------------------------------------------------------
    def prepare_checkout(self, event: CheckoutCompleted) -> CheckoutChange:
        """
        Resolve the subscription and plan behind a completed checkout session.

        Raises:
            MissingUserIdError: If the session carries no ``metadata.user_id``
            DomainLookupError: If the session has no subscription or customer
            UnknownPriceError: If the subscription's price is not a configured tier
        """
        if not event.user_id:
            raise MissingUserIdError(f"No user_id in session metadata for {event.session_id}")
        if not event.subscription_id:
            raise DomainLookupError(f"Checkout session {event.session_id} has no subscription")

        snapshot = self.subscription_fetcher.retrieve_subscription(event.subscription_id)
        plan_type = self.plan_resolver.resolve(snapshot.price_id)

        customer_id = event.customer_id or snapshot.customer_id
        if not customer_id:
            raise DomainLookupError(f"Checkout session {event.session_id} has no customer")

        return CheckoutChange(
            user_id=event.user_id,
            session_id=event.session_id,
            customer_id=customer_id,
            subscription=snapshot,
            subscription_id=event.subscription_id,
            price_id=snapshot.price_id,
            plan_type=plan_type,
        )

    def prepare_subscription_update(self, event: SubscriptionUpdated) -> SubscriptionChange:
        snapshot = event.subscription
        plan_type = self.plan_resolver.resolve(snapshot.price_id)
        return SubscriptionChange(
            subscription=snapshot,
            price_id=snapshot.price_id,
            plan_type=plan_type,
            status=fold_provider_status(snapshot.status),
        )

    # Application -------------------------------------------------------------
    def apply_checkout_completed(self, change: CheckoutChange) -> Subscription:
        period_start, period_end = self._billing_period(
            change.subscription.current_period_start,
            change.subscription.current_period_end,
        )
        subscription = self.subscription_repository.upsert_subscription(
            user_id=change.user_id,
            stripe_customer_id=change.customer_id,
            stripe_subscription_id=change.subscription_id,
            stripe_price_id=change.price_id,
            plan_type=change.plan_type,
            status=SubscriptionStatus.ACTIVE,
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=change.subscription.cancel_at_period_end,
        )
        self.history_repository.append_history(
            user_id=change.user_id,
            stripe_subscription_id=change.subscription_id,
            event_type=HistoryEventType.SUBSCRIPTION_CREATED,
            status=SubscriptionStatus.ACTIVE.value,
            plan_type=change.plan_type,
            metadata={"checkout_session_id": change.session_id},
        )
        logger.info(
            "Subscription %s created for user %s (%s)",
            change.subscription_id,
            change.user_id,
            change.plan_type.value,
        )
        return subscription

    def apply_subscription_updated(self, change: SubscriptionChange) -> Subscription:
        snapshot = change.subscription
        existing = self._require_by_customer(snapshot.customer_id)
        period_start, period_end = self._billing_period(
            snapshot.current_period_start, snapshot.current_period_end
        )
        subscription = self.subscription_repository.update_subscription(
            existing.user_id,
            stripe_subscription_id=snapshot.id or existing.stripe_subscription_id,
            stripe_price_id=change.price_id,
            plan_type=change.plan_type,
            status=change.status,
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=snapshot.cancel_at_period_end,
        )
        self.history_repository.append_history(
            user_id=existing.user_id,
            stripe_subscription_id=subscription.stripe_subscription_id,
            event_type=HistoryEventType.SUBSCRIPTION_UPDATED,
            status=change.status.value,
            plan_type=change.plan_type,
            metadata={
                "cancel_at_period_end": snapshot.cancel_at_period_end,
                "stripe_status": snapshot.status,
            },
        )
        logger.info(
            "Subscription for user %s updated to %s (%s)",
            existing.user_id,
            change.status.value,
            change.plan_type.value,
        )
        return subscription

    def apply_subscription_deleted(self, event: SubscriptionDeleted) -> Subscription:
        existing = self._require_by_customer(event.subscription.customer_id)
        subscription = self.subscription_repository.update_subscription(
            existing.user_id,
            status=SubscriptionStatus.CANCELED,
            cancel_at_period_end=False,
        )
        self.history_repository.append_history(
            user_id=existing.user_id,
            stripe_subscription_id=event.subscription.id or existing.stripe_subscription_id,
            event_type=HistoryEventType.SUBSCRIPTION_CANCELED,
            status=SubscriptionStatus.CANCELED.value,
            plan_type=existing.plan_type,
            metadata={"deleted_at": self._clock().isoformat()},
        )
        logger.info("Subscription for user %s canceled", existing.user_id)
        return subscription

    def apply_payment_failed(self, event: InvoicePaymentFailed) -> Subscription:
        existing = self._require_by_customer(event.customer_id)
        subscription = self.subscription_repository.update_subscription(
            existing.user_id,
            status=SubscriptionStatus.PAST_DUE,
        )
        self.history_repository.append_history(
            user_id=existing.user_id,
            stripe_subscription_id=event.subscription_id or existing.stripe_subscription_id,
            event_type=HistoryEventType.PAYMENT_FAILED,
            status=SubscriptionStatus.PAST_DUE.value,
            plan_type=existing.plan_type,
            amount=cents_to_major(event.amount_due),
            metadata={
                "invoice_id": event.invoice_id,
                "amount_due": cents_to_major(event.amount_due),
            },
        )
        logger.warning(
            "Payment failed for user %s; subscription is past_due", existing.user_id
        )
        return subscription

    def apply_payment_succeeded(
        self, event: InvoicePaymentSucceeded
    ) -> Optional[SubscriptionHistoryEntry]:
        """Record a renewal receipt. One-off invoices and unknown customers are ignored."""
        if not event.subscription_id or not event.customer_id:
            logger.info("Invoice %s is not a subscription payment; ignoring", event.invoice_id)
            return None

        existing = self.subscription_repository.get_subscription_by_customer(event.customer_id)
        if existing is None:
            logger.info(
                "No subscription for customer %s; ignoring invoice %s",
                event.customer_id,
                event.invoice_id,
            )
            return None

        return self.history_repository.append_history(
            user_id=existing.user_id,
            stripe_subscription_id=event.subscription_id,
            event_type=HistoryEventType.PAYMENT_SUCCEEDED,
            status=SubscriptionStatus.ACTIVE.value,
            plan_type=existing.plan_type,
            amount=cents_to_major(event.amount_paid),
            currency=event.currency,
            metadata={
                "invoice_id": event.invoice_id,
                "billing_reason": event.billing_reason,
            },
        )

    # Helpers -----------------------------------------------------------------
    def _require_by_customer(self, customer_id: Optional[str]) -> Subscription:
        existing = (
            self.subscription_repository.get_subscription_by_customer(customer_id)
            if customer_id
            else None
        )
        if existing is None:
            logger.error("No subscription found for customer: %s", customer_id)
            raise SubscriptionNotFoundError(customer_id)
        return existing

    def _billing_period(
        self, start: Optional[int], end: Optional[int]
    ) -> Tuple[datetime, datetime]:
        """Convert epoch-second boundaries; missing ones default to now and now + 30 days."""
        now = self._clock()
        period_start = datetime.fromtimestamp(start, tz=timezone.utc) if start else now
        period_end = (
            datetime.fromtimestamp(end, tz=timezone.utc) if end else now + DEFAULT_PERIOD_LENGTH
        )
        return period_start, period_end


def cents_to_major(amount: int) -> float:
    return amount / 100
