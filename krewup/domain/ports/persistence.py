from __future__ import annotations

from datetime import datetime
from typing import Any, ContextManager, Dict, List, Optional, Protocol

from ..models import (
    EntitlementTier,
    HistoryEventType,
    PlanType,
    Subscription,
    SubscriptionHistoryEntry,
    SubscriptionStatus,
    User,
    UserRole,
    WebhookLogStatus,
)


class TransactionManager(Protocol):
    """Unit-of-work boundary; nested calls become savepoints."""

    def transaction(self) -> ContextManager[None]:
        ...


class SubscriptionRepository(Protocol):
    """Persistence functions related to the per-user subscription row."""

    def upsert_subscription(
        self,
        user_id: str,
        stripe_customer_id: str,
        stripe_subscription_id: str,
        stripe_price_id: str,
        plan_type: PlanType,
        status: SubscriptionStatus,
        current_period_start: datetime,
        current_period_end: datetime,
        cancel_at_period_end: bool,
    ) -> Subscription:
        ...

    def update_subscription(
        self,
        user_id: str,
        *,
        stripe_subscription_id: Optional[str] = None,
        stripe_price_id: Optional[str] = None,
        plan_type: Optional[PlanType] = None,
        status: Optional[SubscriptionStatus] = None,
        current_period_start: Optional[datetime] = None,
        current_period_end: Optional[datetime] = None,
        cancel_at_period_end: Optional[bool] = None,
    ) -> Subscription:
        ...

    def get_subscription_by_user(self, user_id: str) -> Optional[Subscription]:
        ...

    def get_subscription_by_customer(self, stripe_customer_id: str) -> Optional[Subscription]:
        ...


class SubscriptionHistoryRepository(Protocol):
    """Append-only subscription history."""

    def append_history(
        self,
        user_id: str,
        stripe_subscription_id: Optional[str],
        event_type: HistoryEventType,
        status: str,
        plan_type: Optional[PlanType] = None,
        amount: Optional[float] = None,
        currency: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SubscriptionHistoryEntry:
        ...


class ProcessedEventRepository(Protocol):
    """Ledger of Stripe event ids that were fully applied."""

    def is_event_processed(self, event_id: str) -> bool:
        ...

    def record_processed_event(self, event_id: str, event_type: str) -> None:
        """Raises DuplicateEventError when the id is already present."""
        ...


class WebhookLogRepository(Protocol):
    """Observational log of webhook processing outcomes."""

    def append_webhook_log(
        self,
        event_id: str,
        event_type: str,
        status: WebhookLogStatus,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...


class UserRepository(Protocol):
    """User entitlement projection and worker profile flags."""

    def create_user(
        self,
        user_id: str,
        email: str,
        role: UserRole,
        is_lifetime_pro: bool = False,
    ) -> User:
        ...

    def get_user(self, user_id: str) -> Optional[User]:
        ...

    def get_user_by_email(self, email: str) -> Optional[User]:
        ...

    def set_subscription_status(self, user_id: str, tier: EntitlementTier) -> None:
        ...

    def set_lifetime_pro(self, user_id: str) -> bool:
        """Flag the user as lifetime Pro. Returns False when already flagged or missing."""
        ...

    def set_worker_boost(
        self,
        user_id: str,
        is_profile_boosted: bool,
        boost_expires_at: Optional[datetime],
    ) -> None:
        ...

    def reset_expired_boosts(self, now: datetime) -> List[str]:
        ...


class PersistenceGateway(
    TransactionManager,
    SubscriptionRepository,
    SubscriptionHistoryRepository,
    ProcessedEventRepository,
    WebhookLogRepository,
    UserRepository,
    Protocol,
):
    """Composite gateway combining every persistence concern used by the app."""

    pass
