"""Subscription domain model linking users to Stripe subscriptions."""

from datetime import datetime
from enum import Enum
from typing import Optional


class PlanType(str, Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


_PROVIDER_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.CANCELED,
}


def fold_provider_status(provider_status: Optional[str]) -> SubscriptionStatus:
    """Map a Stripe subscription status onto the local three-state enum.

    Unknown statuses land on ``past_due`` so that an unrecognised value can
    neither grant nor revoke access on its own.
    """
    if not provider_status:
        return SubscriptionStatus.PAST_DUE
    return _PROVIDER_STATUS_MAP.get(provider_status, SubscriptionStatus.PAST_DUE)


class Subscription:
    """
    Subscription entity representing a user's Stripe subscription.

    A user holds at most one subscription row; it is upserted by ``user_id``
    and never deleted (cancellation is a status).

    Attributes:
        id: Unique identifier
        user_id: Reference to User
        stripe_customer_id: Stripe customer ID
        stripe_subscription_id: Stripe subscription ID
        stripe_price_id: Stripe price ID
        plan_type: Resolved plan (monthly or annual)
        status: Subscription status (active, past_due, canceled)
        current_period_start: Start of current billing period
        current_period_end: End of current billing period
        cancel_at_period_end: Whether subscription will cancel at period end
        created_at: Subscription creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        id: int,
        user_id: str,
        stripe_customer_id: str,
        stripe_subscription_id: str,
        stripe_price_id: str,
        plan_type: PlanType,
        status: SubscriptionStatus,
        current_period_start: datetime,
        current_period_end: datetime,
        cancel_at_period_end: bool = False,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.id = id
        self.user_id = user_id
        self.stripe_customer_id = stripe_customer_id
        self.stripe_subscription_id = stripe_subscription_id
        self.stripe_price_id = stripe_price_id
        self.plan_type = PlanType(plan_type)
        self.status = SubscriptionStatus(status)
        self.current_period_start = current_period_start
        self.current_period_end = current_period_end
        self.cancel_at_period_end = cancel_at_period_end
        self.created_at = created_at
        self.updated_at = updated_at

    def is_active(self) -> bool:
        """Check if subscription is currently active."""
        return self.status is SubscriptionStatus.ACTIVE

    def __repr__(self) -> str:
        return (
            f"<Subscription id={self.id} user_id={self.user_id} "
            f"plan={self.plan_type.value} status={self.status.value}>"
        )
