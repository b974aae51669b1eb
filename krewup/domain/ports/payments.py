from __future__ import annotations

from typing import Protocol

from ..models import SubscriptionSnapshot


class SubscriptionFetcher(Protocol):
    """Reads a subscription from the payment provider."""

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionSnapshot:
        ...
