from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .subscription import PlanType


class HistoryEventType(str, Enum):
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_SUCCEEDED = "payment_succeeded"


@dataclass(slots=True)
class SubscriptionHistoryEntry:
    """Append-only record of one applied subscription lifecycle event."""

    id: int
    user_id: str
    stripe_subscription_id: Optional[str]
    event_type: HistoryEventType
    status: str
    plan_type: Optional[PlanType]
    amount: Optional[float]
    currency: Optional[str]
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
