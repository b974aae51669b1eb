"""Domain models for the KrewUp billing service."""

from .events import (
    CheckoutCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    SubscriptionDeleted,
    SubscriptionSnapshot,
    SubscriptionUpdated,
    UnhandledEvent,
    WebhookEvent,
    parse_event,
)
from .subscription import PlanType, Subscription, SubscriptionStatus, fold_provider_status
from .subscription_history import HistoryEventType, SubscriptionHistoryEntry
from .user import EntitlementTier, User, UserRole, WorkerProfile
from .webhook import WebhookLogEntry, WebhookLogStatus, WebhookOutcome

__all__ = [
    "CheckoutCompleted",
    "EntitlementTier",
    "HistoryEventType",
    "InvoicePaymentFailed",
    "InvoicePaymentSucceeded",
    "PlanType",
    "Subscription",
    "SubscriptionDeleted",
    "SubscriptionHistoryEntry",
    "SubscriptionSnapshot",
    "SubscriptionStatus",
    "SubscriptionUpdated",
    "UnhandledEvent",
    "User",
    "UserRole",
    "WebhookEvent",
    "WebhookLogEntry",
    "WebhookLogStatus",
    "WebhookOutcome",
    "WorkerProfile",
    "fold_provider_status",
    "parse_event",
]
