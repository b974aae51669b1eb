from dataclasses import dataclass

from .clock import Clock, utc_now
from .config import Settings
from ..domain.ports.persistence import PersistenceGateway
from ..services.entitlement_service import EntitlementService
from ..services.stripe_service import StripeService
from ..services.subscription_service import SubscriptionService
from ..services.webhook_processor import WebhookProcessor


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    persistence: PersistenceGateway
    stripe_service: StripeService
    subscription_service: SubscriptionService
    entitlement_service: EntitlementService
    webhook_processor: WebhookProcessor
    clock: Clock = utc_now
