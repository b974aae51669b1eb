"""Error taxonomy for webhook processing.

Client verification errors are answered with 400 and never retried. Lookup and
persistence errors are answered with 500 so Stripe retries the delivery; the
idempotency ledger makes the retry safe.
"""

from typing import Optional


class BillingError(Exception):
    """Base class for billing failures."""


class ClientVerificationError(BillingError):
    """The inbound request could not be authenticated."""

    public_message = "Invalid signature"


class MissingSignatureError(ClientVerificationError):
    public_message = "No signature"


class InvalidSignatureError(ClientVerificationError):
    public_message = "Invalid signature"


class DomainLookupError(BillingError):
    """The event references data the service cannot resolve."""

    public_message = "Webhook handler failed"


class UnknownPriceError(DomainLookupError):
    public_message = "Unknown price ID"

    def __init__(self, price_id: Optional[str]):
        self.price_id = price_id
        super().__init__(f"Unknown price ID: {price_id}")


class SubscriptionNotFoundError(DomainLookupError):
    public_message = "Subscription not found"

    def __init__(self, customer_id: Optional[str]):
        self.customer_id = customer_id
        super().__init__(f"No subscription found for customer: {customer_id}")


class MissingUserIdError(DomainLookupError):
    public_message = "Missing user_id in session metadata"


class PaymentProviderError(BillingError):
    """A call to the Stripe API failed; Stripe will redeliver the event."""

    public_message = "Payment provider request failed"


class PersistenceError(BillingError):
    """A primary database write or read failed."""

    public_message = "Database operation failed"


class DuplicateEventError(BillingError):
    """The event id was already recorded by a concurrent delivery."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event {event_id} already processed")
