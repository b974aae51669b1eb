"""Stripe payment integration service."""

from __future__ import annotations

import json
import logging
from typing import Optional, Union

import stripe

from ..core.error_reporting import report_security_event
from ..domain.errors import InvalidSignatureError, MissingSignatureError, PaymentProviderError
from ..domain.models import SubscriptionSnapshot, WebhookEvent, parse_event

logger = logging.getLogger(__name__)

DEFAULT_SIGNATURE_TOLERANCE = 300


class StripeService:
    """Verifies inbound Stripe webhooks and reads subscriptions from the Stripe API."""

    def __init__(
        self,
        secret_key: Optional[str],
        webhook_secret: str,
        signature_tolerance: int = DEFAULT_SIGNATURE_TOLERANCE,
    ) -> None:
        self._webhook_secret = webhook_secret
        self._signature_tolerance = signature_tolerance
        self._configure_stripe(secret_key)

    @staticmethod
    def _configure_stripe(secret_key: Optional[str]) -> None:
        """Configure Stripe SDK with the server-side API key."""
        if secret_key:
            stripe.api_key = secret_key.strip()
        else:
            stripe.api_key = None

    def verify_event(self, payload: Union[bytes, str], signature: Optional[str]) -> WebhookEvent:
        """
        Authenticate a webhook delivery and parse it into a typed event.

        Args:
            payload: Raw request body exactly as received
            signature: Value of the ``stripe-signature`` header

        Returns:
            The parsed event variant

        Raises:
            MissingSignatureError: If the header is absent or empty
            InvalidSignatureError: If the signature does not match the body,
                the timestamp is outside the tolerance, or the body is not an event
        """
        if not signature or not signature.strip():
            raise MissingSignatureError("No signature")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            stripe.WebhookSignature.verify_header(
                body, signature, self._webhook_secret, self._signature_tolerance
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as exc:
            logger.warning("Stripe webhook signature verification failed: %s", exc)
            report_security_event(
                "Stripe webhook signature verification failed",
                error=str(exc),
                payload_bytes=len(payload),
            )
            raise InvalidSignatureError("Invalid signature") from exc

        try:
            event = parse_event(json.loads(body))
        except ValueError as exc:
            logger.warning("Signed Stripe webhook body is not a valid event: %s", exc)
            raise InvalidSignatureError("Invalid signature") from exc

        logger.debug("Stripe signature verified for %s (%s)", event.id, event.type)
        return event

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionSnapshot:
        """Fetch a subscription and reduce it to the fields billing needs."""
        if not stripe.api_key:
            raise PaymentProviderError("Stripe not configured. Please set STRIPE_SECRET_KEY.")

        try:
            stripe_sub = stripe.Subscription.retrieve(subscription_id)
        except stripe.StripeError as exc:
            logger.error("Failed to retrieve Stripe subscription %s: %s", subscription_id, exc)
            raise PaymentProviderError(f"Failed to retrieve subscription: {exc}") from exc

        return SubscriptionSnapshot.from_stripe(stripe_sub)
