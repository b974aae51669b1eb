"""Reconciles local subscription state from verified Stripe webhook events."""

import logging
import time
from typing import Callable, Optional, Union

from ..core.error_reporting import report_exception
from ..domain.errors import DuplicateEventError
from ..domain.models import (
    CheckoutCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    SubscriptionDeleted,
    SubscriptionUpdated,
    UnhandledEvent,
    WebhookEvent,
    WebhookOutcome,
)
from ..domain.ports.persistence import TransactionManager
from .entitlement_service import EntitlementService
from .idempotency import IdempotencyLedger
from .stripe_service import StripeService
from .subscription_service import SubscriptionService
from .webhook_audit import WebhookAuditLogger

logger = logging.getLogger(__name__)


class WebhookProcessor:
    """
    Runs one Stripe delivery through verify, dedupe, apply, mark and audit.

    Stripe calls and plan resolution happen before the transaction. The
    subscription write, history entry, entitlement flags and the ledger mark
    then commit together, so a concurrent duplicate that loses the race on
    the ledger's uniqueness constraint leaves no trace.
    """

    def __init__(
        self,
        stripe_service: StripeService,
        ledger: IdempotencyLedger,
        subscription_service: SubscriptionService,
        entitlement_service: EntitlementService,
        audit: WebhookAuditLogger,
        transactions: TransactionManager,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stripe = stripe_service
        self._ledger = ledger
        self._subscriptions = subscription_service
        self._entitlements = entitlement_service
        self._audit = audit
        self._transactions = transactions
        self._timer = timer

    def handle(self, payload: Union[bytes, str], signature: Optional[str]) -> WebhookOutcome:
        """Verify and process a raw delivery. Verification errors propagate untouched."""
        event = self._stripe.verify_event(payload, signature)
        return self.process(event)

    def process(self, event: WebhookEvent) -> WebhookOutcome:
        started = self._timer()
        self._audit.received(event.id, event.type)
        try:
            if self._ledger.has_processed(event.id):
                logger.info("Event %s already processed, skipping", event.id)
                return WebhookOutcome.DUPLICATE
            outcome = self._dispatch(event)
        except DuplicateEventError:
            logger.warning(
                "Event %s was recorded by a concurrent delivery; rolled back this one", event.id
            )
            return WebhookOutcome.DUPLICATE
        except Exception as exc:
            logger.exception("Webhook handler error for %s (%s)", event.id, event.type)
            self._audit.failed(event.id, event.type, exc, self._timer() - started)
            report_exception(exc, event_id=event.id, event_type=event.type)
            raise

        self._audit.processed(
            event.id,
            event.type,
            self._timer() - started,
            {"outcome": outcome.value},
        )
        return outcome

    def _dispatch(self, event: WebhookEvent) -> WebhookOutcome:
        match event:
            case CheckoutCompleted():
                change = self._subscriptions.prepare_checkout(event)
                with self._transactions.transaction():
                    self._subscriptions.apply_checkout_completed(change)
                    self._entitlements.grant_pro(change.user_id)
                    self._ledger.mark_processed(event.id, event.type)

            case SubscriptionUpdated():
                change = self._subscriptions.prepare_subscription_update(event)
                with self._transactions.transaction():
                    subscription = self._subscriptions.apply_subscription_updated(change)
                    if subscription.is_active():
                        self._entitlements.grant_pro(subscription.user_id)
                    self._ledger.mark_processed(event.id, event.type)

            case SubscriptionDeleted():
                with self._transactions.transaction():
                    subscription = self._subscriptions.apply_subscription_deleted(event)
                    self._entitlements.revoke_pro(subscription.user_id)
                    self._ledger.mark_processed(event.id, event.type)

            case InvoicePaymentFailed():
                # past_due is a grace period; entitlements stay as they are.
                with self._transactions.transaction():
                    self._subscriptions.apply_payment_failed(event)
                    self._ledger.mark_processed(event.id, event.type)

            case InvoicePaymentSucceeded():
                with self._transactions.transaction():
                    entry = self._subscriptions.apply_payment_succeeded(event)
                    self._ledger.mark_processed(event.id, event.type)
                if entry is None:
                    return WebhookOutcome.IGNORED

            case UnhandledEvent():
                logger.info("Unhandled event type: %s", event.type)
                with self._transactions.transaction():
                    self._ledger.mark_processed(event.id, event.type)
                return WebhookOutcome.IGNORED

            case _:
                raise TypeError(f"Unsupported webhook event variant: {type(event).__name__}")

        return WebhookOutcome.PROCESSED
