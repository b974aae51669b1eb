"""
Shared fixtures for the billing service tests.

Every test gets a fresh SQLite database under ``tmp_path`` and a fixed clock.
Stripe network calls are replaced by an in-memory subscription registry; the
webhook signature scheme itself is the real one, so signed payloads built
here go through ``stripe.WebhookSignature`` unchanged.
"""

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import pytest
import stripe

from krewup.core.app_factory import build_container
from krewup.core.config import Settings
from krewup.infrastructure.persistence.sqlite import SQLitePersistence

WEBHOOK_SECRET = "whsec_test_secret_for_unit_tests"
MONTHLY_PRICE_ID = "price_pro_monthly"
ANNUAL_PRICE_ID = "price_pro_annual"
CRON_SECRET = "cron_test_secret"
FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def billing_env(monkeypatch, tmp_path):
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_unit")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("STRIPE_PRICE_ID_PRO_MONTHLY", MONTHLY_PRICE_ID)
    monkeypatch.setenv("STRIPE_PRICE_ID_PRO_ANNUAL", ANNUAL_PRICE_ID)
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "billing.db"))
    monkeypatch.setenv("CRON_SECRET", CRON_SECRET)
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.delenv("WEBHOOK_TIMEOUT_SECONDS", raising=False)


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def persistence(settings):
    gateway = SQLitePersistence(settings.database_path)
    yield gateway
    gateway.close()


@pytest.fixture
def stripe_subscriptions(monkeypatch) -> Dict[str, Dict[str, Any]]:
    """
    In-memory stand-in for ``stripe.Subscription.retrieve``.

    Tests register subscription objects by id; retrieving an unknown id raises
    the same ``InvalidRequestError`` Stripe would.
    """
    registry: Dict[str, Dict[str, Any]] = {}

    def retrieve(subscription_id, **_params):
        if subscription_id not in registry:
            raise stripe.InvalidRequestError(
                f"No such subscription: '{subscription_id}'", "id"
            )
        return registry[subscription_id]

    monkeypatch.setattr(stripe.Subscription, "retrieve", retrieve)
    return registry


@pytest.fixture
def container(settings, persistence, fixed_clock, stripe_subscriptions):
    return build_container(settings, persistence, clock=fixed_clock)


@pytest.fixture
def make_subscription() -> Callable[..., Dict[str, Any]]:
    def factory(
        subscription_id: str = "sub_1",
        customer_id: str = "cus_1",
        price_id: str = MONTHLY_PRICE_ID,
        status: str = "active",
        current_period_start: Optional[int] = 1_740_000_000,
        current_period_end: Optional[int] = 1_742_592_000,
        cancel_at_period_end: bool = False,
    ) -> Dict[str, Any]:
        subscription: Dict[str, Any] = {
            "id": subscription_id,
            "object": "subscription",
            "customer": customer_id,
            "status": status,
            "cancel_at_period_end": cancel_at_period_end,
            "items": {"object": "list", "data": [{"id": "si_1", "price": {"id": price_id}}]},
        }
        if current_period_start is not None:
            subscription["current_period_start"] = current_period_start
        if current_period_end is not None:
            subscription["current_period_end"] = current_period_end
        return subscription

    return factory


@pytest.fixture
def make_event() -> Callable[..., Dict[str, Any]]:
    def factory(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1") -> Dict[str, Any]:
        return {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "data": {"object": obj},
        }

    return factory


@pytest.fixture
def make_checkout_event(make_event) -> Callable[..., Dict[str, Any]]:
    def factory(
        user_id: Optional[str] = "U1",
        subscription_id: str = "sub_1",
        customer_id: str = "cus_1",
        event_id: str = "evt_1",
    ) -> Dict[str, Any]:
        metadata = {"user_id": user_id} if user_id else {}
        return make_event(
            "checkout.session.completed",
            {
                "id": "cs_test_1",
                "object": "checkout.session",
                "customer": customer_id,
                "subscription": subscription_id,
                "metadata": metadata,
            },
            event_id=event_id,
        )

    return factory


@pytest.fixture
def make_invoice_event(make_event) -> Callable[..., Dict[str, Any]]:
    def factory(
        event_type: str,
        customer_id: str = "cus_1",
        subscription_id: Optional[str] = "sub_1",
        amount: int = 1999,
        event_id: str = "evt_invoice",
    ) -> Dict[str, Any]:
        return make_event(
            event_type,
            {
                "id": "in_1",
                "object": "invoice",
                "customer": customer_id,
                "subscription": subscription_id,
                "amount_due": amount,
                "amount_paid": amount,
                "currency": "usd",
                "billing_reason": "subscription_cycle",
            },
            event_id=event_id,
        )

    return factory


def sign(body: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed_payload = f"{timestamp}.{body}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def signed() -> Callable[..., Tuple[bytes, str]]:
    """Serialize an event and return ``(body, stripe-signature header)``."""

    def factory(event: Dict[str, Any], **kwargs) -> Tuple[bytes, str]:
        body = json.dumps(event)
        return body.encode("utf-8"), sign(body, **kwargs)

    return factory
