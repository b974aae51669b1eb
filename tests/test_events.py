"""Unit tests for parsing Stripe event envelopes into typed variants."""

import pytest

from krewup.domain.models import (
    CheckoutCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    SubscriptionDeleted,
    SubscriptionSnapshot,
    SubscriptionStatus,
    SubscriptionUpdated,
    UnhandledEvent,
    fold_provider_status,
    parse_event,
)


class TestParseEvent:
    """Envelope to variant mapping."""

    def test_checkout_session_completed(self, make_checkout_event):
        event = parse_event(make_checkout_event(user_id="U1"))

        assert isinstance(event, CheckoutCompleted)
        assert event.id == "evt_1"
        assert event.type == "checkout.session.completed"
        assert event.user_id == "U1"
        assert event.customer_id == "cus_1"
        assert event.subscription_id == "sub_1"
        assert event.session_id == "cs_test_1"

    def test_checkout_without_metadata_has_no_user(self, make_checkout_event):
        event = parse_event(make_checkout_event(user_id=None))

        assert isinstance(event, CheckoutCompleted)
        assert event.user_id is None

    def test_subscription_updated_and_deleted(self, make_event, make_subscription):
        updated = parse_event(
            make_event("customer.subscription.updated", make_subscription(status="past_due"))
        )
        deleted = parse_event(make_event("customer.subscription.deleted", make_subscription()))

        assert isinstance(updated, SubscriptionUpdated)
        assert updated.subscription.status == "past_due"
        assert updated.subscription.customer_id == "cus_1"
        assert isinstance(deleted, SubscriptionDeleted)
        assert deleted.type == "customer.subscription.deleted"

    def test_invoice_events(self, make_invoice_event):
        failed = parse_event(make_invoice_event("invoice.payment_failed", amount=1999))
        succeeded = parse_event(make_invoice_event("invoice.payment_succeeded", amount=4999))

        assert isinstance(failed, InvoicePaymentFailed)
        assert failed.amount_due == 1999
        assert failed.subscription_id == "sub_1"
        assert isinstance(succeeded, InvoicePaymentSucceeded)
        assert succeeded.amount_paid == 4999
        assert succeeded.currency == "usd"
        assert succeeded.billing_reason == "subscription_cycle"

    def test_invoice_subscription_read_from_parent_details(self, make_event):
        invoice = {
            "id": "in_2",
            "customer": "cus_1",
            "amount_paid": 100,
            "parent": {"subscription_details": {"subscription": "sub_nested"}},
        }

        event = parse_event(make_event("invoice.payment_succeeded", invoice))

        assert event.subscription_id == "sub_nested"

    def test_unhandled_type_keeps_its_type_string(self, make_event):
        event = parse_event(make_event("customer.created", {"id": "cus_1"}))

        assert isinstance(event, UnhandledEvent)
        assert event.type == "customer.created"

    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "customer.created", "data": {"object": {}}},
            {"id": "evt_1", "data": {"object": {}}},
            {"id": "evt_1", "type": "customer.created"},
            {"id": "evt_1", "type": "customer.created", "data": {}},
        ],
    )
    def test_malformed_envelope_raises(self, payload):
        with pytest.raises(ValueError):
            parse_event(payload)


class TestSubscriptionSnapshot:
    """Field extraction from Stripe subscription objects."""

    def test_reads_top_level_period(self, make_subscription):
        snapshot = SubscriptionSnapshot.from_stripe(
            make_subscription(current_period_start=100, current_period_end=200)
        )

        assert snapshot.current_period_start == 100
        assert snapshot.current_period_end == 200
        assert snapshot.price_id == "price_pro_monthly"

    def test_falls_back_to_first_item_period(self, make_subscription):
        obj = make_subscription(current_period_start=None, current_period_end=None)
        obj["items"]["data"][0]["current_period_start"] = 300
        obj["items"]["data"][0]["current_period_end"] = 400

        snapshot = SubscriptionSnapshot.from_stripe(obj)

        assert snapshot.current_period_start == 300
        assert snapshot.current_period_end == 400

    def test_missing_items_leave_price_empty(self):
        snapshot = SubscriptionSnapshot.from_stripe({"id": "sub_1", "customer": "cus_1"})

        assert snapshot.price_id is None
        assert snapshot.current_period_start is None
        assert snapshot.cancel_at_period_end is False

    def test_expanded_customer_object_yields_its_id(self, make_subscription):
        obj = make_subscription()
        obj["customer"] = {"id": "cus_expanded", "object": "customer"}

        assert SubscriptionSnapshot.from_stripe(obj).customer_id == "cus_expanded"


class TestFoldProviderStatus:
    @pytest.mark.parametrize(
        "provider_status, expected",
        [
            ("active", SubscriptionStatus.ACTIVE),
            ("trialing", SubscriptionStatus.ACTIVE),
            ("past_due", SubscriptionStatus.PAST_DUE),
            ("unpaid", SubscriptionStatus.PAST_DUE),
            ("incomplete", SubscriptionStatus.PAST_DUE),
            ("canceled", SubscriptionStatus.CANCELED),
            ("incomplete_expired", SubscriptionStatus.CANCELED),
            ("paused", SubscriptionStatus.PAST_DUE),
            (None, SubscriptionStatus.PAST_DUE),
        ],
    )
    def test_mapping(self, provider_status, expected):
        assert fold_provider_status(provider_status) is expected
