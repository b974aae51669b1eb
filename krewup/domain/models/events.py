"""Typed variants for the Stripe webhook events the billing service handles.

Stripe delivers every event as the same envelope
(``{"id", "type", "data": {"object": ...}}``). ``parse_event`` turns the
envelope into one variant per handled type so the processor can ``match`` on
the class instead of comparing type strings. Every other type becomes an
``UnhandledEvent``, which is acknowledged without side effects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Mapping, Optional, Union

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
CUSTOMER_SUBSCRIPTION_UPDATED = "customer.subscription.updated"
CUSTOMER_SUBSCRIPTION_DELETED = "customer.subscription.deleted"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"


def _get(obj: Any, key: str) -> Any:
    # Works for plain dicts and for StripeObject instances alike.
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError, IndexError):
        return None


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        # Expanded objects carry their id.
        value = _get(value, "id")
    value = str(value).strip() if value is not None else ""
    return value or None


def _int_or_none(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _first_item(subscription: Any) -> Any:
    data = _get(_get(subscription, "items"), "data")
    if not data:
        return None
    return _get(data, 0)


@dataclass(frozen=True, slots=True)
class SubscriptionSnapshot:
    """The fields of a Stripe subscription object the state writer needs.

    Period boundaries stay as epoch seconds; newer Stripe API versions moved
    them from the subscription onto its items, so both places are read.
    """

    id: Optional[str]
    customer_id: Optional[str]
    status: Optional[str]
    price_id: Optional[str]
    current_period_start: Optional[int]
    current_period_end: Optional[int]
    cancel_at_period_end: bool = False

    @classmethod
    def from_stripe(cls, obj: Any) -> "SubscriptionSnapshot":
        item = _first_item(obj)
        period_start = _int_or_none(_get(obj, "current_period_start"))
        if period_start is None:
            period_start = _int_or_none(_get(item, "current_period_start"))
        period_end = _int_or_none(_get(obj, "current_period_end"))
        if period_end is None:
            period_end = _int_or_none(_get(item, "current_period_end"))
        return cls(
            id=_str_or_none(_get(obj, "id")),
            customer_id=_str_or_none(_get(obj, "customer")),
            status=_str_or_none(_get(obj, "status")),
            price_id=_str_or_none(_get(_get(item, "price"), "id")),
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=bool(_get(obj, "cancel_at_period_end") or False),
        )


@dataclass(frozen=True, slots=True)
class CheckoutCompleted:
    TYPE: ClassVar[str] = CHECKOUT_SESSION_COMPLETED

    id: str
    session_id: Optional[str]
    user_id: Optional[str]
    customer_id: Optional[str]
    subscription_id: Optional[str]

    @property
    def type(self) -> str:
        return self.TYPE


@dataclass(frozen=True, slots=True)
class SubscriptionUpdated:
    TYPE: ClassVar[str] = CUSTOMER_SUBSCRIPTION_UPDATED

    id: str
    subscription: SubscriptionSnapshot

    @property
    def type(self) -> str:
        return self.TYPE


@dataclass(frozen=True, slots=True)
class SubscriptionDeleted:
    TYPE: ClassVar[str] = CUSTOMER_SUBSCRIPTION_DELETED

    id: str
    subscription: SubscriptionSnapshot

    @property
    def type(self) -> str:
        return self.TYPE


@dataclass(frozen=True, slots=True)
class InvoicePaymentFailed:
    TYPE: ClassVar[str] = INVOICE_PAYMENT_FAILED

    id: str
    invoice_id: Optional[str]
    customer_id: Optional[str]
    subscription_id: Optional[str]
    amount_due: int

    @property
    def type(self) -> str:
        return self.TYPE


@dataclass(frozen=True, slots=True)
class InvoicePaymentSucceeded:
    TYPE: ClassVar[str] = INVOICE_PAYMENT_SUCCEEDED

    id: str
    invoice_id: Optional[str]
    customer_id: Optional[str]
    subscription_id: Optional[str]
    amount_paid: int
    currency: Optional[str]
    billing_reason: Optional[str]

    @property
    def type(self) -> str:
        return self.TYPE


@dataclass(frozen=True, slots=True)
class UnhandledEvent:
    id: str
    event_type: str

    @property
    def type(self) -> str:
        return self.event_type


WebhookEvent = Union[
    CheckoutCompleted,
    SubscriptionUpdated,
    SubscriptionDeleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    UnhandledEvent,
]


def _invoice_subscription_id(invoice: Any) -> Optional[str]:
    subscription_id = _str_or_none(_get(invoice, "subscription"))
    if subscription_id:
        return subscription_id
    # 2025+ API versions nest it under parent.subscription_details.
    details = _get(_get(invoice, "parent"), "subscription_details")
    return _str_or_none(_get(details, "subscription"))


def parse_event(payload: Mapping[str, Any]) -> WebhookEvent:
    """Build the typed variant for a decoded Stripe event envelope.

    Raises:
        ValueError: If the envelope lacks an id, a type or a data object
    """
    event_id = _str_or_none(_get(payload, "id"))
    event_type = _str_or_none(_get(payload, "type"))
    if not event_id or not event_type:
        raise ValueError("Event payload is missing id or type")
    obj = _get(_get(payload, "data"), "object")
    if obj is None:
        raise ValueError(f"Event {event_id} has no data object")

    if event_type == CHECKOUT_SESSION_COMPLETED:
        return CheckoutCompleted(
            id=event_id,
            session_id=_str_or_none(_get(obj, "id")),
            user_id=_str_or_none(_get(_get(obj, "metadata"), "user_id")),
            customer_id=_str_or_none(_get(obj, "customer")),
            subscription_id=_str_or_none(_get(obj, "subscription")),
        )
    if event_type == CUSTOMER_SUBSCRIPTION_UPDATED:
        return SubscriptionUpdated(id=event_id, subscription=SubscriptionSnapshot.from_stripe(obj))
    if event_type == CUSTOMER_SUBSCRIPTION_DELETED:
        return SubscriptionDeleted(id=event_id, subscription=SubscriptionSnapshot.from_stripe(obj))
    if event_type == INVOICE_PAYMENT_FAILED:
        return InvoicePaymentFailed(
            id=event_id,
            invoice_id=_str_or_none(_get(obj, "id")),
            customer_id=_str_or_none(_get(obj, "customer")),
            subscription_id=_invoice_subscription_id(obj),
            amount_due=_int_or_none(_get(obj, "amount_due")) or 0,
        )
    if event_type == INVOICE_PAYMENT_SUCCEEDED:
        return InvoicePaymentSucceeded(
            id=event_id,
            invoice_id=_str_or_none(_get(obj, "id")),
            customer_id=_str_or_none(_get(obj, "customer")),
            subscription_id=_invoice_subscription_id(obj),
            amount_paid=_int_or_none(_get(obj, "amount_paid")) or 0,
            currency=_str_or_none(_get(obj, "currency")),
            billing_reason=_str_or_none(_get(obj, "billing_reason")),
        )
    return UnhandledEvent(id=event_id, event_type=event_type)
