"""Typed Stripe event contracts consumed by the webhook pipeline.

An ``Event`` carries an ``EventKind`` tag and one payload variant:
``SubscriptionPayload``, ``InvoicePayload`` or ``OpaquePayload``. Parsing
accepts both plain dicts (decoded webhook bodies) and Stripe SDK objects
(API responses), which support item access but not always ``dict`` methods.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    """Stripe event types the pipeline routes on."""

    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    UNKNOWN = "unknown"

    @classmethod
    def from_type(cls, event_type: str | None) -> "EventKind":
        """Map a raw Stripe event type; anything unrecognized is UNKNOWN."""
        try:
            return cls(event_type)
        except ValueError:
            return cls.UNKNOWN


def _get(obj: Any, *path: str | int) -> Any:
    """Walk ``path`` through nested mappings/lists, returning None on any miss."""
    current = obj
    for key in path:
        if current is None:
            return None
        try:
            current = current[key]
        except (KeyError, IndexError, TypeError):
            return None
    return current


def _id_of(value: Any) -> str | None:
    """Return the id of a Stripe reference that may be a string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return _get(value, "id")


def _timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


@dataclass(frozen=True)
class SubscriptionPayload:
    """The subset of a Stripe Subscription the pipeline reads."""

    id: str
    customer_id: str | None
    status: str | None
    current_period_end: datetime | None = None
    canceled_at: datetime | None = None

    @classmethod
    def from_stripe(cls, obj: Any) -> "SubscriptionPayload":
        # Newer API versions moved current_period_end onto subscription items
        period_end = _get(obj, "current_period_end")
        if period_end is None:
            period_end = _get(obj, "items", "data", 0, "current_period_end")

        return cls(
            id=_get(obj, "id"),
            customer_id=_id_of(_get(obj, "customer")),
            status=_get(obj, "status"),
            current_period_end=_timestamp(period_end),
            canceled_at=_timestamp(_get(obj, "canceled_at")),
        )


@dataclass(frozen=True)
class InvoicePayload:
    """The subset of a Stripe Invoice the pipeline reads."""

    id: str
    subscription_id: str | None = None
    customer_id: str | None = None

    @classmethod
    def from_stripe(cls, obj: Any) -> "InvoicePayload":
        # New API: invoice.parent.subscription_details.subscription
        # Legacy: invoice.subscription (id or expanded object)
        subscription_id = _id_of(_get(obj, "parent", "subscription_details", "subscription"))
        if not subscription_id:
            subscription_id = _id_of(_get(obj, "subscription"))

        return cls(
            id=_get(obj, "id"),
            subscription_id=subscription_id or None,
            customer_id=_id_of(_get(obj, "customer")),
        )


@dataclass(frozen=True)
class OpaquePayload:
    """Any data object the pipeline does not interpret."""

    object_type: str | None
    data: dict = field(default_factory=dict)


Payload = SubscriptionPayload | InvoicePayload | OpaquePayload


def parse_payload(obj: Any) -> Payload:
    """Pick the payload variant from Stripe's ``object`` discriminator."""
    object_type = _get(obj, "object")
    if object_type == "subscription":
        return SubscriptionPayload.from_stripe(obj)
    if object_type == "invoice":
        return InvoicePayload.from_stripe(obj)
    return OpaquePayload(object_type=object_type, data=obj if isinstance(obj, dict) else {})


@dataclass(frozen=True)
class Event:
    """A verified Stripe event, alive for the duration of one webhook request."""

    id: str
    type: str
    kind: EventKind
    payload: Payload

    @classmethod
    def from_dict(cls, raw: dict) -> "Event":
        event_type = raw.get("type") or ""
        return cls(
            id=raw["id"],
            type=event_type,
            kind=EventKind.from_type(event_type),
            payload=parse_payload(_get(raw, "data", "object") or {}),
        )
