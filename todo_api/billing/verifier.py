"""Stripe webhook signature verification.

Turns a raw request body + ``Stripe-Signature`` header into a typed ``Event``.
The HMAC-SHA256 check, its constant-time comparison and the timestamp
tolerance window are Stripe's own ``WebhookSignature.verify_header``.
"""

import json

import stripe
import structlog

from todo_api.billing.events import Event
from todo_api.core.exceptions import (
    InvalidPayloadError,
    InvalidSignatureError,
    MissingSecretError,
    MissingSignatureError,
)

logger = structlog.get_logger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300


def verify(
    raw_body: bytes,
    signature_header: str | None,
    shared_secret: str | None,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> Event:
    """Verify a webhook delivery and decode it into an Event.

    Raises:
        MissingSecretError: the signing secret is not configured.
        MissingSignatureError: the signature header is absent or empty.
        InvalidSignatureError: the signature does not verify.
        InvalidPayloadError: the body is signed but is not an event object.
    """
    if not shared_secret:
        raise MissingSecretError()

    if not signature_header:
        raise MissingSignatureError()

    try:
        payload = raw_body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidPayloadError("Invalid payload: body is not UTF-8") from exc

    try:
        stripe.WebhookSignature.verify_header(payload, signature_header, shared_secret, tolerance)
    except stripe.SignatureVerificationError as exc:
        raise InvalidSignatureError(f"Invalid signature: {exc.user_message or exc}") from exc

    try:
        raw_event = json.loads(payload)
    except ValueError as exc:
        raise InvalidPayloadError("Invalid payload: body is not valid JSON") from exc

    if not isinstance(raw_event, dict) or not raw_event.get("id"):
        raise InvalidPayloadError("Invalid payload: not a Stripe event object")

    event = Event.from_dict(raw_event)
    logger.debug("stripe_event_verified", event_id=event.id, event_type=event.type, kind=event.kind.value)
    return event
