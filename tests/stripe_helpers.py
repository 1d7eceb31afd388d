"""Builders for signed Stripe webhook deliveries used across test groups."""

import hashlib
import hmac
import json
import time

WEBHOOK_SECRET = "whsec_test_secret"


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header value the way Stripe signs deliveries."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_stripe_event(event_id: str, event_type: str, data: dict) -> dict:
    """Build a minimal Stripe-style event dict."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": data},
    }


def subscription_object(
    sub_id: str = "sub_123",
    customer: str = "cus_123",
    status: str = "active",
    current_period_end: int | None = 1_900_000_000,
    canceled_at: int | None = None,
) -> dict:
    return {
        "id": sub_id,
        "object": "subscription",
        "customer": customer,
        "status": status,
        "current_period_end": current_period_end,
        "canceled_at": canceled_at,
    }


def invoice_object(invoice_id: str = "in_123", subscription: str | None = "sub_123", customer: str = "cus_123") -> dict:
    return {
        "id": invoice_id,
        "object": "invoice",
        "customer": customer,
        "subscription": subscription,
    }


def encode(event: dict) -> bytes:
    return json.dumps(event).encode()
