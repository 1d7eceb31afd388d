"""Stripe webhook ingestion: verification, idempotency, dispatch and state application."""

from todo_api.billing.applier import ApplyResult, ApplyStatus, SubscriptionStateApplier
from todo_api.billing.dispatcher import DispatchReport, DispatchState, StepResult, WebhookDispatcher
from todo_api.billing.events import Event, EventKind, InvoicePayload, OpaquePayload, SubscriptionPayload
from todo_api.billing.ledger import IdempotencyLedger
from todo_api.billing.notifier import EmailNotifier, SendResult
from todo_api.billing.provider import BillingProviderClient
from todo_api.billing.verifier import verify

__all__ = [
    "ApplyResult",
    "ApplyStatus",
    "BillingProviderClient",
    "DispatchReport",
    "DispatchState",
    "EmailNotifier",
    "Event",
    "EventKind",
    "IdempotencyLedger",
    "InvoicePayload",
    "OpaquePayload",
    "SendResult",
    "StepResult",
    "SubscriptionPayload",
    "SubscriptionStateApplier",
    "WebhookDispatcher",
    "verify",
]
