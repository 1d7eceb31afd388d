"""Stripe webhook endpoint: verification, status mapping, dispatch."""

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from todo_api.billing.applier import SubscriptionStateApplier
from todo_api.billing.dispatcher import WebhookDispatcher
from todo_api.billing.ledger import IdempotencyLedger
from todo_api.billing.verifier import verify
from todo_api.core.config import get_settings
from todo_api.core.exceptions import MissingSecretError, WebhookVerificationError
from todo_api.db.base import get_session_factory

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_dispatcher(request: Request) -> WebhookDispatcher:
    """Build a dispatcher over the process-wide Stripe client and notifier."""
    settings = get_settings()
    factory = get_session_factory()
    return WebhookDispatcher(
        ledger=IdempotencyLedger(factory),
        applier=SubscriptionStateApplier(factory),
        provider=request.app.state.billing_provider,
        notifier=request.app.state.notifier,
        step_timeout=settings.outbound_timeout_seconds,
        app_name=settings.app_name,
    )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/webhook")
async def stripe_webhook(request: Request, dispatcher: WebhookDispatcher = Depends(get_dispatcher)):
    """Handle a Stripe webhook delivery.

    400 and 500 answers make Stripe redeliver; everything that gets past the
    duplicate check is acknowledged with 200 even if a side effect failed.
    """
    settings = get_settings()
    body = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        event = verify(body, sig_header, settings.stripe_webhook_secret, settings.stripe_webhook_tolerance_seconds)
    except MissingSecretError as exc:
        logger.error("stripe_webhook_secret_not_configured", detail=str(exc))
        return _error(exc.status_code, str(exc))
    except WebhookVerificationError as exc:
        logger.warning("stripe_webhook_rejected", reason=type(exc).__name__, detail=str(exc))
        return _error(exc.status_code, str(exc))
    except Exception as exc:
        logger.error("stripe_webhook_error", error=str(exc), error_type=type(exc).__name__, exc_info=True)
        return _error(500, "Internal server error")

    logger.debug("stripe_webhook_received", event_id=event.id, event_type=event.type)

    try:
        report = await dispatcher.dispatch(event)
    except Exception as exc:
        logger.error(
            "stripe_webhook_error",
            event_id=event.id,
            event_type=event.type,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return _error(500, "Internal server error")

    return {"status": "ok", "event_id": report.event_id, "duplicate": report.duplicate}
