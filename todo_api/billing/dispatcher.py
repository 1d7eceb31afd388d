"""Webhook dispatcher: routes verified Stripe events to state transitions.

Lifecycle of one delivery:

    RECEIVED -> VERIFIED -> DUPLICATE_CHECK -> ROUTED -> APPLIED -> RECORDED -> ACKNOWLEDGED

The route layer owns RECEIVED/VERIFIED (and REJECTED on a bad signature).
Everything up to and including the duplicate check may raise, which turns
into a 500 so Stripe redelivers. Once an event is ROUTED the acknowledgment
is committed: every side effect runs through ``_attempt`` with its own
timeout, failures become ``StepResult``s, and the event is recorded and
acknowledged regardless. A failed e-mail or Stripe call must never make
Stripe retry the whole event.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

import structlog

from todo_api.billing.applier import CANCELED_STATUS, ApplyResult, SubscriptionStateApplier
from todo_api.billing.events import Event, EventKind, InvoicePayload, SubscriptionPayload
from todo_api.billing.ledger import IdempotencyLedger
from todo_api.billing.notifier import SendResult, payment_failed_email
from todo_api.core.exceptions import DuplicateEventError

logger = structlog.get_logger(__name__)

DEFAULT_STEP_TIMEOUT_SECONDS = 10.0


class Notifier(Protocol):
    async def send_email(self, to_address: str, subject: str, html_body: str) -> SendResult: ...


class BillingProvider(Protocol):
    async def get_subscription(self, subscription_id: str) -> SubscriptionPayload: ...

    async def cancel_subscription(self, subscription_id: str) -> bool: ...


class DispatchState(str, Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    DUPLICATE_CHECK = "duplicate_check"
    ROUTED = "routed"
    APPLIED = "applied"
    RECORDED = "recorded"
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    """Outcome of one side effect. ``skipped`` steps count as ok."""

    name: str
    ok: bool
    skipped: bool = False
    detail: str | None = None


@dataclass
class DispatchReport:
    event_id: str
    event_type: str
    kind: EventKind
    state: DispatchState = DispatchState.VERIFIED
    duplicate: bool = False
    recorded: bool = False
    steps: list[StepResult] = field(default_factory=list)

    @property
    def failed_steps(self) -> list[StepResult]:
        return [step for step in self.steps if not step.ok]

    def step(self, name: str) -> StepResult | None:
        return next((s for s in self.steps if s.name == name), None)


class WebhookDispatcher:
    """Routes one verified event, containing every downstream failure."""

    def __init__(
        self,
        ledger: IdempotencyLedger,
        applier: SubscriptionStateApplier,
        provider: BillingProvider,
        notifier: Notifier,
        step_timeout: float = DEFAULT_STEP_TIMEOUT_SECONDS,
        app_name: str = "Todo API",
        clock: Callable[[], datetime] | None = None,
    ):
        self._ledger = ledger
        self._applier = applier
        self._provider = provider
        self._notifier = notifier
        self._step_timeout = step_timeout
        self._app_name = app_name
        self._clock = clock or (lambda: datetime.now(UTC))

        self._routes: dict[EventKind, Callable[[Event, DispatchReport], Awaitable[None]]] = {
            EventKind.SUBSCRIPTION_CREATED: self._handle_subscription_changed,
            EventKind.SUBSCRIPTION_UPDATED: self._handle_subscription_changed,
            EventKind.SUBSCRIPTION_DELETED: self._handle_subscription_deleted,
            EventKind.INVOICE_PAYMENT_SUCCEEDED: self._handle_invoice_payment_succeeded,
            EventKind.INVOICE_PAYMENT_FAILED: self._handle_invoice_payment_failed,
            EventKind.UNKNOWN: self._handle_unknown,
        }

    async def dispatch(self, event: Event) -> DispatchReport:
        """Process ``event`` at most once and report what happened.

        Raises only if the duplicate check itself fails.
        """
        report = DispatchReport(event_id=event.id, event_type=event.type, kind=event.kind)

        report.state = DispatchState.DUPLICATE_CHECK
        if await self._ledger.already_processed(event.id):
            logger.info("stripe_duplicate_event_ignored", event_id=event.id, event_type=event.type)
            report.duplicate = True
            report.state = DispatchState.ACKNOWLEDGED
            return report

        report.state = DispatchState.ROUTED
        handler = self._routes[event.kind]
        try:
            await handler(event, report)
        except Exception as exc:
            logger.error(
                "stripe_webhook_handler_failed",
                event_id=event.id,
                event_type=event.type,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            report.steps.append(StepResult(name="route", ok=False, detail=f"{type(exc).__name__}: {exc}"))
        report.state = DispatchState.APPLIED

        await self._record(event, report)
        report.state = DispatchState.ACKNOWLEDGED

        self._log_report(report)
        return report

    # ── Routing table targets ───────────────────────────────────────

    async def _handle_subscription_changed(self, event: Event, report: DispatchReport) -> None:
        subscription = self._expect_subscription(event, report, "apply_update")
        if subscription is None:
            return
        step, result = await self._attempt("apply_update", self._applier.apply_update(subscription))
        report.steps.append(self._apply_step(step, result))

    async def _handle_subscription_deleted(self, event: Event, report: DispatchReport) -> None:
        subscription = self._expect_subscription(event, report, "apply_cancellation")
        if subscription is None:
            return
        step, result = await self._attempt("apply_cancellation", self._applier.apply_cancellation(subscription))
        report.steps.append(self._apply_step(step, result))

    async def _handle_invoice_payment_succeeded(self, event: Event, report: DispatchReport) -> None:
        subscription_id = self._invoice_subscription_id(event, report)
        if subscription_id is None:
            return

        step, subscription = await self._attempt(
            "fetch_subscription", self._provider.get_subscription(subscription_id)
        )
        report.steps.append(step)
        if subscription is None:
            return

        step, result = await self._attempt("apply_update", self._applier.apply_update(subscription))
        report.steps.append(self._apply_step(step, result))

    async def _handle_invoice_payment_failed(self, event: Event, report: DispatchReport) -> None:
        subscription_id = self._invoice_subscription_id(event, report)
        if subscription_id is None:
            return

        # 1. Cancel access locally
        step, result = await self._attempt(
            "mark_canceled", self._applier.mark_payment_failed(subscription_id, self._clock())
        )
        report.steps.append(self._apply_step(step, result))

        # 2. Tell the user
        email = result.email if result is not None else None
        if result is None:
            step, contact = await self._attempt("find_contact", self._applier.find_contact(subscription_id))
            report.steps.append(step)
            email = contact.email if contact is not None else None
        await self._notify_payment_failed(email, subscription_id, report)

        # 3. Cancel at Stripe unless it already is
        await self._cancel_remote(subscription_id, report)

    async def _handle_unknown(self, event: Event, report: DispatchReport) -> None:
        logger.info("stripe_webhook_unhandled_event_type", event_id=event.id, event_type=event.type)

    # ── Side-effect helpers ─────────────────────────────────────────

    async def _notify_payment_failed(self, email: str | None, subscription_id: str, report: DispatchReport) -> None:
        if not email:
            logger.warning("payment_failed_no_recipient", subscription_id=subscription_id)
            report.steps.append(StepResult(name="notify_user", ok=True, skipped=True, detail="no user email"))
            return

        subject, html_body = payment_failed_email(self._app_name)
        step, sent = await self._attempt("notify_user", self._notifier.send_email(email, subject, html_body))
        if sent is not None and not sent.success:
            step = StepResult(name="notify_user", ok=False, detail=sent.error)
        report.steps.append(step)

    async def _cancel_remote(self, subscription_id: str, report: DispatchReport) -> None:
        step, remote = await self._attempt("fetch_remote_status", self._provider.get_subscription(subscription_id))
        report.steps.append(step)
        if remote is not None and remote.status == CANCELED_STATUS:
            report.steps.append(StepResult(name="cancel_remote", ok=True, skipped=True, detail="already canceled"))
            return

        step, canceled = await self._attempt("cancel_remote", self._provider.cancel_subscription(subscription_id))
        if canceled is False:
            step = StepResult(name="cancel_remote", ok=True, skipped=True, detail="already canceled")
        report.steps.append(step)

    async def _attempt(self, name: str, operation: Awaitable[Any]) -> tuple[StepResult, Any]:
        """Run one side effect under the step timeout. Never raises."""
        try:
            value = await asyncio.wait_for(operation, timeout=self._step_timeout)
        except asyncio.TimeoutError:
            logger.warning("stripe_webhook_step_timeout", step=name, timeout_seconds=self._step_timeout)
            return StepResult(name=name, ok=False, detail=f"timed out after {self._step_timeout}s"), None
        except Exception as exc:
            logger.error(
                "stripe_webhook_step_failed",
                step=name,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            return StepResult(name=name, ok=False, detail=f"{type(exc).__name__}: {exc}"), None
        return StepResult(name=name, ok=True), value

    @staticmethod
    def _apply_step(step: StepResult, result: ApplyResult | None) -> StepResult:
        if result is not None and not result.applied:
            return StepResult(name=step.name, ok=True, skipped=True, detail=result.status.value)
        return step

    @staticmethod
    def _expect_subscription(event: Event, report: DispatchReport, step_name: str) -> SubscriptionPayload | None:
        if isinstance(event.payload, SubscriptionPayload):
            return event.payload
        logger.warning(
            "stripe_webhook_unexpected_payload",
            event_id=event.id,
            event_type=event.type,
            expected="subscription",
        )
        report.steps.append(StepResult(name=step_name, ok=True, skipped=True, detail="payload is not a subscription"))
        return None

    @staticmethod
    def _invoice_subscription_id(event: Event, report: DispatchReport) -> str | None:
        payload = event.payload
        if not isinstance(payload, InvoicePayload):
            logger.warning(
                "stripe_webhook_unexpected_payload",
                event_id=event.id,
                event_type=event.type,
                expected="invoice",
            )
            report.steps.append(StepResult(name="invoice", ok=True, skipped=True, detail="payload is not an invoice"))
            return None
        if not payload.subscription_id:
            logger.info("invoice_without_subscription", event_id=event.id, invoice_id=payload.id)
            report.steps.append(StepResult(name="invoice", ok=True, skipped=True, detail="invoice has no subscription"))
            return None
        return payload.subscription_id

    async def _record(self, event: Event, report: DispatchReport) -> None:
        try:
            await asyncio.wait_for(
                self._ledger.record_processed(event.id, self._clock(), event.type),
                timeout=self._step_timeout,
            )
        except DuplicateEventError:
            # A concurrent delivery of the same event finished first
            logger.warning("stripe_event_recorded_concurrently", event_id=event.id, event_type=event.type)
        except Exception as exc:
            logger.error(
                "stripe_event_record_failed",
                event_id=event.id,
                event_type=event.type,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            return
        report.recorded = True
        report.state = DispatchState.RECORDED

    @staticmethod
    def _log_report(report: DispatchReport) -> None:
        fields = {
            "event_id": report.event_id,
            "event_type": report.event_type,
            "kind": report.kind.value,
            "recorded": report.recorded,
            "steps": [asdict(step) for step in report.steps],
        }
        if report.failed_steps or not report.recorded:
            logger.warning("stripe_webhook_processed_with_failures", **fields)
        elif report.steps:
            logger.info("stripe_webhook_processed", **fields)
        else:
            logger.debug("stripe_webhook_processed", **fields)
