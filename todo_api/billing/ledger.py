"""Idempotency ledger of processed Stripe webhook events."""

from datetime import UTC, datetime

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from todo_api.core.exceptions import DuplicateEventError
from todo_api.db.models.processed_event import ProcessedWebhookEvent

logger = structlog.get_logger(__name__)


class IdempotencyLedger:
    """Durable set of event ids whose side effects have already run.

    ``already_processed`` and ``record_processed`` are separate round trips.
    The primary key on ``event_id`` is what makes a second record for the
    same id fail instead of silently succeeding.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def already_processed(self, event_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProcessedWebhookEvent.event_id).where(ProcessedWebhookEvent.event_id == event_id)
            )
            return result.scalar_one_or_none() is not None

    async def record_processed(
        self,
        event_id: str,
        now: datetime | None = None,
        event_type: str | None = None,
    ) -> None:
        """Persist proof that ``event_id`` was handled.

        Raises:
            DuplicateEventError: a record for ``event_id`` already exists.
        """
        now = now or datetime.now(UTC)
        async with self._session_factory() as session:
            try:
                session.add(ProcessedWebhookEvent(event_id=event_id, event_type=event_type, processed_at=now))
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateEventError(event_id) from exc

        logger.debug("stripe_event_recorded", event_id=event_id, event_type=event_type)
