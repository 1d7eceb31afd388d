"""ProcessedWebhookEvent model for idempotency tracking."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, String

from todo_api.db.base import Base


class ProcessedWebhookEvent(Base):
    """Tracks processed Stripe webhook event IDs to prevent duplicate processing.

    Rows are written once, after all side effects of the event ran, and are
    never updated or deleted.
    """

    __tablename__ = "processed_webhook_events"

    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(255), nullable=True)
    processed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
