"""Re-export all models so Base.metadata sees them."""

from todo_api.db.models.processed_event import ProcessedWebhookEvent
from todo_api.db.models.user import User

__all__ = [
    "ProcessedWebhookEvent",
    "User",
]
