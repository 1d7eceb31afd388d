class TodoApiError(Exception):
    """Base exception for the Todo API application."""

    pass


class WebhookVerificationError(TodoApiError):
    """Raised when an inbound webhook cannot be turned into a trusted event.

    ``status_code`` is the HTTP status the webhook route answers with.
    """

    status_code: int = 400


class MissingSecretError(WebhookVerificationError):
    """Raised when the webhook signing secret is not configured."""

    status_code = 500

    def __init__(self, message: str = "Webhook configuration error: signing secret is not configured"):
        super().__init__(message)


class MissingSignatureError(WebhookVerificationError):
    """Raised when the Stripe-Signature header is absent or empty."""

    def __init__(self, message: str = "Missing Stripe signature header"):
        super().__init__(message)


class InvalidSignatureError(WebhookVerificationError):
    """Raised when the signature does not match the payload or is outside tolerance."""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message)


class InvalidPayloadError(WebhookVerificationError):
    """Raised when a correctly signed body is not a Stripe event object."""

    def __init__(self, message: str = "Invalid payload"):
        super().__init__(message)


class DuplicateEventError(TodoApiError):
    """Raised when an event id is recorded in the ledger a second time."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event '{event_id}' has already been recorded as processed")


class ProviderError(TodoApiError):
    """Raised when a Stripe API call fails."""

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Stripe {operation} failed: {reason}")
