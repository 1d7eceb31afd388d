"""Stripe API client used by the webhook pipeline.

Built once at startup from settings and handed to the dispatcher, so no code
path touches the process-global ``stripe.api_key``.
"""

import stripe
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from todo_api.billing.events import SubscriptionPayload
from todo_api.core.exceptions import ProviderError

logger = structlog.get_logger(__name__)

_connection_retry = retry(
    retry=retry_if_exception_type(stripe.APIConnectionError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
    reraise=True,
    before_sleep=lambda rs: logger.warning(
        "stripe_connection_retrying",
        attempt=rs.attempt_number,
        sleep_seconds=rs.next_action.sleep,
    ),
)


class BillingProviderClient:
    """Thin async wrapper over ``stripe.StripeClient`` returning typed payloads."""

    def __init__(self, client: stripe.StripeClient | None):
        self._client = client

    @classmethod
    def from_api_key(cls, api_key: str) -> "BillingProviderClient":
        # StripeClient rejects an empty key; calls fail per request instead of at startup
        if not api_key:
            logger.warning("stripe_api_key_not_configured")
            return cls(None)
        return cls(stripe.StripeClient(api_key))

    def _require_client(self, operation: str) -> stripe.StripeClient:
        if self._client is None:
            raise ProviderError(operation, "Stripe secret key is not configured")
        return self._client

    @_connection_retry
    async def _retrieve(self, subscription_id: str):
        client = self._require_client("subscription retrieve")
        return await client.v1.subscriptions.retrieve_async(subscription_id)

    async def get_subscription(self, subscription_id: str) -> SubscriptionPayload:
        """Fetch the provider's current view of a subscription.

        Raises:
            ProviderError: the Stripe call failed.
        """
        try:
            subscription = await self._retrieve(subscription_id)
        except stripe.StripeError as exc:
            raise ProviderError("subscription retrieve", exc.user_message or str(exc)) from exc
        return SubscriptionPayload.from_stripe(subscription)

    async def cancel_subscription(self, subscription_id: str) -> bool:
        """Cancel immediately without a final invoice or proration.

        Returns True when Stripe canceled the subscription, False when it was
        already canceled (a repeated cancel is not a failure).

        Raises:
            ProviderError: the Stripe call failed for any other reason.
        """
        client = self._require_client("subscription cancel")
        try:
            await client.v1.subscriptions.cancel_async(
                subscription_id,
                params={"invoice_now": False, "prorate": False},
            )
        except stripe.InvalidRequestError as exc:
            message = (exc.user_message or str(exc)).lower()
            if "canceled" in message or "cancelled" in message:
                logger.info("stripe_subscription_already_canceled", subscription_id=subscription_id)
                return False
            raise ProviderError("subscription cancel", exc.user_message or str(exc)) from exc
        except stripe.StripeError as exc:
            raise ProviderError("subscription cancel", exc.user_message or str(exc)) from exc

        logger.info("stripe_subscription_canceled", subscription_id=subscription_id)
        return True
