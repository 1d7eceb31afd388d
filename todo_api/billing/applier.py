"""Applies Stripe subscription state to the local user's snapshot.

Every write is last-write-wins: there is no version check against the
snapshot already stored, so an older event delivered late overwrites a newer
one. Writing the same values twice leaves the same final state.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from todo_api.billing.events import SubscriptionPayload
from todo_api.db.models.user import User

logger = structlog.get_logger(__name__)

CANCELED_STATUS = "canceled"


class ApplyStatus(str, Enum):
    APPLIED = "applied"
    USER_NOT_FOUND = "user_not_found"


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of one snapshot write."""

    status: ApplyStatus
    user_id: int | None = None
    email: str | None = None

    @property
    def applied(self) -> bool:
        return self.status is ApplyStatus.APPLIED


_NOT_FOUND = ApplyResult(status=ApplyStatus.USER_NOT_FOUND)


class SubscriptionStateApplier:
    """The only writer of the subscription fields on ``User``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def apply_update(self, subscription: SubscriptionPayload) -> ApplyResult:
        """Sync subscription id, status and period end for the subscription's customer."""
        async with self._session_factory() as session:
            user = await self._find_by_customer(session, subscription.customer_id)
            if user is None:
                logger.warning(
                    "subscription_update_unknown_customer",
                    customer_id=subscription.customer_id,
                    subscription_id=subscription.id,
                )
                return _NOT_FOUND

            user.stripe_subscription_id = subscription.id
            user.subscription_status = subscription.status
            user.subscription_end_date = subscription.current_period_end
            await session.commit()

            logger.info(
                "subscription_status_updated",
                user_id=user.id,
                status=subscription.status,
                subscription_id=subscription.id,
            )
            return ApplyResult(status=ApplyStatus.APPLIED, user_id=user.id, email=user.email)

    async def apply_cancellation(self, subscription: SubscriptionPayload) -> ApplyResult:
        """Record that the provider ended the subscription."""
        async with self._session_factory() as session:
            user = await self._find_by_customer(session, subscription.customer_id)
            if user is None:
                logger.warning(
                    "subscription_cancel_unknown_customer",
                    customer_id=subscription.customer_id,
                    subscription_id=subscription.id,
                )
                return _NOT_FOUND

            user.subscription_status = subscription.status
            user.subscription_end_date = subscription.canceled_at
            await session.commit()

            logger.info("subscription_marked_canceled", user_id=user.id, subscription_id=subscription.id)
            return ApplyResult(status=ApplyStatus.APPLIED, user_id=user.id, email=user.email)

    async def mark_payment_failed(self, subscription_id: str, now: datetime | None = None) -> ApplyResult:
        """Cancel access locally after a failed invoice payment (no grace period)."""
        now = now or datetime.now(UTC)
        async with self._session_factory() as session:
            user = await self._find_by_subscription(session, subscription_id)
            if user is None:
                logger.warning("payment_failed_unknown_subscription", subscription_id=subscription_id)
                return _NOT_FOUND

            user.subscription_status = CANCELED_STATUS
            user.subscription_end_date = now
            await session.commit()

            logger.info("payment_failed_subscription_canceled_locally", user_id=user.id, subscription_id=subscription_id)
            return ApplyResult(status=ApplyStatus.APPLIED, user_id=user.id, email=user.email)

    async def find_contact(self, subscription_id: str) -> ApplyResult:
        """Resolve the user owning ``subscription_id`` without writing anything."""
        async with self._session_factory() as session:
            user = await self._find_by_subscription(session, subscription_id)
            if user is None:
                return _NOT_FOUND
            return ApplyResult(status=ApplyStatus.APPLIED, user_id=user.id, email=user.email)

    @staticmethod
    async def _find_by_customer(session: AsyncSession, customer_id: str | None) -> User | None:
        if not customer_id:
            return None
        result = await session.execute(select(User).where(User.stripe_customer_id == customer_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def _find_by_subscription(session: AsyncSession, subscription_id: str | None) -> User | None:
        if not subscription_id:
            return None
        result = await session.execute(
            select(User).where(User.stripe_subscription_id == subscription_id).limit(1)
        )
        return result.scalar_one_or_none()
