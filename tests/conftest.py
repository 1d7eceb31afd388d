"""Shared test fixtures for all test groups.

Database tests run against in-memory SQLite (aiosqlite + StaticPool) so the
ledger's primary-key uniqueness and the applier's lookups behave like the
production database without a running Postgres.
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from todo_api.billing.notifier import SendResult
from todo_api.billing.provider import BillingProviderClient
from todo_api.db.base import Base
from todo_api.db.models.user import User

_TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine() -> AsyncEngine:
    """Create an in-memory SQLite engine and install it as the global factory."""
    import todo_api.db.base as db_mod
    import todo_api.db.models  # noqa: F401

    engine = create_async_engine(
        _TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    db_mod._engine = engine
    db_mod._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    db_mod._engine = None
    db_mod._session_factory = None
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def create_user(session_factory):
    """Factory fixture inserting a user with an optional Stripe snapshot."""

    async def _create(
        email: str = "alice@example.com",
        stripe_customer_id: str | None = "cus_123",
        stripe_subscription_id: str | None = None,
        subscription_status: str | None = None,
    ) -> User:
        async with session_factory() as session:
            user = User(
                email=email,
                password_hash="x",
                stripe_customer_id=stripe_customer_id,
                stripe_subscription_id=stripe_subscription_id,
                subscription_status=subscription_status,
            )
            session.add(user)
            await session.commit()
            return user

    return _create


@pytest.fixture
def load_user(session_factory):
    async def _load(user_id: int) -> User:
        async with session_factory() as session:
            return await session.get(User, user_id)

    return _load


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


@pytest.fixture
def provider() -> AsyncMock:
    """Stripe client double: subscriptions are active and cancel succeeds."""
    mock = AsyncMock(spec=BillingProviderClient)
    mock.cancel_subscription.return_value = True
    return mock


@pytest.fixture
def notifier() -> AsyncMock:
    mock = AsyncMock()
    mock.send_email.return_value = SendResult(success=True)
    return mock
