"""Shared SQLAlchemy base and database initialization.

One async engine per process. The webhook pipeline opens a short-lived
session per operation (ledger check, snapshot write, ledger record), so
nothing holds a session across an outbound Stripe or SMTP call.
"""

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from todo_api.core.config import get_settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_kwargs(db_url: str, echo: bool) -> dict:
    url = make_url(db_url)
    if url.get_backend_name() == "sqlite":
        # Local/dev databases: aiosqlite runs the connection on its own thread
        return {"echo": echo, "connect_args": {"check_same_thread": False}}
    return {"echo": echo, "pool_pre_ping": True}


async def init_db(url: str | None = None, create_tables: bool = True) -> None:
    """Initialize the async database engine and session factory.

    With ``create_tables`` the schema is created from Base.metadata; deployed
    databases are migrated with Alembic instead.
    """
    global _engine, _session_factory

    if _engine is not None:
        return

    settings = get_settings()
    db_url = url or settings.database_url

    _engine = create_async_engine(db_url, **_engine_kwargs(db_url, settings.debug))
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    logger.info("db_engine_created", url=make_url(db_url).render_as_string(hide_password=True))

    if not create_tables:
        return

    # Import all models so metadata is populated before create_all
    import todo_api.db.models  # noqa: F401

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine and release all connections."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the configured session factory.

    Raises RuntimeError if init_db() has not been called.
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory
