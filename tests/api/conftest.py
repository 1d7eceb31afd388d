"""API-specific test fixtures."""

from unittest.mock import patch

import httpx
import pytest
from fastapi import FastAPI, HTTPException

from stripe_helpers import WEBHOOK_SECRET
from todo_api.core.config import Settings


@pytest.fixture
def webhook_settings() -> Settings:
    return Settings(
        _env_file=None,
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        outbound_timeout_seconds=1.0,
    )


@pytest.fixture
def app(engine, provider, notifier, webhook_settings):
    """FastAPI app wired to the in-memory database and collaborator doubles.

    Requests are served in-process via httpx.ASGITransport, so they share the
    pytest-asyncio loop with the engine fixture. The lifespan does not run:
    app.state is populated here instead.
    """
    from todo_api.api.routes import api_router
    from todo_api.main import generic_exception_handler, http_exception_handler
    from todo_api.middleware.correlation import setup_correlation_middleware

    app = FastAPI(title="Todo API", description="Todo API - Test Client", version="0.1.0")
    setup_correlation_middleware(app)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)
    app.include_router(api_router, prefix="/api")

    app.state.shutting_down = False
    app.state.billing_provider = provider
    app.state.notifier = notifier

    with (
        patch("todo_api.api.routes.webhooks.get_settings", return_value=webhook_settings),
        patch("todo_api.api.routes.health.get_settings", return_value=webhook_settings),
    ):
        yield app


@pytest.fixture
async def api_client(app) -> httpx.AsyncClient:
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
