"""Tests for liveness/readiness endpoints and request correlation."""

import uuid

import pytest

pytestmark = pytest.mark.integration


async def test_health_returns_ok(api_client):
    response = await api_client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "todo-api"}


async def test_health_returns_503_while_shutting_down(app, api_client):
    app.state.shutting_down = True

    response = await api_client.get("/api/health")

    assert response.status_code == 503
    assert response.json()["status"] == "shutting_down"


async def test_ready_checks_database(api_client):
    response = await api_client.get("/api/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ready", "checks": {"database": True, "webhook_secret": True}}


async def test_ready_degraded_without_webhook_secret(api_client, webhook_settings):
    webhook_settings.stripe_webhook_secret = ""

    response = await api_client.get("/api/ready")

    assert response.status_code == 503
    assert response.json()["checks"]["webhook_secret"] is False


async def test_generated_request_id_is_uuid(api_client):
    response = await api_client.get("/api/health")

    uuid.UUID(response.headers["x-request-id"])


async def test_different_requests_get_different_ids(api_client):
    first = await api_client.get("/api/health")
    second = await api_client.get("/api/health")

    assert first.headers["x-request-id"] != second.headers["x-request-id"]
