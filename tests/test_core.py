"""Tests for logging processors, settings and database lifecycle."""

from unittest.mock import patch

import pytest

import todo_api.db.base as db_mod
from todo_api.core.config import Settings
from todo_api.core.logging import REDACTED, add_correlation_id, redact_sensitive
from todo_api.db.base import close_db, get_session_factory, init_db

pytestmark = pytest.mark.unit


class TestRedaction:
    def test_masks_secret_bearing_keys(self):
        event = {"event": "stripe_webhook_rejected", "signature": "t=1,v1=abc", "smtp_password": "hunter2"}

        result = redact_sensitive(None, "warning", event)

        assert result["signature"] == REDACTED
        assert result["smtp_password"] == REDACTED
        assert result["event"] == "stripe_webhook_rejected"

    def test_leaves_empty_values_alone(self):
        result = redact_sensitive(None, "info", {"event": "x", "api_key": ""})

        assert result["api_key"] == ""

    def test_no_correlation_id_outside_request(self):
        result = add_correlation_id(None, "info", {"event": "x"})

        assert "correlation_id" not in result


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.stripe_webhook_tolerance_seconds == 300
        assert settings.outbound_timeout_seconds == 10.0
        assert settings.stripe_webhook_secret == ""

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_env")
        monkeypatch.setenv("OUTBOUND_TIMEOUT_SECONDS", "2.5")

        settings = Settings(_env_file=None)

        assert settings.stripe_webhook_secret == "whsec_env"
        assert settings.outbound_timeout_seconds == 2.5


class TestDatabaseLifecycle:
    @pytest.fixture(autouse=True)
    async def _reset_globals(self):
        db_mod._engine = None
        db_mod._session_factory = None
        yield
        await close_db()

    async def test_factory_requires_init(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            get_session_factory()

    async def test_init_and_close(self):
        await init_db("sqlite+aiosqlite:///:memory:")

        assert get_session_factory() is not None

        await close_db()

        with pytest.raises(RuntimeError):
            get_session_factory()

    async def test_init_is_idempotent(self):
        await init_db("sqlite+aiosqlite:///:memory:", create_tables=False)
        factory = get_session_factory()

        await init_db("sqlite+aiosqlite:///:memory:")

        assert get_session_factory() is factory


class TestStartupConfigCheck:
    def test_reports_missing_billing_settings(self):
        from todo_api.main import check_billing_config

        settings = Settings(_env_file=None, stripe_secret_key="sk_test_dummy")
        with patch("todo_api.main.get_settings", return_value=settings):
            missing = check_billing_config()

        assert missing == ["stripe_webhook_secret", "smtp_host"]

    def test_complete_configuration(self):
        from todo_api.main import check_billing_config

        settings = Settings(
            _env_file=None,
            stripe_secret_key="sk_test_dummy",
            stripe_webhook_secret="whsec_test",
            smtp_host="smtp.example.com",
        )
        with patch("todo_api.main.get_settings", return_value=settings):
            assert check_billing_config() == []
