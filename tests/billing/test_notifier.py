"""Tests for the SMTP e-mail notifier."""

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from todo_api.billing.notifier import EmailNotifier, payment_failed_email
from todo_api.core.config import Settings

pytestmark = pytest.mark.unit


@pytest.fixture
def email_notifier() -> EmailNotifier:
    return EmailNotifier(
        host="smtp.example.com",
        port=587,
        username="mailer",
        password="hunter2",
        from_email="billing@todoapi.local",
    )


async def test_sends_over_starttls(email_notifier):
    server = MagicMock()
    with patch("todo_api.billing.notifier.smtplib.SMTP", return_value=server) as smtp_cls:
        result = await email_notifier.send_email("alice@example.com", "Hello", "<p>hi</p>")

    assert result.success
    smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=15)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "hunter2")
    msg = server.send_message.call_args.args[0]
    assert msg["To"] == "alice@example.com"
    assert msg["Subject"] == "Hello"
    assert msg["From"] == "Todo API <billing@todoapi.local>"


async def test_ssl_mode_skips_starttls():
    notifier = EmailNotifier(host="smtp.example.com", port=465, from_email="billing@todoapi.local", use_ssl=True)
    server = MagicMock()
    with patch("todo_api.billing.notifier.smtplib.SMTP_SSL", return_value=server):
        result = await notifier.send_email("alice@example.com", "Hello", "<p>hi</p>")

    assert result.success
    server.starttls.assert_not_called()
    server.login.assert_not_called()


async def test_smtp_error_returns_failure(email_notifier):
    server = MagicMock()
    server.send_message.side_effect = smtplib.SMTPRecipientsRefused({"alice@example.com": (550, b"no such user")})
    with patch("todo_api.billing.notifier.smtplib.SMTP", return_value=server):
        result = await email_notifier.send_email("alice@example.com", "Hello", "<p>hi</p>")

    assert not result.success
    assert result.error.startswith("SMTP error")


async def test_connection_error_returns_failure(email_notifier):
    with patch("todo_api.billing.notifier.smtplib.SMTP", side_effect=ConnectionRefusedError("refused")):
        result = await email_notifier.send_email("alice@example.com", "Hello", "<p>hi</p>")

    assert not result.success
    assert "connection" in result.error.lower()


async def test_unconfigured_notifier_does_not_connect():
    notifier = EmailNotifier(host="", from_email="")
    with patch("todo_api.billing.notifier.smtplib.SMTP") as smtp_cls:
        result = await notifier.send_email("alice@example.com", "Hello", "<p>hi</p>")

    assert not result.success
    smtp_cls.assert_not_called()


def test_from_settings():
    settings = Settings(
        _env_file=None,
        smtp_host="smtp.example.com",
        smtp_port=2525,
        smtp_from_email="billing@todoapi.local",
        app_name="Todo API",
    )

    notifier = EmailNotifier.from_settings(settings)

    assert notifier.is_configured
    msg = notifier.format_message("alice@example.com", "Hi", "<p>hi</p>")
    assert msg["From"] == "Todo API <billing@todoapi.local>"


def test_payment_failed_email_content():
    subject, html_body = payment_failed_email("Todo API")

    assert "Payment Failed" in subject
    assert "Todo API" in html_body
    assert "canceled" in html_body
