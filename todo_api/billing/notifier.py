"""E-mail notifier: sends user-facing billing messages over SMTP.

smtplib is blocking, so each send runs in a worker thread via
``asyncio.to_thread``. ``send_email`` never raises: every outcome is a
``SendResult``. The SMTP password is never logged.
"""

import asyncio
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import structlog

from todo_api.core.config import Settings

logger = structlog.get_logger(__name__)

SMTP_TIMEOUT_SECONDS = 15


@dataclass(frozen=True)
class SendResult:
    success: bool
    error: str | None = None


class EmailNotifier:
    """Notifier backed by an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        from_email: str = "",
        use_ssl: bool = False,
        sender_name: str = "Todo API",
    ):
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._from = from_email or username
        self._use_ssl = use_ssl
        self._sender_name = sender_name

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailNotifier":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_email=settings.smtp_from_email,
            use_ssl=settings.smtp_use_ssl,
            sender_name=settings.app_name,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._host and self._from)

    def format_message(self, to_address: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self._sender_name} <{self._from}>"
        msg["To"] = to_address
        msg.attach(MIMEText(html_body, "html"))
        return msg

    def _deliver(self, msg: MIMEMultipart) -> None:
        if self._use_ssl:
            server = smtplib.SMTP_SSL(self._host, self._port, timeout=SMTP_TIMEOUT_SECONDS)
        else:
            server = smtplib.SMTP(self._host, self._port, timeout=SMTP_TIMEOUT_SECONDS)
        with server:
            if not self._use_ssl:
                server.starttls()
            if self._username and self._password:
                server.login(self._username, self._password)
            server.send_message(msg)

    async def send_email(self, to_address: str, subject: str, html_body: str) -> SendResult:
        if not self.is_configured:
            logger.warning("email_not_configured", subject=subject)
            return SendResult(success=False, error="Email not configured (missing SMTP host/from address)")

        msg = self.format_message(to_address, subject, html_body)
        try:
            await asyncio.to_thread(self._deliver, msg)
        except smtplib.SMTPException as exc:
            logger.warning("email_send_failed", subject=subject, error=str(exc), error_type=type(exc).__name__)
            return SendResult(success=False, error=f"SMTP error: {exc}")
        except OSError as exc:
            logger.warning("email_send_failed", subject=subject, error=str(exc), error_type=type(exc).__name__)
            return SendResult(success=False, error=f"SMTP connection error: {exc}")

        logger.info("email_sent", subject=subject)
        return SendResult(success=True)


def payment_failed_email(app_name: str) -> tuple[str, str]:
    """Subject and HTML body telling a user their subscription ended after a failed payment."""
    subject = "Payment Failed - Subscription Canceled"
    html_body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px;">
        <h2 style="margin: 0 0 8px 0; color: #cc0000;">Payment Failed</h2>
        <p style="margin: 0 0 8px 0; color: #333;">
            We were unable to process the latest payment for your {app_name} subscription,
            so the subscription has been canceled.
        </p>
        <p style="margin: 0; color: #333;">
            You can subscribe again at any time after updating your payment method.
        </p>
    </div>
    """
    return subject, html_body
