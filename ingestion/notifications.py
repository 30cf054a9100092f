"""
Email notifications for import failures and recoveries.

Delivery problems never propagate: a missing address is logged at debug
level, a missing SMTP host is logged as a warning, and SMTP errors are
logged as errors.
"""

import asyncio
import smtplib
from email.message import EmailMessage
from html import escape
from typing import Optional

from core.config import settings
from schemas.imports import ImportResult
import logging

logger = logging.getLogger(__name__)

_STYLE = """
        body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
        .header { background-color: %s; color: white; padding: 20px; }
        .content { padding: 20px; }
        .details { background-color: #f8f9fa; padding: 15px; border-radius: 5px; margin: 15px 0; }
        .label { font-weight: bold; color: #666; }
        .footer { padding: 20px; font-size: 12px; color: #666; border-top: 1px solid #ddd; }
"""


def _detail(label: str, value) -> str:
    return f"<p><span class='label'>{escape(label)}:</span> {escape(str(value if value is not None else ''))}</p>"


def _page(title: str, colour: str, body: str) -> str:
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n    <style>"
        + _STYLE % colour
        + "    </style>\n</head>\n<body>\n"
        + f"    <div class='header'><h2>{escape(title)}</h2></div>\n"
        + f"    <div class='content'>\n{body}\n    </div>\n"
        + "    <div class='footer'><p>This is an automated message from the import service.</p></div>\n"
        + "</body>\n</html>"
    )


def build_failure_body(config, result: ImportResult, total_attempts: int) -> str:
    errors = "<br/>".join(f"&bull; {escape(error)}" for error in result.errors)
    body = "\n".join([
        f"<p>The scheduled import <strong>{escape(config.name)}</strong> has failed "
        f"after {total_attempts} attempt(s).</p>",
        "<div class='details'>",
        _detail("Configuration", config.name),
        _detail("Source ID", config.target_source_id),
        _detail("Content Type", config.target_content_type),
        _detail("API URL", config.api_url),
        _detail("Duration", f"{result.duration_seconds:.1f} seconds"),
        "</div>",
        "<h3>Errors:</h3>",
        "<div class='details'>",
        f"<p>{errors}</p>" if errors else "<p>No specific error details available.</p>",
        "</div>",
        "<h3>Statistics:</h3>",
        "<div class='details'>",
        _detail("Items Received", result.total_items_received),
        _detail("Items Imported", result.items_imported),
        _detail("Items Skipped", result.items_skipped),
        _detail("Items Failed", result.items_failed),
        "</div>",
        "<p>Retries continue with increasing delays. Please review the configuration "
        "and the external API to resolve the issue.</p>",
    ])
    return _page(f"Import Failed: {config.name}", "#dc3545", body)


def build_recovery_body(config, result: ImportResult) -> str:
    body = "\n".join([
        f"<p>The scheduled import <strong>{escape(config.name)}</strong> has recovered "
        "and completed successfully.</p>",
        "<div class='details'>",
        _detail("Configuration", config.name),
        _detail("Source ID", config.target_source_id),
        _detail("Content Type", config.target_content_type),
        _detail("Duration", f"{result.duration_seconds:.1f} seconds"),
        "</div>",
        "<h3>Statistics:</h3>",
        "<div class='details'>",
        _detail("Items Received", result.total_items_received),
        _detail("Items Imported", result.items_imported),
        _detail("Items Skipped", result.items_skipped),
        "</div>",
    ])
    return _page(f"Import Recovered: {config.name}", "#28a745", body)


class NotificationDispatcher:
    """
    Sends HTML emails to a configuration's notification address.

    SMTP parameters default to the application settings.
    """

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_email: Optional[str] = None,
        use_tls: Optional[bool] = None,
    ):
        self.smtp_host = smtp_host if smtp_host is not None else settings.SMTP_HOST
        self.smtp_port = smtp_port or settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_USERNAME
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.from_email = from_email or settings.SMTP_FROM_EMAIL
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls

    async def send_failure_notification(self, config, result: ImportResult, total_attempts: int) -> bool:
        if not (config.notification_email or "").strip():
            logger.debug(f"No notification email configured for {config.name}, skipping failure notification")
            return False

        subject = f"[Import Failed] {config.name}"
        return await self._send_email(
            config.notification_email, subject, build_failure_body(config, result, total_attempts)
        )

    async def send_recovery_notification(self, config, result: ImportResult) -> bool:
        if not (config.notification_email or "").strip():
            logger.debug(f"No notification email configured for {config.name}, skipping recovery notification")
            return False

        subject = f"[Import Recovered] {config.name}"
        return await self._send_email(
            config.notification_email, subject, build_recovery_body(config, result)
        )

    async def _send_email(self, to_email: str, subject: str, html_body: str) -> bool:
        """Returns True only when the message was handed to the SMTP server."""
        if not self.smtp_host:
            logger.warning(f"SMTP not configured. Would have sent email to {to_email}: {subject}")
            logger.debug(f"Email body: {html_body}")
            return False

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.from_email
        message["To"] = to_email
        message.set_content("This message requires an HTML capable email client.")
        message.add_alternative(html_body, subtype="html")

        try:
            await asyncio.to_thread(self._deliver, message)
        except Exception as e:
            logger.error(
                f"Failed to send notification email to {to_email}: {subject} - {e}",
                exc_info=True
            )
            return False

        logger.info(f"Sent notification email to {to_email}: {subject}")
        return True

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as client:
            if self.use_tls:
                client.starttls()
            if self.username and self.password:
                client.login(self.username, self.password)
            client.send_message(message)
