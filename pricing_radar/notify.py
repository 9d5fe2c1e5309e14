"""
Notify module for the Pricing Radar pipeline.

This module renders pricing-change alert emails and delivers them over SMTP
with TLS. Delivery failures are logged and reported as False; they never
raise into the orchestrator.
"""

import html
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import format_datetime
from typing import Optional

from pricing_radar.models import ChangeResult, MonitorTarget
from pricing_radar.utils import get_logger, utcnow


# Module logger
logger = get_logger("notify")

DEFAULT_SMTP_TIMEOUT = 30

KIND_LABELS = {
    "price_change": "Price change",
    "tier_change": "Plan / tier change",
    "feature_change": "Feature change",
    "copy_change": "Copy change",
}


class EmailNotificationError(Exception):
    """Custom exception for email notification errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


@dataclass
class SmtpConfig:
    """SMTP connection settings."""
    host: str
    port: int
    user: str
    password: str
    email_from: str
    reply_to: Optional[str] = None
    timeout: int = DEFAULT_SMTP_TIMEOUT


@dataclass
class AlertMessage:
    """A rendered alert: subject plus HTML and plain-text bodies."""
    subject: str
    html_body: str
    plain_body: str


def format_alert_subject(target: MonitorTarget) -> str:
    return f"🚨 Pricing change detected: {target.name}"


def format_alert_html(
    target: MonitorTarget,
    change: ChangeResult,
    snippet: str = "",
    detected_at: Optional[datetime] = None
) -> str:
    """
    Format the alert email body as HTML.

    Args:
        target: The monitor whose page changed.
        change: Classified change.
        snippet: Short "-"/"+" diff excerpt, may be empty.
        detected_at: Detection time, defaults to now.

    Returns:
        HTML string for the email body.
    """
    timestamp = (detected_at or utcnow()).strftime("%Y-%m-%d %H:%M UTC")
    name = html.escape(target.name)
    url = html.escape(target.url, quote=True)
    kind_label = KIND_LABELS.get(change.kind, change.kind)

    html_lines = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '  <meta charset="utf-8">',
        "</head>",
        '<body style="font-family: sans-serif; max-width: 600px; margin: 0 auto; padding: 24px;">',
        '  <h2 style="color: #ef4444; margin-bottom: 8px;">🚨 Pricing Change Detected</h2>',
        '  <p style="color: #6b7280; margin-bottom: 24px;">',
        f"    Pricing Radar spotted a change on <strong>{name}</strong> ({timestamp})",
        "  </p>",
        '  <div style="background: #fef3c7; border-left: 4px solid #f59e0b; padding: 16px; border-radius: 4px; margin-bottom: 24px;">',
        f'    <p style="margin: 0; font-size: 16px; color: #92400e;">{html.escape(change.summary)}</p>',
        "  </div>",
        '  <table style="border-collapse: collapse; margin-bottom: 24px;">',
        f'    <tr><td style="padding: 4px 12px 4px 0; color: #6b7280;">Type</td><td>{html.escape(kind_label)}</td></tr>',
        f'    <tr><td style="padding: 4px 12px 4px 0; color: #6b7280;">Plan</td><td>{html.escape(change.plan)}</td></tr>',
        f'    <tr><td style="padding: 4px 12px 4px 0; color: #6b7280;">Before</td><td>{html.escape(change.old_value) or "&mdash;"}</td></tr>',
        f'    <tr><td style="padding: 4px 12px 4px 0; color: #6b7280;">After</td><td>{html.escape(change.new_value) or "&mdash;"}</td></tr>',
        "  </table>",
    ]

    if snippet:
        html_lines.extend([
            '  <p style="margin-bottom: 4px; color: #374151;"><strong>What changed on the page:</strong></p>',
            f'  <pre style="background: #f3f4f6; padding: 12px; border-radius: 4px; white-space: pre-wrap;">{html.escape(snippet)}</pre>',
        ])

    html_lines.extend([
        '  <p style="margin-bottom: 4px; color: #374151;"><strong>Source URL:</strong></p>',
        f'  <a href="{url}" style="color: #3b82f6; word-break: break-all;">{url}</a>',
        '  <hr style="margin: 24px 0; border: none; border-top: 1px solid #e5e7eb;" />',
        '  <p style="color: #9ca3af; font-size: 12px;">',
        "    Alerts are sent only when meaningful pricing changes are detected.<br/>",
        "    Powered by Pricing Radar.",
        "  </p>",
        "</body>",
        "</html>",
    ])

    return "\n".join(html_lines)


def format_alert_plain(
    target: MonitorTarget,
    change: ChangeResult,
    snippet: str = "",
    detected_at: Optional[datetime] = None
) -> str:
    """
    Format the alert email body as plain text.

    Args:
        target: The monitor whose page changed.
        change: Classified change.
        snippet: Short "-"/"+" diff excerpt, may be empty.
        detected_at: Detection time, defaults to now.

    Returns:
        Plain text string for the email body.
    """
    timestamp = (detected_at or utcnow()).strftime("%Y-%m-%d %H:%M UTC")

    lines = [
        f"PRICING CHANGE DETECTED: {target.name}",
        "=" * 50,
        "",
        f"Detection Time: {timestamp}",
        "",
        change.summary,
        "",
        f"Type:   {KIND_LABELS.get(change.kind, change.kind)}",
        f"Plan:   {change.plan}",
        f"Before: {change.old_value or '-'}",
        f"After:  {change.new_value or '-'}",
        "",
    ]

    if snippet:
        lines.extend([
            "What changed on the page:",
            snippet,
            "",
        ])

    lines.extend([
        f"Source URL: {target.url}",
        "",
        "-" * 50,
        "Alerts are sent only when meaningful pricing changes are detected.",
        "Powered by Pricing Radar.",
    ])

    return "\n".join(lines)


def render_alert_message(
    target: MonitorTarget,
    change: ChangeResult,
    snippet: str = "",
    detected_at: Optional[datetime] = None
) -> AlertMessage:
    """Render subject and both bodies for one alert."""
    return AlertMessage(
        subject=format_alert_subject(target),
        html_body=format_alert_html(target, change, snippet, detected_at),
        plain_body=format_alert_plain(target, change, snippet, detected_at),
    )


def build_email(config: SmtpConfig, recipient: str, message: AlertMessage) -> EmailMessage:
    """Build a multipart/alternative email for an alert."""
    msg = EmailMessage()
    msg["Subject"] = message.subject
    msg["From"] = config.email_from
    msg["To"] = recipient
    msg["Date"] = format_datetime(utcnow())
    if config.reply_to:
        msg["Reply-To"] = config.reply_to

    msg.set_content(message.plain_body)
    msg.add_alternative(message.html_body, subtype="html")

    return msg


def _open_smtp(config: SmtpConfig, timeout: int) -> smtplib.SMTP:
    ssl_context = ssl.create_default_context()

    if config.port == 465:
        # Port 465 uses implicit SSL (SMTP_SSL)
        logger.debug("Using SMTP_SSL (implicit TLS) for port 465")
        return smtplib.SMTP_SSL(config.host, config.port, timeout=timeout, context=ssl_context)

    # Port 587 (and others) use STARTTLS
    logger.debug(f"Using SMTP with STARTTLS for port {config.port}")
    server = smtplib.SMTP(config.host, config.port, timeout=timeout)
    try:
        server.starttls(context=ssl_context)
    except Exception:
        server.close()
        raise
    return server


class EmailNotifier:
    """
    Sends alert emails over SMTP.

    With dry_run=True messages are logged instead of sent, and a missing
    SMTP configuration is tolerated.
    """

    def __init__(self, config: Optional[SmtpConfig], dry_run: bool = False):
        if config is None and not dry_run:
            raise ValueError("SMTP configuration is required unless dry_run is set")
        self.config = config
        self.dry_run = dry_run

    def deliver(self, recipient: str, message: AlertMessage) -> None:
        """
        Deliver one alert email over SMTP.

        Raises:
            EmailNotificationError: If the message could not be sent.
        """
        config = self.config
        assert config is not None

        try:
            msg = build_email(config, recipient, message)

            logger.info(f"Connecting to SMTP server: {config.host}:{config.port}")

            with _open_smtp(config, config.timeout) as server:
                server.login(config.user, config.password)
                server.send_message(msg)

        except smtplib.SMTPAuthenticationError as e:
            raise EmailNotificationError(f"SMTP authentication failed: {e}", e)

        except smtplib.SMTPConnectError as e:
            raise EmailNotificationError(f"Failed to connect to SMTP server: {e}", e)

        except smtplib.SMTPException as e:
            raise EmailNotificationError(f"SMTP error while sending email: {e}", e)

        except ssl.SSLError as e:
            raise EmailNotificationError(f"SSL/TLS error while sending email: {e}", e)

        except (TimeoutError, OSError) as e:
            raise EmailNotificationError(f"Network error while sending email: {e}", e)

    def send(self, recipient: str, message: AlertMessage) -> bool:
        """
        Send one alert email without raising.

        Args:
            recipient: Destination address.
            message: Rendered alert.

        Returns:
            True if the email was sent (or logged in dry-run mode), False otherwise.
        """
        if self.dry_run:
            logger.info(f"[DRY RUN] Would send email to: {recipient}")
            logger.info(f"[DRY RUN] Subject: {message.subject}")
            logger.debug(f"[DRY RUN] Plain body:\n{message.plain_body}")
            return True

        try:
            self.deliver(recipient, message)
        except EmailNotificationError as e:
            logger.error(f"Alert email to {recipient} failed: {e}")
            return False

        logger.info(f"Alert email sent to {recipient}")
        return True

    def check_connection(self) -> bool:
        """
        Verify SMTP connection and credentials.

        Returns:
            True if connection is successful, False otherwise.
        """
        if self.config is None:
            logger.debug("Email not configured, skipping connection check")
            return False

        try:
            with _open_smtp(self.config, timeout=10) as server:
                server.login(self.config.user, self.config.password)

            logger.debug(f"Email connection OK, authenticated with {self.config.user}")
            return True

        except (smtplib.SMTPException, ssl.SSLError, OSError) as e:
            logger.warning(f"Email connection check failed: {e}")
            return False
