# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Email notification channel using async SMTP.

This channel sends email notifications using aiosmtplib for async SMTP
communication. Each message carries a plain text and a priority-colored
HTML version.

The SMTP transport is set up once per channel. When credentials are
missing or the server cannot be verified, the channel falls back to a
mock transport that only logs the message and reports it as sent, so
development setups keep working without a mail server.

Configuration (via environment variables):
- EMAIL_HOST: SMTP server hostname (default: smtp.gmail.com)
- EMAIL_PORT: SMTP server port (default: 587)
- EMAIL_SECURE: Use implicit TLS (default: false)
- EMAIL_USER: SMTP authentication username
- EMAIL_PASSWORD: SMTP authentication password
- EMAIL_FROM: Sender email address
- EMAIL_FROM_NAME: Sender display name
"""

import asyncio
import html
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import TYPE_CHECKING, Any, Protocol
from uuid import uuid4

import aiosmtplib

from src.infrastructure.notifications.channels.base import BaseChannel
from src.infrastructure.notifications.exceptions import (
    ContactValidationError,
    ProviderError,
)
from src.infrastructure.notifications.models import (
    ChannelType,
    DeliveryResult,
    NotificationPriority,
    NotificationRequest,
    Recipient,
)

if TYPE_CHECKING:
    from src.core.config.settings import EmailSettings

logger = logging.getLogger(__name__)

PRIORITY_COLORS = {
    NotificationPriority.LOW: "#6B7280",
    NotificationPriority.NORMAL: "#3B82F6",
    NotificationPriority.HIGH: "#EF4444",
}

PRIORITY_LABELS = {
    NotificationPriority.LOW: "Low Priority",
    NotificationPriority.NORMAL: "Normal",
    NotificationPriority.HIGH: "🚨 High Priority",
}

X_PRIORITY = {
    NotificationPriority.LOW: "5",
    NotificationPriority.NORMAL: "3",
    NotificationPriority.HIGH: "1",
}

MAILER_NAME = "School Attendance System"
TEST_EMAIL_TITLE = "🧪 Email Service Test"
TEST_EMAIL_MESSAGE = (
    "This is a test email to verify that the email notification service is "
    "working correctly. If you receive this, the service is functioning properly!"
)


class EmailTransport(Protocol):
    """Something that can hand a MIME message to a mail system."""

    name: str

    async def send(self, message: MIMEMultipart) -> str:
        """Send the message and return its message id."""
        ...


class SmtpTransport:
    """Transport sending through an SMTP server with aiosmtplib."""

    name = "smtp"

    def __init__(self, settings: "EmailSettings") -> None:
        self.settings = settings

    def _connection_options(self) -> dict[str, Any]:
        password = self.settings.password
        return {
            "hostname": self.settings.host,
            "port": self.settings.port,
            "username": self.settings.user,
            "password": password.get_secret_value() if password else None,
            "use_tls": self.settings.secure,
            "start_tls": False if self.settings.secure else None,
            "timeout": self.settings.timeout,
        }

    async def verify(self) -> None:
        """Connect and authenticate once to check the credentials.

        Raises:
            ProviderError: If the server is unreachable or rejects the login.
        """
        options = self._connection_options()
        smtp = aiosmtplib.SMTP(
            hostname=options["hostname"],
            port=options["port"],
            use_tls=options["use_tls"],
            start_tls=options["start_tls"],
            timeout=options["timeout"],
        )
        try:
            await smtp.connect()
            await smtp.login(options["username"], options["password"])
            await smtp.quit()
        except (aiosmtplib.SMTPException, OSError) as e:
            raise ProviderError(self.name, "SMTP verification failed", original_error=e) from e

    async def send(self, message: MIMEMultipart) -> str:
        try:
            await aiosmtplib.send(message, **self._connection_options())
        except (aiosmtplib.SMTPException, OSError) as e:
            raise ProviderError(self.name, "SMTP send failed", original_error=e) from e
        return message["Message-ID"]


class MockEmailTransport:
    """Transport that only logs messages, used when SMTP is unavailable."""

    name = "mock"

    def __init__(self, reason: str = "SMTP not configured") -> None:
        self.reason = reason

    async def send(self, message: MIMEMultipart) -> str:
        logger.info(
            "[MOCK] Email would be sent to %s: %s",
            message["To"],
            message["Subject"],
        )
        return f"mock-{uuid4().hex}"


class EmailChannel(BaseChannel):
    """Email notification channel using async SMTP.

    Sends one email per recipient, at most settings.concurrency at a
    time. A transport can be injected; otherwise it is resolved on first
    use from the settings.
    """

    def __init__(
        self,
        settings: "EmailSettings",
        transport: EmailTransport | None = None,
    ) -> None:
        """Initialize the email channel.

        Args:
            settings: SMTP settings.
            transport: Transport to use instead of resolving one.
        """
        super().__init__()
        self.settings = settings
        self.batch_size = settings.concurrency
        self._transport = transport
        self._transport_lock = asyncio.Lock()

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.EMAIL

    @property
    def is_configured(self) -> bool:
        return self.settings.is_configured

    @property
    def transport_mode(self) -> str:
        """Name of the transport in use.

        Before the first send this is the transport the settings imply:
        "smtp" with credentials, "mock" without.
        """
        if self._transport is not None:
            return self._transport.name
        return SmtpTransport.name if self.settings.is_configured else MockEmailTransport.name

    def ineligibility_reason(self, recipient: Recipient) -> str | None:
        if not recipient.email:
            return "No email address"
        return None

    def describe(self) -> dict[str, Any]:
        return {
            "configured": self.is_configured,
            "host": self.settings.host,
            "transport": self.transport_mode,
            "transport_resolved": self._transport is not None,
        }

    async def get_transport(self) -> EmailTransport:
        """Resolve the transport once, degrading to the mock transport."""
        async with self._transport_lock:
            if self._transport is not None:
                return self._transport

            if not self.settings.is_configured:
                self.logger.warning(
                    "Email notifications in mock mode: EMAIL_USER or EMAIL_PASSWORD not set"
                )
                self._transport = MockEmailTransport("SMTP credentials not configured")
                return self._transport

            smtp = SmtpTransport(self.settings)
            try:
                await smtp.verify()
            except ProviderError as e:
                self.logger.error("Email service initialization failed: %s", e)
                self._transport = MockEmailTransport(str(e))
                return self._transport

            self.logger.info("Email service initialized with host %s", self.settings.host)
            self._transport = smtp
            return self._transport

    async def send(
        self, recipient: Recipient, request: NotificationRequest
    ) -> DeliveryResult:
        """Send email notification to one recipient.

        Args:
            recipient: The recipient.
            request: The notification.

        Returns:
            DeliveryResult with the Message-ID.
        """
        if not recipient.email:
            raise ContactValidationError("No recipient email address")

        transport = await self.get_transport()
        message = self.build_message(recipient, request)
        message_id = await transport.send(message)

        self.logger.info("Email sent to %s: %s", recipient.email, message_id)

        return self.create_success_result(
            recipient.id,
            message_id=message_id,
            provider=transport.name,
        )

    async def test_service(self, test_email: str = "test@example.com") -> DeliveryResult:
        """Send a test email to check the SMTP setup end to end.

        Args:
            test_email: Address the test email goes to.

        Returns:
            The delivery result of the test email.
        """
        recipient = Recipient(id="email-test", display_name="Test Parent", email=test_email)
        request = NotificationRequest(
            title=TEST_EMAIL_TITLE,
            message=TEST_EMAIL_MESSAGE,
            priority=NotificationPriority.NORMAL,
            sent_by="System Administrator",
        )

        result = await self.send_one(recipient, request)
        if result.is_success:
            self.logger.info("Email service test passed via %s transport", self.transport_mode)
        else:
            self.logger.error("Email service test failed: %s", result.error_detail)
        return result

    def build_message(
        self,
        recipient: Recipient,
        request: NotificationRequest,
    ) -> MIMEMultipart:
        """Build MIME email message.

        Args:
            recipient: Recipient of the email.
            request: Notification content.

        Returns:
            MIMEMultipart message ready to send.
        """
        label = PRIORITY_LABELS[request.priority]
        message = MIMEMultipart("alternative")

        message["From"] = formataddr((self.settings.from_name, self.settings.sender_address))
        message["To"] = recipient.email
        message["Subject"] = f"[{label}] {request.title}"
        message["Message-ID"] = make_msgid(domain=self.settings.sender_address.split("@")[-1])
        message["X-Priority"] = X_PRIORITY[request.priority]
        message["X-Mailer"] = MAILER_NAME

        message.attach(MIMEText(self._build_plain_text(recipient, request), "plain", "utf-8"))
        message.attach(MIMEText(self._build_html(recipient, request), "html", "utf-8"))

        return message

    def _build_plain_text(self, recipient: Recipient, request: NotificationRequest) -> str:
        lines = [
            f"School Notification - {PRIORITY_LABELS[request.priority]}",
            "",
            request.title,
            "",
            request.message,
            "",
            f"Dear {recipient.display_name or 'Parent'},",
            f"This notification was sent by {request.sender_name} "
            "from the School Attendance Management System.",
            "",
            "---",
            "This is an automated message from the School Attendance System.",
            "Please do not reply to this email.",
        ]
        return "\n".join(lines)

    def _build_html(self, recipient: Recipient, request: NotificationRequest) -> str:
        color = PRIORITY_COLORS[request.priority]
        label = html.escape(PRIORITY_LABELS[request.priority])
        title = html.escape(request.title)
        body = html.escape(request.message).replace("\n", "<br>")
        name = html.escape(recipient.display_name or "Parent")
        sender = html.escape(request.sender_name)

        content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;
             max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
                padding: 30px; border-radius: 10px 10px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 24px;">🎓 School Notification</h1>
    </div>

    <div style="background: #f8fafc; padding: 30px; border-radius: 0 0 10px 10px;
                border: 1px solid #e5e7eb;">
        <div style="background: {color}; color: white; padding: 8px 16px;
                    border-radius: 20px; display: inline-block; font-size: 12px;
                    font-weight: bold; margin-bottom: 20px;">
            {label}
        </div>

        <h2 style="color: #1f2937; margin-bottom: 15px; font-size: 20px;">{title}</h2>

        <div style="background: white; padding: 20px; border-radius: 8px;
                    border-left: 4px solid {color}; margin-bottom: 20px;">
            <p style="margin: 0; font-size: 16px; line-height: 1.6;">{body}</p>
        </div>

        <div style="background: #f1f5f9; padding: 15px; border-radius: 6px;
                    font-size: 14px; color: #64748b;">
            <p style="margin: 0;"><strong>Dear {name},</strong></p>
            <p style="margin: 5px 0 0 0;">This notification was sent by {sender}
               from the School Attendance Management System.</p>
        </div>

        <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #e5e7eb;
                    text-align: center; font-size: 12px; color: #9ca3af;">
            <p style="margin: 0;">This is an automated message from the School Attendance System.</p>
            <p style="margin: 5px 0 0 0;">Please do not reply to this email.</p>
        </div>
    </div>
</body>
</html>
        """

        return content.strip()
