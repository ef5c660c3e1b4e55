# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SMS notification channel.

Each recipient is sent through the provider fallback chain. Recipients
are processed in small concurrent batches with a pause between batches
to stay under provider rate limits.

Configuration (via environment variables):
- TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN: Twilio credentials
- SMS_API_KEY, SMS_API_URL: Generic gateway credentials
- SMS_FROM_NUMBER: Sender number
- SMS_BATCH_SIZE, SMS_BATCH_DELAY: Batching (default: 5 per second)
"""

from typing import TYPE_CHECKING, Any

import httpx

from src.infrastructure.notifications.channels.base import HttpChannel
from src.infrastructure.notifications.exceptions import ContactValidationError
from src.infrastructure.notifications.models import (
    ChannelType,
    DeliveryResult,
    NotificationPriority,
    NotificationRequest,
    Recipient,
)
from src.infrastructure.notifications.phone import digits_only, to_e164
from src.infrastructure.notifications.sms_providers import (
    ProviderChain,
    build_provider_chain,
)

if TYPE_CHECKING:
    from src.core.config.settings import SmsSettings

MAX_SMS_LENGTH = 320
SMS_SIGNATURE = "- School Attendance System"
EMERGENCY_HEADER = "🚨 URGENT - School Emergency Alert"
EMERGENCY_TITLE = "EMERGENCY ALERT"
TEST_SMS_TITLE = "🧪 SMS Test"
TEST_SMS_MESSAGE = (
    "This is a test SMS to verify that the SMS notification service is working correctly."
)


def build_emergency_text(message: str) -> str:
    """Wrap an emergency message in the urgent alert layout."""
    return (
        f"{EMERGENCY_HEADER}\n\n"
        f"{message}\n\n"
        "Please contact school immediately if needed.\n\n"
        "- School Administration"
    )


def build_sms_text(title: str, message: str) -> str:
    """Build the SMS body, truncated to two SMS segments."""
    text = f"🎓 {title}\n\n{message}\n\n{SMS_SIGNATURE}".strip()
    if len(text) > MAX_SMS_LENGTH:
        return text[: MAX_SMS_LENGTH - 3] + "..."
    return text


class SmsChannel(HttpChannel):
    """SMS notification channel backed by a provider fallback chain."""

    def __init__(
        self,
        settings: "SmsSettings",
        client: httpx.AsyncClient | None = None,
        chain: ProviderChain | None = None,
    ) -> None:
        """Initialize the SMS channel.

        Args:
            settings: SMS settings.
            client: Shared HTTP client, created on demand if omitted.
            chain: Provider chain to use instead of building one.
        """
        super().__init__(client=client, timeout=settings.timeout)
        self.settings = settings
        self.batch_size = settings.batch_size
        self.batch_delay = settings.batch_delay
        self.chain = chain or build_provider_chain(settings, self.client)

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.SMS

    @property
    def is_configured(self) -> bool:
        return self.settings.twilio_configured or self.settings.generic_configured

    def ineligibility_reason(self, recipient: Recipient) -> str | None:
        if not recipient.phone or not digits_only(recipient.phone):
            return "No phone number"
        return None

    def describe(self) -> dict[str, Any]:
        return {"configured": self.is_configured, **self.chain.describe()}

    async def send(
        self, recipient: Recipient, request: NotificationRequest
    ) -> DeliveryResult:
        """Send an SMS to one recipient through the provider chain.

        Raises:
            ContactValidationError: If the phone number is unusable.
        """
        if not recipient.phone:
            raise ContactValidationError("No phone number")

        phone = to_e164(recipient.phone, self.settings.default_country_code)
        text = build_sms_text(request.title, request.message)

        result = await self.chain.send(recipient.id, phone, text)
        if result.fallback_used:
            self.logger.info("SMS to %s sent via fallback provider %s", phone, result.provider)
        else:
            self.logger.info("SMS sent to %s: %s", phone, result.provider_message_id)
        return result

    async def send_emergency(self, recipient: Recipient, message: str) -> DeliveryResult:
        """Send an urgent alert to one recipient.

        The message is wrapped in the emergency layout and sent with HIGH
        priority through the same provider chain.
        """
        request = NotificationRequest(
            title=EMERGENCY_TITLE,
            message=build_emergency_text(message),
            priority=NotificationPriority.HIGH,
        )
        self.logger.warning("Sending emergency SMS to parent %s", recipient.id)
        return await self.send_one(recipient, request)

    async def test_service(self, test_phone: str = "+1234567890") -> DeliveryResult:
        """Send a test SMS to check the provider chain.

        Args:
            test_phone: Number the test message goes to.

        Returns:
            The delivery result. fallback_used tells whether the message
            only reached the mock provider or a fallback.
        """
        recipient = Recipient(id="sms-test", display_name="Test Parent", phone=test_phone)
        request = NotificationRequest(title=TEST_SMS_TITLE, message=TEST_SMS_MESSAGE)

        result = await self.send_one(recipient, request)
        if not result.is_success:
            self.logger.error("SMS service test failed: %s", result.error_detail)
        elif result.fallback_used:
            self.logger.warning("SMS service test passed via fallback provider %s", result.provider)
        else:
            self.logger.info("SMS service test passed via %s", result.provider)
        return result
