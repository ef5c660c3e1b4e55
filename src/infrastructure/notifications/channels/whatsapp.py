# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""WhatsApp notification channel using the Meta Graph API.

Messages are sent one at a time with a short pause in between to stay
under the Business API rate limit. Without credentials the channel skips
every recipient rather than pretending to deliver.

The channel also handles the inbound side of the integration: webhook
subscription verification and parsing of message and status events.

Configuration (via environment variables):
- META_ACCESS_TOKEN: Graph API bearer token
- META_PHONE_NUMBER_ID: Sending phone number id
- META_BUSINESS_ACCOUNT_ID: WhatsApp business account id
- META_WEBHOOK_VERIFY_TOKEN: Webhook verification token
"""

import hmac
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Sequence

import httpx

from src.infrastructure.notifications.batching import run_batched
from src.infrastructure.notifications.channels.base import HttpChannel
from src.infrastructure.notifications.exceptions import (
    ConfigurationError,
    ContactValidationError,
    ProviderError,
)
from src.infrastructure.notifications.models import (
    ChannelType,
    DeliveryResult,
    NotificationRequest,
    Recipient,
)
from src.infrastructure.notifications.phone import to_whatsapp_id
from src.utils.datetime import format_display_date, utc_now

if TYPE_CHECKING:
    from src.core.config.settings import WhatsAppSettings

PROVIDER_NAME = "meta"
NOT_CONFIGURED = "WhatsApp service not configured"
TEMPLATE_LANGUAGE = "en_US"


@dataclass(frozen=True)
class InboundMessage:
    """A message a parent sent to the business number."""

    sender: str
    message_id: str
    timestamp: str | None
    type: str
    text: str | None = None


@dataclass(frozen=True)
class MessageStatus:
    """A delivery status update for a message we sent."""

    message_id: str
    status: str
    timestamp: str | None
    recipient_id: str | None


@dataclass
class WebhookEvents:
    """Events extracted from one webhook payload."""

    messages: list[InboundMessage] = field(default_factory=list)
    statuses: list[MessageStatus] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.messages and not self.statuses


def build_whatsapp_text(
    request: NotificationRequest,
    sent_at: datetime | None = None,
) -> str:
    """Build the WhatsApp message body for a notification."""
    when = format_display_date(sent_at or utc_now(), with_time=True)
    return (
        f"📢 *{request.title}*\n\n"
        f"{request.message}\n\n"
        "---\n"
        f"Sent by: *{request.sender_name}* (SYSTEM)\n"
        f"📅 {when}"
    )


class WhatsAppChannel(HttpChannel):
    """WhatsApp notification channel using the Meta Graph API.

    Only recipients who opted in and have a phone number are addressed.
    """

    def __init__(
        self,
        settings: "WhatsAppSettings",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the WhatsApp channel.

        Args:
            settings: Graph API settings.
            client: Shared HTTP client, created on demand if omitted.
        """
        super().__init__(client=client, timeout=settings.timeout)
        self.settings = settings
        if not settings.is_configured:
            self.logger.warning(
                "WhatsApp notifications disabled: META_ACCESS_TOKEN, "
                "META_PHONE_NUMBER_ID or META_BUSINESS_ACCOUNT_ID not set"
            )

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.WHATSAPP

    @property
    def is_configured(self) -> bool:
        return self.settings.is_configured

    def ineligibility_reason(self, recipient: Recipient) -> str | None:
        if not recipient.whatsapp_opt_in:
            return "WhatsApp not enabled by recipient"
        if not recipient.phone:
            return "No phone number"
        return None

    def describe(self) -> dict[str, Any]:
        return {
            "configured": self.is_configured,
            "api_version": self.settings.api_version,
            "phone_number_id": self.settings.phone_number_id,
        }

    def _headers(self) -> dict[str, str]:
        if self.settings.access_token is None:
            raise ConfigurationError(NOT_CONFIGURED)
        return {"Authorization": f"Bearer {self.settings.access_token.get_secret_value()}"}

    async def send_bulk(
        self,
        recipients: Sequence[Recipient],
        request: NotificationRequest,
    ) -> list[DeliveryResult]:
        """Send messages sequentially with settings.message_delay between them.

        Every recipient is skipped when the channel is not configured.
        """
        if not self.is_configured:
            return [self.create_skipped_result(r.id, NOT_CONFIGURED) for r in recipients]

        async def deliver(recipient: Recipient) -> DeliveryResult:
            return await self.send_one(recipient, request)

        return await run_batched(
            recipients,
            1,
            deliver,
            inter_batch_delay=self.settings.message_delay,
        )

    async def send(
        self, recipient: Recipient, request: NotificationRequest
    ) -> DeliveryResult:
        """Send a notification to one recipient.

        Raises:
            ContactValidationError: If the phone number is unusable.
            ProviderError: If the Graph API rejects the message.
        """
        if not self.is_configured:
            return self.create_skipped_result(recipient.id, NOT_CONFIGURED)

        message_id = await self.send_text_message(
            recipient.phone, build_whatsapp_text(request)
        )
        self.logger.info(
            "WhatsApp notification sent to parent %s. Message ID: %s",
            recipient.id,
            message_id,
        )
        return self.create_success_result(
            recipient.id,
            message_id=message_id,
            provider=PROVIDER_NAME,
        )

    async def send_text_message(self, phone: str | None, body: str) -> str:
        """Send a plain text message and return its WhatsApp message id.

        Raises:
            ConfigurationError: If credentials are missing.
            ContactValidationError: If the phone number is unusable.
            ProviderError: If the Graph API call fails.
        """
        return await self._send_message(
            phone,
            {"type": "text", "text": {"preview_url": False, "body": body}},
        )

    async def send_template_message(
        self,
        phone: str | None,
        template_name: str,
        template_params: Sequence[str] = (),
        language: str = TEMPLATE_LANGUAGE,
    ) -> str:
        """Send a pre-approved template message and return its message id.

        Templates are required to open a conversation with a parent who
        has not written to the business number in the last 24 hours.

        Args:
            phone: Destination phone number.
            template_name: Name of the approved template.
            template_params: Values for the template body placeholders.
            language: Template language code.

        Raises:
            ConfigurationError: If credentials are missing.
            ContactValidationError: If the phone number is unusable.
            ProviderError: If the Graph API call fails.
        """
        if not template_name:
            raise ValueError("Template name is required")

        template: dict[str, Any] = {"name": template_name, "language": {"code": language}}
        if template_params:
            template["components"] = [
                {
                    "type": "body",
                    "parameters": [{"type": "text", "text": str(p)} for p in template_params],
                }
            ]

        message_id = await self._send_message(phone, {"type": "template", "template": template})
        self.logger.info("WhatsApp template %s sent. Message ID: %s", template_name, message_id)
        return message_id

    async def _send_message(self, phone: str | None, content: dict[str, Any]) -> str:
        if not self.is_configured:
            raise ConfigurationError(NOT_CONFIGURED)
        if not phone:
            raise ContactValidationError("Invalid phone number format")
        to = to_whatsapp_id(phone, self.settings.default_country_code)

        payload = {"messaging_product": "whatsapp", "to": to, **content}
        url = f"{self.settings.base_url}/{self.settings.phone_number_id}/messages"
        data = await self._request("POST", url, json=payload)

        try:
            return data["messages"][0]["id"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(PROVIDER_NAME, "Response carried no message id", original_error=e) from e

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self.client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(PROVIDER_NAME, "Graph API request failed", original_error=e) from e

        if response.status_code >= 400:
            try:
                message = response.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                message = response.text or "Failed to send WhatsApp message"
            raise ProviderError(PROVIDER_NAME, message, status_code=response.status_code)

        return response.json()

    async def test_connection(self) -> dict[str, Any]:
        """Check the credentials against the business profile and phone number.

        Returns:
            Dictionary with success flag and either the profile and phone
            details or the error message.
        """
        if not self.is_configured:
            return {"success": False, "error": NOT_CONFIGURED}

        try:
            profile = await self._request(
                "GET",
                f"{self.settings.base_url}/{self.settings.business_account_id}",
                params={"fields": "id,name,verification_status"},
            )
            phone = await self._request(
                "GET",
                f"{self.settings.base_url}/{self.settings.phone_number_id}",
                params={"fields": "id,display_phone_number,verified_name,quality_rating"},
            )
        except ProviderError as e:
            self.logger.error("Meta WhatsApp connection test failed: %s", e)
            return {"success": False, "error": str(e)}

        return {
            "success": True,
            "message": "Meta WhatsApp connection successful",
            "business_profile": profile,
            "phone_number_info": phone,
        }

    def verify_webhook(self, mode: str | None, token: str | None, challenge: str | None) -> str | None:
        """Answer a webhook subscription handshake.

        Args:
            mode: hub.mode query parameter.
            token: hub.verify_token query parameter.
            challenge: hub.challenge query parameter.

        Returns:
            The challenge to echo back, or None if verification fails.
        """
        expected = self.settings.webhook_verify_token
        if mode != "subscribe" or expected is None or token is None:
            self.logger.warning("WhatsApp webhook verification failed")
            return None
        if not hmac.compare_digest(token.encode(), expected.get_secret_value().encode()):
            self.logger.warning("WhatsApp webhook verification failed: token mismatch")
            return None
        self.logger.info("WhatsApp webhook verified")
        return challenge

    def handle_webhook(self, payload: dict[str, Any]) -> WebhookEvents:
        """Extract inbound messages and status updates from a webhook payload.

        Payloads for other objects, and changes other than "messages",
        are ignored.
        """
        events = WebhookEvents()
        if payload.get("object") != "whatsapp_business_account":
            return events

        for entry in payload.get("entry", []):
            for change in entry.get("changes", []):
                if change.get("field") != "messages":
                    continue
                value = change.get("value", {})

                for message in value.get("messages", []):
                    events.messages.append(
                        InboundMessage(
                            sender=message.get("from", ""),
                            message_id=message.get("id", ""),
                            timestamp=message.get("timestamp"),
                            type=message.get("type", "unknown"),
                            text=(message.get("text") or {}).get("body"),
                        )
                    )

                for status in value.get("statuses", []):
                    events.statuses.append(
                        MessageStatus(
                            message_id=status.get("id", ""),
                            status=status.get("status", ""),
                            timestamp=status.get("timestamp"),
                            recipient_id=status.get("recipient_id"),
                        )
                    )

        for message in events.messages:
            self.logger.info("Received WhatsApp %s message from %s", message.type, message.sender)
        for status in events.statuses:
            self.logger.debug("WhatsApp message %s status: %s", status.message_id, status.status)

        return events
