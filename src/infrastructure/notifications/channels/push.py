# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push notification channel using the Expo push gateway.

This channel sends push notifications to the parent mobile app through
the Expo push API. Messages are posted in chunks of at most 100 and the
gateway answers with one ticket per message, in request order.

Configuration (via environment variables):
- EXPO_API_URL: Push gateway endpoint
- EXPO_ACCESS_TOKEN: Optional access token for enhanced push security
- EXPO_CHUNK_SIZE: Messages per gateway call (max 100)
"""

import re
from typing import TYPE_CHECKING, Any, Sequence

import httpx

from src.infrastructure.notifications.batching import chunked, run_batched
from src.infrastructure.notifications.channels.base import HttpChannel
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
    from src.core.config.settings import PushSettings

EXPO_TOKEN_PATTERN = re.compile(r"^Expo(nent)?PushToken\[.+\]$")
UUID_TOKEN_PATTERN = re.compile(
    r"^[a-z\d]{8}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{4}-[a-z\d]{12}$",
    re.IGNORECASE,
)

PROVIDER_NAME = "expo"


def is_push_token(token: str | None) -> bool:
    """Check that a token has the push gateway's device token format."""
    if not token:
        return False
    return bool(EXPO_TOKEN_PATTERN.match(token) or UUID_TOKEN_PATTERN.match(token))


class PushChannel(HttpChannel):
    """Push notification channel using the Expo push gateway.

    Push tokens come from Recipient.push_token. Recipients who disabled
    notifications are never addressed.
    """

    # Expo priority mapping
    PRIORITY_MAP = {
        NotificationPriority.LOW: "normal",
        NotificationPriority.NORMAL: "high",
        NotificationPriority.HIGH: "high",
    }

    def __init__(
        self,
        settings: "PushSettings",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the push channel.

        Args:
            settings: Push gateway settings.
            client: Shared HTTP client, created on demand if omitted.
        """
        super().__init__(client=client, timeout=settings.timeout)
        self.settings = settings

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.PUSH

    def ineligibility_reason(self, recipient: Recipient) -> str | None:
        if not recipient.push_token:
            return "No push token found"
        if not is_push_token(recipient.push_token):
            return "Invalid push token"
        if not recipient.notifications_enabled:
            return "Notifications disabled by recipient"
        return None

    def describe(self) -> dict[str, Any]:
        return {
            "configured": self.is_configured,
            "provider": PROVIDER_NAME,
            "access_token": self.settings.access_token is not None,
        }

    async def send(
        self, recipient: Recipient, request: NotificationRequest
    ) -> DeliveryResult:
        """Send a push notification to one device."""
        if not is_push_token(recipient.push_token):
            raise ContactValidationError(f"Invalid push token for {recipient.id}")
        results = await self._send_chunk([recipient], request)
        return results[0]

    async def send_bulk(
        self,
        recipients: Sequence[Recipient],
        request: NotificationRequest,
    ) -> list[DeliveryResult]:
        """Send push notifications in gateway sized chunks.

        Invalid tokens are skipped. A failed gateway call fails only the
        recipients of its chunk.

        Args:
            recipients: Recipients with push tokens.
            request: The notification.

        Returns:
            One result per recipient, in input order.
        """
        results: dict[str, DeliveryResult] = {}
        valid: list[Recipient] = []

        for recipient in recipients:
            if is_push_token(recipient.push_token):
                valid.append(recipient)
            else:
                self.logger.warning(
                    "Push token for parent %s is not a valid Expo push token",
                    recipient.id,
                )
                results[recipient.id] = self.create_skipped_result(
                    recipient.id, "Invalid push token"
                )

        if valid:
            chunks = chunked(valid, self.settings.chunk_size)

            async def deliver(chunk: list[Recipient]) -> list[DeliveryResult]:
                return await self._send_chunk(chunk, request)

            chunk_results = await run_batched(
                chunks,
                self.settings.max_concurrent_chunks,
                deliver,
            )
            for chunk_result in chunk_results:
                for result in chunk_result:
                    results[result.recipient_id] = result

        return [results[r.id] for r in recipients]

    async def _send_chunk(
        self,
        chunk: list[Recipient],
        request: NotificationRequest,
    ) -> list[DeliveryResult]:
        """Post one chunk and map the tickets back to recipients."""
        messages = [self._build_message(r, request) for r in chunk]

        try:
            tickets = await self._post(messages)
        except ProviderError as e:
            self.logger.error(
                "Error sending push notification chunk of %d: %s",
                len(chunk),
                e,
            )
            return [
                self.create_failure_result(r.id, str(e), provider=PROVIDER_NAME)
                for r in chunk
            ]

        results: list[DeliveryResult] = []
        for index, recipient in enumerate(chunk):
            ticket = tickets[index] if index < len(tickets) else None
            results.append(self._ticket_to_result(recipient, ticket))
        return results

    async def _post(self, messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Post messages to the gateway and return its tickets."""
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.settings.access_token is not None:
            headers["Authorization"] = (
                f"Bearer {self.settings.access_token.get_secret_value()}"
            )

        try:
            response = await self.client.post(
                self.settings.api_url,
                headers=headers,
                json=messages,
            )
        except httpx.HTTPError as e:
            raise ProviderError(PROVIDER_NAME, "Push gateway request failed", original_error=e) from e

        if response.status_code >= 400:
            raise ProviderError(PROVIDER_NAME, response.text, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError(PROVIDER_NAME, "Invalid push gateway response", original_error=e) from e

        if not isinstance(body, dict):
            raise ProviderError(PROVIDER_NAME, "Unexpected push gateway response")

        errors = body.get("errors")
        if errors:
            error = errors[0] if isinstance(errors, list) else errors
            message = error.get("message") if isinstance(error, dict) else None
            raise ProviderError(PROVIDER_NAME, message or "Push gateway error")

        data = body.get("data", [])
        # Single message requests may be answered with a bare ticket
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise ProviderError(PROVIDER_NAME, "Unexpected push gateway response")
        return data

    def _ticket_to_result(
        self,
        recipient: Recipient,
        ticket: Any,
    ) -> DeliveryResult:
        """Convert one gateway ticket into a delivery result."""
        if ticket is None:
            return self.create_failure_result(
                recipient.id, "No ticket returned", provider=PROVIDER_NAME
            )
        if not isinstance(ticket, dict):
            return self.create_failure_result(
                recipient.id, "Malformed ticket returned", provider=PROVIDER_NAME
            )

        if ticket.get("status") == "ok":
            return self.create_success_result(
                recipient.id,
                message_id=ticket.get("id"),
                provider=PROVIDER_NAME,
            )

        error = ticket.get("message") or "Push notification error"
        details = ticket.get("details")
        if isinstance(details, dict) and details.get("error"):
            error = f"{error} ({details['error']})"
        self.logger.warning("Push notification error for parent %s: %s", recipient.id, error)
        return self.create_failure_result(recipient.id, error, provider=PROVIDER_NAME)

    def _build_message(
        self,
        recipient: Recipient,
        request: NotificationRequest,
    ) -> dict[str, Any]:
        """Build the gateway message for one device.

        Args:
            recipient: Recipient owning the device token.
            request: Notification content.

        Returns:
            Expo push message dictionary.
        """
        data: dict[str, Any] = {
            "type": request.type.value.lower(),
            "priority": request.priority.value,
            **request.data,
            "parentId": recipient.id,
        }
        if request.correlation_id:
            data.setdefault("studentId", request.correlation_id)

        return {
            "to": recipient.push_token,
            "sound": "default",
            "title": request.title,
            "body": request.message,
            "data": data,
            "priority": self.PRIORITY_MAP[request.priority],
            "channelId": "default",
        }
