# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base classes for notification channels.

This module defines the abstract base class shared by all notification
channels. Each channel handles delivery through a specific medium
(in-app, push, email, SMS, WhatsApp).

Channels never raise from send_bulk(): every failure is converted into
a DeliveryResult for the recipient it concerns.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Sequence

import httpx

from src.infrastructure.notifications.batching import run_batched
from src.infrastructure.notifications.exceptions import (
    ContactValidationError,
    NotificationError,
)
from src.infrastructure.notifications.models import (
    ChannelType,
    DeliveryResult,
    DeliveryStatus,
    NotificationRequest,
    Recipient,
)


class BaseChannel(ABC):
    """Abstract base class for notification channels.

    Subclasses implement send() for one recipient. The default
    send_bulk() runs send() over all recipients through the batch
    scheduler using batch_size and batch_delay.

    Attributes:
        channel_type: The type of this channel.
        batch_size: Concurrent sends per batch.
        batch_delay: Seconds between batches.
    """

    batch_size: int = 10
    batch_delay: float = 0.0

    def __init__(self) -> None:
        """Initialize the channel."""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    @abstractmethod
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        ...

    @property
    def is_configured(self) -> bool:
        """Whether real provider credentials are available."""
        return True

    @abstractmethod
    def ineligibility_reason(self, recipient: Recipient) -> str | None:
        """Check whether a recipient can be addressed on this channel.

        Args:
            recipient: Recipient to check.

        Returns:
            None if eligible, otherwise the reason it is not.
        """
        ...

    def is_eligible(self, recipient: Recipient) -> bool:
        """Check if a recipient can be addressed on this channel."""
        return self.ineligibility_reason(recipient) is None

    @abstractmethod
    async def send(
        self, recipient: Recipient, request: NotificationRequest
    ) -> DeliveryResult:
        """Send a notification to one recipient.

        May raise; send_one() converts exceptions into results.

        Args:
            recipient: The eligible recipient.
            request: The notification to send.

        Returns:
            DeliveryResult with delivery status.
        """
        ...

    async def send_one(
        self, recipient: Recipient, request: NotificationRequest
    ) -> DeliveryResult:
        """Send to one recipient, converting any exception into a result."""
        try:
            return await self.send(recipient, request)
        except ContactValidationError as e:
            return self.create_skipped_result(recipient.id, str(e))
        except NotificationError as e:
            self.logger.warning(
                "%s delivery to %s failed: %s",
                self.channel_type.value,
                recipient.id,
                e,
            )
            return self.create_failure_result(recipient.id, str(e))
        except Exception as e:
            self.logger.error(
                "Unexpected %s error for %s: %s",
                self.channel_type.value,
                recipient.id,
                str(e),
                exc_info=True,
            )
            return self.create_failure_result(recipient.id, str(e) or type(e).__name__)

    async def send_bulk(
        self,
        recipients: Sequence[Recipient],
        request: NotificationRequest,
    ) -> list[DeliveryResult]:
        """Send a notification to many eligible recipients.

        Args:
            recipients: Recipients already filtered for eligibility.
            request: The notification to send.

        Returns:
            One result per recipient, in input order.
        """

        async def deliver(recipient: Recipient) -> DeliveryResult:
            return await self.send_one(recipient, request)

        return await run_batched(
            recipients,
            self.batch_size,
            deliver,
            inter_batch_delay=self.batch_delay,
        )

    def describe(self) -> dict[str, Any]:
        """Summarize the channel configuration for status reporting."""
        return {"configured": self.is_configured}

    async def aclose(self) -> None:
        """Release resources held by the channel."""
        return None

    def create_success_result(
        self,
        recipient_id: str,
        message_id: str | None = None,
        provider: str | None = None,
        fallback_used: bool = False,
        error_detail: str | None = None,
    ) -> DeliveryResult:
        """Create a successful delivery result.

        Args:
            recipient_id: Recipient the result belongs to.
            message_id: External message ID.
            provider: Provider that delivered the message.
            fallback_used: Delivered by a fallback provider.
            error_detail: Errors of providers tried before this one.

        Returns:
            DeliveryResult with SENT status.
        """
        return DeliveryResult(
            channel=self.channel_type,
            recipient_id=recipient_id,
            status=DeliveryStatus.SENT,
            provider_message_id=message_id,
            provider=provider,
            fallback_used=fallback_used,
            error_detail=error_detail,
        )

    def create_failure_result(
        self,
        recipient_id: str,
        error_message: str,
        provider: str | None = None,
    ) -> DeliveryResult:
        """Create a failed delivery result.

        Args:
            recipient_id: Recipient the result belongs to.
            error_message: Error description.
            provider: Provider that failed, if known.

        Returns:
            DeliveryResult with FAILED status.
        """
        return DeliveryResult(
            channel=self.channel_type,
            recipient_id=recipient_id,
            status=DeliveryStatus.FAILED,
            error_detail=error_message,
            provider=provider,
        )

    def create_skipped_result(self, recipient_id: str, reason: str) -> DeliveryResult:
        """Create a skipped delivery result.

        Args:
            recipient_id: Recipient the result belongs to.
            reason: Why the send was skipped.

        Returns:
            DeliveryResult with SKIPPED status.
        """
        return DeliveryResult(
            channel=self.channel_type,
            recipient_id=recipient_id,
            status=DeliveryStatus.SKIPPED,
            error_detail=reason,
        )


class HttpChannel(BaseChannel):
    """Channel talking to an HTTP provider through httpx.

    A client passed in is shared and left open. Without one, the channel
    creates its own client on first use and closes it in aclose().
    """

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 30.0) -> None:
        super().__init__()
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating it if needed."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this channel created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
