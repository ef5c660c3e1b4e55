# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-app notification channel.

This channel creates notification records that the parent app displays
in its notification center. It is the primary and most reliable channel
and is attempted for every notification.
"""

from src.infrastructure.notifications.channels.base import BaseChannel
from src.infrastructure.notifications.models import (
    ChannelType,
    DeliveryResult,
    NotificationRequest,
    Recipient,
)
from src.infrastructure.notifications.persistence import PersistenceSink


class InAppChannel(BaseChannel):
    """In-app notification channel.

    Writes one record per recipient through the persistence sink, with at
    most batch_size writes in flight.
    """

    def __init__(self, sink: PersistenceSink, batch_size: int = 50) -> None:
        """Initialize the in-app channel.

        Args:
            sink: Storage for in-app notification records.
            batch_size: Maximum concurrent record writes.
        """
        super().__init__()
        self.sink = sink
        self.batch_size = batch_size

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.IN_APP

    def ineligibility_reason(self, recipient: Recipient) -> str | None:
        if not recipient.id:
            return "Missing recipient id"
        return None

    async def send(
        self, recipient: Recipient, request: NotificationRequest
    ) -> DeliveryResult:
        """Create an in-app notification record.

        Args:
            recipient: The recipient.
            request: The notification.

        Returns:
            DeliveryResult whose message id is the record id.
        """
        record_id = await self.sink.record_in_app(
            recipient_id=recipient.id,
            correlation_id=request.correlation_id,
            type=request.type,
            title=request.title,
            message=request.message,
            priority=request.priority,
            sent_by=request.sent_by,
        )

        self.logger.info(
            "Created in-app notification %s for parent %s",
            record_id,
            recipient.id,
        )

        return self.create_success_result(
            recipient.id,
            message_id=record_id,
            provider="database",
        )
