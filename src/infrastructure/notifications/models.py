# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core types of the notification engine.

These types flow through the whole delivery pipeline:
NotificationRequest and Recipient come in, one DeliveryResult per
(channel, recipient) pair comes out of the channels, and the aggregator
folds those results into a DeliveryReport.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ChannelType(str, Enum):
    """Available notification channel types."""

    IN_APP = "in_app"
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"


# Stable ordering used for dispatch and reporting
CHANNEL_ORDER: tuple[ChannelType, ...] = (
    ChannelType.IN_APP,
    ChannelType.PUSH,
    ChannelType.EMAIL,
    ChannelType.WHATSAPP,
    ChannelType.SMS,
)


class DeliveryStatus(str, Enum):
    """Terminal delivery status for one recipient on one channel."""

    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class NotificationPriority(str, Enum):
    """Notification priority. HIGH forces an SMS attempt."""

    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"


class NotificationType(str, Enum):
    """Notification type, stored on the in-app record."""

    CUSTOM = "CUSTOM"
    ABSENCE = "ABSENCE"
    TEST = "TEST"


@dataclass(frozen=True)
class Recipient:
    """A person addressable on zero or more channels.

    Supplied by the recipient resolver and never modified by the engine.

    Attributes:
        id: Recipient identifier (parent profile id).
        display_name: Name used in greetings.
        email: Email address.
        phone: Raw, unformatted phone number.
        push_token: Push gateway device token.
        push_platform: Device platform (android, ios, web).
        whatsapp_opt_in: Recipient agreed to WhatsApp messages.
        notifications_enabled: Recipient allows push notifications.
    """

    id: str
    display_name: str = ""
    email: str | None = None
    phone: str | None = None
    push_token: str | None = None
    push_platform: str | None = None
    whatsapp_opt_in: bool = False
    notifications_enabled: bool = True


@dataclass(frozen=True)
class ChannelOptions:
    """Explicit per-channel switches of a request.

    In-app and push are always attempted and have no switch.
    """

    send_email: bool = True
    send_whatsapp: bool = False
    send_sms: bool = False


@dataclass(frozen=True)
class NotificationRequest:
    """A logical notification event.

    Attributes:
        title: Notification title.
        message: Notification body.
        priority: Notification priority.
        type: Notification type.
        channel_options: Per-channel switches.
        correlation_id: Related entity, typically the student id.
        sent_by: Sender identity, display only.
        data: Extra key/value payload forwarded to push.
    """

    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    type: NotificationType = NotificationType.CUSTOM
    channel_options: ChannelOptions = field(default_factory=ChannelOptions)
    correlation_id: str | None = None
    sent_by: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.title or not self.title.strip():
            raise ValueError("Notification title cannot be empty")
        if not self.message or not self.message.strip():
            raise ValueError("Notification message cannot be empty")
        # Accept plain strings from callers
        object.__setattr__(self, "priority", NotificationPriority(self.priority))
        object.__setattr__(self, "type", NotificationType(self.type))

    @property
    def sender_name(self) -> str:
        """Sender shown to recipients."""
        return self.sent_by or "School System"


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one channel for one recipient.

    Attributes:
        channel: Channel that produced the result.
        recipient_id: Recipient the result belongs to.
        status: Terminal status.
        provider_message_id: Provider side message id.
        error_detail: Failure or skip reason.
        fallback_used: Produced by a fallback provider.
        provider: Name of the provider that produced the result.
    """

    channel: ChannelType
    recipient_id: str
    status: DeliveryStatus
    provider_message_id: str | None = None
    error_detail: str | None = None
    fallback_used: bool = False
    provider: str | None = None

    @property
    def is_success(self) -> bool:
        """Check if delivery was successful."""
        return self.status == DeliveryStatus.SENT

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "channel": self.channel.value,
            "recipient_id": self.recipient_id,
            "status": self.status.value,
            "provider_message_id": self.provider_message_id,
            "error_detail": self.error_detail,
            "fallback_used": self.fallback_used,
            "provider": self.provider,
        }


@dataclass(frozen=True)
class FailureDetail:
    """A failed delivery as listed in a channel summary."""

    recipient_id: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"recipient_id": self.recipient_id, "error": self.error}


@dataclass(frozen=True)
class ChannelSummary:
    """Counters of one channel within a report."""

    attempted: bool = False
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: tuple[FailureDetail, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass(frozen=True)
class DeliveryReport:
    """Aggregated outcome of one dispatch call.

    Attributes:
        recipient_count: Number of recipients in the dispatch.
        channels: Summary per channel, every channel type present.
        channels_attempted: Number of enabled channels.
        delivery_rate: Sent messages over attempts, integer percent.
        overall_success: delivery_rate is at least 50.
        results: Every individual result, in channel order.
    """

    recipient_count: int
    channels: dict[ChannelType, ChannelSummary]
    channels_attempted: int
    delivery_rate: int
    overall_success: bool
    results: tuple[DeliveryResult, ...] = ()

    def channel(self, channel: ChannelType) -> ChannelSummary:
        """Get the summary of one channel."""
        return self.channels[channel]

    @property
    def total_sent(self) -> int:
        return sum(s.sent for s in self.channels.values())

    @property
    def total_failed(self) -> int:
        return sum(s.failed for s in self.channels.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "recipient_count": self.recipient_count,
            "channels": {
                channel.value: summary.to_dict()
                for channel, summary in self.channels.items()
            },
            "channels_attempted": self.channels_attempted,
            "delivery_rate": self.delivery_rate,
            "overall_success": self.overall_success,
        }


@dataclass(frozen=True)
class DeliveryStats:
    """Read statistics of persisted in-app notifications.

    Attributes:
        total_notifications: Records written in the period.
        delivered_notifications: Records read in the period.
        delivery_rate: Read records over written records, integer percent.
        start_date: Period start, if bounded.
        end_date: Period end, if bounded.
        error: Set when the store could not be queried.
    """

    total_notifications: int
    delivered_notifications: int
    delivery_rate: int
    start_date: datetime | None = None
    end_date: datetime | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "total_notifications": self.total_notifications,
            "delivered_notifications": self.delivered_notifications,
            "delivery_rate": self.delivery_rate,
            "period": {
                "start_date": self.start_date.isoformat() if self.start_date else None,
                "end_date": self.end_date.isoformat() if self.end_date else None,
            },
        }
        if self.error:
            data["error"] = self.error
        return data
