# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Channel dispatcher.

The dispatcher decides which channels a request goes out on, filters
recipients by channel eligibility and runs every enabled channel as its
own asyncio task. Whatever a channel does, each (enabled channel,
recipient) pair ends up with exactly one DeliveryResult:

- ineligible recipients are SKIPPED with the reason,
- a channel raising fails all of its eligible recipients,
- recipients a channel forgot are FAILED("no result returned"),
- with a timeout, channels still running are cancelled and their
  recipients are FAILED("timeout").

Example:
    dispatcher = ChannelDispatcher([in_app, push, email], timeout=30)
    report = await dispatcher.dispatch(request, recipients)
"""

import asyncio
from typing import Iterable, Sequence

from src.infrastructure.notifications.aggregator import merge
from src.infrastructure.notifications.channels.base import BaseChannel
from src.infrastructure.notifications.exceptions import NoRecipientsError
from src.infrastructure.notifications.models import (
    CHANNEL_ORDER,
    ChannelType,
    DeliveryReport,
    DeliveryResult,
    DeliveryStatus,
    NotificationPriority,
    NotificationRequest,
    Recipient,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

NO_RESULT = "no result returned"
TIMEOUT = "timeout"


def is_channel_requested(channel: ChannelType, request: NotificationRequest) -> bool:
    """Apply the channel selection rules of a request.

    In-app and push are always on. SMS is forced on for HIGH priority.
    """
    options = request.channel_options
    if channel in (ChannelType.IN_APP, ChannelType.PUSH):
        return True
    if channel == ChannelType.EMAIL:
        return options.send_email
    if channel == ChannelType.WHATSAPP:
        return options.send_whatsapp
    if channel == ChannelType.SMS:
        return options.send_sms or request.priority == NotificationPriority.HIGH
    return False


def _failed(channel: ChannelType, recipient_id: str, error: str) -> DeliveryResult:
    return DeliveryResult(
        channel=channel,
        recipient_id=recipient_id,
        status=DeliveryStatus.FAILED,
        error_detail=error,
    )


class ChannelDispatcher:
    """Fans a notification out over the wired channels.

    Attributes:
        channels: Channel adapters by type. Types without an adapter are
            never attempted.
        timeout: Overall time limit in seconds, None for no limit.
    """

    def __init__(
        self,
        channels: Iterable[BaseChannel],
        timeout: float | None = None,
    ) -> None:
        self.channels: dict[ChannelType, BaseChannel] = {
            channel.channel_type: channel for channel in channels
        }
        self.timeout = timeout

    def enabled_channels(self, request: NotificationRequest) -> list[ChannelType]:
        """List the channels a request will be attempted on, in report order."""
        return [
            channel
            for channel in CHANNEL_ORDER
            if channel in self.channels and is_channel_requested(channel, request)
        ]

    async def dispatch(
        self,
        request: NotificationRequest,
        recipients: Sequence[Recipient],
    ) -> DeliveryReport:
        """Send a notification and aggregate the outcome.

        Args:
            request: The notification.
            recipients: Resolved recipients. Duplicate ids are sent once.

        Returns:
            The aggregated delivery report.

        Raises:
            NoRecipientsError: If recipients is empty.
        """
        unique = self._unique(recipients)
        results = await self.collect(request, unique)
        report = merge(results, len(unique))

        logger.info(
            "notification_dispatched",
            title=request.title,
            recipient_count=report.recipient_count,
            channels_attempted=report.channels_attempted,
            delivery_rate=report.delivery_rate,
            overall_success=report.overall_success,
        )
        return report

    async def collect(
        self,
        request: NotificationRequest,
        recipients: Sequence[Recipient],
    ) -> dict[ChannelType, list[DeliveryResult]]:
        """Run all enabled channels and return their normalized results.

        Raises:
            NoRecipientsError: If recipients is empty.
        """
        if not recipients:
            raise NoRecipientsError()

        recipients = self._unique(recipients)
        enabled = self.enabled_channels(request)

        skipped: dict[ChannelType, dict[str, DeliveryResult]] = {}
        eligible: dict[ChannelType, list[Recipient]] = {}
        for channel_type in enabled:
            adapter = self.channels[channel_type]
            skipped[channel_type] = {}
            eligible[channel_type] = []
            for recipient in recipients:
                reason = adapter.ineligibility_reason(recipient)
                if reason is None:
                    eligible[channel_type].append(recipient)
                else:
                    skipped[channel_type][recipient.id] = adapter.create_skipped_result(
                        recipient.id, reason
                    )

        tasks: dict[asyncio.Task, ChannelType] = {}
        for channel_type in enabled:
            if eligible[channel_type]:
                task = asyncio.create_task(
                    self._run_channel(channel_type, eligible[channel_type], request),
                    name=f"notify-{channel_type.value}",
                )
                tasks[task] = channel_type

        done: set[asyncio.Task] = set()
        pending: set[asyncio.Task] = set()
        if tasks:
            done, pending = await asyncio.wait(tasks.keys(), timeout=self.timeout)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "notification_channels_timed_out",
                channels=[tasks[t].value for t in pending],
                timeout=self.timeout,
            )

        produced: dict[ChannelType, list[DeliveryResult]] = {}
        for task in done:
            produced[tasks[task]] = task.result()

        results: dict[ChannelType, list[DeliveryResult]] = {}
        for channel_type in enabled:
            missing_reason = NO_RESULT if channel_type in produced else TIMEOUT
            results[channel_type] = self._normalize(
                channel_type,
                recipients,
                eligible[channel_type],
                skipped[channel_type],
                produced.get(channel_type, []),
                missing_reason,
            )

        return results

    async def _run_channel(
        self,
        channel_type: ChannelType,
        recipients: list[Recipient],
        request: NotificationRequest,
    ) -> list[DeliveryResult]:
        """Run one channel, turning an escaping exception into failures."""
        adapter = self.channels[channel_type]
        try:
            return await adapter.send_bulk(recipients, request)
        except Exception as e:
            logger.exception(
                "notification_channel_failed",
                channel=channel_type.value,
                recipient_count=len(recipients),
            )
            error = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
            return [_failed(channel_type, r.id, error) for r in recipients]

    @staticmethod
    def _normalize(
        channel_type: ChannelType,
        recipients: Sequence[Recipient],
        eligible: Sequence[Recipient],
        skipped: dict[str, DeliveryResult],
        produced: Sequence[DeliveryResult],
        missing_reason: str,
    ) -> list[DeliveryResult]:
        """Keep exactly one result per recipient, in recipient order."""
        eligible_ids = {r.id for r in eligible}
        by_recipient: dict[str, DeliveryResult] = {}
        for result in produced:
            # Results for unknown recipients or other channels are dropped
            if result.recipient_id not in eligible_ids or result.channel != channel_type:
                continue
            by_recipient.setdefault(result.recipient_id, result)

        normalized: list[DeliveryResult] = []
        for recipient in recipients:
            if recipient.id in skipped:
                normalized.append(skipped[recipient.id])
            elif recipient.id in by_recipient:
                normalized.append(by_recipient[recipient.id])
            else:
                normalized.append(_failed(channel_type, recipient.id, missing_reason))
        return normalized

    @staticmethod
    def _unique(recipients: Sequence[Recipient]) -> list[Recipient]:
        seen: dict[str, Recipient] = {}
        for recipient in recipients:
            seen.setdefault(recipient.id, recipient)
        return list(seen.values())
