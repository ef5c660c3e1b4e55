# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification service for orchestrating notification delivery.

This service is the entry point of the engine:
1. Building the notification request from caller input
2. Resolving recipients when a target selection is given
3. Dispatching through all enabled channels
4. Reporting delivery statistics from the in-app store

build_notification_service() is the composition root wiring settings,
channels, dispatcher and persistence sink together.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Sequence
from uuid import uuid4

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.infrastructure.database.connection import DatabaseError
from src.infrastructure.notifications.aggregator import round_half_up
from src.infrastructure.notifications.batching import run_batched
from src.infrastructure.notifications.channels import (
    BaseChannel,
    EmailChannel,
    InAppChannel,
    PushChannel,
    SmsChannel,
    WhatsAppChannel,
)
from src.infrastructure.notifications.dispatcher import ChannelDispatcher
from src.infrastructure.notifications.exceptions import (
    ConfigurationError,
    NoRecipientsError,
    NotificationError,
)
from src.infrastructure.notifications.models import (
    ChannelOptions,
    ChannelType,
    DeliveryReport,
    DeliveryResult,
    DeliveryStats,
    NotificationPriority,
    NotificationRequest,
    NotificationType,
    Recipient,
)
from src.infrastructure.notifications.persistence import (
    PersistenceSink,
    SQLAlchemyPersistenceSink,
)
from src.infrastructure.notifications.recipients import RecipientResolver, TargetSpec
from src.infrastructure.notifications.templates import (
    build_absence_request,
    build_test_request,
)
from src.utils.datetime import coerce_datetime
from src.utils.logging import bind_context, get_logger, unbind_context

if TYPE_CHECKING:
    from src.core.config.settings import DispatchSettings, Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class BulkNotification:
    """One entry of a bulk send.

    Attributes:
        recipients: Recipients of this notification.
        request: The notification.
    """

    recipients: Sequence[Recipient]
    request: NotificationRequest


@dataclass(frozen=True)
class BulkOutcome:
    """Outcome of one bulk entry: a report, or the error that stopped it."""

    report: DeliveryReport | None = None
    error: NotificationError | None = None

    @property
    def success(self) -> bool:
        return self.report is not None and self.report.overall_success


@dataclass(frozen=True)
class AbsenceRecord:
    """An absent student and the parent to notify.

    Attributes:
        student_id: Absent student.
        student_name: Student display name.
        parent: The parent, None when the student has none on file.
        remarks: Optional teacher remarks.
    """

    student_id: str
    student_name: str
    parent: Recipient | None
    remarks: str | None = None


@dataclass(frozen=True)
class AbsenceOutcome:
    """Outcome of the notification about one absent student."""

    student_id: str
    student_name: str
    report: DeliveryReport | None = None
    error: str | None = None

    @property
    def notified(self) -> bool:
        return self.report is not None


class NotificationService:
    """Service for sending notifications to parents.

    Attributes:
        dispatcher: Dispatcher fanning requests out over the channels.
        sink: In-app record store, also the source of statistics.
        resolver: Resolves target selections, if configured.
    """

    def __init__(
        self,
        dispatcher: ChannelDispatcher,
        sink: PersistenceSink,
        resolver: RecipientResolver | None = None,
        settings: "DispatchSettings | None" = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the notification service.

        Args:
            dispatcher: Channel dispatcher.
            sink: In-app record store.
            resolver: Recipient resolver for send_to_targets().
            settings: Dispatch settings for bulk sends.
            client: HTTP client closed together with the service.
        """
        self.dispatcher = dispatcher
        self.sink = sink
        self.resolver = resolver
        self.bulk_batch_size = settings.bulk_batch_size if settings else 50
        self.bulk_batch_delay = settings.bulk_batch_delay if settings else 1.0
        self._client = client

    @property
    def channels(self) -> dict[ChannelType, BaseChannel]:
        return self.dispatcher.channels

    async def send_notification(
        self,
        recipients: Sequence[Recipient],
        title: str,
        message: str,
        *,
        priority: NotificationPriority | str = NotificationPriority.NORMAL,
        type: NotificationType | str = NotificationType.CUSTOM,
        send_email: bool = True,
        send_whatsapp: bool = False,
        send_sms: bool = False,
        correlation_id: str | None = None,
        sent_by: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> DeliveryReport:
        """Send a notification to recipients over all applicable channels.

        In-app and push are always attempted. SMS is also attempted for
        HIGH priority even when send_sms is off.

        Args:
            recipients: Resolved recipients.
            title: Notification title.
            message: Notification body.
            priority: LOW, NORMAL or HIGH.
            type: CUSTOM, ABSENCE or TEST.
            send_email: Attempt email.
            send_whatsapp: Attempt WhatsApp.
            send_sms: Attempt SMS.
            correlation_id: Related student.
            sent_by: Sender shown to recipients.
            data: Extra push payload.

        Returns:
            The aggregated delivery report.

        Raises:
            NoRecipientsError: If recipients is empty.
        """
        request = NotificationRequest(
            title=title,
            message=message,
            priority=priority,
            type=type,
            channel_options=ChannelOptions(
                send_email=send_email,
                send_whatsapp=send_whatsapp,
                send_sms=send_sms,
            ),
            correlation_id=correlation_id,
            sent_by=sent_by,
            data=dict(data or {}),
        )
        return await self.send_request(request, recipients)

    async def send_request(
        self,
        request: NotificationRequest,
        recipients: Sequence[Recipient],
    ) -> DeliveryReport:
        """Dispatch a prepared request.

        Raises:
            NoRecipientsError: If recipients is empty.
        """
        if not recipients:
            logger.warning("notification_without_recipients", title=request.title)
            raise NoRecipientsError()

        bind_context(dispatch_id=uuid4().hex)
        try:
            logger.info(
                "notification_send_started",
                title=request.title,
                type=request.type.value,
                priority=request.priority.value,
                recipient_count=len(recipients),
            )
            return await self.dispatcher.dispatch(request, recipients)
        finally:
            unbind_context("dispatch_id")

    async def send_to_targets(
        self,
        target_spec: TargetSpec,
        title: str,
        message: str,
        **options: Any,
    ) -> DeliveryReport:
        """Resolve a target selection and send to the resulting recipients.

        Args:
            target_spec: Which parents to notify.
            title: Notification title.
            message: Notification body.
            **options: Keyword options of send_notification().

        Raises:
            ConfigurationError: If no recipient resolver is configured.
            NoRecipientsError: If the selection matches nobody.
        """
        if self.resolver is None:
            raise ConfigurationError("No recipient resolver configured")

        recipients = await self.resolver.resolve(target_spec)
        if not recipients:
            raise NoRecipientsError("No target parents found")

        return await self.send_notification(recipients, title, message, **options)

    async def send_test_notification(
        self,
        recipient: Recipient,
        sent_by: str | None = None,
    ) -> DeliveryReport:
        """Send the test notification to one parent on app, push, email and WhatsApp."""
        return await self.send_request(build_test_request(sent_by), [recipient])

    async def send_emergency_sms(
        self,
        recipients: Sequence[Recipient],
        message: str,
    ) -> list[DeliveryResult]:
        """Send an urgent SMS alert to every recipient with a phone number.

        Recipients without a usable number come back SKIPPED.

        Raises:
            ConfigurationError: If no SMS channel is wired.
            NoRecipientsError: If recipients is empty.
        """
        channel = self.channels.get(ChannelType.SMS)
        if not isinstance(channel, SmsChannel):
            raise ConfigurationError("SMS channel not configured")
        if not recipients:
            raise NoRecipientsError()

        async def send(recipient: Recipient) -> DeliveryResult:
            return await channel.send_emergency(recipient, message)

        results = await run_batched(
            recipients,
            channel.batch_size,
            send,
            inter_batch_delay=channel.batch_delay,
        )
        logger.warning(
            "emergency_sms_sent",
            recipient_count=len(recipients),
            sent=len([r for r in results if r.is_success]),
        )
        return results

    async def send_bulk_notifications(
        self,
        notifications: Sequence[BulkNotification],
    ) -> list[BulkOutcome]:
        """Send many independent notifications in rate limited batches.

        A failing entry does not stop the others.

        Args:
            notifications: Entries to send.

        Returns:
            One outcome per entry, in input order.
        """

        async def send(entry: BulkNotification) -> BulkOutcome:
            try:
                report = await self.send_request(entry.request, entry.recipients)
            except NotificationError as e:
                logger.warning("bulk_notification_failed", title=entry.request.title, error=str(e))
                return BulkOutcome(error=e)
            return BulkOutcome(report=report)

        outcomes = await run_batched(
            notifications,
            self.bulk_batch_size,
            send,
            inter_batch_delay=self.bulk_batch_delay,
        )

        logger.info(
            "bulk_notifications_processed",
            total=len(outcomes),
            successful=len([o for o in outcomes if o.success]),
        )
        return outcomes

    async def send_absence_notifications(
        self,
        absences: Sequence[AbsenceRecord],
        class_name: str,
        absence_date: date | datetime | str,
        sent_by: str | None = None,
    ) -> list[AbsenceOutcome]:
        """Notify the parent of every absent student.

        Args:
            absences: Absent students with their parent.
            class_name: Class the attendance was taken in.
            absence_date: Day of the absence.
            sent_by: Teacher who marked the attendance.

        Returns:
            One outcome per absent student, in input order.
        """
        outcomes: list[AbsenceOutcome] = []

        for absence in absences:
            if absence.parent is None:
                outcomes.append(
                    AbsenceOutcome(
                        student_id=absence.student_id,
                        student_name=absence.student_name,
                        error="No parent found for student",
                    )
                )
                continue

            request = build_absence_request(
                student_id=absence.student_id,
                student_name=absence.student_name,
                class_name=class_name,
                absence_date=absence_date,
                remarks=absence.remarks,
                sent_by=sent_by,
            )
            report = await self.send_request(request, [absence.parent])
            outcomes.append(
                AbsenceOutcome(
                    student_id=absence.student_id,
                    student_name=absence.student_name,
                    report=report,
                )
            )

        logger.info(
            "absence_notifications_processed",
            class_name=class_name,
            absent=len(absences),
            notified=len([o for o in outcomes if o.notified]),
        )
        return outcomes

    async def get_delivery_stats(
        self,
        start_date: datetime | date | str | None = None,
        end_date: datetime | date | str | None = None,
    ) -> DeliveryStats:
        """Read statistics of in-app notifications over a period.

        Storage failures and unparseable dates do not raise: the stats
        come back zeroed with the error message set.

        Args:
            start_date: Period start, unbounded if None.
            end_date: Period end, unbounded if None.

        Returns:
            DeliveryStats for the period.
        """
        try:
            start = coerce_datetime(start_date)
            end = coerce_datetime(end_date)
        except ValueError as e:
            logger.warning("delivery_stats_invalid_period", start_date=start_date, end_date=end_date)
            return DeliveryStats(
                total_notifications=0,
                delivered_notifications=0,
                delivery_rate=0,
                error=f"Invalid date: {e}",
            )

        try:
            total = await self.sink.count_recorded(start, end)
            delivered = await self.sink.count_delivered(start, end)
        except (DatabaseError, NotificationError) as e:
            logger.error("delivery_stats_failed", error=str(e))
            return DeliveryStats(
                total_notifications=0,
                delivered_notifications=0,
                delivery_rate=0,
                start_date=start,
                end_date=end,
                error=str(e),
            )

        rate = round_half_up(delivered / total * 100) if total > 0 else 0
        return DeliveryStats(
            total_notifications=total,
            delivered_notifications=delivered,
            delivery_rate=rate,
            start_date=start,
            end_date=end,
        )

    def get_channel_status(self) -> dict[str, dict[str, Any]]:
        """Summarize configuration of every wired channel."""
        return {
            channel_type.value: channel.describe()
            for channel_type, channel in self.channels.items()
        }

    async def aclose(self) -> None:
        """Close channel resources and the shared HTTP client."""
        for channel in self.channels.values():
            await channel.aclose()
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def build_notification_service(
    settings: "Settings",
    session_factory: async_sessionmaker[AsyncSession],
    resolver: RecipientResolver | None = None,
    client: httpx.AsyncClient | None = None,
) -> NotificationService:
    """Wire a NotificationService from settings.

    Args:
        settings: Application settings.
        session_factory: Sessionmaker of the notification store.
        resolver: Recipient resolver for send_to_targets().
        client: HTTP client shared by the channels. When omitted one is
            created and closed by NotificationService.aclose().

    Returns:
        A ready to use NotificationService.
    """
    owned_client = None
    if client is None:
        client = owned_client = httpx.AsyncClient(timeout=settings.push.timeout)

    sink = SQLAlchemyPersistenceSink(session_factory)
    channels: list[BaseChannel] = [
        InAppChannel(sink, batch_size=settings.dispatch.in_app_batch_size),
        PushChannel(settings.push, client=client),
        EmailChannel(settings.email),
        WhatsAppChannel(settings.whatsapp, client=client),
        SmsChannel(settings.sms, client=client),
    ]
    dispatcher = ChannelDispatcher(channels, timeout=settings.dispatch.timeout)

    logger.info(
        "notification_service_initialized",
        channels=[c.channel_type.value for c in channels],
        email_configured=settings.email.is_configured,
        whatsapp_configured=settings.whatsapp.is_configured,
    )

    return NotificationService(
        dispatcher,
        sink,
        resolver=resolver,
        settings=settings.dispatch,
        client=owned_client,
    )
