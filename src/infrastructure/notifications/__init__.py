# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Multi-channel notification engine for SchoolSync.

This package delivers notifications to parents through several
independent channels:
- In-app notifications (database records)
- Push notifications (Expo push gateway)
- Email notifications (SMTP)
- SMS (Twilio or a generic gateway, with a mock fallback)
- WhatsApp (Meta Graph API)

One channel or recipient failing never blocks the others, and every
send produces a single DeliveryReport.

Key Components:
- NotificationService: Entry point, built by build_notification_service()
- ChannelDispatcher: Channel selection, eligibility and concurrency
- merge: Folds per-channel results into a DeliveryReport

Usage:
    from src.infrastructure.notifications import build_notification_service

    service = build_notification_service(settings, sessionmaker)
    report = await service.send_notification(
        recipients,
        title="School closed tomorrow",
        message="Due to weather the school is closed.",
        priority="HIGH",
    )
    print(report.delivery_rate, report.overall_success)
"""

from src.infrastructure.notifications.aggregator import merge
from src.infrastructure.notifications.dispatcher import ChannelDispatcher
from src.infrastructure.notifications.exceptions import (
    ConfigurationError,
    ContactValidationError,
    NoRecipientsError,
    NotificationError,
    ProviderError,
)
from src.infrastructure.notifications.models import (
    ChannelOptions,
    ChannelSummary,
    ChannelType,
    DeliveryReport,
    DeliveryResult,
    DeliveryStats,
    DeliveryStatus,
    NotificationPriority,
    NotificationRequest,
    NotificationType,
    Recipient,
)
from src.infrastructure.notifications.persistence import (
    PersistenceSink,
    SQLAlchemyPersistenceSink,
)
from src.infrastructure.notifications.recipients import (
    RecipientResolver,
    StaticRecipientResolver,
    TargetSpec,
    TargetType,
)
from src.infrastructure.notifications.service import (
    AbsenceOutcome,
    AbsenceRecord,
    BulkNotification,
    BulkOutcome,
    NotificationService,
    build_notification_service,
)

__all__ = [
    # Service
    "NotificationService",
    "build_notification_service",
    "AbsenceRecord",
    "AbsenceOutcome",
    "BulkNotification",
    "BulkOutcome",
    # Dispatch
    "ChannelDispatcher",
    "merge",
    # Types
    "ChannelOptions",
    "ChannelSummary",
    "ChannelType",
    "DeliveryReport",
    "DeliveryResult",
    "DeliveryStats",
    "DeliveryStatus",
    "NotificationPriority",
    "NotificationRequest",
    "NotificationType",
    "Recipient",
    # Recipients and storage
    "PersistenceSink",
    "SQLAlchemyPersistenceSink",
    "RecipientResolver",
    "StaticRecipientResolver",
    "TargetSpec",
    "TargetType",
    # Errors
    "NotificationError",
    "ConfigurationError",
    "ContactValidationError",
    "NoRecipientsError",
    "ProviderError",
]
