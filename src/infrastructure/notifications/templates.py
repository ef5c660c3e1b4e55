# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification requests for the built-in notification kinds."""

from datetime import date, datetime

from src.infrastructure.notifications.models import (
    ChannelOptions,
    NotificationPriority,
    NotificationRequest,
    NotificationType,
)
from src.utils.datetime import format_display_date

TEST_TITLE = "🧪 Test Notification"
TEST_MESSAGE = (
    "This is a test notification from the School Attendance System. "
    "If you received this, notifications are working correctly!"
)


def build_absence_request(
    student_id: str,
    student_name: str,
    class_name: str,
    absence_date: date | datetime | str,
    remarks: str | None = None,
    sent_by: str | None = None,
) -> NotificationRequest:
    """Build the notification telling a parent their child was absent.

    Absence alerts go to the app, push and WhatsApp. Email stays off.
    """
    if isinstance(absence_date, (date, datetime)):
        when = format_display_date(absence_date)
    else:
        when = absence_date

    message = f"Your child {student_name} was marked absent in {class_name} on {when}."
    if remarks:
        message += f" Remarks: {remarks}"

    return NotificationRequest(
        title=f"{student_name} was absent today",
        message=message,
        priority=NotificationPriority.NORMAL,
        type=NotificationType.ABSENCE,
        channel_options=ChannelOptions(send_email=False, send_whatsapp=True, send_sms=False),
        correlation_id=student_id,
        sent_by=sent_by,
        data={
            "type": "absence",
            "studentName": student_name,
            "className": class_name,
            "date": when,
            "remarks": remarks or "",
            "screen": "ParentDashboard",
        },
    )


def build_test_request(sent_by: str | None = None) -> NotificationRequest:
    """Build the notification used to check a parent's channels."""
    return NotificationRequest(
        title=TEST_TITLE,
        message=TEST_MESSAGE,
        priority=NotificationPriority.NORMAL,
        type=NotificationType.TEST,
        channel_options=ChannelOptions(send_email=True, send_whatsapp=True, send_sms=False),
        sent_by=sent_by,
        data={"type": "test", "screen": "ParentDashboard"},
    )
