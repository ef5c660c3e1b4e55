# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-app notification record model.

One row is written per recipient whenever the in-app channel delivers a
notification. The is_read/read_at pair is set later by the parent app and
feeds the delivery statistics.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base
from src.utils.datetime import utc_now


class ParentNotification(Base):
    """Durable in-app notification addressed to a parent.

    Attributes:
        id: Record identifier (UUID string).
        parent_id: Recipient identifier.
        student_id: Optional correlated student.
        type: Notification type (CUSTOM, ABSENCE, TEST).
        title: Notification title.
        message: Notification body.
        priority: LOW, NORMAL or HIGH.
        sent_by: Sender identity for display.
        is_read: Whether the parent opened the notification.
        read_at: When the notification was opened.
        sent_at: When the record was written.
    """

    __tablename__ = "parent_notifications"
    __table_args__ = (
        Index("ix_parent_notifications_parent_id", "parent_id"),
        Index("ix_parent_notifications_sent_at", "sent_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    parent_id: Mapped[str] = mapped_column(String(64), nullable=False)
    student_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="CUSTOM")
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="NORMAL")
    sent_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    def mark_read(self, when: datetime | None = None) -> None:
        """Flag the record as read.

        Args:
            when: Read timestamp, defaults to now.
        """
        self.is_read = True
        self.read_at = when or utc_now()
