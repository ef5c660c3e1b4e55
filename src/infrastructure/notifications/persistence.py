# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Persistence sink for in-app notification records.

The in-app channel writes through a PersistenceSink. The default
implementation stores ParentNotification rows with SQLAlchemy, one
session and commit per record so a failing row never affects another.

Example:
    sessionmaker = await init_database(settings)
    sink = SQLAlchemyPersistenceSink(sessionmaker)
    record_id = await sink.record_in_app(
        recipient_id="parent-1",
        correlation_id="student-7",
        type=NotificationType.ABSENCE,
        title="Ana was absent today",
        message="...",
        priority=NotificationPriority.NORMAL,
        sent_by="Teacher Kim",
    )
"""

from datetime import datetime
from typing import Protocol
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.infrastructure.database.connection import DatabaseError
from src.infrastructure.database.models.notification import ParentNotification
from src.infrastructure.notifications.models import (
    NotificationPriority,
    NotificationType,
)


class PersistenceSink(Protocol):
    """Storage the in-app channel and the statistics read from."""

    async def record_in_app(
        self,
        recipient_id: str,
        correlation_id: str | None,
        type: NotificationType,
        title: str,
        message: str,
        priority: NotificationPriority,
        sent_by: str | None,
    ) -> str:
        """Store one in-app notification and return its record id."""
        ...

    async def count_delivered(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> int:
        """Count records read by their recipient within the period."""
        ...

    async def count_recorded(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> int:
        """Count records written within the period."""
        ...

    async def mark_read(self, record_id: str) -> bool:
        """Flag a record as read. Returns False if it does not exist."""
        ...


class SQLAlchemyPersistenceSink:
    """PersistenceSink storing ParentNotification rows.

    Attributes:
        session_factory: Sessionmaker of the notification store.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def record_in_app(
        self,
        recipient_id: str,
        correlation_id: str | None,
        type: NotificationType,
        title: str,
        message: str,
        priority: NotificationPriority,
        sent_by: str | None,
    ) -> str:
        record_id = str(uuid4())
        record = ParentNotification(
            id=record_id,
            parent_id=recipient_id,
            student_id=correlation_id,
            type=NotificationType(type).value,
            title=title,
            message=message,
            priority=NotificationPriority(priority).value,
            sent_by=sent_by,
        )

        try:
            async with self.session_factory() as session:
                session.add(record)
                await session.commit()
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to store in-app notification", e) from e

        return record_id

    async def count_delivered(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> int:
        return await self._count(start, end, read_only=True)

    async def count_recorded(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> int:
        return await self._count(start, end, read_only=False)

    async def mark_read(self, record_id: str) -> bool:
        try:
            async with self.session_factory() as session:
                record = await session.get(ParentNotification, record_id)
                if record is None:
                    return False
                if not record.is_read:
                    record.mark_read()
                    await session.commit()
                return True
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to mark notification as read", e) from e

    async def _count(
        self,
        start: datetime | None,
        end: datetime | None,
        read_only: bool,
    ) -> int:
        stmt = select(func.count()).select_from(ParentNotification)
        if start is not None:
            stmt = stmt.where(ParentNotification.sent_at >= start)
        if end is not None:
            stmt = stmt.where(ParentNotification.sent_at <= end)
        if read_only:
            stmt = stmt.where(ParentNotification.is_read.is_(True))

        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to count notifications", e) from e
