# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for the notification engine.

All timestamps are stored in UTC and all Python datetimes handled by the
engine are timezone-aware, so naive/aware mixing errors cannot occur.

Usage:
------
    from src.utils.datetime import utc_now

    # For SQLAlchemy model defaults
    sent_at = mapped_column(DateTime(timezone=True), default=utc_now)
"""

from datetime import date, datetime, time, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 string.

    Args:
        dt: Datetime to format.

    Returns:
        ISO 8601 formatted string or None.
    """
    if dt is None:
        return None

    return ensure_utc(dt).isoformat()


def parse_iso(iso_string: str | None) -> datetime | None:
    """Parse an ISO 8601 datetime string.

    Args:
        iso_string: ISO 8601 formatted string.

    Returns:
        Timezone-aware UTC datetime or None.

    Raises:
        ValueError: If the string is not valid ISO 8601.
    """
    if iso_string is None:
        return None

    dt = datetime.fromisoformat(iso_string.replace("Z", "+00:00"))
    return ensure_utc(dt)


def coerce_datetime(value: datetime | date | str | None) -> datetime | None:
    """Convert a date-like value into an aware UTC datetime.

    Plain dates are interpreted as UTC midnight.

    Args:
        value: Datetime, date, ISO 8601 string or None.

    Returns:
        Timezone-aware UTC datetime or None.
    """
    if value is None or isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return parse_iso(value)


def format_display_date(value: datetime | date, with_time: bool = False) -> str:
    """Format a date for human readable messages.

    Args:
        value: Date or datetime to format.
        with_time: Append hours and minutes.

    Returns:
        String like "Monday, January 5, 2026" or
        "Monday, January 5, 2026, 09:30".
    """
    text = f"{value:%A}, {value:%B} {value.day}, {value.year}"
    if with_time and isinstance(value, datetime):
        text += f", {value:%H:%M}"
    return text
