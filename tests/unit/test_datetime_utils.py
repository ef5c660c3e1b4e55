# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for datetime utilities."""

from datetime import date, datetime, timedelta, timezone

import pytest

from src.utils.datetime import (
    coerce_datetime,
    ensure_utc,
    format_display_date,
    format_iso,
    parse_iso,
    utc_now,
)


class TestUtcHelpers:
    """Tests for UTC conversion helpers."""

    def test_utc_now_is_aware(self) -> None:
        assert utc_now().tzinfo == timezone.utc

    def test_ensure_utc_naive(self) -> None:
        assert ensure_utc(datetime(2026, 1, 5, 9, 0)) == datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def test_ensure_utc_converts_offset(self) -> None:
        ist = timezone(timedelta(hours=5, minutes=30))

        result = ensure_utc(datetime(2026, 1, 5, 15, 0, tzinfo=ist))

        assert result == datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc)

    def test_none_passthrough(self) -> None:
        assert ensure_utc(None) is None
        assert format_iso(None) is None
        assert parse_iso(None) is None
        assert coerce_datetime(None) is None

    def test_parse_iso_with_z_suffix(self) -> None:
        assert parse_iso("2026-01-05T09:30:00Z") == datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc)

    def test_parse_iso_invalid(self) -> None:
        with pytest.raises(ValueError):
            parse_iso("not a date")


class TestCoerceDatetime:
    """Tests for coerce_datetime()."""

    def test_date_is_utc_midnight(self) -> None:
        assert coerce_datetime(date(2026, 1, 5)) == datetime(2026, 1, 5, tzinfo=timezone.utc)

    def test_string(self) -> None:
        assert coerce_datetime("2026-01-05T12:00:00+00:00") == datetime(2026, 1, 5, 12, tzinfo=timezone.utc)


class TestFormatDisplayDate:
    """Tests for format_display_date()."""

    def test_date(self) -> None:
        assert format_display_date(date(2026, 1, 5)) == "Monday, January 5, 2026"

    def test_datetime_with_time(self) -> None:
        value = datetime(2026, 3, 14, 7, 5, tzinfo=timezone.utc)

        assert format_display_date(value, with_time=True) == "Saturday, March 14, 2026, 07:05"

    def test_time_ignored_for_dates(self) -> None:
        assert format_display_date(date(2026, 3, 14), with_time=True) == "Saturday, March 14, 2026"
