# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across the unit tests:
- Sample recipients with different contact details
- An in-memory persistence sink
- A configurable fake channel for dispatcher tests
- Channel settings with delays disabled
"""

import asyncio
from collections.abc import Callable
from datetime import datetime
from typing import Any, Sequence

import pytest

from src.core.config.settings import (
    EmailSettings,
    PushSettings,
    SmsSettings,
    WhatsAppSettings,
)
from src.infrastructure.notifications.channels.base import BaseChannel
from src.infrastructure.notifications.models import (
    ChannelType,
    DeliveryResult,
    DeliveryStatus,
    NotificationPriority,
    NotificationRequest,
    NotificationType,
    Recipient,
)
from src.utils.datetime import utc_now


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )


# =============================================================================
# Test Doubles
# =============================================================================


class MemorySink:
    """PersistenceSink keeping records in a list."""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.records: list[dict[str, Any]] = []
        self.fail_for = fail_for or set()

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
        if recipient_id in self.fail_for:
            raise RuntimeError("connection reset")
        record = {
            "id": f"rec-{len(self.records) + 1}",
            "parent_id": recipient_id,
            "student_id": correlation_id,
            "type": NotificationType(type).value,
            "title": title,
            "message": message,
            "priority": NotificationPriority(priority).value,
            "sent_by": sent_by,
            "is_read": False,
            "sent_at": utc_now(),
        }
        self.records.append(record)
        return record["id"]

    def _in_period(self, record: dict[str, Any], start: datetime | None, end: datetime | None) -> bool:
        if start is not None and record["sent_at"] < start:
            return False
        if end is not None and record["sent_at"] > end:
            return False
        return True

    async def count_recorded(self, start: datetime | None = None, end: datetime | None = None) -> int:
        return len([r for r in self.records if self._in_period(r, start, end)])

    async def count_delivered(self, start: datetime | None = None, end: datetime | None = None) -> int:
        return len([r for r in self.records if r["is_read"] and self._in_period(r, start, end)])

    async def mark_read(self, record_id: str) -> bool:
        for record in self.records:
            if record["id"] == record_id:
                record["is_read"] = True
                return True
        return False


class FakeChannel(BaseChannel):
    """Channel whose behavior is set per test.

    Args:
        kind: Channel type to impersonate.
        status: Status returned for every recipient.
        error: Exception raised from send_bulk.
        delay: Seconds to sleep before answering.
        drop: Recipient ids to leave without a result.
        duplicate: Append a second, FAILED result per recipient.
        requires: Recipient attribute that must be truthy for eligibility.
    """

    def __init__(
        self,
        kind: ChannelType,
        status: DeliveryStatus = DeliveryStatus.SENT,
        error: Exception | None = None,
        delay: float = 0.0,
        drop: Sequence[str] = (),
        duplicate: bool = False,
        requires: str | None = None,
    ) -> None:
        super().__init__()
        self.kind = kind
        self.status = status
        self.error = error
        self.delay = delay
        self.drop = set(drop)
        self.duplicate = duplicate
        self.requires = requires
        self.calls: list[list[str]] = []

    @property
    def channel_type(self) -> ChannelType:
        return self.kind

    def ineligibility_reason(self, recipient: Recipient) -> str | None:
        if self.requires and not getattr(recipient, self.requires):
            return f"missing {self.requires}"
        return None

    async def send(self, recipient: Recipient, request: NotificationRequest) -> DeliveryResult:
        if self.status == DeliveryStatus.SENT:
            return self.create_success_result(recipient.id, message_id=f"{self.kind.value}-{recipient.id}")
        if self.status == DeliveryStatus.FAILED:
            return self.create_failure_result(recipient.id, "provider rejected")
        return self.create_skipped_result(recipient.id, "not configured")

    async def send_bulk(
        self,
        recipients: Sequence[Recipient],
        request: NotificationRequest,
    ) -> list[DeliveryResult]:
        self.calls.append([r.id for r in recipients])
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

        results = [await self.send(r, request) for r in recipients if r.id not in self.drop]
        if self.duplicate:
            results += [self.create_failure_result(r.id, "duplicate") for r in recipients]
        return results


# =============================================================================
# Recipient Fixtures
# =============================================================================


@pytest.fixture
def full_contact_parent() -> Recipient:
    """Parent reachable on every channel."""
    return Recipient(
        id="parent-1",
        display_name="Maria Lopez",
        email="maria@example.com",
        phone="9876543210",
        push_token="ExponentPushToken[abc123]",
        push_platform="android",
        whatsapp_opt_in=True,
        notifications_enabled=True,
    )


@pytest.fixture
def email_only_parent() -> Recipient:
    """Parent with nothing but an email address."""
    return Recipient(id="parent-2", display_name="John Smith", email="john@example.com")


@pytest.fixture
def no_contact_parent() -> Recipient:
    """Parent without any contact details."""
    return Recipient(id="parent-3", display_name="Ana Ruiz")


@pytest.fixture
def recipients(
    full_contact_parent: Recipient,
    email_only_parent: Recipient,
    no_contact_parent: Recipient,
) -> list[Recipient]:
    """Three parents with decreasing reachability."""
    return [full_contact_parent, email_only_parent, no_contact_parent]


@pytest.fixture
def sample_request() -> NotificationRequest:
    """A normal priority custom notification."""
    return NotificationRequest(
        title="Parent meeting",
        message="The parent meeting starts at 6pm in the main hall.",
        sent_by="Principal Adams",
        correlation_id="student-9",
    )


# =============================================================================
# Doubles and Settings Fixtures
# =============================================================================


@pytest.fixture
def memory_sink() -> MemorySink:
    """In-memory persistence sink."""
    return MemorySink()


@pytest.fixture
def make_sink() -> Callable[..., MemorySink]:
    """Factory for in-memory sinks with failing recipients."""
    return MemorySink


@pytest.fixture
def make_channel() -> Callable[..., FakeChannel]:
    """Factory for fake channels."""
    return FakeChannel


@pytest.fixture
def push_settings() -> PushSettings:
    return PushSettings(api_url="https://push.test/send", chunk_size=100)


@pytest.fixture
def email_settings() -> EmailSettings:
    return EmailSettings(user=None, password=None, from_address="school@example.com")


@pytest.fixture
def sms_settings() -> SmsSettings:
    """SMS settings without credentials and without delays."""
    return SmsSettings(
        twilio_account_sid=None,
        twilio_auth_token=None,
        api_key=None,
        api_url=None,
        from_number="+15550001111",
        batch_delay=0.0,
        mock_latency=0.0,
    )


@pytest.fixture
def whatsapp_settings() -> WhatsAppSettings:
    """Fully configured WhatsApp settings without delays."""
    return WhatsAppSettings(
        access_token="meta-token",  # type: ignore[arg-type]
        phone_number_id="1122",
        business_account_id="3344",
        webhook_verify_token="verify-me",  # type: ignore[arg-type]
        api_base_url="https://graph.test",
        message_delay=0.0,
    )
