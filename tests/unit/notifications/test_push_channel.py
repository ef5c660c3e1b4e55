# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the push notification channel."""

import json

import httpx
import pytest

from src.core.config.settings import PushSettings
from src.infrastructure.notifications.channels.push import PushChannel, is_push_token
from src.infrastructure.notifications.models import (
    DeliveryStatus,
    NotificationPriority,
    NotificationRequest,
    Recipient,
)


def parent(index: int, token: str | None = None, enabled: bool = True) -> Recipient:
    return Recipient(
        id=f"p{index}",
        display_name=f"Parent {index}",
        push_token=token if token is not None else f"ExponentPushToken[tok{index}]",
        notifications_enabled=enabled,
    )


def ok_tickets(request: httpx.Request) -> httpx.Response:
    messages = json.loads(request.content)
    return httpx.Response(200, json={"data": [{"status": "ok", "id": f"ticket-{m['to']}"} for m in messages]})


class TestPushToken:
    """Tests for is_push_token()."""

    @pytest.mark.parametrize(
        "token",
        [
            "ExponentPushToken[xxxxxxxxxxxxxxxxxxxxxx]",
            "ExpoPushToken[abc]",
            "f47ac10b-58cc-4372-a567-0e02b2c3d479",
        ],
    )
    def test_valid_tokens(self, token: str) -> None:
        assert is_push_token(token) is True

    @pytest.mark.parametrize("token", [None, "", "not-a-token", "ExponentPushToken[]", "fcm:abc"])
    def test_invalid_tokens(self, token: str | None) -> None:
        assert is_push_token(token) is False


class TestPushEligibility:
    """Tests for push eligibility."""

    def test_requires_valid_token_and_enabled_notifications(self, push_settings: PushSettings) -> None:
        channel = PushChannel(push_settings, client=httpx.AsyncClient())

        assert channel.is_eligible(parent(1)) is True
        assert channel.ineligibility_reason(parent(2, token="")) == "No push token found"
        assert channel.ineligibility_reason(parent(3, token="bad")) == "Invalid push token"
        assert channel.ineligibility_reason(parent(4, enabled=False)) == "Notifications disabled by recipient"


class TestPushChannel:
    """Tests for PushChannel delivery."""

    @pytest.mark.asyncio
    async def test_message_shape_and_priority_mapping(
        self, push_settings: PushSettings, sample_request: NotificationRequest
    ) -> None:
        """Test the gateway payload of a single message."""
        captured: list = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.extend(json.loads(request.content))
            return ok_tickets(request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            channel = PushChannel(push_settings, client=client)
            results = await channel.send_bulk([parent(1)], sample_request)

        assert results[0].status == DeliveryStatus.SENT
        assert results[0].provider_message_id == "ticket-ExponentPushToken[tok1]"
        message = captured[0]
        assert message["to"] == "ExponentPushToken[tok1]"
        assert message["title"] == sample_request.title
        assert message["body"] == sample_request.message
        assert message["sound"] == "default"
        assert message["channelId"] == "default"
        assert message["priority"] == "high"
        assert message["data"]["parentId"] == "p1"
        assert message["data"]["studentId"] == "student-9"

    @pytest.mark.asyncio
    async def test_low_priority_maps_to_normal(self, push_settings: PushSettings) -> None:
        captured: list = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.extend(json.loads(request.content))
            return ok_tickets(request)

        request = NotificationRequest(title="t", message="m", priority=NotificationPriority.LOW)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await PushChannel(push_settings, client=client).send_bulk([parent(1)], request)

        assert captured[0]["priority"] == "normal"

    @pytest.mark.asyncio
    async def test_chunks_of_at_most_hundred(self, push_settings: PushSettings, sample_request: NotificationRequest) -> None:
        """Test 250 recipients become three gateway calls."""
        sizes: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            sizes.append(len(json.loads(request.content)))
            return ok_tickets(request)

        recipients = [parent(i) for i in range(250)]
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await PushChannel(push_settings, client=client).send_bulk(recipients, sample_request)

        assert sizes == [100, 100, 50]
        assert len(results) == 250
        assert all(r.status == DeliveryStatus.SENT for r in results)

    @pytest.mark.asyncio
    async def test_ticket_errors_map_by_position(self, push_settings: PushSettings, sample_request: NotificationRequest) -> None:
        """Test a mixed ticket answer is decomposed per message."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "data": [
                        {"status": "ok", "id": "t1"},
                        {
                            "status": "error",
                            "message": "device not registered",
                            "details": {"error": "DeviceNotRegistered"},
                        },
                        {"status": "ok", "id": "t3"},
                    ]
                },
            )

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await PushChannel(push_settings, client=client).send_bulk(
                [parent(1), parent(2), parent(3)], sample_request
            )

        assert [r.status for r in results] == [DeliveryStatus.SENT, DeliveryStatus.FAILED, DeliveryStatus.SENT]
        assert results[1].recipient_id == "p2"
        assert "DeviceNotRegistered" in results[1].error_detail

    @pytest.mark.asyncio
    async def test_failed_chunk_only_fails_its_recipients(self, sample_request: NotificationRequest) -> None:
        """Test a 500 on the second chunk leaves the first chunk sent."""
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 2:
                return httpx.Response(500, text="internal error")
            return ok_tickets(request)

        settings = PushSettings(api_url="https://push.test/send", chunk_size=2)
        recipients = [parent(i) for i in range(4)]
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await PushChannel(settings, client=client).send_bulk(recipients, sample_request)

        assert [r.status for r in results] == [
            DeliveryStatus.SENT,
            DeliveryStatus.SENT,
            DeliveryStatus.FAILED,
            DeliveryStatus.FAILED,
        ]
        assert "500" in results[2].error_detail

    @pytest.mark.asyncio
    async def test_missing_tickets_fail(self, push_settings: PushSettings, sample_request: NotificationRequest) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": [{"status": "ok", "id": "t1"}]})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await PushChannel(push_settings, client=client).send_bulk([parent(1), parent(2)], sample_request)

        assert results[0].status == DeliveryStatus.SENT
        assert results[1].status == DeliveryStatus.FAILED
        assert results[1].error_detail == "No ticket returned"

    @pytest.mark.asyncio
    async def test_invalid_token_skipped_without_call(self, push_settings: PushSettings, sample_request: NotificationRequest) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return ok_tickets(request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await PushChannel(push_settings, client=client).send_bulk([parent(1, token="garbage")], sample_request)

        assert calls == 0
        assert results[0].status == DeliveryStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_network_error_fails_chunk(self, push_settings: PushSettings, sample_request: NotificationRequest) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await PushChannel(push_settings, client=client).send_bulk([parent(1), parent(2)], sample_request)

        assert all(r.status == DeliveryStatus.FAILED for r in results)

    @pytest.mark.asyncio
    async def test_access_token_header(self, sample_request: NotificationRequest) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            return ok_tickets(request)

        settings = PushSettings(api_url="https://push.test/send", access_token="expo-secret")  # type: ignore[arg-type]
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await PushChannel(settings, client=client).send_bulk([parent(1)], sample_request)

        assert seen["auth"] == "Bearer expo-secret"

    @pytest.mark.asyncio
    async def test_list_body_fails_chunk(self, push_settings: PushSettings, sample_request: NotificationRequest) -> None:
        """Test a body that is not an object fails the chunk instead of raising."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"status": "ok", "id": "t1"}])

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await PushChannel(push_settings, client=client).send_bulk([parent(1), parent(2)], sample_request)

        assert [r.status for r in results] == [DeliveryStatus.FAILED, DeliveryStatus.FAILED]
        assert "Unexpected push gateway response" in results[0].error_detail

    @pytest.mark.asyncio
    async def test_malformed_ticket_fails_only_its_recipient(
        self, push_settings: PushSettings, sample_request: NotificationRequest
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": [None, "ok", {"status": "ok", "id": "t3"}]})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results = await PushChannel(push_settings, client=client).send_bulk(
                [parent(1), parent(2), parent(3)], sample_request
            )

        assert [r.status for r in results] == [
            DeliveryStatus.FAILED,
            DeliveryStatus.FAILED,
            DeliveryStatus.SENT,
        ]
        assert results[0].error_detail == "No ticket returned"
        assert results[1].error_detail == "Malformed ticket returned"
