# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for SMS providers and the fallback chain."""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from src.core.config.settings import SmsSettings
from src.infrastructure.notifications.exceptions import ProviderError
from src.infrastructure.notifications.models import DeliveryStatus
from src.infrastructure.notifications.sms_providers import (
    GenericGatewayProvider,
    MockProvider,
    ProviderChain,
    ProviderResponse,
    SmsProvider,
    TwilioProvider,
    build_provider_chain,
)


class FailingProvider(SmsProvider):
    name = "broken"

    async def send(self, phone: str, message: str) -> ProviderResponse:
        raise ProviderError(self.name, "gateway down", status_code=503)


class CrashingProvider(SmsProvider):
    name = "crashing"

    async def send(self, phone: str, message: str) -> ProviderResponse:
        raise RuntimeError("unexpected payload")


class StaticProvider(SmsProvider):
    name = "static"

    async def send(self, phone: str, message: str) -> ProviderResponse:
        return ProviderResponse(message_id="static-1", status="queued", to=phone)


class TestTwilioProvider:
    """Tests for TwilioProvider."""

    @pytest.mark.asyncio
    async def test_posts_form_with_basic_auth(self) -> None:
        """Test the Messages API call shape."""
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["form"] = parse_qs(request.content.decode())
            return httpx.Response(201, json={"sid": "SM123", "status": "queued", "to": "+919876543210"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = TwilioProvider(client, "AC1", "secret", "+15550001111")
            response = await provider.send("+919876543210", "Hello")

        assert response.message_id == "SM123"
        assert captured["url"] == "https://api.twilio.com/2010-04-01/Accounts/AC1/Messages.json"
        assert captured["auth"].startswith("Basic ")
        assert captured["form"] == {
            "From": ["+15550001111"],
            "To": ["+919876543210"],
            "Body": ["Hello"],
        }

    @pytest.mark.asyncio
    async def test_error_response_raises_provider_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"message": "Invalid 'To' Phone Number"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = TwilioProvider(client, "AC1", "secret", "+15550001111")
            with pytest.raises(ProviderError) as exc_info:
                await provider.send("+1", "Hello")

        assert exc_info.value.status_code == 400
        assert "Invalid 'To' Phone Number" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_success_without_sid_raises_provider_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "queued"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = TwilioProvider(client, "AC1", "secret", "+15550001111")
            with pytest.raises(ProviderError, match="no message sid"):
                await provider.send("+919876543210", "Hello")

    @pytest.mark.asyncio
    async def test_success_with_non_json_body_raises_provider_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>OK</html>")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = TwilioProvider(client, "AC1", "secret", "+15550001111")
            with pytest.raises(ProviderError, match="not valid JSON"):
                await provider.send("+919876543210", "Hello")


class TestGenericGatewayProvider:
    """Tests for GenericGatewayProvider."""

    @pytest.mark.asyncio
    async def test_posts_json_with_bearer(self) -> None:
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "gw-9", "status": "accepted"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = GenericGatewayProvider(client, "https://sms.test/api/", "key-1")
            response = await provider.send("+919876543210", "Hi")

        assert response.message_id == "gw-9"
        assert captured["url"] == "https://sms.test/api/send"
        assert captured["auth"] == "Bearer key-1"
        assert captured["body"] == {"to": "+919876543210", "message": "Hi", "from": "School"}

    @pytest.mark.asyncio
    async def test_network_error_raises_provider_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = GenericGatewayProvider(client, "https://sms.test", "key-1")
            with pytest.raises(ProviderError):
                await provider.send("+919876543210", "Hi")


class TestProviderChain:
    """Tests for ProviderChain."""

    def test_mock_provider_is_always_last(self) -> None:
        chain = ProviderChain([StaticProvider()])

        assert isinstance(chain.providers[-1], MockProvider)
        assert chain.active_provider == "static"

    def test_existing_mock_not_duplicated(self) -> None:
        chain = ProviderChain([MockProvider()])

        assert len(chain.providers) == 1

    @pytest.mark.asyncio
    async def test_head_provider_success(self) -> None:
        chain = ProviderChain([StaticProvider()])

        result = await chain.send("p1", "+919876543210", "Hi")

        assert result.status == DeliveryStatus.SENT
        assert result.provider_message_id == "static-1"
        assert result.fallback_used is False
        assert result.error_detail is None

    @pytest.mark.asyncio
    async def test_falls_back_after_failure(self) -> None:
        """Test a failing primary hands over and its error is kept."""
        chain = ProviderChain([FailingProvider(), StaticProvider()])

        result = await chain.send("p1", "+919876543210", "Hi")

        assert result.status == DeliveryStatus.SENT
        assert result.provider == "static"
        assert result.fallback_used is True
        assert "gateway down" in result.error_detail

    @pytest.mark.asyncio
    async def test_unexpected_exception_falls_back(self) -> None:
        """Test a provider raising something other than ProviderError is skipped."""
        chain = ProviderChain([CrashingProvider()])

        result = await chain.send("p1", "+919876543210", "Hi")

        assert result.status == DeliveryStatus.SENT
        assert result.provider == "mock"
        assert result.fallback_used is True
        assert "unexpected payload" in result.error_detail

    @pytest.mark.asyncio
    async def test_twilio_without_sid_falls_back_to_mock(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "queued"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            chain = ProviderChain([TwilioProvider(client, "AC1", "secret", "+15550001111")])
            result = await chain.send("p1", "+919876543210", "Hi")

        assert result.status == DeliveryStatus.SENT
        assert result.provider == "mock"
        assert result.fallback_used is True
        assert "twilio" in result.error_detail

    @pytest.mark.asyncio
    async def test_all_real_providers_fail(self) -> None:
        """Test the mock provider absorbs the message."""
        chain = ProviderChain([FailingProvider()])

        result = await chain.send("p1", "+919876543210", "Hi")

        assert result.status == DeliveryStatus.SENT
        assert result.provider == "mock"
        assert result.provider_message_id.startswith("mock-sms-")
        assert result.fallback_used is True

    @pytest.mark.asyncio
    async def test_mock_only_chain_reports_fallback(self) -> None:
        chain = ProviderChain([])

        result = await chain.send("p1", "+919876543210", "Hi")

        assert result.fallback_used is True
        assert result.error_detail is None


class TestBuildProviderChain:
    """Tests for build_provider_chain()."""

    def test_no_credentials_gives_mock_only(self, sms_settings: SmsSettings) -> None:
        chain = build_provider_chain(sms_settings, httpx.AsyncClient())

        assert [p.name for p in chain.providers] == ["mock"]
        assert chain.describe()["mock_mode"] is True

    def test_all_credentials_in_order(self) -> None:
        settings = SmsSettings(
            twilio_account_sid="AC1",
            twilio_auth_token="tok",  # type: ignore[arg-type]
            api_key="key",  # type: ignore[arg-type]
            api_url="https://sms.test",
            from_number="+15550001111",
        )

        chain = build_provider_chain(settings, httpx.AsyncClient())

        assert [p.name for p in chain.providers] == ["twilio", "generic", "mock"]
        description = chain.describe()
        assert description["active_provider"] == "twilio"
        assert description["twilio_configured"] is True
        assert description["generic_configured"] is True

    def test_twilio_requires_from_number(self) -> None:
        settings = SmsSettings(
            twilio_account_sid="AC1",
            twilio_auth_token="tok",  # type: ignore[arg-type]
            api_key=None,
            api_url=None,
            from_number=None,
        )

        chain = build_provider_chain(settings, httpx.AsyncClient())

        assert [p.name for p in chain.providers] == ["mock"]
