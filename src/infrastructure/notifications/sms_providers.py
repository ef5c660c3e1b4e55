# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SMS providers and the fallback chain used by the SMS channel.

Providers are tried in order: Twilio (if configured), then the generic
bearer-token gateway (if configured), then the mock provider, which
always succeeds. A provider raising ProviderError hands the message to
the next one.

Example:
    chain = build_provider_chain(settings.sms, client)
    result = await chain.send("parent-1", "+919876543210", "Hello")
    if result.fallback_used:
        print(result.error_detail)
"""

import asyncio
import itertools
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

import httpx

from src.infrastructure.notifications.exceptions import ProviderError
from src.infrastructure.notifications.models import (
    ChannelType,
    DeliveryResult,
    DeliveryStatus,
)

if TYPE_CHECKING:
    from src.core.config.settings import SmsSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderResponse:
    """Accepted message as reported by a provider."""

    message_id: str
    status: str
    to: str


class SmsProvider(ABC):
    """A single SMS provider."""

    name: str = "sms"

    @abstractmethod
    async def send(self, phone: str, message: str) -> ProviderResponse:
        """Send a text message.

        Args:
            phone: E.164 formatted destination.
            message: Message text.

        Returns:
            The provider's acceptance of the message.

        Raises:
            ProviderError: If the provider could not accept the message.
        """
        ...


def _json_body(provider: str, response: httpx.Response) -> dict[str, Any]:
    """Decode a successful response body, which must be a JSON object."""
    try:
        body = response.json()
    except ValueError as e:
        raise ProviderError(provider, "Response was not valid JSON", original_error=e) from e
    if not isinstance(body, dict):
        raise ProviderError(provider, "Response was not a JSON object")
    return body


def _error_message(response: httpx.Response) -> str:
    """Extract the provider's error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text


class TwilioProvider(SmsProvider):
    """Twilio Messages API, form encoded with basic auth."""

    name = "twilio"

    def __init__(
        self,
        client: httpx.AsyncClient,
        account_sid: str,
        auth_token: str,
        from_number: str,
        api_url: str = "https://api.twilio.com/2010-04-01",
        timeout: float = 10.0,
    ) -> None:
        self.client = client
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    async def send(self, phone: str, message: str) -> ProviderResponse:
        url = f"{self.api_url}/Accounts/{self.account_sid}/Messages.json"
        try:
            response = await self.client.post(
                url,
                auth=(self.account_sid, self.auth_token),
                data={"From": self.from_number, "To": phone, "Body": message},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise ProviderError(self.name, "Request failed", original_error=e) from e

        if response.status_code >= 400:
            raise ProviderError(self.name, _error_message(response), status_code=response.status_code)

        body = _json_body(self.name, response)
        if not body.get("sid"):
            raise ProviderError(self.name, "Response carried no message sid")
        return ProviderResponse(
            message_id=body["sid"],
            status=body.get("status", "queued"),
            to=body.get("to", phone),
        )


class GenericGatewayProvider(SmsProvider):
    """Generic HTTP gateway taking a bearer token and a JSON body."""

    name = "generic"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str,
        api_key: str,
        from_number: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.client = client
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.from_number = from_number or "School"
        self.timeout = timeout

    async def send(self, phone: str, message: str) -> ProviderResponse:
        try:
            response = await self.client.post(
                f"{self.api_url}/send",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"to": phone, "message": message, "from": self.from_number},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise ProviderError(self.name, "Request failed", original_error=e) from e

        if response.status_code >= 400:
            raise ProviderError(self.name, _error_message(response), status_code=response.status_code)

        body = _json_body(self.name, response)
        return ProviderResponse(
            message_id=str(body.get("id") or int(time.time() * 1000)),
            status=body.get("status") or "sent",
            to=phone,
        )


class MockProvider(SmsProvider):
    """Provider that only logs messages. Always succeeds."""

    name = "mock"

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self._counter = itertools.count(1)

    async def send(self, phone: str, message: str) -> ProviderResponse:
        preview = message[:100] + ("..." if len(message) > 100 else "")
        logger.info("[MOCK] SMS would be sent to %s: %s", phone, preview)

        if self.latency > 0:
            await asyncio.sleep(self.latency)

        return ProviderResponse(
            message_id=f"mock-sms-{int(time.time() * 1000)}-{next(self._counter)}",
            status="delivered",
            to=phone,
        )


class ProviderChain:
    """Ordered SMS providers, always terminated by a MockProvider.

    Attributes:
        providers: Providers in the order they are tried.
    """

    def __init__(self, providers: Sequence[SmsProvider]) -> None:
        chain = list(providers)
        if not chain or not isinstance(chain[-1], MockProvider):
            chain.append(MockProvider())
        self.providers: tuple[SmsProvider, ...] = tuple(chain)

    @property
    def active_provider(self) -> str:
        """Name of the provider tried first."""
        return self.providers[0].name

    async def send(self, recipient_id: str, phone: str, message: str) -> DeliveryResult:
        """Send through the first provider that accepts the message.

        Args:
            recipient_id: Recipient the message is for.
            phone: E.164 formatted destination.
            message: Message text.

        Returns:
            A SENT result. fallback_used is set when the message went
            through anything but the head of the chain, or through the
            mock provider, and error_detail then lists earlier failures.
        """
        errors: list[str] = []

        for index, provider in enumerate(self.providers):
            try:
                response = await provider.send(phone, message)
            except ProviderError as e:
                logger.warning("SMS provider %s failed for %s: %s", provider.name, recipient_id, e)
                errors.append(str(e))
                continue
            except Exception as e:
                logger.warning(
                    "SMS provider %s raised for %s: %s",
                    provider.name,
                    recipient_id,
                    e,
                    exc_info=True,
                )
                errors.append(f"{provider.name}: {e!r}")
                continue

            return DeliveryResult(
                channel=ChannelType.SMS,
                recipient_id=recipient_id,
                status=DeliveryStatus.SENT,
                provider_message_id=response.message_id,
                error_detail="; ".join(errors) if errors else None,
                fallback_used=index > 0 or isinstance(provider, MockProvider),
                provider=provider.name,
            )

        # Unreachable while the chain ends with a MockProvider
        return DeliveryResult(
            channel=ChannelType.SMS,
            recipient_id=recipient_id,
            status=DeliveryStatus.FAILED,
            error_detail="; ".join(errors) or "No SMS provider available",
        )

    def describe(self) -> dict[str, Any]:
        """Summarize which providers are configured."""
        names = [p.name for p in self.providers]
        return {
            "active_provider": self.active_provider,
            "providers": names,
            "twilio_configured": TwilioProvider.name in names,
            "generic_configured": GenericGatewayProvider.name in names,
            "mock_mode": self.active_provider == MockProvider.name,
        }


def build_provider_chain(settings: "SmsSettings", client: httpx.AsyncClient) -> ProviderChain:
    """Build the provider chain from configured credentials.

    Args:
        settings: SMS settings.
        client: HTTP client shared by the providers.

    Returns:
        ProviderChain ending with a MockProvider.
    """
    providers: list[SmsProvider] = []

    if settings.twilio_configured:
        providers.append(
            TwilioProvider(
                client,
                account_sid=settings.twilio_account_sid,
                auth_token=settings.twilio_auth_token.get_secret_value(),
                from_number=settings.from_number,
                api_url=settings.twilio_api_url,
                timeout=settings.timeout,
            )
        )

    if settings.generic_configured:
        providers.append(
            GenericGatewayProvider(
                client,
                api_url=settings.api_url,
                api_key=settings.api_key.get_secret_value(),
                from_number=settings.from_number,
                timeout=settings.timeout,
            )
        )

    providers.append(MockProvider(latency=settings.mock_latency))
    return ProviderChain(providers)
