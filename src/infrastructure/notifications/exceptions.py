# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exceptions raised inside the notification engine.

Only NoRecipientsError reaches callers of the service. Every other error
is converted into a DeliveryResult by the channel that hit it.
"""

from typing import Optional


class NotificationError(Exception):
    """Base exception for notification delivery.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class ConfigurationError(NotificationError):
    """Provider credentials are absent or unusable."""


class ContactValidationError(NotificationError):
    """A recipient's push token or phone number is malformed."""


class ProviderError(NotificationError):
    """A provider call failed at the network level or returned non-2xx.

    Attributes:
        provider: Name of the provider that failed.
        status_code: HTTP status code, when the provider answered.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, original_error)
        self.provider = provider
        self.status_code = status_code

    def __str__(self) -> str:
        prefix = f"{self.provider}"
        if self.status_code is not None:
            prefix += f" ({self.status_code})"
        return f"{prefix}: {super().__str__()}"


class NoRecipientsError(NotificationError):
    """A send was requested for an empty recipient list."""

    def __init__(self, message: str = "No recipients found") -> None:
        super().__init__(message)
