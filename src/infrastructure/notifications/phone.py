# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Phone number normalization for the SMS and WhatsApp channels."""

import re

from src.infrastructure.notifications.exceptions import ContactValidationError

NON_DIGITS = re.compile(r"\D")

# E.164 numbers carry at most 15 digits
MIN_DIGITS = 7
MAX_DIGITS = 15


def digits_only(phone: str | None) -> str:
    """Strip everything but digits from a phone number."""
    return NON_DIGITS.sub("", phone or "")


def _checked_digits(phone: str | None) -> str:
    digits = digits_only(phone)
    if not MIN_DIGITS <= len(digits) <= MAX_DIGITS:
        raise ContactValidationError(f"Invalid phone number: {phone!r}")
    return digits


def to_e164(phone: str | None, default_country_code: str = "91") -> str:
    """Format a raw phone number as E.164.

    Ten digit numbers are treated as local and get the default country
    code. Anything else is assumed to already carry its country code.

    Args:
        phone: Raw phone number, in any notation.
        default_country_code: Country code for local numbers.

    Returns:
        The number as "+" followed by digits.

    Raises:
        ContactValidationError: If the number has too few or too many digits.
    """
    digits = _checked_digits(phone)
    if len(digits) == 10:
        return f"+{default_country_code}{digits}"
    return f"+{digits}"


def to_whatsapp_id(phone: str | None, default_country_code: str = "91") -> str:
    """Format a raw phone number as a WhatsApp id (digits, no plus sign).

    Raises:
        ContactValidationError: If the number has too few or too many digits.
    """
    return to_e164(phone, default_country_code)[1:]
