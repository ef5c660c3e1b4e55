# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for the notification engine.

Settings are Pydantic models loaded from environment variables, one
subsettings class per delivery channel.

Example:
    >>> from src.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.push.chunk_size
    100
"""

from src.core.config.settings import (
    DatabaseSettings,
    DispatchSettings,
    EmailSettings,
    PushSettings,
    Settings,
    SmsSettings,
    WhatsAppSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "DatabaseSettings",
    "PushSettings",
    "EmailSettings",
    "SmsSettings",
    "WhatsAppSettings",
    "DispatchSettings",
]
