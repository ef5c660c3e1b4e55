# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification channels for delivering notifications.

This package provides channel implementations for sending
notifications through various delivery mechanisms:

- InAppChannel: Creates notification records through the persistence sink
- PushChannel: Sends push notifications via the Expo push gateway
- EmailChannel: Sends email notifications via SMTP
- SmsChannel: Sends SMS via a provider fallback chain
- WhatsAppChannel: Sends WhatsApp messages via the Meta Graph API

Usage:
    from src.infrastructure.notifications.channels import EmailChannel

    email = EmailChannel(settings.email)
    results = await email.send_bulk(recipients, request)
"""

from src.infrastructure.notifications.channels.base import BaseChannel, HttpChannel
from src.infrastructure.notifications.channels.email import (
    EmailChannel,
    MockEmailTransport,
    SmtpTransport,
)
from src.infrastructure.notifications.channels.in_app import InAppChannel
from src.infrastructure.notifications.channels.push import PushChannel, is_push_token
from src.infrastructure.notifications.channels.sms import SmsChannel, build_sms_text
from src.infrastructure.notifications.channels.whatsapp import (
    WebhookEvents,
    WhatsAppChannel,
    build_whatsapp_text,
)

__all__ = [
    # Base types
    "BaseChannel",
    "HttpChannel",
    # Channels
    "EmailChannel",
    "InAppChannel",
    "PushChannel",
    "SmsChannel",
    "WhatsAppChannel",
    # Helpers
    "MockEmailTransport",
    "SmtpTransport",
    "WebhookEvents",
    "build_sms_text",
    "build_whatsapp_text",
    "is_push_token",
]
