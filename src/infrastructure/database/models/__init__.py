# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""ORM models for the notification store."""

from src.infrastructure.database.models.base import Base
from src.infrastructure.database.models.notification import ParentNotification

__all__ = [
    "Base",
    "ParentNotification",
]
