"""SchoolSync Notify.

Multi-channel notification engine delivering school notifications to
parents over in-app, push, email, SMS and WhatsApp channels.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
