# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package for SchoolSync Notify.

This package contains shared foundations:
- config: Application configuration and settings
"""
