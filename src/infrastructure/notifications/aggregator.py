# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Folding of per-channel delivery results into a single report."""

import math
from typing import Mapping, Sequence

from src.infrastructure.notifications.models import (
    CHANNEL_ORDER,
    ChannelSummary,
    ChannelType,
    DeliveryReport,
    DeliveryResult,
    DeliveryStatus,
    FailureDetail,
)

SUCCESS_THRESHOLD = 50


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def summarize_channel(results: Sequence[DeliveryResult]) -> ChannelSummary:
    """Count the results of one attempted channel.

    Only the first result per recipient is counted.
    """
    seen: set[str] = set()
    sent = failed = skipped = 0
    errors: list[FailureDetail] = []

    for result in results:
        if result.recipient_id in seen:
            continue
        seen.add(result.recipient_id)

        if result.status == DeliveryStatus.SENT:
            sent += 1
        elif result.status == DeliveryStatus.FAILED:
            failed += 1
            errors.append(
                FailureDetail(
                    recipient_id=result.recipient_id,
                    error=result.error_detail or "Unknown error",
                )
            )
        else:
            skipped += 1

    return ChannelSummary(
        attempted=True,
        sent=sent,
        failed=failed,
        skipped=skipped,
        errors=tuple(errors),
    )


def merge(
    per_channel_results: Mapping[ChannelType, Sequence[DeliveryResult]],
    recipient_count: int,
) -> DeliveryReport:
    """Merge per-channel results into a DeliveryReport.

    Channels present in per_channel_results are the attempted ones, even
    with an empty list. Channels absent from it are reported as not
    attempted and add nothing to the rate denominator.

    Args:
        per_channel_results: Results keyed by attempted channel.
        recipient_count: Number of recipients of the dispatch.

    Returns:
        The aggregated report.
    """
    channels: dict[ChannelType, ChannelSummary] = {}
    ordered: list[DeliveryResult] = []

    for channel in CHANNEL_ORDER:
        if channel in per_channel_results:
            results = per_channel_results[channel]
            channels[channel] = summarize_channel(results)
            ordered.extend(results)
        else:
            channels[channel] = ChannelSummary()

    channels_attempted = len([c for c in CHANNEL_ORDER if c in per_channel_results])
    sent_all = sum(summary.sent for summary in channels.values())
    denominator = recipient_count * channels_attempted

    if denominator > 0:
        delivery_rate = round_half_up(sent_all / denominator * 100)
    else:
        delivery_rate = 0

    return DeliveryReport(
        recipient_count=recipient_count,
        channels=channels,
        channels_attempted=channels_attempted,
        delivery_rate=delivery_rate,
        overall_success=delivery_rate >= SUCCESS_THRESHOLD,
        results=tuple(ordered),
    )
