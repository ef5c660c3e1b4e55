# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the batch scheduler."""

import asyncio

import pytest

from src.infrastructure.notifications.batching import chunked, run_batched


class RecordingSleep:
    """Sleep replacement recording requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class TestChunked:
    """Tests for chunked()."""

    def test_splits_into_bounded_chunks(self) -> None:
        """Test the last chunk holds the remainder."""
        assert chunked(list(range(12)), 5) == [
            [0, 1, 2, 3, 4],
            [5, 6, 7, 8, 9],
            [10, 11],
        ]

    def test_empty_input(self) -> None:
        assert chunked([], 5) == []

    def test_rejects_zero_size(self) -> None:
        with pytest.raises(ValueError):
            chunked([1, 2], 0)


class TestRunBatched:
    """Tests for run_batched()."""

    @pytest.mark.asyncio
    async def test_three_batches_two_delays(self) -> None:
        """Test 12 items in batches of 5 sleep only between batches."""
        sleep = RecordingSleep()

        async def double(x: int) -> int:
            return x * 2

        results = await run_batched(list(range(12)), 5, double, inter_batch_delay=1.0, sleep=sleep)

        assert results == [x * 2 for x in range(12)]
        assert sleep.delays == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_single_batch_never_sleeps(self) -> None:
        sleep = RecordingSleep()

        async def identity(x: int) -> int:
            return x

        await run_batched([1, 2, 3], 5, identity, inter_batch_delay=1.0, sleep=sleep)

        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_preserves_order_with_uneven_latency(self) -> None:
        """Test results map 1:1 to items even when later items finish first."""

        async def slow_first(x: int) -> int:
            await asyncio.sleep(0.01 if x == 0 else 0)
            return x

        results = await run_batched([0, 1, 2, 3], 4, slow_first)

        assert results == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_items_in_batch_run_concurrently(self) -> None:
        """Test no more than batch_size calls are in flight at once."""
        in_flight = 0
        peak = 0

        async def track(x: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return x

        await run_batched(list(range(7)), 3, track)

        assert peak == 3

    @pytest.mark.asyncio
    async def test_exceptions_propagate(self) -> None:
        async def boom(x: int) -> int:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await run_batched([1], 1, boom)

    @pytest.mark.asyncio
    async def test_empty_items(self) -> None:
        async def identity(x: int) -> int:
            return x

        assert await run_batched([], 5, identity) == []
