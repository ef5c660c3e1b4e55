# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bounded batch execution for bulk provider calls."""

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive chunks of at most size elements."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


async def run_batched(
    items: Sequence[T],
    batch_size: int,
    fn: Callable[[T], Awaitable[R]],
    inter_batch_delay: float = 0.0,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> list[R]:
    """Run fn over items in batches and return results in input order.

    Items within a batch run concurrently. The delay is awaited between
    consecutive batches only, never before the first or after the last.
    An exception raised by fn propagates to the caller.

    Args:
        items: Items to process.
        batch_size: Maximum number of concurrent calls.
        fn: Coroutine function applied to each item.
        inter_batch_delay: Seconds to wait between batches.
        sleep: Sleep function, asyncio.sleep if omitted.

    Returns:
        One result per item, in the same order as items.
    """
    sleep = sleep or asyncio.sleep
    results: list[R] = []
    batches = chunked(items, batch_size)

    for index, batch in enumerate(batches):
        if index > 0 and inter_batch_delay > 0:
            await sleep(inter_batch_delay)
        results.extend(await asyncio.gather(*(fn(item) for item in batch)))

    return results
