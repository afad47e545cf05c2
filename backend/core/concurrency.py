# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Bounded fan-out for per-item network work inside a job.

Each job gets its own limiter, independent of the queue's top-level worker
count, so one large crawl cannot monopolize API quota.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_limited(
    items: Iterable[T],
    worker: Callable[[int, T], Awaitable[Any]],
    max_concurrent: int = 5
) -> List[Any]:
    """
    Run ``worker(index, item)`` for every item with at most ``max_concurrent`` in flight.

    Exceptions are returned in place of results so callers can count
    per-item failures without aborting the batch.

    Args:
        items: Work items
        worker: Async callable receiving the item's position and the item
        max_concurrent: Maximum concurrent executions

    Returns:
        Results (or exceptions) in input order
    """
    semaphore = asyncio.Semaphore(max(1, max_concurrent))
    items = list(items)

    async def run_with_semaphore(index: int, item: T) -> Any:
        async with semaphore:
            return await worker(index, item)

    logger.debug(f"Running {len(items)} items (max {max_concurrent} concurrent)")

    return await asyncio.gather(
        *[run_with_semaphore(i, item) for i, item in enumerate(items)],
        return_exceptions=True
    )


__all__ = ["gather_limited"]
