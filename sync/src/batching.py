"""Bounded-concurrency batch runner for mirror pushes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    results: list[Any] = field(default_factory=list)
    errors: int = 0


async def run_batched(
    items: Iterable[Any],
    worker: Callable[[Any], Awaitable[Any]],
    batch_size: int,
) -> BatchResult:
    """Run worker over items with at most batch_size calls in flight.

    Each group is dispatched together and awaited as a set before the next
    one starts. Failures are logged and counted, never raised.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    items = list(items)
    outcome = BatchResult()

    for start in range(0, len(items), batch_size):
        group = items[start:start + batch_size]
        settled = await asyncio.gather(*(worker(item) for item in group), return_exceptions=True)
        for item, result in zip(group, settled):
            if isinstance(result, BaseException):
                logger.error("Batch item failed (%r): %s", _describe(item), result)
                outcome.errors += 1
            else:
                outcome.results.append(result)
    return outcome


def _describe(item) -> str:
    if isinstance(item, dict):
        for key in ("hevy_id", "exercise_template_id", "id"):
            if item.get(key) is not None:
                return f"{key}={item[key]}"
    return type(item).__name__
