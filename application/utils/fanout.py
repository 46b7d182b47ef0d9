"""Bounded concurrent fan-out."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, TypeVar

from core.logging_config import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class FanoutResult:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[BaseException] = field(default_factory=list)


async def bounded_fanout(
    targets: Iterable[T],
    send: Callable[[T], Awaitable[bool]],
    *,
    concurrency: int,
) -> FanoutResult:
    """
    Call ``send`` for every target with at most ``concurrency`` in flight.

    ``send`` returns True on delivery. A False return or a raised exception
    counts as a failure; neither stops the other targets.
    """
    items = list(targets)
    result = FanoutResult(attempted=len(items))
    if not items:
        return result

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _one(target: T) -> bool:
        async with semaphore:
            return await send(target)

    outcomes = await asyncio.gather(*(_one(t) for t in items), return_exceptions=True)
    for target, outcome in zip(items, outcomes):
        if isinstance(outcome, BaseException):
            result.failed += 1
            result.errors.append(outcome)
            logger.warning("fanout_target_failed", target=str(target), error=str(outcome))
        elif outcome:
            result.succeeded += 1
        else:
            result.failed += 1
    return result
