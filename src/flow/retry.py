"""
Bounded retry with linear backoff.

Independent of any UI timer: callers inject `sleep`, so tests and hosts can
drive the schedule without real waiting. Cancelling the awaiting task
interrupts a pending delay.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Maximum attempts and a delay that grows linearly with the attempt number."""
    max_attempts: int = 3
    delay_step_seconds: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay before zero-based `attempt` (0s, 2s, 4s with the defaults)."""
        return attempt * self.delay_step_seconds

    def schedule(self) -> list[float]:
        return [self.delay_for(attempt) for attempt in range(self.max_attempts)]


async def poll(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    until: Callable[[T], bool],
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Run `operation` up to `policy.max_attempts` times.

    Stops early as soon as `until(result)` is true. Exceptions from the
    operation propagate to the caller unchanged.

    Returns:
        The result of the last attempt made
    """
    if policy.max_attempts < 1:
        raise ValueError("RetryPolicy.max_attempts must be at least 1")

    result: T | None = None
    for attempt in range(policy.max_attempts):
        delay = policy.delay_for(attempt)
        if delay > 0:
            logger.debug(f"Attempt {attempt + 1}/{policy.max_attempts} in {delay:.1f}s")
            await sleep(delay)
        result = await operation()
        if until(result):
            break
    return result
