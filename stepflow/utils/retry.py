from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from ..contracts import RetryPolicy

SleepFn = Callable[[float], Awaitable[None]]


def compute_backoff(attempt: int, policy: Optional[RetryPolicy]) -> float:
    """Seconds to wait before ``attempt`` under ``policy``."""
    if policy is None:
        return 0.0
    return policy.delay_before(attempt) / 1000.0


async def schedule_retry(
    attempt: int, policy: Optional[RetryPolicy], sleep: SleepFn = asyncio.sleep
) -> float:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, policy)
    if delay > 0:
        await sleep(delay)
    return delay
