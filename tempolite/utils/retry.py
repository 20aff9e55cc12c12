from __future__ import annotations

import asyncio
import random


def compute_backoff(
    attempt: int, base: float = 0.5, factor: float = 2.0, jitter: float = 0.1
) -> float:
    """Compute exponential backoff with jitter."""
    delay = base * factor ** attempt
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt)
    await asyncio.sleep(delay)
