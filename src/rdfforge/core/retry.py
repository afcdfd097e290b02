"""Exponential backoff for retryable faults."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from rdfforge.core.errors import InfrastructureError

logger = logging.getLogger("rdfforge.retry")

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number `attempt` (0-based): base * 2^attempt, capped."""
    return min(base_delay * (2 ** attempt), max_delay)


async def with_backoff(
    func: Callable[[], Awaitable[T]],
    attempts: int,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    retry_on: tuple[type[BaseException], ...] = (InfrastructureError,),
    on_retry: Callable[[int, BaseException, float], Awaitable[None]] | None = None,
) -> T:
    """Call `func` until it succeeds or `attempts` retries are used up.

    `attempts` counts retries, so the call is made at most attempts + 1 times.
    The last error is re-raised unchanged.
    """
    attempt = 0
    while True:
        try:
            return await func()
        except retry_on as e:
            if attempt >= attempts:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(f"Retryable error ({type(e).__name__}: {e}), retry {attempt + 1}/{attempts} in {delay:.2f}s")
            if on_retry is not None:
                await on_retry(attempt + 1, e, delay)
            await asyncio.sleep(delay)
            attempt += 1
