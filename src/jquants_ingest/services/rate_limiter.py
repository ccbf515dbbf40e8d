"""Process-wide token bucket limiting outbound API request rate."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

DEFAULT_CAPACITY = 60
DEFAULT_WINDOW_SECONDS = 60.0

_rate_limit_logger = logging.getLogger("jquants_ingest.rate_limiter")


class TokenBucketRateLimiter:
    """Token bucket refilled continuously at ``capacity`` tokens per window.

    One instance is created by the application root and passed to every API
    client that shares the upstream quota. ``acquire`` never rejects; it only
    delays the caller until a token is available. Waiters are served in
    arrival order because the bucket lock is held while sleeping.
    """

    def __init__(
        self,
        *,
        capacity: int = DEFAULT_CAPACITY,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be greater than zero")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be greater than zero")

        self._capacity = float(capacity)
        self._refill_per_second = capacity / window_seconds
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._last_refill = clock()
        self._lock = asyncio.Lock()

    @property
    def capacity(self) -> int:
        return int(self._capacity)

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens

    async def acquire(self) -> None:
        async with self._lock:
            self._refill()
            if self._tokens < 1:
                wait_seconds = (1 - self._tokens) / self._refill_per_second
                _rate_limit_logger.debug(
                    "rate_limit_wait",
                    extra={"delay_seconds": round(wait_seconds, 3)},
                )
                await self._sleep(wait_seconds)
                self._refill()
                # A coarse clock can report less elapsed time than was slept.
                self._tokens = max(self._tokens, 1.0)

            self._tokens -= 1

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(now - self._last_refill, 0.0)
        self._last_refill = now
        self._tokens = min(
            self._capacity, self._tokens + elapsed * self._refill_per_second
        )


__all__ = ["DEFAULT_CAPACITY", "DEFAULT_WINDOW_SECONDS", "TokenBucketRateLimiter"]
