"""Tests for the shared token bucket rate limiter."""

from __future__ import annotations

import pytest

from jquants_ingest.services.rate_limiter import TokenBucketRateLimiter


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.mark.asyncio
async def test_rate_limiter_allows_burst_up_to_capacity_without_waiting() -> None:
    clock = _FakeClock()
    limiter = TokenBucketRateLimiter(
        capacity=5, window_seconds=60.0, clock=clock, sleep=clock.sleep
    )

    for _ in range(5):
        await limiter.acquire()

    assert clock.sleeps == []
    assert limiter.available_tokens == pytest.approx(0.0)


@pytest.mark.asyncio
async def test_rate_limiter_waits_for_refill_once_bucket_is_empty() -> None:
    clock = _FakeClock()
    limiter = TokenBucketRateLimiter(
        capacity=5, window_seconds=60.0, clock=clock, sleep=clock.sleep
    )
    for _ in range(5):
        await limiter.acquire()

    await limiter.acquire()

    # Five tokens per minute refill one token every twelve seconds.
    assert clock.sleeps == [pytest.approx(12.0)]
    assert limiter.available_tokens == pytest.approx(0.0)


@pytest.mark.asyncio
async def test_rate_limiter_refills_with_elapsed_time_but_never_above_capacity() -> None:
    clock = _FakeClock()
    limiter = TokenBucketRateLimiter(
        capacity=60, window_seconds=60.0, clock=clock, sleep=clock.sleep
    )
    for _ in range(10):
        await limiter.acquire()
    assert limiter.available_tokens == pytest.approx(50.0)

    clock.now += 4.0
    assert limiter.available_tokens == pytest.approx(54.0)

    clock.now += 3600.0
    assert limiter.available_tokens == pytest.approx(60.0)
    assert limiter.capacity == 60


def test_rate_limiter_rejects_invalid_configuration() -> None:
    with pytest.raises(ValueError, match="capacity"):
        TokenBucketRateLimiter(capacity=0)
    with pytest.raises(ValueError, match="window_seconds"):
        TokenBucketRateLimiter(capacity=1, window_seconds=0)
