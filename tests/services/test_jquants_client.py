"""Tests for the paginated J-Quants API client."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from jquants_ingest.config import Settings
from jquants_ingest.services.jquants_client import (
    EQUITY_BARS_DAILY_ENDPOINT,
    MISSING_API_KEY_MESSAGE,
    JQuantsClient,
)
from jquants_ingest.services.jquants_errors import (
    JQuantsConfigurationError,
    NonRetryableAPIError,
)
from jquants_ingest.services.rate_limiter import TokenBucketRateLimiter


class _CountingLimiter(TokenBucketRateLimiter):
    def __init__(self) -> None:
        super().__init__(capacity=1000)
        self.acquired = 0

    async def acquire(self) -> None:
        self.acquired += 1
        await super().acquire()


def _client(handler: Any, limiter: TokenBucketRateLimiter | None = None) -> JQuantsClient:
    return JQuantsClient(
        api_key="test-api-key",
        rate_limiter=limiter or TokenBucketRateLimiter(capacity=1000),
        max_attempts=2,
        base_delay_seconds=0.0,
        max_delay_seconds=0.0,
        transport=httpx.MockTransport(handler),
    )


def test_client_requires_api_key() -> None:
    with pytest.raises(JQuantsConfigurationError, match=MISSING_API_KEY_MESSAGE):
        JQuantsClient(api_key=None, rate_limiter=TokenBucketRateLimiter())
    with pytest.raises(JQuantsConfigurationError):
        JQuantsClient.from_settings(
            Settings(_env_file=None, JQUANTS_API_KEY=None),
            rate_limiter=TokenBucketRateLimiter(),
        )


@pytest.mark.asyncio
async def test_fetch_all_concatenates_pages_with_one_call_per_page() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if "pagination_key" not in request.url.params:
            first_page = [{"Code": "13010"}, {"Code": "13050"}]
            return httpx.Response(
                200, json={"data": first_page, "pagination_key": "p2"}
            )
        return httpx.Response(200, json={"data": [{"Code": "72030"}]})

    limiter = _CountingLimiter()
    async with _client(handler, limiter) as client:
        fetched = await client.get_equity_bars_daily(date="2026-10-16")

    assert [item["Code"] for item in fetched.items] == ["13010", "13050", "72030"]
    assert fetched.page_count == 2
    assert len(requests) == 2
    assert limiter.acquired == 2
    assert requests[0].url.path.endswith(EQUITY_BARS_DAILY_ENDPOINT)
    assert requests[0].headers["x-api-key"] == "test-api-key"
    assert requests[0].url.params["date"] == "2026-10-16"
    assert "code" not in requests[0].url.params
    assert requests[1].url.params["pagination_key"] == "p2"
    assert requests[1].url.params["date"] == "2026-10-16"


@pytest.mark.asyncio
async def test_request_paginated_is_lazy() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"data": [{"n": calls}], "pagination_key": "more"})

    async with _client(handler) as client:
        async for page in client.request_paginated("/markets/calendar"):
            assert page.data == [{"n": 1}]
            break

    assert calls == 1


@pytest.mark.asyncio
async def test_client_retries_server_errors_and_fails_fast_on_auth_errors() -> None:
    attempts: dict[str, int] = {"/markets/calendar": 0, "/fins/summary": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.removeprefix("/v2")
        attempts[endpoint] += 1
        if endpoint == "/markets/calendar" and attempts[endpoint] == 1:
            return httpx.Response(503, text="maintenance")
        if endpoint == "/fins/summary":
            return httpx.Response(401, json={"message": "invalid api key"})
        return httpx.Response(200, json={"data": [{"Date": "2026-10-16", "HolDiv": "1"}]})

    async with _client(handler) as client:
        calendar = await client.get_trading_calendar(date_from="2026-10-01")
        with pytest.raises(NonRetryableAPIError) as error:
            await client.get_financial_summary(date="2026-10-16")

    assert calendar.items == [{"Date": "2026-10-16", "HolDiv": "1"}]
    assert attempts == {"/markets/calendar": 2, "/fins/summary": 1}
    assert error.value.status_code == 401
