"""Rate-limited, retrying J-Quants API client with pagination support."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Final

import httpx

from jquants_ingest.config import Settings
from jquants_ingest.services.jquants_errors import (
    DEFAULT_BASE_DELAY_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DELAY_SECONDS,
    JQuantsAPIError,
    JQuantsConfigurationError,
    execute_with_retry,
)
from jquants_ingest.services.rate_limiter import TokenBucketRateLimiter

DEFAULT_BASE_URL: Final[str] = "https://api.jquants.com/v2"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 30.0
PAGINATION_KEY: Final[str] = "pagination_key"
MISSING_API_KEY_MESSAGE: Final[str] = (
    "J-Quants API key is required. Set JQUANTS_API_KEY environment variable."
)

TRADING_CALENDAR_ENDPOINT: Final[str] = "/markets/calendar"
EQUITY_MASTER_ENDPOINT: Final[str] = "/equities/master"
EQUITY_BARS_DAILY_ENDPOINT: Final[str] = "/equities/bars/daily"
TOPIX_BARS_DAILY_ENDPOINT: Final[str] = "/indices/bars/daily/topix"
FINANCIAL_SUMMARY_ENDPOINT: Final[str] = "/fins/summary"
EARNINGS_CALENDAR_ENDPOINT: Final[str] = "/equities/earnings-calendar"
INVESTOR_TYPES_ENDPOINT: Final[str] = "/equities/investor-types"

Params = dict[str, str]
ApiItem = dict[str, Any]

_client_logger = logging.getLogger("jquants_ingest.jquants_client")


@dataclass(slots=True, frozen=True)
class ApiPage:
    """One decoded response page."""

    data: list[ApiItem]
    pagination_key: str | None = None


@dataclass(slots=True)
class FetchedItems:
    """Items drained from every page of one paginated request."""

    items: list[ApiItem] = field(default_factory=list)
    page_count: int = 0


class JQuantsClient:
    """Issue authenticated requests against the J-Quants v2 API.

    Every request takes one token from the shared rate limiter and is then
    performed with classification-driven retry.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        rate_limiter: TokenBucketRateLimiter,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_seconds: float = DEFAULT_BASE_DELAY_SECONDS,
        max_delay_seconds: float = DEFAULT_MAX_DELAY_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise JQuantsConfigurationError(MISSING_API_KEY_MESSAGE)

        self._rate_limiter = rate_limiter
        self._max_attempts = max_attempts
        self._base_delay_seconds = base_delay_seconds
        self._max_delay_seconds = max_delay_seconds
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"x-api-key": api_key, "Accept": "application/json"},
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        rate_limiter: TokenBucketRateLimiter,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> JQuantsClient:
        api_key = (
            settings.JQUANTS_API_KEY.get_secret_value()
            if settings.JQUANTS_API_KEY is not None
            else None
        )
        return cls(
            api_key=api_key,
            rate_limiter=rate_limiter,
            base_url=settings.JQUANTS_BASE_URL,
            timeout_seconds=settings.JQUANTS_TIMEOUT_SECONDS,
            max_attempts=settings.JQUANTS_MAX_ATTEMPTS,
            base_delay_seconds=settings.JQUANTS_RETRY_BASE_DELAY_SECONDS,
            max_delay_seconds=settings.JQUANTS_RETRY_MAX_DELAY_SECONDS,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> JQuantsClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def request(self, endpoint: str, params: Params | None = None) -> ApiPage:
        """Fetch one page from ``endpoint``."""

        query = {key: value for key, value in (params or {}).items() if value}
        await self._rate_limiter.acquire()
        response = await execute_with_retry(
            lambda: self._client.get(endpoint, params=query),
            endpoint=endpoint,
            max_attempts=self._max_attempts,
            base_delay_seconds=self._base_delay_seconds,
            max_delay_seconds=self._max_delay_seconds,
        )
        return _decode_page(response, endpoint=endpoint)

    async def request_paginated(
        self,
        endpoint: str,
        params: Params | None = None,
    ) -> AsyncIterator[ApiPage]:
        """Yield pages until a response omits the continuation key.

        Pages are fetched lazily: a consumer that stops iterating early issues
        no further requests.
        """

        page_params = dict(params or {})
        page_number = 0
        while True:
            page = await self.request(endpoint, page_params)
            page_number += 1
            _client_logger.debug(
                "jquants_page_fetched",
                extra={
                    "endpoint": endpoint,
                    "page": page_number,
                    "count": len(page.data),
                },
            )
            yield page
            if not page.pagination_key:
                return
            page_params[PAGINATION_KEY] = page.pagination_key

    async def fetch_all(
        self,
        endpoint: str,
        params: Params | None = None,
    ) -> FetchedItems:
        """Drain every page of ``endpoint`` into one item list."""

        fetched = FetchedItems()
        async for page in self.request_paginated(endpoint, params):
            fetched.items.extend(page.data)
            fetched.page_count += 1
        return fetched

    async def get_trading_calendar(
        self, *, date_from: str | None = None, date_to: str | None = None
    ) -> FetchedItems:
        return await self.fetch_all(
            TRADING_CALENDAR_ENDPOINT, {"from": date_from or "", "to": date_to or ""}
        )

    async def get_equity_master(
        self, *, code: str | None = None, date: str | None = None
    ) -> FetchedItems:
        return await self.fetch_all(
            EQUITY_MASTER_ENDPOINT, {"code": code or "", "date": date or ""}
        )

    async def get_equity_bars_daily(
        self,
        *,
        code: str | None = None,
        date: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> FetchedItems:
        return await self.fetch_all(
            EQUITY_BARS_DAILY_ENDPOINT,
            {
                "code": code or "",
                "date": date or "",
                "from": date_from or "",
                "to": date_to or "",
            },
        )

    async def get_topix_bars_daily(
        self, *, date_from: str | None = None, date_to: str | None = None
    ) -> FetchedItems:
        return await self.fetch_all(
            TOPIX_BARS_DAILY_ENDPOINT, {"from": date_from or "", "to": date_to or ""}
        )

    async def get_financial_summary(
        self, *, code: str | None = None, date: str | None = None
    ) -> FetchedItems:
        return await self.fetch_all(
            FINANCIAL_SUMMARY_ENDPOINT, {"code": code or "", "date": date or ""}
        )

    async def get_earnings_calendar(self) -> FetchedItems:
        return await self.fetch_all(EARNINGS_CALENDAR_ENDPOINT)

    async def get_investor_types(
        self,
        *,
        section: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> FetchedItems:
        return await self.fetch_all(
            INVESTOR_TYPES_ENDPOINT,
            {"section": section or "", "from": date_from or "", "to": date_to or ""},
        )


def _decode_page(response: httpx.Response, *, endpoint: str) -> ApiPage:
    try:
        payload = response.json()
    except ValueError as error:
        raise JQuantsAPIError(
            f"J-Quants API returned invalid JSON for {endpoint}",
            status_code=response.status_code,
            endpoint=endpoint,
        ) from error

    if not isinstance(payload, dict):
        raise JQuantsAPIError(
            f"J-Quants API returned an unexpected payload for {endpoint}",
            status_code=response.status_code,
            endpoint=endpoint,
        )

    data = payload.get("data") or []
    if not isinstance(data, list):
        raise JQuantsAPIError(
            f"J-Quants API 'data' field is not a list for {endpoint}",
            status_code=response.status_code,
            endpoint=endpoint,
        )

    pagination_key = payload.get(PAGINATION_KEY)
    return ApiPage(
        data=data,
        pagination_key=str(pagination_key) if pagination_key else None,
    )


__all__ = [
    "ApiItem",
    "ApiPage",
    "EARNINGS_CALENDAR_ENDPOINT",
    "EQUITY_BARS_DAILY_ENDPOINT",
    "EQUITY_MASTER_ENDPOINT",
    "FINANCIAL_SUMMARY_ENDPOINT",
    "FetchedItems",
    "INVESTOR_TYPES_ENDPOINT",
    "JQuantsClient",
    "MISSING_API_KEY_MESSAGE",
    "TOPIX_BARS_DAILY_ENDPOINT",
    "TRADING_CALENDAR_ENDPOINT",
]
