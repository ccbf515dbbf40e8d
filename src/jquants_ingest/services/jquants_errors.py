"""J-Quants API error classification and retry utilities."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Final

import httpx

RETRYABLE_HTTP_STATUS_CODES: Final[frozenset[int]] = frozenset({429})
DEFAULT_MAX_ATTEMPTS: Final[int] = 3
DEFAULT_BASE_DELAY_SECONDS: Final[float] = 1.0
DEFAULT_MAX_DELAY_SECONDS: Final[float] = 30.0

_LOGGER = logging.getLogger("jquants_ingest.jquants_api")


class JQuantsConfigurationError(RuntimeError):
    """Raised when the client is constructed without required credentials."""


class JQuantsAPIError(Exception):
    """Base upstream API exception with request context."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str | None = None,
        body: str | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.endpoint = endpoint
        self.body = body
        super().__init__(message)


class RetryableAPIError(JQuantsAPIError):
    """Rate limiting, server error, or transport failure; safe to retry."""


class NonRetryableAPIError(JQuantsAPIError):
    """Request defect such as bad credentials or parameters."""


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_HTTP_STATUS_CODES or 500 <= status_code <= 599


def classify_response(response: httpx.Response, *, endpoint: str) -> None:
    """Raise a typed error for a non-2xx response; return for success."""

    if response.is_success:
        return

    body = response.text[:500]
    message = f"J-Quants API error: {response.status_code} {body}".strip()
    error_type: type[JQuantsAPIError] = (
        RetryableAPIError
        if is_retryable_status(response.status_code)
        else NonRetryableAPIError
    )
    raise error_type(
        message,
        status_code=response.status_code,
        endpoint=endpoint,
        body=body,
    )


def compute_backoff_delay(
    attempt: int,
    *,
    base_delay_seconds: float,
    max_delay_seconds: float,
    jitter: Callable[[float, float], float] = random.uniform,
) -> float:
    """Exponential delay for a zero-based ``attempt`` with up to 50% added jitter."""

    exponential = base_delay_seconds * (2**attempt)
    delay = exponential + jitter(0.0, exponential * 0.5)
    return min(delay, max_delay_seconds)


async def execute_with_retry(
    send: Callable[[], Awaitable[httpx.Response]],
    *,
    endpoint: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay_seconds: float = DEFAULT_BASE_DELAY_SECONDS,
    max_delay_seconds: float = DEFAULT_MAX_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    jitter: Callable[[float, float], float] = random.uniform,
) -> httpx.Response:
    """Perform ``send`` until success, a non-retryable error, or attempt exhaustion."""

    if max_attempts < 1:
        raise ValueError("max_attempts must be at least one")
    if base_delay_seconds < 0:
        raise ValueError("base_delay_seconds must be zero or greater")

    last_error = RetryableAPIError("J-Quants API request was not attempted")
    for attempt in range(max_attempts):
        try:
            response = await send()
            classify_response(response, endpoint=endpoint)
            return response
        except httpx.TransportError as error:
            last_error = RetryableAPIError(
                f"J-Quants API transport error: {error.__class__.__name__}: {error}",
                endpoint=endpoint,
            )
            last_error.__cause__ = error
        except RetryableAPIError as error:
            last_error = error

        if attempt + 1 >= max_attempts:
            break

        delay = compute_backoff_delay(
            attempt,
            base_delay_seconds=base_delay_seconds,
            max_delay_seconds=max_delay_seconds,
            jitter=jitter,
        )
        _LOGGER.warning(
            "jquants_api_retrying",
            extra={
                "endpoint": endpoint,
                "attempt": attempt + 1,
                "max_attempts": max_attempts,
                "status_code": last_error.status_code,
                "delay_seconds": round(delay, 3),
                "error": last_error.message,
            },
        )
        await sleep(delay)

    _LOGGER.error(
        "jquants_api_retries_exhausted",
        extra={
            "endpoint": endpoint,
            "max_attempts": max_attempts,
            "status_code": last_error.status_code,
            "error": last_error.message,
        },
    )
    raise last_error


__all__ = [
    "JQuantsAPIError",
    "JQuantsConfigurationError",
    "NonRetryableAPIError",
    "RETRYABLE_HTTP_STATUS_CODES",
    "RetryableAPIError",
    "classify_response",
    "compute_backoff_delay",
    "execute_with_retry",
    "is_retryable_status",
]
