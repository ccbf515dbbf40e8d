"""Timezone helpers for exchange-local dates."""

from __future__ import annotations

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

MARKET_TIMEZONE = ZoneInfo("Asia/Tokyo")


def utc_now() -> datetime:
    return datetime.now(UTC)


def market_today() -> date:
    """Return today's date on the exchange calendar (Asia/Tokyo)."""

    return datetime.now(MARKET_TIMEZONE).date()


def as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_api_date(value: object) -> date | None:
    """Parse ``YYYY-MM-DD`` or ``YYYYMMDD`` strings returned by the upstream API."""

    if value is None:
        return None
    if isinstance(value, date):
        return value

    text_value = str(value).strip()
    if text_value == "":
        return None
    if len(text_value) == 8 and text_value.isdigit():
        return datetime.strptime(text_value, "%Y%m%d").date()
    return date.fromisoformat(text_value[:10])


def format_api_date(value: date) -> str:
    return value.isoformat()


__all__ = [
    "MARKET_TIMEZONE",
    "as_utc",
    "format_api_date",
    "market_today",
    "parse_api_date",
    "utc_now",
]
