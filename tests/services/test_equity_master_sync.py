"""Tests for keeping the equity master as a change history."""

from __future__ import annotations

from datetime import date
from typing import Any

import httpx
import pytest
from sqlalchemy import select

from jquants_ingest.models import EquityMaster
from jquants_ingest.services.dataset_sync import sync_equity_master
from jquants_ingest.services.jquants_client import JQuantsClient
from jquants_ingest.services.rate_limiter import TokenBucketRateLimiter

DAY_1 = date(2026, 10, 14)
DAY_2 = date(2026, 10, 15)
DAY_3 = date(2026, 10, 16)


def _client(master_by_date: dict[str, list[dict[str, Any]]]) -> JQuantsClient:
    def handler(request: httpx.Request) -> httpx.Response:
        items = master_by_date.get(request.url.params.get("date", ""), [])
        return httpx.Response(200, json={"data": items})

    return JQuantsClient(
        api_key="test-api-key",
        rate_limiter=TokenBucketRateLimiter(capacity=1000),
        max_attempts=1,
        transport=httpx.MockTransport(handler),
    )


def _issue(code: str, name: str, market: str = "0111") -> dict[str, Any]:
    return {"Code": code, "CoName": name, "Mkt": market, "S33": "3700"}


async def _history(session_factory) -> list[tuple[Any, ...]]:
    async with session_factory() as session:
        versions = (
            await session.scalars(
                select(EquityMaster).order_by(
                    EquityMaster.local_code, EquityMaster.valid_from
                )
            )
        ).all()
    return [
        (
            version.local_code,
            version.company_name,
            version.market_code,
            version.valid_from,
            version.valid_to,
            version.is_current,
        )
        for version in versions
    ]


@pytest.mark.asyncio
async def test_first_sync_opens_one_version_per_issue(session_factory) -> None:
    client = _client(
        {"2026-10-14": [_issue("72030", "Toyota"), _issue("13010", "Kyokuyo")]}
    )

    async with client:
        result = await sync_equity_master(client, session_factory, target_date=DAY_1)

    assert result.success is True
    assert (result.fetched, result.inserted) == (2, 2)
    assert (result.updated, result.closed) == (0, 0)
    assert await _history(session_factory) == [
        ("13010", "Kyokuyo", "0111", DAY_1, None, True),
        ("72030", "Toyota", "0111", DAY_1, None, True),
    ]


@pytest.mark.asyncio
async def test_unchanged_master_writes_nothing(session_factory) -> None:
    issues = [_issue("72030", "Toyota")]
    client = _client({"2026-10-14": issues, "2026-10-15": issues})

    async with client:
        await sync_equity_master(client, session_factory, target_date=DAY_1)
        rerun = await sync_equity_master(client, session_factory, target_date=DAY_1)
        next_day = await sync_equity_master(client, session_factory, target_date=DAY_2)

    assert (rerun.inserted, rerun.updated, rerun.closed) == (0, 0, 0)
    assert (next_day.inserted, next_day.updated, next_day.closed) == (0, 0, 0)
    assert await _history(session_factory) == [
        ("72030", "Toyota", "0111", DAY_1, None, True),
    ]


@pytest.mark.asyncio
async def test_attribute_change_closes_open_version_and_opens_new_one(
    session_factory,
) -> None:
    client = _client(
        {
            "2026-10-14": [_issue("72030", "Toyota")],
            "2026-10-15": [_issue("72030", "Toyota", market="0112")],
        }
    )

    async with client:
        await sync_equity_master(client, session_factory, target_date=DAY_1)
        result = await sync_equity_master(client, session_factory, target_date=DAY_2)

    assert (result.inserted, result.updated, result.closed) == (1, 0, 1)
    assert await _history(session_factory) == [
        ("72030", "Toyota", "0111", DAY_1, DAY_2, False),
        ("72030", "Toyota", "0112", DAY_2, None, True),
    ]


@pytest.mark.asyncio
async def test_issue_missing_from_feed_is_closed_and_can_return(
    session_factory,
) -> None:
    client = _client(
        {
            "2026-10-14": [_issue("72030", "Toyota"), _issue("13010", "Kyokuyo")],
            "2026-10-15": [_issue("72030", "Toyota")],
            "2026-10-16": [_issue("72030", "Toyota"), _issue("13010", "Kyokuyo")],
        }
    )

    async with client:
        await sync_equity_master(client, session_factory, target_date=DAY_1)
        dropped = await sync_equity_master(client, session_factory, target_date=DAY_2)
        returned = await sync_equity_master(client, session_factory, target_date=DAY_3)

    assert dropped.closed == 1
    assert returned.inserted == 1
    assert await _history(session_factory) == [
        ("13010", "Kyokuyo", "0111", DAY_1, DAY_2, False),
        ("13010", "Kyokuyo", "0111", DAY_3, None, True),
        ("72030", "Toyota", "0111", DAY_1, None, True),
    ]


@pytest.mark.asyncio
async def test_empty_feed_keeps_open_versions(session_factory) -> None:
    client = _client({"2026-10-14": [_issue("72030", "Toyota")]})

    async with client:
        await sync_equity_master(client, session_factory, target_date=DAY_1)
        result = await sync_equity_master(client, session_factory, target_date=DAY_2)

    assert (result.fetched, result.closed) == (0, 0)
    assert await _history(session_factory) == [
        ("72030", "Toyota", "0111", DAY_1, None, True),
    ]


@pytest.mark.asyncio
async def test_same_day_rerun_corrects_version_in_place(session_factory) -> None:
    feeds = {"2026-10-14": [_issue("72030", "Toyota")]}
    client = _client(feeds)

    async with client:
        await sync_equity_master(client, session_factory, target_date=DAY_1)
        feeds["2026-10-14"] = [_issue("72030", "Toyota Motor")]
        result = await sync_equity_master(client, session_factory, target_date=DAY_1)

    assert (result.inserted, result.updated, result.closed) == (0, 1, 0)
    assert await _history(session_factory) == [
        ("72030", "Toyota Motor", "0111", DAY_1, None, True),
    ]


@pytest.mark.asyncio
async def test_older_date_does_not_rewrite_newer_history(session_factory) -> None:
    client = _client(
        {
            "2026-10-14": [_issue("72030", "Toyota")],
            "2026-10-15": [_issue("72030", "Toyota", market="0112")],
        }
    )

    async with client:
        await sync_equity_master(client, session_factory, target_date=DAY_2)
        result = await sync_equity_master(client, session_factory, target_date=DAY_1)

    assert (result.inserted, result.updated, result.closed) == (0, 0, 0)
    assert await _history(session_factory) == [
        ("72030", "Toyota", "0112", DAY_2, None, True),
    ]
