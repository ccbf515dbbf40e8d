"""Fetch, map and upsert one dataset at a time."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jquants_ingest.models import (
    EarningsCalendar,
    EquityBarDaily,
    EquityMaster,
    FinancialDisclosure,
    InvestorTypeTrading,
    TopixBarDaily,
    TradingCalendar,
)
from jquants_ingest.services.batch_writer import (
    batch_upsert,
    chunk_list,
    resolve_batch_size,
)
from jquants_ingest.services.jquants_client import FetchedItems, JQuantsClient
from jquants_ingest.services.mappers import (
    EARNINGS_CALENDAR_CONFLICT_KEY,
    EQUITY_BAR_CONFLICT_KEY,
    EQUITY_MASTER_TRACKED_FIELDS,
    FINANCIAL_DISCLOSURE_CONFLICT_KEY,
    INVESTOR_TYPE_CONFLICT_KEY,
    TOPIX_BAR_CONFLICT_KEY,
    TRADING_CALENDAR_CONFLICT_KEY,
    map_earnings_calendar,
    map_equity_bar,
    map_equity_master,
    map_financial_disclosure,
    map_investor_types,
    map_topix_bar,
    map_trading_calendar,
)
from jquants_ingest.utils.dates import format_api_date

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

DATASET_CALENDAR = "calendar"
DATASET_EQUITY_BARS = "equity_bars"
DATASET_TOPIX = "topix"
DATASET_FINANCIAL = "financial"
DATASET_EQUITY_MASTER = "equity_master"
DATASET_EARNINGS_CALENDAR = "earnings_calendar"
DATASET_INVESTOR_TYPES = "investor_types"

_sync_logger = logging.getLogger("jquants_ingest.dataset_sync")


@dataclass(slots=True)
class SyncResult:
    """Counts for one dataset sync; ``errors`` holds per-chunk write failures.

    ``updated`` and ``closed`` count in-place corrections and ended versions
    for history datasets.
    """

    dataset: str
    fetched: int = 0
    inserted: int = 0
    updated: int = 0
    closed: int = 0
    page_count: int = 0
    errors: list[str] = field(default_factory=list)
    dates: list[date] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


async def _write(
    session_factory: SessionScopeFactory,
    *,
    dataset: str,
    fetched: FetchedItems,
    rows: Sequence[dict[str, Any]],
    target: Any,
    conflict_key: Sequence[str],
) -> SyncResult:
    upsert = await batch_upsert(
        session_factory, target, rows, conflict_key, continue_on_error=True
    )
    result = SyncResult(
        dataset=dataset,
        fetched=len(fetched.items),
        inserted=upsert.inserted,
        page_count=fetched.page_count,
        errors=list(upsert.errors),
    )
    _sync_logger.info(
        "dataset_synced",
        extra={
            "dataset": dataset,
            "fetched": result.fetched,
            "inserted": result.inserted,
            "page": result.page_count,
        },
    )
    return result


async def sync_trading_calendar(
    client: JQuantsClient,
    session_factory: SessionScopeFactory,
    *,
    today: date,
    lookback_days: int,
    lookahead_days: int,
) -> SyncResult:
    fetched = await client.get_trading_calendar(
        date_from=format_api_date(today - timedelta(days=lookback_days)),
        date_to=format_api_date(today + timedelta(days=lookahead_days)),
    )
    rows = [map_trading_calendar(item) for item in fetched.items]
    return await _write(
        session_factory,
        dataset=DATASET_CALENDAR,
        fetched=fetched,
        rows=rows,
        target=TradingCalendar,
        conflict_key=TRADING_CALENDAR_CONFLICT_KEY,
    )


async def sync_equity_bars(
    client: JQuantsClient,
    session_factory: SessionScopeFactory,
    *,
    target_date: date,
) -> SyncResult:
    fetched = await client.get_equity_bars_daily(date=format_api_date(target_date))
    rows = [map_equity_bar(item) for item in fetched.items]
    return await _write(
        session_factory,
        dataset=DATASET_EQUITY_BARS,
        fetched=fetched,
        rows=rows,
        target=EquityBarDaily,
        conflict_key=EQUITY_BAR_CONFLICT_KEY,
    )


async def sync_topix(
    client: JQuantsClient,
    session_factory: SessionScopeFactory,
    *,
    target_date: date,
) -> SyncResult:
    api_date = format_api_date(target_date)
    fetched = await client.get_topix_bars_daily(date_from=api_date, date_to=api_date)
    rows = [map_topix_bar(item) for item in fetched.items]
    return await _write(
        session_factory,
        dataset=DATASET_TOPIX,
        fetched=fetched,
        rows=rows,
        target=TopixBarDaily,
        conflict_key=TOPIX_BAR_CONFLICT_KEY,
    )


async def sync_financial_disclosures(
    client: JQuantsClient,
    session_factory: SessionScopeFactory,
    *,
    target_date: date,
) -> SyncResult:
    fetched = await client.get_financial_summary(date=format_api_date(target_date))
    rows = [map_financial_disclosure(item) for item in fetched.items]
    return await _write(
        session_factory,
        dataset=DATASET_FINANCIAL,
        fetched=fetched,
        rows=rows,
        target=FinancialDisclosure,
        conflict_key=FINANCIAL_DISCLOSURE_CONFLICT_KEY,
    )


async def _apply_equity_master(
    session: AsyncSession,
    incoming: dict[str, dict[str, Any]],
    *,
    as_of: date,
    result: SyncResult,
) -> None:
    current = {
        version.local_code: version
        for version in (
            await session.scalars(
                select(EquityMaster).where(EquityMaster.is_current.is_(True))
            )
        ).all()
    }
    closed_until = dict(
        (
            await session.execute(
                select(EquityMaster.local_code, func.max(EquityMaster.valid_to))
                .where(EquityMaster.is_current.is_(False))
                .group_by(EquityMaster.local_code)
            )
        ).all()
    )

    opened: list[dict[str, Any]] = []
    for code, row in incoming.items():
        version = current.get(code)
        if version is None:
            # Reopen only after the last closed version ends.
            last_end = closed_until.get(code)
            if last_end is None or last_end <= as_of:
                opened.append(row)
            continue
        if version.valid_from > as_of:
            continue
        if all(
            getattr(version, name) == row[name] for name in EQUITY_MASTER_TRACKED_FIELDS
        ):
            continue
        if version.valid_from == as_of:
            for name in EQUITY_MASTER_TRACKED_FIELDS:
                setattr(version, name, row[name])
            result.updated += 1
            continue
        version.valid_to = as_of
        version.is_current = False
        result.closed += 1
        opened.append(row)

    # An empty feed says nothing about delistings.
    if incoming:
        for code, version in current.items():
            if code not in incoming and version.valid_from < as_of:
                version.valid_to = as_of
                version.is_current = False
                result.closed += 1

    # Closed versions must leave the current-row index before new ones arrive.
    await session.flush()
    for chunk in chunk_list(opened, resolve_batch_size(EquityMaster.__tablename__)):
        session.add_all(
            EquityMaster(**row, valid_from=as_of, is_current=True) for row in chunk
        )
        await session.flush()
        result.inserted += len(chunk)


async def sync_equity_master(
    client: JQuantsClient,
    session_factory: SessionScopeFactory,
    *,
    target_date: date,
) -> SyncResult:
    """Record the master as of ``target_date`` as a change history.

    A tracked attribute change closes the open version at ``target_date``
    and opens a new one; issues missing from a non-empty feed are closed.
    Dates older than an issue's latest version leave it untouched.
    """

    fetched = await client.get_equity_master(date=format_api_date(target_date))
    incoming = {
        row["local_code"]: row for row in map(map_equity_master, fetched.items)
    }
    result = SyncResult(
        dataset=DATASET_EQUITY_MASTER,
        fetched=len(fetched.items),
        page_count=fetched.page_count,
    )
    try:
        async with session_factory() as session:
            await _apply_equity_master(
                session, incoming, as_of=target_date, result=result
            )
    except SQLAlchemyError as error:
        _sync_logger.error(
            "equity_master_history_failed",
            extra={"dataset": DATASET_EQUITY_MASTER, "error": str(error)},
        )
        result.inserted = result.updated = result.closed = 0
        result.errors.append(f"Equity master history update failed: {error}")
        return result

    _sync_logger.info(
        "dataset_synced",
        extra={
            "dataset": DATASET_EQUITY_MASTER,
            "fetched": result.fetched,
            "inserted": result.inserted,
            "updated": result.updated,
            "closed": result.closed,
            "page": result.page_count,
        },
    )
    return result


async def sync_earnings_calendar(
    client: JQuantsClient,
    session_factory: SessionScopeFactory,
) -> SyncResult:
    fetched = await client.get_earnings_calendar()
    rows = [map_earnings_calendar(item) for item in fetched.items]
    result = await _write(
        session_factory,
        dataset=DATASET_EARNINGS_CALENDAR,
        fetched=fetched,
        rows=rows,
        target=EarningsCalendar,
        conflict_key=EARNINGS_CALENDAR_CONFLICT_KEY,
    )
    result.dates = sorted({row["announcement_date"] for row in rows})
    return result


async def sync_investor_types(
    client: JQuantsClient,
    session_factory: SessionScopeFactory,
    *,
    today: date,
    window_days: int,
    section: str | None = None,
) -> SyncResult:
    fetched = await client.get_investor_types(
        section=section,
        date_from=format_api_date(today - timedelta(days=window_days)),
        date_to=format_api_date(today),
    )
    rows = [row for item in fetched.items for row in map_investor_types(item)]
    result = await _write(
        session_factory,
        dataset=DATASET_INVESTOR_TYPES,
        fetched=fetched,
        rows=rows,
        target=InvestorTypeTrading,
        conflict_key=INVESTOR_TYPE_CONFLICT_KEY,
    )
    result.dates = sorted({row["published_date"] for row in rows})
    return result


__all__ = [
    "DATASET_CALENDAR",
    "DATASET_EARNINGS_CALENDAR",
    "DATASET_EQUITY_BARS",
    "DATASET_EQUITY_MASTER",
    "DATASET_FINANCIAL",
    "DATASET_INVESTOR_TYPES",
    "DATASET_TOPIX",
    "SyncResult",
    "sync_earnings_calendar",
    "sync_equity_bars",
    "sync_equity_master",
    "sync_financial_disclosures",
    "sync_investor_types",
    "sync_topix",
    "sync_trading_calendar",
]
