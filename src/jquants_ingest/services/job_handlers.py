"""Per-job composition of fetch, map and upsert steps.

Handlers neither retry nor lock; the runner owns both. They return a
``HandlerResult`` the runner uses to close the ledger row.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from jquants_ingest.models import JobRunStatus
from jquants_ingest.services.business_days import BusinessDayCalendar
from jquants_ingest.services.dataset_sync import (
    DATASET_EQUITY_BARS,
    DATASET_EQUITY_MASTER,
    DATASET_FINANCIAL,
    DATASET_TOPIX,
    SyncResult,
    sync_earnings_calendar,
    sync_equity_bars,
    sync_equity_master,
    sync_financial_disclosures,
    sync_investor_types,
    sync_topix,
    sync_trading_calendar,
)
from jquants_ingest.services.integrity import run_integrity_check
from jquants_ingest.services.jquants_client import JQuantsClient
from jquants_ingest.services.job_runs import JobRunLedger

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]
DateSync = Callable[..., Awaitable[SyncResult]]

DAILY_DATASETS: tuple[tuple[str, DateSync], ...] = (
    (DATASET_EQUITY_BARS, sync_equity_bars),
    (DATASET_TOPIX, sync_topix),
    (DATASET_FINANCIAL, sync_financial_disclosures),
    (DATASET_EQUITY_MASTER, sync_equity_master),
)

_handler_logger = logging.getLogger("jquants_ingest.job_handlers")


@dataclass(slots=True)
class HandlerResult:
    success: bool
    fetched: int = 0
    inserted: int = 0
    page_count: int = 0
    error: str | None = None
    target_date: date | None = None
    datasets: list[SyncResult] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_syncs(
        cls,
        syncs: list[SyncResult],
        *,
        target_date: date | None = None,
    ) -> HandlerResult:
        errors = [error for sync in syncs for error in sync.errors]
        return cls(
            success=not errors,
            fetched=sum(sync.fetched for sync in syncs),
            inserted=sum(sync.inserted for sync in syncs),
            page_count=sum(sync.page_count for sync in syncs),
            error="; ".join(errors) or None,
            target_date=target_date,
            datasets=list(syncs),
        )


class JobHandlers:
    """Dataset workflows for jobs A, B and C."""

    def __init__(
        self,
        *,
        client: JQuantsClient,
        ledger: JobRunLedger,
        calendar: BusinessDayCalendar,
        session_factory: SessionScopeFactory | None = None,
        calendar_lookback_days: int = 370,
        calendar_lookahead_days: int = 370,
        investor_types_window_days: int = 60,
    ) -> None:
        if session_factory is None:
            from jquants_ingest.database import session_scope

            session_factory = session_scope

        self._client = client
        self._ledger = ledger
        self._calendar = calendar
        self._session_factory = session_factory
        self._calendar_lookback_days = calendar_lookback_days
        self._calendar_lookahead_days = calendar_lookahead_days
        self._investor_types_window_days = investor_types_window_days

    async def handle_cron_a_calendar(self, run_id: UUID) -> HandlerResult:
        """Refresh the trading calendar around today."""

        sync = await self._tracked(
            run_id,
            "calendar",
            sync_trading_calendar(
                self._client,
                self._session_factory,
                today=self._calendar.today(),
                lookback_days=self._calendar_lookback_days,
                lookahead_days=self._calendar_lookahead_days,
            ),
        )
        return HandlerResult.from_syncs([sync])

    async def handle_cron_a_daily(self, run_id: UUID, target_date: date) -> HandlerResult:
        """Sync every daily dataset for one target date, one after another."""

        syncs: list[SyncResult] = []
        for dataset, sync_function in DAILY_DATASETS:
            syncs.append(
                await self._tracked(
                    run_id,
                    dataset,
                    sync_function(
                        self._client, self._session_factory, target_date=target_date
                    ),
                )
            )
        return HandlerResult.from_syncs(syncs, target_date=target_date)

    async def handle_cron_b(self, run_id: UUID, target_date: date) -> HandlerResult:
        """Store the upstream's next-business-day earnings calendar."""

        sync = await self._tracked(
            run_id,
            "earnings_calendar",
            sync_earnings_calendar(self._client, self._session_factory),
        )
        result = HandlerResult.from_syncs([sync], target_date=target_date)
        result.details["announcement_dates"] = [day.isoformat() for day in sync.dates]
        if len(sync.dates) > 1:
            _handler_logger.warning(
                "earnings_calendar_multiple_dates",
                extra={
                    "run_id": str(run_id),
                    "target_dates": result.details["announcement_dates"],
                },
            )
        if sync.dates and target_date not in sync.dates:
            _handler_logger.warning(
                "earnings_calendar_date_mismatch",
                extra={
                    "run_id": str(run_id),
                    "target_date": target_date,
                    "target_dates": result.details["announcement_dates"],
                },
            )
        return result

    async def handle_cron_c(self, run_id: UUID) -> HandlerResult:
        """Sync investor-type flows, then check stored data freshness."""

        sync = await self._tracked(
            run_id,
            "investor_types",
            sync_investor_types(
                self._client,
                self._session_factory,
                today=self._calendar.today(),
                window_days=self._investor_types_window_days,
            ),
        )
        integrity = await run_integrity_check(self._session_factory, self._calendar)
        result = HandlerResult.from_syncs([sync])
        result.details["integrity_check"] = {
            "ok": integrity.ok,
            "expected_date": (
                integrity.expected_date.isoformat() if integrity.expected_date else None
            ),
            "warnings": list(integrity.warnings),
        }
        return result

    async def _tracked(
        self,
        run_id: UUID,
        dataset: str,
        work: Awaitable[SyncResult],
    ) -> SyncResult:
        await self._ledger.start_job_run_item(run_id, dataset)
        try:
            sync = await work
        except Exception as error:
            await self._ledger.complete_job_run_item(
                run_id, dataset, JobRunStatus.FAILED, error_message=str(error)
            )
            raise

        await self._ledger.complete_job_run_item(
            run_id,
            dataset,
            JobRunStatus.SUCCESS if sync.success else JobRunStatus.FAILED,
            row_count=sync.inserted,
            page_count=sync.page_count,
            error_message="; ".join(sync.errors) or None,
        )
        return sync


__all__ = ["DAILY_DATASETS", "HandlerResult", "JobHandlers"]
