"""Job-run ledger: one row per job attempt plus per-dataset items."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jquants_ingest.models import JobName, JobRun, JobRunItem, JobRunStatus
from jquants_ingest.utils.dates import utc_now
from jquants_ingest.utils.db_errors import is_unique_violation
from jquants_ingest.utils.text import (
    JOB_RUN_ERROR_MAX_LENGTH,
    JOB_RUN_TRUNCATION_MARKER,
    truncate,
)

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

ALREADY_EXECUTED_ERROR = "Job already executed for this target date"
DEFAULT_FAILED_RUNS_LIMIT = 10

_ledger_logger = logging.getLogger("jquants_ingest.job_runs")


class JobLedgerError(RuntimeError):
    """Raised when a job run cannot be recorded for a reason other than idempotency."""


@dataclass(slots=True, frozen=True)
class StartJobRunResult:
    """Outcome of opening a ledger row.

    ``already_executed`` marks the idempotency gate: the (job, target date)
    pair already has a row, so the caller should skip rather than fail.
    """

    run_id: UUID | None
    error: str | None = None
    already_executed: bool = False

    @property
    def started(self) -> bool:
        return self.run_id is not None


@dataclass(slots=True, frozen=True)
class JobRunRecord:
    run_id: UUID
    job_name: str
    target_date: date | None
    status: str
    started_at: datetime
    finished_at: datetime | None
    error_message: str | None
    meta: dict[str, Any]


def _to_record(row: JobRun) -> JobRunRecord:
    return JobRunRecord(
        run_id=row.run_id,
        job_name=row.job_name,
        target_date=row.target_date,
        status=row.status,
        started_at=row.started_at,
        finished_at=row.finished_at,
        error_message=row.error_message,
        meta=dict(row.meta or {}),
    )


class JobRunLedger:
    """Record job attempts; bookkeeping writes never raise to the caller."""

    def __init__(
        self,
        *,
        session_factory: SessionScopeFactory | None = None,
        now_factory: Callable[[], datetime] = utc_now,
    ) -> None:
        if session_factory is None:
            from jquants_ingest.database import session_scope

            session_factory = session_scope

        self._session_factory = session_factory
        self._now_factory = now_factory

    async def start_job_run(
        self,
        job_name: str,
        target_date: date | None = None,
        meta: dict[str, Any] | None = None,
    ) -> StartJobRunResult:
        JobName(job_name)
        run = JobRun(
            job_name=job_name,
            target_date=target_date,
            status=JobRunStatus.RUNNING.value,
            started_at=self._now_factory(),
            meta=dict(meta or {}),
        )
        try:
            async with self._session_factory() as session:
                session.add(run)
                await session.flush()
                run_id = run.run_id
        except IntegrityError as error:
            if not is_unique_violation(error):
                _ledger_logger.exception(
                    "job_run_start_failed",
                    extra={"job_name": job_name, "target_date": target_date},
                )
                return StartJobRunResult(run_id=None, error=str(error))
            _ledger_logger.info(
                "job_run_already_executed",
                extra={"job_name": job_name, "target_date": target_date},
            )
            return StartJobRunResult(
                run_id=None, error=ALREADY_EXECUTED_ERROR, already_executed=True
            )
        except SQLAlchemyError as error:
            _ledger_logger.exception(
                "job_run_start_failed",
                extra={"job_name": job_name, "target_date": target_date},
            )
            return StartJobRunResult(run_id=None, error=str(error))

        _ledger_logger.info(
            "job_run_started",
            extra={
                "job_name": job_name,
                "run_id": str(run_id),
                "target_date": target_date,
            },
        )
        return StartJobRunResult(run_id=run_id)

    async def complete_job_run(
        self,
        run_id: UUID,
        status: JobRunStatus,
        error_message: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        values: dict[str, Any] = {
            "status": status.value,
            "finished_at": self._now_factory(),
            "error_message": truncate(
                error_message, JOB_RUN_ERROR_MAX_LENGTH, JOB_RUN_TRUNCATION_MARKER
            ),
        }
        try:
            async with self._session_factory() as session:
                if meta:
                    current_meta = await session.scalar(
                        select(JobRun.meta).where(JobRun.run_id == run_id)
                    )
                    values["meta"] = {**(current_meta or {}), **meta}
                await session.execute(
                    update(JobRun).where(JobRun.run_id == run_id).values(**values)
                )
        except SQLAlchemyError:
            _ledger_logger.exception(
                "job_run_complete_failed",
                extra={"run_id": str(run_id), "status": status.value},
            )
            return

        _ledger_logger.info(
            "job_run_completed",
            extra={"run_id": str(run_id), "status": status.value},
        )

    async def start_job_run_item(
        self,
        run_id: UUID,
        dataset: str,
        meta: dict[str, Any] | None = None,
    ) -> None:
        try:
            async with self._session_factory() as session:
                session.add(
                    JobRunItem(
                        run_id=run_id,
                        dataset=dataset,
                        status=JobRunStatus.RUNNING.value,
                        started_at=self._now_factory(),
                        meta=dict(meta or {}),
                    )
                )
        except SQLAlchemyError:
            _ledger_logger.exception(
                "job_run_item_start_failed",
                extra={"run_id": str(run_id), "dataset": dataset},
            )

    async def complete_job_run_item(
        self,
        run_id: UUID,
        dataset: str,
        status: JobRunStatus,
        *,
        row_count: int = 0,
        page_count: int = 0,
        error_message: str | None = None,
    ) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    update(JobRunItem)
                    .where(JobRunItem.run_id == run_id, JobRunItem.dataset == dataset)
                    .values(
                        status=status.value,
                        row_count=row_count,
                        page_count=page_count,
                        finished_at=self._now_factory(),
                        error_message=truncate(
                            error_message,
                            JOB_RUN_ERROR_MAX_LENGTH,
                            JOB_RUN_TRUNCATION_MARKER,
                        ),
                    )
                )
        except SQLAlchemyError:
            _ledger_logger.exception(
                "job_run_item_complete_failed",
                extra={"run_id": str(run_id), "dataset": dataset},
            )

    async def get_job_run(self, run_id: UUID) -> JobRunRecord | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(JobRun, run_id)
        except SQLAlchemyError:
            _ledger_logger.exception("job_run_query_failed", extra={"run_id": str(run_id)})
            return None
        return _to_record(row) if row is not None else None

    async def get_job_run_items(self, run_id: UUID) -> list[JobRunItem]:
        async with self._session_factory() as session:
            rows = await session.scalars(
                select(JobRunItem)
                .where(JobRunItem.run_id == run_id)
                .order_by(JobRunItem.started_at.asc())
            )
            return list(rows.all())

    async def get_latest_job_run(
        self,
        job_name: str,
        status: JobRunStatus | None = None,
    ) -> JobRunRecord | None:
        query = select(JobRun).where(JobRun.job_name == job_name)
        if status is not None:
            query = query.where(JobRun.status == status.value)
        query = query.order_by(JobRun.started_at.desc()).limit(1)
        try:
            async with self._session_factory() as session:
                row = await session.scalar(query)
        except SQLAlchemyError:
            _ledger_logger.exception("job_run_query_failed", extra={"job_name": job_name})
            return None
        return _to_record(row) if row is not None else None

    async def has_job_run_for_date(
        self,
        job_name: str,
        target_date: date,
        status: JobRunStatus | None = None,
    ) -> bool:
        query = select(func.count()).select_from(JobRun).where(
            JobRun.job_name == job_name,
            JobRun.target_date == target_date,
        )
        if status is not None:
            query = query.where(JobRun.status == status.value)
        try:
            async with self._session_factory() as session:
                count = await session.scalar(query)
        except SQLAlchemyError:
            _ledger_logger.exception(
                "job_run_query_failed",
                extra={"job_name": job_name, "target_date": target_date},
            )
            return False
        return bool(count)

    async def get_successful_target_dates(
        self,
        job_name: str,
        target_dates: list[date],
    ) -> set[date]:
        """Return the subset of ``target_dates`` with a successful run."""

        if not target_dates:
            return set()
        try:
            async with self._session_factory() as session:
                rows = await session.scalars(
                    select(JobRun.target_date).where(
                        JobRun.job_name == job_name,
                        JobRun.status == JobRunStatus.SUCCESS.value,
                        JobRun.target_date.in_(target_dates),
                    )
                )
                return {row for row in rows.all() if row is not None}
        except SQLAlchemyError:
            _ledger_logger.exception("job_run_query_failed", extra={"job_name": job_name})
            return set()

    async def get_failed_job_runs(
        self,
        job_name: str,
        limit: int = DEFAULT_FAILED_RUNS_LIMIT,
    ) -> list[JobRunRecord]:
        return await self._recent_runs(job_name, limit, status=JobRunStatus.FAILED)

    async def get_recent_job_runs(
        self,
        job_name: str,
        limit: int = DEFAULT_FAILED_RUNS_LIMIT,
    ) -> list[JobRunRecord]:
        return await self._recent_runs(job_name, limit, status=None)

    async def count_consecutive_failures(self, job_name: str, limit: int) -> int:
        """Count failed runs at the head of the job's history, newest first."""

        count = 0
        for run in await self.get_recent_job_runs(job_name, limit):
            if run.status == JobRunStatus.RUNNING.value:
                continue
            if run.status != JobRunStatus.FAILED.value:
                break
            count += 1
        return count

    async def delete_failed_job_runs(
        self,
        job_name: str,
        target_date: date | None = None,
    ) -> int:
        """Remove failed rows so their target dates can be processed again."""

        statement = delete(JobRun).where(
            JobRun.job_name == job_name,
            JobRun.status == JobRunStatus.FAILED.value,
        )
        if target_date is not None:
            statement = statement.where(JobRun.target_date == target_date)

        async with self._session_factory() as session:
            failed_run_ids = select(JobRun.run_id).where(
                JobRun.job_name == job_name,
                JobRun.status == JobRunStatus.FAILED.value,
            )
            if target_date is not None:
                failed_run_ids = failed_run_ids.where(JobRun.target_date == target_date)
            await session.execute(
                delete(JobRunItem).where(JobRunItem.run_id.in_(failed_run_ids))
            )
            deleted = await session.execute(statement)

        count = int(deleted.rowcount or 0)
        _ledger_logger.warning(
            "failed_job_runs_deleted",
            extra={"job_name": job_name, "target_date": target_date, "count": count},
        )
        return count

    async def mark_stale_runs_failed(self, *, started_before: datetime, reason: str) -> int:
        """Close ``running`` rows started before ``started_before`` as failed."""

        async with self._session_factory() as session:
            updated = await session.execute(
                update(JobRun)
                .where(
                    JobRun.status == JobRunStatus.RUNNING.value,
                    JobRun.started_at < started_before,
                )
                .values(
                    status=JobRunStatus.FAILED.value,
                    finished_at=self._now_factory(),
                    error_message=reason,
                )
            )
        return int(updated.rowcount or 0)

    async def _recent_runs(
        self,
        job_name: str,
        limit: int,
        *,
        status: JobRunStatus | None,
    ) -> list[JobRunRecord]:
        query = select(JobRun).where(JobRun.job_name == job_name)
        if status is not None:
            query = query.where(JobRun.status == status.value)
        query = query.order_by(JobRun.started_at.desc()).limit(limit)
        try:
            async with self._session_factory() as session:
                rows = (await session.scalars(query)).all()
        except SQLAlchemyError:
            _ledger_logger.exception("job_run_query_failed", extra={"job_name": job_name})
            return []
        return [_to_record(row) for row in rows]


__all__ = [
    "ALREADY_EXECUTED_ERROR",
    "JobLedgerError",
    "JobRunLedger",
    "JobRunRecord",
    "StartJobRunResult",
]
