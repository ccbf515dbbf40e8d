"""Entrypoint flow shared by every job: lock, plan, run, record, notify."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from time import perf_counter
from typing import Any
from uuid import UUID

from jquants_ingest.models import JobName, JobRunStatus
from jquants_ingest.services.catch_up import CatchUpPlanner
from jquants_ingest.services.heartbeat import HeartbeatService
from jquants_ingest.services.job_handlers import HandlerResult, JobHandlers
from jquants_ingest.services.job_lock import DEFAULT_LOCK_TTL_SECONDS, JobLockService
from jquants_ingest.services.job_runs import JobLedgerError, JobRunLedger
from jquants_ingest.services.notifications import JobNotification, JobNotifier
from jquants_ingest.utils.logging import job_log_context

CRON_A_DATASET_CALENDAR = "calendar"
CRON_A_DATASET_DAILY = "daily"
CRON_A_DATASETS = (CRON_A_DATASET_CALENDAR, CRON_A_DATASET_DAILY)

DEFAULT_CONSECUTIVE_FAILURE_THRESHOLD = 3

_runner_logger = logging.getLogger("jquants_ingest.job_runner")

RunHandler = Callable[[UUID], Awaitable[HandlerResult]]
DatedRunHandler = Callable[[UUID, date], Awaitable[HandlerResult]]


class JobOutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    LOCK_HELD = "lock_held"
    ALREADY_EXECUTED = "already_executed"
    NOTHING_TO_DO = "nothing_to_do"
    ERROR = "error"


@dataclass(slots=True)
class RunSummary:
    run_id: UUID
    target_date: date | None
    success: bool
    fetched: int = 0
    inserted: int = 0
    page_count: int = 0
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "target_date": self.target_date.isoformat() if self.target_date else None,
            "success": self.success,
            "fetched": self.fetched,
            "inserted": self.inserted,
            "page_count": self.page_count,
            "error": self.error,
        }


@dataclass(slots=True)
class JobOutcome:
    """What one invocation of a job did, in a form the HTTP layer can return."""

    job_name: str
    status: JobOutcomeStatus
    runs: list[RunSummary] = field(default_factory=list)
    skipped_dates: list[date] = field(default_factory=list)
    error: str | None = None
    duration_ms: float | None = None

    @property
    def processed_dates(self) -> list[date]:
        return [run.target_date for run in self.runs if run.target_date is not None]

    def as_dict(self) -> dict[str, Any]:
        return {
            "job_name": self.job_name,
            "status": self.status.value,
            "runs": [run.as_dict() for run in self.runs],
            "skipped_dates": [day.isoformat() for day in self.skipped_dates],
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


class JobRunner:
    """Run jobs under a distributed lock with ledger and heartbeat bookkeeping.

    Dated jobs process their outstanding target dates oldest first and stop
    at the first failed date; later dates wait for the next invocation.
    """

    def __init__(
        self,
        *,
        lock_service: JobLockService,
        ledger: JobRunLedger,
        heartbeat: HeartbeatService,
        planner: CatchUpPlanner,
        handlers: JobHandlers,
        notifier: JobNotifier | None = None,
        lock_ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
        consecutive_failure_threshold: int = DEFAULT_CONSECUTIVE_FAILURE_THRESHOLD,
    ) -> None:
        self._lock_service = lock_service
        self._ledger = ledger
        self._heartbeat = heartbeat
        self._planner = planner
        self._handlers = handlers
        self._notifier = notifier
        self._lock_ttl_seconds = lock_ttl_seconds
        self._consecutive_failure_threshold = consecutive_failure_threshold

    async def run_cron_a(self, dataset: str) -> JobOutcome:
        if dataset == CRON_A_DATASET_CALENDAR:
            return await self._locked(
                JobName.CRON_A.value,
                lambda outcome, _token: self._run_once(
                    outcome, self._handlers.handle_cron_a_calendar, {"dataset": dataset}
                ),
            )
        if dataset == CRON_A_DATASET_DAILY:
            return await self._locked(
                JobName.CRON_A.value,
                lambda outcome, token: self._run_dates(
                    outcome,
                    self._handlers.handle_cron_a_daily,
                    {"dataset": dataset},
                    token,
                ),
            )
        raise ValueError(f"Unknown cron A dataset: {dataset}")

    async def run_cron_b(self) -> JobOutcome:
        return await self._locked(
            JobName.CRON_B.value,
            lambda outcome, token: self._run_dates(
                outcome, self._handlers.handle_cron_b, {}, token
            ),
        )

    async def run_cron_c(self) -> JobOutcome:
        return await self._locked(
            JobName.CRON_C.value,
            lambda outcome, _token: self._run_once(
                outcome, self._handlers.handle_cron_c, {}
            ),
        )

    async def _locked(
        self,
        job_name: str,
        body: Callable[[JobOutcome, str], Awaitable[None]],
    ) -> JobOutcome:
        outcome = JobOutcome(job_name=job_name, status=JobOutcomeStatus.NOTHING_TO_DO)
        lock = await self._lock_service.acquire_lock(job_name, self._lock_ttl_seconds)
        if not lock.success or lock.token is None:
            _runner_logger.warning(
                "job_lock_not_acquired",
                extra={"job_name": job_name, "error": lock.error},
            )
            outcome.status = JobOutcomeStatus.LOCK_HELD
            outcome.error = lock.error
            return outcome

        started_at = perf_counter()
        _runner_logger.info("job_started", extra={"job_name": job_name})
        try:
            with job_log_context(job_name=job_name):
                await body(outcome, lock.token)
        except Exception as error:
            _runner_logger.exception("job_failed", extra={"job_name": job_name})
            outcome.status = JobOutcomeStatus.ERROR
            outcome.error = str(error)
            await self._heartbeat.update_heartbeat(
                job_name, JobRunStatus.FAILED, error=str(error)
            )
            await self._notify_failure(
                JobNotification(job_name=job_name, error=str(error))
            )
        finally:
            await self._lock_service.release_lock(job_name, lock.token)
            outcome.duration_ms = round((perf_counter() - started_at) * 1000, 2)

        _runner_logger.info(
            "job_finished",
            extra={
                "job_name": job_name,
                "status": outcome.status.value,
                "duration_ms": outcome.duration_ms,
            },
        )
        return outcome

    async def _run_once(
        self,
        outcome: JobOutcome,
        handler: RunHandler,
        meta: dict[str, Any],
    ) -> None:
        started = await self._ledger.start_job_run(outcome.job_name, None, meta)
        if started.run_id is None:
            raise JobLedgerError(started.error or "Failed to start job run")

        summary = await self._execute(
            outcome.job_name, started.run_id, None, lambda: handler(started.run_id)
        )
        outcome.runs.append(summary)
        outcome.status = (
            JobOutcomeStatus.SUCCEEDED if summary.success else JobOutcomeStatus.FAILED
        )
        outcome.error = summary.error

    async def _run_dates(
        self,
        outcome: JobOutcome,
        handler: DatedRunHandler,
        meta: dict[str, Any],
        lock_token: str,
    ) -> None:
        job_name = outcome.job_name
        target_dates = await self._planner.determine_target_dates(job_name)
        if not target_dates:
            _runner_logger.info("job_nothing_to_do", extra={"job_name": job_name})
            return

        for target_date in target_dates:
            started = await self._ledger.start_job_run(job_name, target_date, meta)
            if started.already_executed:
                outcome.skipped_dates.append(target_date)
                continue
            if started.run_id is None:
                raise JobLedgerError(started.error or "Failed to start job run")

            run_id = started.run_id
            summary = await self._execute(
                job_name,
                run_id,
                target_date,
                lambda: handler(run_id, target_date),
            )
            outcome.runs.append(summary)
            if not summary.success:
                outcome.status = JobOutcomeStatus.FAILED
                outcome.error = summary.error
                _runner_logger.warning(
                    "job_catch_up_stopped",
                    extra={"job_name": job_name, "target_date": target_date},
                )
                return

            # The lease was sized for one date; stretch it before the next.
            extended = await self._lock_service.extend_lock(
                job_name, lock_token, self._lock_ttl_seconds
            )
            if not extended:
                _runner_logger.warning(
                    "job_lock_extend_failed", extra={"job_name": job_name}
                )

        if outcome.runs:
            outcome.status = JobOutcomeStatus.SUCCEEDED
        else:
            outcome.status = JobOutcomeStatus.ALREADY_EXECUTED

    async def _execute(
        self,
        job_name: str,
        run_id: UUID,
        target_date: date | None,
        invoke: Callable[[], Awaitable[HandlerResult]],
    ) -> RunSummary:
        await self._heartbeat.update_heartbeat(
            job_name, JobRunStatus.RUNNING, run_id=run_id, target_date=target_date
        )
        try:
            with job_log_context(run_id=str(run_id), target_date=target_date):
                result = await invoke()
        except Exception as error:
            _runner_logger.exception(
                "job_handler_failed",
                extra={
                    "job_name": job_name,
                    "run_id": str(run_id),
                    "target_date": target_date,
                },
            )
            result = HandlerResult(
                success=False, error=str(error) or type(error).__name__
            )

        status = JobRunStatus.SUCCESS if result.success else JobRunStatus.FAILED
        await self._ledger.complete_job_run(
            run_id,
            status,
            error_message=result.error,
            meta={
                "fetched": result.fetched,
                "inserted": result.inserted,
                "page_count": result.page_count,
                **result.details,
            },
        )
        await self._heartbeat.update_heartbeat(
            job_name,
            status,
            run_id=run_id,
            target_date=target_date,
            error=result.error,
            meta={"fetched": result.fetched, "inserted": result.inserted},
        )

        notification = JobNotification(
            job_name=job_name,
            run_id=run_id,
            target_date=target_date,
            error=result.error,
            fetched=result.fetched,
            inserted=result.inserted,
        )
        if result.success:
            if self._notifier is not None:
                await self._notifier.send_job_success(notification)
        else:
            await self._notify_failure(notification)

        _runner_logger.info(
            "job_run_finished",
            extra={
                "job_name": job_name,
                "run_id": str(run_id),
                "target_date": target_date,
                "status": status.value,
                "fetched": result.fetched,
                "inserted": result.inserted,
            },
        )
        return RunSummary(
            run_id=run_id,
            target_date=target_date,
            success=result.success,
            fetched=result.fetched,
            inserted=result.inserted,
            page_count=result.page_count,
            error=result.error,
        )

    async def _notify_failure(self, notification: JobNotification) -> None:
        if self._notifier is None:
            return

        await self._notifier.send_job_failure(notification)
        failures = await self._ledger.count_consecutive_failures(
            notification.job_name, self._consecutive_failure_threshold
        )
        if failures >= self._consecutive_failure_threshold:
            await self._notifier.send_consecutive_failure_alert(
                notification.job_name, failures, notification.error
            )


__all__ = [
    "CRON_A_DATASETS",
    "CRON_A_DATASET_CALENDAR",
    "CRON_A_DATASET_DAILY",
    "JobOutcome",
    "JobOutcomeStatus",
    "JobRunner",
    "RunSummary",
]
