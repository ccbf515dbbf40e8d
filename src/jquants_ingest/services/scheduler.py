"""Cron scheduling for ingestion jobs on top of APScheduler."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

from apscheduler.events import (  # type: ignore[import-untyped]
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    EVENT_JOB_SUBMITTED,
    JobExecutionEvent,
    JobSubmissionEvent,
    SchedulerEvent,
)
from apscheduler.job import Job  # type: ignore[import-untyped]
from apscheduler.jobstores.sqlalchemy import (  # type: ignore[import-untyped]
    SQLAlchemyJobStore,
)
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.cron import CronTrigger  # type: ignore[import-untyped]

from jquants_ingest.config import Settings

ScheduledCallable = Callable[[], Awaitable[None]]

# A firing delayed by a restart still runs once within this grace period.
MISFIRE_GRACE_SECONDS = 3600

_scheduler_logger = logging.getLogger("jquants_ingest.scheduler")


@dataclass(slots=True, frozen=True)
class ScheduledJob:
    job_id: str
    name: str | None
    trigger: str
    next_run_time: datetime | None

    @property
    def paused(self) -> bool:
        return self.next_run_time is None


def parse_crontab(crontab: str, timezone: str) -> CronTrigger:
    """Build a trigger from a five-field crontab evaluated in ``timezone``.

    Raises ``ValueError`` for malformed expressions.
    """

    fields = crontab.split()
    if len(fields) != 5:
        raise ValueError(f"Crontab must have 5 fields, got {len(fields)}: {crontab!r}")
    return CronTrigger.from_crontab(crontab, timezone=timezone)


class SchedulerService:
    """Own the process scheduler and its persisted cron jobs.

    Every job is registered with ``coalesce`` and a single instance, so a
    backlog of missed firings collapses into one run and a slow run never
    overlaps the next firing inside this process. Cross-process overlap is
    handled by the job lock.
    """

    def __init__(
        self,
        *,
        enabled: bool,
        jobstore_url: str,
        timezone: str,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._enabled = enabled
        self._timezone = timezone
        self._scheduler = scheduler or AsyncIOScheduler(
            jobstores={"default": SQLAlchemyJobStore(url=jobstore_url)},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": MISFIRE_GRACE_SECONDS,
            },
            timezone=timezone,
        )
        self._scheduler.add_listener(
            _log_job_event,
            EVENT_JOB_SUBMITTED | EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> SchedulerService:
        return cls(
            enabled=settings.SCHEDULER_ENABLED,
            jobstore_url=settings.SCHEDULER_JOBSTORE_URL,
            timezone=settings.SCHEDULER_TIMEZONE,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def running(self) -> bool:
        return self._enabled and bool(self._scheduler.running)

    async def start(self) -> None:
        if not self._enabled:
            _scheduler_logger.info("scheduler_disabled")
            return
        if self._scheduler.running:
            return

        self._scheduler.start()
        _scheduler_logger.info(
            "scheduler_started",
            extra={"timezone": self._timezone, "job_count": len(self.list_jobs())},
        )

    async def shutdown(self) -> None:
        if not self.running:
            return

        self._scheduler.shutdown(wait=False)
        _scheduler_logger.info("scheduler_shutdown")

    def add_cron_job(
        self,
        *,
        job_id: str,
        func: ScheduledCallable,
        crontab: str,
        name: str | None = None,
    ) -> Job:
        if not self._enabled:
            raise RuntimeError("Scheduler is disabled")

        job = self._scheduler.add_job(
            func=func,
            trigger=parse_crontab(crontab, self._timezone),
            id=job_id,
            name=name,
            replace_existing=True,
        )
        _scheduler_logger.info(
            "scheduler_job_registered",
            extra={"job_id": job_id, "crontab": crontab, "timezone": self._timezone},
        )
        return job

    def list_jobs(self) -> list[ScheduledJob]:
        if not self._enabled:
            return []
        return [
            ScheduledJob(
                job_id=job.id,
                name=job.name,
                trigger=str(job.trigger),
                next_run_time=getattr(job, "next_run_time", None),
            )
            for job in self._scheduler.get_jobs()
        ]


def _log_job_event(event: SchedulerEvent) -> None:
    if isinstance(event, JobSubmissionEvent):
        _scheduler_logger.info(
            "scheduler_job_submitted",
            extra={
                "job_id": event.job_id,
                "scheduled_run_times": [
                    run_time.isoformat() for run_time in event.scheduled_run_times
                ],
            },
        )
    elif not isinstance(event, JobExecutionEvent):
        return
    elif event.code == EVENT_JOB_MISSED:
        _scheduler_logger.warning(
            "scheduler_job_missed",
            extra={
                "job_id": event.job_id,
                "scheduled_run_time": event.scheduled_run_time.isoformat(),
            },
        )
    elif event.exception is not None:
        # Runner failures are recorded in the ledger; this only catches crashes
        # of the scheduled entrypoint itself.
        _scheduler_logger.error(
            "scheduler_job_crashed",
            extra={
                "job_id": event.job_id,
                "error": str(event.exception),
                "traceback": event.traceback,
            },
        )
    else:
        _scheduler_logger.info("scheduler_job_executed", extra={"job_id": event.job_id})


__all__ = [
    "MISFIRE_GRACE_SECONDS",
    "ScheduledJob",
    "SchedulerService",
    "parse_crontab",
]
