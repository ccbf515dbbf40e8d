"""Module-level scheduled job entrypoints.

The SQLAlchemy job store persists jobs by import path, so scheduled
callables must be plain module functions. They resolve the process-wide
``JobRunner`` installed at startup.
"""

from __future__ import annotations

import logging

from jquants_ingest.config import Settings
from jquants_ingest.services.job_runner import (
    CRON_A_DATASET_CALENDAR,
    CRON_A_DATASET_DAILY,
    JobOutcome,
    JobRunner,
)
from jquants_ingest.services.scheduler import SchedulerService

CRON_A_CALENDAR_JOB_ID = "jquants-cron-a-calendar"
CRON_A_DAILY_JOB_ID = "jquants-cron-a-daily"
CRON_B_JOB_ID = "jquants-cron-b"
CRON_C_JOB_ID = "jquants-cron-c"

_job_runner: JobRunner | None = None

_scheduling_logger = logging.getLogger("jquants_ingest.scheduler")


def set_job_runner(runner: JobRunner | None) -> None:
    global _job_runner
    _job_runner = runner


def _require_job_runner() -> JobRunner:
    if _job_runner is None:
        raise RuntimeError("Job runner is not initialized")

    return _job_runner


def _log_outcome(job_id: str, outcome: JobOutcome) -> None:
    _scheduling_logger.info(
        "scheduled_job_outcome",
        extra={
            "job_id": job_id,
            "job_name": outcome.job_name,
            "status": outcome.status.value,
            "target_dates": [day.isoformat() for day in outcome.processed_dates],
            "error": outcome.error,
        },
    )


async def run_scheduled_cron_a_calendar() -> None:
    outcome = await _require_job_runner().run_cron_a(CRON_A_DATASET_CALENDAR)
    _log_outcome(CRON_A_CALENDAR_JOB_ID, outcome)


async def run_scheduled_cron_a_daily() -> None:
    outcome = await _require_job_runner().run_cron_a(CRON_A_DATASET_DAILY)
    _log_outcome(CRON_A_DAILY_JOB_ID, outcome)


async def run_scheduled_cron_b() -> None:
    outcome = await _require_job_runner().run_cron_b()
    _log_outcome(CRON_B_JOB_ID, outcome)


async def run_scheduled_cron_c() -> None:
    outcome = await _require_job_runner().run_cron_c()
    _log_outcome(CRON_C_JOB_ID, outcome)


def register_cron_jobs(scheduler: SchedulerService, settings: Settings) -> None:
    if not scheduler.enabled:
        return

    scheduler.add_cron_job(
        job_id=CRON_A_CALENDAR_JOB_ID,
        func=run_scheduled_cron_a_calendar,
        crontab=settings.SCHEDULER_CRON_A_CALENDAR,
        name="Trading calendar refresh",
    )
    scheduler.add_cron_job(
        job_id=CRON_A_DAILY_JOB_ID,
        func=run_scheduled_cron_a_daily,
        crontab=settings.SCHEDULER_CRON_A_DAILY,
        name="Daily market data ingest",
    )
    scheduler.add_cron_job(
        job_id=CRON_B_JOB_ID,
        func=run_scheduled_cron_b,
        crontab=settings.SCHEDULER_CRON_B,
        name="Earnings calendar ingest",
    )
    scheduler.add_cron_job(
        job_id=CRON_C_JOB_ID,
        func=run_scheduled_cron_c,
        crontab=settings.SCHEDULER_CRON_C,
        name="Investor types ingest and integrity check",
    )


__all__ = [
    "CRON_A_CALENDAR_JOB_ID",
    "CRON_A_DAILY_JOB_ID",
    "CRON_B_JOB_ID",
    "CRON_C_JOB_ID",
    "register_cron_jobs",
    "run_scheduled_cron_a_calendar",
    "run_scheduled_cron_a_daily",
    "run_scheduled_cron_b",
    "run_scheduled_cron_c",
    "set_job_runner",
]
