"""Startup recovery for runs and locks left behind by a crashed process."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from jquants_ingest.services.job_lock import JobLockService
from jquants_ingest.services.job_runs import JobRunLedger
from jquants_ingest.utils.dates import utc_now

DEFAULT_STALE_AFTER_MINUTES = 60
STALE_RUN_REASON = "Recovered unfinished job after process interruption"

_recovery_logger = logging.getLogger("jquants_ingest.recovery")


@dataclass(slots=True, frozen=True)
class StartupRecoveryResult:
    stale_runs_marked: int
    expired_locks_removed: int


class JobRecoveryService:
    """Close stale ``running`` rows and drop expired locks.

    Only runs older than ``stale_after_minutes`` are touched, so a healthy
    run owned by another process is left alone.
    """

    def __init__(
        self,
        *,
        ledger: JobRunLedger,
        lock_service: JobLockService,
        stale_after_minutes: int = DEFAULT_STALE_AFTER_MINUTES,
        now_factory: Callable[[], datetime] = utc_now,
    ) -> None:
        if stale_after_minutes <= 0:
            raise ValueError("stale_after_minutes must be greater than zero")

        self._ledger = ledger
        self._lock_service = lock_service
        self._stale_after_minutes = stale_after_minutes
        self._now_factory = now_factory

    async def handle_startup_recovery(self) -> StartupRecoveryResult:
        started_before = self._now_factory() - timedelta(
            minutes=self._stale_after_minutes
        )
        stale_runs = await self._ledger.mark_stale_runs_failed(
            started_before=started_before, reason=STALE_RUN_REASON
        )
        if stale_runs:
            _recovery_logger.warning(
                "startup_stale_runs_marked_failed", extra={"count": stale_runs}
            )
        else:
            _recovery_logger.info("startup_stale_runs_not_found")

        expired_locks = await self._lock_service.cleanup_expired_locks()
        return StartupRecoveryResult(
            stale_runs_marked=stale_runs,
            expired_locks_removed=expired_locks,
        )


__all__ = [
    "DEFAULT_STALE_AFTER_MINUTES",
    "JobRecoveryService",
    "STALE_RUN_REASON",
    "StartupRecoveryResult",
]
