"""Wire the process-wide service graph from settings."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from jquants_ingest.config import Settings
from jquants_ingest.services.business_days import BusinessDayCalendar
from jquants_ingest.services.catch_up import CatchUpPlanner
from jquants_ingest.services.heartbeat import HeartbeatService
from jquants_ingest.services.job_handlers import JobHandlers
from jquants_ingest.services.job_lock import JobLockService
from jquants_ingest.services.job_recovery import JobRecoveryService
from jquants_ingest.services.job_runner import JobRunner
from jquants_ingest.services.job_runs import JobRunLedger
from jquants_ingest.services.jquants_client import JQuantsClient
from jquants_ingest.services.notifications import JobNotifier
from jquants_ingest.services.rate_limiter import TokenBucketRateLimiter

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@dataclass(slots=True)
class ServiceContainer:
    client: JQuantsClient
    ledger: JobRunLedger
    heartbeat: HeartbeatService
    lock_service: JobLockService
    calendar: BusinessDayCalendar
    runner: JobRunner
    recovery: JobRecoveryService

    async def aclose(self) -> None:
        await self.client.aclose()


def build_services(
    settings: Settings,
    *,
    session_factory: SessionScopeFactory | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    notifier_transport: httpx.AsyncBaseTransport | None = None,
) -> ServiceContainer:
    """Build every service once; the rate limiter is shared by all jobs.

    Raises ``JQuantsConfigurationError`` when no API key is configured.
    """

    if session_factory is None:
        from jquants_ingest.database import session_scope

        session_factory = session_scope

    rate_limiter = TokenBucketRateLimiter(
        capacity=settings.jquants_requests_per_minute
    )
    client = JQuantsClient.from_settings(
        settings, rate_limiter=rate_limiter, transport=transport
    )
    ledger = JobRunLedger(session_factory=session_factory)
    heartbeat = HeartbeatService(session_factory=session_factory)
    lock_service = JobLockService(session_factory=session_factory)
    calendar = BusinessDayCalendar(session_factory=session_factory)
    planner = CatchUpPlanner(
        calendar=calendar,
        ledger=ledger,
        max_catch_up_days=settings.CATCH_UP_MAX_DAYS,
    )
    handlers = JobHandlers(
        client=client,
        ledger=ledger,
        calendar=calendar,
        session_factory=session_factory,
        calendar_lookback_days=settings.CALENDAR_SYNC_LOOKBACK_DAYS,
        calendar_lookahead_days=settings.CALENDAR_SYNC_LOOKAHEAD_DAYS,
        investor_types_window_days=settings.INVESTOR_TYPES_WINDOW_DAYS,
    )
    runner = JobRunner(
        lock_service=lock_service,
        ledger=ledger,
        heartbeat=heartbeat,
        planner=planner,
        handlers=handlers,
        notifier=JobNotifier.from_settings(settings, transport=notifier_transport),
        lock_ttl_seconds=settings.JOB_LOCK_TTL_SECONDS,
        consecutive_failure_threshold=settings.CONSECUTIVE_FAILURE_ALERT_THRESHOLD,
    )
    recovery = JobRecoveryService(
        ledger=ledger,
        lock_service=lock_service,
        stale_after_minutes=settings.JOB_RUN_STALE_AFTER_MINUTES,
    )
    return ServiceContainer(
        client=client,
        ledger=ledger,
        heartbeat=heartbeat,
        lock_service=lock_service,
        calendar=calendar,
        runner=runner,
        recovery=recovery,
    )


__all__ = ["ServiceContainer", "build_services"]
