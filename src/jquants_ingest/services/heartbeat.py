"""Job heartbeat upserts and health evaluation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jquants_ingest.models import JobHeartbeat, JobName, JobRunStatus
from jquants_ingest.services.batch_writer import build_upsert_statement
from jquants_ingest.utils.dates import as_utc, utc_now
from jquants_ingest.utils.text import (
    HEARTBEAT_ERROR_MAX_LENGTH,
    HEARTBEAT_TRUNCATION_MARKER,
    truncate,
)

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

DEFAULT_STALE_HOURS = 25.0
KNOWN_JOB_NAMES: tuple[str, ...] = tuple(job.value for job in JobName)

_heartbeat_logger = logging.getLogger("jquants_ingest.heartbeat")


@dataclass(slots=True, frozen=True)
class HeartbeatRecord:
    job_name: str
    last_seen_at: datetime
    last_status: str
    last_run_id: UUID | None = None
    last_target_date: date | None = None
    last_error: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class JobHealth:
    healthy: bool
    reason: str | None = None


@dataclass(slots=True, frozen=True)
class JobHealthStatus:
    job_name: str
    healthy: bool
    reason: str | None
    last_seen_at: datetime | None
    last_status: str | None


@dataclass(slots=True, frozen=True)
class AllJobsHealth:
    healthy: bool
    jobs: tuple[JobHealthStatus, ...]


def is_job_healthy(
    heartbeat: HeartbeatRecord | None,
    stale_hours_threshold: float = DEFAULT_STALE_HOURS,
    *,
    now: datetime | None = None,
) -> JobHealth:
    """Classify one heartbeat; a ``running`` status is not itself unhealthy."""

    if heartbeat is None:
        return JobHealth(healthy=False, reason="No heartbeat record found")

    current_time = as_utc(now or utc_now())
    hours_since_seen = (
        current_time - as_utc(heartbeat.last_seen_at)
    ).total_seconds() / 3600
    if hours_since_seen > stale_hours_threshold:
        return JobHealth(
            healthy=False,
            reason=f"Stale: last seen {int(hours_since_seen)} hours ago",
        )

    if heartbeat.last_status == JobRunStatus.FAILED.value:
        return JobHealth(
            healthy=False,
            reason=f"Last run failed: {heartbeat.last_error or 'Unknown error'}",
        )

    return JobHealth(healthy=True)


def _to_record(row: JobHeartbeat) -> HeartbeatRecord:
    return HeartbeatRecord(
        job_name=row.job_name,
        last_seen_at=row.last_seen_at,
        last_status=row.last_status,
        last_run_id=row.last_run_id,
        last_target_date=row.last_target_date,
        last_error=row.last_error,
        meta=dict(row.meta or {}),
    )


class HeartbeatService:
    """Persist last-seen state per job; writes are best effort."""

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

    async def update_heartbeat(
        self,
        job_name: str,
        status: JobRunStatus,
        *,
        run_id: UUID | None = None,
        target_date: date | None = None,
        error: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        row = {
            "job_name": job_name,
            "last_seen_at": self._now_factory(),
            "last_status": status.value,
            "last_run_id": run_id,
            "last_target_date": target_date,
            "last_error": truncate(
                error, HEARTBEAT_ERROR_MAX_LENGTH, HEARTBEAT_TRUNCATION_MARKER
            ),
            "meta": dict(meta or {}),
        }
        try:
            async with self._session_factory() as session:
                await session.execute(
                    build_upsert_statement(
                        session, JobHeartbeat.__table__, [row], ["job_name"]
                    )
                )
        except SQLAlchemyError:
            _heartbeat_logger.exception(
                "heartbeat_update_failed",
                extra={"job_name": job_name, "status": status.value},
            )

    async def get_heartbeat(self, job_name: str) -> HeartbeatRecord | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(JobHeartbeat, job_name)
        except SQLAlchemyError:
            _heartbeat_logger.exception(
                "heartbeat_query_failed", extra={"job_name": job_name}
            )
            return None
        return _to_record(row) if row is not None else None

    async def get_all_heartbeats(self) -> list[HeartbeatRecord]:
        try:
            async with self._session_factory() as session:
                rows = await session.scalars(
                    select(JobHeartbeat).order_by(JobHeartbeat.job_name.asc())
                )
                return [_to_record(row) for row in rows.all()]
        except SQLAlchemyError:
            _heartbeat_logger.exception("heartbeat_query_failed")
            return []

    async def check_all_jobs_health(
        self,
        stale_hours_threshold: float = DEFAULT_STALE_HOURS,
    ) -> AllJobsHealth:
        heartbeats = {record.job_name: record for record in await self.get_all_heartbeats()}
        now = self._now_factory()
        statuses: list[JobHealthStatus] = []
        for job_name in KNOWN_JOB_NAMES:
            heartbeat = heartbeats.get(job_name)
            health = is_job_healthy(heartbeat, stale_hours_threshold, now=now)
            statuses.append(
                JobHealthStatus(
                    job_name=job_name,
                    healthy=health.healthy,
                    reason=health.reason,
                    last_seen_at=heartbeat.last_seen_at if heartbeat else None,
                    last_status=heartbeat.last_status if heartbeat else None,
                )
            )

        return AllJobsHealth(
            healthy=all(status.healthy for status in statuses),
            jobs=tuple(statuses),
        )


__all__ = [
    "AllJobsHealth",
    "DEFAULT_STALE_HOURS",
    "HeartbeatRecord",
    "HeartbeatService",
    "JobHealth",
    "JobHealthStatus",
    "KNOWN_JOB_NAMES",
    "is_job_healthy",
]
