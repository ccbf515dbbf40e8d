"""Tests for heartbeat upserts and health classification."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from jquants_ingest.models import JobRunStatus
from jquants_ingest.services.heartbeat import (
    HeartbeatRecord,
    HeartbeatService,
    is_job_healthy,
)
from jquants_ingest.utils.text import HEARTBEAT_ERROR_MAX_LENGTH

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def _heartbeat(status: str, *, hours_ago: float, error: str | None = None):
    return HeartbeatRecord(
        job_name="cron_a",
        last_seen_at=NOW - timedelta(hours=hours_ago),
        last_status=status,
        last_error=error,
    )


def test_missing_heartbeat_is_unhealthy() -> None:
    health = is_job_healthy(None, now=NOW)

    assert health.healthy is False
    assert health.reason == "No heartbeat record found"


def test_stale_heartbeat_reports_whole_hours() -> None:
    health = is_job_healthy(_heartbeat("success", hours_ago=30.5), 25, now=NOW)

    assert health.healthy is False
    assert health.reason == "Stale: last seen 30 hours ago"


def test_recent_failure_is_unhealthy_with_error() -> None:
    failed = is_job_healthy(_heartbeat("failed", hours_ago=1, error="boom"), now=NOW)
    unknown = is_job_healthy(_heartbeat("failed", hours_ago=1), now=NOW)

    assert failed.reason == "Last run failed: boom"
    assert unknown.reason == "Last run failed: Unknown error"


@pytest.mark.parametrize("status", ["success", "running"])
def test_recent_success_or_running_is_healthy(status: str) -> None:
    assert is_job_healthy(_heartbeat(status, hours_ago=2), now=NOW).healthy is True


def test_naive_timestamps_are_treated_as_utc() -> None:
    heartbeat = HeartbeatRecord(
        job_name="cron_b",
        last_seen_at=(NOW - timedelta(hours=1)).replace(tzinfo=None),
        last_status="success",
    )

    assert is_job_healthy(heartbeat, now=NOW).healthy is True


@pytest.mark.asyncio
async def test_update_heartbeat_overwrites_single_row(session_factory) -> None:
    service = HeartbeatService(session_factory=session_factory, now_factory=lambda: NOW)
    run_id = uuid4()

    await service.update_heartbeat("cron_a", JobRunStatus.RUNNING, run_id=run_id)
    await service.update_heartbeat(
        "cron_a",
        JobRunStatus.FAILED,
        run_id=run_id,
        error="e" * (HEARTBEAT_ERROR_MAX_LENGTH + 10),
        meta={"fetched": 0},
    )

    heartbeats = await service.get_all_heartbeats()
    assert len(heartbeats) == 1
    assert heartbeats[0].last_status == "failed"
    assert heartbeats[0].last_run_id == run_id
    assert heartbeats[0].last_error is not None
    assert heartbeats[0].last_error.endswith("...")
    assert len(heartbeats[0].last_error) == HEARTBEAT_ERROR_MAX_LENGTH + 3
    assert heartbeats[0].meta == {"fetched": 0}


@pytest.mark.asyncio
async def test_check_all_jobs_health_covers_every_known_job(session_factory) -> None:
    service = HeartbeatService(session_factory=session_factory, now_factory=lambda: NOW)
    await service.update_heartbeat("cron_a", JobRunStatus.SUCCESS)
    await service.update_heartbeat("cron_b", JobRunStatus.SUCCESS)
    await service.update_heartbeat("cron_c", JobRunStatus.SUCCESS)

    healthy = await service.check_all_jobs_health()
    assert healthy.healthy is True
    assert [job.job_name for job in healthy.jobs] == ["cron_a", "cron_b", "cron_c"]

    await service.update_heartbeat("cron_b", JobRunStatus.FAILED, error="quota")
    degraded = await service.check_all_jobs_health()
    statuses = {job.job_name: job for job in degraded.jobs}
    assert degraded.healthy is False
    assert statuses["cron_b"].reason == "Last run failed: quota"
    assert statuses["cron_a"].healthy is True


@pytest.mark.asyncio
async def test_check_all_jobs_health_flags_missing_jobs(session_factory) -> None:
    service = HeartbeatService(session_factory=session_factory, now_factory=lambda: NOW)
    await service.update_heartbeat("cron_a", JobRunStatus.SUCCESS)

    health = await service.check_all_jobs_health()

    missing = [job.job_name for job in health.jobs if not job.healthy]
    assert health.healthy is False
    assert missing == ["cron_b", "cron_c"]
