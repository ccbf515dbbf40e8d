"""Tests for the job health route."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from jquants_ingest.api.health import router
from jquants_ingest.config import Settings
from jquants_ingest.models import JobRunStatus
from jquants_ingest.services.heartbeat import HeartbeatService
from jquants_ingest.services.scheduler import SchedulerService

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


async def _noop_job() -> None:
    return None


def _app(heartbeat: HeartbeatService | None) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    app.state.settings = Settings(_env_file=None, HEARTBEAT_STALE_HOURS=25)
    if heartbeat is not None:
        app.state.heartbeat_service = heartbeat
    return app


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_jobs_health_is_ok_when_every_job_reported(session_factory) -> None:
    heartbeat = HeartbeatService(session_factory=session_factory, now_factory=lambda: NOW)
    for job_name in ("cron_a", "cron_b", "cron_c"):
        await heartbeat.update_heartbeat(job_name, JobRunStatus.SUCCESS)

    async with _client(_app(heartbeat)) as client:
        response = await client.get("/api/health/jobs")

    assert response.status_code == 200
    body = response.json()
    assert body["healthy"] is True
    assert [job["job_name"] for job in body["jobs"]] == ["cron_a", "cron_b", "cron_c"]
    assert body["scheduled_jobs"] == []


@pytest.mark.asyncio
async def test_jobs_health_is_unavailable_for_stale_or_failed_jobs(
    session_factory,
) -> None:
    clock = {"now": NOW - timedelta(hours=30)}
    heartbeat = HeartbeatService(
        session_factory=session_factory, now_factory=lambda: clock["now"]
    )
    await heartbeat.update_heartbeat("cron_a", JobRunStatus.SUCCESS)
    clock["now"] = NOW
    await heartbeat.update_heartbeat("cron_b", JobRunStatus.FAILED, error="boom")
    await heartbeat.update_heartbeat("cron_c", JobRunStatus.RUNNING)

    async with _client(_app(heartbeat)) as client:
        response = await client.get("/api/health/jobs")

    assert response.status_code == 503
    jobs = {job["job_name"]: job for job in response.json()["jobs"]}
    assert jobs["cron_a"]["reason"] == "Stale: last seen 30 hours ago"
    assert jobs["cron_b"]["reason"] == "Last run failed: boom"
    assert jobs["cron_c"]["healthy"] is True


@pytest.mark.asyncio
async def test_jobs_health_lists_scheduled_jobs(session_factory, tmp_path: Path) -> None:
    heartbeat = HeartbeatService(session_factory=session_factory, now_factory=lambda: NOW)
    scheduler = SchedulerService(
        enabled=True,
        jobstore_url=f"sqlite:///{tmp_path / 'health-scheduler.sqlite'}",
        timezone="Asia/Tokyo",
    )
    scheduler.add_cron_job(
        job_id="jquants-cron-b", func=_noop_job, crontab="0 18 * * 1-5"
    )
    app = _app(heartbeat)
    app.state.scheduler_service = scheduler

    await scheduler.start()
    try:
        async with _client(app) as client:
            response = await client.get("/api/health/jobs")
    finally:
        await scheduler.shutdown()

    assert response.status_code == 503
    scheduled = response.json()["scheduled_jobs"]
    assert [job["job_id"] for job in scheduled] == ["jquants-cron-b"]
    assert scheduled[0]["next_run_time"] is not None


@pytest.mark.asyncio
async def test_jobs_health_without_heartbeat_service_is_unavailable() -> None:
    async with _client(_app(None)) as client:
        response = await client.get("/api/health/jobs")

    assert response.status_code == 503
    assert response.json()["detail"] == "Heartbeat service is unavailable"
