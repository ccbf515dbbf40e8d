"""Tests for the authenticated cron trigger routes."""

from __future__ import annotations

from datetime import date
from uuid import UUID

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from jquants_ingest.api.auth import (
    INVALID_AUTHORIZATION_FORMAT_ERROR,
    MISSING_AUTHORIZATION_ERROR,
    SERVER_CONFIGURATION_ERROR,
    UNAUTHORIZED_ERROR,
)
from jquants_ingest.api.cron import router
from jquants_ingest.config import Settings
from jquants_ingest.services.job_lock import LOCK_HELD_ERROR
from jquants_ingest.services.job_runner import (
    JobOutcome,
    JobOutcomeStatus,
    JobRunner,
    RunSummary,
)

SECRET = "cron-test-secret"
AUTH_HEADERS = {"Authorization": f"Bearer {SECRET}"}
RUN_ID = UUID("0c8a8f4e-3c55-4ef5-8d3e-5f5b2f8f0a10")


class _CannedRunner(JobRunner):
    def __init__(self, outcome: JobOutcome) -> None:
        self.outcome = outcome
        self.calls: list[tuple[str, str | None]] = []

    async def run_cron_a(self, dataset: str) -> JobOutcome:
        self.calls.append(("cron_a", dataset))
        return self.outcome

    async def run_cron_b(self) -> JobOutcome:
        self.calls.append(("cron_b", None))
        return self.outcome

    async def run_cron_c(self) -> JobOutcome:
        self.calls.append(("cron_c", None))
        return self.outcome


def _succeeded(job_name: str = "cron_a") -> JobOutcome:
    return JobOutcome(
        job_name=job_name,
        status=JobOutcomeStatus.SUCCEEDED,
        runs=[
            RunSummary(
                run_id=RUN_ID,
                target_date=date(2026, 10, 16),
                success=True,
                fetched=4200,
                inserted=4200,
                page_count=3,
            )
        ],
        duration_ms=1520.5,
    )


def _app(
    runner: JobRunner | None,
    *,
    environment: str = "production",
    cron_secret: str | None = SECRET,
) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    app.state.settings = Settings(
        _env_file=None, CRON_SECRET=cron_secret, ENVIRONMENT=environment
    )
    if runner is not None:
        app.state.job_runner = runner
    return app


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("headers", "detail"),
    [
        ({}, MISSING_AUTHORIZATION_ERROR),
        ({"Authorization": f"Basic {SECRET}"}, INVALID_AUTHORIZATION_FORMAT_ERROR),
        ({"Authorization": "Bearer"}, INVALID_AUTHORIZATION_FORMAT_ERROR),
        ({"Authorization": "Bearer wrong-secret"}, UNAUTHORIZED_ERROR),
    ],
)
async def test_cron_routes_reject_bad_credentials(
    headers: dict[str, str], detail: str
) -> None:
    runner = _CannedRunner(_succeeded())

    async with _client(_app(runner)) as client:
        response = await client.post("/api/cron/jquants/b", headers=headers)

    assert response.status_code == 401
    assert response.json()["detail"] == detail
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert runner.calls == []


@pytest.mark.asyncio
async def test_missing_cron_secret_is_a_server_error() -> None:
    async with _client(_app(_CannedRunner(_succeeded()), cron_secret="")) as client:
        response = await client.post("/api/cron/jquants/c", headers=AUTH_HEADERS)

    assert response.status_code == 500
    assert response.json()["detail"] == SERVER_CONFIGURATION_ERROR


@pytest.mark.asyncio
async def test_cron_a_runs_selected_dataset_and_reports_counts() -> None:
    runner = _CannedRunner(_succeeded())

    async with _client(_app(runner)) as client:
        response = await client.post(
            "/api/cron/jquants/a", headers=AUTH_HEADERS, json={"dataset": "daily"}
        )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "succeeded"
    assert body["success"] is True
    assert body["fetched"] == 4200
    assert body["page_count"] == 3
    assert body["runs"][0]["page_count"] == 3
    assert body["runs"][0]["run_id"] == str(RUN_ID)
    assert body["runs"][0]["target_date"] == "2026-10-16"
    assert runner.calls == [("cron_a", "daily")]


@pytest.mark.asyncio
async def test_cron_a_rejects_unknown_dataset() -> None:
    runner = _CannedRunner(_succeeded())

    async with _client(_app(runner)) as client:
        response = await client.post(
            "/api/cron/jquants/a", headers=AUTH_HEADERS, json={"dataset": "prices"}
        )

    assert response.status_code == 422
    assert runner.calls == []


@pytest.mark.asyncio
async def test_held_lock_maps_to_conflict() -> None:
    outcome = JobOutcome(
        job_name="cron_b", status=JobOutcomeStatus.LOCK_HELD, error=LOCK_HELD_ERROR
    )

    async with _client(_app(_CannedRunner(outcome))) as client:
        response = await client.post("/api/cron/jquants/b", headers=AUTH_HEADERS)

    assert response.status_code == 409
    assert response.json()["error"] == LOCK_HELD_ERROR
    assert response.json()["success"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "success"),
    [
        (JobOutcomeStatus.ALREADY_EXECUTED, True),
        (JobOutcomeStatus.NOTHING_TO_DO, True),
        (JobOutcomeStatus.FAILED, False),
    ],
)
async def test_non_error_outcomes_return_ok(
    status: JobOutcomeStatus, success: bool
) -> None:
    outcome = JobOutcome(job_name="cron_c", status=status)

    async with _client(_app(_CannedRunner(outcome))) as client:
        response = await client.post("/api/cron/jquants/c", headers=AUTH_HEADERS)

    assert response.status_code == 200
    assert response.json()["status"] == status.value
    assert response.json()["success"] is success


@pytest.mark.asyncio
async def test_internal_errors_hide_detail_outside_development() -> None:
    outcome = JobOutcome(
        job_name="cron_c",
        status=JobOutcomeStatus.ERROR,
        error="database password incorrect",
    )

    async with _client(_app(_CannedRunner(outcome))) as client:
        hidden = await client.post("/api/cron/jquants/c", headers=AUTH_HEADERS)
    async with _client(
        _app(_CannedRunner(outcome), environment="development")
    ) as client:
        shown = await client.post("/api/cron/jquants/c", headers=AUTH_HEADERS)

    assert hidden.status_code == 500
    assert hidden.json()["detail"] == "Internal server error"
    assert shown.status_code == 500
    assert shown.json()["detail"] == "database password incorrect"


@pytest.mark.asyncio
async def test_missing_job_runner_is_unavailable() -> None:
    async with _client(_app(None)) as client:
        response = await client.post("/api/cron/jquants/b", headers=AUTH_HEADERS)

    assert response.status_code == 503
    assert response.json()["detail"] == "Job runner is unavailable"
