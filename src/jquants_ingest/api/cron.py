"""Authenticated trigger routes for the ingestion jobs."""

from __future__ import annotations

import logging
from datetime import date
from typing import Literal, NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from jquants_ingest.api.auth import require_cron_secret
from jquants_ingest.config import Settings, get_settings
from jquants_ingest.services.job_runner import (
    JobOutcome,
    JobOutcomeStatus,
    JobRunner,
    RunSummary,
)

router = APIRouter(
    prefix="/api/cron/jquants",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)

_cron_logger = logging.getLogger("jquants_ingest.api.cron")


class CronARequest(BaseModel):
    dataset: Literal["calendar", "daily"]


class RunSummaryResponse(BaseModel):
    run_id: UUID
    target_date: date | None
    success: bool
    fetched: int
    inserted: int
    page_count: int
    error: str | None


class JobOutcomeResponse(BaseModel):
    """Outcome of one job trigger."""

    job_name: str
    status: str
    success: bool
    runs: list[RunSummaryResponse]
    skipped_dates: list[date]
    fetched: int
    inserted: int
    page_count: int
    error: str | None
    duration_ms: float | None


def _get_job_runner(request: Request) -> JobRunner:
    runner = getattr(request.app.state, "job_runner", None)
    if isinstance(runner, JobRunner):
        return runner

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Job runner is unavailable",
    )


def _get_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if isinstance(settings, Settings):
        return settings
    return get_settings()


def _run_response(run: RunSummary) -> RunSummaryResponse:
    return RunSummaryResponse(
        run_id=run.run_id,
        target_date=run.target_date,
        success=run.success,
        fetched=run.fetched,
        inserted=run.inserted,
        page_count=run.page_count,
        error=run.error,
    )


def _outcome_response(outcome: JobOutcome) -> JobOutcomeResponse:
    return JobOutcomeResponse(
        job_name=outcome.job_name,
        status=outcome.status.value,
        success=outcome.status
        in {
            JobOutcomeStatus.SUCCEEDED,
            JobOutcomeStatus.ALREADY_EXECUTED,
            JobOutcomeStatus.NOTHING_TO_DO,
        },
        runs=[_run_response(run) for run in outcome.runs],
        skipped_dates=list(outcome.skipped_dates),
        fetched=sum(run.fetched for run in outcome.runs),
        inserted=sum(run.inserted for run in outcome.runs),
        page_count=sum(run.page_count for run in outcome.runs),
        error=outcome.error,
        duration_ms=outcome.duration_ms,
    )


def _raise_internal_error(settings: Settings, outcome: JobOutcome) -> NoReturn:
    detail = (
        (outcome.error or "Internal server error")
        if settings.is_development
        else "Internal server error"
    )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=detail,
    )


def _respond(outcome: JobOutcome, settings: Settings) -> JSONResponse:
    if outcome.status is JobOutcomeStatus.ERROR:
        _raise_internal_error(settings, outcome)

    status_code = (
        status.HTTP_409_CONFLICT
        if outcome.status is JobOutcomeStatus.LOCK_HELD
        else status.HTTP_200_OK
    )
    return JSONResponse(
        status_code=status_code,
        content=_outcome_response(outcome).model_dump(mode="json"),
    )


@router.post("/a", response_model=JobOutcomeResponse)
async def trigger_cron_a(
    payload: CronARequest,
    runner: JobRunner = Depends(_get_job_runner),
    settings: Settings = Depends(_get_settings),
) -> JSONResponse:
    _cron_logger.info(
        "cron_trigger_received",
        extra={"job_name": "cron_a", "dataset": payload.dataset},
    )
    return _respond(await runner.run_cron_a(payload.dataset), settings)


@router.post("/b", response_model=JobOutcomeResponse)
async def trigger_cron_b(
    runner: JobRunner = Depends(_get_job_runner),
    settings: Settings = Depends(_get_settings),
) -> JSONResponse:
    _cron_logger.info("cron_trigger_received", extra={"job_name": "cron_b"})
    return _respond(await runner.run_cron_b(), settings)


@router.post("/c", response_model=JobOutcomeResponse)
async def trigger_cron_c(
    runner: JobRunner = Depends(_get_job_runner),
    settings: Settings = Depends(_get_settings),
) -> JSONResponse:
    _cron_logger.info("cron_trigger_received", extra={"job_name": "cron_c"})
    return _respond(await runner.run_cron_c(), settings)


__all__ = ["CronARequest", "JobOutcomeResponse", "RunSummaryResponse", "router"]
