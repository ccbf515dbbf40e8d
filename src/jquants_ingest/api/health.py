"""Job liveness routes backed by the heartbeat table."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from jquants_ingest.config import Settings, get_settings
from jquants_ingest.services.heartbeat import HeartbeatService
from jquants_ingest.services.scheduler import SchedulerService

router = APIRouter(prefix="/api/health", tags=["health"])


class JobHealthResponse(BaseModel):
    job_name: str
    healthy: bool
    reason: str | None
    last_seen_at: datetime | None
    last_status: str | None


class ScheduledJobResponse(BaseModel):
    job_id: str
    name: str | None
    trigger: str
    next_run_time: datetime | None


class JobsHealthResponse(BaseModel):
    healthy: bool
    jobs: list[JobHealthResponse]
    scheduled_jobs: list[ScheduledJobResponse]


def _get_heartbeat_service(request: Request) -> HeartbeatService:
    heartbeat = getattr(request.app.state, "heartbeat_service", None)
    if isinstance(heartbeat, HeartbeatService):
        return heartbeat

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Heartbeat service is unavailable",
    )


def _get_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if isinstance(settings, Settings):
        return settings
    return get_settings()


@router.get("/jobs", response_model=JobsHealthResponse)
async def jobs_health(
    request: Request,
    heartbeat: HeartbeatService = Depends(_get_heartbeat_service),
    settings: Settings = Depends(_get_settings),
) -> JSONResponse:
    """Report per-job health; 503 when any job is unhealthy."""

    health = await heartbeat.check_all_jobs_health(settings.HEARTBEAT_STALE_HOURS)
    scheduler = getattr(request.app.state, "scheduler_service", None)
    scheduled_jobs = (
        scheduler.list_jobs() if isinstance(scheduler, SchedulerService) else []
    )
    body = JobsHealthResponse(
        healthy=health.healthy,
        jobs=[
            JobHealthResponse(
                job_name=job.job_name,
                healthy=job.healthy,
                reason=job.reason,
                last_seen_at=job.last_seen_at,
                last_status=job.last_status,
            )
            for job in health.jobs
        ],
        scheduled_jobs=[
            ScheduledJobResponse(
                job_id=job.job_id,
                name=job.name,
                trigger=job.trigger,
                next_run_time=job.next_run_time,
            )
            for job in scheduled_jobs
        ],
    )
    return JSONResponse(
        status_code=(
            status.HTTP_200_OK if health.healthy else status.HTTP_503_SERVICE_UNAVAILABLE
        ),
        content=body.model_dump(mode="json"),
    )


__all__ = ["JobsHealthResponse", "router"]
