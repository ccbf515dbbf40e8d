"""Job-run ledger ORM models."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from jquants_ingest.models.base import Base


class JobName(str, Enum):
    """Scheduled ingestion jobs."""

    CRON_A = "cron_a"
    CRON_B = "cron_b"
    CRON_C = "cron_c"


class JobRunStatus(str, Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class JobRun(Base):
    """One attempt of one job, optionally scoped to a target date."""

    __tablename__ = "job_runs"
    __table_args__ = (
        CheckConstraint(
            "job_name IN ('cron_a', 'cron_b', 'cron_c')",
            name="ck_job_runs_job_name",
        ),
        CheckConstraint(
            "status IN ('running', 'success', 'failed')",
            name="ck_job_runs_status",
        ),
        Index(
            "uq_job_runs_job_name_target_date",
            "job_name",
            "target_date",
            unique=True,
            sqlite_where=text("target_date IS NOT NULL"),
            postgresql_where=text("target_date IS NOT NULL"),
        ),
        Index("ix_job_runs_job_name_started_at", "job_name", "started_at"),
        Index("ix_job_runs_status", "status"),
    )

    run_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    job_name: Mapped[str] = mapped_column(String(32), nullable=False)
    target_date: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=JobRunStatus.RUNNING.value,
        server_default=text("'running'"),
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    error_message: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)


class JobRunItem(Base):
    """Per-dataset sub-record of a job run."""

    __tablename__ = "job_run_items"
    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'success', 'failed')",
            name="ck_job_run_items_status",
        ),
    )

    run_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("job_runs.run_id", ondelete="CASCADE"),
        primary_key=True,
    )
    dataset: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    row_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    page_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    error_message: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)


__all__ = ["JobName", "JobRun", "JobRunItem", "JobRunStatus"]
