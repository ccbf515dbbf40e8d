"""Job liveness heartbeat ORM model."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Date, DateTime, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from jquants_ingest.models.base import Base


class JobHeartbeat(Base):
    """Last observed state per job, used only for health reporting."""

    __tablename__ = "job_heartbeat"

    job_name: Mapped[str] = mapped_column(String(32), primary_key=True)
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    last_status: Mapped[str] = mapped_column(String(16), nullable=False)
    last_run_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True))
    last_target_date: Mapped[date | None] = mapped_column(Date)
    last_error: Mapped[str | None] = mapped_column(Text)
    meta: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)


__all__ = ["JobHeartbeat"]
