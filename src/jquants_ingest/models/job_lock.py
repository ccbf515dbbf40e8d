"""Lease-based job lock ORM model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from jquants_ingest.models.base import Base


class JobLock(Base):
    """At most one row per job name; held while ``locked_until`` is in the future."""

    __tablename__ = "job_locks"

    job_name: Mapped[str] = mapped_column(String(32), primary_key=True)
    locked_until: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    lock_token: Mapped[str] = mapped_column(String(64), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


__all__ = ["JobLock"]
