"""Scheduled earnings announcement ORM model."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from jquants_ingest.models.base import Base


class EarningsCalendar(Base):
    __tablename__ = "earnings_calendar"

    announcement_date: Mapped[date] = mapped_column(Date, primary_key=True)
    local_code: Mapped[str] = mapped_column(String(5), primary_key=True)
    company_name: Mapped[str | None] = mapped_column(String(255))
    fiscal_year: Mapped[str | None] = mapped_column(String(32))
    fiscal_quarter: Mapped[str | None] = mapped_column(String(32))
    sector_name: Mapped[str | None] = mapped_column(String(64))
    ingested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


__all__ = ["EarningsCalendar"]
