"""Exchange trading calendar ORM model."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from jquants_ingest.models.base import Base


class TradingCalendar(Base):
    """One calendar date with its holiday-division code."""

    __tablename__ = "trading_calendar"
    __table_args__ = (
        Index(
            "ix_trading_calendar_business_day",
            "is_business_day",
            "calendar_date",
        ),
    )

    calendar_date: Mapped[date] = mapped_column(Date, primary_key=True)
    hol_div: Mapped[str] = mapped_column(String(1), nullable=False)
    is_business_day: Mapped[bool] = mapped_column(Boolean, nullable=False)
    ingested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


__all__ = ["TradingCalendar"]
