"""Weekly trading value by investor type, stored in long format."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from jquants_ingest.models.base import Base


class InvestorTypeTrading(Base):
    """One (investor type, metric) value for a published weekly window."""

    __tablename__ = "investor_type_trading"
    __table_args__ = (
        Index("ix_investor_type_trading_published_date", "published_date"),
    )

    published_date: Mapped[date] = mapped_column(Date, primary_key=True)
    section: Mapped[str] = mapped_column(String(32), primary_key=True)
    start_date: Mapped[date] = mapped_column(Date, primary_key=True)
    end_date: Mapped[date] = mapped_column(Date, primary_key=True)
    investor_type: Mapped[str] = mapped_column(String(16), primary_key=True)
    metric: Mapped[str] = mapped_column(String(16), primary_key=True)
    # Thousands of yen, as published.
    value_kjpy: Mapped[float] = mapped_column(Float, nullable=False)
    ingested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


__all__ = ["InvestorTypeTrading"]
