"""Daily equity OHLCV bar ORM model."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, Index, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from jquants_ingest.models.base import Base


class EquityBarDaily(Base):
    """Raw and split-adjusted daily prices per listed issue."""

    __tablename__ = "equity_bar_daily"
    __table_args__ = (Index("ix_equity_bar_daily_trade_date", "trade_date"),)

    local_code: Mapped[str] = mapped_column(String(5), primary_key=True)
    trade_date: Mapped[date] = mapped_column(Date, primary_key=True)
    session: Mapped[str] = mapped_column(
        String(8), primary_key=True, default="DAY", server_default=text("'DAY'")
    )
    open: Mapped[float | None] = mapped_column(Float)
    high: Mapped[float | None] = mapped_column(Float)
    low: Mapped[float | None] = mapped_column(Float)
    close: Mapped[float | None] = mapped_column(Float)
    volume: Mapped[float | None] = mapped_column(Float)
    turnover_value: Mapped[float | None] = mapped_column(Float)
    adjustment_factor: Mapped[float | None] = mapped_column(Float)
    adj_open: Mapped[float | None] = mapped_column(Float)
    adj_high: Mapped[float | None] = mapped_column(Float)
    adj_low: Mapped[float | None] = mapped_column(Float)
    adj_close: Mapped[float | None] = mapped_column(Float)
    adj_volume: Mapped[float | None] = mapped_column(Float)
    ingested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


__all__ = ["EquityBarDaily"]
