"""Financial statement disclosure ORM model."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import JSON, Date, DateTime, Float, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from jquants_ingest.models.base import Base


class FinancialDisclosure(Base):
    """Summary figures from one earnings disclosure, with the raw payload."""

    __tablename__ = "financial_disclosure"
    __table_args__ = (
        Index("ix_financial_disclosure_disclosed_date", "disclosed_date"),
        Index("ix_financial_disclosure_local_code", "local_code"),
    )

    disclosure_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    disclosed_date: Mapped[date] = mapped_column(Date, nullable=False)
    disclosed_time: Mapped[str | None] = mapped_column(String(16))
    local_code: Mapped[str] = mapped_column(String(5), nullable=False)
    document_type: Mapped[str | None] = mapped_column(String(128))
    period_type: Mapped[str | None] = mapped_column(String(16))
    period_end: Mapped[date | None] = mapped_column(Date)
    fiscal_year_end: Mapped[date | None] = mapped_column(Date)
    net_sales: Mapped[float | None] = mapped_column(Float)
    operating_profit: Mapped[float | None] = mapped_column(Float)
    ordinary_profit: Mapped[float | None] = mapped_column(Float)
    profit: Mapped[float | None] = mapped_column(Float)
    earnings_per_share: Mapped[float | None] = mapped_column(Float)
    total_assets: Mapped[float | None] = mapped_column(Float)
    equity: Mapped[float | None] = mapped_column(Float)
    raw_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    ingested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


__all__ = ["FinancialDisclosure"]
