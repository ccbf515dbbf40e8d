"""Listed issue master kept as a change history."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from jquants_ingest.models.base import Base


class EquityMaster(Base):
    """One version of a listed issue's attributes.

    A version is valid from ``valid_from`` (inclusive) to ``valid_to``
    (exclusive); the open version has ``valid_to`` NULL and ``is_current``
    set, and each issue has at most one such row.
    """

    __tablename__ = "equity_master"
    __table_args__ = (
        UniqueConstraint(
            "local_code", "valid_from", name="uq_equity_master_code_valid_from"
        ),
        CheckConstraint(
            "valid_to IS NULL OR valid_to > valid_from",
            name="ck_equity_master_valid_period",
        ),
        Index(
            "uq_equity_master_current",
            "local_code",
            unique=True,
            sqlite_where=text("is_current = 1"),
            postgresql_where=text("is_current"),
        ),
        Index(
            "ix_equity_master_code_validity", "local_code", "valid_from", "valid_to"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    local_code: Mapped[str] = mapped_column(String(5), nullable=False)
    company_name: Mapped[str | None] = mapped_column(String(255))
    company_name_en: Mapped[str | None] = mapped_column(String(255))
    sector17_code: Mapped[str | None] = mapped_column(String(8))
    sector17_name: Mapped[str | None] = mapped_column(String(64))
    sector33_code: Mapped[str | None] = mapped_column(String(8))
    sector33_name: Mapped[str | None] = mapped_column(String(64))
    scale_category: Mapped[str | None] = mapped_column(String(64))
    market_code: Mapped[str | None] = mapped_column(String(8))
    market_name: Mapped[str | None] = mapped_column(String(64))
    margin_code: Mapped[str | None] = mapped_column(String(8))
    margin_code_name: Mapped[str | None] = mapped_column(String(64))
    valid_from: Mapped[date] = mapped_column(Date, nullable=False)
    valid_to: Mapped[date | None] = mapped_column(Date)
    is_current: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


__all__ = ["EquityMaster"]
