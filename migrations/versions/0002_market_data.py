"""Market data tables.

Revision ID: 0002_market_data
Revises: 0001_job_ledger
Create Date: 2026-10-19 09:30:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0002_market_data"
down_revision: str | None = "0001_job_ledger"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _ingested_at() -> sa.Column:
    return sa.Column(
        "ingested_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "equity_bar_daily",
        sa.Column("local_code", sa.String(length=5), nullable=False),
        sa.Column("trade_date", sa.Date(), nullable=False),
        sa.Column(
            "session",
            sa.String(length=8),
            server_default=sa.text("'DAY'"),
            nullable=False,
        ),
        *[
            sa.Column(name, sa.Float(), nullable=True)
            for name in (
                "open",
                "high",
                "low",
                "close",
                "volume",
                "turnover_value",
                "adjustment_factor",
                "adj_open",
                "adj_high",
                "adj_low",
                "adj_close",
                "adj_volume",
            )
        ],
        _ingested_at(),
        sa.PrimaryKeyConstraint("local_code", "trade_date", "session"),
    )
    op.create_index("ix_equity_bar_daily_trade_date", "equity_bar_daily", ["trade_date"])

    op.create_table(
        "topix_bar_daily",
        sa.Column("trade_date", sa.Date(), nullable=False),
        sa.Column("open", sa.Float(), nullable=True),
        sa.Column("high", sa.Float(), nullable=True),
        sa.Column("low", sa.Float(), nullable=True),
        sa.Column("close", sa.Float(), nullable=True),
        _ingested_at(),
        sa.PrimaryKeyConstraint("trade_date"),
    )

    op.create_table(
        "financial_disclosure",
        sa.Column("disclosure_id", sa.String(length=64), nullable=False),
        sa.Column("disclosed_date", sa.Date(), nullable=False),
        sa.Column("disclosed_time", sa.String(length=16), nullable=True),
        sa.Column("local_code", sa.String(length=5), nullable=False),
        sa.Column("document_type", sa.String(length=128), nullable=True),
        sa.Column("period_type", sa.String(length=16), nullable=True),
        sa.Column("period_end", sa.Date(), nullable=True),
        sa.Column("fiscal_year_end", sa.Date(), nullable=True),
        *[
            sa.Column(name, sa.Float(), nullable=True)
            for name in (
                "net_sales",
                "operating_profit",
                "ordinary_profit",
                "profit",
                "earnings_per_share",
                "total_assets",
                "equity",
            )
        ],
        sa.Column("raw_json", sa.JSON(), nullable=False),
        _ingested_at(),
        sa.PrimaryKeyConstraint("disclosure_id"),
    )
    op.create_index(
        "ix_financial_disclosure_disclosed_date",
        "financial_disclosure",
        ["disclosed_date"],
    )
    op.create_index(
        "ix_financial_disclosure_local_code", "financial_disclosure", ["local_code"]
    )

    op.create_table(
        "equity_master_snapshot",
        sa.Column("as_of_date", sa.Date(), nullable=False),
        sa.Column("local_code", sa.String(length=5), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("company_name_en", sa.String(length=255), nullable=True),
        sa.Column("sector17_code", sa.String(length=8), nullable=True),
        sa.Column("sector17_name", sa.String(length=64), nullable=True),
        sa.Column("sector33_code", sa.String(length=8), nullable=True),
        sa.Column("sector33_name", sa.String(length=64), nullable=True),
        sa.Column("scale_category", sa.String(length=64), nullable=True),
        sa.Column("market_code", sa.String(length=8), nullable=True),
        sa.Column("market_name", sa.String(length=64), nullable=True),
        sa.Column("margin_code", sa.String(length=8), nullable=True),
        sa.Column("margin_code_name", sa.String(length=64), nullable=True),
        _ingested_at(),
        sa.PrimaryKeyConstraint("as_of_date", "local_code"),
    )
    op.create_index(
        "ix_equity_master_snapshot_local_code",
        "equity_master_snapshot",
        ["local_code"],
    )

    op.create_table(
        "earnings_calendar",
        sa.Column("announcement_date", sa.Date(), nullable=False),
        sa.Column("local_code", sa.String(length=5), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("fiscal_year", sa.String(length=32), nullable=True),
        sa.Column("fiscal_quarter", sa.String(length=32), nullable=True),
        sa.Column("sector_name", sa.String(length=64), nullable=True),
        _ingested_at(),
        sa.PrimaryKeyConstraint("announcement_date", "local_code"),
    )

    op.create_table(
        "investor_type_trading",
        sa.Column("published_date", sa.Date(), nullable=False),
        sa.Column("section", sa.String(length=32), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("investor_type", sa.String(length=16), nullable=False),
        sa.Column("metric", sa.String(length=16), nullable=False),
        sa.Column("value_yen", sa.Float(), nullable=False),
        _ingested_at(),
        sa.PrimaryKeyConstraint(
            "published_date",
            "section",
            "start_date",
            "end_date",
            "investor_type",
            "metric",
        ),
    )
    op.create_index(
        "ix_investor_type_trading_published_date",
        "investor_type_trading",
        ["published_date"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_investor_type_trading_published_date", table_name="investor_type_trading"
    )
    op.drop_table("investor_type_trading")
    op.drop_table("earnings_calendar")
    op.drop_index(
        "ix_equity_master_snapshot_local_code", table_name="equity_master_snapshot"
    )
    op.drop_table("equity_master_snapshot")
    op.drop_index("ix_financial_disclosure_local_code", table_name="financial_disclosure")
    op.drop_index(
        "ix_financial_disclosure_disclosed_date", table_name="financial_disclosure"
    )
    op.drop_table("financial_disclosure")
    op.drop_table("topix_bar_daily")
    op.drop_index("ix_equity_bar_daily_trade_date", table_name="equity_bar_daily")
    op.drop_table("equity_bar_daily")
