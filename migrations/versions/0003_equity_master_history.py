"""Equity master change history.

Revision ID: 0003_equity_master_history
Revises: 0002_market_data
Create Date: 2026-10-19 14:00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0003_equity_master_history"
down_revision: str | None = "0002_market_data"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ATTRIBUTE_COLUMNS = (
    "company_name_en",
    "sector17_code",
    "sector17_name",
    "sector33_code",
    "sector33_name",
    "scale_category",
    "market_code",
    "market_name",
    "margin_code",
    "margin_code_name",
)
_attributes = ", ".join(ATTRIBUTE_COLUMNS)


def upgrade() -> None:
    op.create_table(
        "equity_master",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("local_code", sa.String(length=5), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=True),
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
        sa.Column("valid_from", sa.Date(), nullable=False),
        sa.Column("valid_to", sa.Date(), nullable=True),
        sa.Column(
            "is_current", sa.Boolean(), server_default=sa.true(), nullable=False
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "local_code", "valid_from", name="uq_equity_master_code_valid_from"
        ),
        sa.CheckConstraint(
            "valid_to IS NULL OR valid_to > valid_from",
            name="ck_equity_master_valid_period",
        ),
    )
    op.create_index(
        "uq_equity_master_current",
        "equity_master",
        ["local_code"],
        unique=True,
        sqlite_where=sa.text("is_current = 1"),
        postgresql_where=sa.text("is_current"),
    )
    op.create_index(
        "ix_equity_master_code_validity",
        "equity_master",
        ["local_code", "valid_from", "valid_to"],
    )

    # The latest snapshot of each issue becomes its open version.
    op.execute(
        "INSERT INTO equity_master "
        f"(local_code, company_name, {_attributes}, valid_from, is_current) "
        f"SELECT s.local_code, NULLIF(s.company_name, ''), {_attributes}, "
        "s.as_of_date, TRUE "
        "FROM equity_master_snapshot s "
        "WHERE s.as_of_date = ("
        "SELECT MAX(l.as_of_date) FROM equity_master_snapshot l "
        "WHERE l.local_code = s.local_code)"
    )

    op.drop_index(
        "ix_equity_master_snapshot_local_code", table_name="equity_master_snapshot"
    )
    op.drop_table("equity_master_snapshot")


def downgrade() -> None:
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
        sa.Column(
            "ingested_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("as_of_date", "local_code"),
    )
    op.create_index(
        "ix_equity_master_snapshot_local_code",
        "equity_master_snapshot",
        ["local_code"],
    )

    # Closed versions have no snapshot form and are dropped.
    op.execute(
        "INSERT INTO equity_master_snapshot "
        f"(as_of_date, local_code, company_name, {_attributes}) "
        f"SELECT valid_from, local_code, COALESCE(company_name, ''), {_attributes} "
        "FROM equity_master WHERE is_current = TRUE"
    )

    op.drop_index("ix_equity_master_code_validity", table_name="equity_master")
    op.drop_index("uq_equity_master_current", table_name="equity_master")
    op.drop_table("equity_master")
