"""Job ledger, lock, heartbeat and trading calendar tables.

Revision ID: 0001_job_ledger
Revises:
Create Date: 2026-10-19 09:00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001_job_ledger"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "job_runs",
        sa.Column("run_id", sa.Uuid(), nullable=False),
        sa.Column("job_name", sa.String(length=32), nullable=False),
        sa.Column("target_date", sa.Date(), nullable=True),
        sa.Column(
            "status",
            sa.String(length=16),
            server_default=sa.text("'running'"),
            nullable=False,
        ),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.CheckConstraint(
            "job_name IN ('cron_a', 'cron_b', 'cron_c')",
            name="ck_job_runs_job_name",
        ),
        sa.CheckConstraint(
            "status IN ('running', 'success', 'failed')",
            name="ck_job_runs_status",
        ),
        sa.PrimaryKeyConstraint("run_id"),
    )
    op.create_index(
        "uq_job_runs_job_name_target_date",
        "job_runs",
        ["job_name", "target_date"],
        unique=True,
        sqlite_where=sa.text("target_date IS NOT NULL"),
        postgresql_where=sa.text("target_date IS NOT NULL"),
    )
    op.create_index(
        "ix_job_runs_job_name_started_at",
        "job_runs",
        ["job_name", "started_at"],
    )
    op.create_index("ix_job_runs_status", "job_runs", ["status"])

    op.create_table(
        "job_run_items",
        sa.Column("run_id", sa.Uuid(), nullable=False),
        sa.Column("dataset", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("row_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("page_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.CheckConstraint(
            "status IN ('running', 'success', 'failed')",
            name="ck_job_run_items_status",
        ),
        sa.ForeignKeyConstraint(["run_id"], ["job_runs.run_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("run_id", "dataset"),
    )

    op.create_table(
        "job_locks",
        sa.Column("job_name", sa.String(length=32), nullable=False),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=False),
        sa.Column("lock_token", sa.String(length=64), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("job_name"),
    )

    op.create_table(
        "job_heartbeat",
        sa.Column("job_name", sa.String(length=32), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_status", sa.String(length=16), nullable=False),
        sa.Column("last_run_id", sa.Uuid(), nullable=True),
        sa.Column("last_target_date", sa.Date(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("job_name"),
    )

    op.create_table(
        "trading_calendar",
        sa.Column("calendar_date", sa.Date(), nullable=False),
        sa.Column("hol_div", sa.String(length=1), nullable=False),
        sa.Column("is_business_day", sa.Boolean(), nullable=False),
        sa.Column(
            "ingested_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("calendar_date"),
    )
    op.create_index(
        "ix_trading_calendar_business_day",
        "trading_calendar",
        ["is_business_day", "calendar_date"],
    )


def downgrade() -> None:
    op.drop_index("ix_trading_calendar_business_day", table_name="trading_calendar")
    op.drop_table("trading_calendar")
    op.drop_table("job_heartbeat")
    op.drop_table("job_locks")
    op.drop_table("job_run_items")
    op.drop_index("ix_job_runs_status", table_name="job_runs")
    op.drop_index("ix_job_runs_job_name_started_at", table_name="job_runs")
    op.drop_index("uq_job_runs_job_name_target_date", table_name="job_runs")
    op.drop_table("job_runs")
