"""Name the investor trading value by its unit.

Revision ID: 0004_investor_value_unit
Revises: 0003_equity_master_history
Create Date: 2026-10-19 15:00:00

"""

from __future__ import annotations

from collections.abc import Sequence

from alembic import op

revision: str = "0004_investor_value_unit"
down_revision: str | None = "0003_equity_master_history"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Published values are in thousands of yen.
    with op.batch_alter_table("investor_type_trading") as batch_op:
        batch_op.alter_column("value_yen", new_column_name="value_kjpy")


def downgrade() -> None:
    with op.batch_alter_table("investor_type_trading") as batch_op:
        batch_op.alter_column("value_kjpy", new_column_name="value_yen")
