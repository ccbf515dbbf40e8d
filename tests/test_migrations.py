"""Alembic revisions: per-revision schema, rollback and data carried across them."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory

LEDGER_TABLES = {
    "job_runs",
    "job_run_items",
    "job_locks",
    "job_heartbeat",
    "trading_calendar",
}
MARKET_TABLES = {
    "equity_bar_daily",
    "topix_bar_daily",
    "financial_disclosure",
    "equity_master_snapshot",
    "earnings_calendar",
    "investor_type_trading",
}
HISTORY_TABLES = (MARKET_TABLES - {"equity_master_snapshot"}) | {"equity_master"}


@pytest.fixture
def database_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "migrations.sqlite"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{path}")
    return path


def _alembic_config() -> Config:
    project_root = Path(__file__).resolve().parents[1]
    return Config(str(project_root / "alembic.ini"))


def _schema(database_file: Path) -> tuple[str | None, set[str]]:
    connection = sqlite3.connect(database_file)
    try:
        tables = {
            row[0]
            for row in connection.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            )
        }
        revision = None
        if "alembic_version" in tables:
            row = connection.execute("SELECT version_num FROM alembic_version").fetchone()
            revision = None if row is None else str(row[0])
        return revision, tables - {"alembic_version"}
    finally:
        connection.close()


def test_each_revision_creates_and_drops_its_tables(database_file: Path) -> None:
    config = _alembic_config()
    head = ScriptDirectory.from_config(config).get_current_head()

    command.upgrade(config, "0001_job_ledger")
    assert _schema(database_file) == ("0001_job_ledger", LEDGER_TABLES)

    command.upgrade(config, "0002_market_data")
    assert _schema(database_file) == ("0002_market_data", LEDGER_TABLES | MARKET_TABLES)

    command.upgrade(config, "head")
    assert _schema(database_file) == (head, LEDGER_TABLES | HISTORY_TABLES)

    command.downgrade(config, "0002_market_data")
    assert _schema(database_file) == ("0002_market_data", LEDGER_TABLES | MARKET_TABLES)

    command.downgrade(config, "0001_job_ledger")
    assert _schema(database_file) == ("0001_job_ledger", LEDGER_TABLES)

    command.downgrade(config, "base")
    assert _schema(database_file) == (None, set())

    command.upgrade(config, "head")
    assert _schema(database_file) == (head, LEDGER_TABLES | HISTORY_TABLES)


def test_job_runs_allow_one_row_per_dated_run(database_file: Path) -> None:
    command.upgrade(_alembic_config(), "head")

    connection = sqlite3.connect(database_file)
    try:
        insert = (
            "INSERT INTO job_runs (run_id, job_name, target_date, status, meta) "
            "VALUES (?, ?, ?, 'running', '{}')"
        )
        connection.execute(insert, ("a" * 32, "cron_a", "2026-10-16"))
        connection.execute(insert, ("b" * 32, "cron_b", "2026-10-16"))
        connection.execute(insert, ("c" * 32, "cron_c", None))
        connection.execute(insert, ("d" * 32, "cron_c", None))
        with pytest.raises(sqlite3.IntegrityError):
            connection.execute(insert, ("e" * 32, "cron_a", "2026-10-16"))
    finally:
        connection.close()


def test_latest_snapshot_becomes_the_open_history_version(database_file: Path) -> None:
    config = _alembic_config()
    command.upgrade(config, "0002_market_data")

    connection = sqlite3.connect(database_file)
    try:
        connection.executemany(
            "INSERT INTO equity_master_snapshot "
            "(as_of_date, local_code, company_name, market_code) VALUES (?, ?, ?, ?)",
            [
                ("2026-10-15", "72030", "Toyota", "0111"),
                ("2026-10-16", "72030", "Toyota Motor", "0111"),
                ("2026-10-16", "13010", "", None),
            ],
        )
        connection.commit()
    finally:
        connection.close()

    command.upgrade(config, "head")

    connection = sqlite3.connect(database_file)
    try:
        rows = connection.execute(
            "SELECT local_code, company_name, valid_from, valid_to, is_current "
            "FROM equity_master ORDER BY local_code"
        ).fetchall()
        assert rows == [
            ("13010", None, "2026-10-16", None, 1),
            ("72030", "Toyota Motor", "2026-10-16", None, 1),
        ]
        with pytest.raises(sqlite3.IntegrityError):
            connection.execute(
                "INSERT INTO equity_master (local_code, valid_from, is_current) "
                "VALUES ('72030', '2026-10-19', 1)"
            )
        with pytest.raises(sqlite3.IntegrityError):
            connection.execute(
                "INSERT INTO equity_master "
                "(local_code, valid_from, valid_to, is_current) "
                "VALUES ('99840', '2026-10-19', '2026-10-19', 0)"
            )
    finally:
        connection.close()


def test_investor_values_are_stored_in_thousand_yen_column(database_file: Path) -> None:
    config = _alembic_config()
    command.upgrade(config, "0003_equity_master_history")

    connection = sqlite3.connect(database_file)
    try:
        connection.execute(
            "INSERT INTO investor_type_trading (published_date, section, start_date, "
            "end_date, investor_type, metric, value_yen) "
            "VALUES ('2026-10-15', 'TSEPrime', '2026-10-05', '2026-10-09', "
            "'For', 'sales', 1250.0)"
        )
        connection.commit()
    finally:
        connection.close()

    command.upgrade(config, "head")

    connection = sqlite3.connect(database_file)
    try:
        pragma = connection.execute("PRAGMA table_info(investor_type_trading)")
        columns = {row[1] for row in pragma}
        value = connection.execute(
            "SELECT value_kjpy FROM investor_type_trading"
        ).fetchone()
    finally:
        connection.close()

    assert "value_kjpy" in columns
    assert "value_yen" not in columns
    assert value == (1250.0,)
