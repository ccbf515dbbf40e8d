"""Shared fixtures: a throwaway SQLite database per test."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from pathlib import Path

import pytest_asyncio

# Importing the database module builds the process engine from settings.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from jquants_ingest.database import (  # noqa: E402
    SessionScopeFactory,
    build_engine,
    build_session_scope,
    create_tables,
)


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncIterator[SessionScopeFactory]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite'}")
    await create_tables(engine)
    try:
        yield build_session_scope(engine)
    finally:
        await engine.dispose()
