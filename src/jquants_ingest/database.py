"""Database engine and session management utilities."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from jquants_ingest.config import Settings, get_settings
from jquants_ingest.models import Base

SQLITE_BUSY_TIMEOUT_SECONDS = 30

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

_database_logger = logging.getLogger("jquants_ingest.database")


def is_sqlite_url(database_url: str) -> bool:
    return make_url(database_url).get_backend_name() == "sqlite"


def _ensure_sqlite_database_file(database_url: str) -> None:
    parsed_url = make_url(database_url)
    if parsed_url.get_backend_name() != "sqlite":
        return

    database_path = parsed_url.database
    if database_path is None or database_path in {":memory:", ""}:
        return
    if database_path.startswith("file:"):
        return

    resolved_path = Path(database_path)
    if not resolved_path.is_absolute():
        resolved_path = Path.cwd() / resolved_path

    resolved_path.parent.mkdir(parents=True, exist_ok=True)


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine, applying SQLite pragmas when needed."""

    if not is_sqlite_url(database_url):
        return create_async_engine(database_url, pool_pre_ping=True)

    _ensure_sqlite_database_file(database_url)
    sqlite_engine = create_async_engine(
        database_url,
        connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
    )

    @event.listens_for(sqlite_engine.sync_engine, "connect")
    def apply_sqlite_pragmas(dbapi_connection: Any, _: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()

    return sqlite_engine


def build_session_scope(engine: AsyncEngine) -> SessionScopeFactory:
    """Return a transaction-scoped session factory bound to ``engine``."""

    session_maker = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )

    @asynccontextmanager
    async def scoped_session() -> AsyncIterator[AsyncSession]:
        session = session_maker()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    return scoped_session


settings: Settings = get_settings()
engine = build_engine(settings.DATABASE_URL)
session_scope = build_session_scope(engine)


async def create_tables(target_engine: AsyncEngine) -> None:
    async with target_engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)


async def initialize_database() -> None:
    """Create known tables and verify connectivity."""

    await create_tables(engine)
    async with engine.connect() as connection:
        await connection.execute(text("SELECT 1"))
    _database_logger.info(
        "database_initialized",
        extra={"backend": make_url(settings.DATABASE_URL).get_backend_name()},
    )


async def close_database() -> None:
    """Dispose database engine and release pooled connections."""

    await engine.dispose()


__all__ = [
    "SessionScopeFactory",
    "build_engine",
    "build_session_scope",
    "close_database",
    "create_tables",
    "engine",
    "initialize_database",
    "is_sqlite_url",
    "session_scope",
]
