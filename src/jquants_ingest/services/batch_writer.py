"""Chunked idempotent upserts, paged selects, and bounded-concurrency processing."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Literal, TypeVar

from sqlalchemy import Table, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Insert

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

DEFAULT_BATCH_SIZE = 500
BATCH_SIZES: dict[str, int] = {
    "equity_bar_daily": 1000,
    "equity_master": 500,
    "investor_type_trading": 2000,
    "financial_disclosure": 500,
    "earnings_calendar": 1000,
    "trading_calendar": 2000,
    "topix_bar_daily": 2000,
}
DEFAULT_PAGE_SIZE = 1000
DEFAULT_MAX_PAGES = 100
DEFAULT_CONCURRENCY = 5

FilterOperator = Literal["eq", "gte", "lte", "gt", "lt"]
Row = dict[str, Any]
T = TypeVar("T")
R = TypeVar("R")

_batch_logger = logging.getLogger("jquants_ingest.batch")


class BatchUpsertError(RuntimeError):
    """Raised when one upsert chunk fails and errors are not tolerated."""

    def __init__(self, message: str, *, chunk_index: int, chunk_count: int) -> None:
        self.chunk_index = chunk_index
        self.chunk_count = chunk_count
        super().__init__(message)


class BatchSelectError(RuntimeError):
    """Raised when one page of a paged select fails."""

    def __init__(self, message: str, *, page: int) -> None:
        self.page = page
        super().__init__(message)


@dataclass(slots=True)
class BatchUpsertResult:
    """Rows written plus any per-chunk errors collected along the way."""

    inserted: int = 0
    errors: list[str] = field(default_factory=list)
    batch_count: int = 0


@dataclass(slots=True, frozen=True)
class ColumnFilter:
    column: str
    operator: FilterOperator
    value: Any


@dataclass(slots=True, frozen=True)
class ColumnOrder:
    column: str
    ascending: bool = True


def chunk_list(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""

    if size <= 0:
        raise ValueError("size must be greater than zero")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


def resolve_batch_size(table_name: str, batch_size: int | None = None) -> int:
    if batch_size is not None:
        if batch_size <= 0:
            raise ValueError("batch_size must be greater than zero")
        return batch_size

    # Schema-qualified names use the bare table name.
    bare_name = table_name.rsplit(".", 1)[-1]
    return BATCH_SIZES.get(bare_name, DEFAULT_BATCH_SIZE)


def _as_table(target: Any) -> Table:
    table = getattr(target, "__table__", target)
    if not isinstance(table, Table):
        raise TypeError(f"Expected an ORM model or Table, got {target!r}")
    return table


def build_upsert_statement(
    session: AsyncSession,
    table: Table,
    rows: list[Row],
    conflict_columns: Sequence[str],
) -> Insert:
    """Build a dialect-specific ``INSERT ... ON CONFLICT DO UPDATE``."""

    dialect_name = session.get_bind().dialect.name
    if dialect_name == "postgresql":
        statement = postgresql.insert(table).values(rows)
    elif dialect_name == "sqlite":
        statement = sqlite.insert(table).values(rows)
    else:
        raise NotImplementedError(f"Upsert is not supported for dialect {dialect_name}")

    written_columns = {key for row in rows for key in row}
    update_columns = {
        column.name: statement.excluded[column.name]
        for column in table.columns
        if column.name in written_columns and column.name not in conflict_columns
    }
    if not update_columns:
        return statement.on_conflict_do_nothing(index_elements=list(conflict_columns))
    return statement.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_=update_columns,
    )


async def batch_upsert(
    session_factory: SessionScopeFactory,
    target: Any,
    rows: Sequence[Mapping[str, Any]],
    conflict_columns: Sequence[str],
    *,
    batch_size: int | None = None,
    continue_on_error: bool = False,
    on_batch_complete: Callable[[int, int, int], None] | None = None,
) -> BatchUpsertResult:
    """Upsert ``rows`` in per-table sized chunks, one transaction per chunk.

    Chunks are independent: when a later chunk fails, earlier chunks stay
    committed. ``on_batch_complete`` receives the one-based chunk index, the
    cumulative written count and the total row count.
    """

    if not rows:
        return BatchUpsertResult()

    table = _as_table(target)
    chunks = chunk_list(
        [dict(row) for row in rows], resolve_batch_size(table.name, batch_size)
    )
    result = BatchUpsertResult(batch_count=len(chunks))

    for index, chunk in enumerate(chunks, start=1):
        try:
            async with session_factory() as session:
                statement = build_upsert_statement(
                    session, table, chunk, conflict_columns
                )
                execution = await session.execute(statement)
        except SQLAlchemyError as error:
            message = f"Batch {index}/{len(chunks)} failed: {error}"
            _batch_logger.error(
                "batch_upsert_chunk_failed",
                extra={
                    "dataset": table.name,
                    "chunk_index": index,
                    "chunk_count": len(chunks),
                    "error": str(error),
                },
            )
            if not continue_on_error:
                raise BatchUpsertError(
                    message, chunk_index=index, chunk_count=len(chunks)
                ) from error
            result.errors.append(message)
            continue

        affected = execution.rowcount
        if affected is None or affected < 0:
            affected = len(chunk)
        result.inserted += affected
        if on_batch_complete is not None:
            on_batch_complete(index, result.inserted, len(rows))

    _batch_logger.info(
        "batch_upsert_completed",
        extra={
            "dataset": table.name,
            "inserted": result.inserted,
            "chunk_count": result.batch_count,
            "count": len(result.errors),
        },
    )
    return result


async def batch_select(
    session_factory: SessionScopeFactory,
    target: Any,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: int = DEFAULT_MAX_PAGES,
    column_filter: ColumnFilter | None = None,
    order_by: ColumnOrder | None = None,
) -> list[Row]:
    """Read rows page by page until a short page or ``max_pages`` is reached."""

    if page_size <= 0:
        raise ValueError("page_size must be greater than zero")

    table = _as_table(target)
    query = select(table)
    if column_filter is not None:
        query = query.where(_filter_clause(table, column_filter))
    if order_by is not None:
        column = table.c[order_by.column]
        query = query.order_by(column.asc() if order_by.ascending else column.desc())

    collected: list[Row] = []
    for page in range(max_pages):
        try:
            async with session_factory() as session:
                page_rows = (
                    await session.execute(
                        query.offset(page * page_size).limit(page_size)
                    )
                ).mappings().all()
        except SQLAlchemyError as error:
            raise BatchSelectError(
                f"Batch select failed at page {page}: {error}", page=page
            ) from error

        collected.extend(dict(row) for row in page_rows)
        if len(page_rows) < page_size:
            break

    return collected


def _filter_clause(table: Table, column_filter: ColumnFilter) -> Any:
    column = table.c[column_filter.column]
    value = column_filter.value
    if column_filter.operator == "eq":
        return column == value
    if column_filter.operator == "gte":
        return column >= value
    if column_filter.operator == "lte":
        return column <= value
    if column_filter.operator == "gt":
        return column > value
    if column_filter.operator == "lt":
        return column < value
    raise ValueError(f"Unsupported filter operator: {column_filter.operator}")


async def batch_process(
    items: Sequence[T],
    fn: Callable[[T, int], Awaitable[R]],
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[R]:
    """Apply ``fn`` to each item, ``concurrency`` at a time, preserving order.

    Each chunk is awaited in full before the next starts. The first failure
    in a chunk propagates after the rest of that chunk has settled; later
    chunks are not started.
    """

    if concurrency <= 0:
        raise ValueError("concurrency must be greater than zero")

    results: list[R] = []
    for chunk_start in range(0, len(items), concurrency):
        chunk = items[chunk_start : chunk_start + concurrency]
        outcomes = await asyncio.gather(
            *(fn(item, chunk_start + offset) for offset, item in enumerate(chunk)),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        results.extend(outcomes)  # type: ignore[arg-type]

    return results


__all__ = [
    "BATCH_SIZES",
    "BatchSelectError",
    "BatchUpsertError",
    "BatchUpsertResult",
    "ColumnFilter",
    "ColumnOrder",
    "DEFAULT_BATCH_SIZE",
    "batch_process",
    "batch_select",
    "batch_upsert",
    "build_upsert_statement",
    "chunk_list",
    "resolve_batch_size",
]
