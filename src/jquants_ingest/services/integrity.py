"""Post-ingest freshness checks over the stored market data."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jquants_ingest.models import EquityBarDaily, TopixBarDaily
from jquants_ingest.services.business_days import BusinessDayCalendar

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

_integrity_logger = logging.getLogger("jquants_ingest.integrity")


@dataclass(slots=True)
class IntegrityCheckResult:
    expected_date: date | None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings


async def run_integrity_check(
    session_factory: SessionScopeFactory,
    calendar: BusinessDayCalendar,
) -> IntegrityCheckResult:
    """Check daily tables reach the previous business day and calendar coverage."""

    expected_date = await calendar.get_previous_business_day(calendar.today())
    result = IntegrityCheckResult(expected_date=expected_date)

    coverage = await calendar.check_calendar_coverage()
    if not coverage.ok:
        result.warnings.append(
            "Trading calendar coverage insufficient: "
            f"{coverage.min_date} to {coverage.max_date}, required "
            f"{coverage.required_min_date} to {coverage.required_max_date}"
        )

    if expected_date is None:
        result.warnings.append("Previous business day could not be determined")
        return result

    for label, column in (
        ("equity_bar_daily", EquityBarDaily.trade_date),
        ("topix_bar_daily", TopixBarDaily.trade_date),
    ):
        try:
            async with session_factory() as session:
                latest = await session.scalar(select(func.max(column)))
        except SQLAlchemyError as error:
            result.warnings.append(f"{label}: query failed: {error}")
            continue
        if latest is None:
            result.warnings.append(f"{label}: no rows stored")
        elif latest < expected_date:
            result.warnings.append(
                f"{label}: latest trade date {latest} is behind {expected_date}"
            )

    if result.warnings:
        _integrity_logger.warning(
            "integrity_check_warnings",
            extra={"target_date": expected_date, "count": len(result.warnings)},
        )
    return result


__all__ = ["IntegrityCheckResult", "run_integrity_check"]
