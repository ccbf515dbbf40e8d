"""Business-day lookups against the stored trading calendar."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jquants_ingest.models import TradingCalendar
from jquants_ingest.utils.dates import market_today

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

BUSINESS_DAY_HOL_DIVS = frozenset({"1", "2"})
DEFAULT_COVERAGE_LOOKBACK_DAYS = 370
DEFAULT_COVERAGE_LOOKAHEAD_DAYS = 370

_calendar_logger = logging.getLogger("jquants_ingest.business_days")


def is_business_day(hol_div: str | None) -> bool:
    """Return True for full ("1") and half ("2") trading sessions.

    Every other code, including ones the upstream API may add later, is
    treated as a non-trading day.
    """

    return hol_div in BUSINESS_DAY_HOL_DIVS


@dataclass(slots=True, frozen=True)
class CalendarCoverage:
    ok: bool
    min_date: date | None
    max_date: date | None
    required_min_date: date
    required_max_date: date


class BusinessDayCalendar:
    """Read-only queries over ``trading_calendar``.

    Lookups degrade to ``None``/``False``/``[]`` on database errors so that a
    calendar outage yields "nothing to do" rather than a crashed job.
    """

    def __init__(
        self,
        *,
        session_factory: SessionScopeFactory | None = None,
        today_factory: Callable[[], date] = market_today,
    ) -> None:
        if session_factory is None:
            from jquants_ingest.database import session_scope

            session_factory = session_scope

        self._session_factory = session_factory
        self._today_factory = today_factory

    def today(self) -> date:
        return self._today_factory()

    async def is_business_day_in_db(self, target_date: date) -> bool:
        try:
            async with self._session_factory() as session:
                hol_div = await session.scalar(
                    select(TradingCalendar.hol_div).where(
                        TradingCalendar.calendar_date == target_date
                    )
                )
        except SQLAlchemyError:
            _calendar_logger.exception(
                "calendar_query_failed", extra={"target_date": target_date}
            )
            return False
        return is_business_day(hol_div)

    async def get_previous_business_day(self, base_date: date) -> date | None:
        return await self._neighbor_business_day(base_date, forward=False)

    async def get_next_business_day(self, base_date: date) -> date | None:
        return await self._neighbor_business_day(base_date, forward=True)

    async def get_business_days(self, date_from: date, date_to: date) -> list[date]:
        """Business days in ``[date_from, date_to]``, ascending."""

        try:
            async with self._session_factory() as session:
                rows = await session.scalars(
                    select(TradingCalendar.calendar_date)
                    .where(
                        TradingCalendar.calendar_date >= date_from,
                        TradingCalendar.calendar_date <= date_to,
                        TradingCalendar.is_business_day.is_(True),
                    )
                    .order_by(TradingCalendar.calendar_date.asc())
                )
                return list(rows.all())
        except SQLAlchemyError:
            _calendar_logger.exception("calendar_query_failed")
            return []

    async def get_business_day_n_days_ago(
        self,
        days: int,
        base_date: date | None = None,
    ) -> date | None:
        """The ``days``-th business day strictly before ``base_date``."""

        if days < 0:
            raise ValueError("days must be zero or greater")
        anchor = base_date or self.today()
        if days == 0:
            return anchor

        recent = await self.get_recent_business_days(anchor, days, inclusive=False)
        if len(recent) < days:
            return None
        return recent[0]

    async def get_recent_business_days(
        self,
        anchor: date,
        count: int,
        *,
        inclusive: bool = True,
    ) -> list[date]:
        """Up to ``count`` business days ending at ``anchor``, ascending."""

        if count <= 0:
            return []
        bound = (
            TradingCalendar.calendar_date <= anchor
            if inclusive
            else TradingCalendar.calendar_date < anchor
        )
        try:
            async with self._session_factory() as session:
                rows = await session.scalars(
                    select(TradingCalendar.calendar_date)
                    .where(bound, TradingCalendar.is_business_day.is_(True))
                    .order_by(TradingCalendar.calendar_date.desc())
                    .limit(count)
                )
                return sorted(rows.all())
        except SQLAlchemyError:
            _calendar_logger.exception(
                "calendar_query_failed", extra={"target_date": anchor}
            )
            return []

    async def get_calendar_max_date(self) -> date | None:
        return await self._calendar_bound(func.max(TradingCalendar.calendar_date))

    async def get_calendar_min_date(self) -> date | None:
        return await self._calendar_bound(func.min(TradingCalendar.calendar_date))

    async def check_calendar_coverage(
        self,
        lookback_days: int = DEFAULT_COVERAGE_LOOKBACK_DAYS,
        lookahead_days: int = DEFAULT_COVERAGE_LOOKAHEAD_DAYS,
    ) -> CalendarCoverage:
        today = self.today()
        required_min_date = today - timedelta(days=lookback_days)
        required_max_date = today + timedelta(days=lookahead_days)
        min_date = await self.get_calendar_min_date()
        max_date = await self.get_calendar_max_date()

        ok = (
            min_date is not None
            and max_date is not None
            and min_date <= required_min_date
            and max_date >= required_max_date
        )
        if not ok:
            _calendar_logger.warning(
                "calendar_coverage_insufficient",
                extra={
                    "min_date": min_date,
                    "max_date": max_date,
                    "required_min_date": required_min_date,
                    "required_max_date": required_max_date,
                },
            )
        return CalendarCoverage(
            ok=ok,
            min_date=min_date,
            max_date=max_date,
            required_min_date=required_min_date,
            required_max_date=required_max_date,
        )

    async def _neighbor_business_day(
        self, base_date: date, *, forward: bool
    ) -> date | None:
        query = select(TradingCalendar.calendar_date).where(
            TradingCalendar.is_business_day.is_(True)
        )
        if forward:
            query = query.where(TradingCalendar.calendar_date > base_date).order_by(
                TradingCalendar.calendar_date.asc()
            )
        else:
            query = query.where(TradingCalendar.calendar_date < base_date).order_by(
                TradingCalendar.calendar_date.desc()
            )
        try:
            async with self._session_factory() as session:
                return await session.scalar(query.limit(1))
        except SQLAlchemyError:
            _calendar_logger.exception(
                "calendar_query_failed", extra={"target_date": base_date}
            )
            return None

    async def _calendar_bound(self, aggregate: object) -> date | None:
        try:
            async with self._session_factory() as session:
                return await session.scalar(
                    select(aggregate)  # type: ignore[call-overload]
                )
        except SQLAlchemyError:
            _calendar_logger.exception("calendar_query_failed")
            return None


__all__ = [
    "BUSINESS_DAY_HOL_DIVS",
    "BusinessDayCalendar",
    "CalendarCoverage",
    "is_business_day",
]
