"""Determine which target dates a job still has to process."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum

from jquants_ingest.models import JobName
from jquants_ingest.services.business_days import BusinessDayCalendar
from jquants_ingest.services.job_runs import JobRunLedger

DEFAULT_MAX_CATCH_UP_DAYS = 5

_catch_up_logger = logging.getLogger("jquants_ingest.catch_up")


class TargetDateDirection(str, Enum):
    PREVIOUS_BUSINESS_DAY = "previous"
    NEXT_BUSINESS_DAY = "next"


@dataclass(slots=True, frozen=True)
class TargetDatePolicy:
    """Which business day a job targets and how far back it may catch up.

    ``window`` of ``None`` uses the planner's configured maximum.
    """

    direction: TargetDateDirection
    window: int | None = None


# Job B consumes the upstream's next-business-day earnings calendar, which is
# only ever published for one date, so it has nothing to catch up.
JOB_TARGET_POLICIES: dict[str, TargetDatePolicy] = {
    JobName.CRON_A.value: TargetDatePolicy(TargetDateDirection.PREVIOUS_BUSINESS_DAY),
    JobName.CRON_B.value: TargetDatePolicy(
        TargetDateDirection.NEXT_BUSINESS_DAY, window=1
    ),
}


class CatchUpPlanner:
    """Compute outstanding target dates from the calendar and the ledger."""

    def __init__(
        self,
        *,
        calendar: BusinessDayCalendar,
        ledger: JobRunLedger,
        max_catch_up_days: int = DEFAULT_MAX_CATCH_UP_DAYS,
        policies: dict[str, TargetDatePolicy] | None = None,
    ) -> None:
        if max_catch_up_days <= 0:
            raise ValueError("max_catch_up_days must be greater than zero")

        self._calendar = calendar
        self._ledger = ledger
        self._max_catch_up_days = max_catch_up_days
        self._policies = policies if policies is not None else JOB_TARGET_POLICIES

    def policy_for(self, job_name: str) -> TargetDatePolicy:
        policy = self._policies.get(job_name)
        if policy is None:
            raise ValueError(f"Job {job_name} does not operate on target dates")
        return policy

    async def resolve_anchor_date(self, job_name: str) -> date | None:
        """The most recent eligible business day for ``job_name``."""

        policy = self.policy_for(job_name)
        today = self._calendar.today()
        if policy.direction is TargetDateDirection.NEXT_BUSINESS_DAY:
            return await self._calendar.get_next_business_day(today)
        return await self._calendar.get_previous_business_day(today)

    async def determine_target_dates(self, job_name: str) -> list[date]:
        """Business days in the catch-up window without a successful run.

        Dates are returned oldest first. The window ends at the anchor date
        (previous business day for backward-looking jobs) and spans at most
        the configured number of business days. Dates that already succeeded
        are skipped wherever they fall in the window.
        """

        policy = self.policy_for(job_name)
        limit = self._max_catch_up_days
        window = min(policy.window or limit, limit)
        anchor = await self.resolve_anchor_date(job_name)
        if anchor is None:
            _catch_up_logger.warning(
                "catch_up_anchor_not_found",
                extra={"job_name": job_name, "target_date": self._calendar.today()},
            )
            return []

        if policy.direction is TargetDateDirection.NEXT_BUSINESS_DAY:
            candidates = [anchor]
            if window > 1:
                candidates = await self._forward_candidates(anchor, window)
        else:
            candidates = await self._calendar.get_recent_business_days(anchor, window)

        completed = await self._ledger.get_successful_target_dates(job_name, candidates)
        target_dates = [day for day in candidates if day not in completed]
        _catch_up_logger.info(
            "catch_up_target_dates_determined",
            extra={
                "job_name": job_name,
                "target_dates": [target.isoformat() for target in target_dates],
                "count": len(candidates),
            },
        )
        return target_dates

    async def _forward_candidates(self, anchor: date, window: int) -> list[date]:
        candidates = [anchor]
        cursor = anchor
        while len(candidates) < window:
            following = await self._calendar.get_next_business_day(cursor)
            if following is None:
                break
            candidates.append(following)
            cursor = following
        return candidates


__all__ = [
    "CatchUpPlanner",
    "DEFAULT_MAX_CATCH_UP_DAYS",
    "JOB_TARGET_POLICIES",
    "TargetDateDirection",
    "TargetDatePolicy",
]
