"""Lease-based distributed job lock backed by the ``job_locks`` table."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jquants_ingest.models import JobLock
from jquants_ingest.utils.dates import as_utc, utc_now

SessionScopeFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

DEFAULT_LOCK_TTL_SECONDS = 600
LOCK_HELD_ERROR = "Lock already held by another process"
LOCK_RACE_ERROR = "Failed to acquire lock (race condition)"

_lock_logger = logging.getLogger("jquants_ingest.job_lock")


@dataclass(slots=True, frozen=True)
class LockAcquireResult:
    success: bool
    token: str | None = None
    error: str | None = None


class JobLockService:
    """Acquire, extend and release per-job leases.

    A lock is held while ``locked_until`` is in the future. Re-acquiring an
    expired lock is an optimistic conditional update guarded by the
    previously read ``locked_until``; losing that race is reported as a
    distinct error rather than retried.
    """

    def __init__(
        self,
        *,
        session_factory: SessionScopeFactory | None = None,
        now_factory: Callable[[], datetime] = utc_now,
    ) -> None:
        if session_factory is None:
            from jquants_ingest.database import session_scope

            session_factory = session_scope

        self._session_factory = session_factory
        self._now_factory = now_factory

    async def acquire_lock(
        self,
        job_name: str,
        ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
    ) -> LockAcquireResult:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be greater than zero")

        now = self._now_factory()
        locked_until = now + timedelta(seconds=ttl_seconds)
        token = str(uuid4())

        try:
            async with self._session_factory() as session:
                existing = await session.get(JobLock, job_name)
                if existing is None:
                    session.add(
                        JobLock(
                            job_name=job_name,
                            locked_until=locked_until,
                            lock_token=token,
                        )
                    )
                    await session.flush()
                elif as_utc(existing.locked_until) > as_utc(now):
                    _lock_logger.info(
                        "job_lock_already_held",
                        extra={
                            "job_name": job_name,
                            "locked_until": as_utc(existing.locked_until).isoformat(),
                        },
                    )
                    return LockAcquireResult(success=False, error=LOCK_HELD_ERROR)
                else:
                    previous_locked_until = existing.locked_until
                    session.expunge(existing)
                    updated = await session.execute(
                        update(JobLock)
                        .where(
                            JobLock.job_name == job_name,
                            JobLock.locked_until == previous_locked_until,
                        )
                        .values(locked_until=locked_until, lock_token=token)
                        .execution_options(synchronize_session=False)
                    )
                    if updated.rowcount == 0:
                        _lock_logger.warning(
                            "job_lock_race_lost", extra={"job_name": job_name}
                        )
                        return LockAcquireResult(success=False, error=LOCK_RACE_ERROR)
        except IntegrityError:
            # A concurrent acquirer inserted the row first.
            _lock_logger.info("job_lock_already_held", extra={"job_name": job_name})
            return LockAcquireResult(success=False, error=LOCK_HELD_ERROR)
        except SQLAlchemyError as error:
            _lock_logger.exception("job_lock_acquire_failed", extra={"job_name": job_name})
            return LockAcquireResult(success=False, error=str(error))

        _lock_logger.info(
            "job_lock_acquired",
            extra={"job_name": job_name, "locked_until": locked_until.isoformat()},
        )
        return LockAcquireResult(success=True, token=token)

    async def release_lock(self, job_name: str, token: str) -> None:
        """Delete the lock row only when ``token`` matches; never raises."""

        try:
            async with self._session_factory() as session:
                deleted = await session.execute(
                    delete(JobLock).where(
                        JobLock.job_name == job_name,
                        JobLock.lock_token == token,
                    )
                )
        except SQLAlchemyError:
            _lock_logger.exception("job_lock_release_failed", extra={"job_name": job_name})
            return

        _lock_logger.info(
            "job_lock_released",
            extra={"job_name": job_name, "count": deleted.rowcount},
        )

    async def extend_lock(
        self,
        job_name: str,
        token: str,
        ttl_seconds: int = DEFAULT_LOCK_TTL_SECONDS,
    ) -> bool:
        locked_until = self._now_factory() + timedelta(seconds=ttl_seconds)
        try:
            async with self._session_factory() as session:
                updated = await session.execute(
                    update(JobLock)
                    .where(JobLock.job_name == job_name, JobLock.lock_token == token)
                    .values(locked_until=locked_until)
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError:
            _lock_logger.exception("job_lock_extend_failed", extra={"job_name": job_name})
            return False

        return bool(updated.rowcount)

    async def cleanup_expired_locks(self) -> int:
        try:
            async with self._session_factory() as session:
                deleted = await session.execute(
                    delete(JobLock).where(JobLock.locked_until < self._now_factory())
                )
        except SQLAlchemyError:
            _lock_logger.exception("job_lock_cleanup_failed")
            return 0

        count = int(deleted.rowcount or 0)
        if count:
            _lock_logger.info("job_locks_expired_removed", extra={"count": count})
        return count

    async def get_lock(self, job_name: str) -> JobLock | None:
        async with self._session_factory() as session:
            return await session.scalar(
                select(JobLock).where(JobLock.job_name == job_name)
            )


__all__ = [
    "DEFAULT_LOCK_TTL_SECONDS",
    "JobLockService",
    "LOCK_HELD_ERROR",
    "LOCK_RACE_ERROR",
    "LockAcquireResult",
]
