"""Service layer for J-Quants ingestion."""

from jquants_ingest import __version__
from jquants_ingest.services.batch_writer import (
    BatchSelectError,
    BatchUpsertError,
    BatchUpsertResult,
    batch_process,
    batch_select,
    batch_upsert,
    chunk_list,
)
from jquants_ingest.services.business_days import BusinessDayCalendar
from jquants_ingest.services.catch_up import CatchUpPlanner
from jquants_ingest.services.heartbeat import HeartbeatService, is_job_healthy
from jquants_ingest.services.job_lock import JobLockService, LockAcquireResult
from jquants_ingest.services.job_runs import (
    JobLedgerError,
    JobRunLedger,
    StartJobRunResult,
)
from jquants_ingest.services.jquants_client import JQuantsClient
from jquants_ingest.services.jquants_errors import (
    JQuantsAPIError,
    JQuantsConfigurationError,
    NonRetryableAPIError,
    RetryableAPIError,
)
from jquants_ingest.services.rate_limiter import TokenBucketRateLimiter

__all__ = [
    "BatchSelectError",
    "BatchUpsertError",
    "BatchUpsertResult",
    "BusinessDayCalendar",
    "CatchUpPlanner",
    "HeartbeatService",
    "JQuantsAPIError",
    "JQuantsClient",
    "JQuantsConfigurationError",
    "JobLedgerError",
    "JobLockService",
    "JobRunLedger",
    "LockAcquireResult",
    "NonRetryableAPIError",
    "RetryableAPIError",
    "StartJobRunResult",
    "TokenBucketRateLimiter",
    "__version__",
    "batch_process",
    "batch_select",
    "batch_upsert",
    "chunk_list",
    "is_job_healthy",
]
