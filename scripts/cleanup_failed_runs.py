"""Delete failed job runs so their target dates are picked up again."""

from __future__ import annotations

import argparse
import asyncio

from jquants_ingest.database import close_database
from jquants_ingest.models import JobName
from jquants_ingest.services.job_runs import JobRunLedger
from jquants_ingest.utils.dates import parse_api_date


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "job_name",
        choices=[job.value for job in JobName],
        help="Job whose failed runs are removed",
    )
    parser.add_argument(
        "--target-date",
        type=parse_api_date,
        default=None,
        help="Only remove the failed run for this date (YYYY-MM-DD)",
    )
    return parser.parse_args()


async def main() -> None:
    args = _parse_args()
    ledger = JobRunLedger()
    try:
        deleted = await ledger.delete_failed_job_runs(args.job_name, args.target_date)
    finally:
        await close_database()

    scope = args.target_date.isoformat() if args.target_date else "all dates"
    print(f"Deleted {deleted} failed {args.job_name} run(s) for {scope}")


if __name__ == "__main__":
    asyncio.run(main())
