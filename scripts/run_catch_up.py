"""Run the daily market-data catch-up for job A without going through HTTP."""

from __future__ import annotations

import asyncio
import json
import sys

from jquants_ingest.bootstrap import build_services
from jquants_ingest.config import get_settings
from jquants_ingest.database import close_database, initialize_database
from jquants_ingest.services.job_runner import CRON_A_DATASET_DAILY, JobOutcomeStatus
from jquants_ingest.utils.logging import setup_logging


async def main() -> int:
    settings = get_settings()
    setup_logging(settings)
    await initialize_database()
    services = build_services(settings)
    try:
        outcome = await services.runner.run_cron_a(CRON_A_DATASET_DAILY)
    finally:
        await services.aclose()
        await close_database()

    print(json.dumps(outcome.as_dict(), ensure_ascii=False, indent=2))
    if outcome.status in {JobOutcomeStatus.FAILED, JobOutcomeStatus.ERROR}:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
