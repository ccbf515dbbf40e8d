"""API package exports."""

from jquants_ingest import __version__
from jquants_ingest.api.cron import router as cron_router
from jquants_ingest.api.health import router as health_router

__all__ = ["__version__", "cron_router", "health_router"]
