"""Utilities for shared application concerns."""

from jquants_ingest import __version__
from jquants_ingest.utils.logging import (
    add_request_logging_middleware,
    setup_logging,
)

__all__ = ["__version__", "add_request_logging_middleware", "setup_logging"]
