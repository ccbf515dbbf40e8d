"""String helpers for bounded-length persistence."""

from __future__ import annotations

JOB_RUN_ERROR_MAX_LENGTH = 10_000
JOB_RUN_TRUNCATION_MARKER = "... (truncated)"
HEARTBEAT_ERROR_MAX_LENGTH = 1_000
HEARTBEAT_TRUNCATION_MARKER = "..."


def truncate(value: str | None, max_length: int, marker: str) -> str | None:
    """Cut ``value`` to ``max_length`` characters and append ``marker`` when cut."""

    if value is None:
        return None
    if max_length < 0:
        raise ValueError("max_length must be zero or greater")
    if len(value) <= max_length:
        return value
    return value[:max_length] + marker


__all__ = [
    "HEARTBEAT_ERROR_MAX_LENGTH",
    "HEARTBEAT_TRUNCATION_MARKER",
    "JOB_RUN_ERROR_MAX_LENGTH",
    "JOB_RUN_TRUNCATION_MARKER",
    "truncate",
]
