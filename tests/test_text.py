"""Tests for bounded-length error text."""

from __future__ import annotations

import pytest

from jquants_ingest.utils.text import (
    HEARTBEAT_ERROR_MAX_LENGTH,
    JOB_RUN_ERROR_MAX_LENGTH,
    JOB_RUN_TRUNCATION_MARKER,
    truncate,
)


def test_error_caps_for_ledger_and_heartbeat() -> None:
    assert JOB_RUN_ERROR_MAX_LENGTH == 10_000
    assert HEARTBEAT_ERROR_MAX_LENGTH == 1_000


def test_truncate_appends_marker_only_when_cut() -> None:
    long_error = "x" * (JOB_RUN_ERROR_MAX_LENGTH + 1)

    assert truncate(long_error, JOB_RUN_ERROR_MAX_LENGTH, "...") == (
        "x" * JOB_RUN_ERROR_MAX_LENGTH + "..."
    )
    assert truncate("short", JOB_RUN_ERROR_MAX_LENGTH, "...") == "short"
    assert truncate(None, 10, JOB_RUN_TRUNCATION_MARKER) is None


def test_truncate_rejects_negative_length() -> None:
    with pytest.raises(ValueError, match="zero or greater"):
        truncate("value", -1, "...")
