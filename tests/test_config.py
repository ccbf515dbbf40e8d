"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from jquants_ingest.config import Settings


def test_plan_determines_requests_per_minute() -> None:
    assert Settings(_env_file=None, JQUANTS_PLAN="free").jquants_requests_per_minute == 5
    assert Settings(_env_file=None).jquants_requests_per_minute == 60
    assert (
        Settings(
            _env_file=None, JQUANTS_PLAN="premium", JQUANTS_RATE_LIMIT_PER_MINUTE=30
        ).jquants_requests_per_minute
        == 30
    )


def test_blank_secrets_are_treated_as_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CRON_SECRET", "  ")
    monkeypatch.setenv("JQUANTS_API_KEY", "")
    monkeypatch.setenv("RESEND_API_KEY", "re_live")

    settings = Settings(_env_file=None)

    assert settings.CRON_SECRET is None
    assert settings.JQUANTS_API_KEY is None
    assert settings.RESEND_API_KEY is not None
    assert settings.RESEND_API_KEY.get_secret_value() == "re_live"
    assert "re_live" not in repr(settings)


@pytest.mark.parametrize(
    "overrides",
    [
        {"CATCH_UP_MAX_DAYS": 0},
        {"JOB_LOCK_TTL_SECONDS": 0},
        {"CONSECUTIVE_FAILURE_ALERT_THRESHOLD": 1},
        {"JQUANTS_PLAN": "unlimited"},
    ],
)
def test_out_of_range_values_are_rejected(overrides: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_development_flag() -> None:
    assert Settings(_env_file=None, ENVIRONMENT="development").is_development is True
    assert Settings(_env_file=None).is_development is False
