"""Application settings loaded from environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

JQUANTS_PLAN_REQUESTS_PER_MINUTE: dict[str, int] = {
    "free": 5,
    "light": 60,
    "standard": 120,
    "premium": 500,
}


class Settings(BaseSettings):
    """Runtime configuration sourced from environment variables and .env."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    DATABASE_URL: str = "sqlite+aiosqlite:///./data/jquants_ingest.db"
    ENVIRONMENT: Literal["development", "production"] = "production"
    HOST: str = "0.0.0.0"
    PORT: int = Field(default=8000, ge=1, le=65535)
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "text"
    LOG_FILE: Path | None = None
    LOG_FILE_MAX_BYTES: int = Field(default=10_485_760, ge=1)
    LOG_FILE_BACKUP_COUNT: int = Field(default=5, ge=1)

    CRON_SECRET: SecretStr | None = None

    JQUANTS_API_KEY: SecretStr | None = None
    JQUANTS_BASE_URL: str = "https://api.jquants.com/v2"
    JQUANTS_PLAN: Literal["free", "light", "standard", "premium"] = "light"
    JQUANTS_RATE_LIMIT_PER_MINUTE: int | None = Field(default=None, ge=1)
    JQUANTS_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    JQUANTS_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    JQUANTS_RETRY_BASE_DELAY_SECONDS: float = Field(default=1.0, ge=0)
    JQUANTS_RETRY_MAX_DELAY_SECONDS: float = Field(default=30.0, ge=0)

    JOB_LOCK_TTL_SECONDS: int = Field(default=60, ge=1)
    CATCH_UP_MAX_DAYS: int = Field(default=5, ge=1, le=31)
    HEARTBEAT_STALE_HOURS: float = Field(default=25, gt=0)
    JOB_RUN_STALE_AFTER_MINUTES: int = Field(default=60, ge=1)
    CALENDAR_SYNC_LOOKBACK_DAYS: int = Field(default=370, ge=0, le=3650)
    CALENDAR_SYNC_LOOKAHEAD_DAYS: int = Field(default=370, ge=0, le=3650)
    INVESTOR_TYPES_WINDOW_DAYS: int = Field(default=60, ge=1, le=365)

    SCHEDULER_ENABLED: bool = True
    SCHEDULER_JOBSTORE_URL: str = "sqlite:///./scheduler-jobs.sqlite"
    SCHEDULER_TIMEZONE: str = "Asia/Tokyo"
    SCHEDULER_CRON_A_CALENDAR: str = "0 18 * * *"
    SCHEDULER_CRON_A_DAILY: str = "30 18 * * 1-5"
    SCHEDULER_CRON_B: str = "0 19 * * 1-5"
    SCHEDULER_CRON_C: str = "0 20 * * 4"

    RESEND_API_KEY: SecretStr | None = None
    ALERT_EMAIL_FROM: str | None = None
    ALERT_EMAIL_TO: str | None = None
    NOTIFY_ON_SUCCESS: bool = False
    CONSECUTIVE_FAILURE_ALERT_THRESHOLD: int = Field(default=3, ge=2)

    @field_validator("LOG_FILE", mode="before")
    @classmethod
    def parse_log_file(cls, value: object) -> object:
        if value in (None, ""):
            return None
        return value

    @field_validator("CRON_SECRET", "JQUANTS_API_KEY", "RESEND_API_KEY", mode="before")
    @classmethod
    def parse_optional_secret(cls, value: object) -> object:
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @property
    def jquants_requests_per_minute(self) -> int:
        if self.JQUANTS_RATE_LIMIT_PER_MINUTE is not None:
            return self.JQUANTS_RATE_LIMIT_PER_MINUTE
        return JQUANTS_PLAN_REQUESTS_PER_MINUTE[self.JQUANTS_PLAN]

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()
