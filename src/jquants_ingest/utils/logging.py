"""Logging setup: JSON or text output, redaction, job context and request timing."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from time import perf_counter
from typing import Any, Awaitable, Callable

from fastapi import FastAPI, Request
from starlette.responses import Response

from jquants_ingest.config import Settings

REDACTED = "[REDACTED]"

SENSITIVE_FIELD_MARKERS = (
    "secret",
    "token",
    "authorization",
    "api_key",
    "apikey",
)

# Upstream error bodies are logged verbatim and may echo credentials.
_INLINE_SECRET_PATTERN = re.compile(
    r"(?i)(bearer\s+|x-api-key[\"':=\s]+|api_key[\"':=\s]+)[A-Za-z0-9._\-]+"
)

STRUCTURED_FIELDS = (
    "job_name",
    "run_id",
    "dataset",
    "target_date",
    "target_dates",
    "status",
    "endpoint",
    "attempt",
    "max_attempts",
    "status_code",
    "delay_seconds",
    "page",
    "chunk_index",
    "chunk_count",
    "fetched",
    "inserted",
    "count",
    "error",
    "method",
    "path",
    "duration_ms",
    "client_ip",
)

QUIET_PATHS = frozenset({"/health"})

_job_context: ContextVar[dict[str, Any]] = ContextVar("jquants_job_context", default={})


@contextmanager
def job_log_context(**fields: Any) -> Iterator[None]:
    """Attach ``fields`` to every record logged inside the block.

    Nested blocks add to the outer context; the previous context is restored
    on exit.
    """

    merged = {**_job_context.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _job_context.set(merged)
    try:
        yield
    finally:
        _job_context.reset(token)


class JobContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _job_context.get().items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact credentials from dict payloads, extra fields and error text."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, dict):
            record.msg = _redact_payload(record.msg)
        if isinstance(record.args, dict):
            record.args = _redact_payload(record.args)

        for attribute in list(vars(record)):
            if _is_sensitive_key(attribute):
                setattr(record, attribute, REDACTED)

        error = getattr(record, "error", None)
        if isinstance(error, str):
            record.error = redact_text(error)
        return True


def redact_text(value: str) -> str:
    return _INLINE_SECRET_PATTERN.sub(lambda match: match.group(1) + REDACTED, value)


def _redact_payload(payload: dict[str, Any]) -> dict[str, Any]:
    redacted: dict[str, Any] = {}
    for key, value in payload.items():
        if _is_sensitive_key(key):
            redacted[key] = REDACTED
        elif isinstance(value, dict):
            redacted[key] = _redact_payload(value)
        else:
            redacted[key] = value
    return redacted


def _is_sensitive_key(key: str) -> bool:
    key_lower = key.lower()
    return any(marker in key_lower for marker in SENSITIVE_FIELD_MARKERS)


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line, with known ``extra`` fields lifted to the top."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (name, getattr(record, name))
            for name in STRUCTURED_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)


def setup_logging(settings: Settings) -> None:
    """Configure application logging from runtime settings."""

    handler = _build_handler(settings)
    handler.setFormatter(_build_formatter(settings))
    handler.addFilter(JobContextFilter())
    handler.addFilter(SensitiveDataFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL, logging.INFO))
    root_logger.addHandler(handler)

    # httpx logs every request URL at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.captureWarnings(True)


def _build_handler(settings: Settings) -> logging.Handler:
    if settings.LOG_FILE is None:
        return logging.StreamHandler()

    settings.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        filename=settings.LOG_FILE,
        maxBytes=settings.LOG_FILE_MAX_BYTES,
        backupCount=settings.LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )


def _build_formatter(settings: Settings) -> logging.Formatter:
    if settings.LOG_FORMAT == "json":
        return JsonLogFormatter()

    return logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )


def add_request_logging_middleware(app: FastAPI) -> None:
    """Log every request with timing; liveness checks only at DEBUG."""

    logger = logging.getLogger("jquants_ingest.request")

    @app.middleware("http")
    async def log_requests(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started_at = perf_counter()
        fields: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else "unknown",
        }

        try:
            response = await call_next(request)
        except Exception:
            fields["duration_ms"] = round((perf_counter() - started_at) * 1000, 2)
            logger.exception("request_failed", extra={**fields, "status_code": 500})
            raise

        fields["duration_ms"] = round((perf_counter() - started_at) * 1000, 2)
        level = logging.DEBUG if request.url.path in QUIET_PATHS else logging.INFO
        logger.log(
            level,
            "request_completed",
            extra={**fields, "status_code": response.status_code},
        )
        return response


__all__ = [
    "JobContextFilter",
    "JsonLogFormatter",
    "SensitiveDataFilter",
    "add_request_logging_middleware",
    "job_log_context",
    "redact_text",
    "setup_logging",
]
