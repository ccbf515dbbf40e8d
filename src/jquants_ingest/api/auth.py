"""Bearer-secret guard for the cron trigger routes."""

from __future__ import annotations

import hashlib
import hmac
import logging

from fastapi import HTTPException, Request, status

from jquants_ingest.config import Settings, get_settings

SERVER_CONFIGURATION_ERROR = "Server configuration error"
MISSING_AUTHORIZATION_ERROR = "Missing Authorization header"
INVALID_AUTHORIZATION_FORMAT_ERROR = "Invalid Authorization header format"
UNAUTHORIZED_ERROR = "Unauthorized"

_auth_logger = logging.getLogger("jquants_ingest.auth")


def _request_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if isinstance(settings, Settings):
        return settings
    return get_settings()


def _digest(value: str) -> bytes:
    return hashlib.sha256(value.encode("utf-8")).digest()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_cron_secret(request: Request) -> None:
    """Reject the request unless it carries ``Authorization: Bearer <CRON_SECRET>``."""

    settings = _request_settings(request)
    if settings.CRON_SECRET is None:
        _auth_logger.error("cron_secret_not_configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=SERVER_CONFIGURATION_ERROR,
        )

    authorization = request.headers.get("Authorization")
    if not authorization:
        raise _unauthorized(MISSING_AUTHORIZATION_ERROR)

    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise _unauthorized(INVALID_AUTHORIZATION_FORMAT_ERROR)

    expected = _digest(settings.CRON_SECRET.get_secret_value())
    if not hmac.compare_digest(_digest(token), expected):
        _auth_logger.warning(
            "cron_request_unauthorized",
            extra={"path": request.url.path},
        )
        raise _unauthorized(UNAUTHORIZED_ERROR)


__all__ = [
    "INVALID_AUTHORIZATION_FORMAT_ERROR",
    "MISSING_AUTHORIZATION_ERROR",
    "SERVER_CONFIGURATION_ERROR",
    "UNAUTHORIZED_ERROR",
    "require_cron_secret",
]
