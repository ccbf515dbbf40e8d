"""Best-effort job e-mail notifications sent through the Resend HTTP API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Final
from uuid import UUID

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from jquants_ingest.config import Settings
from jquants_ingest.utils.dates import MARKET_TIMEZONE, as_utc, utc_now

RESEND_API_URL: Final[str] = "https://api.resend.com/emails"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 10.0
TEMPLATES_DIRECTORY = Path(__file__).resolve().parents[1] / "templates"

_notification_logger = logging.getLogger("jquants_ingest.notifications")


@dataclass(slots=True, frozen=True)
class JobNotification:
    job_name: str
    run_id: UUID | None = None
    target_date: date | None = None
    dataset: str | None = None
    error: str | None = None
    fetched: int = 0
    inserted: int = 0
    finished_at: datetime | None = None


def build_template_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(TEMPLATES_DIRECTORY),
        autoescape=select_autoescape(["html"]),
    )


class JobNotifier:
    """Render and send job notifications; failures are logged, never raised."""

    def __init__(
        self,
        *,
        api_key: str | None,
        email_from: str | None,
        email_to: str | None,
        notify_on_success: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
        environment: Environment | None = None,
    ) -> None:
        self._api_key = api_key
        self._email_from = email_from
        self._recipients = [
            address.strip()
            for address in (email_to or "").split(",")
            if address.strip()
        ]
        self._notify_on_success = notify_on_success
        self._transport = transport
        self._environment = environment or build_template_environment()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> JobNotifier:
        return cls(
            api_key=(
                settings.RESEND_API_KEY.get_secret_value()
                if settings.RESEND_API_KEY is not None
                else None
            ),
            email_from=settings.ALERT_EMAIL_FROM,
            email_to=settings.ALERT_EMAIL_TO,
            notify_on_success=settings.NOTIFY_ON_SUCCESS,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key and self._email_from and self._recipients)

    def render(self, template_name: str, **context: Any) -> str:
        return self._environment.get_template(template_name).render(**context)

    async def send_job_failure(self, notification: JobNotification) -> bool:
        subject = f"[J-Quants ingest] {notification.job_name} failed"
        if notification.target_date is not None:
            subject += f" ({notification.target_date.isoformat()})"
        return await self._send(
            subject,
            "notifications/job_failure.html",
            notification=notification,
            finished_at=_display_time(notification.finished_at),
        )

    async def send_job_success(self, notification: JobNotification) -> bool:
        if not self._notify_on_success:
            return False
        subject = f"[J-Quants ingest] {notification.job_name} succeeded"
        if notification.target_date is not None:
            subject += f" ({notification.target_date.isoformat()})"
        return await self._send(
            subject,
            "notifications/job_success.html",
            notification=notification,
            finished_at=_display_time(notification.finished_at),
        )

    async def send_consecutive_failure_alert(
        self,
        job_name: str,
        failure_count: int,
        latest_error: str | None,
    ) -> bool:
        return await self._send(
            f"[J-Quants ingest] {job_name} failed {failure_count} times in a row",
            "notifications/consecutive_failures.html",
            job_name=job_name,
            failure_count=failure_count,
            latest_error=latest_error,
        )

    async def _send(self, subject: str, template_name: str, **context: Any) -> bool:
        if not self.configured:
            _notification_logger.info(
                "notification_skipped_not_configured", extra={"path": template_name}
            )
            return False

        try:
            html = self.render(template_name, **context)
            async with httpx.AsyncClient(
                timeout=DEFAULT_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = await client.post(
                    RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={
                        "from": self._email_from,
                        "to": self._recipients,
                        "subject": subject,
                        "html": html,
                    },
                )
                response.raise_for_status()
        except Exception:
            _notification_logger.exception(
                "notification_send_failed", extra={"path": template_name}
            )
            return False

        _notification_logger.info(
            "notification_sent",
            extra={"path": template_name, "status_code": response.status_code},
        )
        return True


def _display_time(value: datetime | None) -> str:
    moment = as_utc(value or utc_now()).astimezone(MARKET_TIMEZONE)
    return moment.strftime("%Y-%m-%d %H:%M:%S JST")


__all__ = [
    "JobNotification",
    "JobNotifier",
    "RESEND_API_URL",
    "build_template_environment",
]
