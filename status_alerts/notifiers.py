# notifiers: the output layer of the pipeline.

# each notifier receives one batch of Alerts per poll cycle and either
# delivers all of it or raises DeliveryError. All formatting decisions live
# here; Alert stays a pure data container with no display logic.

# to add a new output target, implement a class with:
#     async def notify(self, alerts: Sequence[Alert]) -> None: ...
# and return it from build_notifier() in orchestrator.py.

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

import aiohttp

from status_alerts.config import (
    MAX_RETRIES,
    MAX_RETRY_DELAY_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
    RETRY_BASE_DELAY_SECONDS,
)
from status_alerts.exceptions import DeliveryError
from status_alerts.models import Alert, AlertKind, Severity, format_dt

log = logging.getLogger(__name__)


class Notifier(Protocol):
    async def notify(self, alerts: Sequence[Alert]) -> None: ...


# ─── Console ──────────────────────────────────────────────────────────────────

_R = "\033[0m"   # reset

_SEVERITY_COLOR: dict[Severity, str] = {
    Severity.WARNING: "\033[33m",   # yellow
    Severity.ERROR:   "\033[91m",   # bright red
}


def _ts() -> str:
    """ISO 8601 UTC timestamp, e.g. 2026-02-21T12:39:08Z"""
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _color_severity(severity: Severity) -> str:
    c = _SEVERITY_COLOR.get(severity, "")
    return f"{c}{severity.value.upper()}{_R}" if c else severity.value.upper()


def _format_percentage(value: float | None) -> str:
    if value is None:
        return "N/A"
    return f"{value:g}%"


class ConsoleNotifier:
    """
    Emits one pipe-delimited line per alert to stdout.

    Format:
        [2026-02-21T12:39:08Z] UPTIME | ERROR | Chase (ins_3) | Level=ERROR | Uptime=80%
        [2026-02-21T12:39:08Z] TIMELINE | WARNING | Degraded logins | Since=2026-02-21 12:30:00 UTC | Elevated error rates...
    """

    _MAX_MSG_LEN = 120

    async def notify(self, alerts: Sequence[Alert]) -> None:
        for alert in alerts:
            print(self._format(alert), flush=True)

    def _format(self, a: Alert) -> str:
        head = f"[{_ts()}] {a.kind.value.upper()} | {_color_severity(a.severity)} | "
        if a.kind is AlertKind.UPTIME:
            level = a.level.value.upper() if a.level else "N/A"
            return (
                head
                + f"{a.title} ({a.institution}) | "
                + f"Level={level} | "
                + f"Uptime={_format_percentage(a.percentage)}"
            )
        return (
            head
            + f"{a.title} | "
            + f"Since={format_dt(a.activated_at)} | "
            + self._truncate(a.message)
        )

    def _truncate(self, text: str) -> str:
        text = " ".join(text.split())
        if len(text) <= self._MAX_MSG_LEN:
            return text
        return text[: self._MAX_MSG_LEN - 1].rstrip() + "…"


# ─── Slack ────────────────────────────────────────────────────────────────────

# Slack attachment colours keyed by severity.
_SLACK_COLORS: dict[Severity, str] = {
    Severity.WARNING: "warning",
    Severity.ERROR: "danger",
}


def format_slack_attachment(alert: Alert) -> dict[str, Any]:
    """Render one alert as a Slack attachment with mrkdwn text."""
    if alert.kind is AlertKind.UPTIME:
        level = alert.level.value if alert.level else "unknown"
        text = (
            f"Bank: *{alert.title}*\n"
            f"Alert-level: *{level}*\n"
            f"Uptime: *{_format_percentage(alert.percentage)}*"
        )
    else:
        text = f"*{alert.title}*"
        if alert.message:
            text += f"\n{alert.message}"
        if alert.activated_at is not None:
            text += f"\nActivated: {format_dt(alert.activated_at)}"
    return {
        "text": text,
        "color": _SLACK_COLORS.get(alert.severity, "warning"),
        "mrkdwn_in": ["text"],
    }


class _RetryableDelivery(Exception):
    """Slack definitely did not accept the message; safe to send again."""


class SlackNotifier:
    """
    Posts alert batches to a Slack incoming webhook.

    One cycle's alerts go out as a single message with one attachment per
    alert, split into chunks of MAX_ATTACHMENTS. A failed POST is retried
    only when Slack rejected it outright (429 / 5xx) or the connection was
    never established; a timeout is not retried because the message may
    already have been posted.

    Backoff formula: delay = retry_base_delay * 2^attempt, capped at max_retry_delay.
    """

    MAX_ATTACHMENTS = 20

    def __init__(
        self,
        session: aiohttp.ClientSession,
        webhook_url: str,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        max_retries: int = MAX_RETRIES,
        retry_base_delay: float = RETRY_BASE_DELAY_SECONDS,
        max_retry_delay: float = MAX_RETRY_DELAY_SECONDS,
    ) -> None:
        self._session = session
        self._webhook_url = webhook_url
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._max_retry_delay = max_retry_delay

    async def notify(self, alerts: Sequence[Alert]) -> None:
        attachments = [format_slack_attachment(a) for a in alerts]
        sent = 0
        for start in range(0, len(attachments), self.MAX_ATTACHMENTS):
            chunk = attachments[start : start + self.MAX_ATTACHMENTS]
            try:
                await self._post_with_retry({"attachments": chunk})
            except DeliveryError as exc:
                if sent:
                    raise DeliveryError(
                        f"{exc} ({sent} of {len(attachments)} alert(s) were delivered)"
                    ) from exc
                raise
            sent += len(chunk)
        log.info("Delivered %d alert(s) to Slack", sent)

    async def _post_with_retry(self, payload: dict[str, Any]) -> None:
        attempt = 0
        while True:
            try:
                await self._post(payload)
                return
            except _RetryableDelivery as exc:
                if attempt >= self._max_retries:
                    raise DeliveryError(f"Slack webhook failed after {attempt + 1} attempt(s): {exc}") from exc
                delay = min(self._retry_base_delay * (2 ** attempt), self._max_retry_delay)
                attempt += 1
                log.warning(
                    "Slack delivery failed (%s). Retry %d/%d in %.1fs.",
                    exc, attempt, self._max_retries, delay,
                )
                await asyncio.sleep(delay)

    async def _post(self, payload: dict[str, Any]) -> None:
        try:
            async with self._session.post(
                self._webhook_url, json=payload, timeout=self._timeout,
            ) as resp:
                if 200 <= resp.status < 300:
                    return
                body = (await resp.text(errors="replace"))[:200]
                if resp.status == 429 or resp.status >= 500:
                    raise _RetryableDelivery(f"HTTP {resp.status}: {body}")
                raise DeliveryError(f"Slack webhook rejected message: HTTP {resp.status}: {body}")
        except aiohttp.ClientConnectorError as exc:
            raise _RetryableDelivery(f"cannot connect: {exc}") from exc
        except aiohttp.ClientError as exc:
            raise DeliveryError(f"Slack webhook request failed: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise DeliveryError("Slack webhook request timed out") from exc
