import os
from dataclasses import dataclass
from typing import Mapping

from status_alerts.exceptions import ConfigError

POLL_INTERVAL_SECONDS: float = 30
REQUEST_TIMEOUT_SECONDS: float = 10
NOTIFY_TIMEOUT_SECONDS: float = 30   # whole batch, retries included
SHUTDOWN_GRACE_SECONDS: float = 15
MAX_RETRIES: int = 2
RETRY_BASE_DELAY_SECONDS: float = 1   # delay = base * 2^n, capped at MAX_RETRY_DELAY_SECONDS
MAX_RETRY_DELAY_SECONDS: float = 10

STATUS_HOST: str = "https://status.plaid.com"
UPTIME_PATH: str = "/institutions/uptime"
TIMELINE_PATH: str = "/issues/timeline"

STATE_FILE: str = ".status_alerts_state.json"
LOG_LEVEL: str = "INFO"


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _env_str(env: Mapping[str, str], name: str, default: str) -> str:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


@dataclass(frozen=True)
class Settings:
    poll_interval: float = POLL_INTERVAL_SECONDS
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    notify_timeout: float = NOTIFY_TIMEOUT_SECONDS
    shutdown_grace: float = SHUTDOWN_GRACE_SECONDS
    status_host: str = STATUS_HOST
    slack_webhook_url: str | None = None   # None → alerts go to the console
    state_file: str = STATE_FILE
    log_level: str = LOG_LEVEL

    @property
    def uptime_url(self) -> str:
        return f"{self.status_host.rstrip('/')}{UPTIME_PATH}"

    @property
    def timeline_url(self) -> str:
        return f"{self.status_host.rstrip('/')}{TIMELINE_PATH}"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables, falling back to module defaults."""
        env = os.environ if env is None else env
        webhook = env.get("SLACK_WEBHOOK_URL", "").strip() or None
        return cls(
            poll_interval=_env_float(env, "STATUS_POLL_INTERVAL", POLL_INTERVAL_SECONDS),
            request_timeout=_env_float(env, "STATUS_REQUEST_TIMEOUT", REQUEST_TIMEOUT_SECONDS),
            notify_timeout=_env_float(env, "STATUS_NOTIFY_TIMEOUT", NOTIFY_TIMEOUT_SECONDS),
            shutdown_grace=_env_float(env, "STATUS_SHUTDOWN_GRACE", SHUTDOWN_GRACE_SECONDS),
            status_host=_env_str(env, "STATUS_HOST", STATUS_HOST),
            slack_webhook_url=webhook,
            state_file=_env_str(env, "STATUS_STATE_FILE", STATE_FILE),
            log_level=_env_str(env, "LOG_LEVEL", LOG_LEVEL).upper(),
        )
