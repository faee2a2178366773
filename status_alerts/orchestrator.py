# StatusMonitor: the top-level orchestrator.

# Responsibilities:
#   - Create the shared aiohttp session and connection pool
#   - Wire fetcher, notifier and snapshot store into a PollLoop
#   - Provide a clean stop() method for graceful shutdown

import logging

import aiohttp

from status_alerts.config import Settings
from status_alerts.fetcher import StatusFeedFetcher
from status_alerts.http_client import ConditionalHTTPClient
from status_alerts.notifiers import ConsoleNotifier, Notifier, SlackNotifier
from status_alerts.poller import PollLoop
from status_alerts.store import JsonFileStore

log = logging.getLogger(__name__)

USER_AGENT = "StatusAlerts/1.0 (institution-status-alerts)"


def build_notifier(settings: Settings, session: aiohttp.ClientSession) -> Notifier:
    if settings.slack_webhook_url:
        return SlackNotifier(session, settings.slack_webhook_url, timeout=settings.request_timeout)
    log.warning("SLACK_WEBHOOK_URL is not set; alerts will be printed to stdout")
    return ConsoleNotifier()


class StatusMonitor:

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._loop: PollLoop | None = None
        self._stop_requested = False

    async def run(self) -> None:
        s = self._settings
        connector = aiohttp.TCPConnector(limit=10)
        async with aiohttp.ClientSession(
            connector=connector,
            headers={"User-Agent": USER_AGENT},
        ) as session:

            fetcher = StatusFeedFetcher(
                ConditionalHTTPClient(session, timeout=s.request_timeout),
                uptime_url=s.uptime_url,
                timeline_url=s.timeline_url,
            )
            self._loop = PollLoop(
                fetcher=fetcher,
                notifier=build_notifier(s, session),
                store=JsonFileStore(s.state_file),
                poll_interval=s.poll_interval,
                notify_timeout=s.notify_timeout,
                shutdown_grace=s.shutdown_grace,
            )
            if self._stop_requested:
                return

            log.info("StatusMonitor running, watching %s. Press Ctrl+C to stop.", s.status_host)
            await self._loop.run()

    def stop(self) -> None:
        """Stop ticking; the in-flight cycle is drained by PollLoop.run()."""
        self._stop_requested = True
        if self._loop is not None:
            self._loop.stop()
