# StatusFeedFetcher: retrieves and parses the uptime and timeline feeds.

# Every failure mode (connection error, HTTP status, timeout, bad JSON,
# unexpected payload shape) is surfaced as FetchError so the poll loop has a
# single thing to catch. A 304 Not Modified hands back the snapshot parsed
# from the last 200 for the same URL.

import asyncio
import logging
from typing import Any, Callable, Protocol, TypeVar

import aiohttp

from status_alerts.exceptions import FetchError, PayloadError
from status_alerts.http_client import ConditionalHTTPClient
from status_alerts.models import TimelineSnapshot, UptimeSnapshot
from status_alerts.parser import parse_timeline, parse_uptime

log = logging.getLogger(__name__)

T = TypeVar("T")


class Fetcher(Protocol):
    async def fetch_uptime(self) -> UptimeSnapshot: ...

    async def fetch_timeline(self) -> TimelineSnapshot: ...


class StatusFeedFetcher:

    def __init__(
        self,
        http_client: ConditionalHTTPClient,
        uptime_url: str,
        timeline_url: str,
    ) -> None:
        self._http = http_client
        self.uptime_url = uptime_url
        self.timeline_url = timeline_url
        self._cache: dict[str, Any] = {}   # url → last parsed snapshot

    async def fetch_uptime(self) -> UptimeSnapshot:
        return await self._fetch(self.uptime_url, parse_uptime)

    async def fetch_timeline(self) -> TimelineSnapshot:
        return await self._fetch(self.timeline_url, parse_timeline)

    async def _fetch(self, url: str, parse: Callable[[Any], T]) -> T:
        try:
            changed, data = await self._http.get_json_if_changed(url)
        except aiohttp.ClientError as exc:
            raise FetchError(f"request to {url} failed: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise FetchError(f"request to {url} timed out") from exc
        except ValueError as exc:
            self._http.forget(url)
            raise PayloadError(f"response from {url} is not valid JSON: {exc}") from exc

        if not changed:
            if url in self._cache:
                log.debug("304 Not Modified for %s, reusing last snapshot", url)
                return self._cache[url]
            # ETag outlived the cached snapshot; make the next request unconditional
            self._http.forget(url)
            raise FetchError(f"{url} returned 304 but no snapshot is cached")

        try:
            snapshot = parse(data)
        except PayloadError:
            self._http.forget(url)
            self._cache.pop(url, None)
            raise

        self._cache[url] = snapshot
        return snapshot
