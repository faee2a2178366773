# ETag-based conditional HTTP GET client.

# Every response from the status feed may carry an ETag header.
# We store it and send it back as If-None-Match on the next request.
# If nothing changed, the server returns 304 Not Modified with no body,
# and the fetcher reuses the snapshot it parsed last time.

import asyncio
import logging
from typing import Any

import aiohttp

from status_alerts.config import REQUEST_TIMEOUT_SECONDS

log = logging.getLogger(__name__)


class ConditionalHTTPClient:
    """
    Wraps an aiohttp.ClientSession with ETag-based conditional GET support.

    Per-URL ETag state is kept in a dict; the session is owned by the caller.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._etags: dict[str, str] = {}   # url → last received ETag

    def forget(self, url: str) -> None:
        """Drop the stored ETag so the next request is unconditional."""
        self._etags.pop(url, None)

    async def get_json_if_changed(self, url: str) -> tuple[bool, Any]:
        """
        Perform a conditional GET.

        Returns:
            (True, data)   server returned 200 with new data
            (False, None)  server returned 304 (nothing changed)

        Raises:
            aiohttp.ClientError    on connection failures and non-2xx / non-304 responses
            asyncio.TimeoutError   on request timeout
            ValueError             when the body is not valid JSON
        """
        headers: dict[str, str] = {}
        if url in self._etags:
            headers["If-None-Match"] = self._etags[url]

        try:
            async with self._session.get(url, headers=headers, timeout=self._timeout) as resp:
                if resp.status == 304:
                    return False, None

                resp.raise_for_status()

                # parse before remembering the ETag so a bad body is refetched in full
                data = await resp.json(content_type=None)

                etag = resp.headers.get("ETag")
                if etag:
                    self._etags[url] = etag

                return True, data

        except aiohttp.ClientResponseError as exc:
            log.warning("HTTP error fetching %s: %s %s", url, exc.status, exc.message)
            raise
        except asyncio.TimeoutError:
            log.warning("Timeout fetching %s", url)
            raise
