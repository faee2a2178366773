"""Tests for StatusFeedFetcher and ConditionalHTTPClient: error wrapping, 304 reuse, ETags."""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from status_alerts.exceptions import FetchError, PayloadError
from status_alerts.fetcher import StatusFeedFetcher
from status_alerts.http_client import ConditionalHTTPClient
from status_alerts.models import Level

UPTIME_URL = "https://status.example.test/institutions/uptime"
TIMELINE_URL = "https://status.example.test/issues/timeline"

_UPTIME = {"ins_3": {"current": {"title": "Chase", "level": "error", "percentage": 80}}}
_TIMELINE = [{"title": "T1", "description": "d"}, {"title": "All Clear"}]


# ── Helpers ─────────────────────────────────────────────────────


class FakeHTTP:
    """Scripted stand-in for ConditionalHTTPClient."""

    def __init__(self, *responses: Any) -> None:
        self._responses = list(responses)
        self.forgotten: list[str] = []
        self.requested: list[str] = []

    async def get_json_if_changed(self, url: str) -> tuple[bool, Any]:
        self.requested.append(url)
        result = self._responses.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    def forget(self, url: str) -> None:
        self.forgotten.append(url)


def _fetcher(http: FakeHTTP) -> StatusFeedFetcher:
    return StatusFeedFetcher(http, UPTIME_URL, TIMELINE_URL)  # type: ignore[arg-type]


def _mock_response(status: int = 200, data: Any = None, etag: str | None = None) -> MagicMock:
    resp = MagicMock()
    resp.status = status
    resp.headers = {"ETag": etag} if etag else {}
    resp.json = AsyncMock(return_value=data)
    if status >= 400:
        resp.raise_for_status = MagicMock(side_effect=aiohttp.ClientResponseError(
            request_info=MagicMock(), history=(), status=status, message="boom",
        ))
    else:
        resp.raise_for_status = MagicMock()
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


# ── StatusFeedFetcher ───────────────────────────────────────────


class TestStatusFeedFetcher:
    async def test_parses_both_feeds(self) -> None:
        http = FakeHTTP((True, _UPTIME), (True, _TIMELINE))
        fetcher = _fetcher(http)

        uptime = await fetcher.fetch_uptime()
        timeline = await fetcher.fetch_timeline()

        assert uptime["ins_3"].level is Level.ERROR
        assert [e.title for e in timeline] == ["T1", "All Clear"]
        assert http.requested == [UPTIME_URL, TIMELINE_URL]

    async def test_not_modified_reuses_last_snapshot(self) -> None:
        fetcher = _fetcher(FakeHTTP((True, _UPTIME), (False, None)))
        first = await fetcher.fetch_uptime()
        second = await fetcher.fetch_uptime()
        assert second == first

    async def test_not_modified_without_cache_raises_and_forgets_etag(self) -> None:
        http = FakeHTTP((False, None))
        with pytest.raises(FetchError):
            await _fetcher(http).fetch_timeline()
        assert http.forgotten == [TIMELINE_URL]

    @pytest.mark.parametrize(
        "error",
        [
            aiohttp.ClientConnectionError("refused"),
            asyncio.TimeoutError(),
        ],
    )
    async def test_transport_errors_become_fetch_error(self, error: BaseException) -> None:
        with pytest.raises(FetchError):
            await _fetcher(FakeHTTP(error)).fetch_uptime()

    async def test_invalid_json_is_payload_error(self) -> None:
        http = FakeHTTP(ValueError("Expecting value"))
        with pytest.raises(PayloadError):
            await _fetcher(http).fetch_uptime()
        assert http.forgotten == [UPTIME_URL]

    async def test_bad_shape_drops_cache_and_etag(self) -> None:
        http = FakeHTTP((True, _TIMELINE), (True, {"nope": 1}), (False, None))
        fetcher = _fetcher(http)
        await fetcher.fetch_timeline()

        with pytest.raises(PayloadError):
            await fetcher.fetch_timeline()
        assert http.forgotten == [TIMELINE_URL]

        # the stale snapshot must not come back on a later 304
        with pytest.raises(FetchError):
            await fetcher.fetch_timeline()


# ── ConditionalHTTPClient ───────────────────────────────────────


class TestConditionalHTTPClient:
    async def test_stores_and_sends_etag(self) -> None:
        session = MagicMock()
        session.get = MagicMock(side_effect=[
            _mock_response(200, data=_UPTIME, etag='"v1"'),
            _mock_response(304),
        ])
        client = ConditionalHTTPClient(session, timeout=5)

        assert await client.get_json_if_changed(UPTIME_URL) == (True, _UPTIME)
        assert await client.get_json_if_changed(UPTIME_URL) == (False, None)

        first_headers = session.get.call_args_list[0].kwargs["headers"]
        second_headers = session.get.call_args_list[1].kwargs["headers"]
        assert first_headers == {}
        assert second_headers == {"If-None-Match": '"v1"'}

    async def test_forget_makes_request_unconditional(self) -> None:
        session = MagicMock()
        session.get = MagicMock(side_effect=[
            _mock_response(200, data=_UPTIME, etag='"v1"'),
            _mock_response(200, data=_UPTIME),
        ])
        client = ConditionalHTTPClient(session)
        await client.get_json_if_changed(UPTIME_URL)
        client.forget(UPTIME_URL)
        await client.get_json_if_changed(UPTIME_URL)
        assert session.get.call_args_list[1].kwargs["headers"] == {}

    async def test_http_error_propagates(self) -> None:
        session = MagicMock()
        session.get = MagicMock(return_value=_mock_response(503))
        client = ConditionalHTTPClient(session)
        with pytest.raises(aiohttp.ClientResponseError):
            await client.get_json_if_changed(UPTIME_URL)

    async def test_bad_json_does_not_store_etag(self) -> None:
        bad = _mock_response(200, etag='"v1"')
        bad.json = AsyncMock(side_effect=ValueError("Expecting value"))
        session = MagicMock()
        session.get = MagicMock(side_effect=[bad, _mock_response(200, data=_UPTIME)])
        client = ConditionalHTTPClient(session)

        with pytest.raises(ValueError):
            await client.get_json_if_changed(UPTIME_URL)
        await client.get_json_if_changed(UPTIME_URL)
        assert session.get.call_args_list[1].kwargs["headers"] == {}
