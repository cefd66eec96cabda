"""Shared fakes for the Home Connect stream tests."""
from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta

import pytest

from home_connect_stream.auth import AbstractAuth
from home_connect_stream.rate_tracker import RateTracker
from home_connect_stream.stream import StreamManager
from home_connect_stream.subscribers import SubscriberRegistry

HAID = "SIEMENS-HCS02DWH1-D1349B55F7EC"


class FakeClock:
    """A controllable replacement for datetime.now."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 8, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeScheduler:
    """Records scheduled jobs instead of running them."""

    def __init__(self) -> None:
        self.jobs: dict[str, tuple[float, object]] = {}
        self.history: list[tuple[str, float]] = []

    def run_in(self, delay, callback, name) -> None:
        self.jobs[name] = (delay, callback)
        self.history.append((name, delay))

    def cancel(self, name) -> None:
        self.jobs.pop(name, None)

    def cancel_all(self) -> None:
        self.jobs.clear()

    def is_scheduled(self, name) -> bool:
        return name in self.jobs

    def delay(self, name) -> float:
        return self.jobs[name][0]

    async def async_fire(self, name) -> None:
        _, callback = self.jobs.pop(name)
        await callback()


class FakeContent:
    def __init__(self, chunks, hang: bool = False) -> None:
        self._chunks = chunks
        self._hang = hang

    async def iter_any(self):
        for chunk in self._chunks:
            yield chunk
        if self._hang:
            await asyncio.Event().wait()


class FakeResponse:
    """Just enough of aiohttp.ClientResponse for the API wrapper and the stream transport."""

    def __init__(self, status: int = 200, body=None, headers=None, chunks=None, hang: bool = False) -> None:
        self.status = status
        if body is not None and not isinstance(body, str):
            body = json.dumps(body)
        self._body = body or ""
        self.headers = headers or {}
        self.content = FakeContent(chunks or [], hang)
        self.closed = False

    async def text(self) -> str:
        return self._body

    def close(self) -> None:
        self.closed = True


class FakeAuth(AbstractAuth):
    """Token provider returning canned responses."""

    def __init__(self, token: str | None = "token-1", responses=None, stream_responses=None, refresh_result: bool = True) -> None:
        super().__init__(websession=None, host="https://api.home-connect.com")
        self.token = token
        self.responses = list(responses or [])
        self.stream_responses = list(stream_responses or [])
        self.refresh_result = refresh_result
        self.refresh_calls = 0
        self.requests: list[tuple] = []
        self.stream_calls: list[tuple] = []

    async def async_get_access_token(self) -> str | None:
        return self.token

    async def async_refresh_token(self) -> bool:
        self.refresh_calls += 1
        if self.refresh_result:
            self.token = "token-refreshed"
        return self.refresh_result

    async def request(self, method, endpoint, lang=None, **kwargs):
        self.requests.append((method, endpoint, kwargs.get("data"), self.token))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def stream(self, endpoint, access_token, lang=None):
        self.stream_calls.append((endpoint, access_token, lang))
        response = self.stream_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def sse(event_type: str | None, payload) -> str:
    """Build one framed SSE message."""
    lines = []
    if event_type:
        lines.append(f"event: {event_type}")
    data = payload if isinstance(payload, str) else json.dumps(payload)
    lines.append(f"data: {data}")
    return "\n".join(lines) + "\n\n"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def registry() -> SubscriberRegistry:
    return SubscriberRegistry()


@pytest.fixture
def tracker(clock) -> RateTracker:
    return RateTracker(clock)


@pytest.fixture
def auth() -> FakeAuth:
    return FakeAuth()


@pytest.fixture
def manager(auth, registry, tracker, scheduler, clock) -> StreamManager:
    return StreamManager(auth, registry, tracker, lang="en-GB", scheduler=scheduler, clock=clock)
