"""Tests for the authenticated request helpers."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from home_connect_stream.auth import AbstractAuth


class StaticAuth(AbstractAuth):
    async def async_get_access_token(self) -> str | None:
        return "abc"

    async def async_refresh_token(self) -> bool:
        return False


@pytest.fixture
def websession() -> MagicMock:
    session = MagicMock()
    session.request = AsyncMock(return_value="response")
    session.get = AsyncMock(return_value="stream-response")
    return session


@pytest.mark.asyncio
async def test_request_adds_token_and_json_headers(websession) -> None:
    auth = StaticAuth(websession, "https://api.home-connect.com")

    response = await auth.request("put", "/api/homeappliances/X/settings/K", "de-DE", data="{}")

    assert response == "response"
    args, kwargs = websession.request.call_args
    assert args == ("put", "https://api.home-connect.com/api/homeappliances/X/settings/K")
    assert kwargs["data"] == "{}"
    assert kwargs["headers"] == {
        "authorization": "Bearer abc",
        "Accept": "application/vnd.bsh.sdk.v1+json",
        "Accept-Language": "de-DE",
        "Content-Type": "application/vnd.bsh.sdk.v1+json",
    }


@pytest.mark.asyncio
async def test_get_request_keeps_caller_headers(websession) -> None:
    auth = StaticAuth(websession, "https://simulator.home-connect.com")

    await auth.request("get", "/api/homeappliances", headers={"X-Trace": "1"})

    headers = websession.request.call_args.kwargs["headers"]
    assert headers["X-Trace"] == "1"
    assert "Content-Type" not in headers
    assert "Accept-Language" not in headers


@pytest.mark.asyncio
async def test_stream_requests_event_stream(websession) -> None:
    auth = StaticAuth(websession, "https://api.home-connect.com")

    response = await auth.stream("/api/homeappliances/events", "tok", "en-US")

    assert response == "stream-response"
    args, kwargs = websession.get.call_args
    assert args == ("https://api.home-connect.com/api/homeappliances/events",)
    assert kwargs["headers"] == {
        "authorization": "Bearer tok",
        "Accept": "text/event-stream",
        "Accept-Language": "en-US",
    }
    timeout: aiohttp.ClientTimeout = kwargs["timeout"]
    assert timeout.total is None
    assert timeout.sock_read == 180
