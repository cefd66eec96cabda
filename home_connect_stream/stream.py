""" The event stream connection and its reconnect policy """
from __future__ import annotations
import asyncio
import codecs
import contextlib
import logging
import re
from asyncio import Task
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional
import aiohttp
from dataclasses_json import dataclass_json, Undefined

from .auth import AbstractAuth
from .common import format_datetime, format_remaining
from .const import (
    ConnectionStatus, StreamSignal, ENDPOINT_EVENTS, NORMAL_RECONNECT_DELAY, BACKOFF_BASE_DELAY,
    BACKOFF_MAX_DELAY, MAX_RECONNECT_ATTEMPTS, RATE_LIMIT_BUFFER, DEFAULT_RATE_LIMIT_PERIOD,
    RESYNC_THRESHOLD, RESYNC_DELAY, REFRESH_PAUSE
)
from .framer import SseFramer
from .rate_tracker import RateTracker
from .router import EventRouter
from .scheduler import Scheduler
from .subscribers import SubscriberRegistry

_LOGGER = logging.getLogger(__name__)

RECONNECT_JOB = "reconnect"
RESYNC_JOB = "resync"

RATE_LIMIT_MARKERS = ( '"key": "429"', '"key":"429"', 'rate limit' )
RATE_LIMIT_PERIOD_RE = re.compile(r'(\d+) seconds')

REASON_NO_TOKEN = "no token"
REASON_MAX_ATTEMPTS = "manual reconnect required"


def backoff_delay(attempt:int) -> int:
    """ The reconnect delay after a number of consecutive failed attempts: 60s, 120s, 240s then 300s """
    return min(BACKOFF_MAX_DELAY, BACKOFF_BASE_DELAY * 2 ** (attempt - 1))


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass
class Connection():
    """ The state of the single event stream connection """
    status:ConnectionStatus = ConnectionStatus.DISCONNECTED
    last_connect:Optional[datetime] = None
    # start of the current outage, failed reconnect attempts do not move it
    last_disconnect:Optional[datetime] = None
    failure_count:int = 0
    rate_limited_until:Optional[datetime] = None
    # set once data flows after the stream started, selects the normal reconnect delay
    established:bool = False
    failure_reason:Optional[str] = None


class StreamManager():
    """ Owns the Home Connect event stream

    Opens the stream, feeds the received text through the framer to the router and decides
    when to reconnect. The transport reports to the two entry points async_on_data() and on_status().
    Reconnect policy:
    * After a connection that delivered data: reconnect after NORMAL_RECONNECT_DELAY
    * After a connection that never delivered data: exponential backoff, giving up after MAX_RECONNECT_ATTEMPTS
    * After a rate limit reported in the stream: a single reconnect when it expires (plus RATE_LIMIT_BUFFER)
    """

    def __init__(self,
        auth:AbstractAuth,
        registry:SubscriberRegistry,
        rate_tracker:RateTracker,
        lang:str=None,
        scheduler:Scheduler=None,
        clock:Callable[[], datetime]=None
    ):
        self._auth = auth
        self._registry = registry
        self._rate_tracker = rate_tracker
        self._lang = lang
        self._scheduler = scheduler or Scheduler()
        self._now = clock or datetime.now
        self._connection = Connection()
        self._framer = SseFramer()
        self._router = EventRouter(registry)
        self._stream_task:Optional[Task] = None
        self._last_event_received:Optional[datetime] = None


    #region - Status

    @property
    def connection(self) -> Connection:
        """ A snapshot of the connection state """
        return replace(self._connection)

    @property
    def status(self) -> ConnectionStatus:
        """ The current status, rate limiting overrides the connection state """
        if self.is_rate_limited():
            return ConnectionStatus.RATE_LIMITED
        return self._connection.status

    @property
    def status_str(self) -> str:
        """ The status as a human readable string """
        status = self.status
        if status == ConnectionStatus.RATE_LIMITED:
            return f"rate limited until {format_datetime(self._connection.rate_limited_until)}"
        if status == ConnectionStatus.FAILED and self._connection.failure_reason:
            return f"failed - {self._connection.failure_reason}"
        return status.value

    @property
    def last_event_received(self) -> datetime | None:
        """ The time stream data was last received """
        return self._last_event_received

    def is_rate_limited(self) -> bool:
        """ Check if a rate limit reported over the stream is still in effect """
        until = self._connection.rate_limited_until
        return until is not None and self._now() < until

    #endregion

    #region - Operator commands

    async def async_connect(self) -> None:
        """ Connect to the event stream, also used to recover after the automatic reconnects gave up """
        if self._connection.status == ConnectionStatus.FAILED:
            self._connection.failure_count = 0
            self._connection.failure_reason = None
        await self._async_connect()

    async def async_disconnect(self) -> None:
        """ Close the event stream and stop reconnecting """
        _LOGGER.info("Disconnecting from Home Connect event stream")
        self._scheduler.cancel(RECONNECT_JOB)
        await self._async_close_stream()
        if self._connection.status in [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]:
            self._mark_down(self._now(), self._connection.established)
        self._connection.status = ConnectionStatus.DISCONNECTED
        self._connection.established = False
        self._connection.failure_reason = None

    def clear_rate_limit(self) -> None:
        """ Clear the rate limit state to allow a manual reconnect """
        _LOGGER.info("Clearing rate limit state manually")
        self._connection.rate_limited_until = None
        self._connection.failure_count = 0
        self._rate_tracker.clear_cooldown()
        if self._connection.status not in [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]:
            self._connection.status = ConnectionStatus.DISCONNECTED
            self._connection.failure_reason = None

    async def async_refresh(self) -> None:
        """ Reconnect the event stream """
        _LOGGER.info("Refreshing connection")
        await self.async_disconnect()
        await asyncio.sleep(REFRESH_PAUSE)
        await self.async_connect()

    async def async_close(self) -> None:
        """ Close the stream and cancel every pending job, used on shutdown """
        self._scheduler.cancel_all()
        await self.async_disconnect()

    #endregion

    #region - Stream entry points

    async def async_on_data(self, text:str) -> None:
        """ Handle a fragment of stream text """
        if not text:
            return
        if self.is_rate_limited():
            _LOGGER.debug("Ignoring stream data while rate limited")
            return

        _LOGGER.debug("Raw SSE data: %.200s", text)
        self._last_event_received = self._now()

        if any(marker in text for marker in RATE_LIMIT_MARKERS):
            self._handle_rate_limit(text)
            return

        if self._connection.status == ConnectionStatus.CONNECTED and not self._connection.established:
            _LOGGER.debug("Event stream established")
            self._connection.established = True
            self._connection.failure_count = 0

        for message in self._framer.feed(text):
            await self._async_route(message)

    def on_status(self, signal:StreamSignal, detail:str=None) -> None:
        """ Handle a status change of the stream transport """
        _LOGGER.debug("Event stream status: %s %s", signal.value, detail or "")
        now = self._now()

        if signal == StreamSignal.START:
            previous_disconnect = self._connection.last_disconnect
            self._connection.status = ConnectionStatus.CONNECTED
            self._connection.established = False
            self._connection.failure_reason = None
            self._connection.last_connect = now
            self._framer.clear()
            self._scheduler.cancel(RECONNECT_JOB)
            _LOGGER.info("Connected to Home Connect event stream")

            if previous_disconnect and (now - previous_disconnect).total_seconds() > RESYNC_THRESHOLD:
                _LOGGER.info("Was disconnected for %ds - requesting a refresh of the appliances", (now - previous_disconnect).total_seconds())
                self._scheduler.run_in(RESYNC_DELAY, self._registry.async_notify_resync_needed, RESYNC_JOB)
            return

        if self._connection.status not in [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]:
            # the stream already stopped, a reconnect was decided on then
            _LOGGER.debug("Ignoring %s signal while %s", signal.value, self._connection.status.value)
            return

        was_established = self._connection.established
        self._connection.status = ConnectionStatus.DISCONNECTED
        self._connection.established = False
        self._mark_down(now, was_established)

        if self.is_rate_limited():
            _LOGGER.warning("Rate limited - not reconnecting")
            return

        if was_established:
            # the service drops idle connections, this is not a failure
            self._connection.failure_count = 0
            _LOGGER.debug("Normal disconnect - scheduling reconnect in %ds", NORMAL_RECONNECT_DELAY)
            self._scheduler.run_in(NORMAL_RECONNECT_DELAY, self._async_scheduled_connect, RECONNECT_JOB)
            return

        self._connection.failure_count += 1
        attempts = self._connection.failure_count
        if attempts >= MAX_RECONNECT_ATTEMPTS:
            _LOGGER.error("Max reconnect attempts (%d) reached - giving up. Connect manually to retry.", MAX_RECONNECT_ATTEMPTS)
            self._connection.status = ConnectionStatus.FAILED
            self._connection.failure_reason = REASON_MAX_ATTEMPTS
            return

        delay = backoff_delay(attempts)
        _LOGGER.warning("Connection failed - scheduling reconnect in %ds (attempt %d/%d)", delay, attempts, MAX_RECONNECT_ATTEMPTS)
        self._scheduler.run_in(delay, self._async_scheduled_connect, RECONNECT_JOB)

    #endregion

    #region - Internals

    async def _async_connect(self) -> None:
        """ Open the stream unless rate limited """
        now = self._now()
        until = self._connection.rate_limited_until
        if until and now < until:
            _LOGGER.warning("Cannot connect - rate limited until %s (%s left)", format_datetime(until), format_remaining(until, now))
            return
        if until:
            self._connection.rate_limited_until = None
            self._connection.failure_count = 0
            _LOGGER.info("Rate limit expired - cleared")

        _LOGGER.debug("Connecting to Home Connect event stream")
        try:
            access_token = await self._auth.async_get_access_token()
        except Exception as ex:
            _LOGGER.warning("Failed to get an access token", exc_info=ex)
            access_token = None
        if not access_token:
            _LOGGER.error("No OAuth token available - cannot connect")
            self._connection.status = ConnectionStatus.FAILED
            self._connection.failure_reason = REASON_NO_TOKEN
            return

        # never let two streams run at the same time
        await self._async_close_stream()
        self._connection.status = ConnectionStatus.CONNECTING
        self._connection.failure_reason = None
        self._stream_task = asyncio.create_task(self._async_read_stream(access_token), name="home_connect_event_stream")

    async def _async_scheduled_connect(self) -> None:
        """ The reconnect job """
        if self._connection.status in [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]:
            _LOGGER.debug("Skipping scheduled reconnect, the stream is already %s", self._connection.status.value)
            return
        await self._async_connect()

    def _mark_down(self, now:datetime, was_established:bool) -> None:
        """ Record when the stream went down, a failed attempt does not move the start of the outage """
        if was_established or self._connection.last_disconnect is None:
            self._connection.last_disconnect = now

    async def _async_route(self, message:str) -> None:
        _LOGGER.debug("Processing SSE message: %.100s", message)
        try:
            await self._router.async_route(message)
        except Exception as ex:
            _LOGGER.warning('Unhandled exception in stream event handler', exc_info=ex)

    def _handle_rate_limit(self, text:str) -> None:
        """ Stop reconnecting until the rate limit reported in the stream expires """
        _LOGGER.error("Rate limit detected in SSE stream - stopping reconnects")

        match = RATE_LIMIT_PERIOD_RE.search(text)
        seconds = int(match.group(1)) if match else DEFAULT_RATE_LIMIT_PERIOD
        until = self._now() + timedelta(seconds=seconds)
        self._connection.rate_limited_until = until
        self._connection.failure_count = 0
        self._rate_tracker.block_until(until)
        _LOGGER.error("Rate limited until %s", format_datetime(until))

        delay = seconds + RATE_LIMIT_BUFFER
        _LOGGER.info("Scheduling automatic reconnect in %d seconds", delay)
        self._scheduler.run_in(delay, self._async_scheduled_connect, RECONNECT_JOB)

    async def _async_read_stream(self, access_token:str) -> None:
        """ The transport: reads the raw stream and reports data and status changes """
        response = None
        try:
            response = await self._auth.stream(ENDPOINT_EVENTS, access_token, self._lang)
            if response.status != 200:
                body = await response.text()
                _LOGGER.warning("Event stream connection rejected with code=%d", response.status)
                if response.status == 429:
                    self._handle_rate_limit(body)
                elif response.status == 401:
                    # the next attempt will use a new token
                    await self._auth.async_refresh_token()
                self.on_status(StreamSignal.ERROR, f"HTTP {response.status}")
                return

            self.on_status(StreamSignal.START)
            decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
            async for chunk in response.content.iter_any():
                await self.async_on_data(decoder.decode(chunk))
            for message in self._framer.flush():
                await self._async_route(message)
            _LOGGER.debug("The SSE stream was closed by the server")
            self.on_status(StreamSignal.STOP, "closed by server")
        except (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError) as ex:
            _LOGGER.debug("Error in SSE event stream", exc_info=ex)
            self.on_status(StreamSignal.ERROR, str(ex))
        except Exception as ex:
            _LOGGER.exception('Exception in SSE event stream', exc_info=ex)
            self.on_status(StreamSignal.ERROR, str(ex))
        finally:
            if response:
                response.close()

    async def _async_close_stream(self) -> None:
        task = self._stream_task
        self._stream_task = None
        if task and not task.done():
            task.cancel()
            if task is not asyncio.current_task():
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    #endregion
