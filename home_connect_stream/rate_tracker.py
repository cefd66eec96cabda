""" Tracking of the Home Connect API call quota """
from __future__ import annotations
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from dataclasses_json import dataclass_json, Undefined

from .const import HEADER_RATE_LIMIT_REMAINING, HEADER_RATE_LIMIT_LIMIT, RATE_LIMIT_LOW_WATER

_LOGGER = logging.getLogger(__name__)


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass
class RateQuota():
    """ The last quota values reported by the service """
    remaining:Optional[int] = None
    limit:Optional[int] = None
    observed_at:Optional[datetime] = None


class RateTracker():
    """ Records the remaining/limit quota counters and gates calls during a cooldown

    The cooldown can be started by the event stream (rate limit reported in the stream data)
    or by the API wrapper (HTTP 429). The effective cooldown is the latest of the two.
    """

    def __init__(self, clock:Callable[[], datetime] = None):
        self._now = clock or datetime.now
        self._quota = RateQuota()
        self._stream_blocked_until:datetime = None
        self._request_cooldown_until:datetime = None

    @property
    def quota(self) -> RateQuota:
        """ A copy of the last recorded quota """
        return RateQuota(self._quota.remaining, self._quota.limit, self._quota.observed_at)

    @property
    def cooldown_until(self) -> datetime | None:
        """ The end of the effective cooldown or None if there isn't one """
        active = [ ts for ts in [self._stream_blocked_until, self._request_cooldown_until] if ts ]
        return max(active) if active else None

    def record_headers(self, headers:Mapping[str, str]) -> None:
        """ Update the quota from the response headers, if they are present """
        if not headers:
            return
        remaining = self._parse_header(headers, HEADER_RATE_LIMIT_REMAINING)
        limit = self._parse_header(headers, HEADER_RATE_LIMIT_LIMIT)
        if remaining is None and limit is None:
            return

        if remaining is not None:
            self._quota.remaining = remaining
            _LOGGER.debug("Rate limit remaining: %d", remaining)
            if remaining < RATE_LIMIT_LOW_WATER:
                _LOGGER.warning("Rate limit warning: only %d API calls remaining", remaining)
        if limit is not None:
            self._quota.limit = limit
            _LOGGER.debug("Rate limit total: %d", limit)
        self._quota.observed_at = self._now()

    def record_rate_limited(self, seconds:int) -> None:
        """ Handle a 429 answer to an API call by starting a short cooldown """
        self._quota.remaining = 0
        self._quota.observed_at = self._now()
        until = self._now() + timedelta(seconds=seconds)
        if not self._request_cooldown_until or until > self._request_cooldown_until:
            self._request_cooldown_until = until
        _LOGGER.debug("API cooldown until %s", self.cooldown_until)

    def block_until(self, until:datetime) -> None:
        """ Handle a rate limit reported over the event stream """
        self._quota.remaining = 0
        self._quota.observed_at = self._now()
        self._stream_blocked_until = until

    def is_cooling_down(self) -> bool:
        """ Check if calls should currently be avoided """
        until = self.cooldown_until
        return until is not None and self._now() < until

    def clear_cooldown(self) -> None:
        """ Unconditionally clear both cooldowns """
        self._stream_blocked_until = None
        self._request_cooldown_until = None

    @staticmethod
    def _parse_header(headers:Mapping[str, str], name:str) -> int | None:
        value = headers.get(name)
        if value is None:
            return None
        try:
            return int(str(value).strip())
        except ValueError:
            _LOGGER.debug("Could not parse rate limit header %s=%s", name, value)
            return None
