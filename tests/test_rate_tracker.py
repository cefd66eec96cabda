"""Tests for the API quota tracking."""
from __future__ import annotations

import logging
from datetime import timedelta

from home_connect_stream.rate_tracker import RateTracker


def test_headers_are_recorded(tracker, clock) -> None:
    tracker.record_headers({"X-RateLimit-Remaining": "950", "X-RateLimit-Limit": "1000"})

    quota = tracker.quota
    assert (quota.remaining, quota.limit, quota.observed_at) == (950, 1000, clock.now)


def test_missing_or_invalid_headers_leave_quota_untouched(tracker) -> None:
    tracker.record_headers({"X-RateLimit-Remaining": "900", "X-RateLimit-Limit": "1000"})

    tracker.record_headers({})
    tracker.record_headers(None)
    tracker.record_headers({"X-RateLimit-Remaining": "lots"})

    assert (tracker.quota.remaining, tracker.quota.limit) == (900, 1000)


def test_low_quota_logs_warning(tracker, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        tracker.record_headers({"X-RateLimit-Remaining": "150"})
        assert caplog.records == []
        tracker.record_headers({"X-RateLimit-Remaining": "99"})

    assert "only 99 API calls remaining" in caplog.text


def test_http_429_starts_short_cooldown(tracker, clock) -> None:
    tracker.record_rate_limited(60)

    assert tracker.quota.remaining == 0
    assert tracker.is_cooling_down()
    clock.advance(59)
    assert tracker.is_cooling_down()
    clock.advance(1)
    assert not tracker.is_cooling_down()


def test_short_cooldown_never_shortens_stream_block(tracker, clock) -> None:
    until = clock.now + timedelta(seconds=3600)
    tracker.block_until(until)

    tracker.record_rate_limited(60)

    assert tracker.cooldown_until == until
    clock.advance(120)
    assert tracker.is_cooling_down()


def test_clear_cooldown(tracker, clock) -> None:
    tracker.block_until(clock.now + timedelta(hours=24))
    tracker.record_rate_limited(60)

    tracker.clear_cooldown()

    assert tracker.cooldown_until is None
    assert not tracker.is_cooling_down()


def test_quota_is_a_copy() -> None:
    tracker = RateTracker()
    tracker.record_headers({"X-RateLimit-Remaining": "10"})

    tracker.quota.remaining = 5000

    assert tracker.quota.remaining == 10
