"""Tests for the registration countdown (pure computation + asyncio task)."""

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from luhive.core.countdown import (
    RegistrationCountdown,
    format_remaining,
    get_time_remaining,
    parse_deadline,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Pure computation
# ---------------------------------------------------------------------------


class TestFormatRemaining:
    def test_days_and_hours(self):
        assert format_remaining(3, 5) == "3d 5h"

    def test_days_with_zero_hours(self):
        assert format_remaining(2, 0) == "2d 0h"

    def test_hours_only(self):
        assert format_remaining(0, 7) == "7h"

    def test_nothing_left(self):
        assert format_remaining(0, 0) == "0h"


class TestGetTimeRemaining:
    def test_no_deadline(self):
        assert get_time_remaining(None, now=NOW) is None
        assert get_time_remaining("", now=NOW) is None

    def test_past_deadline(self):
        assert get_time_remaining("2026-03-10T11:59:00+00:00", now=NOW) is None

    def test_exactly_now(self):
        result = get_time_remaining(NOW, now=NOW)
        assert (result.days, result.hours, result.formatted) == (0, 0, "0h")

    def test_twenty_six_hours(self):
        result = get_time_remaining(NOW + timedelta(hours=26), now=NOW)
        assert result.days == 1
        assert result.hours == 2
        assert result.formatted == "1d 2h"

    def test_partial_hours_are_floored(self):
        result = get_time_remaining(NOW + timedelta(minutes=59), now=NOW)
        assert result.formatted == "0h"

    def test_zulu_suffix(self):
        result = get_time_remaining("2026-03-11T12:00:00Z", now=NOW)
        assert result.formatted == "1d 0h"

    def test_naive_deadline_uses_event_timezone(self):
        # 18:00 in Baku (UTC+4) is 14:00 UTC
        result = get_time_remaining("2026-03-10T18:00:00", "Asia/Baku", now=NOW)
        assert result.formatted == "2h"

    def test_naive_deadline_defaults_to_utc(self):
        result = get_time_remaining("2026-03-10T18:00:00", now=NOW)
        assert result.formatted == "6h"

    def test_date_deadline(self):
        result = get_time_remaining(date(2026, 3, 12), now=NOW)
        assert result.formatted == "1d 12h"

    def test_unknown_timezone_falls_back_to_utc(self):
        result = get_time_remaining("2026-03-10T18:00:00", "Mars/Olympus", now=NOW)
        assert result.formatted == "6h"

    def test_hours_always_below_24(self):
        for minutes in range(0, 60 * 24 * 3, 97):
            result = get_time_remaining(NOW + timedelta(minutes=minutes), now=NOW)
            assert 0 <= result.hours <= 23
            assert result.days >= 0

    def test_malformed_deadline_raises(self):
        with pytest.raises(ValueError):
            parse_deadline("next tuesday")


# ---------------------------------------------------------------------------
# RegistrationCountdown
# ---------------------------------------------------------------------------


class _Clock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now


class TestRegistrationCountdown:
    @pytest.mark.asyncio
    async def test_start_publishes_immediately(self):
        updates = []
        countdown = RegistrationCountdown(on_update=updates.append, interval=60, clock=lambda: NOW)
        countdown.start(NOW + timedelta(hours=26))
        assert updates[0].formatted == "1d 2h"
        assert countdown.current.formatted == "1d 2h"
        assert countdown.running
        await countdown.aclose()

    @pytest.mark.asyncio
    async def test_none_deadline_clears_and_schedules_nothing(self):
        updates = []
        countdown = RegistrationCountdown(on_update=updates.append, clock=lambda: NOW)
        countdown.start(None)
        assert updates == [None]
        assert countdown.current is None
        assert not countdown.running

    @pytest.mark.asyncio
    async def test_past_deadline_schedules_nothing(self):
        countdown = RegistrationCountdown(clock=lambda: NOW)
        countdown.start(NOW - timedelta(hours=1))
        assert countdown.current is None
        assert not countdown.running

    @pytest.mark.asyncio
    async def test_recomputes_on_interval(self):
        clock = _Clock(NOW)
        updates = []
        countdown = RegistrationCountdown(on_update=updates.append, interval=0.01, clock=clock)
        countdown.start(NOW + timedelta(hours=5))
        clock.now = NOW + timedelta(hours=2)
        await asyncio.sleep(0.05)
        await countdown.aclose()
        assert updates[0].formatted == "5h"
        assert updates[-1].formatted == "3h"

    @pytest.mark.asyncio
    async def test_finishes_when_deadline_passes(self):
        clock = _Clock(NOW)
        updates = []
        countdown = RegistrationCountdown(on_update=updates.append, interval=0.01, clock=clock)
        countdown.start(NOW + timedelta(minutes=30))
        clock.now = NOW + timedelta(hours=1)
        await asyncio.sleep(0.05)
        assert updates[-1] is None
        assert not countdown.running

    @pytest.mark.asyncio
    async def test_no_update_after_stop(self):
        clock = _Clock(NOW)
        updates = []
        countdown = RegistrationCountdown(on_update=updates.append, interval=0.01, clock=clock)
        countdown.start(NOW + timedelta(hours=5))
        countdown.stop()
        count = len(updates)
        clock.now = NOW + timedelta(hours=1)
        await asyncio.sleep(0.05)
        assert len(updates) == count
        assert not countdown.running

    @pytest.mark.asyncio
    async def test_same_inputs_are_noop(self):
        updates = []
        countdown = RegistrationCountdown(on_update=updates.append, interval=60, clock=lambda: NOW)
        deadline = NOW + timedelta(hours=5)
        countdown.start(deadline, "UTC")
        countdown.start(deadline, "UTC")
        assert len(updates) == 1
        await countdown.aclose()

    @pytest.mark.asyncio
    async def test_restart_on_input_change(self):
        updates = []
        countdown = RegistrationCountdown(on_update=updates.append, interval=60, clock=lambda: NOW)
        countdown.start(NOW + timedelta(hours=5))
        first_task = countdown._task
        countdown.start(NOW + timedelta(hours=8))
        await asyncio.sleep(0)
        assert first_task.cancelled() or first_task.done()
        assert countdown.current.formatted == "8h"
        assert [u.formatted for u in updates] == ["5h", "8h"]
        await countdown.aclose()

    @pytest.mark.asyncio
    async def test_context_manager_stops_task(self):
        async with RegistrationCountdown(interval=60, clock=lambda: NOW) as countdown:
            countdown.start(NOW + timedelta(hours=5))
            assert countdown.running
        assert not countdown.running
