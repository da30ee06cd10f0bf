"""Registration countdown: time remaining until a registration deadline.

get_time_remaining() is pure. RegistrationCountdown wraps it in a cancellable
asyncio task that recomputes once immediately and then on a fixed cadence,
restarting cleanly when its inputs change and going silent once stopped.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from luhive.data.models import TimeRemaining

logger = logging.getLogger(__name__)

_DAY = 86400
_HOUR = 3600

Deadline = str | date | datetime | None


def _zone(tz_name: str | None) -> timezone | ZoneInfo:
    if not tz_name:
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone '%s', falling back to UTC", tz_name)
        return timezone.utc


def parse_deadline(deadline: str | date | datetime, tz_name: str | None = None) -> datetime:
    """Turn an ISO timestamp/date (or date/datetime) into an aware datetime.

    Naive values are interpreted in ``tz_name`` when given, otherwise UTC.
    Raises ValueError on malformed strings.
    """
    if isinstance(deadline, datetime):
        parsed = deadline
    elif isinstance(deadline, date):
        parsed = datetime(deadline.year, deadline.month, deadline.day)
    else:
        raw = deadline.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        parsed = datetime.fromisoformat(raw)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=_zone(tz_name))
    return parsed


def format_remaining(days: int, hours: int) -> str:
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h"
    return "0h"


def get_time_remaining(
    deadline: Deadline,
    tz_name: str | None = None,
    now: datetime | None = None,
) -> TimeRemaining | None:
    """Compute the time left until ``deadline``.

    Returns None when there is no deadline or it has already passed.
    A deadline of exactly ``now`` yields ``0h``.
    """
    if deadline is None or deadline == "":
        return None

    deadline_dt = parse_deadline(deadline, tz_name)
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    diff = deadline_dt - now
    if diff < timedelta(0):
        return None

    total = int(diff.total_seconds())
    days = total // _DAY
    hours = (total % _DAY) // _HOUR
    return TimeRemaining(days=days, hours=hours, formatted=format_remaining(days, hours))


# ---------------------------------------------------------------------------
# Cancellable periodic recomputation
# ---------------------------------------------------------------------------


class RegistrationCountdown:
    """Owns a single recurring countdown task.

    start() computes immediately and schedules recomputation every
    ``interval`` seconds. Calling start() with new inputs cancels the running
    task first; stop() cancels it for good. Each run is tagged with a
    generation number and results from an older generation are dropped, so a
    cancelled task can never publish.

    The task ends by itself once the deadline has passed, since the result
    can only stay None from then on.
    """

    def __init__(
        self,
        on_update: Callable[[TimeRemaining | None], None] | None = None,
        interval: float = 60.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._on_update = on_update
        self._interval = interval
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._task: asyncio.Task | None = None
        self._generation = 0
        self._inputs: tuple[Deadline, str | None] | None = None
        self.current: TimeRemaining | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, deadline: Deadline, tz_name: str | None = None) -> None:
        """Begin (or restart) the countdown for the given inputs."""
        inputs = (deadline, tz_name)
        if self.running and inputs == self._inputs:
            return

        self.stop()
        self._inputs = inputs
        generation = self._generation

        remaining = self._compute(deadline, tz_name)
        self._publish(generation, remaining)
        if deadline is None or remaining is None:
            return

        self._task = asyncio.get_running_loop().create_task(
            self._run(generation, deadline, tz_name)
        )

    def stop(self) -> None:
        """Cancel the scheduled recomputation. No callback fires afterwards."""
        self._generation += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def aclose(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> RegistrationCountdown:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _compute(self, deadline: Deadline, tz_name: str | None) -> TimeRemaining | None:
        return get_time_remaining(deadline, tz_name, now=self._clock())

    def _publish(self, generation: int, remaining: TimeRemaining | None) -> None:
        if generation != self._generation:
            return
        self.current = remaining
        if self._on_update is not None:
            self._on_update(remaining)

    async def _run(self, generation: int, deadline: Deadline, tz_name: str | None) -> None:
        while generation == self._generation:
            await asyncio.sleep(self._interval)
            remaining = self._compute(deadline, tz_name)
            self._publish(generation, remaining)
            if remaining is None:
                logger.debug("Registration deadline passed, countdown finished")
                return
