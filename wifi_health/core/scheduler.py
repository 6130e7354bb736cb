"""Scheduler — tag-keyed, re-armable alarms run serially on one thread."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Callable, Optional, Protocol

from croniter import croniter

logger = logging.getLogger(__name__)

ELAPSED = "elapsed"
WALL = "wall"


class Clock(Protocol):
    def wall_clock_millis(self) -> int: ...

    def elapsed_since_boot_millis(self) -> int: ...


class SystemClock:
    def wall_clock_millis(self) -> int:
        return int(time.time() * 1000)

    def elapsed_since_boot_millis(self) -> int:
        return int(time.monotonic() * 1000)


def next_occurrence_of_hour(
    now_ms: int, hour: int, tz: Optional[tzinfo] = None
) -> int:
    """Wall-clock millis of the next ``hour``:00 strictly after ``now_ms``."""
    now = datetime.fromtimestamp(now_ms / 1000, tz=tz)
    deadline = croniter(f"0 {hour} * * *", now).get_next(datetime)
    return int(deadline.timestamp() * 1000)


@dataclass
class _Alarm:
    tag: str
    base: str  # ELAPSED or WALL
    deadline_ms: int
    callback: Callable[[], None]


class Scheduler:
    """Alarms keyed by tag. Setting an alarm for a tag replaces the earlier one.

    Nothing runs on its own thread: the host calls ``run_due`` (or
    ``run_forever``) from its work queue and callbacks execute there one at
    a time.
    """

    def __init__(self, clock: Optional[Clock] = None, tz: Optional[tzinfo] = None):
        self.clock = clock or SystemClock()
        self.tz = tz
        self._alarms: dict[str, _Alarm] = {}

    def set_once(
        self, tag: str, delay_ms: int, callback: Callable[[], None]
    ) -> None:
        """Fire ``callback`` once, ``delay_ms`` of elapsed time from now."""
        deadline = self.clock.elapsed_since_boot_millis() + delay_ms
        self._alarms[tag] = _Alarm(tag, ELAPSED, deadline, callback)

    def set_at_hour(
        self, tag: str, hour: int, callback: Callable[[], None]
    ) -> None:
        """Fire ``callback`` once, at the next wall-clock ``hour``:00."""
        deadline = next_occurrence_of_hour(
            self.clock.wall_clock_millis(), hour, self.tz
        )
        self._alarms[tag] = _Alarm(tag, WALL, deadline, callback)

    def is_set(self, tag: str) -> bool:
        return tag in self._alarms

    def deadline(self, tag: str) -> Optional[int]:
        alarm = self._alarms.get(tag)
        return alarm.deadline_ms if alarm else None

    def _now(self, base: str) -> int:
        if base == ELAPSED:
            return self.clock.elapsed_since_boot_millis()
        return self.clock.wall_clock_millis()

    def _remaining_ms(self, alarm: _Alarm) -> int:
        return alarm.deadline_ms - self._now(alarm.base)

    def run_due(self) -> int:
        """Fire every alarm whose deadline has passed. Returns the number fired."""
        due = [a for a in self._alarms.values() if self._remaining_ms(a) <= 0]
        due.sort(key=self._remaining_ms)
        fired = 0
        for alarm in due:
            # Skip alarms re-armed by an earlier callback in this pass.
            if self._alarms.get(alarm.tag) is not alarm:
                continue
            del self._alarms[alarm.tag]
            fired += 1
            try:
                alarm.callback()
            except Exception:
                logger.warning("Alarm %r failed", alarm.tag, exc_info=True)
        return fired

    def next_delay_ms(self) -> Optional[int]:
        if not self._alarms:
            return None
        return max(0, min(self._remaining_ms(a) for a in self._alarms.values()))

    def run_forever(
        self,
        should_stop: Callable[[], bool] = lambda: False,
        max_sleep_ms: int = 1000,
    ) -> None:
        while not should_stop():
            self.run_due()
            delay = self.next_delay_ms()
            if delay is None:
                delay = max_sleep_ms
            time.sleep(min(delay, max_sleep_ms) / 1000)
