"""Half-open time intervals within one civil day, and civil-time helpers.

Intervals are kept as minutes since midnight so that comparisons and arithmetic
stay integer-only; conversion to ``datetime.time`` happens at the edges.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from booking_engine.core.config import settings

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def to_minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes is outside a civil day")
    return time(minutes // 60, minutes % 60)


@dataclass(frozen=True, order=True)
class TimeInterval:
    """Interval ``[start, end)`` in minutes since midnight."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end > MINUTES_PER_DAY:
            raise ValueError(f"Interval {self.start}-{self.end} is outside a civil day")

    @classmethod
    def from_times(cls, start: time, end: time) -> "TimeInterval":
        return cls(to_minutes(start), to_minutes(end))

    @classmethod
    def starting_at(cls, start: time, duration_minutes: int) -> "TimeInterval":
        begin = to_minutes(start)
        return cls(begin, begin + duration_minutes)

    @property
    def duration(self) -> int:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    @property
    def start_time(self) -> time:
        return from_minutes(self.start)

    @property
    def end_time(self) -> time:
        return from_minutes(self.end)

    def overlaps(self, other: "TimeInterval") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "TimeInterval") -> bool:
        return self.start <= other.start and other.end <= self.end


def day_of_week(d: date) -> int:
    """0=Sunday .. 6=Saturday, the convention used by schedules and breaks."""
    return (d.weekday() + 1) % 7


def resolve_timezone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to %s", name, settings.default_timezone)
        return ZoneInfo(settings.default_timezone)


def civil_now(now: datetime, tz: ZoneInfo) -> datetime:
    """Wall-clock date/time in ``tz`` for the instant ``now`` (naive means UTC)."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(tz).replace(tzinfo=None)
