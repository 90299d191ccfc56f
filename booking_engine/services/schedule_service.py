import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from booking_engine.core.timeutils import TimeInterval, day_of_week
from booking_engine.models.schedule import Break, BreakKind, WeeklySchedule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BreakInterval:
    interval: TimeInterval
    kind: BreakKind


def resolve_working_hours(schedules: Iterable[WeeklySchedule], d: date) -> TimeInterval | None:
    """Working interval for the weekday of ``d``, or None when closed."""
    dow = day_of_week(d)
    for entry in schedules:
        if entry.day_of_week != dow:
            continue
        if not entry.is_available:
            return None
        interval = TimeInterval.from_times(entry.start_time, entry.end_time)
        if interval.is_empty:
            logger.warning(
                "Ignoring schedule %s for professional %s: end %s is not after start %s",
                entry.id, entry.professional_id, entry.end_time, entry.start_time,
            )
            return None
        return interval
    return None


def resolve_breaks(breaks: Iterable[Break], dow: int) -> list[BreakInterval]:
    """Recurring breaks of weekday ``dow`` ordered by start time."""
    resolved = [
        BreakInterval(TimeInterval.from_times(b.start_time, b.end_time), b.kind)
        for b in breaks
        if b.day_of_week == dow
    ]
    return sorted((b for b in resolved if not b.interval.is_empty), key=lambda b: b.interval)
