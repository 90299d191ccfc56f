"""Slot generation, conflict filtering and multi-professional aggregation.

The pure functions here work on already-fetched rows and hold no state, so they
can run concurrently and repeatedly. ``compute_slots`` and
``compute_aggregated_slots`` fetch the rows from the store and call them.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.config import settings
from booking_engine.core.errors import InvalidRange
from booking_engine.core.timeutils import TimeInterval, civil_now, day_of_week, resolve_timezone
from booking_engine.models.appointment import INACTIVE_STATUSES, Appointment, AppointmentStatus
from booking_engine.models.professional import Professional
from booking_engine.models.schedule import Break, WeeklySchedule
from booking_engine.models.slot import AggregatedSlot, TimeSlot
from booking_engine.services import store
from booking_engine.services.schedule_service import BreakInterval, resolve_breaks, resolve_working_hours

logger = logging.getLogger(__name__)


def validate_range(date_from: date, date_to: date) -> None:
    if date_from > date_to:
        raise InvalidRange(f"date_from {date_from} is after date_to {date_to}.")
    days = (date_to - date_from).days + 1
    if days > settings.max_range_days:
        raise InvalidRange(
            f"Date range spans {days} days; availability queries are capped at "
            f"{settings.max_range_days} days (MAX_RANGE_DAYS setting)."
        )


def validate_duration(duration_minutes: int, buffer_minutes: int) -> None:
    if duration_minutes <= 0:
        raise InvalidRange("Duration must be positive.")
    if buffer_minutes < 0:
        raise InvalidRange("Buffer must not be negative.")


async def resolve_duration(
    session: AsyncSession, professional: Professional, service_id: int | None
) -> tuple[int, int]:
    """(duration, buffer) in minutes from the service, else the professional's defaults."""
    if service_id is not None:
        service = await store.get_service(session, service_id)
        duration, buffer = service.duration_minutes, service.buffer_minutes
    else:
        duration, buffer = professional.appointment_duration_minutes, professional.buffer_minutes
    validate_duration(duration, buffer)
    return duration, buffer


def _slot_interval(slot: TimeSlot) -> TimeInterval:
    return TimeInterval.from_times(slot.start_time, slot.end_time)


def _dates(date_from: date, date_to: date) -> Iterable[date]:
    current = date_from
    while current <= date_to:
        yield current
        current += timedelta(days=1)


def generate_candidates(
    professional_id: int,
    date_from: date,
    date_to: date,
    schedules: Sequence[WeeklySchedule],
    duration_minutes: int,
    buffer_minutes: int,
) -> list[TimeSlot]:
    """Candidate slots inside working hours, ordered by date then start.

    A slot is emitted only if it ends at or before closing time; starts advance by
    duration + buffer from the opening time.
    """
    validate_duration(duration_minutes, buffer_minutes)
    stride = duration_minutes + buffer_minutes
    candidates: list[TimeSlot] = []
    for d in _dates(date_from, date_to):
        working = resolve_working_hours(schedules, d)
        if working is None:
            continue
        cursor = working.start
        while cursor + duration_minutes <= working.end:
            interval = TimeInterval(cursor, cursor + duration_minutes)
            candidates.append(
                TimeSlot(
                    professional_id=professional_id,
                    date=d,
                    start_time=interval.start_time,
                    end_time=interval.end_time,
                )
            )
            cursor += stride
    return candidates


def blocks_slot(appointment: Appointment, now: datetime, exclude_appointment_id: int | None = None) -> bool:
    """Whether an existing appointment occupies its interval for conflict purposes."""
    if exclude_appointment_id is not None and appointment.id == exclude_appointment_id:
        return False
    if appointment.status in INACTIVE_STATUSES:
        return False
    if appointment.status == AppointmentStatus.DRAFT and settings.draft_hold_minutes is not None:
        now_utc = now.astimezone(UTC).replace(tzinfo=None) if now.tzinfo else now
        if appointment.created_at + timedelta(minutes=settings.draft_hold_minutes) <= now_utc:
            return False
    return True


def _blocking_by_date(
    appointments: Iterable[Appointment], now: datetime, exclude_appointment_id: int | None
) -> dict[date, list[TimeInterval]]:
    by_date: dict[date, list[TimeInterval]] = defaultdict(list)
    for appointment in appointments:
        if blocks_slot(appointment, now, exclude_appointment_id):
            by_date[appointment.appointment_date].append(
                TimeInterval.from_times(appointment.start_time, appointment.end_time)
            )
    return by_date


def _is_past(d: date, interval: TimeInterval, now_local: datetime) -> bool:
    today = now_local.date()
    if d != today:
        return d < today
    return interval.start_time <= now_local.time()


def _hits_break(interval: TimeInterval, day_breaks: Sequence[BreakInterval]) -> bool:
    return any(interval.overlaps(b.interval) for b in day_breaks)


def _hits_appointment(interval: TimeInterval, day_appointments: Sequence[TimeInterval]) -> bool:
    return any(interval.overlaps(other) for other in day_appointments)


def filter_candidates(
    candidates: Iterable[TimeSlot],
    breaks: Sequence[Break],
    appointments: Iterable[Appointment],
    now: datetime,
    tz: ZoneInfo,
    exclude_appointment_id: int | None = None,
) -> list[TimeSlot]:
    """Drop candidates that are in the past, overlap a break, or overlap a blocking appointment.

    ``exclude_appointment_id`` lets the appointment being rescheduled offer its own slot.
    Input order is preserved.
    """
    now_local = civil_now(now, tz)
    blocking = _blocking_by_date(appointments, now, exclude_appointment_id)
    breaks_by_dow = {dow: resolve_breaks(breaks, dow) for dow in range(7)}
    surviving: list[TimeSlot] = []
    for slot in candidates:
        interval = _slot_interval(slot)
        if _is_past(slot.date, interval, now_local):
            continue
        if _hits_break(interval, breaks_by_dow[day_of_week(slot.date)]):
            continue
        if _hits_appointment(interval, blocking.get(slot.date, [])):
            continue
        surviving.append(slot)
    return surviving


def conflict_reason(
    d: date,
    interval: TimeInterval,
    schedules: Sequence[WeeklySchedule],
    breaks: Sequence[Break],
    appointments: Iterable[Appointment],
    now: datetime,
    tz: ZoneInfo,
    exclude_appointment_id: int | None = None,
) -> str | None:
    """Why a requested interval cannot be booked right now, or None if it is free."""
    working = resolve_working_hours(schedules, d)
    if working is None or not working.contains(interval):
        return "outside working hours"
    if _is_past(d, interval, civil_now(now, tz)):
        return "in the past"
    if _hits_break(interval, resolve_breaks(breaks, day_of_week(d))):
        return "overlaps a break"
    blocking = _blocking_by_date(appointments, now, exclude_appointment_id)
    if _hits_appointment(interval, blocking.get(d, [])):
        return "overlaps another appointment"
    return None


def _with_own_slot(
    candidates: list[TimeSlot],
    schedules: Sequence[WeeklySchedule],
    appointments: Iterable[Appointment],
    appointment_id: int,
) -> list[TimeSlot]:
    """Add the current slot of the appointment being moved; it may sit off the grid."""
    own = next((a for a in appointments if a.id == appointment_id), None)
    if own is None:
        return candidates
    working = resolve_working_hours(schedules, own.appointment_date)
    if working is None or not working.contains(TimeInterval.from_times(own.start_time, own.end_time)):
        return candidates
    if any(s.date == own.appointment_date and s.start_time == own.start_time for s in candidates):
        return candidates
    slot = TimeSlot(
        professional_id=own.professional_id,
        date=own.appointment_date,
        start_time=own.start_time,
        end_time=own.end_time,
    )
    return sorted([*candidates, slot], key=lambda s: (s.date, s.start_time))


def aggregate_slots(per_professional: Mapping[int, Sequence[TimeSlot]]) -> list[AggregatedSlot]:
    """Merge per-professional slots into one grid, one backing professional per time.

    Professionals are visited in ascending id order and the first one offering a
    (date, start) keeps it.
    """
    merged: dict[tuple, AggregatedSlot] = {}
    for professional_id in sorted(per_professional):
        for slot in per_professional[professional_id]:
            key = (slot.date, slot.start_time)
            if key in merged:
                continue
            merged[key] = AggregatedSlot(
                date=slot.date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                assigned_professional_id=professional_id,
            )
    return [merged[key] for key in sorted(merged)]


async def compute_slots(
    session: AsyncSession,
    professional_id: int,
    date_from: date,
    date_to: date,
    now: datetime,
    service_id: int | None = None,
    exclude_appointment_id: int | None = None,
) -> list[TimeSlot]:
    validate_range(date_from, date_to)
    professional = await store.get_professional(session, professional_id)
    duration, buffer = await resolve_duration(session, professional, service_id)
    schedules = await store.get_weekly_schedule(session, professional_id)
    if not any(s.is_available for s in schedules):
        logger.info("Professional %s has no working hours configured", professional_id)
        return []
    breaks = await store.get_breaks(session, professional_id)
    appointments = await store.get_appointments(session, professional_id, date_from, date_to)
    tz = resolve_timezone(professional.timezone)
    candidates = generate_candidates(professional_id, date_from, date_to, schedules, duration, buffer)
    if exclude_appointment_id is not None:
        candidates = _with_own_slot(candidates, schedules, appointments, exclude_appointment_id)
    slots = filter_candidates(candidates, breaks, appointments, now, tz, exclude_appointment_id)
    logger.debug(
        "Professional %s %s..%s: %d candidates, %d free",
        professional_id, date_from, date_to, len(candidates), len(slots),
    )
    return slots


async def compute_aggregated_slots(
    session: AsyncSession,
    professional_ids: Iterable[int],
    date_from: date,
    date_to: date,
    now: datetime,
    service_id: int | None = None,
) -> list[AggregatedSlot]:
    validate_range(date_from, date_to)
    per_professional: dict[int, list[TimeSlot]] = {}
    # One AsyncSession cannot run queries concurrently, so professionals are fetched in turn
    for professional_id in sorted(set(professional_ids)):
        per_professional[professional_id] = await compute_slots(
            session, professional_id, date_from, date_to, now, service_id=service_id
        )
    return aggregate_slots(per_professional)
