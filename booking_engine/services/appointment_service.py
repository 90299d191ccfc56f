"""Appointment lifecycle: the single write path for appointments.

Every write re-checks the requested slot against freshly loaded schedule, break
and appointment rows while holding the professional's write lock, then commits
before releasing it. A slot computed earlier in the user's session is never
trusted.
"""

import asyncio
import logging
import secrets
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.errors import InvalidRange, InvalidTransition, SlotConflict
from booking_engine.core.timeutils import MINUTES_PER_DAY, TimeInterval, resolve_timezone, to_minutes
from booking_engine.models.appointment import (
    Actor,
    Appointment,
    AppointmentCreate,
    AppointmentStatus,
    NewSlot,
)
from booking_engine.models.professional import Professional
from booking_engine.services import store
from booking_engine.services.slot_service import conflict_reason, resolve_duration
from booking_engine.services.status_machine import ensure_initial, ensure_transition

logger = logging.getLogger(__name__)

# In-process serialization per professional; the row lock taken in
# store.lock_professional covers writers in other processes.
_professional_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

# Statuses reachable through update_status; cancel and reschedule have their own paths
_STATUS_UPDATES = frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW})


def _to_naive_utc(dt: datetime) -> datetime:
    """Convert to naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def _new_token() -> str:
    return secrets.token_urlsafe(24)


@asynccontextmanager
async def _serialized_write(session: AsyncSession, professional_id: int) -> AsyncIterator[Professional]:
    async with _professional_locks[professional_id]:
        yield await store.lock_professional(session, professional_id)


async def _commit(session: AsyncSession) -> None:
    try:
        await session.commit()
    except IntegrityError as exc:
        # Raised by the store's no-overlap constraint when another writer got there first
        await session.rollback()
        logger.warning("Appointment write rejected by the store: %s", exc.orig)
        raise SlotConflict() from exc


def _requested_interval(start_time, duration_minutes: int) -> TimeInterval:
    start = to_minutes(start_time)  # seconds are dropped; the stored start is minute-aligned
    # end times are stored as time-of-day, so midnight itself is out of reach
    if start + duration_minutes >= MINUTES_PER_DAY:
        raise SlotConflict("This time slot runs past the end of the day. Please choose another slot.")
    return TimeInterval(start, start + duration_minutes)


async def _ensure_free(
    session: AsyncSession,
    professional: Professional,
    d: date,
    interval: TimeInterval,
    now: datetime,
    exclude_appointment_id: int | None = None,
) -> None:
    schedules = await store.get_weekly_schedule(session, professional.id)
    breaks = await store.get_breaks(session, professional.id)
    appointments = await store.get_appointments(session, professional.id, d, d)
    reason = conflict_reason(
        d,
        interval,
        schedules,
        breaks,
        appointments,
        now,
        resolve_timezone(professional.timezone),
        exclude_appointment_id,
    )
    if reason:
        logger.warning(
            "Slot conflict for professional %s on %s %s-%s: %s",
            professional.id, d, interval.start_time, interval.end_time, reason,
        )
        raise SlotConflict()


async def book(session: AsyncSession, data: AppointmentCreate, now: datetime) -> Appointment:
    """Create an appointment after re-validating its slot; raises SlotConflict if taken."""
    ensure_initial(data.status)
    async with _serialized_write(session, data.professional_id) as professional:
        duration, _ = await resolve_duration(session, professional, data.service_id)
        interval = _requested_interval(data.start_time, duration)
        await _ensure_free(session, professional, data.appointment_date, interval, now)
        appointment = Appointment(
            **data.model_dump(exclude={"start_time"}),
            start_time=interval.start_time,
            end_time=interval.end_time,
            cancellation_token=_new_token(),
            created_at=_to_naive_utc(now),
        )
        session.add(appointment)
        await _commit(session)
    logger.info(
        "Booked appointment %s for professional %s on %s %s-%s (%s)",
        appointment.id, appointment.professional_id, appointment.appointment_date,
        appointment.start_time, appointment.end_time, appointment.status.value,
    )
    return appointment


async def reschedule(
    session: AsyncSession,
    appointment_id: int,
    new_slot: NewSlot,
    now: datetime,
    rescheduled_by: Actor = Actor.PROFESSIONAL,
) -> Appointment:
    """Move an appointment: the old record becomes 'rescheduled' and a linked one is created.

    Both writes commit together. The appointment's own current slot counts as free.
    """
    ensure_initial(new_slot.status)
    original = await store.get_appointment(session, appointment_id)
    async with _serialized_write(session, original.professional_id) as professional:
        await session.refresh(original)
        ensure_transition(original.status, AppointmentStatus.RESCHEDULED)
        duration = to_minutes(original.end_time) - to_minutes(original.start_time)
        interval = _requested_interval(new_slot.start_time, duration)
        await _ensure_free(
            session, professional, new_slot.appointment_date, interval, now,
            exclude_appointment_id=original.id,
        )
        stamp = _to_naive_utc(now)
        original.status = AppointmentStatus.RESCHEDULED
        original.rescheduled_by = rescheduled_by
        original.rescheduled_at = stamp
        original.cancellation_token = None
        # Release the old interval before the replacement is inserted
        await session.flush()
        replacement = Appointment(
            professional_id=original.professional_id,
            service_id=original.service_id,
            appointment_date=new_slot.appointment_date,
            start_time=interval.start_time,
            end_time=interval.end_time,
            status=new_slot.status,
            first_name=original.first_name,
            last_name=original.last_name,
            email=original.email,
            phone=original.phone,
            beneficiary_name=original.beneficiary_name,
            beneficiary_relation=original.beneficiary_relation,
            notes=original.notes,
            rescheduled_from_id=original.id,
            rescheduled_by=rescheduled_by,
            rescheduled_at=stamp,
            cancellation_token=_new_token(),
            created_at=stamp,
        )
        session.add(replacement)
        await _commit(session)
    logger.info(
        "Rescheduled appointment %s to %s (%s %s-%s) by %s",
        original.id, replacement.id, replacement.appointment_date,
        replacement.start_time, replacement.end_time, rescheduled_by.value,
    )
    return replacement


async def cancel(session: AsyncSession, appointment_id: int, cancelled_by: Actor, now: datetime) -> Appointment:
    """Cancel an appointment; its slot is free again as soon as this commits."""
    appointment = await store.get_appointment(session, appointment_id)
    async with _serialized_write(session, appointment.professional_id):
        await session.refresh(appointment)
        ensure_transition(appointment.status, AppointmentStatus.CANCELLED)
        appointment.status = AppointmentStatus.CANCELLED
        appointment.cancelled_by = cancelled_by
        appointment.cancelled_at = _to_naive_utc(now)
        appointment.cancellation_token = None  # invalidate so the link cannot be reused
        await _commit(session)
    logger.info("Cancelled appointment %s by %s", appointment.id, cancelled_by.value)
    return appointment


async def cancel_by_token(session: AsyncSession, token: str, now: datetime) -> Appointment:
    appointment = await store.get_appointment_by_token(session, token)
    return await cancel(session, appointment.id, Actor.CLIENT, now)


async def update_status(
    session: AsyncSession, appointment_id: int, status: AppointmentStatus
) -> Appointment:
    """Confirm a pending appointment, or mark one completed / no-show."""
    if status not in _STATUS_UPDATES:
        raise InvalidTransition(f"Use the cancel or reschedule operation to set '{status.value}'.")
    appointment = await store.get_appointment(session, appointment_id)
    async with _serialized_write(session, appointment.professional_id):
        await session.refresh(appointment)
        ensure_transition(appointment.status, status)
        previous = appointment.status
        appointment.status = status
        await _commit(session)
    logger.info("Appointment %s: %s -> %s", appointment.id, previous.value, status.value)
    return appointment


async def list_appointments(
    session: AsyncSession,
    professional_id: int,
    date_from: date,
    date_to: date,
    include_inactive: bool = False,
) -> list[Appointment]:
    """Calendar listing; cancelled and rescheduled records only with ``include_inactive``."""
    if date_from > date_to:
        raise InvalidRange(f"date_from {date_from} is after date_to {date_to}.")
    await store.get_professional(session, professional_id)
    return await store.get_appointments(
        session, professional_id, date_from, date_to, include_inactive=include_inactive
    )


async def get_history(session: AsyncSession, appointment_id: int) -> list[Appointment]:
    """The reschedule chain containing an appointment, oldest record first."""
    current = await store.get_appointment(session, appointment_id)
    seen = {current.id}
    while current.rescheduled_from_id is not None and current.rescheduled_from_id not in seen:
        current = await store.get_appointment(session, current.rescheduled_from_id)
        seen.add(current.id)
    chain = [current]
    while True:
        result = await session.execute(
            select(Appointment)
            .where(Appointment.rescheduled_from_id == chain[-1].id)
            .order_by(Appointment.id)
        )
        successor = result.scalars().first()
        if successor is None or successor.id in {a.id for a in chain}:
            return chain
        chain.append(successor)
