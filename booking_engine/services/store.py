"""Reads the engine needs from the appointment store.

Every call goes to the database; nothing is cached across requests because
schedules, breaks and appointments can change between two queries.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.errors import NotFound
from booking_engine.models.appointment import INACTIVE_STATUSES, Appointment
from booking_engine.models.professional import Professional
from booking_engine.models.schedule import Break, WeeklySchedule
from booking_engine.models.service import Service


async def get_professional(session: AsyncSession, professional_id: int) -> Professional:
    professional = await session.get(Professional, professional_id)
    if professional is None:
        raise NotFound(f"Professional {professional_id} not found.")
    return professional


async def lock_professional(session: AsyncSession, professional_id: int) -> Professional:
    """Row-lock the professional until the transaction ends (no-op on SQLite).

    Every write to a professional's appointments takes this lock first, which
    serializes concurrent check-then-write sequences for that professional.
    """
    result = await session.execute(
        select(Professional)
        .where(Professional.id == professional_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    professional = result.scalar_one_or_none()
    if professional is None:
        raise NotFound(f"Professional {professional_id} not found.")
    return professional


async def get_weekly_schedule(session: AsyncSession, professional_id: int) -> list[WeeklySchedule]:
    result = await session.execute(
        select(WeeklySchedule)
        .where(WeeklySchedule.professional_id == professional_id)
        .order_by(WeeklySchedule.day_of_week)
    )
    return list(result.scalars().all())


async def get_breaks(session: AsyncSession, professional_id: int) -> list[Break]:
    result = await session.execute(
        select(Break)
        .where(Break.professional_id == professional_id)
        .order_by(Break.day_of_week, Break.start_time)
    )
    return list(result.scalars().all())


async def get_service(session: AsyncSession, service_id: int) -> Service:
    service = await session.get(Service, service_id)
    if service is None:
        raise NotFound(f"Service {service_id} not found.")
    return service


async def get_appointments(
    session: AsyncSession,
    professional_id: int,
    date_from: date,
    date_to: date,
    include_inactive: bool = False,
) -> list[Appointment]:
    """Appointments of a professional between two dates (both inclusive).

    Cancelled and rescheduled records are left out unless ``include_inactive``.
    """
    q = (
        select(Appointment)
        .where(
            Appointment.professional_id == professional_id,
            Appointment.appointment_date >= date_from,
            Appointment.appointment_date <= date_to,
        )
        .order_by(Appointment.appointment_date, Appointment.start_time, Appointment.id)
    )
    if not include_inactive:
        q = q.where(Appointment.status.not_in(list(INACTIVE_STATUSES)))
    # Always reload so a commit-time re-check sees rows written by other sessions
    result = await session.execute(q.execution_options(populate_existing=True))
    return list(result.scalars().all())


async def get_appointment(session: AsyncSession, appointment_id: int) -> Appointment:
    appointment = await session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFound(f"Appointment {appointment_id} not found.")
    return appointment


async def get_appointment_by_token(session: AsyncSession, token: str) -> Appointment:
    result = await session.execute(select(Appointment).where(Appointment.cancellation_token == token))
    appointment = result.scalar_one_or_none()
    if appointment is None:
        raise NotFound("Appointment not found or link already used.")
    return appointment
