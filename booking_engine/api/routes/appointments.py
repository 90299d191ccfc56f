from datetime import date, datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps import get_now, get_session
from booking_engine.api.schemas.appointment import (
    BookAppointmentRequest,
    CancelRequest,
    RescheduleRequest,
    StatusUpdateRequest,
)
from booking_engine.models.appointment import Appointment, AppointmentBooked, AppointmentPublic
from booking_engine.services import appointment_service
from booking_engine.services.notification_service import notify_appointment_event

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _to_public(a: Appointment) -> AppointmentPublic:
    return AppointmentPublic.model_validate(a)


def _to_booked(a: Appointment) -> AppointmentBooked:
    return AppointmentBooked.model_validate(a)


@router.post("", response_model=AppointmentBooked, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    body: BookAppointmentRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> AppointmentBooked:
    """Book a slot. 409 means the slot was taken meanwhile: refresh availability and pick again."""
    appointment = await appointment_service.book(session, body, now)
    background_tasks.add_task(notify_appointment_event, "booked", appointment)
    return _to_booked(appointment)


@router.get("", response_model=list[AppointmentPublic])
async def list_appointments(
    professional_id: int = Query(...),
    date_from: date = Query(...),
    date_to: date = Query(...),
    include_inactive: bool = Query(False, description="Include cancelled and rescheduled records"),
    session: AsyncSession = Depends(get_session),
) -> list[AppointmentPublic]:
    appointments = await appointment_service.list_appointments(
        session, professional_id, date_from, date_to, include_inactive=include_inactive
    )
    return [_to_public(a) for a in appointments]


@router.get("/{appointment_id}/history", response_model=list[AppointmentPublic])
async def appointment_history(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
) -> list[AppointmentPublic]:
    return [_to_public(a) for a in await appointment_service.get_history(session, appointment_id)]


@router.post(
    "/{appointment_id}/reschedule",
    response_model=AppointmentBooked,
    status_code=status.HTTP_201_CREATED,
)
async def reschedule_appointment(
    appointment_id: int,
    body: RescheduleRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> AppointmentBooked:
    replacement = await appointment_service.reschedule(
        session, appointment_id, body.to_slot(), now, rescheduled_by=body.rescheduled_by
    )
    background_tasks.add_task(notify_appointment_event, "rescheduled", replacement)
    return _to_booked(replacement)


@router.post("/{appointment_id}/cancel", response_model=AppointmentPublic)
async def cancel_appointment(
    appointment_id: int,
    body: CancelRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> AppointmentPublic:
    appointment = await appointment_service.cancel(session, appointment_id, body.cancelled_by, now)
    background_tasks.add_task(notify_appointment_event, "cancelled", appointment)
    return _to_public(appointment)


@router.post("/cancel/{token}", response_model=AppointmentPublic)
async def cancel_appointment_by_token(
    token: str,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> AppointmentPublic:
    """Client self-cancellation from the link sent with the booking."""
    appointment = await appointment_service.cancel_by_token(session, token, now)
    background_tasks.add_task(notify_appointment_event, "cancelled", appointment)
    return _to_public(appointment)


@router.patch("/{appointment_id}/status", response_model=AppointmentPublic)
async def update_appointment_status(
    appointment_id: int,
    body: StatusUpdateRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
) -> AppointmentPublic:
    appointment = await appointment_service.update_status(session, appointment_id, body.status)
    background_tasks.add_task(notify_appointment_event, "status_changed", appointment)
    return _to_public(appointment)
