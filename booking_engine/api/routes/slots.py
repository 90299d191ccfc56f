from datetime import date, datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps import get_now, get_session
from booking_engine.models.slot import AggregatedSlot, TimeSlot
from booking_engine.services.slot_service import compute_aggregated_slots, compute_slots

router = APIRouter(prefix="/slots", tags=["slots"])


@router.get("", response_model=list[TimeSlot])
async def available_slots(
    professional_id: int = Query(...),
    date_from: date = Query(...),
    date_to: date = Query(...),
    service_id: int | None = Query(None),
    reschedule_of: int | None = Query(None, description="Appointment being moved; its own slot stays offered"),
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> list[TimeSlot]:
    """Free slots of one professional, ordered by date then start time."""
    return await compute_slots(
        session,
        professional_id,
        date_from,
        date_to,
        now,
        service_id=service_id,
        exclude_appointment_id=reschedule_of,
    )


@router.get("/aggregated", response_model=list[AggregatedSlot])
async def aggregated_slots(
    professional_ids: list[int] = Query(...),
    date_from: date = Query(...),
    date_to: date = Query(...),
    service_id: int | None = Query(None),
    session: AsyncSession = Depends(get_session),
    now: datetime = Depends(get_now),
) -> list[AggregatedSlot]:
    """One merged grid for "any professional"; each time names the professional backing it."""
    return await compute_aggregated_slots(
        session, professional_ids, date_from, date_to, now, service_id=service_id
    )
