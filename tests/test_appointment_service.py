import asyncio
from datetime import time, timedelta

import pytest

from booking_engine.core.errors import InvalidRange, InvalidTransition, NotFound, SlotConflict
from booking_engine.models import Actor, AppointmentCreate, AppointmentStatus, NewSlot, Service
from booking_engine.services import appointment_service
from booking_engine.services.slot_service import compute_aggregated_slots, compute_slots
from factories import MONDAY, MONDAY_DOW, NOW, TUESDAY, seed_professional


def _booking(professional_id, start, **overrides):
    data = {
        "professional_id": professional_id,
        "appointment_date": MONDAY,
        "start_time": start,
        "first_name": "Grace",
        "last_name": "Hopper",
        "email": "grace@example.com",
    }
    data.update(overrides)
    return AppointmentCreate(**data)


def _starts(slots):
    return [s.start_time for s in slots]


@pytest.mark.asyncio
async def test_compute_slots_matches_the_weekly_template(session):
    pro = await seed_professional(session, breaks=[(MONDAY_DOW, time(10), time(10, 30))])

    slots = await compute_slots(session, pro.id, MONDAY, MONDAY + timedelta(days=6), NOW)

    assert _starts(slots) == [time(9), time(9, 30), time(10, 30), time(11), time(11, 30)]
    assert {s.date for s in slots} == {MONDAY}


@pytest.mark.asyncio
async def test_compute_slots_is_repeatable(session):
    pro = await seed_professional(session)
    await appointment_service.book(session, _booking(pro.id, time(10)), NOW)

    first = await compute_slots(session, pro.id, MONDAY, MONDAY, NOW)
    second = await compute_slots(session, pro.id, MONDAY, MONDAY, NOW)

    assert first == second
    assert time(10) not in _starts(first)


@pytest.mark.asyncio
async def test_professional_without_hours_has_no_slots(session):
    pro = await seed_professional(session, hours={})
    assert await compute_slots(session, pro.id, MONDAY, TUESDAY, NOW) == []


@pytest.mark.asyncio
async def test_service_duration_and_buffer_drive_the_grid(session):
    pro = await seed_professional(session)
    service = Service(name="Consultation", duration_minutes=45, buffer_minutes=15)
    session.add(service)
    await session.commit()

    slots = await compute_slots(session, pro.id, MONDAY, MONDAY, NOW, service_id=service.id)

    assert [(s.start_time, s.end_time) for s in slots] == [
        (time(9), time(9, 45)),
        (time(10), time(10, 45)),
        (time(11), time(11, 45)),
    ]


@pytest.mark.asyncio
async def test_compute_slots_rejects_bad_input(session):
    pro = await seed_professional(session)

    with pytest.raises(InvalidRange):
        await compute_slots(session, pro.id, TUESDAY, MONDAY, NOW)
    with pytest.raises(NotFound):
        await compute_slots(session, 999, MONDAY, MONDAY, NOW)
    with pytest.raises(NotFound):
        await compute_slots(session, pro.id, MONDAY, MONDAY, NOW, service_id=999)


@pytest.mark.asyncio
async def test_aggregated_slots_assign_lowest_professional_first(session):
    first = await seed_professional(session, name="First")
    second = await seed_professional(session, name="Second", hours={MONDAY_DOW: (time(11), time(13))})
    await appointment_service.book(session, _booking(first.id, time(11)), NOW)

    merged = await compute_aggregated_slots(session, [second.id, first.id], MONDAY, MONDAY, NOW)
    by_start = {s.start_time: s.assigned_professional_id for s in merged}

    assert by_start[time(9)] == first.id
    assert by_start[time(11)] == second.id  # first is booked at 11:00
    assert by_start[time(11, 30)] == first.id
    assert by_start[time(12, 30)] == second.id
    assert await compute_aggregated_slots(session, [], MONDAY, MONDAY, NOW) == []


@pytest.mark.asyncio
async def test_book_computes_end_time_and_issues_a_token(session):
    pro = await seed_professional(session, duration=45)

    appointment = await appointment_service.book(session, _booking(pro.id, time(9)), NOW)

    assert appointment.id is not None
    assert appointment.end_time == time(9, 45)
    assert appointment.status == AppointmentStatus.CONFIRMED
    assert appointment.cancellation_token
    assert appointment.created_at == NOW.replace(tzinfo=None)


@pytest.mark.asyncio
async def test_double_booking_is_refused(session):
    pro = await seed_professional(session)
    await appointment_service.book(session, _booking(pro.id, time(9)), NOW)

    with pytest.raises(SlotConflict):
        await appointment_service.book(session, _booking(pro.id, time(9, 15), first_name="Other"), NOW)

    appointments = await appointment_service.list_appointments(session, pro.id, MONDAY, MONDAY)
    assert len(appointments) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "start",
    [time(8, 30), time(11, 45), time(23, 45)],
    ids=["before-opening", "past-closing", "past-midnight"],
)
async def test_booking_outside_working_hours_is_refused(session, start):
    pro = await seed_professional(session)
    with pytest.raises(SlotConflict):
        await appointment_service.book(session, _booking(pro.id, start), NOW)


@pytest.mark.asyncio
async def test_booking_in_the_past_or_on_a_break_is_refused(session):
    pro = await seed_professional(session, breaks=[(MONDAY_DOW, time(10), time(10, 30))])

    with pytest.raises(SlotConflict):
        await appointment_service.book(session, _booking(pro.id, time(10)), NOW)
    with pytest.raises(SlotConflict):
        await appointment_service.book(session, _booking(pro.id, time(9)), NOW + timedelta(days=7))


@pytest.mark.asyncio
async def test_cannot_book_in_a_closed_status(session):
    pro = await seed_professional(session)
    with pytest.raises(InvalidTransition):
        await appointment_service.book(
            session, _booking(pro.id, time(9), status=AppointmentStatus.COMPLETED), NOW
        )


@pytest.mark.asyncio
async def test_concurrent_bookings_for_one_slot_yield_exactly_one_winner(session_maker):
    async with session_maker() as s:
        pro = await seed_professional(s)

    async def attempt(first_name):
        async with session_maker() as s:
            try:
                return await appointment_service.book(s, _booking(pro.id, time(9), first_name=first_name), NOW)
            except SlotConflict as exc:
                return exc

    results = await asyncio.gather(*(attempt(f"Client {i}") for i in range(5)))

    conflicts = [r for r in results if isinstance(r, SlotConflict)]
    assert len(conflicts) == 4
    async with session_maker() as s:
        stored = await appointment_service.list_appointments(s, pro.id, MONDAY, MONDAY)
    assert len(stored) == 1


@pytest.mark.asyncio
async def test_reschedule_moves_the_appointment_and_keeps_history(session):
    pro = await seed_professional(session)
    original = await appointment_service.book(session, _booking(pro.id, time(9)), NOW)
    old_token = original.cancellation_token

    replacement = await appointment_service.reschedule(
        session, original.id, NewSlot(appointment_date=MONDAY, start_time=time(10)), NOW, rescheduled_by=Actor.CLIENT
    )

    assert replacement.start_time == time(10)
    assert replacement.end_time == time(10, 30)
    assert replacement.rescheduled_from_id == original.id
    assert replacement.rescheduled_by == Actor.CLIENT
    assert replacement.cancellation_token not in (None, old_token)

    active = await appointment_service.list_appointments(session, pro.id, MONDAY, MONDAY)
    assert [(a.id, a.start_time) for a in active] == [(replacement.id, time(10))]

    everything = await appointment_service.list_appointments(session, pro.id, MONDAY, MONDAY, include_inactive=True)
    assert {a.status for a in everything} == {AppointmentStatus.CONFIRMED, AppointmentStatus.RESCHEDULED}

    history = await appointment_service.get_history(session, replacement.id)
    assert [a.id for a in history] == [original.id, replacement.id]
    assert history[0].status == AppointmentStatus.RESCHEDULED
    assert history[0].cancellation_token is None
    assert [a.id for a in await appointment_service.get_history(session, original.id)] == [original.id, replacement.id]

    slots = await compute_slots(session, pro.id, MONDAY, MONDAY, NOW)
    assert time(9) in _starts(slots)
    assert time(10) not in _starts(slots)


@pytest.mark.asyncio
async def test_reschedule_may_overlap_its_own_old_slot(session):
    pro = await seed_professional(session, duration=60)
    original = await appointment_service.book(session, _booking(pro.id, time(9)), NOW)

    offered = await compute_slots(session, pro.id, MONDAY, MONDAY, NOW, exclude_appointment_id=original.id)
    assert time(9) in _starts(offered)

    replacement = await appointment_service.reschedule(
        session, original.id, NewSlot(appointment_date=MONDAY, start_time=time(9, 30)), NOW
    )
    assert (replacement.start_time, replacement.end_time) == (time(9, 30), time(10, 30))


@pytest.mark.asyncio
async def test_reschedule_into_a_taken_slot_changes_nothing(session):
    pro = await seed_professional(session)
    moving = await appointment_service.book(session, _booking(pro.id, time(9)), NOW)
    await appointment_service.book(session, _booking(pro.id, time(10), first_name="Other"), NOW)

    with pytest.raises(SlotConflict):
        await appointment_service.reschedule(
            session, moving.id, NewSlot(appointment_date=MONDAY, start_time=time(10)), NOW
        )

    await session.refresh(moving)
    assert moving.status == AppointmentStatus.CONFIRMED
    assert len(await appointment_service.list_appointments(session, pro.id, MONDAY, MONDAY, include_inactive=True)) == 2


@pytest.mark.asyncio
async def test_cancelled_appointment_cannot_be_rescheduled(session):
    pro = await seed_professional(session)
    appointment = await appointment_service.book(session, _booking(pro.id, time(9)), NOW)
    await appointment_service.cancel(session, appointment.id, Actor.PROFESSIONAL, NOW)

    with pytest.raises(InvalidTransition):
        await appointment_service.reschedule(
            session, appointment.id, NewSlot(appointment_date=MONDAY, start_time=time(10)), NOW
        )


@pytest.mark.asyncio
async def test_cancel_frees_the_slot(session):
    pro = await seed_professional(session)
    appointment = await appointment_service.book(session, _booking(pro.id, time(9)), NOW)

    cancelled = await appointment_service.cancel(session, appointment.id, Actor.PROFESSIONAL, NOW)

    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.cancelled_by == Actor.PROFESSIONAL
    assert cancelled.cancelled_at == NOW.replace(tzinfo=None)
    assert time(9) in _starts(await compute_slots(session, pro.id, MONDAY, MONDAY, NOW))

    rebooked = await appointment_service.book(session, _booking(pro.id, time(9), first_name="Next"), NOW)
    assert rebooked.id != appointment.id

    with pytest.raises(InvalidTransition):
        await appointment_service.cancel(session, appointment.id, Actor.PROFESSIONAL, NOW)


@pytest.mark.asyncio
async def test_cancel_by_token_is_single_use(session):
    pro = await seed_professional(session)
    appointment = await appointment_service.book(session, _booking(pro.id, time(9)), NOW)
    token = appointment.cancellation_token

    cancelled = await appointment_service.cancel_by_token(session, token, NOW)

    assert cancelled.id == appointment.id
    assert cancelled.cancelled_by == Actor.CLIENT
    assert cancelled.cancellation_token is None
    with pytest.raises(NotFound):
        await appointment_service.cancel_by_token(session, token, NOW)


@pytest.mark.asyncio
async def test_status_updates_follow_the_lifecycle(session):
    pro = await seed_professional(session)
    pending = await appointment_service.book(
        session, _booking(pro.id, time(9), status=AppointmentStatus.PENDING), NOW
    )

    confirmed = await appointment_service.update_status(session, pending.id, AppointmentStatus.CONFIRMED)
    assert confirmed.status == AppointmentStatus.CONFIRMED

    completed = await appointment_service.update_status(session, pending.id, AppointmentStatus.COMPLETED)
    assert completed.status == AppointmentStatus.COMPLETED
    # completed appointments keep their slot
    assert time(9) not in _starts(await compute_slots(session, pro.id, MONDAY, MONDAY, NOW))

    with pytest.raises(InvalidTransition):
        await appointment_service.update_status(session, pending.id, AppointmentStatus.NO_SHOW)
    with pytest.raises(InvalidTransition):
        await appointment_service.cancel(session, pending.id, Actor.CLIENT, NOW)


@pytest.mark.asyncio
async def test_status_update_cannot_cancel_or_touch_drafts(session):
    pro = await seed_professional(session)
    draft = await appointment_service.book(session, _booking(pro.id, time(9), status=AppointmentStatus.DRAFT), NOW)

    with pytest.raises(InvalidTransition):
        await appointment_service.update_status(session, draft.id, AppointmentStatus.CANCELLED)
    with pytest.raises(InvalidTransition):
        await appointment_service.update_status(session, draft.id, AppointmentStatus.CONFIRMED)
    # the draft still holds its slot
    with pytest.raises(SlotConflict):
        await appointment_service.book(session, _booking(pro.id, time(9)), NOW)


@pytest.mark.asyncio
async def test_unknown_records_raise_not_found(session):
    pro = await seed_professional(session)

    with pytest.raises(NotFound):
        await appointment_service.book(session, _booking(999, time(9)), NOW)
    with pytest.raises(NotFound):
        await appointment_service.cancel(session, 999, Actor.CLIENT, NOW)
    with pytest.raises(NotFound):
        await appointment_service.get_history(session, 999)
    with pytest.raises(NotFound):
        await appointment_service.list_appointments(session, 999, MONDAY, MONDAY)
    with pytest.raises(InvalidRange):
        await appointment_service.list_appointments(session, pro.id, TUESDAY, MONDAY)


@pytest.mark.asyncio
async def test_expired_draft_releases_its_slot(session):
    pro = await seed_professional(session)
    await appointment_service.book(session, _booking(pro.id, time(9), status=AppointmentStatus.DRAFT), NOW)
    later = NOW + timedelta(days=2)

    assert time(9) in _starts(await compute_slots(session, pro.id, MONDAY, MONDAY, later))

    booked = await appointment_service.book(session, _booking(pro.id, time(9), first_name="Next"), later)
    assert booked.status == AppointmentStatus.CONFIRMED
    assert time(9) not in _starts(await compute_slots(session, pro.id, MONDAY, MONDAY, later))


@pytest.mark.asyncio
async def test_off_grid_appointment_is_offered_its_own_slot_when_rescheduling(session):
    pro = await seed_professional(session)
    appointment = await appointment_service.book(session, _booking(pro.id, time(9, 10)), NOW)

    plain = await compute_slots(session, pro.id, MONDAY, MONDAY, NOW)
    offered = await compute_slots(session, pro.id, MONDAY, MONDAY, NOW, exclude_appointment_id=appointment.id)

    assert time(9, 10) not in _starts(plain)
    assert _starts(offered) == [time(9), time(9, 10), time(9, 30), time(10), time(10, 30), time(11), time(11, 30)]
    own = offered[1]
    assert own.end_time == time(9, 40)

    moved = await appointment_service.reschedule(
        session, appointment.id, NewSlot(appointment_date=MONDAY, start_time=time(9, 10)), NOW
    )
    assert (moved.start_time, moved.end_time) == (time(9, 10), time(9, 40))


@pytest.mark.asyncio
async def test_booking_start_is_truncated_to_the_minute(session):
    pro = await seed_professional(session)

    appointment = await appointment_service.book(session, _booking(pro.id, time(9, 0, 30, 500)), NOW)

    assert (appointment.start_time, appointment.end_time) == (time(9), time(9, 30))
    moved = await appointment_service.reschedule(
        session, appointment.id, NewSlot(appointment_date=MONDAY, start_time=time(10, 0, 45)), NOW
    )
    assert (moved.start_time, moved.end_time) == (time(10), time(10, 30))


@pytest.mark.asyncio
async def test_timestamps_round_trip_as_naive_utc(session_maker):
    async with session_maker() as s:
        pro = await seed_professional(s)
        appointment = await appointment_service.book(s, _booking(pro.id, time(9)), NOW)
        await appointment_service.cancel(s, appointment.id, Actor.CLIENT, NOW + timedelta(hours=1))

    async with session_maker() as s:
        stored = await appointment_service.get_history(s, appointment.id)

    assert stored[0].created_at == NOW.replace(tzinfo=None)
    assert stored[0].cancelled_at == (NOW + timedelta(hours=1)).replace(tzinfo=None)
