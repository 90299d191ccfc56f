from booking_engine.models.professional import Professional
from booking_engine.models.schedule import Break, BreakKind, WeeklySchedule
from booking_engine.models.service import Service
from booking_engine.models.appointment import (
    Appointment,
    AppointmentBooked,
    AppointmentCreate,
    AppointmentPublic,
    AppointmentStatus,
    Actor,
    NewSlot,
)
from booking_engine.models.slot import AggregatedSlot, TimeSlot

__all__ = [
    "Professional",
    "WeeklySchedule",
    "Break",
    "BreakKind",
    "Service",
    "Appointment",
    "AppointmentBooked",
    "AppointmentCreate",
    "AppointmentPublic",
    "AppointmentStatus",
    "Actor",
    "NewSlot",
    "TimeSlot",
    "AggregatedSlot",
]
