from datetime import date, time

from sqlmodel import SQLModel


class TimeSlot(SQLModel):
    """A bookable interval; computed per request and never stored."""

    professional_id: int
    date: date
    start_time: time
    end_time: time


class AggregatedSlot(SQLModel):
    date: date
    start_time: time
    end_time: time
    assigned_professional_id: int
