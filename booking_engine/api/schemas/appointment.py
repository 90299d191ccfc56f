from datetime import date, time

from pydantic import BaseModel, field_validator

from booking_engine.models.appointment import Actor, AppointmentCreate, AppointmentStatus, NewSlot

MAX_NOTES_LENGTH = 600


class BookAppointmentRequest(AppointmentCreate):
    @field_validator("first_name", "last_name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Name is required.")
        return normalized

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().lower() or None

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            return None
        if len(normalized) > MAX_NOTES_LENGTH:
            raise ValueError(f"Notes must be {MAX_NOTES_LENGTH} characters or fewer.")
        return normalized


class RescheduleRequest(BaseModel):
    appointment_date: date
    start_time: time
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    rescheduled_by: Actor = Actor.PROFESSIONAL

    def to_slot(self) -> NewSlot:
        return NewSlot(appointment_date=self.appointment_date, start_time=self.start_time, status=self.status)


class CancelRequest(BaseModel):
    cancelled_by: Actor


class StatusUpdateRequest(BaseModel):
    status: AppointmentStatus
