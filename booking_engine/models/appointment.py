from datetime import UTC, date, datetime, time
from enum import Enum

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class AppointmentStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"
    RESCHEDULED = "rescheduled"


class Actor(str, Enum):
    """Who performed a cancellation or reschedule."""

    CLIENT = "client"
    PROFESSIONAL = "professional"


# Statuses that no longer hold their slot; kept only for history
INACTIVE_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.RESCHEDULED})


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: int | None = Field(default=None, primary_key=True)
    professional_id: int = Field(foreign_key="professionals.id", index=True)
    service_id: int | None = Field(default=None, foreign_key="services.id")
    appointment_date: date = Field(index=True)  # civil date in the professional's timezone
    start_time: time
    end_time: time
    status: AppointmentStatus = Field(default=AppointmentStatus.CONFIRMED, index=True)
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    beneficiary_name: str | None = None
    beneficiary_relation: str | None = None
    notes: str | None = None
    cancelled_by: Actor | None = None
    cancelled_at: datetime | None = Field(default=None, sa_type=DateTime())
    cancellation_token: str | None = Field(default=None, unique=True, index=True)
    rescheduled_from_id: int | None = Field(default=None, foreign_key="appointments.id", index=True)
    rescheduled_by: Actor | None = None
    rescheduled_at: datetime | None = Field(default=None, sa_type=DateTime())
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime())

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_STATUSES


class AppointmentCreate(SQLModel):
    professional_id: int
    service_id: int | None = None
    appointment_date: date
    start_time: time
    status: AppointmentStatus = AppointmentStatus.CONFIRMED
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    beneficiary_name: str | None = None
    beneficiary_relation: str | None = None
    notes: str | None = None


class NewSlot(SQLModel):
    appointment_date: date
    start_time: time
    status: AppointmentStatus = AppointmentStatus.CONFIRMED


class AppointmentPublic(SQLModel):
    id: int
    professional_id: int
    service_id: int | None = None
    appointment_date: date
    start_time: time
    end_time: time
    status: AppointmentStatus
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    beneficiary_name: str | None = None
    beneficiary_relation: str | None = None
    notes: str | None = None
    cancelled_by: Actor | None = None
    cancelled_at: datetime | None = None
    rescheduled_from_id: int | None = None
    rescheduled_by: Actor | None = None
    rescheduled_at: datetime | None = None
    created_at: datetime


class AppointmentBooked(AppointmentPublic):
    """Returned once, on creation, so the client can cancel without an account."""

    cancellation_token: str | None = None
