from sqlmodel import Field, SQLModel

from booking_engine.core.config import settings


class Professional(SQLModel, table=True):
    __tablename__ = "professionals"
    id: int | None = Field(default=None, primary_key=True)
    name: str
    # IANA name; all civil dates/times are local to it
    timezone: str = Field(default_factory=lambda: settings.default_timezone)
    # Used when a booking does not reference a service
    appointment_duration_minutes: int = Field(default_factory=lambda: settings.default_appointment_duration_minutes)
    buffer_minutes: int = Field(default_factory=lambda: settings.default_buffer_minutes)
