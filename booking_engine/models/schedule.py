from datetime import time
from enum import Enum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class BreakKind(str, Enum):
    BREAK = "break"
    UNAVAILABILITY = "unavailability"


class WeeklySchedule(SQLModel, table=True):
    __tablename__ = "weekly_schedules"
    __table_args__ = (UniqueConstraint("professional_id", "day_of_week", name="uq_weekly_schedule_day"),)
    id: int | None = Field(default=None, primary_key=True)
    professional_id: int = Field(foreign_key="professionals.id", index=True)
    day_of_week: int = Field(ge=0, le=6)  # 0=Sunday .. 6=Saturday
    start_time: time
    end_time: time
    is_available: bool = True


class Break(SQLModel, table=True):
    """Recurring weekly break; applies to every week on ``day_of_week``."""

    __tablename__ = "breaks"
    id: int | None = Field(default=None, primary_key=True)
    professional_id: int = Field(foreign_key="professionals.id", index=True)
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    kind: BreakKind = BreakKind.BREAK
