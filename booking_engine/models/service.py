from sqlmodel import Field, SQLModel


class Service(SQLModel, table=True):
    __tablename__ = "services"
    id: int | None = Field(default=None, primary_key=True)
    name: str
    duration_minutes: int
    # Idle time after the service before the next slot may start
    buffer_minutes: int = 0
    price: int = 0  # cents
