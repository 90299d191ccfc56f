from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./booking_engine.db"
    database_ssl: bool = False
    # Create tables on startup; prefer Alembic in production
    auto_create_tables: bool = True

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Slot/appointment business rules
    default_timezone: str = "America/Toronto"
    default_appointment_duration_minutes: int = 30
    default_buffer_minutes: int = 5
    max_range_days: int = 62
    # A draft stops holding its slot this long after creation; None holds it indefinitely
    draft_hold_minutes: int | None = 15

    # Env
    env: str = "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


settings = Settings()
