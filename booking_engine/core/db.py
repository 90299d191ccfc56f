from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from booking_engine.core.config import settings

_ASYNC_SCHEMES = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def to_async_url(database_url: str) -> str:
    """Rewrite a sync database URL for the async drivers.

    asyncpg does not accept psycopg params like sslmode/channel_binding, so they are
    stripped; SSL is enabled via connect_args instead.
    """
    url = make_url(database_url)
    drivername = _ASYNC_SCHEMES.get(url.drivername, url.drivername)
    url = url.set(drivername=drivername).difference_update_query(["sslmode", "channel_binding"])
    return url.render_as_string(hide_password=False)


def _engine_options(async_url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.env == "development" and not async_url.startswith("sqlite")}
    if async_url.startswith("sqlite"):
        return options
    options.update(pool_pre_ping=True, pool_size=5, max_overflow=10)
    if settings.database_ssl:
        options["connect_args"] = {"ssl": True}
    return options


def build_engine(database_url: str) -> AsyncEngine:
    async_url = to_async_url(database_url)
    return create_async_engine(async_url, **_engine_options(async_url))


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = build_engine(settings.database_url)
async_session_maker = build_session_maker(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create tables if using create_all; prefer Alembic in production."""
    # Register every table on the metadata before create_all
    import booking_engine.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
