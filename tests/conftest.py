import os

import pytest
import pytest_asyncio

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_booking_engine.db")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")

from booking_engine.core.db import build_engine, build_session_maker, init_db  # noqa: E402
from booking_engine.services import appointment_service  # noqa: E402


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'booking.db'}")
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return build_session_maker(db_engine)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s


@pytest.fixture(autouse=True)
def reset_write_locks():
    # asyncio locks bind to the loop that first waits on them; each test has its own loop
    appointment_service._professional_locks.clear()
    yield
    appointment_service._professional_locks.clear()
