from datetime import UTC, datetime

from booking_engine.core.db import get_session

__all__ = ["get_now", "get_session"]


def get_now() -> datetime:
    """Current instant for availability and booking rules; overridden in tests."""
    return datetime.now(UTC)
