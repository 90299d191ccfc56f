"""Error taxonomy of the availability engine.

Only ``SlotConflict`` is worth retrying, and only after re-fetching availability:
the same slot must never be re-submitted. Everything else is a caller mistake.
An empty slot list is a normal result and is never reported as an error.
"""

from fastapi import status


class BookingError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Booking request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRange(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid date range or duration."


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found."


class SlotConflict(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "This time slot is no longer available. Please refresh availability and choose another slot."


class InvalidTransition(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "This appointment can no longer be modified."
