from booking_engine.core.errors import InvalidTransition
from booking_engine.models.appointment import AppointmentStatus

S = AppointmentStatus

INITIAL_STATUSES = frozenset({S.DRAFT, S.PENDING, S.CONFIRMED})

# Anything missing from a row is forbidden; empty rows are terminal states
TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED, S.COMPLETED, S.NO_SHOW, S.RESCHEDULED}),
    S.CONFIRMED: frozenset({S.CANCELLED, S.COMPLETED, S.NO_SHOW, S.RESCHEDULED}),
    S.DRAFT: frozenset(),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
    S.RESCHEDULED: frozenset(),
}


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in TRANSITIONS[current]


def ensure_transition(current: AppointmentStatus, target: AppointmentStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Cannot change an appointment from '{current.value}' to '{target.value}'."
        )


def ensure_initial(status: AppointmentStatus) -> None:
    if status not in INITIAL_STATUSES:
        raise InvalidTransition(f"Appointments cannot be created as '{status.value}'.")


def is_terminal(status: AppointmentStatus) -> bool:
    return not TRANSITIONS[status]
