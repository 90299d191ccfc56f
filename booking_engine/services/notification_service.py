import logging

from booking_engine.models.appointment import Appointment

logger = logging.getLogger(__name__)

EVENTS = ("booked", "rescheduled", "cancelled", "status_changed")


def notify_appointment_event(event: str, appointment: Appointment) -> None:
    """Hand an appointment event to the notification collaborator.

    Delivery (email/SMS) lives outside this service; the event is logged so a log
    shipper or a subscriber can pick it up. Run from a background task.
    """
    if event not in EVENTS:
        raise ValueError(f"Unknown appointment event: {event}")
    logger.info(
        '{"event": "appointment.%s", "appointment_id": %s, "professional_id": %s, '
        '"date": "%s", "start": "%s", "status": "%s"}',
        event,
        appointment.id,
        appointment.professional_id,
        appointment.appointment_date.isoformat(),
        appointment.start_time.isoformat(timespec="minutes"),
        appointment.status.value,
    )
