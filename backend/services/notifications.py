"""Post-commit notifications.

These run after the booking transaction has committed (as FastAPI background
tasks), so a failure here is logged and dropped rather than undoing the
booking.
"""

import logging
from dataclasses import dataclass

from backend.core import config

logger = logging.getLogger(__name__)

DISPLAY_TIME_FORMAT = '%A, %B %d at %I:%M %p UTC'


@dataclass(frozen=True)
class Notification:
    to: str
    subject: str
    body: str


def appointment_confirmed(patient_name: str, patient_email: str, doctor_name: str, start_time) -> Notification:
    when = start_time.strftime(DISPLAY_TIME_FORMAT)
    return Notification(
        to=patient_email,
        subject='Appointment Confirmed - HealthMate',
        body=(
            f'Hello {patient_name},\n'
            f'Your appointment with {doctor_name} has been confirmed for {when}.\n'
            'Thank you for using HealthMate!'
        ),
    )


def appointment_rescheduled(patient_name: str, patient_email: str, doctor_name: str, start_time) -> Notification:
    when = start_time.strftime(DISPLAY_TIME_FORMAT)
    return Notification(
        to=patient_email,
        subject='Appointment Rescheduled - HealthMate',
        body=(
            f'Hello {patient_name},\n'
            f'Your appointment with {doctor_name} has been moved to {when}.\n'
            'Thank you for using HealthMate!'
        ),
    )


def deliver(notification: Notification) -> None:
    # Delivery is log-only; a mail transport plugs in here.
    logger.info(
        'Notification from %s to %s: %s',
        config.NOTIFICATION_SENDER,
        notification.to,
        notification.subject,
    )
    logger.debug('Notification body:\n%s', notification.body)


def send_notification(notification: Notification) -> None:
    if not config.NOTIFICATIONS_ENABLED:
        logger.debug('Notifications disabled; skipping %r to %s', notification.subject, notification.to)
        return

    try:
        deliver(notification)
    except Exception:
        logger.exception('Failed to send notification %r to %s', notification.subject, notification.to)
