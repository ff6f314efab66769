"""Booking failure kinds.

Every failure the booking core can report is one of these. They are expected
outcomes, not crashes: the caller decides how to surface them, and the HTTP
layer maps each to ``status_code``.
"""

from fastapi import status


class BookingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidTimeRange(BookingError):
    """Start time is not strictly before end time."""


class NotAvailable(BookingError):
    """No availability block of the doctor covers the requested range."""


class SlotConflict(BookingError):
    """Another confirmed booking already holds the requested time."""

    status_code = status.HTTP_409_CONFLICT


class InvalidTransition(BookingError):
    """The appointment's current status does not allow the change."""

    status_code = status.HTTP_409_CONFLICT


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND


class Forbidden(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
