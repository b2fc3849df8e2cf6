"""
Booking error kinds.

Each error carries the HTTP status the API layer answers with.
"""


class BookingError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """A required field is missing or malformed."""
    status_code = 400


class SlotTaken(BookingError):
    """Another appointment already holds the doctor/location/time slot."""
    status_code = 409


class NotFound(BookingError):
    status_code = 404


class StoreFailure(BookingError):
    """The spreadsheet backend failed (network, auth, bad response)."""
    status_code = 500


class CalendarCellUnresolved(BookingError):
    """No calendar cell matches the requested day and time."""
    status_code = 500
