"""Exceptions raised by the booking services.

Every class carries the HTTP status the routes answer with, so the route
layer can translate any ``BookingError`` without a lookup table.
"""


class BookingError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BookingValidationError(BookingError):
    """Missing or malformed input (reason, ids, amounts)."""

    status_code = 400


class NotFoundError(BookingError):
    status_code = 404


class FailedPreconditionError(BookingError):
    """The target exists but is not in a state that allows the operation."""

    status_code = 409


class SlotUnavailableError(BookingError):
    status_code = 409


class ExternalServiceError(BookingError):
    """A store or payment gateway call failed."""

    status_code = 502
