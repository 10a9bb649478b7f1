"""
Domain-specific exception hierarchy for the booking engine.

Every error raised by the core is recoverable by the caller.
"""


class BookingError(Exception):
    """Base class for all booking engine errors."""


class ValidationError(BookingError, ValueError):
    """Raised for malformed input (bad duration, start >= end, unknown enum)."""


class NotFoundError(BookingError):
    """Raised when a referenced business, service or appointment does not exist."""


class ConflictError(BookingError):
    """
    Raised when the requested interval is taken at commit time.

    Callers should re-query availability and pick another slot rather than
    retrying the same call.
    """


class InvalidTransitionError(BookingError):
    """Raised when the booking state machine rejects a status change."""
