"""
Domain-specific exception hierarchy for the booking and access-token core.

Every error carries a machine-readable ``reason`` so callers can report the
failure without parsing messages.
"""


class AccessBookingError(Exception):
    """Base class for all application-level errors."""

    reason = "Error"


class ValidationError(AccessBookingError):
    """Local input validation failure. Never reaches a store."""


class InvalidDuration(ValidationError):
    """Raised when a session length is zero or negative."""

    reason = "InvalidDuration"


class InvalidGrace(ValidationError):
    """Raised when the grace period is negative."""

    reason = "InvalidGrace"


class InvalidField(ValidationError):
    """Raised when a token field cannot be framed (e.g. contains a pipe)."""

    reason = "InvalidField"


class TokenError(AccessBookingError):
    """Raised when an access token cannot be decoded."""


class MalformedToken(TokenError):
    """Raised for a wrong field count, missing prefix or non-numeric field."""

    reason = "MalformedToken"


class ChecksumMismatch(TokenError):
    """Raised when the embedded checksum disagrees with the fields."""

    reason = "ChecksumMismatch"


class StoreError(AccessBookingError):
    """Raised by reservation store adapters."""


class StoreConflict(StoreError):
    """The store definitively refused the reservation."""

    reason = "Conflict"


class StoreUnreachable(StoreError):
    """The store could not be reached or answered unusably."""

    reason = "Unavailable"


class StoreWriteUnconfirmed(StoreUnreachable):
    """A write was sent but its outcome is unknown; it may still land."""

    reason = "Unconfirmed"



class BookingError(AccessBookingError):
    """Raised by ``BookingResult.raise_for_status`` for unsuccessful bookings."""

    def __init__(self, reason: str, message: str = ""):
        super().__init__(message or reason)
        self.reason = reason


class BookingRejected(BookingError):
    """User-correctable rejection. Retrying the same request will not help."""


class BookingFailed(BookingError):
    """Transient infrastructure failure."""
