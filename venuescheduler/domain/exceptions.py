"""
Domain-specific exception hierarchy for the venue scheduler.

Every error carries a stable ``ErrorCode`` so API-facing callers can map it
without parsing messages.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Stable error codes surfaced to API consumers."""

    INVALID_DATE_FORMAT = "INVALID_DATE_FORMAT"
    INVALID_TIME_RANGE = "INVALID_TIME_RANGE"
    INSUFFICIENT_LEAD_TIME = "INSUFFICIENT_LEAD_TIME"
    BOOKING_TOO_SHORT = "BOOKING_TOO_SHORT"
    BOOKING_TOO_LONG = "BOOKING_TOO_LONG"
    INVALID_GUEST_COUNT = "INVALID_GUEST_COUNT"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    VENUE_NOT_FOUND = "VENUE_NOT_FOUND"
    SLOT_NOT_FOUND = "SLOT_NOT_FOUND"
    BOOKING_CONFLICT = "BOOKING_CONFLICT"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"


class SchedulerError(Exception):
    """Base class for all scheduler errors."""

    code: ErrorCode

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class IntervalValidationError(SchedulerError):
    """A raw interval failed syntactic or business-rule checks."""


class VenueNotFoundError(SchedulerError):
    """Raised when a venue does not exist for the tenant or is inactive."""

    def __init__(self, venue_id: str) -> None:
        super().__init__(
            ErrorCode.VENUE_NOT_FOUND,
            "The specified venue does not exist or is inactive",
        )
        self.venue_id = venue_id


class SlotNotFoundError(SchedulerError):
    """Raised when a slot id does not resolve for a venue."""

    def __init__(self, venue_id: str, slot_id: str, detail: str | None = None) -> None:
        super().__init__(
            ErrorCode.SLOT_NOT_FOUND,
            detail or f"Slot '{slot_id}' is not configured for this venue",
        )
        self.venue_id = venue_id
        self.slot_id = slot_id


class BookingConflictError(SchedulerError):
    """
    Raised by a booking store when its atomic overlap guarantee rejects an insert.

    This is the authoritative conflict signal; any pre-check is advisory.
    """

    def __init__(self, message: str = "This time slot is no longer available") -> None:
        super().__init__(ErrorCode.BOOKING_CONFLICT, message)


class UpstreamUnavailableError(SchedulerError):
    """Raised when a persistence or catalog collaborator cannot be reached."""

    def __init__(self, collaborator: str, message: str) -> None:
        super().__init__(ErrorCode.UPSTREAM_UNAVAILABLE, f"{collaborator}: {message}")
        self.collaborator = collaborator
