"""
Domain models for venue intervals, slots, bookings and price breakdowns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, List, Tuple

import pendulum
from pendulum import DateTime

from .exceptions import ErrorCode

CANONICAL_TIMEZONE = "Asia/Kolkata"

# Minor currency units per major unit (paise per rupee, cents per dollar).
MINOR_UNITS = 100


def to_minor_units(amount: Decimal | int | str) -> int:
    """Convert a major-unit amount to integer minor units, rounding half up."""
    value = Decimal(str(amount)) * MINOR_UNITS
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    """Convert integer minor units back to a two-place decimal for presentation."""
    return (Decimal(amount) / MINOR_UNITS).quantize(Decimal("0.01"))


def as_plain_date(value: date) -> date:
    """Strip datetime/pendulum subclasses down to a plain ``datetime.date``."""
    return date(value.year, value.month, value.day)


@dataclass(frozen=True)
class TimeInterval:
    """
    Immutable half-open interval ``[start, end)`` between two absolute instants.

    Invariant: both ends are timezone-aware and start is before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("Interval bounds must carry an explicit timezone")
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    @classmethod
    def from_iso(cls, start: str, end: str) -> "TimeInterval":
        """Build an interval from two ISO-8601 strings, normalised to UTC."""
        return cls(
            start=pendulum.parse(start).in_timezone("UTC"),
            end=pendulum.parse(end).in_timezone("UTC"),
        )

    def duration_hours(self) -> float:
        """Return the duration in hours."""
        return (self.end - self.start).total_seconds() / 3600

    def overlaps(self, other: "TimeInterval") -> bool:
        """Half-open overlap: touching endpoints do not overlap."""
        return self.start < other.end and other.start < self.end

    def shift(self, *, days: int = 0, hours: int = 0) -> "TimeInterval":
        """Return the same-length interval moved forward by the given amount."""
        return TimeInterval(
            start=self.start.add(days=days, hours=hours),
            end=self.end.add(days=days, hours=hours),
        )

    def starting_at(self, start: DateTime) -> "TimeInterval":
        """Return an interval of the same duration beginning at ``start``."""
        length = timedelta(seconds=(self.end - self.start).total_seconds())
        return TimeInterval(start=start, end=start + length)

    def ending_at(self, end: DateTime) -> "TimeInterval":
        """Return an interval of the same duration finishing at ``end``."""
        length = timedelta(seconds=(self.end - self.start).total_seconds())
        return TimeInterval(start=end - length, end=end)

    def calendar_dates(self, tz: str = CANONICAL_TIMEZONE) -> List[date]:
        """Local calendar dates touched by the interval (end instant excluded)."""
        first = self.start.in_timezone(tz).date()
        last = self.end.in_timezone(tz).subtract(microseconds=1).date()
        dates: List[date] = []
        current = as_plain_date(first)
        while current <= last:
            dates.append(current)
            current += timedelta(days=1)
        return dates

    def format_display(self, tz: str = CANONICAL_TIMEZONE) -> str:
        """Human-facing rendering in the canonical timezone."""
        start = self.start.in_timezone(tz)
        end = self.end.in_timezone(tz)
        return f"{start.format('DD MMM YYYY, HH:mm')} to {end.format('DD MMM YYYY, HH:mm')}"

    def to_dict(self) -> Dict[str, str]:
        return {
            "start": self.start.in_timezone("UTC").to_iso8601_string(),
            "end": self.end.in_timezone("UTC").to_iso8601_string(),
        }

    def __str__(self) -> str:
        return self.format_display()


@dataclass(frozen=True)
class VenueSlotDefinition:
    """A named session within a day carrying a flat price multiplier."""
    id: str
    label: str
    start_offset: time
    end_offset: time
    price_multiplier: Decimal = Decimal("1")
    active: bool = True

    def __post_init__(self):
        if not self.id or not self.label:
            raise ValueError("Slot id and label are required")
        if self.price_multiplier < 0:
            raise ValueError("Slot price multiplier cannot be negative")

    def window_display(self) -> str:
        return f"{self.start_offset.strftime('%H:%M')} - {self.end_offset.strftime('%H:%M')}"

    def matches(self, interval: TimeInterval, tz: str = CANONICAL_TIMEZONE) -> bool:
        """
        True when ``interval`` starts and ends on this session's boundaries
        in local time. Multi-day intervals are allowed.

        A session ending at 23:59 may also run up to the following midnight.
        """
        start = interval.start.in_timezone(tz)
        end = interval.end.in_timezone(tz)
        if (start.hour, start.minute) != (self.start_offset.hour, self.start_offset.minute):
            return False

        session_end = (self.end_offset.hour, self.end_offset.minute)
        if (end.hour, end.minute) == session_end:
            return True
        if session_end == (23, 59):
            last_minute = end.subtract(minutes=1)
            return (last_minute.hour, last_minute.minute) == session_end
        return False


# Sessions exposed by a venue whose owner never configured any.
DEFAULT_FULL_DAY_SLOT = VenueSlotDefinition(
    id="full_day",
    label="Full Day",
    start_offset=time(0, 0),
    end_offset=time(23, 59),
    price_multiplier=Decimal("1"),
    active=True,
)


@dataclass(frozen=True)
class Venue:
    """Venue attributes the scheduler needs from the persistence collaborator."""
    id: str
    tenant_id: str
    capacity: int | None
    is_active: bool = True
    base_rate: Decimal = Decimal("0")
    currency: str = "INR"
    name: str = ""

    def __post_init__(self):
        if self.capacity is not None and self.capacity < 0:
            raise ValueError("Capacity cannot be negative")
        if self.base_rate < 0:
            raise ValueError("Base rate cannot be negative")


class BookingStatus(str, Enum):
    TEMP_HOLD = "temp_hold"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


BLOCKING_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.TEMP_HOLD, BookingStatus.PENDING, BookingStatus.CONFIRMED}
)


@dataclass(frozen=True)
class BookingRequest:
    """Ephemeral input of a single scheduling attempt."""
    tenant_id: str
    venue_id: str
    start_raw: Any
    end_raw: Any
    slot_id: str | None = None
    guest_count: int | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class BookingRecord:
    """A booking as owned by the persistence collaborator."""
    id: str
    tenant_id: str
    venue_id: str
    interval: TimeInterval
    status: BookingStatus
    slot_id: str | None = None
    guest_count: int | None = None
    booking_number: str | None = None
    total_minor: int | None = None
    currency: str | None = None
    hold_expires_at: DateTime | None = None
    idempotency_key: str | None = None

    @property
    def is_blocking(self) -> bool:
        return self.status in BLOCKING_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "booking_number": self.booking_number,
            "tenant_id": self.tenant_id,
            "venue_id": self.venue_id,
            "interval": self.interval.to_dict(),
            "status": self.status.value,
            "slot_id": self.slot_id,
            "guest_count": self.guest_count,
            "total": str(from_minor_units(self.total_minor)) if self.total_minor is not None else None,
            "currency": self.currency,
            "hold_expires_at": (
                self.hold_expires_at.in_timezone("UTC").to_iso8601_string()
                if self.hold_expires_at is not None
                else None
            ),
        }


@dataclass(frozen=True)
class BookingSummary:
    """Privacy-safe view of a conflicting booking (no customer details)."""
    id: str
    booking_number: str | None
    interval: TimeInterval
    status: BookingStatus

    @classmethod
    def from_record(cls, record: BookingRecord) -> "BookingSummary":
        return cls(
            id=record.id,
            booking_number=record.booking_number,
            interval=record.interval,
            status=record.status,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "booking_number": self.booking_number,
            "interval": self.interval.to_dict(),
            "status": self.status.value,
        }


@dataclass(frozen=True)
class Blackout:
    """Owner-declared window during which a venue cannot be booked."""
    id: str
    venue_id: str
    interval: TimeInterval
    reason: str = ""
    is_maintenance: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "interval": self.interval.to_dict(),
            "reason": self.reason,
            "is_maintenance": self.is_maintenance,
        }


@dataclass(frozen=True)
class BookingConflict:
    """Conflict payload attached to a rejected booking attempt."""
    conflicting_bookings: Tuple[BookingSummary, ...]
    alternative_windows: Tuple[TimeInterval, ...]
    message: str
    blackouts: Tuple[Blackout, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "conflicting_bookings": [b.to_dict() for b in self.conflicting_bookings],
            "blackouts": [b.to_dict() for b in self.blackouts],
            "alternative_windows": [w.to_dict() for w in self.alternative_windows],
        }


@dataclass(frozen=True)
class PriceLine:
    """One date of a price breakdown. Amounts are integer minor units."""
    date: date
    base_rate_minor: int
    multiplier: Decimal
    applied_rate_minor: int
    applied_rates: Tuple[str, ...] = ()

    @property
    def base_rate(self) -> Decimal:
        return from_minor_units(self.base_rate_minor)

    @property
    def applied_rate(self) -> Decimal:
        return from_minor_units(self.applied_rate_minor)

    @property
    def day_of_week(self) -> str:
        return self.date.strftime("%A")

    @property
    def display_date(self) -> str:
        return f"{self.date.strftime('%b')} {self.date.day}, {self.date.year}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "day_of_week": self.day_of_week,
            "display_date": self.display_date,
            "base_rate": str(self.base_rate),
            "multiplier": str(self.multiplier),
            "applied_rate": str(self.applied_rate),
            "applied_rates": list(self.applied_rates),
        }


@dataclass(frozen=True)
class PricingBreakdown:
    """
    Per-date pricing detail and total.

    Invariant: ``total_minor`` is the exact sum of the per-line applied rates.
    """
    venue_id: str
    slot_id: str
    lines: Tuple[PriceLine, ...] = ()
    currency: str = "INR"
    total_minor: int = field(init=False)

    def __post_init__(self):
        object.__setattr__(
            self, "total_minor", sum(line.applied_rate_minor for line in self.lines)
        )

    @property
    def total(self) -> Decimal:
        return from_minor_units(self.total_minor)

    @property
    def average_per_day(self) -> Decimal:
        if not self.lines:
            return from_minor_units(0)
        return (from_minor_units(self.total_minor) / len(self.lines)).quantize(Decimal("0.01"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "venue_id": self.venue_id,
            "slot_id": self.slot_id,
            "currency": self.currency,
            "per_date": [line.to_dict() for line in self.lines],
            "total": str(self.total),
        }


class RequestState(str, Enum):
    """Lifecycle of a single scheduling attempt."""
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    CONFLICT_CHECKED = "CONFLICT_CHECKED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class BookingAccepted:
    """Terminal success: the store accepted the proposed hold."""
    booking: BookingRecord
    quote: PricingBreakdown

    @property
    def status(self) -> RequestState:
        return RequestState.ACCEPTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "booking": self.booking.to_dict(),
            "quote": self.quote.to_dict(),
        }


@dataclass(frozen=True)
class BookingRejected:
    """Terminal failure with a stable code and the stage the request reached."""
    reason: ErrorCode
    detail: str
    stage: RequestState
    conflict: BookingConflict | None = None

    @property
    def status(self) -> RequestState:
        return RequestState.REJECTED

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "status": self.status.value,
            "reason": self.reason.value,
            "detail": self.detail,
        }
        if self.conflict is not None:
            payload["conflict"] = self.conflict.to_dict()
        return payload


ScheduleResult = BookingAccepted | BookingRejected
