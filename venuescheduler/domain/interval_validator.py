"""
Syntactic and business-rule validation of a requested booking interval.

Pure logic: no clock reads, no I/O. ``now`` is always passed in.
Rules are applied in order and the first failure wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import pendulum
from pendulum import DateTime

from .exceptions import ErrorCode, IntervalValidationError
from .models import TimeInterval

# Trailing ``Z`` or ``+HH:MM`` / ``+HHMM`` / ``+HH`` offset.
_EXPLICIT_OFFSET = re.compile(r"(?:[zZ]|[+-]\d{2}(?::?\d{2})?)$")
_DATE_TIME = re.compile(r"\d[Tt ]\d")


@dataclass(frozen=True)
class Ok:
    interval: TimeInterval

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: IntervalValidationError

    @property
    def is_ok(self) -> bool:
        return False


ValidationResult = Ok | Err


class IntervalValidator:
    """
    Validates raw (start, end) pairs against lead-time and duration policy.

    Args:
        min_lead_time_hours: Minimum gap between ``now`` and the start instant
        min_duration_hours: Shortest bookable duration
        max_duration_hours: Longest bookable duration
    """

    def __init__(
        self,
        min_lead_time_hours: float = 2,
        min_duration_hours: float = 1,
        max_duration_hours: float = 168,
    ) -> None:
        if min_duration_hours > max_duration_hours:
            raise ValueError("min_duration_hours must not exceed max_duration_hours")
        self.min_lead_time_hours = min_lead_time_hours
        self.min_duration_hours = min_duration_hours
        self.max_duration_hours = max_duration_hours

    def validate(self, start_raw: Any, end_raw: Any, now: datetime) -> ValidationResult:
        """
        Validate a raw interval.

        Args:
            start_raw: ISO-8601 string or timezone-aware datetime
            end_raw: ISO-8601 string or timezone-aware datetime
            now: Reference instant for the lead-time rule

        Returns:
            ``Ok`` with the interval normalised to UTC, or ``Err`` with the first
            rule that failed.
        """
        start = parse_instant(start_raw)
        end = parse_instant(end_raw)
        if start is None or end is None:
            return _err(
                ErrorCode.INVALID_DATE_FORMAT,
                "Dates must be in ISO 8601 format with an explicit offset "
                "(e.g., 2025-12-25T10:00:00.000Z)",
            )

        if start >= end:
            return _err(ErrorCode.INVALID_TIME_RANGE, "Start time must be before end time")

        reference = _to_utc(now)
        earliest_start = reference + timedelta(hours=self.min_lead_time_hours)
        if start < earliest_start:
            return _err(
                ErrorCode.INSUFFICIENT_LEAD_TIME,
                f"Bookings must be made at least {self.min_lead_time_hours:g} hours in advance",
            )

        interval = TimeInterval(start=start, end=end)
        duration = interval.duration_hours()
        if duration < self.min_duration_hours:
            return _err(
                ErrorCode.BOOKING_TOO_SHORT,
                f"Minimum booking duration is {self.min_duration_hours:g} hour(s)",
            )
        if duration > self.max_duration_hours:
            return _err(
                ErrorCode.BOOKING_TOO_LONG,
                f"Maximum booking duration is {self.max_duration_hours:g} hours",
            )

        return Ok(interval)


def parse_instant(raw: Any) -> DateTime | None:
    """
    Parse an absolute instant, returning ``None`` when it is not one.

    Strings must be ISO-8601 date-times carrying an explicit offset; datetimes
    must be timezone-aware. The result is expressed in UTC.
    """
    if isinstance(raw, datetime):
        if raw.tzinfo is None or raw.utcoffset() is None:
            return None
        return _to_utc(raw)

    if not isinstance(raw, str):
        return None

    text = raw.strip()
    if not _DATE_TIME.search(text) or not _EXPLICIT_OFFSET.search(text):
        return None

    try:
        parsed = pendulum.parse(text)
    except (ValueError, TypeError):
        return None

    if not isinstance(parsed, DateTime):
        return None

    return parsed.in_timezone("UTC")


def _to_utc(value: datetime) -> DateTime:
    if isinstance(value, DateTime):
        return value.in_timezone("UTC")
    return pendulum.instance(value).in_timezone("UTC")


def _err(code: ErrorCode, detail: str) -> Err:
    return Err(IntervalValidationError(code, detail))
