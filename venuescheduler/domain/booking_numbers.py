"""
Human-readable booking numbers of the form ``PRE-YYYY-NNNNN``.
"""

import re
from typing import NamedTuple

DEFAULT_PREFIX = "VEN"
SEQUENCE_LENGTH = 5

_PATTERN = re.compile(rf"^([A-Z]{{3}})-(\d{{4}})-(\d{{{SEQUENCE_LENGTH}}})$")


class BookingNumber(NamedTuple):
    prefix: str
    year: int
    sequence: int


def tenant_prefix(tenant_name: str | None) -> str:
    """First three letters of the tenant name, upper-cased."""
    if not tenant_name:
        return DEFAULT_PREFIX
    letters = re.sub(r"[^a-zA-Z]", "", tenant_name)
    prefix = letters[:3].upper()
    return prefix if len(prefix) == 3 else DEFAULT_PREFIX


def format_booking_number(prefix: str, year: int, sequence: int) -> str:
    if sequence < 1:
        raise ValueError("Booking sequence starts at 1")
    return f"{prefix}-{year}-{sequence:0{SEQUENCE_LENGTH}d}"


def is_valid_booking_number(value: str) -> bool:
    return _PATTERN.match(value) is not None


def parse_booking_number(value: str) -> BookingNumber | None:
    match = _PATTERN.match(value)
    if match is None:
        return None
    prefix, year, sequence = match.groups()
    return BookingNumber(prefix=prefix, year=int(year), sequence=int(sequence))
