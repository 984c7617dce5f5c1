"""
Candidate generation for alternative booking windows.

Only produces candidates; whether a candidate is actually free is decided by
the availability index against the booking store.
"""

from datetime import timedelta
from typing import Iterable, Iterator, Sequence

from pendulum import DateTime

from .models import TimeInterval

# Gap left between an earlier suggestion and the booking it makes way for.
EARLIER_WINDOW_BUFFER = timedelta(minutes=15)


def candidate_windows(
    requested: TimeInterval,
    blocking: Sequence[TimeInterval],
    *,
    increment_days: int = 1,
    horizon_days: int = 14,
    earliest_start: DateTime | None = None,
) -> Iterator[TimeInterval]:
    """
    Yield same-length windows near the requested one, nearest first.

    1. The window starting right after the last blocking interval that
       overlaps the request ends, usually later the same day.
    2. The window ending ``EARLIER_WINDOW_BUFFER`` before the first
       overlapping blocking interval starts.
    3. The requested window shifted forward by ``increment_days`` steps,
       up to ``horizon_days``.

    Windows starting before ``earliest_start`` or more than ``horizon_days``
    after the requested start are skipped.
    """
    seen: set[TimeInterval] = set()
    latest_start = requested.start.add(days=horizon_days)

    for window in _raw_candidates(requested, blocking, increment_days, horizon_days):
        if earliest_start is not None and window.start < earliest_start:
            continue
        if window.start > latest_start:
            continue
        if window in seen:
            continue
        seen.add(window)
        yield window


def _raw_candidates(
    requested: TimeInterval,
    blocking: Iterable[TimeInterval],
    increment_days: int,
    horizon_days: int,
) -> Iterator[TimeInterval]:
    overlapping = [interval for interval in blocking if interval.overlaps(requested)]
    if overlapping:
        anchor = max(requested.end, max(interval.end for interval in overlapping))
        yield requested.starting_at(anchor)

        first_start = min(interval.start for interval in overlapping)
        yield requested.ending_at(first_start - EARLIER_WINDOW_BUFFER)

    if increment_days <= 0:
        return

    offset = increment_days
    while offset <= horizon_days:
        yield requested.shift(days=offset)
        offset += increment_days
