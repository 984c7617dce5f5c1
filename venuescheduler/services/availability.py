"""
Overlap detection against existing bookings and blackout windows.

The checks here are an advisory pre-check used to build a helpful conflict
response. The booking store's atomic insert is the authoritative guarantee:
two requests can both pass ``has_conflict`` and only one insert will succeed.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from pendulum import DateTime

from ..domain.alternatives import candidate_windows
from ..domain.models import (
    BLOCKING_STATUSES,
    Blackout,
    BookingConflict,
    BookingRecord,
    BookingSummary,
    TimeInterval,
)
from .ports import BookingStore, upstream

logger = logging.getLogger(__name__)


class AvailabilityIndex:
    """
    Conflict detector for a tenant's venues.

    Args:
        store: Booking store to query
        alternatives_count: Maximum number of alternative windows to propose
        increment_days: Step between forward shifts
        horizon_days: Furthest forward shift
    """

    def __init__(
        self,
        store: BookingStore,
        *,
        alternatives_count: int = 3,
        increment_days: int = 1,
        horizon_days: int = 14,
    ) -> None:
        self._store = store
        self.alternatives_count = alternatives_count
        self.increment_days = increment_days
        self.horizon_days = horizon_days

    async def find_conflicts(
        self,
        tenant_id: str,
        venue_id: str,
        interval: TimeInterval,
        exclude_booking_id: str | None = None,
    ) -> List[BookingRecord]:
        """Return blocking bookings overlapping ``interval``, earliest first."""
        with upstream("bookings"):
            records = await self._store.find_overlapping(
                tenant_id, venue_id, interval, BLOCKING_STATUSES
            )

        # Re-filter so a lenient store cannot leak other tenants or terminal statuses.
        conflicts = [
            record
            for record in records
            if record.tenant_id == tenant_id
            and record.venue_id == venue_id
            and record.is_blocking
            and record.id != exclude_booking_id
            and record.interval.overlaps(interval)
        ]
        return sorted(conflicts, key=lambda record: (record.interval.start, record.id))

    async def find_blackouts(
        self,
        tenant_id: str,
        venue_id: str,
        interval: TimeInterval,
    ) -> List[Blackout]:
        """Return blackout windows overlapping ``interval``, earliest first."""
        with upstream("bookings"):
            blackouts = await self._store.find_blackouts(tenant_id, venue_id, interval)
        overlapping = [b for b in blackouts if b.venue_id == venue_id and b.interval.overlaps(interval)]
        return sorted(overlapping, key=lambda blackout: blackout.interval.start)

    async def has_conflict(
        self,
        tenant_id: str,
        venue_id: str,
        interval: TimeInterval,
        exclude_booking_id: str | None = None,
    ) -> bool:
        """True when a blocking booking or a blackout overlaps ``interval``."""
        if await self.find_conflicts(tenant_id, venue_id, interval, exclude_booking_id):
            return True
        return bool(await self.find_blackouts(tenant_id, venue_id, interval))

    async def check(
        self,
        tenant_id: str,
        venue_id: str,
        interval: TimeInterval,
        *,
        earliest_start: DateTime | None = None,
        exclude_booking_id: str | None = None,
    ) -> BookingConflict | None:
        """
        Build a conflict payload for ``interval``, or return None when it is free.
        """
        conflicts = await self.find_conflicts(tenant_id, venue_id, interval, exclude_booking_id)
        blackouts = await self.find_blackouts(tenant_id, venue_id, interval)
        if not conflicts and not blackouts:
            return None
        return await self.build_conflict(
            tenant_id,
            venue_id,
            interval,
            conflicts,
            blackouts,
            earliest_start=earliest_start,
            exclude_booking_id=exclude_booking_id,
        )

    async def build_conflict(
        self,
        tenant_id: str,
        venue_id: str,
        interval: TimeInterval,
        conflicts: Sequence[BookingRecord],
        blackouts: Sequence[Blackout] = (),
        *,
        earliest_start: DateTime | None = None,
        exclude_booking_id: str | None = None,
    ) -> BookingConflict:
        """Assemble a ``BookingConflict`` including alternative windows."""
        blocking = [record.interval for record in conflicts] + [b.interval for b in blackouts]
        alternatives = await self.suggest_alternatives(
            tenant_id,
            venue_id,
            interval,
            blocking,
            earliest_start=earliest_start,
            exclude_booking_id=exclude_booking_id,
        )
        return BookingConflict(
            conflicting_bookings=tuple(BookingSummary.from_record(r) for r in conflicts),
            blackouts=tuple(blackouts),
            alternative_windows=tuple(alternatives),
            message=_conflict_message(interval, conflicts, blackouts),
        )

    async def suggest_alternatives(
        self,
        tenant_id: str,
        venue_id: str,
        interval: TimeInterval,
        blocking: Sequence[TimeInterval] = (),
        *,
        earliest_start: DateTime | None = None,
        exclude_booking_id: str | None = None,
    ) -> List[TimeInterval]:
        """
        Try nearby windows of the same length and keep the free ones.

        Gives up after ``horizon_days`` even if fewer than
        ``alternatives_count`` windows were found.
        """
        found: List[TimeInterval] = []
        for candidate in candidate_windows(
            interval,
            blocking,
            increment_days=self.increment_days,
            horizon_days=self.horizon_days,
            earliest_start=earliest_start,
        ):
            if len(found) >= self.alternatives_count:
                break
            if not await self.has_conflict(tenant_id, venue_id, candidate, exclude_booking_id):
                found.append(candidate)

        if not found:
            logger.info(
                "No alternative window within %s days for venue %s", self.horizon_days, venue_id
            )
        return found


def _conflict_message(
    interval: TimeInterval,
    conflicts: Sequence[BookingRecord],
    blackouts: Sequence[Blackout],
) -> str:
    parts = []
    if conflicts:
        parts.append(f"{len(conflicts)} existing booking(s)")
    if blackouts:
        parts.append(f"{len(blackouts)} blackout period(s)")
    overlap = " and ".join(parts) if parts else "another reservation"
    return f"The requested window {interval} overlaps {overlap}"
