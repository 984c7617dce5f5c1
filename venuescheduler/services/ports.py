"""
Protocols describing the collaborators the scheduler depends on.

Persistence and catalog stores are async: the scheduler only suspends while
awaiting them. Concrete implementations live in ``venuescheduler.adapters``.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from typing import Collection, Iterator, List, Protocol

from pendulum import DateTime

from ..domain.exceptions import UpstreamUnavailableError
from ..domain.models import (
    Blackout,
    BookingRecord,
    BookingStatus,
    TimeInterval,
    Venue,
    VenueSlotDefinition,
)


class BookingStore(Protocol):
    """Persistence collaborator owning booking records and venues."""

    async def find_overlapping(
        self,
        tenant_id: str,
        venue_id: str,
        interval: TimeInterval,
        statuses: Collection[BookingStatus],
    ) -> List[BookingRecord]:
        """Return bookings of the venue overlapping ``interval`` in the given statuses."""

    async def insert_booking(self, record: BookingRecord) -> BookingRecord:
        """
        Atomically insert a booking.

        Must raise ``BookingConflictError`` when the insert would break the
        no-overlap guarantee for blocking statuses.
        """

    async def get_venue(self, tenant_id: str, venue_id: str) -> Venue | None:
        """Return the venue scoped to the tenant, or None."""

    async def find_blackouts(
        self,
        tenant_id: str,
        venue_id: str,
        interval: TimeInterval,
    ) -> List[Blackout]:
        """Return blackout windows of the venue overlapping ``interval``."""

    async def find_by_idempotency_key(self, tenant_id: str, key: str) -> BookingRecord | None:
        """Return the tenant's booking created with ``key``, or None."""


class CatalogStore(Protocol):
    """Catalog collaborator owning per-venue slot definitions."""

    async def list_slots(self, venue_id: str) -> List[VenueSlotDefinition]:
        """Return every slot of the venue, active or not."""

    async def get_slot(self, venue_id: str, slot_id: str) -> VenueSlotDefinition | None:
        """Return a slot regardless of its active flag, or None."""

    async def venue_exists(self, venue_id: str) -> bool:
        """True when the catalog knows the venue, even with no slots configured."""


class Clock(Protocol):
    def now(self) -> DateTime:
        """Return the current instant (timezone-aware)."""


@contextmanager
def upstream(collaborator: str) -> Iterator[None]:
    """Translate collaborator I/O failures into ``UpstreamUnavailableError``."""
    try:
        yield
    except (OSError, asyncio.TimeoutError) as exc:
        raise UpstreamUnavailableError(collaborator, str(exc) or type(exc).__name__) from exc
