"""
In-memory booking and catalog stores.

``InMemoryBookingStore`` emulates the storage-level exclusion constraint on
``(tenant, venue, interval)`` for blocking statuses by serialising
check-and-insert under an ``asyncio.Lock``. It backs the CLI and the tests;
production deployments put a database with a real exclusion constraint
behind the same protocol.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import replace
from typing import Collection, Dict, Iterable, List, Tuple

from ..config import AppConfig
from ..domain.booking_numbers import format_booking_number, tenant_prefix
from ..domain.exceptions import BookingConflictError
from ..domain.models import (
    BLOCKING_STATUSES,
    Blackout,
    BookingRecord,
    BookingStatus,
    TimeInterval,
    Venue,
    VenueSlotDefinition,
)

logger = logging.getLogger(__name__)


class InMemoryBookingStore:
    """Booking store keeping venues, bookings and blackouts in dictionaries."""

    def __init__(
        self,
        venues: Iterable[Venue] = (),
        bookings: Iterable[BookingRecord] = (),
        blackouts: Iterable[Blackout] = (),
        tenant_names: Dict[str, str] | None = None,
    ) -> None:
        self._venues: Dict[Tuple[str, str], Venue] = {
            (venue.tenant_id, venue.id): venue for venue in venues
        }
        self._bookings: Dict[str, BookingRecord] = {}
        self._blackouts: List[Blackout] = list(blackouts)
        self._tenant_names = tenant_names or {}
        self._sequences: Dict[Tuple[str, int], int] = defaultdict(int)
        self._lock = asyncio.Lock()
        for record in bookings:
            self._bookings[record.id] = record

    async def find_overlapping(
        self,
        tenant_id: str,
        venue_id: str,
        interval: TimeInterval,
        statuses: Collection[BookingStatus],
    ) -> List[BookingRecord]:
        return [
            record
            for record in self._bookings.values()
            if record.tenant_id == tenant_id
            and record.venue_id == venue_id
            and record.status in statuses
            and record.interval.overlaps(interval)
        ]

    async def insert_booking(self, record: BookingRecord) -> BookingRecord:
        async with self._lock:
            if record.id in self._bookings:
                raise ValueError(f"Booking {record.id} already exists")

            if record.status in BLOCKING_STATUSES:
                clash = await self.find_overlapping(
                    record.tenant_id, record.venue_id, record.interval, BLOCKING_STATUSES
                )
                if clash:
                    raise BookingConflictError()

            if record.booking_number is None:
                record = replace(record, booking_number=self._next_booking_number(record))

            self._bookings[record.id] = record
            logger.debug("Stored booking %s for venue %s", record.booking_number, record.venue_id)
            return record

    async def get_venue(self, tenant_id: str, venue_id: str) -> Venue | None:
        return self._venues.get((tenant_id, venue_id))

    async def find_blackouts(
        self,
        tenant_id: str,
        venue_id: str,
        interval: TimeInterval,
    ) -> List[Blackout]:
        if (tenant_id, venue_id) not in self._venues:
            return []
        return [
            blackout
            for blackout in self._blackouts
            if blackout.venue_id == venue_id and blackout.interval.overlaps(interval)
        ]

    async def find_by_idempotency_key(self, tenant_id: str, key: str) -> BookingRecord | None:
        matches = [
            record
            for record in self._bookings.values()
            if record.tenant_id == tenant_id and record.idempotency_key == key
        ]
        # Prefer a live hold over an expired or cancelled attempt with the same key.
        matches.sort(key=lambda record: not record.is_blocking)
        return matches[0] if matches else None

    def bookings(self) -> List[BookingRecord]:
        """Snapshot of every stored booking, earliest first."""
        return sorted(self._bookings.values(), key=lambda record: record.interval.start)

    def _next_booking_number(self, record: BookingRecord) -> str:
        year = record.interval.start.year
        key = (record.tenant_id, year)
        self._sequences[key] += 1
        prefix = tenant_prefix(self._tenant_names.get(record.tenant_id))
        return format_booking_number(prefix, year, self._sequences[key])


class InMemoryCatalogStore:
    """Catalog store keeping each venue's slots in a list."""

    def __init__(self, slots: Dict[str, Iterable[VenueSlotDefinition]] | None = None) -> None:
        self._slots: Dict[str, List[VenueSlotDefinition]] = {
            venue_id: list(venue_slots) for venue_id, venue_slots in (slots or {}).items()
        }

    async def list_slots(self, venue_id: str) -> List[VenueSlotDefinition]:
        return list(self._slots.get(venue_id, []))

    async def get_slot(self, venue_id: str, slot_id: str) -> VenueSlotDefinition | None:
        for slot in self._slots.get(venue_id, []):
            if slot.id == slot_id:
                return slot
        return None

    async def venue_exists(self, venue_id: str) -> bool:
        return venue_id in self._slots

    def replace_slots(self, venue_id: str, slots: Iterable[VenueSlotDefinition]) -> None:
        """Owner edit: swap the venue's slot list wholesale."""
        self._slots[venue_id] = list(slots)


def stores_from_config(config: AppConfig) -> Tuple[InMemoryBookingStore, InMemoryCatalogStore]:
    """Build both in-memory stores from an ``AppConfig``."""
    currency = config.policy.currency
    venues = [venue.to_domain(config.tenant_id, currency) for venue in config.venues]
    blackouts = [
        blackout.to_domain(venue.id) for venue in config.venues for blackout in venue.blackouts
    ]
    bookings = [booking.to_domain(config.tenant_id) for booking in config.bookings]

    booking_store = InMemoryBookingStore(
        venues=venues,
        bookings=bookings,
        blackouts=blackouts,
        tenant_names={config.tenant_id: config.tenant_name},
    )
    catalog_store = InMemoryCatalogStore(
        {venue.id: [slot.to_domain() for slot in venue.slots] for venue in config.venues}
    )
    return booking_store, catalog_store
