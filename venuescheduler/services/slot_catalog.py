"""
Per-venue catalog of named sessions.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from ..domain.exceptions import SlotNotFoundError, VenueNotFoundError
from ..domain.models import DEFAULT_FULL_DAY_SLOT, VenueSlotDefinition
from .ports import CatalogStore, upstream

logger = logging.getLogger(__name__)


class SlotCatalog:
    """
    Read-only view over a ``CatalogStore``.

    Venues without any configured slot expose a single full-day session;
    venues the catalog does not know raise ``VenueNotFoundError``.
    When ``cache_enabled`` is set, each venue's slot list is fetched once and
    kept until ``invalidate`` is called for that venue (owners call it after
    editing their sessions).
    """

    def __init__(self, store: CatalogStore, cache_enabled: bool = True) -> None:
        self._store = store
        self._cache_enabled = cache_enabled
        self._cache: Dict[str, List[VenueSlotDefinition]] = {}

    async def slots_for(self, venue_id: str) -> List[VenueSlotDefinition]:
        """
        Return the venue's active slots ordered by start of day.

        Raises:
            VenueNotFoundError: If the catalog does not know the venue
        """
        slots = await self._all_slots(venue_id)
        active = [slot for slot in slots if slot.active]
        return sorted(active, key=lambda slot: (slot.start_offset, slot.end_offset, slot.id))

    async def resolve(self, venue_id: str, slot_id: str) -> VenueSlotDefinition:
        """
        Resolve a slot by id, active or not.

        Raises:
            VenueNotFoundError: If the catalog does not know the venue
            SlotNotFoundError: If the venue has no slot with that id
        """
        if self._cache_enabled:
            slots = await self._all_slots(venue_id)
            for slot in slots:
                if slot.id == slot_id:
                    return slot
            raise SlotNotFoundError(venue_id, slot_id)

        with upstream("catalog"):
            slot = await self._store.get_slot(venue_id, slot_id)
        if slot is not None:
            return slot

        configured = await self._fetch(venue_id)
        if not configured and slot_id == DEFAULT_FULL_DAY_SLOT.id:
            return DEFAULT_FULL_DAY_SLOT

        raise SlotNotFoundError(venue_id, slot_id)

    def invalidate(self, venue_id: str | None = None) -> None:
        """Drop cached slots for one venue, or for every venue."""
        if venue_id is None:
            self._cache.clear()
        else:
            self._cache.pop(venue_id, None)
        logger.debug("Slot cache invalidated for %s", venue_id or "all venues")

    async def _all_slots(self, venue_id: str) -> List[VenueSlotDefinition]:
        if self._cache_enabled and venue_id in self._cache:
            return self._cache[venue_id]

        slots = await self._fetch(venue_id) or [DEFAULT_FULL_DAY_SLOT]

        if self._cache_enabled:
            self._cache[venue_id] = slots
        return slots

    async def _fetch(self, venue_id: str) -> List[VenueSlotDefinition]:
        with upstream("catalog"):
            slots = list(await self._store.list_slots(venue_id))
            if not slots and not await self._store.venue_exists(venue_id):
                raise VenueNotFoundError(venue_id)
        return slots
