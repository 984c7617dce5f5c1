"""
Price quotes for a venue slot over a set of calendar dates.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from ..domain.models import PricingBreakdown
from ..domain.pricing import BaseRates, PriceCalculator
from .slot_catalog import SlotCatalog

logger = logging.getLogger(__name__)


class PricingEngine:
    """
    Resolves the slot through the catalog and delegates the arithmetic to
    ``PriceCalculator``.

    Inactive slots still resolve so historical bookings can be re-quoted.
    """

    def __init__(self, catalog: SlotCatalog, calculator: PriceCalculator | None = None) -> None:
        self._catalog = catalog
        self._calculator = calculator or PriceCalculator()

    async def quote(
        self,
        venue_id: str,
        slot_id: str,
        dates: Iterable[date | str],
        base_rates: BaseRates,
    ) -> PricingBreakdown:
        """
        Quote ``slot_id`` at ``venue_id`` for every distinct date.

        Raises:
            VenueNotFoundError: If the catalog does not know the venue
            SlotNotFoundError: If the slot does not resolve for the venue
        """
        slot = await self._catalog.resolve(venue_id, slot_id)
        breakdown = self._calculator.build_breakdown(venue_id, slot, dates, base_rates)
        logger.debug(
            "Quoted venue=%s slot=%s dates=%d total_minor=%d",
            venue_id,
            slot.id,
            len(breakdown.lines),
            breakdown.total_minor,
        )
        return breakdown
