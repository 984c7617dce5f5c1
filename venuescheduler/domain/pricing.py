"""
Deterministic per-date price calculation.

All amounts are integer minor currency units. Each line is rounded exactly
once (half up); the total is the exact sum of the lines and is never rounded
again.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, List, Mapping, Union

import pendulum

from .models import (
    PriceLine,
    PricingBreakdown,
    VenueSlotDefinition,
    as_plain_date,
    to_minor_units,
)

BaseRates = Union[Mapping[date, Decimal], Callable[[date], Decimal]]


def normalize_dates(dates: Iterable[date | str]) -> List[date]:
    """
    Deduplicate and sort calendar dates.

    Strings are parsed as ISO dates; datetimes are truncated to their date.
    """
    normalized: set[date] = set()
    for value in dates:
        if isinstance(value, str):
            parsed = pendulum.parse(value.strip())
            normalized.add(as_plain_date(parsed))
        elif isinstance(value, date):
            normalized.add(as_plain_date(value))
        else:
            raise TypeError(f"Unsupported date value: {value!r}")
    return sorted(normalized)


class PriceCalculator:
    """
    Builds a ``PricingBreakdown`` from a resolved slot and per-date base rates.
    """

    def __init__(self, currency: str = "INR"):
        self.currency = currency

    def build_breakdown(
        self,
        venue_id: str,
        slot: VenueSlotDefinition,
        dates: Iterable[date | str],
        base_rates: BaseRates,
        currency: str | None = None,
    ) -> PricingBreakdown:
        rate_for = _rate_lookup(base_rates)
        lines = tuple(
            self._price_line(day, rate_for(day), slot)
            for day in normalize_dates(dates)
        )
        return PricingBreakdown(
            venue_id=venue_id,
            slot_id=slot.id,
            lines=lines,
            currency=currency or self.currency,
        )

    @staticmethod
    def _price_line(day: date, base_rate: Decimal, slot: VenueSlotDefinition) -> PriceLine:
        base_minor = to_minor_units(base_rate)
        if base_minor < 0:
            raise ValueError(f"Base rate for {day.isoformat()} cannot be negative")

        multiplier = slot.price_multiplier
        applied = (Decimal(base_minor) * multiplier).quantize(Decimal("1"), rounding=ROUND_HALF_UP)

        applied_rates: tuple[str, ...] = ()
        if multiplier != 1:
            applied_rates = (f"{slot.label} {multiplier.normalize():f}x",)

        return PriceLine(
            date=day,
            base_rate_minor=base_minor,
            multiplier=multiplier,
            applied_rate_minor=int(applied),
            applied_rates=applied_rates,
        )


def _rate_lookup(base_rates: BaseRates) -> Callable[[date], Decimal]:
    if callable(base_rates):
        return lambda day: Decimal(str(base_rates(day)))

    by_date = {as_plain_date(_coerce_key(key)): value for key, value in base_rates.items()}

    def lookup(day: date) -> Decimal:
        try:
            return Decimal(str(by_date[day]))
        except KeyError:
            raise ValueError(f"No base rate provided for {day.isoformat()}") from None

    return lookup


def _coerce_key(key: date | str) -> date:
    if isinstance(key, str):
        return pendulum.parse(key.strip())
    return key
