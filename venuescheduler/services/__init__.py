"""
Service layer helpers that orchestrate stores and domain logic.
"""

from .availability import AvailabilityIndex
from .ports import BookingStore, CatalogStore, Clock
from .pricing import PricingEngine
from .scheduler import BookingScheduler
from .slot_catalog import SlotCatalog

__all__ = [
    "AvailabilityIndex",
    "BookingScheduler",
    "BookingStore",
    "CatalogStore",
    "Clock",
    "PricingEngine",
    "SlotCatalog",
]
