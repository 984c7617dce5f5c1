"""
Adapters layer - Concrete collaborators behind the service protocols.
"""

from .clock import FixedClock, SystemClock
from .memory_store import InMemoryBookingStore, InMemoryCatalogStore, stores_from_config

__all__ = [
    "FixedClock",
    "InMemoryBookingStore",
    "InMemoryCatalogStore",
    "SystemClock",
    "stores_from_config",
]
