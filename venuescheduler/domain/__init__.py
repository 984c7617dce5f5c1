"""
Domain layer - Pure business logic without external dependencies.
"""

from .exceptions import ErrorCode, SchedulerError
from .interval_validator import Err, IntervalValidator, Ok
from .models import (
    BookingConflict,
    BookingRecord,
    BookingRequest,
    BookingStatus,
    PricingBreakdown,
    TimeInterval,
    Venue,
    VenueSlotDefinition,
)
from .pricing import PriceCalculator

__all__ = [
    "BookingConflict",
    "BookingRecord",
    "BookingRequest",
    "BookingStatus",
    "Err",
    "ErrorCode",
    "IntervalValidator",
    "Ok",
    "PriceCalculator",
    "PricingBreakdown",
    "SchedulerError",
    "TimeInterval",
    "Venue",
    "VenueSlotDefinition",
]
