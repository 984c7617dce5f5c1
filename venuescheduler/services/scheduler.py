"""
Booking scheduler - orchestrates validation, conflict checks, pricing and
the atomic insert of a temporary hold.

A single attempt moves through
``RECEIVED -> VALIDATED -> CONFLICT_CHECKED -> {ACCEPTED, REJECTED}``.
Input and conflict failures are returned as ``BookingRejected``; collaborator
outages raise ``UpstreamUnavailableError`` so callers can apply their own
retry policy.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from typing import Callable, Iterable, List

import pendulum

from ..config import SchedulerPolicy
from ..domain.exceptions import (
    BookingConflictError,
    ErrorCode,
    SlotNotFoundError,
    VenueNotFoundError,
)
from ..domain.interval_validator import Err, IntervalValidator
from ..domain.models import (
    CANONICAL_TIMEZONE,
    DEFAULT_FULL_DAY_SLOT,
    BookingAccepted,
    BookingConflict,
    BookingRecord,
    BookingRejected,
    BookingRequest,
    BookingStatus,
    PricingBreakdown,
    RequestState,
    ScheduleResult,
    TimeInterval,
    Venue,
    VenueSlotDefinition,
)
from ..domain.pricing import BaseRates, PriceCalculator
from .availability import AvailabilityIndex
from .ports import BookingStore, CatalogStore, Clock, upstream
from .pricing import PricingEngine
from .slot_catalog import SlotCatalog

logger = logging.getLogger(__name__)


class BookingScheduler:
    """
    Entry point for "attempt to reserve" and "quote a price".

    The availability pre-check only shapes the rejection message; acceptance
    is decided by ``BookingStore.insert_booking``. A storage-level conflict is
    retried as a fresh attempt at most ``max_insert_retries`` times.
    """

    def __init__(
        self,
        bookings: BookingStore,
        catalog: SlotCatalog,
        clock: Clock,
        *,
        validator: IntervalValidator | None = None,
        availability: AvailabilityIndex | None = None,
        pricing: PricingEngine | None = None,
        hold_ttl_minutes: int = 15,
        max_insert_retries: int = 1,
        timezone: str = CANONICAL_TIMEZONE,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._bookings = bookings
        self._catalog = catalog
        self._clock = clock
        self._validator = validator or IntervalValidator()
        self._availability = availability or AvailabilityIndex(bookings)
        self._pricing = pricing or PricingEngine(catalog)
        self._hold_ttl = timedelta(minutes=hold_ttl_minutes)
        self._max_insert_retries = max_insert_retries
        self._timezone = timezone
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    @classmethod
    def from_policy(
        cls,
        policy: SchedulerPolicy,
        bookings: BookingStore,
        catalog_store: CatalogStore,
        clock: Clock,
        **kwargs,
    ) -> "BookingScheduler":
        """Wire every component from a ``SchedulerPolicy``."""
        catalog = SlotCatalog(catalog_store)
        return cls(
            bookings=bookings,
            catalog=catalog,
            clock=clock,
            validator=IntervalValidator(
                min_lead_time_hours=policy.min_lead_time_hours,
                min_duration_hours=policy.min_duration_hours,
                max_duration_hours=policy.max_duration_hours,
            ),
            availability=AvailabilityIndex(
                bookings,
                alternatives_count=policy.alternatives.count,
                increment_days=policy.alternatives.increment_days,
                horizon_days=policy.alternatives.horizon_days,
            ),
            pricing=PricingEngine(catalog, PriceCalculator(currency=policy.currency)),
            hold_ttl_minutes=policy.hold_ttl_minutes,
            max_insert_retries=policy.max_insert_retries,
            timezone=policy.timezone,
            **kwargs,
        )

    async def schedule_booking(self, request: BookingRequest) -> ScheduleResult:
        """
        Attempt to reserve the requested window as a temporary hold.

        Returns:
            ``BookingAccepted`` with the stored record and its quote, or
            ``BookingRejected`` with a stable code, a detail message and, for
            conflicts, a ``BookingConflict`` payload.

        Raises:
            UpstreamUnavailableError: If a store cannot be reached
        """
        now = pendulum.instance(self._clock.now()).in_timezone("UTC")

        outcome = self._validator.validate(request.start_raw, request.end_raw, now)
        if isinstance(outcome, Err):
            return self._reject(request, outcome.error.code, outcome.error.message, RequestState.RECEIVED)
        interval = outcome.interval
        logger.debug("Booking request for venue %s validated: %s", request.venue_id, interval)

        with upstream("bookings"):
            venue = await self._bookings.get_venue(request.tenant_id, request.venue_id)
        if venue is None or not venue.is_active:
            error = VenueNotFoundError(request.venue_id)
            return self._reject(request, error.code, error.message, RequestState.VALIDATED)

        replayed = await self._replay(request, venue)
        if replayed is not None:
            return replayed

        try:
            slot = await self._selectable_slot(venue.id, request.slot_id)
        except (SlotNotFoundError, VenueNotFoundError) as exc:
            return self._reject(request, exc.code, exc.message, RequestState.VALIDATED)

        if slot is not None and not slot.matches(interval, self._timezone):
            return self._reject(
                request,
                ErrorCode.INVALID_TIME_RANGE,
                f"Selected time does not match the '{slot.id}' session ({slot.window_display()})",
                RequestState.VALIDATED,
            )

        guest_error = _guest_count_error(request.guest_count, venue)
        if guest_error is not None:
            return self._reject(request, *guest_error, RequestState.VALIDATED)

        earliest_start = now + timedelta(hours=self._validator.min_lead_time_hours)
        quote = self._quote_for_interval(venue, slot, interval)

        for attempt in range(self._max_insert_retries + 1):
            if attempt:
                # The lost race may have been against an earlier send of this request.
                replayed = await self._replay(request, venue)
                if replayed is not None:
                    return replayed

            conflict = await self._availability.check(
                request.tenant_id, venue.id, interval, earliest_start=earliest_start
            )
            if conflict is not None:
                return self._reject(
                    request, ErrorCode.BOOKING_CONFLICT, conflict.message, RequestState.VALIDATED, conflict
                )
            logger.debug("Booking request for venue %s passed conflict pre-check", venue.id)

            record = self._propose_record(request, venue, slot, interval, quote, now)
            try:
                with upstream("bookings"):
                    stored = await self._bookings.insert_booking(record)
            except BookingConflictError:
                logger.warning(
                    "Insert for venue %s rejected by storage overlap guarantee (attempt %d)",
                    venue.id,
                    attempt + 1,
                )
                continue

            logger.info(
                "Booking %s accepted for venue %s: %s",
                stored.booking_number or stored.id,
                venue.id,
                interval,
            )
            return BookingAccepted(booking=stored, quote=quote)

        conflict = await self._conflict_after_race(request.tenant_id, venue.id, interval, earliest_start)
        return self._reject(
            request,
            ErrorCode.BOOKING_CONFLICT,
            "This time slot is no longer available",
            RequestState.CONFLICT_CHECKED,
            conflict,
        )

    async def quote_price(
        self,
        venue_id: str,
        slot_id: str,
        dates: Iterable[date | str],
        base_rates: BaseRates,
    ) -> PricingBreakdown:
        """
        Quote a slot over a set of dates.

        Raises:
            VenueNotFoundError: If the catalog does not know the venue
            SlotNotFoundError: If the slot does not resolve for the venue
        """
        return await self._pricing.quote(venue_id, slot_id, dates, base_rates)

    async def list_slots(self, venue_id: str) -> List[VenueSlotDefinition]:
        """
        Active sessions of a venue, ordered by start of day.

        Raises:
            VenueNotFoundError: If the catalog does not know the venue
        """
        return await self._catalog.slots_for(venue_id)

    async def check_availability(
        self,
        tenant_id: str,
        venue_id: str,
        start_raw,
        end_raw,
    ) -> BookingConflict | None:
        """
        Pre-check a window without reserving it.

        Returns:
            None when the window is free, otherwise the conflict payload

        Raises:
            IntervalValidationError: If the window fails validation
            VenueNotFoundError: If the venue is unknown or inactive
        """
        now = pendulum.instance(self._clock.now()).in_timezone("UTC")
        outcome = self._validator.validate(start_raw, end_raw, now)
        if isinstance(outcome, Err):
            raise outcome.error

        with upstream("bookings"):
            venue = await self._bookings.get_venue(tenant_id, venue_id)
        if venue is None or not venue.is_active:
            raise VenueNotFoundError(venue_id)

        return await self._availability.check(
            tenant_id,
            venue.id,
            outcome.interval,
            earliest_start=now + timedelta(hours=self._validator.min_lead_time_hours),
        )

    async def _replay(self, request: BookingRequest, venue: Venue) -> BookingAccepted | None:
        """Return the live hold an earlier send of this request already placed."""
        if not request.idempotency_key:
            return None

        with upstream("bookings"):
            existing = await self._bookings.find_by_idempotency_key(
                request.tenant_id, request.idempotency_key
            )
        if existing is None or not existing.is_blocking:
            return None
        if existing.venue_id != venue.id:
            logger.warning(
                "Idempotency key %s already used for venue %s, ignoring for venue %s",
                request.idempotency_key,
                existing.venue_id,
                venue.id,
            )
            return None

        try:
            slot = await self._catalog.resolve(venue.id, existing.slot_id) if existing.slot_id else None
        except (SlotNotFoundError, VenueNotFoundError):
            return None

        logger.info(
            "Returning booking %s for repeated idempotency key", existing.booking_number or existing.id
        )
        return BookingAccepted(booking=existing, quote=self._quote_for_interval(venue, slot, existing.interval))

    async def _selectable_slot(self, venue_id: str, slot_id: str | None) -> VenueSlotDefinition | None:
        if slot_id is None:
            return None
        slot = await self._catalog.resolve(venue_id, slot_id)
        if not slot.active:
            raise SlotNotFoundError(venue_id, slot_id, f"Slot '{slot_id}' is no longer offered")
        return slot

    def _quote_for_interval(
        self,
        venue: Venue,
        slot: VenueSlotDefinition | None,
        interval: TimeInterval,
    ) -> PricingBreakdown:
        calculator = PriceCalculator(currency=venue.currency)
        return calculator.build_breakdown(
            venue.id,
            slot or DEFAULT_FULL_DAY_SLOT,
            interval.calendar_dates(self._timezone),
            lambda _day: venue.base_rate,
        )

    def _propose_record(
        self,
        request: BookingRequest,
        venue: Venue,
        slot: VenueSlotDefinition | None,
        interval: TimeInterval,
        quote: PricingBreakdown,
        now: pendulum.DateTime,
    ) -> BookingRecord:
        return BookingRecord(
            id=self._id_factory(),
            tenant_id=request.tenant_id,
            venue_id=venue.id,
            interval=interval,
            status=BookingStatus.TEMP_HOLD,
            slot_id=slot.id if slot is not None else None,
            guest_count=request.guest_count,
            total_minor=quote.total_minor,
            currency=quote.currency,
            hold_expires_at=now + self._hold_ttl,
            idempotency_key=request.idempotency_key,
        )

    async def _conflict_after_race(
        self,
        tenant_id: str,
        venue_id: str,
        interval: TimeInterval,
        earliest_start: pendulum.DateTime,
    ) -> BookingConflict:
        conflict = await self._availability.check(tenant_id, venue_id, interval, earliest_start=earliest_start)
        if conflict is not None:
            return conflict
        # The competing hold is not visible to the pre-check yet.
        return await self._availability.build_conflict(
            tenant_id, venue_id, interval, conflicts=(), earliest_start=earliest_start
        )

    @staticmethod
    def _reject(
        request: BookingRequest,
        code: ErrorCode,
        detail: str,
        stage: RequestState,
        conflict: BookingConflict | None = None,
    ) -> BookingRejected:
        log = logger.warning if code is ErrorCode.BOOKING_CONFLICT else logger.info
        log("Booking request for venue %s rejected at %s: %s", request.venue_id, stage.value, code.value)
        return BookingRejected(reason=code, detail=detail, stage=stage, conflict=conflict)


def _guest_count_error(guest_count: int | None, venue: Venue) -> tuple[ErrorCode, str] | None:
    if guest_count is None:
        return None
    if guest_count < 1:
        return ErrorCode.INVALID_GUEST_COUNT, "Guest count must be at least 1"
    if venue.capacity is not None and guest_count > venue.capacity:
        return (
            ErrorCode.CAPACITY_EXCEEDED,
            f"Requested {guest_count} guests, venue capacity is {venue.capacity}",
        )
    return None
