"""
Tests for the BookingScheduler orchestration layer.
"""

import asyncio
import itertools
from dataclasses import replace
from datetime import date, time
from decimal import Decimal

import pendulum
import pytest

from venuescheduler.adapters.clock import FixedClock
from venuescheduler.adapters.memory_store import InMemoryBookingStore, InMemoryCatalogStore
from venuescheduler.config import SchedulerPolicy
from venuescheduler.domain.exceptions import (
    BookingConflictError,
    ErrorCode,
    IntervalValidationError,
    UpstreamUnavailableError,
    VenueNotFoundError,
)
from venuescheduler.domain.models import (
    BookingAccepted,
    BookingRecord,
    BookingRejected,
    BookingRequest,
    BookingStatus,
    RequestState,
    TimeInterval,
    Venue,
    VenueSlotDefinition,
)
from venuescheduler.services.scheduler import BookingScheduler

TENANT = "tenant-1"
NOW = "2025-01-01T00:00:00Z"

SLOTS = [
    VenueSlotDefinition(
        id="morning", label="Morning", start_offset=time(6, 0), end_offset=time(12, 0)
    ),
    VenueSlotDefinition(
        id="evening",
        label="Evening",
        start_offset=time(16, 0),
        end_offset=time(23, 0),
        price_multiplier=Decimal("1.5"),
    ),
    VenueSlotDefinition(
        id="late_night",
        label="Late Night",
        start_offset=time(23, 0),
        end_offset=time(23, 59),
        price_multiplier=Decimal("2"),
        active=False,
    ),
]


def _venues():
    return [
        Venue(id="hall-a", tenant_id=TENANT, capacity=100, base_rate=Decimal("1000")),
        Venue(id="closed", tenant_id=TENANT, capacity=100, is_active=False),
        Venue(id="elsewhere", tenant_id="tenant-2", capacity=100),
    ]


def _confirmed(booking_id: str, start: str, end: str, status=BookingStatus.CONFIRMED) -> BookingRecord:
    return BookingRecord(
        id=booking_id,
        tenant_id=TENANT,
        venue_id="hall-a",
        interval=TimeInterval.from_iso(start, end),
        status=status,
        booking_number="GRA-2025-00042",
    )


def _build_scheduler(bookings=(), store=None, policy=None, **kwargs):
    store = store or InMemoryBookingStore(
        venues=_venues(), bookings=bookings, tenant_names={TENANT: "Grand Events"}
    )
    ids = itertools.count(1)
    scheduler = BookingScheduler.from_policy(
        policy or SchedulerPolicy(),
        store,
        InMemoryCatalogStore({"hall-a": SLOTS}),
        FixedClock(NOW),
        id_factory=lambda: f"booking-{next(ids)}",
        **kwargs,
    )
    return scheduler, store


def _request(start="2025-01-10T10:00:00Z", end="2025-01-10T12:00:00Z", **kwargs) -> BookingRequest:
    fields = {"tenant_id": TENANT, "venue_id": "hall-a", "start_raw": start, "end_raw": end}
    fields.update(kwargs)
    return BookingRequest(**fields)


class AlwaysConflictingStore(InMemoryBookingStore):
    """Pre-check sees nothing; every insert loses a race."""

    def __init__(self, fail_times: int | None = None):
        super().__init__(venues=_venues())
        self.fail_times = fail_times
        self.insert_calls = 0

    async def insert_booking(self, record):
        self.insert_calls += 1
        if self.fail_times is None or self.insert_calls <= self.fail_times:
            raise BookingConflictError()
        return await super().insert_booking(record)


class RacingStore(InMemoryBookingStore):
    """A competing request commits between our pre-check and our insert."""

    def __init__(self):
        super().__init__(venues=_venues())
        self.raced = False

    async def insert_booking(self, record):
        if not self.raced:
            self.raced = True
            await super().insert_booking(
                _confirmed("competitor", "2025-01-10T09:00:00Z", "2025-01-10T11:00:00Z", BookingStatus.TEMP_HOLD)
            )
        return await super().insert_booking(record)


class TwinSendStore(InMemoryBookingStore):
    """An earlier send of the same request commits just before ours."""

    def __init__(self):
        super().__init__(venues=_venues())
        self.raced = False

    async def insert_booking(self, record):
        if not self.raced:
            self.raced = True
            await super().insert_booking(replace(record, id="first-send"))
        return await super().insert_booking(record)


class UnreachableStore:
    async def get_venue(self, tenant_id, venue_id):
        raise ConnectionRefusedError("database unreachable")


class TestAccepted:
    """Successful scheduling attempts."""

    def test_free_window_is_held(self):
        scheduler, store = _build_scheduler()

        request = _request(
            "2025-01-10T16:00:00+05:30", "2025-01-10T23:00:00+05:30", slot_id="evening", guest_count=80
        )

        result = asyncio.run(scheduler.schedule_booking(request))

        assert isinstance(result, BookingAccepted)
        assert result.status is RequestState.ACCEPTED
        booking = result.booking
        assert booking.status is BookingStatus.TEMP_HOLD
        assert booking.id == "booking-1"
        assert booking.booking_number == "GRA-2025-00001"
        assert booking.hold_expires_at == pendulum.parse(NOW).add(minutes=15)
        assert booking.total_minor == 150000
        assert result.quote.total == Decimal("1500.00")
        assert [b.id for b in store.bookings()] == ["booking-1"]

    def test_without_slot_prices_full_day_per_local_date(self):
        scheduler, _ = _build_scheduler()
        request = _request("2025-01-10T10:00:00+05:30", "2025-01-12T09:00:00+05:30")

        result = asyncio.run(scheduler.schedule_booking(request))

        assert isinstance(result, BookingAccepted)
        assert result.booking.slot_id is None
        assert result.quote.slot_id == "full_day"
        assert [line.date for line in result.quote.lines] == [
            date(2025, 1, 10),
            date(2025, 1, 11),
            date(2025, 1, 12),
        ]
        assert result.quote.total == Decimal("3000.00")

    @pytest.mark.parametrize("status", [BookingStatus.CANCELLED, BookingStatus.EXPIRED])
    def test_terminal_bookings_do_not_block(self, status):
        scheduler, _ = _build_scheduler(
            [_confirmed("old", "2025-01-10T10:00:00Z", "2025-01-10T12:00:00Z", status)]
        )

        result = asyncio.run(scheduler.schedule_booking(_request()))

        assert isinstance(result, BookingAccepted)

    def test_back_to_back_is_accepted(self):
        scheduler, _ = _build_scheduler([_confirmed("b1", "2025-01-10T08:00:00Z", "2025-01-10T10:00:00Z")])

        result = asyncio.run(scheduler.schedule_booking(_request()))

        assert isinstance(result, BookingAccepted)

    def test_guest_count_at_capacity_is_accepted(self):
        scheduler, _ = _build_scheduler()

        result = asyncio.run(scheduler.schedule_booking(_request(guest_count=100)))

        assert isinstance(result, BookingAccepted)


class TestRejected:
    """Rejections with stable codes."""

    def test_overlap_with_confirmed_booking(self):
        """[10:00, 12:00) confirmed blocks [11:00, 13:00)."""
        scheduler, store = _build_scheduler([_confirmed("b1", "2025-01-10T10:00:00Z", "2025-01-10T12:00:00Z")])

        result = asyncio.run(
            scheduler.schedule_booking(_request("2025-01-10T11:00:00Z", "2025-01-10T13:00:00Z"))
        )

        assert isinstance(result, BookingRejected)
        assert result.reason is ErrorCode.BOOKING_CONFLICT
        assert result.stage is RequestState.VALIDATED
        assert [b.id for b in result.conflict.conflicting_bookings] == ["b1"]
        assert len(result.conflict.alternative_windows) >= 1
        assert len(store.bookings()) == 1

    def test_validation_failure_rejected_at_received(self):
        scheduler, _ = _build_scheduler()

        result = asyncio.run(
            scheduler.schedule_booking(_request("2025-01-01T01:00:00Z", "2025-01-01T03:00:00Z"))
        )

        assert result.reason is ErrorCode.INSUFFICIENT_LEAD_TIME
        assert result.stage is RequestState.RECEIVED
        assert result.conflict is None

    def test_capacity_exceeded(self):
        scheduler, _ = _build_scheduler()

        result = asyncio.run(scheduler.schedule_booking(_request(guest_count=150)))

        assert result.reason is ErrorCode.CAPACITY_EXCEEDED
        assert "150" in result.detail

    def test_capacity_checked_before_conflict(self):
        scheduler, _ = _build_scheduler([_confirmed("b1", "2025-01-10T10:00:00Z", "2025-01-10T12:00:00Z")])

        result = asyncio.run(scheduler.schedule_booking(_request(guest_count=150)))

        assert result.reason is ErrorCode.CAPACITY_EXCEEDED

    @pytest.mark.parametrize("venue_id", ["missing", "closed", "elsewhere"])
    def test_venue_not_found(self, venue_id):
        scheduler, _ = _build_scheduler()

        result = asyncio.run(scheduler.schedule_booking(_request(venue_id=venue_id)))

        assert result.reason is ErrorCode.VENUE_NOT_FOUND
        assert result.stage is RequestState.VALIDATED

    @pytest.mark.parametrize("slot_id", ["brunch", "late_night"])
    def test_slot_not_found(self, slot_id):
        scheduler, _ = _build_scheduler()

        result = asyncio.run(scheduler.schedule_booking(_request(slot_id=slot_id)))

        assert result.reason is ErrorCode.SLOT_NOT_FOUND

    def test_to_dict_carries_code_and_alternatives(self):
        scheduler, _ = _build_scheduler([_confirmed("b1", "2025-01-10T10:00:00Z", "2025-01-10T12:00:00Z")])

        result = asyncio.run(scheduler.schedule_booking(_request()))
        payload = result.to_dict()

        assert payload["status"] == "REJECTED"
        assert payload["reason"] == "BOOKING_CONFLICT"
        assert payload["conflict"]["conflicting_bookings"][0]["booking_number"] == "GRA-2025-00042"
        assert payload["conflict"]["alternative_windows"]

    @pytest.mark.parametrize("guest_count", [0, -5])
    def test_guest_count_below_one(self, guest_count):
        scheduler, store = _build_scheduler()

        result = asyncio.run(scheduler.schedule_booking(_request(guest_count=guest_count)))

        assert result.reason is ErrorCode.INVALID_GUEST_COUNT
        assert result.stage is RequestState.VALIDATED
        assert store.bookings() == []

    def test_window_validated_before_capacity(self):
        """An out-of-policy window is rejected before guests are counted."""
        scheduler, _ = _build_scheduler()

        result = asyncio.run(
            scheduler.schedule_booking(
                _request("2025-01-01T01:00:00Z", "2025-01-01T03:00:00Z", guest_count=150)
            )
        )

        assert result.reason is ErrorCode.INSUFFICIENT_LEAD_TIME
        assert result.stage is RequestState.RECEIVED

    def test_venue_missing_from_catalog(self):
        store = InMemoryBookingStore(
            venues=_venues() + [Venue(id="hall-b", tenant_id=TENANT, capacity=50)]
        )
        scheduler, _ = _build_scheduler(store=store)

        result = asyncio.run(scheduler.schedule_booking(_request(venue_id="hall-b", slot_id="full_day")))

        assert result.reason is ErrorCode.VENUE_NOT_FOUND


class TestSessionWindows:
    """A requested slot must match the window being booked."""

    def test_window_outside_slot_is_rejected(self):
        """An evening window cannot be held at the morning rate."""
        scheduler, store = _build_scheduler()

        result = asyncio.run(
            scheduler.schedule_booking(
                _request("2025-01-10T16:00:00Z", "2025-01-10T22:00:00Z", slot_id="morning")
            )
        )

        assert isinstance(result, BookingRejected)
        assert result.reason is ErrorCode.INVALID_TIME_RANGE
        assert "morning" in result.detail
        assert store.bookings() == []

    def test_slot_boundaries_are_local_time(self):
        """06:00-12:00 in Asia/Kolkata is 00:30-06:30 UTC."""
        scheduler, _ = _build_scheduler()

        result = asyncio.run(
            scheduler.schedule_booking(
                _request("2025-01-10T00:30:00Z", "2025-01-10T06:30:00Z", slot_id="morning")
            )
        )

        assert isinstance(result, BookingAccepted)
        assert result.quote.total == Decimal("1000.00")

    def test_multi_day_session_booking(self):
        scheduler, _ = _build_scheduler()

        result = asyncio.run(
            scheduler.schedule_booking(
                _request("2025-01-10T16:00:00+05:30", "2025-01-12T23:00:00+05:30", slot_id="evening")
            )
        )

        assert isinstance(result, BookingAccepted)
        assert result.quote.total == Decimal("4500.00")


class TestIdempotency:
    """Repeated sends of one request return the hold already placed."""

    def test_repeated_send_returns_existing_hold(self):
        scheduler, store = _build_scheduler()

        first = asyncio.run(scheduler.schedule_booking(_request(idempotency_key="req-123")))
        second = asyncio.run(scheduler.schedule_booking(_request(idempotency_key="req-123")))

        assert isinstance(second, BookingAccepted)
        assert second.booking.id == first.booking.id
        assert second.quote.total == first.quote.total
        assert [b.id for b in store.bookings()] == ["booking-1"]
        assert store.bookings()[0].idempotency_key == "req-123"

    def test_different_key_still_conflicts(self):
        scheduler, _ = _build_scheduler()

        asyncio.run(scheduler.schedule_booking(_request(idempotency_key="req-1")))
        result = asyncio.run(scheduler.schedule_booking(_request(idempotency_key="req-2")))

        assert result.reason is ErrorCode.BOOKING_CONFLICT

    def test_expired_hold_is_not_replayed(self):
        expired = replace(
            _confirmed("old", "2025-01-10T10:00:00Z", "2025-01-10T12:00:00Z", BookingStatus.EXPIRED),
            idempotency_key="req-123",
        )
        scheduler, store = _build_scheduler([expired])

        result = asyncio.run(scheduler.schedule_booking(_request(idempotency_key="req-123")))

        assert isinstance(result, BookingAccepted)
        assert result.booking.id == "booking-1"
        assert len(store.bookings()) == 2

    def test_lost_race_against_earlier_send(self):
        store = TwinSendStore()
        scheduler, _ = _build_scheduler(store=store)

        result = asyncio.run(scheduler.schedule_booking(_request(idempotency_key="req-123")))

        assert isinstance(result, BookingAccepted)
        assert result.booking.id == "first-send"
        assert [b.id for b in store.bookings()] == ["first-send"]


class TestConcurrency:
    """Storage-level exclusion is authoritative."""

    def test_lost_race_is_retried_once_then_rejected(self):
        store = AlwaysConflictingStore()
        scheduler, _ = _build_scheduler(store=store)

        result = asyncio.run(scheduler.schedule_booking(_request()))

        assert store.insert_calls == 2
        assert result.reason is ErrorCode.BOOKING_CONFLICT
        assert result.stage is RequestState.CONFLICT_CHECKED
        assert result.detail == "This time slot is no longer available"
        assert result.conflict is not None

    def test_retry_can_succeed(self):
        store = AlwaysConflictingStore(fail_times=1)
        scheduler, _ = _build_scheduler(store=store)

        result = asyncio.run(scheduler.schedule_booking(_request()))

        assert isinstance(result, BookingAccepted)
        assert store.insert_calls == 2

    def test_retry_disabled(self):
        store = AlwaysConflictingStore()
        scheduler, _ = _build_scheduler(store=store, policy=SchedulerPolicy(max_insert_retries=0))

        asyncio.run(scheduler.schedule_booking(_request()))

        assert store.insert_calls == 1

    def test_competitor_visible_on_retry(self):
        scheduler, store = _build_scheduler(store=RacingStore())

        result = asyncio.run(scheduler.schedule_booking(_request()))

        assert result.reason is ErrorCode.BOOKING_CONFLICT
        assert [b.id for b in result.conflict.conflicting_bookings] == ["competitor"]
        assert [b.id for b in store.bookings()] == ["competitor"]

    def test_concurrent_requests_accept_exactly_one(self):
        scheduler, store = _build_scheduler()

        async def scenario():
            return await asyncio.gather(
                *(scheduler.schedule_booking(_request()) for _ in range(5))
            )

        results = asyncio.run(scenario())

        accepted = [r for r in results if isinstance(r, BookingAccepted)]
        assert len(accepted) == 1
        assert all(r.reason is ErrorCode.BOOKING_CONFLICT for r in results if r not in accepted)
        assert len(store.bookings()) == 1


class TestUpstream:
    """Collaborator outages raise instead of returning a rejection."""

    def test_unreachable_store_raises(self):
        scheduler, _ = _build_scheduler(store=UnreachableStore())

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            asyncio.run(scheduler.schedule_booking(_request()))

        assert exc_info.value.code is ErrorCode.UPSTREAM_UNAVAILABLE
        assert "database unreachable" in exc_info.value.message


class TestCheckAvailability:
    """Tests for the non-reserving pre-check."""

    def test_free_window(self):
        scheduler, store = _build_scheduler()

        conflict = asyncio.run(
            scheduler.check_availability(TENANT, "hall-a", "2025-01-10T10:00:00Z", "2025-01-10T12:00:00Z")
        )

        assert conflict is None
        assert store.bookings() == []

    def test_conflicting_window(self):
        scheduler, _ = _build_scheduler([_confirmed("b1", "2025-01-10T10:00:00Z", "2025-01-10T12:00:00Z")])

        conflict = asyncio.run(
            scheduler.check_availability(TENANT, "hall-a", "2025-01-10T11:00:00Z", "2025-01-10T13:00:00Z")
        )

        assert [b.id for b in conflict.conflicting_bookings] == ["b1"]

    def test_invalid_window_raises(self):
        scheduler, _ = _build_scheduler()

        with pytest.raises(IntervalValidationError) as exc_info:
            asyncio.run(scheduler.check_availability(TENANT, "hall-a", "tomorrow", "2025-01-10T13:00:00Z"))

        assert exc_info.value.code is ErrorCode.INVALID_DATE_FORMAT

    def test_unknown_venue_raises(self):
        scheduler, _ = _build_scheduler()

        with pytest.raises(VenueNotFoundError):
            asyncio.run(
                scheduler.check_availability(TENANT, "missing", "2025-01-10T10:00:00Z", "2025-01-10T12:00:00Z")
            )


class TestQuotes:
    """Tests for quote_price and list_slots."""

    def test_quote_price(self):
        scheduler, _ = _build_scheduler()

        breakdown = asyncio.run(
            scheduler.quote_price(
                "hall-a", "evening", ["2025-01-10", "2025-01-11"], lambda _day: Decimal("1000")
            )
        )

        assert breakdown.total == Decimal("3000.00")

    def test_list_slots_hides_inactive(self):
        scheduler, _ = _build_scheduler()

        slots = asyncio.run(scheduler.list_slots("hall-a"))

        assert [slot.id for slot in slots] == ["morning", "evening"]

    def test_quote_for_unknown_venue_raises(self):
        scheduler, _ = _build_scheduler()

        with pytest.raises(VenueNotFoundError):
            asyncio.run(
                scheduler.quote_price(
                    "no-such-venue", "full_day", ["2025-01-10"], lambda _day: Decimal("1000")
                )
            )
