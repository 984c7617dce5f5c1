"""
Configuration management using Pydantic models loaded from YAML.
"""

from datetime import time
from decimal import Decimal
from pathlib import Path
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import (
    Blackout,
    BookingRecord,
    BookingStatus,
    TimeInterval,
    Venue,
    VenueSlotDefinition,
)


class AlternativesPolicy(BaseModel):
    """How far and how often to search for alternative windows."""
    count: int = 3
    increment_days: int = 1
    horizon_days: int = 14

    @field_validator("count", "increment_days", "horizon_days")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("alternative search settings must be greater than zero")
        return value


class SchedulerPolicy(BaseModel):
    """Booking rules applied by the scheduler."""
    min_lead_time_hours: float = 2
    min_duration_hours: float = 1
    max_duration_hours: float = 168
    hold_ttl_minutes: int = 15
    max_insert_retries: int = 1
    timezone: str = "Asia/Kolkata"
    currency: str = "INR"
    alternatives: AlternativesPolicy = Field(default_factory=AlternativesPolicy)

    @field_validator("min_lead_time_hours", "hold_ttl_minutes", "max_insert_retries")
    @classmethod
    def validate_non_negative(cls, value):
        if value < 0:
            raise ValueError("value must not be negative")
        return value

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA identifier."""
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @model_validator(mode="after")
    def validate_duration_bounds(self) -> "SchedulerPolicy":
        """Ensure the duration window is non-empty."""
        if self.min_duration_hours <= 0:
            raise ValueError("min_duration_hours must be greater than zero")
        if self.max_duration_hours < self.min_duration_hours:
            raise ValueError("max_duration_hours must not be below min_duration_hours")
        return self


class SlotConfig(BaseModel):
    """A named session as written by the venue owner."""
    id: str
    label: str
    start: time
    end: time
    price_multiplier: Decimal = Decimal("1")
    active: bool = True

    @field_validator("price_multiplier")
    @classmethod
    def validate_multiplier(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("price_multiplier must not be negative")
        return value

    def to_domain(self) -> VenueSlotDefinition:
        return VenueSlotDefinition(
            id=self.id,
            label=self.label,
            start_offset=self.start,
            end_offset=self.end,
            price_multiplier=self.price_multiplier,
            active=self.active,
        )


class BlackoutConfig(BaseModel):
    """A window during which the venue cannot be booked."""
    id: str
    start: str
    end: str
    reason: str = ""
    is_maintenance: bool = False

    def to_domain(self, venue_id: str) -> Blackout:
        return Blackout(
            id=self.id,
            venue_id=venue_id,
            interval=TimeInterval.from_iso(self.start, self.end),
            reason=self.reason,
            is_maintenance=self.is_maintenance,
        )


class VenueConfig(BaseModel):
    """Venue configuration."""
    id: str
    name: str = ""
    capacity: int | None = None
    base_rate: Decimal = Decimal("0")
    is_active: bool = True
    slots: List[SlotConfig] = Field(default_factory=list)
    blackouts: List[BlackoutConfig] = Field(default_factory=list)

    @field_validator("slots")
    @classmethod
    def validate_unique_slots(cls, value: List[SlotConfig]) -> List[SlotConfig]:
        """Ensure slot ids are unique within a venue."""
        seen: set[str] = set()
        for slot in value:
            if slot.id in seen:
                raise ValueError(f"Duplicate slot id detected: {slot.id}")
            seen.add(slot.id)
        return value

    def to_domain(self, tenant_id: str, currency: str) -> Venue:
        return Venue(
            id=self.id,
            tenant_id=tenant_id,
            capacity=self.capacity,
            is_active=self.is_active,
            base_rate=self.base_rate,
            currency=currency,
            name=self.name,
        )


class BookingConfig(BaseModel):
    """An existing booking used to seed the in-memory store."""
    id: str
    venue_id: str
    start: str
    end: str
    status: BookingStatus = BookingStatus.CONFIRMED
    slot_id: str | None = None
    guest_count: int | None = None
    booking_number: str | None = None

    def to_domain(self, tenant_id: str) -> BookingRecord:
        return BookingRecord(
            id=self.id,
            tenant_id=tenant_id,
            venue_id=self.venue_id,
            interval=TimeInterval.from_iso(self.start, self.end),
            status=self.status,
            slot_id=self.slot_id,
            guest_count=self.guest_count,
            booking_number=self.booking_number,
        )


class AppConfig(BaseModel):
    """Application configuration."""
    tenant_id: str
    tenant_name: str = ""
    policy: SchedulerPolicy = Field(default_factory=SchedulerPolicy)
    venues: List[VenueConfig] = Field(default_factory=list)
    bookings: List[BookingConfig] = Field(default_factory=list)

    @field_validator("venues")
    @classmethod
    def validate_unique_venues(cls, value: List[VenueConfig]) -> List[VenueConfig]:
        """Ensure venue ids are unique."""
        seen: set[str] = set()
        for venue in value:
            if venue.id in seen:
                raise ValueError(f"Duplicate venue id detected: {venue.id}")
            seen.add(venue.id)
        return value

    @model_validator(mode="after")
    def validate_booking_venues(self) -> "AppConfig":
        """Seed bookings must reference a configured venue."""
        known = {venue.id for venue in self.venues}
        unknown = sorted({b.venue_id for b in self.bookings if b.venue_id not in known})
        if unknown:
            raise ValueError(f"Bookings reference unknown venue(s): {', '.join(unknown)}")
        return self

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    def find_venue(self, venue_id: str) -> VenueConfig | None:
        """Find a venue by its id."""
        for venue in self.venues:
            if venue.id == venue_id:
                return venue
        return None


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
