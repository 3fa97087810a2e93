"""Typed restaurant reservation policy.

Operating hours are held as seven ``DaySchedule`` records indexed Sunday=0 to
Saturday=6. They are validated once when settings are written
(``validate_policy``); readers trust what is stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .errors import ReservationValidationError
from .slots import MINUTES_PER_DAY, is_valid_slot, to_minutes

DAY_NAMES: tuple[str, ...] = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")
ALLOWED_INTERVALS: tuple[int, ...] = (15, 30, 60)

DEFAULT_INTERVAL = 30
DEFAULT_MIN_PARTY_SIZE = 1
DEFAULT_MAX_PARTY_SIZE = 20


@dataclass(frozen=True)
class DaySchedule:
    open: Optional[str] = None
    close: Optional[str] = None
    closed: bool = False

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "DaySchedule":
        if not raw:
            return cls()
        return cls(open=raw.get("open"), close=raw.get("close"), closed=bool(raw.get("closed", False)))

    def to_mapping(self) -> dict[str, Any]:
        if self.closed:
            return {"closed": True}
        return {"open": self.open, "close": self.close, "closed": False}

    def span_minutes(self) -> int:
        """Minutes from open to close, treating ``close <= open`` as next-day close."""
        if self.open is None or self.close is None:
            return 0
        start, end = to_minutes(self.open), to_minutes(self.close)
        return end - start if end > start else end + MINUTES_PER_DAY - start

    def validate(self, day_name: str) -> None:
        if self.closed:
            return
        if self.open is None or self.close is None:
            raise ReservationValidationError(f"{day_name}: open and close are required unless closed")
        if not is_valid_slot(self.open) or not is_valid_slot(self.close):
            raise ReservationValidationError(f"{day_name}: open/close must be in HH:MM format")
        span = self.span_minutes()
        if span <= 0 or span > MINUTES_PER_DAY:
            raise ReservationValidationError(f"{day_name}: opening span must be within 24 hours")


def _default_week() -> tuple[DaySchedule, ...]:
    return tuple(DaySchedule() for _ in DAY_NAMES)


@dataclass(frozen=True)
class RestaurantPolicy:
    restaurant_id: int
    operating_hours: tuple[DaySchedule, ...] = field(default_factory=_default_week)
    time_slot_interval: int = DEFAULT_INTERVAL
    min_party_size: int = DEFAULT_MIN_PARTY_SIZE
    max_party_size: int = DEFAULT_MAX_PARTY_SIZE
    max_covers_per_slot: Optional[int] = None
    max_covers_per_day: Optional[int] = None
    allow_overbooking: bool = False
    overbooking_percentage: int = 0
    configured: bool = True

    @classmethod
    def default(cls, restaurant_id: int) -> "RestaurantPolicy":
        """Fallback used when a restaurant has no settings: unlimited capacity, default slot window."""
        return cls(restaurant_id=restaurant_id, configured=False)

    def schedule_for(self, weekday: int) -> DaySchedule:
        return self.operating_hours[weekday]


@dataclass(frozen=True)
class SlotOverride:
    restaurant_id: int
    day_of_week: int
    time_slot: str
    max_covers: Optional[int]
    is_active: bool = True
    id: Optional[int] = None


def parse_operating_hours(raw: Mapping[str, Any] | None) -> tuple[DaySchedule, ...]:
    raw = raw or {}
    return tuple(DaySchedule.from_mapping(raw.get(name)) for name in DAY_NAMES)


def dump_operating_hours(hours: tuple[DaySchedule, ...]) -> dict[str, Any]:
    return {name: day.to_mapping() for name, day in zip(DAY_NAMES, hours)}


def default_operating_hours() -> tuple[DaySchedule, ...]:
    """Hours written when settings are first created: closed Sunday, 17:00-22:00 otherwise."""
    return tuple(
        DaySchedule(closed=True) if name == "sunday" else DaySchedule(open="17:00", close="22:00")
        for name in DAY_NAMES
    )


def validate_policy(policy: RestaurantPolicy) -> None:
    if len(policy.operating_hours) != len(DAY_NAMES):
        raise ReservationValidationError("operating hours must cover all seven days")
    for name, day in zip(DAY_NAMES, policy.operating_hours):
        day.validate(name)
    if policy.time_slot_interval not in ALLOWED_INTERVALS:
        raise ReservationValidationError("Time slot interval must be 15, 30, or 60 minutes")
    if policy.min_party_size < 1 or policy.max_party_size < 1:
        raise ReservationValidationError("party size limits must be greater than 0")
    if policy.min_party_size > policy.max_party_size:
        raise ReservationValidationError(
            f"Minimum party size ({policy.min_party_size}) cannot be greater than "
            f"maximum party size ({policy.max_party_size})"
        )
    for label, cap in (("max_covers_per_slot", policy.max_covers_per_slot), ("max_covers_per_day", policy.max_covers_per_day)):
        if cap is not None and cap < 1:
            raise ReservationValidationError(f"{label} must be at least 1 when set")
    if policy.overbooking_percentage < 0:
        raise ReservationValidationError("overbooking_percentage must not be negative")
