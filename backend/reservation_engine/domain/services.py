from dataclasses import dataclass
from datetime import date
from typing import Literal, Optional

from .errors import ReservationValidationError
from .policy import RestaurantPolicy, SlotOverride

Limiting = Literal["slot", "daily"]

WARNING_OVERBOOKED = "overbooked"
WARNING_CAPACITY_OVERRIDE = "capacity_override"


@dataclass(frozen=True)
class DailyCapacity:
    current_covers: int
    max_covers_per_day: Optional[int]
    remaining: Optional[int]
    would_fit: bool
    day: Optional[date] = None

    @property
    def limited(self) -> bool:
        return self.max_covers_per_day is not None

    @property
    def exceeded(self) -> bool:
        return self.limited and not self.would_fit


@dataclass(frozen=True)
class AvailabilityResult:
    time_slot: str
    available: bool
    current_bookings: int
    capacity: Optional[int]
    remaining: Optional[int]
    can_overbook: bool = False
    overbooked: bool = False
    overridden: bool = False
    limiting: Optional[Limiting] = None
    daily: Optional[DailyCapacity] = None

    @property
    def warning(self) -> Optional[str]:
        if not self.available:
            return None
        if self.overridden:
            return WARNING_CAPACITY_OVERRIDE
        if self.overbooked:
            return WARNING_OVERBOOKED
        return None


def evaluate_daily_capacity(
    current_covers: int,
    max_covers_per_day: Optional[int],
    party_size: Optional[int] = None,
    *,
    day: Optional[date] = None,
) -> DailyCapacity:
    if max_covers_per_day is None:
        return DailyCapacity(current_covers, None, None, True, day)
    remaining = max(0, max_covers_per_day - current_covers)
    if party_size is not None:
        would_fit = current_covers + party_size <= max_covers_per_day
    else:
        would_fit = current_covers < max_covers_per_day
    return DailyCapacity(current_covers, max_covers_per_day, remaining, would_fit, day)


def resolve_slot_capacity(policy: RestaurantPolicy, override: Optional[SlotOverride]) -> Optional[int]:
    """Active per-slot override, else restaurant-wide per-slot default, else unlimited (None)."""
    if override is not None and override.is_active and override.max_covers is not None:
        return override.max_covers
    return policy.max_covers_per_slot


def overbooking_ceiling(capacity: int, policy: RestaurantPolicy) -> int:
    if not policy.allow_overbooking:
        return capacity
    return capacity * (100 + policy.overbooking_percentage) // 100


def validate_party_size(policy: RestaurantPolicy, party_size: int) -> None:
    if party_size < policy.min_party_size or party_size > policy.max_party_size:
        raise ReservationValidationError(
            f"Party size must be between {policy.min_party_size} and {policy.max_party_size}"
        )


def daily_gate(time_slot: str, daily: DailyCapacity, *, allow_override: bool) -> Optional[AvailabilityResult]:
    """Rejection reported on daily figures when the day is full; None when the slot must be inspected."""
    if not daily.exceeded or allow_override:
        return None
    return AvailabilityResult(
        time_slot=time_slot,
        available=False,
        current_bookings=daily.current_covers,
        capacity=daily.max_covers_per_day,
        remaining=daily.remaining,
        limiting="daily",
        daily=daily,
    )


def evaluate_slot(
    *,
    time_slot: str,
    party_size: int,
    policy: RestaurantPolicy,
    daily: DailyCapacity,
    slot_capacity: Optional[int],
    current_bookings: int,
    allow_override: bool = False,
) -> AvailabilityResult:
    gated = daily_gate(time_slot, daily, allow_override=allow_override)
    if gated is not None:
        return gated

    if slot_capacity is None:
        natural = not daily.exceeded
        if daily.limited:
            return AvailabilityResult(
                time_slot=time_slot,
                available=natural or allow_override,
                current_bookings=daily.current_covers,
                capacity=daily.max_covers_per_day,
                remaining=daily.remaining,
                overridden=allow_override and not natural,
                limiting="daily",
                daily=daily,
            )
        return AvailabilityResult(
            time_slot=time_slot,
            available=True,
            current_bookings=current_bookings,
            capacity=None,
            remaining=None,
            daily=daily,
        )

    slot_remaining = max(0, slot_capacity - current_bookings)
    would_fit = party_size <= slot_remaining
    ceiling = overbooking_ceiling(slot_capacity, policy)
    projected = current_bookings + party_size
    can_overbook = policy.allow_overbooking and projected <= ceiling
    overbooked = slot_capacity < projected <= ceiling
    natural = (would_fit or can_overbook) and not daily.exceeded

    capacity, remaining, booked, limiting = slot_capacity, slot_remaining, current_bookings, "slot"
    if daily.limited and daily.remaining is not None and daily.remaining <= slot_remaining:
        capacity, remaining, booked, limiting = daily.max_covers_per_day, daily.remaining, daily.current_covers, "daily"

    return AvailabilityResult(
        time_slot=time_slot,
        available=natural or allow_override,
        current_bookings=booked,
        capacity=capacity,
        remaining=remaining,
        can_overbook=can_overbook,
        overbooked=overbooked,
        overridden=allow_override and not natural,
        limiting=limiting,
        daily=daily,
    )


def assume_available(time_slot: str) -> AvailabilityResult:
    """Listing default used when capacity data cannot be read."""
    return AvailabilityResult(time_slot=time_slot, available=True, current_bookings=0, capacity=None, remaining=None)
