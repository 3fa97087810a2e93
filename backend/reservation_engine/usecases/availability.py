"""
Availability engine.

Every capacity computation takes a ``BookingStore`` (repositories bound to one
transaction), so the same code runs inside the admission transaction and on
the read path. The ``uow``-level functions below are the read-path wrappers:
they open a plain, non-locking transaction and apply read-path leniency.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import List, Optional, Sequence

from ..domain.errors import (
    PolicyNotConfiguredError,
    ReservationValidationError,
    RestaurantNotFoundError,
    StoreUnavailableError,
    TransientConflictError,
)
from ..domain.policy import RestaurantPolicy
from ..domain.repositories import BookingStore, UnitOfWork
from ..domain.services import (
    AvailabilityResult,
    DailyCapacity,
    assume_available,
    daily_gate,
    evaluate_daily_capacity,
    evaluate_slot,
    resolve_slot_capacity,
    validate_party_size,
)
from ..domain.slots import default_slots, is_valid_slot, slots_for_day
from ..utils.time import iter_days, today_utc, weekday_index

logger = logging.getLogger(__name__)

DEFAULT_DAILY_RANGE_DAYS = 90
MAX_DAILY_RANGE_DAYS = 366


async def load_policy(store: BookingStore, restaurant_id: int) -> RestaurantPolicy:
    try:
        return await store.policies.get_policy(restaurant_id)
    except PolicyNotConfiguredError:
        logger.debug("restaurant %s has no reservation settings, using defaults", restaurant_id)
        return RestaurantPolicy.default(restaurant_id)


async def _require_restaurant(store: BookingStore, restaurant_id: int) -> None:
    if not await store.policies.restaurant_exists(restaurant_id):
        raise RestaurantNotFoundError(f"restaurant {restaurant_id} not found")


async def get_daily_capacity(
    store: BookingStore,
    restaurant_id: int,
    on: date,
    party_size: Optional[int] = None,
    *,
    policy: Optional[RestaurantPolicy] = None,
) -> DailyCapacity:
    policy = policy or await load_policy(store, restaurant_id)
    current = await store.reservations.sum_confirmed_covers(restaurant_id, on)
    return evaluate_daily_capacity(current, policy.max_covers_per_day, party_size, day=on)


async def check_slot(
    store: BookingStore,
    restaurant_id: int,
    on: date,
    time_slot: str,
    party_size: int,
    *,
    allow_override: bool = False,
    policy: Optional[RestaurantPolicy] = None,
) -> AvailabilityResult:
    """Availability of one slot for ``party_size``; the daily cap is checked before the slot is inspected."""
    policy = policy or await load_policy(store, restaurant_id)
    daily = await get_daily_capacity(store, restaurant_id, on, party_size, policy=policy)
    gated = daily_gate(time_slot, daily, allow_override=allow_override)
    if gated is not None:
        return gated

    override = await store.overrides.get_override(restaurant_id, weekday_index(on), time_slot)
    current = await store.reservations.sum_confirmed_covers(restaurant_id, on, time_slot)
    return evaluate_slot(
        time_slot=time_slot,
        party_size=party_size,
        policy=policy,
        daily=daily,
        slot_capacity=resolve_slot_capacity(policy, override),
        current_bookings=current,
        allow_override=allow_override,
    )


async def evaluate_slots(
    store: BookingStore,
    restaurant_id: int,
    on: date,
    time_slots: Sequence[str],
    party_size: int = 1,
    *,
    policy: Optional[RestaurantPolicy] = None,
) -> List[AvailabilityResult]:
    policy = policy or await load_policy(store, restaurant_id)
    daily = await get_daily_capacity(store, restaurant_id, on, party_size, policy=policy)
    overrides = await store.overrides.active_for_day(restaurant_id, weekday_index(on), time_slots)
    booked = await store.reservations.confirmed_covers_by_slot(restaurant_id, on, time_slots)
    return [
        evaluate_slot(
            time_slot=slot,
            party_size=party_size,
            policy=policy,
            daily=daily,
            slot_capacity=resolve_slot_capacity(policy, overrides.get(slot)),
            current_bookings=booked.get(slot, 0),
        )
        for slot in time_slots
    ]


async def check_slot_availability(
    uow: UnitOfWork,
    *,
    restaurant_id: int,
    on: date,
    time_slot: str,
    party_size: int,
) -> AvailabilityResult:
    if not is_valid_slot(time_slot):
        raise ReservationValidationError("time must be in HH:MM format")
    async with uow.transaction() as store:
        return await check_slot(store, restaurant_id, on, time_slot, party_size)


async def list_slot_availabilities(
    uow: UnitOfWork,
    *,
    restaurant_id: int,
    on: date,
    time_slots: Sequence[str],
    party_size: int = 1,
) -> List[AvailabilityResult]:
    try:
        async with uow.transaction() as store:
            return await evaluate_slots(store, restaurant_id, on, time_slots, party_size)
    except (StoreUnavailableError, TransientConflictError):
        logger.warning("capacity data unavailable for restaurant %s on %s, reporting slots as available", restaurant_id, on)
        return [assume_available(slot) for slot in time_slots]


async def get_time_slots(uow: UnitOfWork, *, restaurant_id: int, on: date) -> List[str]:
    async with uow.transaction() as store:
        await _require_restaurant(store, restaurant_id)
        policy = await load_policy(store, restaurant_id)
    return slots_for_day(policy, weekday_index(on))


async def get_availability_for_date(
    uow: UnitOfWork,
    *,
    restaurant_id: int,
    on: date,
    party_size: int,
) -> List[AvailabilityResult]:
    """All of the day's slots for ``party_size``; degrades to all-available if the store fails."""
    slots: List[str] = []
    try:
        async with uow.transaction() as store:
            await _require_restaurant(store, restaurant_id)
            policy = await load_policy(store, restaurant_id)
            validate_party_size(policy, party_size)
            slots = slots_for_day(policy, weekday_index(on))
            return await evaluate_slots(store, restaurant_id, on, slots, party_size, policy=policy)
    except (StoreUnavailableError, TransientConflictError):
        slots = slots or default_slots()
        logger.warning("capacity data unavailable for restaurant %s on %s, reporting slots as available", restaurant_id, on)
        return [assume_available(slot) for slot in slots]


async def list_daily_capacity(
    uow: UnitOfWork,
    *,
    restaurant_id: int,
    start: Optional[date] = None,
    end: Optional[date] = None,
    party_size: Optional[int] = None,
) -> List[DailyCapacity]:
    start = start or today_utc()
    end = end or start + timedelta(days=DEFAULT_DAILY_RANGE_DAYS)
    if end < start:
        raise ReservationValidationError("endDate must not be before startDate")
    if (end - start).days > MAX_DAILY_RANGE_DAYS:
        raise ReservationValidationError(f"date range must not exceed {MAX_DAILY_RANGE_DAYS} days")
    if party_size is not None and party_size < 1:
        raise ReservationValidationError("Invalid party size. Must be a positive number.")

    async with uow.transaction() as store:
        await _require_restaurant(store, restaurant_id)
        policy = await load_policy(store, restaurant_id)
        covers = await store.reservations.confirmed_covers_by_date(restaurant_id, start, end)
    return [
        evaluate_daily_capacity(covers.get(day, 0), policy.max_covers_per_day, party_size, day=day)
        for day in iter_days(start, end)
    ]
