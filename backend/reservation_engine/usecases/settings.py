from __future__ import annotations

import dataclasses
import logging
from typing import Any, List, Mapping, Optional, Sequence

from ..domain.errors import PolicyNotConfiguredError, ReservationValidationError, RestaurantNotFoundError
from ..domain.policy import (
    DAY_NAMES,
    DaySchedule,
    RestaurantPolicy,
    SlotOverride,
    default_operating_hours,
    validate_policy,
)
from ..domain.repositories import BookingStore, UnitOfWork
from ..domain.slots import is_valid_slot

logger = logging.getLogger(__name__)

_POLICY_FIELDS = frozenset(
    {
        "time_slot_interval",
        "min_party_size",
        "max_party_size",
        "max_covers_per_slot",
        "max_covers_per_day",
        "allow_overbooking",
        "overbooking_percentage",
    }
)


def _merge_hours(current: tuple[DaySchedule, ...], changes: Mapping[str, Any]) -> tuple[DaySchedule, ...]:
    unknown = set(changes) - set(DAY_NAMES)
    if unknown:
        raise ReservationValidationError(f"unknown day(s) in operating hours: {', '.join(sorted(unknown))}")
    return tuple(
        DaySchedule.from_mapping(changes[name]) if name in changes else day
        for name, day in zip(DAY_NAMES, current)
    )


async def _existing_policy(store: BookingStore, restaurant_id: int) -> Optional[RestaurantPolicy]:
    try:
        return await store.policies.get_policy(restaurant_id)
    except PolicyNotConfiguredError:
        return None


async def update_policy(uow: UnitOfWork, *, restaurant_id: int, changes: Mapping[str, Any]) -> RestaurantPolicy:
    """
    Apply a partial settings update.

    ``changes`` holds only the fields the caller sent. Missing settings are
    created first with the default opening hours, and the merged result is
    validated as a whole, so a new minimum party size is checked against the
    stored maximum.
    """
    unknown = set(changes) - _POLICY_FIELDS - {"operating_hours"}
    if unknown:
        raise ReservationValidationError(f"unknown setting(s): {', '.join(sorted(unknown))}")

    async with uow.transaction(lock_restaurant_id=restaurant_id) as store:
        current = await _existing_policy(store, restaurant_id)
        if current is None:
            current = RestaurantPolicy(restaurant_id=restaurant_id, operating_hours=default_operating_hours())
        updated = dataclasses.replace(current, **{k: v for k, v in changes.items() if k in _POLICY_FIELDS})
        if "operating_hours" in changes:
            updated = dataclasses.replace(
                updated, operating_hours=_merge_hours(current.operating_hours, changes["operating_hours"] or {})
            )
        validate_policy(updated)
        saved = await store.policies.save_policy(updated)
    logger.info("reservation settings updated for restaurant %s: %s", restaurant_id, sorted(changes))
    return saved


async def get_policy(uow: UnitOfWork, *, restaurant_id: int) -> RestaurantPolicy:
    async with uow.transaction() as store:
        if not await store.policies.restaurant_exists(restaurant_id):
            raise RestaurantNotFoundError(f"restaurant {restaurant_id} not found")
        current = await _existing_policy(store, restaurant_id)
    return current or RestaurantPolicy.default(restaurant_id)


def _validate_override(day_of_week: int, time_slot: str, max_covers: Optional[int]) -> None:
    if not 0 <= day_of_week <= 6:
        raise ReservationValidationError("dayOfWeek must be between 0 (Sunday) and 6 (Saturday)")
    if not is_valid_slot(time_slot):
        raise ReservationValidationError("timeSlot must be in HH:MM format")
    if max_covers is not None and max_covers < 1:
        raise ReservationValidationError("maxCovers must be at least 1")


async def list_slot_overrides(
    uow: UnitOfWork,
    *,
    restaurant_id: int,
    day_of_week: Optional[int] = None,
    time_slot: Optional[str] = None,
) -> List[SlotOverride]:
    async with uow.transaction() as store:
        if not await store.policies.restaurant_exists(restaurant_id):
            raise RestaurantNotFoundError(f"restaurant {restaurant_id} not found")
        return await store.overrides.list_for_restaurant(restaurant_id, day_of_week, time_slot)


async def upsert_slot_override(
    uow: UnitOfWork,
    *,
    restaurant_id: int,
    day_of_week: int,
    time_slot: str,
    max_covers: Optional[int],
    is_active: bool = True,
) -> SlotOverride:
    saved = await bulk_upsert_slot_overrides(
        uow,
        restaurant_id=restaurant_id,
        overrides=[
            SlotOverride(
                restaurant_id=restaurant_id,
                day_of_week=day_of_week,
                time_slot=time_slot,
                max_covers=max_covers,
                is_active=is_active,
            )
        ],
    )
    return saved[0]


async def bulk_upsert_slot_overrides(
    uow: UnitOfWork,
    *,
    restaurant_id: int,
    overrides: Sequence[SlotOverride],
) -> List[SlotOverride]:
    """Write every override or none of them."""
    if not overrides:
        raise ReservationValidationError("at least one slot capacity is required")
    for override in overrides:
        _validate_override(override.day_of_week, override.time_slot, override.max_covers)

    async with uow.transaction(lock_restaurant_id=restaurant_id) as store:
        saved = [
            await store.overrides.upsert(dataclasses.replace(override, restaurant_id=restaurant_id))
            for override in overrides
        ]
    logger.info("upserted %d slot capacity override(s) for restaurant %s", len(saved), restaurant_id)
    return saved


async def delete_slot_override(uow: UnitOfWork, *, restaurant_id: int, override_id: int) -> bool:
    async with uow.transaction(lock_restaurant_id=restaurant_id) as store:
        deleted = await store.overrides.delete(restaurant_id, override_id)
    if deleted:
        logger.info("slot capacity override %s removed for restaurant %s", override_id, restaurant_id)
    return deleted
