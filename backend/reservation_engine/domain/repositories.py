from __future__ import annotations

from datetime import date
from typing import Any, AsyncContextManager, Iterable, Mapping, Protocol

from ..models import Reservation, ReservationStatus
from .policy import RestaurantPolicy, SlotOverride


class PolicyRepository(Protocol):
    async def restaurant_exists(self, restaurant_id: int) -> bool: ...

    async def lock_restaurant(self, restaurant_id: int) -> bool: ...

    async def get_policy(self, restaurant_id: int) -> RestaurantPolicy:
        """Raises PolicyNotConfiguredError when the restaurant has no settings."""
        ...

    async def save_policy(self, policy: RestaurantPolicy) -> RestaurantPolicy: ...


class SlotOverrideRepository(Protocol):
    async def get_override(self, restaurant_id: int, day_of_week: int, time_slot: str) -> SlotOverride | None: ...

    async def active_for_day(
        self,
        restaurant_id: int,
        day_of_week: int,
        time_slots: Iterable[str],
    ) -> Mapping[str, SlotOverride]: ...

    async def list_for_restaurant(
        self,
        restaurant_id: int,
        day_of_week: int | None = None,
        time_slot: str | None = None,
    ) -> list[SlotOverride]: ...

    async def upsert(self, override: SlotOverride) -> SlotOverride: ...

    async def delete(self, restaurant_id: int, override_id: int) -> bool: ...


class ReservationRepository(Protocol):
    async def sum_confirmed_covers(self, restaurant_id: int, on: date, time_slot: str | None = None) -> int: ...

    async def confirmed_covers_by_slot(
        self,
        restaurant_id: int,
        on: date,
        time_slots: Iterable[str],
    ) -> Mapping[str, int]: ...

    async def confirmed_covers_by_date(self, restaurant_id: int, start: date, end: date) -> Mapping[date, int]: ...

    async def create(
        self,
        *,
        restaurant_id: int,
        on: date,
        time_slot: str,
        party_size: int,
        status: ReservationStatus,
        capacity_override: bool,
        overbooked: bool,
        details: Mapping[str, Any],
    ) -> Reservation: ...

    async def get(self, restaurant_id: int, reservation_id: int, *, for_update: bool = False) -> Reservation | None: ...

    async def save(self, reservation: Reservation) -> Reservation: ...


class BookingStore(Protocol):
    """Repositories bound to one open transaction."""

    policies: PolicyRepository
    overrides: SlotOverrideRepository
    reservations: ReservationRepository


class UnitOfWork(Protocol):
    def transaction(self, *, lock_restaurant_id: int | None = None) -> AsyncContextManager[BookingStore]:
        """
        Open a transaction and yield the store bound to it.

        With ``lock_restaurant_id`` the restaurant row is locked before the
        store is yielded and held until commit, so capacity reads inside the
        block see every reservation committed before it. Commits on normal
        exit, rolls back on any exception.
        """
        ...
