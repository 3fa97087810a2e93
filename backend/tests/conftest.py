import asyncio
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import pytest
from reservation_engine.domain.errors import PolicyNotConfiguredError, RestaurantNotFoundError
from reservation_engine.domain.policy import RestaurantPolicy, SlotOverride
from reservation_engine.models import Reservation, ReservationStatus
from reservation_engine.utils.time import today_utc, utc_now_naive


class FakePolicyRepo:
    def __init__(self) -> None:
        self.restaurants: set[int] = {1}
        self.policies: Dict[int, RestaurantPolicy] = {}

    async def restaurant_exists(self, restaurant_id: int) -> bool:
        return restaurant_id in self.restaurants

    async def lock_restaurant(self, restaurant_id: int) -> bool:
        return restaurant_id in self.restaurants

    async def get_policy(self, restaurant_id: int) -> RestaurantPolicy:
        if restaurant_id not in self.policies:
            raise PolicyNotConfiguredError("no settings")
        return self.policies[restaurant_id]

    async def save_policy(self, policy: RestaurantPolicy) -> RestaurantPolicy:
        self.policies[policy.restaurant_id] = policy
        return policy


class FakeOverrideRepo:
    def __init__(self) -> None:
        self.rows: Dict[Tuple[int, int, str], SlotOverride] = {}
        self._next_id = 1

    async def get_override(self, restaurant_id: int, day_of_week: int, time_slot: str) -> Optional[SlotOverride]:
        return self.rows.get((restaurant_id, day_of_week, time_slot))

    async def active_for_day(
        self, restaurant_id: int, day_of_week: int, time_slots: Iterable[str]
    ) -> Mapping[str, SlotOverride]:
        wanted = set(time_slots)
        return {
            slot: row
            for (rid, dow, slot), row in self.rows.items()
            if rid == restaurant_id and dow == day_of_week and slot in wanted and row.is_active
        }

    async def list_for_restaurant(
        self, restaurant_id: int, day_of_week: Optional[int] = None, time_slot: Optional[str] = None
    ) -> List[SlotOverride]:
        rows = [
            row
            for row in self.rows.values()
            if row.restaurant_id == restaurant_id
            and (day_of_week is None or row.day_of_week == day_of_week)
            and (time_slot is None or row.time_slot == time_slot)
        ]
        return sorted(rows, key=lambda r: (r.day_of_week, r.time_slot))

    async def upsert(self, override: SlotOverride) -> SlotOverride:
        key = (override.restaurant_id, override.day_of_week, override.time_slot)
        existing = self.rows.get(key)
        override_id = existing.id if existing is not None else self._next_id
        if existing is None:
            self._next_id += 1
        saved = SlotOverride(
            id=override_id,
            restaurant_id=override.restaurant_id,
            day_of_week=override.day_of_week,
            time_slot=override.time_slot,
            max_covers=override.max_covers,
            is_active=override.is_active,
        )
        self.rows[key] = saved
        return saved

    async def delete(self, restaurant_id: int, override_id: int) -> bool:
        for key, row in list(self.rows.items()):
            if row.id == override_id and row.restaurant_id == restaurant_id:
                del self.rows[key]
                return True
        return False


class FakeReservationRepo:
    """In-memory reservations; sums yield to the loop so concurrent admissions interleave."""

    def __init__(self) -> None:
        self.rows: List[Reservation] = []
        self._next_id = 1

    def _confirmed(self, restaurant_id: int, on: date) -> List[Reservation]:
        return [
            r
            for r in self.rows
            if r.restaurant_id == restaurant_id and r.reservation_date == on and r.status == ReservationStatus.CONFIRMED
        ]

    async def sum_confirmed_covers(self, restaurant_id: int, on: date, time_slot: Optional[str] = None) -> int:
        total = sum(
            r.party_size for r in self._confirmed(restaurant_id, on) if time_slot is None or r.reservation_time == time_slot
        )
        await asyncio.sleep(0)
        return total

    async def confirmed_covers_by_slot(
        self, restaurant_id: int, on: date, time_slots: Iterable[str]
    ) -> Mapping[str, int]:
        wanted = set(time_slots)
        totals: Dict[str, int] = {}
        for r in self._confirmed(restaurant_id, on):
            if r.reservation_time in wanted:
                totals[r.reservation_time] = totals.get(r.reservation_time, 0) + r.party_size
        await asyncio.sleep(0)
        return totals

    async def confirmed_covers_by_date(self, restaurant_id: int, start: date, end: date) -> Mapping[date, int]:
        totals: Dict[date, int] = {}
        for r in self.rows:
            if r.restaurant_id == restaurant_id and r.status == ReservationStatus.CONFIRMED and start <= r.reservation_date <= end:
                totals[r.reservation_date] = totals.get(r.reservation_date, 0) + r.party_size
        return totals

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
    ) -> Reservation:
        now = utc_now_naive()
        reservation = Reservation(
            id=self._next_id,
            restaurant_id=restaurant_id,
            reservation_date=on,
            reservation_time=time_slot,
            party_size=party_size,
            status=status,
            capacity_override=capacity_override,
            overbooked=overbooked,
            version=1,
            created_at=now,
            updated_at=now,
            customer_id=details.get("customer_id"),
            customer_name=details.get("customer_name") or "Guest",
            customer_email=details.get("customer_email"),
            customer_phone=details.get("customer_phone"),
            notes=details.get("notes"),
            special_requests=details.get("special_requests"),
            source=details.get("source") or "customer_portal",
        )
        self._next_id += 1
        self.rows.append(reservation)
        return reservation

    async def get(self, restaurant_id: int, reservation_id: int, *, for_update: bool = False) -> Optional[Reservation]:
        for r in self.rows:
            if r.id == reservation_id and r.restaurant_id == restaurant_id:
                return r
        return None

    async def save(self, reservation: Reservation) -> Reservation:
        return reservation

    def add(
        self,
        *,
        on: date,
        time_slot: str,
        party_size: int,
        status: ReservationStatus = ReservationStatus.CONFIRMED,
        restaurant_id: int = 1,
        customer_id: Optional[int] = None,
    ) -> Reservation:
        now = utc_now_naive()
        reservation = Reservation(
            id=self._next_id,
            restaurant_id=restaurant_id,
            reservation_date=on,
            reservation_time=time_slot,
            party_size=party_size,
            status=status,
            capacity_override=False,
            overbooked=False,
            version=1,
            created_at=now,
            updated_at=now,
            customer_id=customer_id,
            customer_name="Guest",
            source="customer_portal",
        )
        self._next_id += 1
        self.rows.append(reservation)
        return reservation


class FakeStore:
    def __init__(self) -> None:
        self.policies = FakePolicyRepo()
        self.overrides = FakeOverrideRepo()
        self.reservations = FakeReservationRepo()


class FakeUnitOfWork:
    """
    Serializes locking transactions on one asyncio.Lock, like the restaurant row lock.

    Errors queued in ``failures`` are raised on entry to the next transactions.
    """

    def __init__(self, store: FakeStore) -> None:
        self.store = store
        self.lock = asyncio.Lock()
        self.failures: List[Exception] = []
        self.transactions = 0

    @asynccontextmanager
    async def transaction(self, *, lock_restaurant_id: Optional[int] = None) -> AsyncIterator[FakeStore]:
        self.transactions += 1
        if self.failures:
            raise self.failures.pop(0)
        if lock_restaurant_id is None:
            yield self.store
            return
        async with self.lock:
            if not await self.store.policies.lock_restaurant(lock_restaurant_id):
                raise RestaurantNotFoundError(f"restaurant {lock_restaurant_id} not found")
            yield self.store


def _next_weekday(weekday: int) -> date:
    """First future date (from tomorrow) falling on ``weekday`` (0=Sunday)."""
    day = today_utc() + timedelta(days=1)
    while (day.weekday() + 1) % 7 != weekday:
        day += timedelta(days=1)
    return day


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def uow(store: FakeStore) -> FakeUnitOfWork:
    return FakeUnitOfWork(store)


@pytest.fixture
def future_weekday() -> Callable[[int], date]:
    return _next_weekday
