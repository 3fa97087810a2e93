from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import PolicyNotConfiguredError
from ..domain.policy import RestaurantPolicy, SlotOverride, dump_operating_hours, parse_operating_hours
from ..domain.repositories import PolicyRepository, ReservationRepository, SlotOverrideRepository
from ..models import Reservation, ReservationSettings, ReservationStatus, Restaurant, TimeSlotCapacity
from ..utils.time import utc_now_naive


def _to_policy(row: ReservationSettings) -> RestaurantPolicy:
    return RestaurantPolicy(
        restaurant_id=row.restaurant_id,
        operating_hours=parse_operating_hours(row.operating_hours),
        time_slot_interval=row.time_slot_interval,
        min_party_size=row.min_party_size,
        max_party_size=row.max_party_size,
        max_covers_per_slot=row.max_covers_per_slot,
        max_covers_per_day=row.max_covers_per_day,
        allow_overbooking=row.allow_overbooking,
        overbooking_percentage=row.overbooking_percentage,
    )


def _to_override(row: TimeSlotCapacity) -> SlotOverride:
    return SlotOverride(
        id=row.id,
        restaurant_id=row.restaurant_id,
        day_of_week=row.day_of_week,
        time_slot=row.time_slot,
        max_covers=row.max_covers,
        is_active=row.is_active,
    )


class SqlAlchemyPolicyRepository(PolicyRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def restaurant_exists(self, restaurant_id: int) -> bool:
        return await self.session.scalar(select(Restaurant.id).where(Restaurant.id == restaurant_id)) is not None

    async def lock_restaurant(self, restaurant_id: int) -> bool:
        stmt = select(Restaurant.id).where(Restaurant.id == restaurant_id).with_for_update()
        return await self.session.scalar(stmt) is not None

    async def _get_row(self, restaurant_id: int) -> Optional[ReservationSettings]:
        stmt = select(ReservationSettings).where(ReservationSettings.restaurant_id == restaurant_id)
        result = await self.session.scalar(stmt)
        return result if isinstance(result, ReservationSettings) else None

    async def get_policy(self, restaurant_id: int) -> RestaurantPolicy:
        row = await self._get_row(restaurant_id)
        if row is None:
            raise PolicyNotConfiguredError(f"restaurant {restaurant_id} has no reservation settings")
        return _to_policy(row)

    async def save_policy(self, policy: RestaurantPolicy) -> RestaurantPolicy:
        now = utc_now_naive()
        row = await self._get_row(policy.restaurant_id)
        if row is None:
            row = ReservationSettings(restaurant_id=policy.restaurant_id, created_at=now)
            self.session.add(row)
        row.operating_hours = dump_operating_hours(policy.operating_hours)
        row.time_slot_interval = policy.time_slot_interval
        row.min_party_size = policy.min_party_size
        row.max_party_size = policy.max_party_size
        row.max_covers_per_slot = policy.max_covers_per_slot
        row.max_covers_per_day = policy.max_covers_per_day
        row.allow_overbooking = policy.allow_overbooking
        row.overbooking_percentage = policy.overbooking_percentage
        row.updated_at = now
        await self.session.flush()
        return _to_policy(row)


class SqlAlchemySlotOverrideRepository(SlotOverrideRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _get_row(self, restaurant_id: int, day_of_week: int, time_slot: str) -> Optional[TimeSlotCapacity]:
        stmt = select(TimeSlotCapacity).where(
            TimeSlotCapacity.restaurant_id == restaurant_id,
            TimeSlotCapacity.day_of_week == day_of_week,
            TimeSlotCapacity.time_slot == time_slot,
        )
        result = await self.session.scalar(stmt)
        return result if isinstance(result, TimeSlotCapacity) else None

    async def get_override(self, restaurant_id: int, day_of_week: int, time_slot: str) -> SlotOverride | None:
        row = await self._get_row(restaurant_id, day_of_week, time_slot)
        return _to_override(row) if row is not None else None

    async def active_for_day(
        self,
        restaurant_id: int,
        day_of_week: int,
        time_slots: Iterable[str],
    ) -> Mapping[str, SlotOverride]:
        slots = list(time_slots)
        if not slots:
            return {}
        stmt = select(TimeSlotCapacity).where(
            TimeSlotCapacity.restaurant_id == restaurant_id,
            TimeSlotCapacity.day_of_week == day_of_week,
            TimeSlotCapacity.is_active.is_(True),
            TimeSlotCapacity.time_slot.in_(slots),
        )
        rows = await self.session.scalars(stmt)
        return {row.time_slot: _to_override(row) for row in rows}

    async def list_for_restaurant(
        self,
        restaurant_id: int,
        day_of_week: int | None = None,
        time_slot: str | None = None,
    ) -> List[SlotOverride]:
        stmt = select(TimeSlotCapacity).where(TimeSlotCapacity.restaurant_id == restaurant_id)
        if day_of_week is not None:
            stmt = stmt.where(TimeSlotCapacity.day_of_week == day_of_week)
        if time_slot is not None:
            stmt = stmt.where(TimeSlotCapacity.time_slot == time_slot)
        stmt = stmt.order_by(TimeSlotCapacity.day_of_week, TimeSlotCapacity.time_slot)
        rows = await self.session.scalars(stmt)
        return [_to_override(row) for row in rows]

    async def upsert(self, override: SlotOverride) -> SlotOverride:
        now = utc_now_naive()
        row = await self._get_row(override.restaurant_id, override.day_of_week, override.time_slot)
        if row is None:
            row = TimeSlotCapacity(
                restaurant_id=override.restaurant_id,
                day_of_week=override.day_of_week,
                time_slot=override.time_slot,
                created_at=now,
            )
            self.session.add(row)
        row.max_covers = override.max_covers
        row.is_active = override.is_active
        row.updated_at = now
        await self.session.flush()
        return _to_override(row)

    async def delete(self, restaurant_id: int, override_id: int) -> bool:
        row = await self.session.get(TimeSlotCapacity, override_id)
        if row is None or row.restaurant_id != restaurant_id:
            return False
        await self.session.delete(row)
        await self.session.flush()
        return True


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _confirmed(self, restaurant_id: int) -> Any:
        return (Reservation.restaurant_id == restaurant_id) & (Reservation.status == ReservationStatus.CONFIRMED)

    async def sum_confirmed_covers(self, restaurant_id: int, on: date, time_slot: str | None = None) -> int:
        stmt = select(func.coalesce(func.sum(Reservation.party_size), 0)).where(
            self._confirmed(restaurant_id),
            Reservation.reservation_date == on,
        )
        if time_slot is not None:
            stmt = stmt.where(Reservation.reservation_time == time_slot)
        return int(await self.session.scalar(stmt) or 0)

    async def confirmed_covers_by_slot(
        self,
        restaurant_id: int,
        on: date,
        time_slots: Iterable[str],
    ) -> Mapping[str, int]:
        slots = list(time_slots)
        if not slots:
            return {}
        stmt: Select[Any] = (
            select(Reservation.reservation_time, func.sum(Reservation.party_size))
            .where(
                self._confirmed(restaurant_id),
                Reservation.reservation_date == on,
                Reservation.reservation_time.in_(slots),
            )
            .group_by(Reservation.reservation_time)
        )
        rows = await self.session.execute(stmt)
        return {slot: int(total or 0) for slot, total in rows.all()}

    async def confirmed_covers_by_date(self, restaurant_id: int, start: date, end: date) -> Mapping[date, int]:
        stmt: Select[Any] = (
            select(Reservation.reservation_date, func.sum(Reservation.party_size))
            .where(
                self._confirmed(restaurant_id),
                Reservation.reservation_date >= start,
                Reservation.reservation_date <= end,
            )
            .group_by(Reservation.reservation_date)
        )
        rows = await self.session.execute(stmt)
        totals: Dict[date, int] = {}
        for day, total in rows.all():
            totals[day] = int(total or 0)
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
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def get(self, restaurant_id: int, reservation_id: int, *, for_update: bool = False) -> Reservation | None:
        stmt = select(Reservation).where(Reservation.id == reservation_id, Reservation.restaurant_id == restaurant_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.scalar(stmt)
        return result if isinstance(result, Reservation) else None

    async def save(self, reservation: Reservation) -> Reservation:
        self.session.add(reservation)
        await self.session.flush()
        return reservation
