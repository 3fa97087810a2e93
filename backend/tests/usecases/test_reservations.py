import asyncio
from datetime import timedelta
from typing import Any

import pytest
from reservation_engine.domain.errors import (
    CapacityExceededError,
    InvalidStatusTransitionError,
    ReservationNotFoundError,
    ReservationValidationError,
    RestaurantNotFoundError,
    StoreUnavailableError,
    TransientConflictError,
    VersionConflictError,
)
from reservation_engine.domain.policy import RestaurantPolicy, default_operating_hours
from reservation_engine.models import ReservationStatus
from reservation_engine.usecases import reservations as uc
from reservation_engine.utils.time import today_utc

FRIDAY = 5


def _configure(store: Any, **kwargs: Any) -> None:
    store.policies.policies[1] = RestaurantPolicy(restaurant_id=1, operating_hours=default_operating_hours(), **kwargs)


def _confirmed_covers(store: Any) -> int:
    return sum(r.party_size for r in store.reservations.rows if r.status == ReservationStatus.CONFIRMED)


@pytest.mark.asyncio
async def test_admits_within_capacity(store: Any, uow: Any, future_weekday: Any) -> None:
    _configure(store, max_covers_per_slot=10)
    friday = future_weekday(FRIDAY)

    result = await uc.create_reservation(
        uow,
        restaurant_id=1,
        on=friday,
        time_slot="19:00",
        party_size=4,
        details={"customer_name": "Ada", "customer_id": 7},
    )

    assert result.reservation.status == ReservationStatus.CONFIRMED
    assert result.reservation.customer_name == "Ada"
    assert result.reservation.overbooked is False
    assert result.warning is None
    assert result.availability.remaining == 10


@pytest.mark.asyncio
async def test_overbooking_within_ceiling_is_admitted_with_warning(store: Any, uow: Any, future_weekday: Any) -> None:
    _configure(store, max_covers_per_slot=10, allow_overbooking=True, overbooking_percentage=20)
    friday = future_weekday(FRIDAY)
    store.reservations.add(on=friday, time_slot="19:00", party_size=10)

    result = await uc.create_reservation(uow, restaurant_id=1, on=friday, time_slot="19:00", party_size=2)

    assert result.warning == "overbooked"
    assert result.reservation.overbooked is True
    assert _confirmed_covers(store) == 12


@pytest.mark.asyncio
async def test_overbooking_past_ceiling_is_rejected(store: Any, uow: Any, future_weekday: Any) -> None:
    _configure(store, max_covers_per_slot=10, allow_overbooking=True, overbooking_percentage=20)
    friday = future_weekday(FRIDAY)
    store.reservations.add(on=friday, time_slot="19:00", party_size=10)

    with pytest.raises(CapacityExceededError) as excinfo:
        await uc.create_reservation(uow, restaurant_id=1, on=friday, time_slot="19:00", party_size=3)

    assert excinfo.value.availability.capacity == 10
    assert excinfo.value.availability.current_bookings == 10
    assert len(store.reservations.rows) == 1


@pytest.mark.asyncio
async def test_daily_cap_rejects_even_when_slot_has_room(store: Any, uow: Any, future_weekday: Any) -> None:
    _configure(store, max_covers_per_slot=20, max_covers_per_day=50)
    friday = future_weekday(FRIDAY)
    store.reservations.add(on=friday, time_slot="18:00", party_size=20)
    store.reservations.add(on=friday, time_slot="20:00", party_size=20)
    store.reservations.add(on=friday, time_slot="21:00", party_size=8)

    with pytest.raises(CapacityExceededError) as excinfo:
        await uc.create_reservation(uow, restaurant_id=1, on=friday, time_slot="19:00", party_size=5)

    availability = excinfo.value.availability
    assert availability.limiting == "daily"
    assert availability.current_bookings == 48
    assert availability.capacity == 50
    assert "Daily capacity limit of 50" in str(excinfo.value)


@pytest.mark.asyncio
async def test_staff_override_forces_admission(store: Any, uow: Any, future_weekday: Any) -> None:
    _configure(store, max_covers_per_slot=4)
    friday = future_weekday(FRIDAY)
    store.reservations.add(on=friday, time_slot="19:00", party_size=4)

    result = await uc.create_reservation(
        uow, restaurant_id=1, on=friday, time_slot="19:00", party_size=2, allow_override=True
    )

    assert result.warning == "capacity_override"
    assert result.reservation.capacity_override is True
    assert _confirmed_covers(store) == 6


@pytest.mark.asyncio
async def test_concurrent_admissions_never_exceed_capacity(store: Any, uow: Any, future_weekday: Any) -> None:
    _configure(store, max_covers_per_slot=4)
    friday = future_weekday(FRIDAY)

    outcomes = await asyncio.gather(
        uc.create_reservation(uow, restaurant_id=1, on=friday, time_slot="19:00", party_size=3),
        uc.create_reservation(uow, restaurant_id=1, on=friday, time_slot="19:00", party_size=3),
        return_exceptions=True,
    )

    admitted = [o for o in outcomes if isinstance(o, uc.AdmissionResult)]
    rejected = [o for o in outcomes if isinstance(o, CapacityExceededError)]
    assert len(admitted) == 1
    assert len(rejected) == 1
    assert rejected[0].availability.current_bookings == 3
    assert _confirmed_covers(store) == 3


@pytest.mark.asyncio
async def test_concurrent_admissions_respect_daily_cap_across_slots(
    store: Any, uow: Any, future_weekday: Any
) -> None:
    _configure(store, max_covers_per_day=10)
    friday = future_weekday(FRIDAY)

    outcomes = await asyncio.gather(
        *(
            uc.create_reservation(uow, restaurant_id=1, on=friday, time_slot=slot, party_size=4)
            for slot in ("18:00", "19:00", "20:00")
        ),
        return_exceptions=True,
    )

    assert sum(isinstance(o, uc.AdmissionResult) for o in outcomes) == 2
    assert _confirmed_covers(store) == 8


@pytest.mark.asyncio
async def test_transient_conflicts_are_retried(store: Any, uow: Any, future_weekday: Any) -> None:
    _configure(store, max_covers_per_slot=10)
    uow.failures.extend([TransientConflictError(), TransientConflictError()])

    result = await uc.create_reservation(
        uow, restaurant_id=1, on=future_weekday(FRIDAY), time_slot="19:00", party_size=2, max_attempts=3
    )

    assert result.reservation.status == ReservationStatus.CONFIRMED
    assert uow.transactions == 3


@pytest.mark.asyncio
async def test_transient_conflicts_surface_after_bound(store: Any, uow: Any, future_weekday: Any) -> None:
    _configure(store, max_covers_per_slot=10)
    uow.failures.extend([TransientConflictError() for _ in range(3)])

    with pytest.raises(TransientConflictError):
        await uc.create_reservation(
            uow, restaurant_id=1, on=future_weekday(FRIDAY), time_slot="19:00", party_size=2, max_attempts=3
        )

    assert uow.transactions == 3
    assert store.reservations.rows == []


@pytest.mark.asyncio
async def test_store_failure_fails_closed(store: Any, uow: Any, future_weekday: Any) -> None:
    uow.failures.append(StoreUnavailableError("down"))

    with pytest.raises(StoreUnavailableError):
        await uc.create_reservation(uow, restaurant_id=1, on=future_weekday(FRIDAY), time_slot="19:00", party_size=2)

    assert uow.transactions == 1
    assert store.reservations.rows == []


@pytest.mark.asyncio
@pytest.mark.parametrize("time_slot, party_size", [("7pm", 2), ("19:00", 0), ("24:00", 2)])
async def test_invalid_input_rejected_before_store_access(
    uow: Any, future_weekday: Any, time_slot: str, party_size: int
) -> None:
    with pytest.raises(ReservationValidationError):
        await uc.create_reservation(
            uow, restaurant_id=1, on=future_weekday(FRIDAY), time_slot=time_slot, party_size=party_size
        )
    assert uow.transactions == 0


@pytest.mark.asyncio
async def test_past_dates_rejected(uow: Any) -> None:
    with pytest.raises(ReservationValidationError):
        await uc.create_reservation(
            uow, restaurant_id=1, on=today_utc() - timedelta(days=1), time_slot="19:00", party_size=2
        )


@pytest.mark.asyncio
async def test_party_size_outside_policy_rejected(store: Any, uow: Any, future_weekday: Any) -> None:
    _configure(store, min_party_size=2, max_party_size=6)
    with pytest.raises(ReservationValidationError):
        await uc.create_reservation(uow, restaurant_id=1, on=future_weekday(FRIDAY), time_slot="19:00", party_size=7)
    assert store.reservations.rows == []


@pytest.mark.asyncio
async def test_unknown_restaurant_rejected(uow: Any, future_weekday: Any) -> None:
    with pytest.raises(RestaurantNotFoundError):
        await uc.create_reservation(uow, restaurant_id=42, on=future_weekday(FRIDAY), time_slot="19:00", party_size=2)


@pytest.mark.asyncio
async def test_cancel_returns_existing_when_already_cancelled(store: Any, uow: Any, future_weekday: Any) -> None:
    reservation = store.reservations.add(
        on=future_weekday(FRIDAY), time_slot="19:00", party_size=2, status=ReservationStatus.CANCELLED
    )
    reservation.version = 5

    updated, previous = await uc.cancel_reservation(uow, restaurant_id=1, reservation_id=reservation.id, version=1)

    assert updated is reservation
    assert previous == ReservationStatus.CANCELLED
    assert updated.version == 5


@pytest.mark.asyncio
async def test_cancel_updates_confirmed(store: Any, uow: Any, future_weekday: Any) -> None:
    reservation = store.reservations.add(on=future_weekday(FRIDAY), time_slot="19:00", party_size=2)

    updated, previous = await uc.cancel_reservation(uow, restaurant_id=1, reservation_id=reservation.id, version=1)

    assert previous == ReservationStatus.CONFIRMED
    assert updated.status == ReservationStatus.CANCELLED
    assert updated.version == 2


@pytest.mark.asyncio
async def test_cancel_raises_on_version_conflict(store: Any, uow: Any, future_weekday: Any) -> None:
    reservation = store.reservations.add(on=future_weekday(FRIDAY), time_slot="19:00", party_size=2)
    reservation.version = 2

    with pytest.raises(VersionConflictError):
        await uc.cancel_reservation(uow, restaurant_id=1, reservation_id=reservation.id, version=1)
    assert reservation.status == ReservationStatus.CONFIRMED


@pytest.mark.asyncio
async def test_unknown_reservation(uow: Any) -> None:
    with pytest.raises(ReservationNotFoundError):
        await uc.cancel_reservation(uow, restaurant_id=1, reservation_id=999)
    with pytest.raises(ReservationNotFoundError):
        await uc.get_reservation(uow, restaurant_id=1, reservation_id=999)


@pytest.mark.asyncio
async def test_completed_cannot_be_reconfirmed(store: Any, uow: Any, future_weekday: Any) -> None:
    reservation = store.reservations.add(
        on=future_weekday(FRIDAY), time_slot="19:00", party_size=2, status=ReservationStatus.COMPLETED
    )
    with pytest.raises(InvalidStatusTransitionError):
        await uc.update_reservation_status(
            uow, restaurant_id=1, reservation_id=reservation.id, new_status=ReservationStatus.CONFIRMED
        )


@pytest.mark.asyncio
async def test_reconfirm_into_full_slot_rejected(store: Any, uow: Any, future_weekday: Any) -> None:
    _configure(store, max_covers_per_slot=4)
    friday = future_weekday(FRIDAY)
    cancelled = store.reservations.add(
        on=friday, time_slot="19:00", party_size=2, status=ReservationStatus.CANCELLED
    )
    store.reservations.add(on=friday, time_slot="19:00", party_size=4)

    with pytest.raises(CapacityExceededError):
        await uc.update_reservation_status(
            uow, restaurant_id=1, reservation_id=cancelled.id, new_status=ReservationStatus.CONFIRMED
        )
    assert cancelled.status == ReservationStatus.CANCELLED
    assert _confirmed_covers(store) == 4


@pytest.mark.asyncio
async def test_reconfirm_with_room_counts_again(store: Any, uow: Any, future_weekday: Any) -> None:
    _configure(store, max_covers_per_slot=4)
    friday = future_weekday(FRIDAY)
    cancelled = store.reservations.add(
        on=friday, time_slot="19:00", party_size=2, status=ReservationStatus.CANCELLED
    )

    updated, previous, availability = await uc.update_reservation_status(
        uow, restaurant_id=1, reservation_id=cancelled.id, new_status=ReservationStatus.CONFIRMED, version=1
    )

    assert previous == ReservationStatus.CANCELLED
    assert updated.status == ReservationStatus.CONFIRMED
    assert updated.version == 2
    assert availability is not None and availability.available
    assert _confirmed_covers(store) == 2


@pytest.mark.asyncio
async def test_no_show_frees_capacity(store: Any, uow: Any, future_weekday: Any) -> None:
    _configure(store, max_covers_per_slot=4)
    friday = future_weekday(FRIDAY)
    reservation = store.reservations.add(on=friday, time_slot="19:00", party_size=4)

    await uc.update_reservation_status(
        uow, restaurant_id=1, reservation_id=reservation.id, new_status=ReservationStatus.NO_SHOW
    )
    result = await uc.create_reservation(uow, restaurant_id=1, on=friday, time_slot="19:00", party_size=4)

    assert result.reservation.status == ReservationStatus.CONFIRMED
