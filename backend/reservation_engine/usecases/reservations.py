from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional

from ..domain.errors import (
    CapacityExceededError,
    InvalidStatusTransitionError,
    ReservationNotFoundError,
    ReservationValidationError,
    TransientConflictError,
    VersionConflictError,
)
from ..domain.repositories import UnitOfWork
from ..domain.services import AvailabilityResult, validate_party_size
from ..domain.slots import is_valid_slot
from ..models import Reservation, ReservationStatus
from ..utils.time import today_utc, utc_now_naive
from .availability import check_slot, load_policy

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.CONFIRMED: frozenset(
        {ReservationStatus.CANCELLED, ReservationStatus.COMPLETED, ReservationStatus.NO_SHOW}
    ),
    ReservationStatus.CANCELLED: frozenset({ReservationStatus.CONFIRMED}),
}


@dataclass(frozen=True)
class AdmissionResult:
    reservation: Reservation
    availability: AvailabilityResult

    @property
    def warning(self) -> Optional[str]:
        return self.availability.warning


def _validate_request(on: date, time_slot: str, party_size: int) -> None:
    if not is_valid_slot(time_slot):
        raise ReservationValidationError("time must be in HH:MM format")
    if party_size < 1:
        raise ReservationValidationError("Party size must be a valid number greater than 0")
    if on < today_utc():
        raise ReservationValidationError("Cannot create reservations in the past")


async def create_reservation(
    uow: UnitOfWork,
    *,
    restaurant_id: int,
    on: date,
    time_slot: str,
    party_size: int,
    allow_override: bool = False,
    details: Optional[Mapping[str, Any]] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> AdmissionResult:
    """
    Admit a CONFIRMED reservation, or raise CapacityExceededError.

    The capacity check and the insert run in one transaction holding the
    restaurant's row lock, so concurrent admissions are serialized and each
    one sees every reservation committed before it. Serialization conflicts
    restart the whole attempt, up to ``max_attempts`` times.
    """
    _validate_request(on, time_slot, party_size)
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    last_seen: Optional[AvailabilityResult] = None
    for attempt in range(1, max_attempts + 1):
        try:
            async with uow.transaction(lock_restaurant_id=restaurant_id) as store:
                policy = await load_policy(store, restaurant_id)
                validate_party_size(policy, party_size)
                availability = await check_slot(
                    store,
                    restaurant_id,
                    on,
                    time_slot,
                    party_size,
                    allow_override=allow_override,
                    policy=policy,
                )
                last_seen = availability
                if not availability.available:
                    raise CapacityExceededError(availability)
                reservation = await store.reservations.create(
                    restaurant_id=restaurant_id,
                    on=on,
                    time_slot=time_slot,
                    party_size=party_size,
                    status=ReservationStatus.CONFIRMED,
                    capacity_override=availability.overridden,
                    overbooked=availability.overbooked,
                    details=details or {},
                )
        except TransientConflictError:
            logger.warning(
                "admission conflict for restaurant %s on %s %s (attempt %d/%d)",
                restaurant_id,
                on,
                time_slot,
                attempt,
                max_attempts,
            )
            continue

        if availability.warning is not None:
            logger.warning(
                "reservation %s admitted past capacity (%s): %s/%s covers",
                reservation.id,
                availability.warning,
                availability.current_bookings + party_size,
                availability.capacity,
            )
        return AdmissionResult(reservation=reservation, availability=availability)

    raise TransientConflictError("reservation could not be admitted, please try again", availability=last_seen)


async def update_reservation_status(
    uow: UnitOfWork,
    *,
    restaurant_id: int,
    reservation_id: int,
    new_status: ReservationStatus,
    version: Optional[int] = None,
    allow_override: bool = False,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> tuple[Reservation, ReservationStatus, Optional[AvailabilityResult]]:
    """
    Move a reservation through its lifecycle.

    Returns the reservation, its previous status, and the availability check
    when the change re-admitted it (cancelled -> confirmed).
    """
    last_seen: Optional[AvailabilityResult] = None
    for attempt in range(1, max_attempts + 1):
        try:
            async with uow.transaction(lock_restaurant_id=restaurant_id) as store:
                reservation = await store.reservations.get(restaurant_id, reservation_id, for_update=True)
                if reservation is None:
                    raise ReservationNotFoundError("reservation not found")
                previous = reservation.status
                # Idempotent: already in the requested status returns as-is
                if previous == new_status:
                    return reservation, previous, None
                if version is not None and reservation.version != version:
                    raise VersionConflictError("version mismatch")
                if new_status not in _TRANSITIONS.get(previous, frozenset()):
                    raise InvalidStatusTransitionError(f"cannot change status from {previous} to {new_status}")

                availability: Optional[AvailabilityResult] = None
                if new_status == ReservationStatus.CONFIRMED:
                    availability = await check_slot(
                        store,
                        restaurant_id,
                        reservation.reservation_date,
                        reservation.reservation_time,
                        reservation.party_size,
                        allow_override=allow_override,
                    )
                    last_seen = availability
                    if not availability.available:
                        raise CapacityExceededError(availability)
                    reservation.capacity_override = availability.overridden
                    reservation.overbooked = availability.overbooked

                reservation.status = new_status
                reservation.version += 1
                reservation.updated_at = utc_now_naive()
                updated = await store.reservations.save(reservation)
            return updated, previous, availability
        except TransientConflictError:
            logger.warning(
                "status change conflict for reservation %s (attempt %d/%d)", reservation_id, attempt, max_attempts
            )
    raise TransientConflictError("reservation could not be updated, please try again", availability=last_seen)


async def cancel_reservation(
    uow: UnitOfWork,
    *,
    restaurant_id: int,
    reservation_id: int,
    version: Optional[int] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> tuple[Reservation, ReservationStatus]:
    updated, previous, _ = await update_reservation_status(
        uow,
        restaurant_id=restaurant_id,
        reservation_id=reservation_id,
        new_status=ReservationStatus.CANCELLED,
        version=version,
        max_attempts=max_attempts,
    )
    return updated, previous


async def get_reservation(uow: UnitOfWork, *, restaurant_id: int, reservation_id: int) -> Reservation:
    async with uow.transaction() as store:
        reservation = await store.reservations.get(restaurant_id, reservation_id)
    if reservation is None:
        raise ReservationNotFoundError("reservation not found")
    return reservation
