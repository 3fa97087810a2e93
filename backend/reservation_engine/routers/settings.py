from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response, status

from ..deps import get_uow, require_staff
from ..domain.errors import (
    ReservationValidationError,
    RestaurantNotFoundError,
    StoreUnavailableError,
    TransientConflictError,
)
from ..domain.repositories import UnitOfWork
from ..schemas import SettingsRead, SettingsUpdate, SlotCapacityBulk, SlotCapacityRead, SlotCapacityUpsert
from ..usecases import settings as settings_usecase
from ..utils.auth import Caller

router = APIRouter(prefix="/restaurants", tags=["settings"])


@router.get("/{restaurant_id}/settings", response_model=SettingsRead)
async def read_settings(
    restaurant_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    _caller: Caller = Depends(require_staff),
) -> SettingsRead:
    try:
        policy = await settings_usecase.get_policy(uow, restaurant_id=restaurant_id)
    except RestaurantNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    except (StoreUnavailableError, TransientConflictError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")
    return SettingsRead.from_policy(policy)


@router.put("/{restaurant_id}/settings", response_model=SettingsRead)
async def update_settings(
    payload: SettingsUpdate,
    restaurant_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    _caller: Caller = Depends(require_staff),
) -> SettingsRead:
    try:
        policy = await settings_usecase.update_policy(uow, restaurant_id=restaurant_id, changes=payload.to_changes())
    except ReservationValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RestaurantNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    except (StoreUnavailableError, TransientConflictError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")
    return SettingsRead.from_policy(policy)


@router.get("/{restaurant_id}/slot-capacities", response_model=List[SlotCapacityRead])
async def list_slot_capacities(
    restaurant_id: int = Path(..., ge=1),
    day_of_week: Optional[int] = Query(default=None, alias="dayOfWeek", ge=0, le=6),
    time_slot: Optional[str] = Query(default=None, alias="timeSlot"),
    uow: UnitOfWork = Depends(get_uow),
    _caller: Caller = Depends(require_staff),
) -> list[SlotCapacityRead]:
    try:
        overrides = await settings_usecase.list_slot_overrides(
            uow, restaurant_id=restaurant_id, day_of_week=day_of_week, time_slot=time_slot
        )
    except RestaurantNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    except (StoreUnavailableError, TransientConflictError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")
    return [SlotCapacityRead.from_override(override) for override in overrides]


@router.put("/{restaurant_id}/slot-capacities", response_model=SlotCapacityRead)
async def upsert_slot_capacity(
    payload: SlotCapacityUpsert,
    restaurant_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    _caller: Caller = Depends(require_staff),
) -> SlotCapacityRead:
    try:
        saved = await settings_usecase.upsert_slot_override(
            uow,
            restaurant_id=restaurant_id,
            day_of_week=payload.day_of_week,
            time_slot=payload.time_slot,
            max_covers=payload.max_covers,
            is_active=payload.is_active,
        )
    except ReservationValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RestaurantNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    except (StoreUnavailableError, TransientConflictError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")
    return SlotCapacityRead.from_override(saved)


@router.post("/{restaurant_id}/slot-capacities/bulk", response_model=List[SlotCapacityRead])
async def bulk_upsert_slot_capacities(
    payload: SlotCapacityBulk,
    restaurant_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    _caller: Caller = Depends(require_staff),
) -> list[SlotCapacityRead]:
    try:
        saved = await settings_usecase.bulk_upsert_slot_overrides(
            uow,
            restaurant_id=restaurant_id,
            overrides=[entry.to_override(restaurant_id) for entry in payload.slot_capacities],
        )
    except ReservationValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RestaurantNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    except (StoreUnavailableError, TransientConflictError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")
    return [SlotCapacityRead.from_override(override) for override in saved]


@router.delete("/{restaurant_id}/slot-capacities/{override_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot_capacity(
    restaurant_id: int = Path(..., ge=1),
    override_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    _caller: Caller = Depends(require_staff),
) -> Response:
    try:
        deleted = await settings_usecase.delete_slot_override(
            uow, restaurant_id=restaurant_id, override_id=override_id
        )
    except RestaurantNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    except (StoreUnavailableError, TransientConflictError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="slot capacity not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
