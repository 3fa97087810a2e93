from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from ..deps import get_uow
from ..domain.errors import (
    ReservationValidationError,
    RestaurantNotFoundError,
    StoreUnavailableError,
    TransientConflictError,
)
from ..domain.repositories import UnitOfWork
from ..schemas import (
    AvailabilityResponse,
    DailyCapacityRead,
    DailyCapacityResponse,
    SlotAvailabilityRead,
    TimeSlotsResponse,
)
from ..usecases import availability as availability_usecase
from ..utils.time import parse_date

router = APIRouter(prefix="/restaurants", tags=["availability"])


def _parse_day(value: Optional[str], field: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return parse_date(value)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} must be YYYY-MM-DD") from exc


@router.get("/{restaurant_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    restaurant_id: int = Path(..., ge=1),
    day: str = Query(..., alias="date"),
    party_size: int = Query(..., alias="partySize"),
    uow: UnitOfWork = Depends(get_uow),
) -> AvailabilityResponse:
    on = _parse_day(day, "date")
    try:
        results = await availability_usecase.get_availability_for_date(
            uow,
            restaurant_id=restaurant_id,
            on=on,
            party_size=party_size,
        )
    except ReservationValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RestaurantNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")

    return AvailabilityResponse(
        day=on,
        party_size=party_size,
        time_slots=[SlotAvailabilityRead.from_result(result) for result in results],
    )


@router.get("/{restaurant_id}/time-slots", response_model=TimeSlotsResponse)
async def get_time_slots(
    restaurant_id: int = Path(..., ge=1),
    day: str = Query(..., alias="date"),
    uow: UnitOfWork = Depends(get_uow),
) -> TimeSlotsResponse:
    on = _parse_day(day, "date")
    try:
        slots = await availability_usecase.get_time_slots(uow, restaurant_id=restaurant_id, on=on)
    except RestaurantNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    except (StoreUnavailableError, TransientConflictError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")
    return TimeSlotsResponse(day=on, time_slots=slots)


@router.get("/{restaurant_id}/daily-capacity", response_model=DailyCapacityResponse)
async def get_daily_capacity(
    restaurant_id: int = Path(..., ge=1),
    start_date: Optional[str] = Query(default=None, alias="startDate"),
    end_date: Optional[str] = Query(default=None, alias="endDate"),
    party_size: Optional[int] = Query(default=None, alias="partySize"),
    uow: UnitOfWork = Depends(get_uow),
) -> DailyCapacityResponse:
    try:
        days = await availability_usecase.list_daily_capacity(
            uow,
            restaurant_id=restaurant_id,
            start=_parse_day(start_date, "startDate"),
            end=_parse_day(end_date, "endDate"),
            party_size=party_size,
        )
    except ReservationValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RestaurantNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    except (StoreUnavailableError, TransientConflictError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")
    return DailyCapacityResponse(daily_capacities=[DailyCapacityRead.from_result(entry) for entry in days])
