import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Path, status
from fastapi.responses import JSONResponse

from ..config import get_settings
from ..deps import get_current_caller, get_uow, require_staff
from ..domain.errors import (
    CapacityExceededError,
    InvalidStatusTransitionError,
    ReservationNotFoundError,
    ReservationValidationError,
    RestaurantNotFoundError,
    StoreUnavailableError,
    TransientConflictError,
    VersionConflictError,
)
from ..domain.repositories import UnitOfWork
from ..domain.services import AvailabilityResult
from ..models import Reservation, ReservationStatus
from ..schemas import (
    AvailabilityDetail,
    CapacityExceededPayload,
    ReservationCancel,
    ReservationCreate,
    ReservationCreated,
    ReservationRead,
    ReservationStatusUpdate,
)
from ..usecases import reservations as reservation_usecase
from ..utils.audit_log import AuditAction, AuditInitiator, emit_audit_log
from ..utils.auth import Caller

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/restaurants", tags=["reservations"])


def _extract_version(if_match: Optional[str], payload: Any) -> Optional[int]:
    """Version from If-Match (preferred) or the body; None when neither carries one."""
    if if_match:
        raw = if_match.strip()
        if raw.startswith("W/"):
            raw = raw[2:]
        raw = raw.strip('"')
        try:
            version = int(raw)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid If-Match header") from exc
        if version < 1:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="version must be >= 1")
        return version

    version = getattr(payload, "version", None) if payload is not None else None
    if version is not None and version < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="version must be >= 1")
    return version


def _capacity_conflict(message: str, availability: Optional[AvailabilityResult]) -> JSONResponse:
    payload = CapacityExceededPayload(
        message=message,
        availability=AvailabilityDetail.from_result(availability) if availability is not None else None,
    )
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=payload.model_dump(mode="json", by_alias=True),
    )


def _version_conflict() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"code": "VERSION_CONFLICT", "message": "reservation was modified, reload and retry"},
    )


def _initiator(caller: Caller) -> AuditInitiator:
    return "staff" if caller.is_staff else "customer"


def _audit(
    *,
    action: AuditAction,
    caller: Caller,
    reservation: Reservation,
    status_from: Optional[ReservationStatus],
    warning: Optional[str] = None,
) -> None:
    try:
        emit_audit_log(
            action=action,
            initiator=_initiator(caller),
            reservation_id=reservation.id,
            restaurant_id=reservation.restaurant_id,
            user_id=caller.user_id,
            reservation_date=reservation.reservation_date,
            time_slot=reservation.reservation_time,
            party_size=reservation.party_size,
            status_from=status_from,
            status_to=reservation.status,
            version=reservation.version,
            warning=warning,
        )
    except RuntimeError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed")


@router.post(
    "/{restaurant_id}/reservations",
    response_model=ReservationCreated,
    status_code=status.HTTP_201_CREATED,
)
async def create_reservation(
    payload: ReservationCreate,
    restaurant_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    caller: Caller = Depends(get_current_caller),
) -> Any:
    if payload.override_capacity and not caller.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="only staff may override capacity")

    details = payload.details()
    if caller.is_staff:
        details["source"] = "staff"
    else:
        details["customer_id"] = caller.user_id

    try:
        result = await reservation_usecase.create_reservation(
            uow,
            restaurant_id=restaurant_id,
            on=payload.reservation_date,
            time_slot=payload.time_slot,
            party_size=payload.party_size,
            allow_override=payload.override_capacity,
            details=details,
            max_attempts=get_settings().admission_max_attempts,
        )
    except ReservationValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RestaurantNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    except (CapacityExceededError, TransientConflictError) as exc:
        return _capacity_conflict(str(exc), exc.availability)
    except StoreUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")

    _audit(
        action="reservation.created",
        caller=caller,
        reservation=result.reservation,
        status_from=None,
        warning=result.warning,
    )
    return ReservationCreated(reservation=ReservationRead.from_db(reservation=result.reservation), warning=result.warning)


@router.get("/{restaurant_id}/reservations/{reservation_id}", response_model=ReservationRead)
async def get_reservation(
    restaurant_id: int = Path(..., ge=1),
    reservation_id: int = Path(..., ge=1),
    uow: UnitOfWork = Depends(get_uow),
    caller: Caller = Depends(get_current_caller),
) -> ReservationRead:
    try:
        reservation = await reservation_usecase.get_reservation(
            uow, restaurant_id=restaurant_id, reservation_id=reservation_id
        )
    except ReservationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="reservation not found")
    except (StoreUnavailableError, TransientConflictError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")
    # Customers only see their own reservations
    if not caller.is_staff and reservation.customer_id != caller.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="reservation not found")
    return ReservationRead.from_db(reservation=reservation)


@router.post("/{restaurant_id}/reservations/{reservation_id}/cancel", response_model=ReservationRead)
async def cancel_reservation(
    restaurant_id: int = Path(..., ge=1),
    reservation_id: int = Path(..., ge=1),
    payload: Optional[ReservationCancel] = Body(default=None),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    uow: UnitOfWork = Depends(get_uow),
    caller: Caller = Depends(get_current_caller),
) -> Any:
    version = _extract_version(if_match, payload)
    try:
        existing = await reservation_usecase.get_reservation(
            uow, restaurant_id=restaurant_id, reservation_id=reservation_id
        )
        if not caller.is_staff and existing.customer_id != caller.user_id:
            raise ReservationNotFoundError("reservation not found")
        updated, previous = await reservation_usecase.cancel_reservation(
            uow,
            restaurant_id=restaurant_id,
            reservation_id=reservation_id,
            version=version,
            max_attempts=get_settings().admission_max_attempts,
        )
    except ReservationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="reservation not found")
    except VersionConflictError:
        return _version_conflict()
    except InvalidStatusTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except (StoreUnavailableError, TransientConflictError):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")

    if previous != updated.status:
        _audit(action="reservation.cancelled", caller=caller, reservation=updated, status_from=previous)
    return ReservationRead.from_db(reservation=updated)


@router.post("/{restaurant_id}/reservations/{reservation_id}/status", response_model=ReservationCreated)
async def update_reservation_status(
    payload: ReservationStatusUpdate,
    restaurant_id: int = Path(..., ge=1),
    reservation_id: int = Path(..., ge=1),
    if_match: Optional[str] = Header(default=None, alias="If-Match"),
    uow: UnitOfWork = Depends(get_uow),
    caller: Caller = Depends(require_staff),
) -> Any:
    version = _extract_version(if_match, payload)
    try:
        updated, previous, availability = await reservation_usecase.update_reservation_status(
            uow,
            restaurant_id=restaurant_id,
            reservation_id=reservation_id,
            new_status=payload.status,
            version=version,
            allow_override=payload.override_capacity,
            max_attempts=get_settings().admission_max_attempts,
        )
    except ReservationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="reservation not found")
    except RestaurantNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="restaurant not found")
    except VersionConflictError:
        return _version_conflict()
    except InvalidStatusTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except (CapacityExceededError, TransientConflictError) as exc:
        return _capacity_conflict(str(exc), exc.availability)
    except StoreUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="reservation store unavailable")

    warning = availability.warning if availability is not None else None
    if previous != updated.status:
        action: AuditAction = (
            "reservation.cancelled" if updated.status == ReservationStatus.CANCELLED else "reservation.status_changed"
        )
        _audit(action=action, caller=caller, reservation=updated, status_from=previous, warning=warning)
    return ReservationCreated(reservation=ReservationRead.from_db(reservation=updated), warning=warning)
