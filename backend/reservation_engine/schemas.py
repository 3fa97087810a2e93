from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .domain.policy import DAY_NAMES, RestaurantPolicy, SlotOverride
from .domain.services import AvailabilityResult, DailyCapacity
from .models import Reservation, ReservationStatus
from .utils.time import parse_date

# Settings fields where an explicit null means "unlimited" rather than "not sent".
_NULLABLE_SETTINGS = frozenset({"max_covers_per_slot", "max_covers_per_day"})


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SlotAvailabilityRead(CamelModel):
    time_slot: str
    available: bool
    current_bookings: int
    capacity: Optional[int]
    remaining: Optional[int]
    can_accommodate: bool
    overbooked: bool = False

    @classmethod
    def from_result(cls, result: AvailabilityResult) -> "SlotAvailabilityRead":
        return cls(
            time_slot=result.time_slot,
            available=result.available,
            current_bookings=result.current_bookings,
            capacity=result.capacity,
            remaining=result.remaining,
            can_accommodate=result.available,
            overbooked=result.overbooked,
        )


class AvailabilityResponse(CamelModel):
    day: date = Field(alias="date")
    party_size: int
    time_slots: List[SlotAvailabilityRead]


class TimeSlotsResponse(CamelModel):
    day: date = Field(alias="date")
    time_slots: List[str]


class DailyCapacityRead(CamelModel):
    day: Optional[date] = Field(default=None, alias="date")
    current_covers: int
    max_covers_per_day: Optional[int]
    remaining: Optional[int]
    available: bool

    @classmethod
    def from_result(cls, daily: DailyCapacity) -> "DailyCapacityRead":
        return cls(
            day=daily.day,
            current_covers=daily.current_covers,
            max_covers_per_day=daily.max_covers_per_day,
            remaining=daily.remaining,
            available=daily.would_fit,
        )


class DailyCapacityResponse(CamelModel):
    daily_capacities: List[DailyCapacityRead]


class AvailabilityDetail(CamelModel):
    time_slot: str
    current_bookings: int
    capacity: Optional[int]
    remaining: Optional[int]
    can_overbook: bool
    limiting: Optional[str]
    daily_capacity: Optional[DailyCapacityRead] = None

    @classmethod
    def from_result(cls, result: AvailabilityResult) -> "AvailabilityDetail":
        daily = result.daily if result.daily is not None and result.daily.limited else None
        return cls(
            time_slot=result.time_slot,
            current_bookings=result.current_bookings,
            capacity=result.capacity,
            remaining=result.remaining,
            can_overbook=result.can_overbook,
            limiting=result.limiting,
            daily_capacity=DailyCapacityRead.from_result(daily) if daily is not None else None,
        )


class CapacityExceededPayload(CamelModel):
    code: str = "CAPACITY_EXCEEDED"
    message: str
    availability: Optional[AvailabilityDetail] = None


class ReservationCreate(CamelModel):
    reservation_date: date = Field(alias="date")
    time_slot: str = Field(alias="time")
    party_size: int
    customer_name: Optional[str] = Field(default=None, max_length=255)
    customer_email: Optional[str] = Field(default=None, max_length=255)
    customer_phone: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = None
    special_requests: Optional[str] = None
    override_capacity: bool = False

    @field_validator("reservation_date", mode="before")
    @classmethod
    def _parse_day(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return parse_date(value)
            except ValueError as exc:
                raise ValueError("date must be YYYY-MM-DD") from exc
        return value

    def details(self) -> Dict[str, Any]:
        return self.model_dump(
            include={"customer_name", "customer_email", "customer_phone", "notes", "special_requests"},
            exclude_none=True,
        )


class ReservationRead(CamelModel):
    id: int
    restaurant_id: int
    customer_id: Optional[int]
    customer_name: str
    customer_email: Optional[str]
    customer_phone: Optional[str]
    reservation_date: date = Field(alias="date")
    time_slot: str = Field(alias="time")
    party_size: int
    status: ReservationStatus
    notes: Optional[str]
    special_requests: Optional[str]
    source: str
    capacity_override: bool
    overbooked: bool
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_db(cls, *, reservation: Reservation) -> "ReservationRead":
        return cls(
            id=reservation.id,
            restaurant_id=reservation.restaurant_id,
            customer_id=reservation.customer_id,
            customer_name=reservation.customer_name,
            customer_email=reservation.customer_email,
            customer_phone=reservation.customer_phone,
            reservation_date=reservation.reservation_date,
            time_slot=reservation.reservation_time,
            party_size=reservation.party_size,
            status=reservation.status,
            notes=reservation.notes,
            special_requests=reservation.special_requests,
            source=reservation.source,
            capacity_override=bool(reservation.capacity_override),
            overbooked=bool(reservation.overbooked),
            version=reservation.version,
            created_at=reservation.created_at,
            updated_at=reservation.updated_at,
        )


class ReservationCreated(CamelModel):
    reservation: ReservationRead
    warning: Optional[str] = None


class ReservationCancel(CamelModel):
    version: Optional[int] = Field(default=None, ge=1)


class ReservationStatusUpdate(CamelModel):
    status: ReservationStatus
    version: Optional[int] = Field(default=None, ge=1)
    override_capacity: bool = False


class OperatingDay(CamelModel):
    open: Optional[str] = None
    close: Optional[str] = None
    closed: bool = False


class SettingsUpdate(CamelModel):
    operating_hours: Optional[Dict[str, OperatingDay]] = None
    time_slot_interval: Optional[int] = None
    min_party_size: Optional[int] = None
    max_party_size: Optional[int] = None
    max_covers_per_slot: Optional[int] = None
    max_covers_per_day: Optional[int] = None
    allow_overbooking: Optional[bool] = None
    overbooking_percentage: Optional[int] = None

    def to_changes(self) -> Dict[str, Any]:
        """Fields the caller sent; explicit null is kept only where it means unlimited."""
        changes: Dict[str, Any] = {}
        for name, value in self.model_dump(exclude_unset=True).items():
            if value is None and name not in _NULLABLE_SETTINGS:
                continue
            changes[name] = value
        return changes


class SettingsRead(CamelModel):
    restaurant_id: int
    operating_hours: Dict[str, OperatingDay]
    time_slot_interval: int
    min_party_size: int
    max_party_size: int
    max_covers_per_slot: Optional[int]
    max_covers_per_day: Optional[int]
    allow_overbooking: bool
    overbooking_percentage: int

    @classmethod
    def from_policy(cls, policy: RestaurantPolicy) -> "SettingsRead":
        return cls(
            restaurant_id=policy.restaurant_id,
            operating_hours={
                name: OperatingDay(open=day.open, close=day.close, closed=day.closed)
                for name, day in zip(DAY_NAMES, policy.operating_hours)
            },
            time_slot_interval=policy.time_slot_interval,
            min_party_size=policy.min_party_size,
            max_party_size=policy.max_party_size,
            max_covers_per_slot=policy.max_covers_per_slot,
            max_covers_per_day=policy.max_covers_per_day,
            allow_overbooking=policy.allow_overbooking,
            overbooking_percentage=policy.overbooking_percentage,
        )


class SlotCapacityUpsert(CamelModel):
    day_of_week: int
    time_slot: str
    max_covers: Optional[int] = None
    is_active: bool = True

    def to_override(self, restaurant_id: int) -> SlotOverride:
        return SlotOverride(
            restaurant_id=restaurant_id,
            day_of_week=self.day_of_week,
            time_slot=self.time_slot,
            max_covers=self.max_covers,
            is_active=self.is_active,
        )


class SlotCapacityBulk(CamelModel):
    slot_capacities: List[SlotCapacityUpsert]


class SlotCapacityRead(CamelModel):
    id: Optional[int]
    restaurant_id: int
    day_of_week: int
    time_slot: str
    max_covers: Optional[int]
    is_active: bool

    @classmethod
    def from_override(cls, override: SlotOverride) -> "SlotCapacityRead":
        return cls(
            id=override.id,
            restaurant_id=override.restaurant_id,
            day_of_week=override.day_of_week,
            time_slot=override.time_slot,
            max_covers=override.max_covers,
            is_active=override.is_active,
        )
