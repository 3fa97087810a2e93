from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .services import AvailabilityResult


class DomainError(Exception):
    """Base class for errors raised by the booking engine."""


class ReservationValidationError(DomainError):
    """Malformed input or a party size outside the restaurant's bounds."""


class RestaurantNotFoundError(DomainError):
    pass


class ReservationNotFoundError(DomainError):
    pass


class PolicyNotConfiguredError(DomainError):
    """The restaurant has no reservation settings; callers fall back to defaults."""


class CapacityExceededError(DomainError):
    def __init__(self, availability: AvailabilityResult, message: str | None = None) -> None:
        self.availability = availability
        super().__init__(message or _capacity_message(availability))


class TransientConflictError(DomainError):
    """Serialization failure at the store; the whole admission may be retried."""

    def __init__(self, message: str = "concurrent update conflict", availability: Optional[AvailabilityResult] = None) -> None:
        self.availability = availability
        super().__init__(message)


class StoreUnavailableError(DomainError):
    pass


class InvalidStatusTransitionError(DomainError):
    pass


class VersionConflictError(DomainError):
    pass


def _capacity_message(availability: AvailabilityResult) -> str:
    if availability.limiting == "daily" and availability.daily is not None:
        return (
            f"Sorry, this date is fully booked. Daily capacity limit of "
            f"{availability.daily.max_covers_per_day} covers has been reached "
            f"(current: {availability.daily.current_covers} covers)."
        )
    return (
        f"Time slot {availability.time_slot} is fully booked "
        f"({availability.current_bookings}/{availability.capacity} covers, "
        f"{availability.remaining} remaining)."
    )
