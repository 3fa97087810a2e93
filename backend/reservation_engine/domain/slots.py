from __future__ import annotations

import re
from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from .policy import RestaurantPolicy

MINUTES_PER_DAY = 24 * 60
DEFAULT_OPEN = "11:00"
DEFAULT_CLOSE = "22:00"
DEFAULT_INTERVAL = 30

_SLOT_RE = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")


def is_valid_slot(value: object) -> bool:
    return isinstance(value, str) and _SLOT_RE.match(value) is not None


def to_minutes(value: str) -> int:
    hour, minute = value.split(":")
    return int(hour) * 60 + int(minute)


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _step(start: int, end: int, interval: int) -> List[int]:
    return list(range(start, end + 1, interval))


def generate_slots(open_time: str, close_time: str, interval: int) -> List[str]:
    """
    Bookable slots from open to close inclusive, stepping by ``interval`` minutes.

    When close <= open the close belongs to the next day: slots run from open
    up to 23:59, then restart at 00:00 up to close. The phase restarts at
    midnight, so the last gap before close may be uneven.
    """
    if interval <= 0:
        raise ValueError("interval must be positive")
    start = to_minutes(open_time)
    end = to_minutes(close_time)
    if end > start:
        minutes = _step(start, end, interval)
    else:
        minutes = _step(start, MINUTES_PER_DAY - 1, interval) + _step(0, end, interval)
    # open == close (24h service) would otherwise repeat the opening slot
    return list(dict.fromkeys(format_minutes(m) for m in minutes))


def default_slots() -> List[str]:
    return generate_slots(DEFAULT_OPEN, DEFAULT_CLOSE, DEFAULT_INTERVAL)


def slots_for_day(policy: RestaurantPolicy | None, weekday: int) -> List[str]:
    """Slots for a weekday (0=Sunday). No policy at all falls back to the default window."""
    if policy is None or not policy.configured:
        return default_slots()
    day = policy.schedule_for(weekday)
    if day.closed or not day.open or not day.close:
        return []
    return generate_slots(day.open, day.close, policy.time_slot_interval)
