from datetime import date, datetime, timedelta, timezone
from typing import Iterator


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def to_utc_date(value: date | datetime) -> date:
    """Calendar day in UTC; aware datetimes are converted, naive ones are taken as UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def parse_date(value: str) -> date:
    """Parse ``YYYY-MM-DD`` (a trailing ISO time is accepted and reduced to its UTC day)."""
    if len(value) == 10:
        return date.fromisoformat(value)
    return to_utc_date(datetime.fromisoformat(value.replace("Z", "+00:00")))


def weekday_index(day: date) -> int:
    """Day of week with Sunday=0 ... Saturday=6."""
    return (day.weekday() + 1) % 7


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
