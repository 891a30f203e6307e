"""Time helpers shared by the ledger services."""
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Normalise a datetime to aware UTC.

    SQLite drops the offset on DateTime(timezone=True) columns, so values read
    back from it are naive and already in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def end_of_day_exclusive(day: date) -> datetime:
    """First instant after `day` (half-open period bound)."""
    return start_of_day(day + timedelta(days=1))


def last_day_of_month(day: date) -> date:
    first_of_next = (day.replace(day=28) + timedelta(days=4)).replace(day=1)
    return first_of_next - timedelta(days=1)


def reference_month(moment: datetime) -> str:
    """YYYY-MM label of the month containing `moment`."""
    return as_utc(moment).strftime("%Y-%m")


def previous_month_bounds(today: date) -> tuple[date, date]:
    """First and last day of the calendar month before `today`."""
    last = today.replace(day=1) - timedelta(days=1)
    return last.replace(day=1), last
