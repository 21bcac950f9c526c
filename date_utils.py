"""
Balance Snapshot - Date Utilities
Calendar-date parsing and conversions shared by the resolvers.
"""
import time
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional, Union

from errors import FutureDate, InvalidDate

DateLike = Union[str, date]


def parse_date(value: DateLike) -> date:
    """Parse YYYY-MM-DD (dates pass through, datetimes are truncated)"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime((value or "").strip(), "%Y-%m-%d").date()
    except (ValueError, AttributeError):
        raise InvalidDate(f"Invalid date '{value}', expected YYYY-MM-DD") from None


def end_of_day_timestamp(value: DateLike) -> int:
    """Unix timestamp of 23:59:59 UTC on the given day"""
    day = parse_date(value)
    end_of_day = datetime(day.year, day.month, day.day, 23, 59, 59, tzinfo=timezone.utc)
    return int(end_of_day.timestamp())


def utc_today(now: Optional[float] = None) -> date:
    current = now if now is not None else time.time()
    return datetime.fromtimestamp(current, tz=timezone.utc).date()


def ensure_past_end_of_day(value: DateLike, now: Optional[float] = None) -> int:
    """
    End-of-day timestamp for a day that is already over.

    Raises FutureDate otherwise, since no block can represent an instant that
    has not happened yet.
    """
    target = end_of_day_timestamp(value)
    current = int(now if now is not None else time.time())
    if target > current:
        raise FutureDate("Cannot check balance for future dates. Please select a date in the past.")
    return target


def ensure_not_future(value: DateLike, now: Optional[float] = None) -> date:
    day = parse_date(value)
    if day > utc_today(now):
        raise FutureDate(f"Cannot price {day.isoformat()}: date is in the future.")
    return day


def format_dd_mm_yyyy(value: DateLike) -> str:
    """Price-index date format, e.g. 15-01-2024"""
    return parse_date(value).strftime("%d-%m-%Y")


def iter_days(start: DateLike, end: DateLike) -> Iterator[date]:
    """Inclusive day range"""
    day, last = parse_date(start), parse_date(end)
    if day > last:
        raise InvalidDate(f"Start date {day.isoformat()} is after end date {last.isoformat()}")
    while day <= last:
        yield day
        day += timedelta(days=1)
