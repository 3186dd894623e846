"""
Datetime helpers.

Storage form is naive UTC. Engine comparisons use aware UTC datetimes;
calendars are expressed in the business's local wall time.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

UTC = timezone.utc


def utcnow() -> datetime:
    return datetime.now(UTC)


def to_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive input is taken to be UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_storage(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return to_utc(value).replace(tzinfo=None)


def from_storage(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return to_utc(value)


def local_datetime(day: date, wall_time: time, tz_name: str) -> datetime:
    return datetime.combine(day, wall_time, tzinfo=ZoneInfo(tz_name))


def to_local(value: datetime, tz_name: str) -> datetime:
    return to_utc(value).astimezone(ZoneInfo(tz_name))


def local_day_bounds(day: date, tz_name: str) -> tuple[datetime, datetime]:
    """[midnight, next midnight) of a local calendar day"""
    start = local_datetime(day, time(0, 0), tz_name)
    end = local_datetime(day + timedelta(days=1), time(0, 0), tz_name)
    return start, end


def minutes(value: Optional[int]) -> timedelta:
    return timedelta(minutes=value or 0)


def hours_between(start: datetime, end: datetime) -> float:
    return (to_utc(end) - to_utc(start)).total_seconds() / 3600
