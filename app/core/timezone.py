"""
Timezone helpers for per-user scheduling.

All persisted timestamps are naive UTC; these helpers attach UTC before converting.
"""
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def is_valid_timezone(tz_name) -> bool:
    """Return True if tz_name is a non-empty IANA timezone name."""
    if not isinstance(tz_name, str) or not tz_name.strip():
        return False
    try:
        ZoneInfo(tz_name)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False


def to_utc_naive(value: datetime) -> datetime:
    """Normalize an aware or naive datetime to naive UTC (naive input is assumed UTC)."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_user_timezone(value: datetime, tz_name: Optional[str]) -> datetime:
    """
    Convert a naive-UTC (or aware) datetime into the user's timezone.

    Raises:
        ZoneInfoNotFoundError: if tz_name is not a known IANA timezone
    """
    aware = value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    if not tz_name:
        return aware.astimezone(timezone.utc)
    return aware.astimezone(ZoneInfo(tz_name))


def local_hour(now: datetime, tz_name: str) -> int:
    """Hour of day (0-23) for `now` in the given IANA timezone."""
    return to_user_timezone(now, tz_name).hour


def local_date(now: datetime, tz_name: Optional[str]) -> date:
    """Calendar date for `now` in the given timezone (UTC when tz_name is empty)."""
    return to_user_timezone(now, tz_name).date()
