"""
Datetime utilities for consistent timezone handling across the application.

Sessions are stored as absolute instants in UTC. Wall-clock values (a
weekday plus an HH:MM time) only exist in the practice timezone
(``APP_TIMEZONE``) and are produced or consumed exclusively through the
helpers in this module.
"""

import logging
import re
from datetime import date, datetime, time, timezone
from typing import NamedTuple, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.config import APP_TIMEZONE

logger = logging.getLogger(__name__)


def _load_app_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as e:
        raise ValueError(f"Unknown APP_TIMEZONE: {name}") from e


# Practice timezone constant
APP_TZ = _load_app_timezone(APP_TIMEZONE)

# Zero-padded 24-hour clock, no seconds
_TIME_OF_DAY_RE = re.compile(r"([01]\d|2[0-3]):([0-5]\d)")


class WallClock(NamedTuple):
    """Local weekday (0=Sunday..6=Saturday) and HH:MM time."""
    day_of_week: int
    time: str


def utc_now() -> datetime:
    """Return the current time as a timezone-aware ``datetime`` in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalise a stored instant to a timezone-aware UTC ``datetime``.

    Naive values are stored instants (the database drops tzinfo on some
    backends) and are therefore already UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def weekday_sunday_first(day: date) -> int:
    """Return the weekday of ``day`` with Sunday=0 .. Saturday=6."""
    # Python's weekday() is Monday=0 .. Sunday=6
    return (day.weekday() + 1) % 7


def parse_time_of_day(value: str) -> time:
    """
    Parse a zero-padded ``HH:MM`` string into a ``time``.

    Raises:
        ValueError: If the string is not a valid 24-hour time
    """
    if not value or not isinstance(value, str):
        raise ValueError("Time string cannot be empty")
    match = _TIME_OF_DAY_RE.fullmatch(value.strip())
    if not match:
        raise ValueError(f"Invalid time format (expected HH:MM): {value}")
    return time(int(match.group(1)), int(match.group(2)))


def local_to_instant(day: date, time_of_day: Union[str, time], tz: Optional[ZoneInfo] = None) -> datetime:
    """
    Convert a local wall-clock date and time into an absolute UTC instant.

    Args:
        day: Local calendar date
        time_of_day: ``HH:MM`` string or ``time``
        tz: Zone the wall clock belongs to (defaults to ``APP_TZ``)

    Returns:
        Timezone-aware datetime in UTC
    """
    clock = parse_time_of_day(time_of_day) if isinstance(time_of_day, str) else time_of_day
    local = datetime.combine(day, clock).replace(tzinfo=tz or APP_TZ)
    return local.astimezone(timezone.utc)


def instant_to_wall_clock(instant: datetime, tz: Optional[ZoneInfo] = None) -> WallClock:
    """
    Derive the local weekday and HH:MM time of a stored instant.

    Args:
        instant: Stored instant (naive values are UTC)
        tz: Zone to express the wall clock in (defaults to ``APP_TZ``)
    """
    local = ensure_utc(instant).astimezone(tz or APP_TZ)  # type: ignore[union-attr]
    return WallClock(weekday_sunday_first(local.date()), local.strftime('%H:%M'))


def instant_to_local_date(instant: datetime, tz: Optional[ZoneInfo] = None) -> date:
    """Return the local calendar date of a stored instant."""
    return ensure_utc(instant).astimezone(tz or APP_TZ).date()  # type: ignore[union-attr]


def parse_datetime_string_to_instant(dt_str: str) -> datetime:
    """
    Parse an ISO format datetime string into a UTC instant.

    Handles:
    - ISO format with offset (e.g., "2024-01-01T09:00:00-03:00")
    - ISO format with Z (UTC) (e.g., "2024-01-01T12:00:00Z")
    - ISO format without offset (interpreted as practice local time)

    Raises:
        ValueError: If datetime string cannot be parsed
    """
    try:
        dt = datetime.fromisoformat(dt_str.strip().replace('Z', '+00:00'))
    except (AttributeError, ValueError) as e:
        raise ValueError(f"Invalid datetime string format: {dt_str}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=APP_TZ)
    return dt.astimezone(timezone.utc)


def parse_datetime_to_instant(v: Union[str, datetime]) -> datetime:
    """
    Parse a datetime from string or datetime object into a UTC instant.

    Naive ``datetime`` objects coming from callers are local wall-clock time,
    unlike naive values read back from the database.
    """
    if isinstance(v, str):
        return parse_datetime_string_to_instant(v)
    if v.tzinfo is None:
        return v.replace(tzinfo=APP_TZ).astimezone(timezone.utc)
    return v.astimezone(timezone.utc)


def parse_date_string(date_str: str) -> date:
    """
    Parse a date string in YYYY-MM-DD or YYYY/MM/DD format.

    Automatically normalizes single-digit months/days.

    Raises:
        ValueError: If date string cannot be parsed
    """
    if not date_str or not date_str.strip():
        raise ValueError("Date string cannot be empty")

    date_str = date_str.strip()

    if '/' in date_str:
        parts = date_str.split('/')
    elif '-' in date_str:
        parts = date_str.split('-')
    else:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}")

    if len(parts) != 3:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}")

    normalized = f"{parts[0].zfill(4)}-{parts[1].zfill(2)}-{parts[2].zfill(2)}"

    try:
        return datetime.strptime(normalized, '%Y-%m-%d').date()
    except ValueError as e:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}") from e

