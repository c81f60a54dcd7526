"""UTC-everywhere time handling plus display helpers for the business's local zone."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_DISPLAY_TZ = "Australia/Sydney"


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def to_local(dt: datetime, tz_name: str = DEFAULT_DISPLAY_TZ) -> datetime:
    """
    Convert UTC datetime to a local timezone for display.

    Only use at display boundaries (emails, SMS). Everything stored or
    compared stays in UTC.

    Raises:
        ValueError: If datetime is naive or timezone name is invalid
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime. Datetime must be timezone-aware."
        )

    try:
        local_tz = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {tz_name}")

    return dt.astimezone(local_tz)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 datetime string to UTC datetime.

    Accepts a trailing 'Z'. Raises ValueError if string has no timezone info.
    """
    if iso_string.endswith("Z"):
        iso_string = iso_string[:-1] + "+00:00"
    dt = datetime.fromisoformat(iso_string)
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+00:00')."
        )
    return to_utc(dt)


def local_day_bounds(dt: datetime, tz_name: str = DEFAULT_DISPLAY_TZ) -> tuple[datetime, datetime]:
    """
    Start and end (exclusive) of the local calendar day containing dt, in UTC.

    A tradie's "today" is their local day, not the UTC one.
    """
    local = to_local(dt, tz_name)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return to_utc(start), to_utc(start + timedelta(days=1))


def local_week_bounds(dt: datetime, tz_name: str = DEFAULT_DISPLAY_TZ) -> tuple[datetime, datetime]:
    """Monday-to-Monday local week containing dt, in UTC."""
    day_start, _ = local_day_bounds(dt, tz_name)
    local_start = to_local(day_start, tz_name)
    monday = local_start - timedelta(days=local_start.weekday())
    return to_utc(monday), to_utc(monday + timedelta(days=7))


def format_local(dt: datetime, tz_name: str = DEFAULT_DISPLAY_TZ, with_time: bool = True) -> str:
    """Human-readable local time, e.g. 'Monday 3 March 2025, 9:30 AM'."""
    local = to_local(dt, tz_name)
    day = f"{local.strftime('%A')} {local.day} {local.strftime('%B %Y')}"
    if not with_time:
        return day
    hour = local.hour % 12 or 12
    return f"{day}, {hour}:{local.strftime('%M %p')}"
