# =============================================================================
# lib/timezone.py - Restaurant Local Time Helpers
# =============================================================================
# The database stores timestamps in UTC, while guests think in restaurant
# local time (America/New_York by default). Every date/time conversion used
# by reservations, events and emails goes through this module.
#
# Conventions:
#   - "date strings" are YYYY-MM-DD (Postgres DATE), never converted
#   - "time strings" are HH:MM or HH:MM:SS (Postgres TIME), local time
#   - timestamps are ISO 8601 strings or aware datetimes
# =============================================================================

from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo

from app.config import settings

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def get_timezone() -> ZoneInfo:
    """The restaurant's timezone."""
    return ZoneInfo(settings.RESTAURANT_TIMEZONE)


def restaurant_now() -> datetime:
    """Current aware datetime in restaurant local time."""
    return datetime.now(get_timezone())


def restaurant_today() -> str:
    """Today's date (YYYY-MM-DD) in restaurant local time."""
    return restaurant_now().strftime("%Y-%m-%d")


# =============================================================================
# Parsing
# =============================================================================

def parse_date(date_str: str) -> date:
    """
    Parse a YYYY-MM-DD string, ignoring any time component.

    Raises:
        ValueError: If the string isn't a valid date
    """
    date_part = date_str.strip().split("T")[0].split(" ")[0]
    return date.fromisoformat(date_part)


def parse_time_to_minutes(time_str: str) -> int:
    """
    Convert "HH:MM" or "HH:MM:SS" to minutes since midnight.

    Raises:
        ValueError: If the string isn't a valid time
    """
    parts = time_str.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid time: {time_str}")
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours <= 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time: {time_str}")
    return hours * 60 + minutes


def minutes_to_time(total_minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM"."""
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def parse_timestamp(value: str | datetime) -> datetime:
    """
    Parse an ISO timestamp into an aware datetime.

    Naive values are assumed to be UTC, matching how Postgres
    ``timestamptz`` columns come back over PostgREST.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# =============================================================================
# Conversion
# =============================================================================

def local_datetime(date_str: str, time_str: str) -> datetime:
    """Combine a local date and time string into an aware local datetime."""
    minutes = parse_time_to_minutes(time_str)
    day = parse_date(date_str)
    naive = datetime.combine(day, time()) + timedelta(minutes=minutes)
    return naive.replace(tzinfo=get_timezone())


def local_to_utc(date_str: str, time_str: str) -> datetime:
    """Interpret a date and time as restaurant local time and return UTC."""
    return local_datetime(date_str, time_str).astimezone(timezone.utc)


def to_local(value: str | datetime) -> datetime:
    """Convert a timestamp to restaurant local time."""
    return parse_timestamp(value).astimezone(get_timezone())


def to_utc_iso(dt: datetime) -> str:
    """Serialize an aware datetime as a UTC ISO string for queries and inserts."""
    return dt.astimezone(timezone.utc).isoformat()


def day_range_utc(date_str: str) -> tuple[datetime, datetime]:
    """
    UTC bounds of a local calendar day.

    Returns (start, end) where start is local 00:00:00 and end is local
    23:59:59.999999, both converted to UTC.
    """
    tz = get_timezone()
    day = parse_date(date_str)
    start = datetime.combine(day, time.min).replace(tzinfo=tz)
    end = datetime.combine(day, time.max).replace(tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_datetime_input_to_utc(value: str) -> str:
    """
    Convert a ``YYYY-MM-DDTHH:mm`` form value (local time) to a UTC ISO string.

    Returns an empty string for empty input.
    """
    if not value:
        return ""
    date_part, _, time_part = value.partition("T")
    return to_utc_iso(local_datetime(date_part, time_part or "00:00"))


def day_of_week(date_str: str) -> int:
    """Day of week for a date string, 0 = Sunday ... 6 = Saturday."""
    return (parse_date(date_str).weekday() + 1) % 7


# =============================================================================
# Formatting
# =============================================================================

def convert_24_to_12(time_24: str | None) -> str:
    """
    Convert "16:00" to "4:00 PM".

    Anything that doesn't look like a time is returned unchanged.
    """
    if not time_24 or ":" not in time_24:
        return time_24 or ""
    parts = time_24.split(":")
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return time_24

    period = "PM" if hours >= 12 else "AM"
    hours_12 = 12 if hours % 12 == 0 else hours % 12
    return f"{hours_12}:{minutes:02d} {period}"


def format_time_12h(dt: datetime) -> str:
    """Format a datetime's wall clock as "8:00 PM"."""
    return convert_24_to_12(dt.strftime("%H:%M"))


def format_local(value: str | datetime, pattern: str = "%Y-%m-%d %H:%M") -> str:
    """Format a timestamp in restaurant local time with a strftime pattern."""
    return to_local(value).strftime(pattern)


def format_date_mmddyyyy(date_str: str | None) -> str:
    """Format a DATE value (no timezone conversion) as MM-DD-YYYY."""
    if not date_str:
        return ""
    try:
        day = parse_date(date_str)
    except ValueError:
        return date_str
    return day.strftime("%m-%d-%Y")


def format_local_date(value: str | datetime) -> str:
    """Format a timestamp as "Friday, 01-02-2026" in local time."""
    local = to_local(value)
    return f"{DAY_NAMES[(local.weekday() + 1) % 7]}, {local.strftime('%m-%d-%Y')}"


def format_reservation_date(date_str: str) -> str:
    """Format a reservation DATE as "Friday, 01-02-2026"."""
    return f"{DAY_NAMES[day_of_week(date_str)]}, {format_date_mmddyyyy(date_str)}"


# =============================================================================
# Event Helpers
# =============================================================================

def is_event_active(event: dict[str, Any], now: datetime | None = None) -> bool:
    """
    Check whether an event should still be shown as upcoming.

    With an event_end, the event is active until it ends. Without one,
    it stays active until the end of its start day in local time.
    """
    now = now or restaurant_now()

    if event.get("event_end"):
        return now < parse_timestamp(event["event_end"])

    if not event.get("event_start"):
        return False

    local_start = to_local(event["event_start"])
    end_of_day = datetime.combine(local_start.date(), time.max).replace(tzinfo=get_timezone())
    return now <= end_of_day
