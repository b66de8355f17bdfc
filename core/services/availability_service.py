# =============================================================================
# core/services/availability_service.py - Reservation Slot Availability
# =============================================================================
# Computes which reservation times can be booked on a date:
#
#   regular slots   every 30 min from open_time until close_time
#   special slots   every interval_minutes inside special hours
#   blocked         within 60 min of a paid, custom-ticket event
#
# The pure functions at the top take plain dicts (rows as returned by
# Supabase) so the slot math can be tested without a database.
# AvailabilityService at the bottom fetches those rows.
# =============================================================================

import logging
from datetime import datetime, timedelta
from typing import Any

from lib.supabase_client import SupabaseClient
from lib.timezone import (
    day_of_week,
    day_range_utc,
    local_datetime,
    local_to_utc,
    minutes_to_time,
    parse_time_to_minutes,
    parse_timestamp,
    to_utc_iso,
)
from lib.utils import to_float

logger = logging.getLogger(__name__)

SLOT_INTERVAL_MINUTES = 30
EVENT_BUFFER_MINUTES = 60
PREPAYMENT_BUFFER_MINUTES = 60
DEFAULT_EVENT_DURATION = timedelta(hours=3)
END_OF_DAY = 24 * 60

SPECIAL_HOURS_SELECT = (
    "*, special_hours_seatings (*), special_hours_limits (*), "
    "special_hours_payment (*), special_hours_fields (*)"
)


# =============================================================================
# Slot Generation
# =============================================================================

def _close_minutes(close_time: str) -> int:
    """Closing time in minutes, with a midnight close meaning end of day."""
    minutes = parse_time_to_minutes(close_time)
    return END_OF_DAY if minutes == 0 else minutes


def generate_slots(start_time: str, end_time: str, interval: int = SLOT_INTERVAL_MINUTES) -> list[str]:
    """
    Generate "HH:MM" slots from start_time (inclusive) to end_time (exclusive).

    A 00:00 end time means midnight at the end of the day, so a 17:00-00:00
    day produces 17:00 ... 23:30. Slots never reach 24:00.
    """
    if interval <= 0:
        interval = SLOT_INTERVAL_MINUTES

    current = parse_time_to_minutes(start_time)
    end = min(_close_minutes(end_time), END_OF_DAY)

    slots = []
    while current < end:
        slots.append(minutes_to_time(current))
        current += interval
    return slots


def generate_regular_slots(opening_hours: dict[str, Any] | None) -> list[str]:
    """Slots for a regular opening_hours row, or [] when closed."""
    if not opening_hours or opening_hours.get("is_closed"):
        return []
    if not opening_hours.get("open_time") or not opening_hours.get("close_time"):
        return []
    return generate_slots(opening_hours["open_time"], opening_hours["close_time"])


def _first_related(value: Any) -> dict[str, Any] | None:
    """PostgREST embeds one-to-many relations as lists and one-to-one as objects."""
    if isinstance(value, list):
        return value[0] if value else None
    return value or None


def generate_special_slots(special_hours: dict[str, Any] | None) -> list[str]:
    """Slots inside special hours at the configured seating interval."""
    if not special_hours or not special_hours.get("time_from") or not special_hours.get("time_to"):
        return []

    seatings = _first_related(special_hours.get("special_hours_seatings"))
    interval = int((seatings or {}).get("interval_minutes") or SLOT_INTERVAL_MINUTES)

    try:
        return generate_slots(special_hours["time_from"], special_hours["time_to"], interval)
    except ValueError:
        logger.warning(f"Invalid special hours range: {special_hours.get('time_from')}-{special_hours.get('time_to')}")
        return []


# =============================================================================
# Event Blocking
# =============================================================================

def has_paid_tickets(event: dict[str, Any]) -> bool:
    """
    True if the event sells at least one ticket above $0.

    Ticket types are checked first; the event's base_ticket_price is
    the fallback when it has none.
    """
    tickets = event.get("event_tickets")
    if isinstance(tickets, list) and tickets:
        return any(to_float(ticket.get("price")) > 0 for ticket in tickets)

    return to_float(event.get("base_ticket_price")) > 0


def filter_blocking_events(events: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Only our own paid ticketed events block reservations."""
    return [
        event for event in events
        if event.get("action_button_type") == "custom_tickets" and has_paid_tickets(event)
    ]


def normalize_close_time(close_time: str | None) -> str | None:
    """A midnight close is treated as 23:59 of the same day for conflict math."""
    if not close_time:
        return None
    if parse_time_to_minutes(close_time) == 0:
        return "23:59"
    return close_time


def event_end_for_conflict(
    event: dict[str, Any],
    reservation_date: str,
    close_time: str | None = None,
) -> datetime:
    """
    When an event stops blocking reservations.

    Uses event_end if set, else the restaurant's closing time on the
    reservation date, else three hours after the start.
    """
    if event.get("event_end"):
        return parse_timestamp(event["event_end"])

    close_time = normalize_close_time(close_time)
    if close_time:
        return local_to_utc(reservation_date, close_time)

    return parse_timestamp(event["event_start"]) + DEFAULT_EVENT_DURATION


def conflict_close_time(
    opening_hours: dict[str, Any] | None,
    special_hours: dict[str, Any] | None,
) -> str | None:
    """
    Closing time used to end open-ended events on a date.

    Regular hours win on an open day; on a regularly closed day the
    special hours' time_to applies.
    """
    if opening_hours and not opening_hours.get("is_closed"):
        return opening_hours.get("close_time")
    return (special_hours or {}).get("time_to")


def find_event_conflict(
    reservation_date: str,
    reservation_time: str,
    events: list[dict[str, Any]],
    buffer_minutes: int = EVENT_BUFFER_MINUTES,
    close_time: str | None = None,
) -> dict[str, Any] | None:
    """
    Return the first blocking event whose buffered window contains the slot.

    The window is [start - buffer, end + buffer], inclusive at both ends.
    Non-blocking events (free, reservation or external-ticket events) are
    ignored.
    """
    blocking = filter_blocking_events(events or [])
    if not blocking:
        return None

    reservation_at = local_to_utc(reservation_date, reservation_time)
    buffer = timedelta(minutes=buffer_minutes)

    for event in blocking:
        if not event.get("event_start"):
            continue

        start = parse_timestamp(event["event_start"])
        end = event_end_for_conflict(event, reservation_date, close_time)

        if start - buffer <= reservation_at <= end + buffer:
            return event

    return None


# =============================================================================
# Prepayment Window
# =============================================================================

def _prepayment_bounds(special_hours: dict[str, Any] | None) -> tuple[int, int] | None:
    if not special_hours or not special_hours.get("time_from") or not special_hours.get("time_to"):
        return None

    start = parse_time_to_minutes(special_hours["time_from"]) - PREPAYMENT_BUFFER_MINUTES
    end = _close_minutes(special_hours["time_to"]) + PREPAYMENT_BUFFER_MINUTES
    return start, end


def special_hours_buffer_window(special_hours: dict[str, Any] | None) -> tuple[str, str] | None:
    """
    The (start, end) "HH:MM" range where slots need prepayment.

    Special hours plus one hour either side, clipped to the calendar day.
    """
    bounds = _prepayment_bounds(special_hours)
    if bounds is None:
        return None

    start, end = bounds
    return minutes_to_time(max(start, 0)), minutes_to_time(min(end, END_OF_DAY - 1))


def is_time_slot_requiring_prepayment(time_slot: str, special_hours: dict[str, Any] | None) -> bool:
    """True if the slot falls within special hours (+/- one hour)."""
    bounds = _prepayment_bounds(special_hours)
    if bounds is None:
        return False

    slot = parse_time_to_minutes(time_slot)
    return bounds[0] <= slot <= bounds[1]


# =============================================================================
# Availability
# =============================================================================

def compute_available_slots(
    date: str,
    opening_hours: dict[str, Any] | None,
    special_hours: dict[str, Any] | None,
    events: list[dict[str, Any]],
) -> list[str]:
    """
    All bookable slots for a date.

    Without special hours, a closed day has no slots. With special hours
    (open or not), regular and special slots are merged, since special
    slots are sold with prepayment. Slots near a blocking event are removed.
    """
    regular_slots = generate_regular_slots(opening_hours)

    if special_hours:
        slots = sorted(set(regular_slots) | set(generate_special_slots(special_hours)))
    else:
        slots = regular_slots

    if not slots:
        return []

    blocking = filter_blocking_events(events)
    if not blocking:
        return slots

    close_time = conflict_close_time(opening_hours, special_hours)

    return [
        slot for slot in slots
        if find_event_conflict(date, slot, blocking, EVENT_BUFFER_MINUTES, close_time) is None
    ]


class AvailabilityService:
    """
    Database-backed availability lookups.

    Query failures degrade to "no data" so the reservations page still
    renders; they are logged as errors.
    """

    @staticmethod
    def get_events_for_date(date: str) -> list[dict[str, Any]]:
        """Upcoming events starting on a local calendar date, with ticket types."""
        client = SupabaseClient.get_client()
        start_utc, end_utc = day_range_utc(date)

        try:
            response = (
                client.table("events")
                .select("*, event_tickets (*)")
                .eq("status", "upcoming")
                .gte("event_start", to_utc_iso(start_utc))
                .lte("event_start", to_utc_iso(end_utc))
                .order("event_start")
                .execute()
            )
            return response.data or []
        except Exception as e:
            logger.error(f"Failed to fetch events for {date}: {e}")
            return []

    @staticmethod
    def get_special_hours_for_date(date: str) -> dict[str, Any] | None:
        """Active special hours row for a date (open or closed), with its settings."""
        client = SupabaseClient.get_client()

        try:
            response = (
                client.table("special_hours")
                .select(SPECIAL_HOURS_SELECT)
                .eq("date", date)
                .eq("status", "active")
                .limit(1)
                .execute()
            )
            rows = response.data or []
            return rows[0] if rows else None
        except Exception as e:
            logger.error(f"Failed to fetch special hours for {date}: {e}")
            return None

    @staticmethod
    def get_opening_hours_for_date(date: str) -> dict[str, Any] | None:
        """Regular opening_hours row for the date's weekday (0 = Sunday)."""
        client = SupabaseClient.get_client()

        try:
            response = (
                client.table("opening_hours")
                .select("*")
                .eq("weekday", day_of_week(date))
                .limit(1)
                .execute()
            )
            rows = response.data or []
            return rows[0] if rows else None
        except Exception as e:
            logger.error(f"Failed to fetch opening hours for {date}: {e}")
            return None

    @staticmethod
    def get_special_hours_payment(special_hours: dict[str, Any]) -> dict[str, Any] | None:
        """Payment settings for a special hours row."""
        embedded = _first_related(special_hours.get("special_hours_payment"))
        if embedded:
            return embedded

        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("special_hours_payment")
                .select("*")
                .eq("special_hours_id", special_hours["id"])
                .limit(1)
                .execute()
            )
            rows = response.data or []
            return rows[0] if rows else None
        except Exception as e:
            logger.error(f"Failed to fetch special hours payment for {special_hours.get('id')}: {e}")
            return None

    @staticmethod
    def get_available_slots(date: str) -> dict[str, Any]:
        """
        Bookable slots for a date plus the context the booking form needs.

        Returns:
            Dict with date, slots, special_hours, prepayment_window and
            blocked_events (the events that removed slots)
        """
        events = AvailabilityService.get_events_for_date(date)
        special_hours = AvailabilityService.get_special_hours_for_date(date)
        opening_hours = AvailabilityService.get_opening_hours_for_date(date)

        slots = compute_available_slots(date, opening_hours, special_hours, events)
        window = special_hours_buffer_window(special_hours) if special_hours and special_hours.get("is_open") else None

        blocked = [
            {
                "id": event.get("id"),
                "title": event.get("title"),
                "event_start": event.get("event_start"),
                "event_end": event.get("event_end"),
            }
            for event in filter_blocking_events(events)
        ]

        logger.debug(f"Availability for {date}: {len(slots)} slots, {len(blocked)} blocking events")

        return {
            "date": date,
            "slots": slots,
            "special_hours": special_hours,
            "prepayment_window": {"start": window[0], "end": window[1]} if window else None,
            "blocked_events": blocked,
        }

    @staticmethod
    def is_in_past(date: str, time: str, now: datetime | None = None) -> bool:
        """True if the local date/time has already passed."""
        requested = local_datetime(date, time)
        now = now or datetime.now(requested.tzinfo)
        return requested < now
