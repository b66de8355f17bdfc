# =============================================================================
# tests/test_availability.py - Reservation Slot Tests
# =============================================================================
# Covers slot generation, event blocking, the prepayment window and the
# database-backed AvailabilityService.
#
# Run with: pytest tests/test_availability.py -v
# =============================================================================

from datetime import datetime, timezone

from core.services.availability_service import (
    AvailabilityService,
    compute_available_slots,
    conflict_close_time,
    event_end_for_conflict,
    filter_blocking_events,
    find_event_conflict,
    generate_regular_slots,
    generate_slots,
    generate_special_slots,
    has_paid_tickets,
    is_time_slot_requiring_prepayment,
    normalize_close_time,
    special_hours_buffer_window,
)
from tests.conftest import local_date, local_iso


def paid_event(date: str, start: str, end: str | None = None, **extra) -> dict:
    event = {
        "id": "evt-1",
        "title": "Live Music",
        "action_button_type": "custom_tickets",
        "event_start": local_iso(date, start),
        "event_end": local_iso(date, end) if end else None,
        "event_tickets": [{"price": 15}],
    }
    event.update(extra)
    return event


# =============================================================================
# Slot Generation
# =============================================================================

class TestGenerateSlots:
    """Tests for generate_slots and friends."""

    def test_half_hour_slots(self):
        """Slots run from open (inclusive) to close (exclusive)."""
        assert generate_slots("16:00", "18:00") == ["16:00", "16:30", "17:00", "17:30"]

    def test_midnight_close_runs_to_end_of_day(self):
        """00:00 close means midnight, last slot 23:30."""
        slots = generate_slots("22:00", "00:00")
        assert slots == ["22:00", "22:30", "23:00", "23:30"]

    def test_custom_interval(self):
        """A 45 minute interval is respected."""
        assert generate_slots("18:00", "20:00", 45) == ["18:00", "18:45", "19:30"]

    def test_closed_day_has_no_regular_slots(self):
        """is_closed rows and missing rows produce nothing."""
        assert generate_regular_slots({"is_closed": True, "open_time": "16:00", "close_time": "22:00"}) == []
        assert generate_regular_slots(None) == []

    def test_special_slots_use_seating_interval(self):
        """Special hours use their seating interval."""
        special = {
            "time_from": "18:00",
            "time_to": "19:00",
            "special_hours_seatings": [{"interval_minutes": 15}],
        }
        assert generate_special_slots(special) == ["18:00", "18:15", "18:30", "18:45"]

    def test_special_slots_default_interval(self):
        """Without seating settings slots are every 30 minutes."""
        special = {"time_from": "18:00", "time_to": "19:00"}
        assert generate_special_slots(special) == ["18:00", "18:30"]


# =============================================================================
# Event Blocking
# =============================================================================

class TestBlockingEvents:
    """Tests for which events block reservations."""

    def test_paid_ticket_types_block(self):
        """Any ticket type above $0 makes the event paid."""
        assert has_paid_tickets({"event_tickets": [{"price": 0}, {"price": "10.00"}]})

    def test_free_ticket_types_do_not_block(self):
        """Ticket types override the base price."""
        assert not has_paid_tickets({"event_tickets": [{"price": 0}], "base_ticket_price": 20})

    def test_base_price_fallback(self):
        """Without ticket types the base price decides."""
        assert has_paid_tickets({"event_tickets": [], "base_ticket_price": 20})
        assert not has_paid_tickets({"base_ticket_price": None})

    def test_only_custom_ticket_events_block(self):
        """External ticketing or reservation events don't block."""
        events = [
            {"action_button_type": "custom_tickets", "base_ticket_price": 10},
            {"action_button_type": "external_link", "base_ticket_price": 10},
            {"action_button_type": "reservation", "base_ticket_price": 10},
        ]
        assert len(filter_blocking_events(events)) == 1

    def test_normalize_close_time(self):
        """Midnight close becomes 23:59 for conflict math."""
        assert normalize_close_time("00:00") == "23:59"
        assert normalize_close_time("22:00") == "22:00"
        assert normalize_close_time(None) is None


class TestFindEventConflict:
    """Tests for find_event_conflict buffer math."""

    DATE = "2026-01-16"

    def test_slot_inside_buffer_conflicts(self):
        """60 minutes before the start is blocked (inclusive)."""
        event = paid_event(self.DATE, "20:00", "22:00")
        assert find_event_conflict(self.DATE, "19:00", [event]) is event

    def test_slot_outside_buffer_is_free(self):
        """61+ minutes before the start is fine."""
        event = paid_event(self.DATE, "20:00", "22:00")
        assert find_event_conflict(self.DATE, "18:30", [event]) is None

    def test_buffer_after_end_inclusive(self):
        """Exactly 60 minutes after the end is still blocked."""
        event = paid_event(self.DATE, "18:00", "20:00")
        assert find_event_conflict(self.DATE, "21:00", [event]) is event
        assert find_event_conflict(self.DATE, "21:30", [event]) is None

    def test_free_event_never_conflicts(self):
        """Free events are skipped."""
        event = paid_event(self.DATE, "20:00", "22:00", event_tickets=[{"price": 0}])
        assert find_event_conflict(self.DATE, "20:00", [event]) is None

    def test_end_falls_back_to_close_time(self):
        """Without event_end the event blocks until closing time."""
        event = paid_event(self.DATE, "18:00")
        end = event_end_for_conflict(event, self.DATE, "22:00")

        assert end == datetime(2026, 1, 17, 3, 0, tzinfo=timezone.utc)
        assert find_event_conflict(self.DATE, "22:30", [event], close_time="22:00") is not None

    def test_end_falls_back_to_three_hours(self):
        """Without end or close time the event lasts three hours."""
        event = paid_event(self.DATE, "18:00")
        end = event_end_for_conflict(event, self.DATE)
        assert end == datetime(2026, 1, 17, 2, 0, tzinfo=timezone.utc)

    def test_close_time_prefers_regular_hours(self):
        """Regular hours set the close on an open day, special hours on a closed one."""
        regular = {"is_closed": False, "close_time": "23:00"}
        closed = {"is_closed": True, "close_time": None}
        special = {"time_from": "18:00", "time_to": "22:00"}

        assert conflict_close_time(regular, special) == "23:00"
        assert conflict_close_time(closed, special) == "22:00"
        assert conflict_close_time(None, special) == "22:00"
        assert conflict_close_time(closed, None) is None


# =============================================================================
# Prepayment Window
# =============================================================================

class TestPrepaymentWindow:
    """Tests for the special-hours prepayment window."""

    SPECIAL = {"time_from": "18:00", "time_to": "21:00"}

    def test_window_extends_one_hour_each_side(self):
        """Window is special hours +/- 60 minutes."""
        assert special_hours_buffer_window(self.SPECIAL) == ("17:00", "22:00")

    def test_window_clipped_to_day(self):
        """Early and late special hours don't wrap."""
        window = special_hours_buffer_window({"time_from": "00:30", "time_to": "00:00"})
        assert window == ("00:00", "23:59")

    def test_slots_inside_window_require_prepayment(self):
        """Boundaries are inclusive."""
        assert is_time_slot_requiring_prepayment("17:00", self.SPECIAL)
        assert is_time_slot_requiring_prepayment("22:00", self.SPECIAL)
        assert not is_time_slot_requiring_prepayment("16:30", self.SPECIAL)

    def test_no_special_hours_no_prepayment(self):
        """Ordinary days never need prepayment."""
        assert not is_time_slot_requiring_prepayment("19:00", None)
        assert special_hours_buffer_window(None) is None


# =============================================================================
# compute_available_slots
# =============================================================================

class TestComputeAvailableSlots:
    """Tests for combining hours, special hours and events."""

    DATE = "2026-01-16"
    OPEN = {"is_closed": False, "open_time": "17:00", "close_time": "20:00"}

    def test_regular_day(self):
        """Plain opening hours."""
        slots = compute_available_slots(self.DATE, self.OPEN, None, [])
        assert slots == ["17:00", "17:30", "18:00", "18:30", "19:00", "19:30"]

    def test_closed_without_special_hours(self):
        """Closed day, nothing bookable."""
        closed = {"is_closed": True}
        assert compute_available_slots(self.DATE, closed, None, []) == []

    def test_special_hours_on_closed_day(self):
        """Special hours open an otherwise closed day."""
        special = {"is_open": True, "time_from": "12:00", "time_to": "13:00"}
        slots = compute_available_slots(self.DATE, {"is_closed": True}, special, [])
        assert slots == ["12:00", "12:30"]

    def test_special_and_regular_merge_sorted(self):
        """Slots are the sorted union."""
        special = {"is_open": True, "time_from": "20:00", "time_to": "21:00"}
        slots = compute_available_slots(self.DATE, self.OPEN, special, [])
        assert slots[-3:] == ["19:30", "20:00", "20:30"]
        assert len(slots) == len(set(slots))

    def test_event_removes_nearby_slots(self):
        """A paid event at 19:00 blocks 18:00 onwards."""
        event = paid_event(self.DATE, "19:00", "19:30")
        slots = compute_available_slots(self.DATE, self.OPEN, None, [event])
        assert slots == ["17:00", "17:30"]


# =============================================================================
# AvailabilityService
# =============================================================================

class TestAvailabilityService:
    """Tests for the database-backed lookups."""

    def test_available_slots_from_database(self, db, open_every_day):
        """Regular hours come from opening_hours for the weekday."""
        date = local_date(5)

        result = AvailabilityService.get_available_slots(date)

        assert result["date"] == date
        assert result["slots"][0] == "16:00"
        assert result["slots"][-1] == "23:30"
        assert result["prepayment_window"] is None
        assert result["blocked_events"] == []

    def test_blocking_event_is_reported(self, db, open_every_day):
        """Paid events on the date are listed and remove slots."""
        date = local_date(5)
        event = db.seed("events", {
            "title": "Comedy Night",
            "status": "upcoming",
            "action_button_type": "custom_tickets",
            "event_start": local_iso(date, "20:00"),
            "event_end": local_iso(date, "21:00"),
            "base_ticket_price": 25,
        })[0]

        result = AvailabilityService.get_available_slots(date)

        assert [e["id"] for e in result["blocked_events"]] == [event["id"]]
        assert "19:00" not in result["slots"]
        assert "18:30" in result["slots"]
        assert "22:30" in result["slots"]

    def test_events_on_other_days_ignored(self, db, open_every_day):
        """Only events starting on the local date count."""
        date = local_date(5)
        db.seed("events", {
            "status": "upcoming",
            "action_button_type": "custom_tickets",
            "event_start": local_iso(local_date(6), "20:00"),
            "base_ticket_price": 25,
        })

        assert AvailabilityService.get_events_for_date(date) == []

    def test_special_hours_window(self, db, open_every_day):
        """Open special hours expose the prepayment window."""
        date = local_date(5)
        special = db.seed("special_hours", {
            "date": date,
            "status": "active",
            "is_open": True,
            "time_from": "18:00",
            "time_to": "21:00",
        })[0]
        db.seed("special_hours_payment", {"special_hours_id": special["id"], "amount_per_guest": 25})

        result = AvailabilityService.get_available_slots(date)

        assert result["prepayment_window"] == {"start": "17:00", "end": "22:00"}
        payment = AvailabilityService.get_special_hours_payment(result["special_hours"])
        assert payment["amount_per_guest"] == 25

    def test_database_failure_degrades(self, db):
        """Query failures mean no slots rather than an error."""
        db.fail_tables.update({"events", "special_hours", "opening_hours"})

        result = AvailabilityService.get_available_slots(local_date(5))

        assert result["slots"] == []

    def test_is_in_past(self):
        """Past times are detected in local time."""
        assert AvailabilityService.is_in_past("2020-01-01", "12:00")
        assert not AvailabilityService.is_in_past(local_date(3), "12:00")
