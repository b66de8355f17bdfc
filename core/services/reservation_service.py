# =============================================================================
# core/services/reservation_service.py - Reservation Business Logic
# =============================================================================
# Handles table bookings:
# 1. Reject past times and slots blocked by paid ticketed events
# 2. Work out prepayment (event reservation price or special hours deposit)
# 3. Enforce per-area seat limits for reservation events
# 4. Insert the reservation as confirmed (free) or pending (prepaid)
#
# Sending the confirmation email is left to the caller (API layer), which
# queues it on the worker.
# =============================================================================

import logging
from typing import Any

from lib.supabase_client import SupabaseClient, SupabaseClientError
from lib.timezone import (
    day_range_utc,
    format_time_12h,
    parse_time_to_minutes,
    restaurant_now,
    to_local,
    to_utc_iso,
)
from lib.utils import to_float
from core.models.reservation import PrepaymentStatus, ReservationCreate, ReservationStatus
from core.services.availability_service import (
    AvailabilityService,
    conflict_close_time,
    find_event_conflict,
    is_time_slot_requiring_prepayment,
)
from app.exceptions import (
    CapacityExceededError,
    DatabaseUnavailableError,
    ReservationConflictError,
    ReservationNotFoundError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

# A reservation this close to a reservation event's start pays the event price
EVENT_PRICE_WINDOW_MINUTES = 30

ACTIVE_STATUSES = [ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value]


class ReservationService:
    """
    Service for reservation operations.

    Provides a clean interface between API routes and database.
    """

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    @staticmethod
    def get_reservation(reservation_id: str) -> dict[str, Any]:
        """
        Get a reservation by ID.

        Raises:
            ReservationNotFoundError: If it doesn't exist
        """
        try:
            reservation = SupabaseClient.fetch_reservation(reservation_id)
        except SupabaseClientError as e:
            logger.error(f"Failed to fetch reservation {reservation_id}: {e}")
            raise ReservationNotFoundError(reservation_id)

        if not reservation:
            raise ReservationNotFoundError(reservation_id)
        return reservation

    @staticmethod
    def find_reservation_event(date: str) -> dict[str, Any] | None:
        """
        The event on a local date that takes table reservations, if any.

        Any status counts; only the action_button_type matters.
        """
        client = SupabaseClient.get_client()
        start_utc, end_utc = day_range_utc(date)

        try:
            response = (
                client.table("events")
                .select("*")
                .gte("event_start", to_utc_iso(start_utc))
                .lte("event_start", to_utc_iso(end_utc))
                .order("event_start")
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to fetch events on {date}: {e}")
            return None

        for event in response.data or []:
            if event.get("action_button_type") != "reservation" or not event.get("event_start"):
                continue
            if to_local(event["event_start"]).strftime("%Y-%m-%d") == date:
                return event
        return None

    @staticmethod
    def seats_booked(date: str, area: str) -> int:
        """Guests already booked (pending or confirmed) in an area on a date."""
        client = SupabaseClient.get_client()

        response = (
            client.table("reservations")
            .select("guests_count")
            .eq("reservation_date", date)
            .eq("area", area)
            .in_("status", ACTIVE_STATUSES)
            .execute()
        )
        return sum(int(row.get("guests_count") or 0) for row in response.data or [])

    @staticmethod
    def get_area_limit(event_id: str, area: str) -> int | None:
        """max_seats configured for an event and area, if any."""
        client = SupabaseClient.get_client()

        try:
            response = (
                client.table("event_reservation_limits")
                .select("max_seats")
                .eq("event_id", event_id)
                .eq("area", area)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to fetch reservation limit for event {event_id}: {e}")
            return None

        rows = response.data or []
        if not rows or not rows[0].get("max_seats"):
            return None
        return int(rows[0]["max_seats"])

    # -------------------------------------------------------------------------
    # Pricing
    # -------------------------------------------------------------------------

    @staticmethod
    def event_reservation_price(
        event: dict[str, Any] | None,
        reservation_time: str,
        guests_count: int,
    ) -> float | None:
        """
        Total event price when booking at (or within 30 min of) the event start.
        """
        if not event or not to_float(event.get("reservation_price")) or not event.get("event_start"):
            return None

        start_local = to_local(event["event_start"])
        event_minutes = start_local.hour * 60 + start_local.minute
        slot_minutes = parse_time_to_minutes(reservation_time)

        if abs(slot_minutes - event_minutes) <= EVENT_PRICE_WINDOW_MINUTES:
            return round(to_float(event["reservation_price"]) * guests_count, 2)
        return None

    @staticmethod
    def special_hours_prepayment(
        special_hours: dict[str, Any],
        guests_count: int,
    ) -> float | None:
        """Deposit owed for a special hours slot, or None if not required."""
        payment = AvailabilityService.get_special_hours_payment(special_hours)
        if not payment or not payment.get("prepayment_required"):
            return None

        amount = to_float(payment.get("prepayment_amount"))
        if payment.get("prepayment_rule_type") == "per_guest":
            amount *= guests_count
        return round(amount, 2)

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    @staticmethod
    def create_reservation(request: ReservationCreate) -> dict[str, Any]:
        """
        Validate and insert a reservation.

        Args:
            request: Validated booking request

        Returns:
            Dict with:
            - reservation: Inserted row
            - prepayment_required: bool
            - prepayment_amount: float or None
            - send_confirmation: True when a confirmation email should go out now

        Raises:
            ValidationFailedError: Past time, or prepaid slot without email
            ReservationConflictError: Slot overlaps a paid ticketed event
            CapacityExceededError: Area seat limit reached for the event
            DatabaseUnavailableError: Insert failed
        """
        date = request.reservation_date
        time = request.reservation_time[:5]

        # --- Time validation (restaurant local) ---
        if AvailabilityService.is_in_past(date, time):
            raise ValidationFailedError(
                "Cannot book past dates or times.",
                code="PAST_RESERVATION",
            )

        # --- Event conflicts ---
        opening_hours = AvailabilityService.get_opening_hours_for_date(date)
        special_hours = AvailabilityService.get_special_hours_for_date(date)
        close_time = conflict_close_time(opening_hours, special_hours)

        events = AvailabilityService.get_events_for_date(date)
        conflict = find_event_conflict(date, time, events, close_time=close_time)
        if conflict:
            starts_at = format_time_12h(to_local(conflict["event_start"]))
            raise ReservationConflictError(
                f'This time conflicts with "{conflict.get("title")}" ({starts_at}).',
                event={
                    "id": conflict.get("id"),
                    "title": conflict.get("title"),
                    "event_start": conflict.get("event_start"),
                },
            )

        # --- Prepayment ---
        reservation_event = ReservationService.find_reservation_event(date)
        prepayment_amount = ReservationService.event_reservation_price(
            reservation_event, time, request.guests_count
        )
        requires_prepayment = prepayment_amount is not None
        special_hours_id = None

        if not requires_prepayment:
            if special_hours and special_hours.get("is_open"):
                requires_prepayment = is_time_slot_requiring_prepayment(time, special_hours)
                if requires_prepayment:
                    special_hours_id = special_hours.get("id")
                    prepayment_amount = ReservationService.special_hours_prepayment(
                        special_hours, request.guests_count
                    )

        if requires_prepayment and not request.customer_email:
            raise ValidationFailedError(
                "Email required for paid reservations.",
                code="EMAIL_REQUIRED",
                suggestion="Add an email address so we can send the payment receipt",
            )

        # --- Seat limits for reservation events ---
        if reservation_event:
            ReservationService._check_capacity(reservation_event, date, request.area, request.guests_count)

        # --- Insert ---
        paid = bool(prepayment_amount)
        data = {
            "customer_name": request.customer_name,
            "customer_phone": request.customer_phone,
            "customer_email": request.customer_email,
            "guests_count": request.guests_count,
            "reservation_date": date,
            "reservation_time": time,
            "area": request.area,
            "notes": request.notes or None,
            "status": (ReservationStatus.PENDING if paid else ReservationStatus.CONFIRMED).value,
            "special_hours_id": special_hours_id,
            "prepayment_amount": prepayment_amount,
            "prepayment_status": (PrepaymentStatus.UNPAID if paid else PrepaymentStatus.NOT_REQUIRED).value,
        }
        if request.event_id or reservation_event:
            data["event_id"] = request.event_id or reservation_event.get("id")

        client = SupabaseClient.get_client()
        try:
            response = client.table("reservations").insert(data).execute()
        except Exception as e:
            logger.error(f"Failed to create reservation: {e}")
            raise DatabaseUnavailableError(str(e))

        if not response.data:
            raise DatabaseUnavailableError("Insert returned no data")

        reservation = response.data[0]
        logger.info(
            f"Created reservation {reservation.get('id')} for {date} {time} "
            f"({request.guests_count} guests, prepayment={prepayment_amount})"
        )

        return {
            "reservation": reservation,
            "prepayment_required": paid,
            "prepayment_amount": prepayment_amount,
            "send_confirmation": not paid and bool(request.customer_email),
        }

    @staticmethod
    def _check_capacity(event: dict[str, Any], date: str, area: str, guests_count: int) -> None:
        max_seats = ReservationService.get_area_limit(event["id"], area)
        if not max_seats:
            return

        try:
            used = ReservationService.seats_booked(date, area)
        except Exception as e:
            logger.error(f"Failed to count booked seats for {area} on {date}: {e}")
            raise DatabaseUnavailableError(str(e))

        remaining = max(0, max_seats - used)
        if remaining < guests_count:
            logger.info(f"Capacity reached for {area} on {date}: {used}/{max_seats} booked")
            raise CapacityExceededError(area, remaining)

    # -------------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------------

    @staticmethod
    def mark_prepayment_paid(reservation_id: str, transaction_id: str | None) -> dict[str, Any] | None:
        """
        Record a completed prepayment and confirm the reservation.

        Returns:
            Updated row, or None if the reservation doesn't exist
        """
        client = SupabaseClient.get_client()

        response = (
            client.table("reservations")
            .update({
                "prepayment_status": PrepaymentStatus.PAID.value,
                "payment_status": "paid",
                "payment_method": "stripe",
                "payment_transaction_id": transaction_id,
                "payment_date": to_utc_iso(restaurant_now()),
                "status": ReservationStatus.CONFIRMED.value,
            })
            .eq("id", reservation_id)
            .execute()
        )

        rows = response.data or []
        if rows:
            logger.info(f"Reservation {reservation_id} prepayment recorded ({transaction_id})")
        return rows[0] if rows else None


def reservation_number(reservation_id: str) -> str:
    """Short number shown to guests: first 8 characters of the ID, uppercased."""
    return str(reservation_id)[:8].upper()

