# =============================================================================
# core/models/reservation.py - Reservation Schemas
# =============================================================================
# These models define the API contract for table reservations:
# - ReservationCreate: Booking request from the reservations page
# - ReservationCreateResponse: Created row plus prepayment info
# - AvailabilityResponse: Bookable time slots for one date
#
# Lifecycle:
#   free slot      -> confirmed (prepayment_status = not_required)
#   prepaid slot   -> pending (unpaid) -> confirmed (paid) after checkout
# =============================================================================

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .common import RequestModel

MIN_GUESTS = 1
MAX_GUESTS = 12


class ReservationStatus(str, Enum):
    """Booking state of a reservation row."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PrepaymentStatus(str, Enum):
    """
    Whether a deposit is owed for the reservation.

    - not_required: Regular slot, nothing to pay
    - unpaid: Special-hours or event slot awaiting checkout
    - paid: Checkout completed
    """
    NOT_REQUIRED = "not_required"
    UNPAID = "unpaid"
    PAID = "paid"


class ReservationCreate(RequestModel):
    """
    Schema for booking a table.

    Example:
        {
            "customerName": "Jane Smith",
            "customerPhone": "555-0100",
            "customerEmail": "jane@example.com",
            "guestsCount": 4,
            "reservationDate": "2026-01-02",
            "reservationTime": "19:30",
            "area": "Patio"
        }
    """

    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_phone: str = Field(..., min_length=1, max_length=50)

    # Required only when the slot needs prepayment
    customer_email: str | None = Field(default=None, max_length=320)

    guests_count: int = Field(
        ...,
        ge=MIN_GUESTS,
        le=MAX_GUESTS,
        description="Party size (1-12)"
    )

    # Restaurant-local date and time
    reservation_date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    reservation_time: str = Field(..., pattern=r"^\d{2}:\d{2}(:\d{2})?$")

    # Seating area (e.g. "Indoor", "Patio", "Bar")
    area: str = Field(..., min_length=1, max_length=100)

    notes: str | None = Field(default=None, max_length=2000)

    event_id: str | None = Field(default=None, description="Event the guest booked from, if any")

    @field_validator("customer_email")
    @classmethod
    def blank_email_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip().lower()

    @field_validator("reservation_date")
    @classmethod
    def real_calendar_date(cls, value: str) -> str:
        date.fromisoformat(value)
        return value

    @field_validator("reservation_time")
    @classmethod
    def real_clock_time(cls, value: str) -> str:
        datetime.strptime(value, "%H:%M:%S" if value.count(":") == 2 else "%H:%M")
        return value


class ReservationCreateResponse(BaseModel):
    """Returned by POST /reservations (201)."""
    success: bool = True
    reservation: dict[str, Any]
    prepayment_required: bool = False
    prepayment_amount: float | None = None


class ReservationResponse(BaseModel):
    """Returned by GET /reservations/{id}."""
    reservation: dict[str, Any]


class SendConfirmationRequest(RequestModel):
    """Body for POST /reservations/send-confirmation."""
    reservation_id: str | None = None


class PrepaymentWindow(BaseModel):
    """Time range in which special-hours slots need a deposit."""
    start: str
    end: str


class AvailabilityResponse(BaseModel):
    """Bookable slots for a single date."""
    date: str
    slots: list[str] = Field(default_factory=list)
    special_hours: dict[str, Any] | None = None
    prepayment_window: PrepaymentWindow | None = None
    blocked_events: list[dict[str, Any]] = Field(default_factory=list)
