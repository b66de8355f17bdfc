# =============================================================================
# app/routers/reservations.py - Reservation Endpoints
# =============================================================================
# Table bookings:
# - GET  /reservations/availability   bookable slots for a date
# - POST /reservations                create a booking
# - GET  /reservations/{id}           booking details (short CDN cache)
# - POST /reservations/send-confirmation
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, Path, Query, Response

from app.dispatch import enqueue_reservation_confirmation
from app.exceptions import ValidationFailedError
from core.models.reservation import (
    AvailabilityResponse,
    ReservationCreate,
    ReservationCreateResponse,
    ReservationResponse,
    SendConfirmationRequest,
)
from core.models.email import EmailSendResponse
from core.services.availability_service import AvailabilityService
from core.services.email_service import EmailService
from core.services.reservation_service import ReservationService
from lib.timezone import parse_date

logger = logging.getLogger(__name__)

router = APIRouter()

RESERVATION_CACHE_CONTROL = "public, s-maxage=10, stale-while-revalidate=30"


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    date: Annotated[str, Query(pattern=r"^\d{4}-\d{2}-\d{2}$", description="YYYY-MM-DD")],
):
    """
    Bookable time slots for a date.

    Slots blocked by paid ticketed events are removed. When special hours
    apply, prepayment_window tells the form which slots need a deposit.
    """
    try:
        parse_date(date)
    except ValueError:
        raise ValidationFailedError(
            "Invalid date format. Use YYYY-MM-DD.",
            code="INVALID_DATE",
            details={"date": date},
        )

    return AvailabilityService.get_available_slots(date)


@router.post("", response_model=ReservationCreateResponse, status_code=201)
async def create_reservation(request: ReservationCreate):
    """
    Book a table.

    Free bookings are confirmed immediately and the confirmation email is
    queued. Bookings that need a prepayment stay pending until checkout
    completes.
    """
    result = ReservationService.create_reservation(request)

    if result["send_confirmation"]:
        enqueue_reservation_confirmation(result["reservation"]["id"])

    return ReservationCreateResponse(
        reservation=result["reservation"],
        prepayment_required=result["prepayment_required"],
        prepayment_amount=result["prepayment_amount"],
    )


@router.post("/send-confirmation", response_model=EmailSendResponse, response_model_exclude_none=True)
def send_confirmation(request: SendConfirmationRequest):
    """
    (Re)send a reservation's confirmation email.

    Delivery failures come back as 200 with success false and a warning;
    the reservation itself is fine.
    """
    if not request.reservation_id:
        raise ValidationFailedError("Reservation ID is required", code="MISSING_RESERVATION_ID")

    result = EmailService.send_reservation_confirmation(request.reservation_id)

    if not result.success:
        logger.warning(f"Confirmation email for {request.reservation_id} failed: {result.error}")
        return EmailSendResponse(success=False, warning="Email delivery failed")

    return EmailSendResponse(success=True, message="Confirmation email sent", message_id=result.message_id)


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: Annotated[str, Path(description="Reservation ID")],
    response: Response,
):
    """Reservation details. Cached briefly at the edge."""
    reservation = ReservationService.get_reservation(reservation_id)
    response.headers["Cache-Control"] = RESERVATION_CACHE_CONTROL
    return ReservationResponse(reservation=reservation)
