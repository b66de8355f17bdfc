# =============================================================================
# core/services/email_service.py - Transactional Email
# =============================================================================
# Builds and sends every customer email. Each send goes either through a
# Supabase Edge Function (USE_EDGE_FUNCTIONS on a public SITE_URL) or
# straight over SMTP.
#
# Methods return an EmailResult. Missing records raise the usual 404
# exceptions so the router can tell "nothing to send" from "send failed".
# =============================================================================

import logging
import re
from typing import Any

from lib.email_templates import (
    TicketLine,
    diagnostic_email,
    otp_email,
    reservation_confirmation_email,
    reservation_pending_email,
    ticket_email,
)
from lib.mailer import EmailResult, InlineImage, OutgoingEmail, invoke_edge_function, send_email
from lib.qr import qr_png
from lib.supabase_client import SupabaseClient
from lib.timezone import (
    convert_24_to_12,
    format_local,
    format_local_date,
    format_reservation_date,
    restaurant_now,
)
from lib.utils import to_float
from core.models.reservation import ReservationStatus
from core.models.ticket import GENERAL_ADMISSION
from core.services.reservation_service import reservation_number
from app.config import settings
from app.exceptions import NoTicketsFoundError, ReservationNotFoundError, TicketOrderNotFoundError

logger = logging.getLogger(__name__)

_CID_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9]")

NO_EMAIL_ADDRESS = "Reservation has no email address"


def ticket_qr_cid(ticket_number: str) -> str:
    """Content-ID for a ticket's inline QR image."""
    return f"qr-{_CID_UNSAFE_RE.sub('-', ticket_number)}@ticket"


def _edge_result(function_name: str, body: dict[str, Any]) -> EmailResult:
    if invoke_edge_function(function_name, body):
        return EmailResult(success=True)
    return EmailResult(success=False, error=f"Edge function {function_name} failed")


class EmailService:
    """Service for sending customer emails."""

    @staticmethod
    def send_otp_email(email: str, otp: str) -> EmailResult:
        if settings.use_edge_functions_for_email:
            return _edge_result("send-otp-email", {"email": email, "otp": otp})

        return send_email(OutgoingEmail(
            to=email,
            subject=f"Your Verification Code - {settings.RESTAURANT_NAME}",
            html=otp_email(otp, settings.OTP_EXPIRY_MINUTES),
        ))

    @staticmethod
    def send_ticket_email(order_id: str, customer_email: str) -> EmailResult:
        """
        Email every ticket of an order with its QR code inline.

        Raises:
            TicketOrderNotFoundError: Unknown order
            NoTicketsFoundError: Order has no issued tickets
        """
        order = SupabaseClient.fetch_ticket_order(order_id, with_tickets=True)
        if not order:
            raise TicketOrderNotFoundError(order_id)

        tickets = order.get("purchased_tickets") or []
        if not tickets:
            raise NoTicketsFoundError(order_id)

        if settings.use_edge_functions_for_email:
            return _edge_result("send-ticket-email", {"orderId": order_id, "customerEmail": customer_email})

        event = order.get("events") or {}
        lines: list[TicketLine] = []
        images: list[InlineImage] = []

        for ticket in tickets:
            number = ticket.get("ticket_number") or ""
            line = TicketLine(
                ticket_number=number,
                ticket_type_name=ticket.get("ticket_type_name") or GENERAL_ADMISSION,
                price_paid=to_float(ticket.get("price_paid")),
            )
            try:
                png = qr_png(ticket.get("qr_code_data") or number)
            except Exception as e:
                # The ticket still goes out, just without a scannable code
                logger.error(f"Failed to generate QR code for ticket {number}: {e}")
            else:
                line.qr_code_cid = ticket_qr_cid(number)
                images.append(InlineImage(cid=line.qr_code_cid, content=png, filename=f"qr-code-{number}.png"))
            lines.append(line)

        event_start = event.get("event_start")
        html = ticket_email(
            event_title=event.get("title") or "Event",
            event_date=format_local_date(event_start) if event_start else "TBD",
            event_time=convert_24_to_12(format_local(event_start, "%H:%M")) if event_start else "TBD",
            event_location=event.get("location") or "TBD",
            customer_name=order.get("customer_name") or "",
            order_number=order.get("order_number") or order_id[:8].upper(),
            total_amount=sum(line.price_paid for line in lines),
            tickets=lines,
        )

        result = send_email(OutgoingEmail(
            to=customer_email,
            subject=f"Your Tickets for {event.get('title') or 'Event'} - {settings.RESTAURANT_NAME}",
            html=html,
            inline_images=images,
        ))
        if result.success:
            logger.info(f"Sent {len(lines)} ticket(s) for order {order_id} to {customer_email}")
        return result

    @staticmethod
    def send_reservation_confirmation(reservation_id: str) -> EmailResult:
        """
        Email a reservation's confirmation (or "received" note while pending).

        Raises:
            ReservationNotFoundError: Unknown reservation
        """
        reservation = SupabaseClient.fetch_reservation(reservation_id)
        if not reservation:
            raise ReservationNotFoundError(reservation_id)

        email = reservation.get("customer_email")
        if not email:
            logger.warning(f"Reservation {reservation_id} has no email address")
            return EmailResult(success=False, error=NO_EMAIL_ADDRESS)

        if settings.use_edge_functions_for_email:
            return _edge_result("send-reservation-email", {"reservationId": reservation_id})

        number = reservation_number(reservation["id"])
        date_text = format_reservation_date(reservation["reservation_date"])
        time_text = convert_24_to_12(reservation.get("reservation_time"))
        guests = int(reservation.get("guests_count") or 0)

        if reservation.get("status") == ReservationStatus.PENDING.value:
            subject = f"Reservation Received - {settings.RESTAURANT_NAME}"
            html = reservation_pending_email(number, reservation.get("customer_name") or "", date_text, time_text, guests)
        else:
            subject = f"Reservation Confirmed - {settings.RESTAURANT_NAME}"
            html = reservation_confirmation_email(
                number,
                reservation.get("customer_name") or "",
                date_text,
                time_text,
                guests,
                reservation.get("notes"),
            )

        return send_email(OutgoingEmail(to=email, subject=subject, html=html))

    @staticmethod
    def send_raw(to: str, subject: str, html: str) -> EmailResult:
        """Send caller-provided HTML over SMTP."""
        return send_email(OutgoingEmail(to=to, subject=subject, html=html))

    @staticmethod
    def send_diagnostic(to: str) -> EmailResult:
        """Send a test message to check SMTP settings."""
        sent_at = format_local(restaurant_now(), "%Y-%m-%d %H:%M:%S %Z")
        return send_email(OutgoingEmail(
            to=to,
            subject=f"Test email - {settings.RESTAURANT_NAME}",
            html=diagnostic_email(sent_at),
        ))
