# =============================================================================
# app/routers/tickets.py - Event Ticket Endpoints
# =============================================================================
# Ticket sales flow:
# 1. POST /tickets/purchase           pending order + payment URL
# 2. (checkout happens in the payments router)
# 3. POST /tickets/complete-purchase  issue tickets (free orders, or retries
#                                     after the payment flow marked the order paid)
# 4. GET  /tickets/{order_id}         order, event and tickets for the ticket page
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, Path, Response

from app.dispatch import enqueue_ticket_email
from app.exceptions import ValidationFailedError
from core.models.email import EmailSendResponse
from core.models.ticket import (
    CompletePurchaseRequest,
    CompletePurchaseResponse,
    SendTicketEmailRequest,
    TicketOrderResponse,
    TicketPurchaseRequest,
    TicketPurchaseResponse,
)
from core.services.email_service import EmailService
from core.services.ticket_service import TicketService

logger = logging.getLogger(__name__)

router = APIRouter()

TICKET_ORDER_CACHE_CONTROL = "public, s-maxage=30, stale-while-revalidate=60"


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/purchase", response_model=TicketPurchaseResponse, status_code=201)
async def purchase_tickets(request: TicketPurchaseRequest):
    """
    Start a ticket purchase.

    Validates the event, the buyer's verified email and ticket stock, then
    creates a pending order. payment_url is None for free orders.
    """
    result = TicketService.purchase(request)
    return TicketPurchaseResponse(**result)


@router.post("/complete-purchase", response_model=CompletePurchaseResponse)
async def complete_purchase(request: CompletePurchaseRequest):
    """
    Issue tickets for an order.

    Safe to retry: an order that already has tickets returns them with
    "Order already processed". Returns 409 while another request is
    completing the same order.
    """
    result = TicketService.complete_purchase(
        request.order_id,
        request.payment_transaction_id,
        payment_method=request.payment_method,
        tickets=request.tickets,
    )

    if result["send_email"]:
        enqueue_ticket_email(request.order_id, result["order"].get("customer_email"))

    return CompletePurchaseResponse(
        message=result["message"],
        order=result["order"],
        tickets=result["tickets"],
        event=result["event"],
        redirect_url=result["redirect_url"],
    )


@router.post("/send-email", response_model=EmailSendResponse, response_model_exclude_none=True)
def send_ticket_email(request: SendTicketEmailRequest):
    """
    (Re)send the ticket email for an order.

    Delivery failures return 200 with a warning: the tickets exist and can
    be shown on the ticket page regardless.
    """
    if not request.order_id or not request.customer_email:
        raise ValidationFailedError(
            "Order ID and customer email are required",
            code="MISSING_FIELDS",
        )

    result = EmailService.send_ticket_email(request.order_id, request.customer_email)

    if not result.success:
        logger.warning(f"Ticket email for order {request.order_id} failed: {result.error}")
        return EmailSendResponse(success=False, warning="Email delivery failed")

    return EmailSendResponse(success=True, message="Tickets sent successfully", message_id=result.message_id)


@router.get("/{order_id}", response_model=TicketOrderResponse)
async def get_ticket_order(
    order_id: Annotated[str, Path(description="Ticket order ID")],
    response: Response,
):
    """Order with its event and purchased tickets."""
    order = TicketService.get_order(order_id)
    response.headers["Cache-Control"] = TICKET_ORDER_CACHE_CONTROL
    return TicketOrderResponse(order=order)
