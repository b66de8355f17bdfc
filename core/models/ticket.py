# =============================================================================
# core/models/ticket.py - Event Ticket Schemas
# =============================================================================
# These models define the API contract for ticketed events:
# - TicketPurchaseRequest: Reserve tickets and create a pending order
# - CompletePurchaseRequest: Issue tickets once payment succeeded
# - SendTicketEmailRequest: (Re)send the ticket email for an order
#
# A ticket selection is a list of {ticket_type_id, quantity}. The special
# ticket_type_id "base" means General Admission at the event's
# base_ticket_price.
# =============================================================================

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .common import RequestModel

BASE_TICKET_TYPE = "base"
GENERAL_ADMISSION = "General Admission"


class TicketOrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class TicketSelectionItem(RequestModel):
    """One ticket type and how many of it."""
    ticket_type_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1, le=50)


class TicketPurchaseRequest(RequestModel):
    """
    Schema for starting a ticket purchase.

    Example:
        {
            "eventId": "...",
            "tickets": [{"ticketTypeId": "base", "quantity": 2}],
            "customerName": "Jane Smith",
            "customerEmail": "jane@example.com"
        }
    """
    event_id: str = Field(..., min_length=1)
    tickets: list[TicketSelectionItem] = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: str = Field(..., min_length=3, max_length=320)
    customer_phone: str | None = Field(default=None, max_length=50)


class TicketPurchaseResponse(BaseModel):
    """Returned by POST /tickets/purchase (201)."""
    success: bool = True
    order: dict[str, Any]
    payment_required: bool
    payment_url: str | None = None


class CompletePurchaseRequest(RequestModel):
    """Body for POST /tickets/complete-purchase."""
    order_id: str = Field(..., min_length=1)
    payment_transaction_id: str = Field(..., min_length=1)
    payment_method: str = Field(default="stripe", max_length=50)

    # Fallback selection when none was stored with the order
    tickets: list[TicketSelectionItem] | None = None


class CompletePurchaseResponse(BaseModel):
    success: bool = True
    message: str | None = None
    order: dict[str, Any]
    tickets: list[dict[str, Any]] = Field(default_factory=list)
    event: dict[str, Any] | None = None
    redirect_url: str | None = None


class SendTicketEmailRequest(RequestModel):
    """Body for POST /tickets/send-email."""
    order_id: str | None = None
    customer_email: str | None = None


class TicketOrderResponse(BaseModel):
    """Returned by GET /tickets/{order_id}."""
    order: dict[str, Any]
