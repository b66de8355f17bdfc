# =============================================================================
# core/models/payment.py - Checkout Schemas
# =============================================================================
# These models define the API contract for hosted card checkout:
# - CreateCheckoutRequest: Start a checkout for a ticket order or a
#   reservation prepayment
# - CheckoutSessionResponse: Session ID and redirect URL
# - VerifySessionResponse: Outcome after the customer returns from checkout
# =============================================================================

from enum import Enum

from pydantic import BaseModel

from .common import RequestModel


class CheckoutType(str, Enum):
    """What a checkout session pays for."""
    TICKET = "ticket"
    RESERVATION = "reservation"


class CreateCheckoutRequest(RequestModel):
    """
    Schema for creating a checkout session.

    Exactly one of order_id (tickets) or reservation_id (prepayment) is
    used, depending on type.
    """
    type: CheckoutType
    order_id: str | None = None
    reservation_id: str | None = None

    # Major units (dollars). Validated in the service so the error codes
    # (invalid / zero / amount_too_small) stay distinguishable.
    amount: float
    customer_email: str | None = None
    customer_name: str | None = None


class CheckoutSessionResponse(BaseModel):
    success: bool = True
    session_id: str
    url: str | None = None


class VerifySessionResponse(BaseModel):
    success: bool = True
    type: CheckoutType | None = None
    payment_status: str
    order_id: str | None = None
    reservation_id: str | None = None
    event_slug: str | None = None


class WebhookAck(BaseModel):
    received: bool = True
