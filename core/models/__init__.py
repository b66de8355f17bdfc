# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for data validation:
# - common.py: RequestModel base (camelCase aliases)
# - reservation.py: Reservation booking and availability schemas
# - order.py: Online order schemas and the Cart
# - ticket.py: Ticket purchase / completion schemas
# - payment.py: Checkout session schemas
# - email.py: OTP verification and email delivery schemas
#
# These models define the "contract" between API and clients.
# =============================================================================

from .common import RequestModel

# -----------------------------------------------------------------------------
# Reservation Models
# -----------------------------------------------------------------------------
from .reservation import (
    AvailabilityResponse,
    MAX_GUESTS,
    MIN_GUESTS,
    PrepaymentStatus,
    PrepaymentWindow,
    ReservationCreate,
    ReservationCreateResponse,
    ReservationResponse,
    ReservationStatus,
    SendConfirmationRequest,
)

# -----------------------------------------------------------------------------
# Order Models
# -----------------------------------------------------------------------------
from .order import (
    Cart,
    CartLine,
    CustomerInfo,
    OrderCreate,
    OrderCreateResponse,
    OrderItemRequest,
    OrderStatus,
    OrderType,
)

# -----------------------------------------------------------------------------
# Ticket Models
# -----------------------------------------------------------------------------
from .ticket import (
    BASE_TICKET_TYPE,
    GENERAL_ADMISSION,
    CompletePurchaseRequest,
    CompletePurchaseResponse,
    PaymentStatus,
    SendTicketEmailRequest,
    TicketOrderResponse,
    TicketOrderStatus,
    TicketPurchaseRequest,
    TicketPurchaseResponse,
    TicketSelectionItem,
)

# -----------------------------------------------------------------------------
# Payment Models
# -----------------------------------------------------------------------------
from .payment import (
    CheckoutSessionResponse,
    CheckoutType,
    CreateCheckoutRequest,
    VerifySessionResponse,
    WebhookAck,
)

# -----------------------------------------------------------------------------
# Email Models
# -----------------------------------------------------------------------------
from .email import (
    CheckVerifiedRequest,
    DiagnosticEmailRequest,
    EmailSendResponse,
    InternalSendRequest,
    OTPEntry,
    SendOTPRequest,
    SendOTPResponse,
    VerificationStatus,
    VerifyOTPRequest,
    VerifyOTPResponse,
)

__all__ = [
    "RequestModel",
    # Reservation
    "AvailabilityResponse",
    "MAX_GUESTS",
    "MIN_GUESTS",
    "PrepaymentStatus",
    "PrepaymentWindow",
    "ReservationCreate",
    "ReservationCreateResponse",
    "ReservationResponse",
    "ReservationStatus",
    "SendConfirmationRequest",
    # Order
    "Cart",
    "CartLine",
    "CustomerInfo",
    "OrderCreate",
    "OrderCreateResponse",
    "OrderItemRequest",
    "OrderStatus",
    "OrderType",
    # Ticket
    "BASE_TICKET_TYPE",
    "GENERAL_ADMISSION",
    "CompletePurchaseRequest",
    "CompletePurchaseResponse",
    "PaymentStatus",
    "SendTicketEmailRequest",
    "TicketOrderResponse",
    "TicketOrderStatus",
    "TicketPurchaseRequest",
    "TicketPurchaseResponse",
    "TicketSelectionItem",
    # Payment
    "CheckoutSessionResponse",
    "CheckoutType",
    "CreateCheckoutRequest",
    "VerifySessionResponse",
    "WebhookAck",
    # Email
    "CheckVerifiedRequest",
    "DiagnosticEmailRequest",
    "EmailSendResponse",
    "InternalSendRequest",
    "OTPEntry",
    "SendOTPRequest",
    "SendOTPResponse",
    "VerificationStatus",
    "VerifyOTPRequest",
    "VerifyOTPResponse",
]
