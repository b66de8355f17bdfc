# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================

from .availability_service import AvailabilityService
from .content_service import ContentService
from .email_service import EmailService
from .image_service import ImageService
from .order_service import OrderService
from .otp_service import OTPStore, VerifiedEmailStore
from .payment_service import PaymentService
from .reservation_service import ReservationService
from .ticket_service import TicketService

__all__ = [
    "AvailabilityService",
    "ContentService",
    "EmailService",
    "ImageService",
    "OrderService",
    "OTPStore",
    "VerifiedEmailStore",
    "PaymentService",
    "ReservationService",
    "TicketService",
]
