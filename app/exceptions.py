# =============================================================================
# app/exceptions.py - Custom Exception Handlers
# =============================================================================
# Centralized exception handling for the API.
# Errors should tell HOW to fix, not just WHAT failed.
# =============================================================================

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class GoodTimesException(Exception):
    """
    Base exception for the Good Times API.

    All custom exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "GOODTIMES_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "detail": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Generic Request Exceptions
# =============================================================================

class ValidationFailedError(GoodTimesException):
    """Raised when request input fails a business rule."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=400,
            suggestion=suggestion,
            details=details,
        )


class UnauthorizedError(GoodTimesException):
    """Raised when a shared secret or bearer token is missing or wrong."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            message=message,
            code="UNAUTHORIZED",
            status_code=401,
        )


class DatabaseUnavailableError(GoodTimesException):
    """Raised when the database cannot be reached."""

    def __init__(self, error: str):
        super().__init__(
            message="Database service unavailable",
            code="DATABASE_UNAVAILABLE",
            status_code=503,
            suggestion="Try again later or contact support if the issue persists",
            details={"error": error}
        )


# =============================================================================
# Not Found Exceptions
# =============================================================================

class ReservationNotFoundError(GoodTimesException):
    """Raised when a reservation ID doesn't exist."""

    def __init__(self, reservation_id: str):
        super().__init__(
            message="Reservation not found",
            code="RESERVATION_NOT_FOUND",
            status_code=404,
            suggestion="Check the reservation number in your confirmation email",
            details={"reservation_id": reservation_id}
        )


class TicketOrderNotFoundError(GoodTimesException):
    """Raised when a ticket order ID doesn't exist."""

    def __init__(self, order_id: str):
        super().__init__(
            message="Order not found",
            code="ORDER_NOT_FOUND",
            status_code=404,
            details={"order_id": order_id}
        )


class NoTicketsFoundError(GoodTimesException):
    """Raised when an order exists but has no issued tickets."""

    def __init__(self, order_id: str):
        super().__init__(
            message="No tickets found for this order",
            code="NO_TICKETS",
            status_code=404,
            suggestion="Complete the purchase before requesting the ticket email",
            details={"order_id": order_id}
        )


class MenuItemNotFoundError(GoodTimesException):
    """Raised when a menu item ID doesn't exist."""

    def __init__(self, item_id: str):
        super().__init__(
            message="Menu item not found",
            code="MENU_ITEM_NOT_FOUND",
            status_code=404,
            details={"item_id": item_id}
        )


class EventNotFoundError(GoodTimesException):
    """Raised when an event ID or slug doesn't exist."""

    def __init__(self, identifier: str):
        super().__init__(
            message="Event not found",
            code="EVENT_NOT_FOUND",
            status_code=404,
            details={"event": identifier}
        )


class SectionNotFoundError(GoodTimesException):
    """Raised when a static content section key doesn't exist."""

    def __init__(self, section_key: str):
        super().__init__(
            message=f"Section not found: {section_key}",
            code="SECTION_NOT_FOUND",
            status_code=404,
            details={"section_key": section_key}
        )


# =============================================================================
# Reservation Exceptions
# =============================================================================

class ReservationConflictError(GoodTimesException):
    """Raised when a requested slot overlaps a ticketed event."""

    def __init__(self, message: str, event: dict[str, Any]):
        super().__init__(
            message=message,
            code="EVENT_CONFLICT",
            status_code=400,
            suggestion="Please choose a different time",
            details={"event_conflict": event}
        )


class CapacityExceededError(GoodTimesException):
    """Raised when an event area has fewer seats left than requested."""

    def __init__(self, area: str, remaining_seats: int):
        if remaining_seats <= 0:
            message = f"{area} is FULL for this event."
        else:
            message = f"Only {remaining_seats} seat(s) remaining in {area} for this event."
        super().__init__(
            message=message,
            code="CAPACITY_EXCEEDED",
            status_code=400,
            suggestion="Reduce the party size or pick another area",
            details={
                "capacity_exceeded": True,
                "remaining_seats": remaining_seats,
                "area": area,
            }
        )


# =============================================================================
# Ticket Exceptions
# =============================================================================

class TicketUnavailableError(GoodTimesException):
    """Raised when a ticket type is unknown or sold out."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code="TICKET_UNAVAILABLE",
            status_code=400,
            details=details,
        )


class PastEventError(GoodTimesException):
    """Raised when buying tickets for an event that has already ended."""

    def __init__(self, event_id: str):
        super().__init__(
            message="This event has already ended. Tickets are no longer available.",
            code="EVENT_ENDED",
            status_code=400,
            details={"event_id": event_id}
        )


class OrderProcessingError(GoodTimesException):
    """Raised when another request is already completing the same order."""

    def __init__(self, order_id: str):
        super().__init__(
            message="Order is already being processed",
            code="ORDER_PROCESSING",
            status_code=409,
            suggestion="Wait a few seconds and refresh your tickets page",
            details={"order_id": order_id}
        )


class EmailNotVerifiedError(GoodTimesException):
    """Raised when a purchase uses an email that hasn't passed OTP verification."""

    def __init__(self, email: str):
        super().__init__(
            message="Email address has not been verified",
            code="EMAIL_NOT_VERIFIED",
            status_code=403,
            suggestion="Request a verification code with POST /api/email/send-otp",
            details={"email": email}
        )


# =============================================================================
# Email Verification Exceptions
# =============================================================================

class OTPNotFoundError(GoodTimesException):
    """Raised when no live code exists for an email."""

    def __init__(self, email: str):
        super().__init__(
            message="OTP not found or expired. Please request a new code.",
            code="OTP_NOT_FOUND",
            status_code=404,
            details={"email": email}
        )


class InvalidOTPError(GoodTimesException):
    """Raised when a submitted code doesn't match."""

    def __init__(self):
        super().__init__(
            message="Invalid OTP. Please check the code and try again.",
            code="INVALID_OTP",
            status_code=400,
        )


class EmailNotConfiguredError(GoodTimesException):
    """Raised when no email transport is configured."""

    def __init__(self):
        super().__init__(
            message="Email service not configured",
            code="EMAIL_NOT_CONFIGURED",
            status_code=500,
            suggestion="Set SMTP_USER and SMTP_PASSWORD, or enable USE_EDGE_FUNCTIONS",
        )


class EmailDeliveryError(GoodTimesException):
    """Raised when an email couldn't be handed to the transport."""

    def __init__(self, error: str):
        super().__init__(
            message="Failed to send email",
            code="EMAIL_DELIVERY_FAILED",
            status_code=500,
            suggestion="Try again later or contact support if the issue persists",
            details={"error": error}
        )


# =============================================================================
# Payment Exceptions
# =============================================================================

class PaymentAmountError(GoodTimesException):
    """Raised when a checkout amount can't be charged."""

    def __init__(self, message: str, code: str = "INVALID_AMOUNT", details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code=code,
            status_code=400,
            details=details,
        )


class PaymentNotConfiguredError(GoodTimesException):
    """Raised when Stripe keys are missing."""

    def __init__(self, missing: str = "STRIPE_SECRET_KEY"):
        super().__init__(
            message="Payment service not configured",
            code="PAYMENT_NOT_CONFIGURED",
            status_code=500,
            suggestion=f"Set {missing} in the environment",
        )


class PaymentProviderError(GoodTimesException):
    """Raised when the payment provider rejects or fails a request."""

    def __init__(self, error: str, status_code: int = 502):
        super().__init__(
            message=f"Payment provider error: {error}",
            code="PAYMENT_PROVIDER_ERROR",
            status_code=status_code,
            suggestion="Try again later or use a different payment method",
            details={"error": error}
        )


# =============================================================================
# Image Proxy Exceptions
# =============================================================================

class ImageFetchError(GoodTimesException):
    """Raised when the storage upstream can't serve an image."""

    def __init__(self, path: str, status_code: int = 404):
        super().__init__(
            message="Image not found",
            code="IMAGE_NOT_FOUND",
            status_code=status_code,
            details={"path": path}
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def goodtimes_exception_handler(
    request: Request,
    exc: GoodTimesException
) -> JSONResponse:
    """
    Convert GoodTimesException to JSON response.

    Returns structured error with:
    - detail: Human-readable message
    - code: Machine-readable error code
    - suggestion: How to fix (if available)
    - details: Additional context
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """
    Handle Pydantic request validation errors.

    Missing or malformed fields are a client error, reported as 400.
    """
    errors = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        errors.append({"field": location, "message": error.get("msg", "Invalid value")})

    missing = [e["field"] for e in errors if "required" in e["message"].lower()]
    message = "Missing required fields." if missing else "Validation error"

    return JSONResponse(
        status_code=400,
        content={
            "detail": message,
            "code": "VALIDATION_ERROR",
            "errors": errors,
        }
    )
