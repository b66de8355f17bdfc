# =============================================================================
# app/routers/email.py - Email Verification & Delivery Endpoints
# =============================================================================
# OTP flow used before buying tickets:
#   send-otp -> verify-otp -> (30 days of check-verified == true)
#
# Plus an internal send endpoint for edge functions and a diagnostic
# endpoint for checking SMTP settings outside production.
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Response

from app.config import settings
from app.dependencies import InternalKeyDep
from app.exceptions import (
    EmailDeliveryError,
    EmailNotConfiguredError,
    InvalidOTPError,
    OTPNotFoundError,
    ValidationFailedError,
)
from core.models.email import (
    CheckVerifiedRequest,
    DiagnosticEmailRequest,
    EmailSendResponse,
    InternalSendRequest,
    SendOTPRequest,
    SendOTPResponse,
    VerificationStatus,
    VerifyOTPRequest,
    VerifyOTPResponse,
)
from core.services.email_service import EmailService
from core.services.otp_service import OTPStore, VerifiedEmailStore, generate_otp
from lib.timezone import parse_timestamp
from lib.utils import is_valid_email, normalize_email

logger = logging.getLogger(__name__)

router = APIRouter()

VERIFIED_CACHE_CONTROL = "public, s-maxage=300, stale-while-revalidate=600"
UNVERIFIED_CACHE_CONTROL = "public, s-maxage=60, stale-while-revalidate=120"


def _require_valid_email(raw: str | None) -> str:
    email = normalize_email(raw)
    if not email:
        raise ValidationFailedError("Email is required", code="MISSING_EMAIL")
    if not is_valid_email(email):
        raise ValidationFailedError("Invalid email format", code="INVALID_EMAIL", details={"email": email})
    return email


# =============================================================================
# OTP Verification
# =============================================================================

@router.post("/send-otp", response_model=SendOTPResponse, response_model_exclude_none=True)
def send_otp(request: SendOTPRequest):
    """
    Email a six-digit verification code.

    Emails verified within the last VERIFIED_EMAIL_DAYS skip the code and
    get already_verified with the days remaining.
    """
    email = _require_valid_email(request.email)

    verification = VerifiedEmailStore.get_verification(email)
    if verification:
        days = VerifiedEmailStore.days_remaining(verification)
        logger.info(f"{email} already verified ({days} days remaining)")
        return SendOTPResponse(
            message="Email already verified",
            already_verified=True,
            days_remaining=days,
        )

    if not (settings.smtp_configured or settings.use_edge_functions_for_email):
        logger.error("Cannot send OTP: no email transport configured")
        raise EmailNotConfiguredError()

    otp = generate_otp()
    OTPStore.store(email, otp)

    result = EmailService.send_otp_email(email, otp)
    if not result.success:
        OTPStore.delete(email)
        raise EmailDeliveryError(result.error or "Unknown error")

    return SendOTPResponse(message="OTP sent successfully")


@router.post("/verify-otp", response_model=VerifyOTPResponse, response_model_exclude_none=True)
async def verify_otp(request: VerifyOTPRequest):
    """
    Check a code and mark the email verified.

    Returns 404 when no live code exists (never sent, expired or already
    used) and 400 when the code doesn't match.
    """
    if not request.email or not request.otp:
        raise ValidationFailedError("Email and OTP are required", code="MISSING_FIELDS")

    email = normalize_email(request.email)

    if OTPStore.get(email) is None:
        raise OTPNotFoundError(email)

    if not OTPStore.verify(email, request.otp):
        raise InvalidOTPError()

    row = VerifiedEmailStore.mark_verified(email)
    if row is None:
        # The code was right; the customer just gets asked again next time
        logger.warning(f"{email} verified but the verification could not be stored")

    return VerifyOTPResponse(
        message="Email verified successfully",
        verified_until=parse_timestamp(row["expires_at"]) if row else None,
    )


def _verification_status(email: str | None, response: Response) -> VerificationStatus:
    if not email or not email.strip():
        raise ValidationFailedError("Email is required", code="MISSING_EMAIL")

    verification = VerifiedEmailStore.get_verification(email)

    if not verification:
        response.headers["Cache-Control"] = UNVERIFIED_CACHE_CONTROL
        return VerificationStatus(verified=False)

    response.headers["Cache-Control"] = VERIFIED_CACHE_CONTROL
    return VerificationStatus(
        verified=True,
        expires_at=parse_timestamp(verification["expires_at"]),
        days_remaining=VerifiedEmailStore.days_remaining(verification),
        verified_at=parse_timestamp(verification["verified_at"]) if verification.get("verified_at") else None,
    )


@router.post("/check-verified", response_model=VerificationStatus)
async def check_verified(request: CheckVerifiedRequest, response: Response):
    """Whether an email is currently verified. Cached at the edge."""
    return _verification_status(request.email, response)


@router.get("/check-verified", response_model=VerificationStatus)
async def check_verified_query(
    response: Response,
    email: Annotated[str | None, Query()] = None,
):
    """Query-string form of POST /check-verified."""
    return _verification_status(email, response)


# =============================================================================
# Sending
# =============================================================================

@router.post("/internal/send", response_model=EmailSendResponse, response_model_exclude_none=True)
def internal_send(request: InternalSendRequest, _: InternalKeyDep):
    """
    Send arbitrary HTML over SMTP.

    Used by edge functions. Requires ``Authorization: Bearer <INTERNAL_API_KEY>``.
    """
    result = EmailService.send_raw(request.to, request.subject, request.html)
    if not result.success:
        raise EmailDeliveryError(result.error or "Unknown error")

    return EmailSendResponse(success=True, message="Email sent", message_id=result.message_id)


@router.post("/test", response_model=EmailSendResponse, response_model_exclude_none=True)
def send_test_email(request: DiagnosticEmailRequest):
    """Send a diagnostic email. Not available in production."""
    if settings.is_production:
        raise HTTPException(status_code=404, detail="Not found")

    to = _require_valid_email(request.to)
    result = EmailService.send_diagnostic(to)
    if not result.success:
        raise EmailDeliveryError(result.error or "Unknown error")

    return EmailSendResponse(success=True, message=f"Test email sent to {to}", message_id=result.message_id)
