# =============================================================================
# core/models/email.py - Email Verification & Delivery Schemas
# =============================================================================
# These models define the API contract for:
# - OTP issuance and verification (send-otp, verify-otp, check-verified)
# - Internal and diagnostic email sending
#
# OTP lifecycle: issued (10 min) -> consumed on match | expired on sweep.
# A successful match promotes the email to a 30-day verified record.
# =============================================================================

from datetime import datetime

from pydantic import BaseModel, Field

from .common import RequestModel


class SendOTPRequest(RequestModel):
    email: str | None = None


class SendOTPResponse(BaseModel):
    success: bool = True
    message: str
    already_verified: bool = False
    days_remaining: int | None = None


class VerifyOTPRequest(RequestModel):
    email: str | None = None
    otp: str | None = None


class VerifyOTPResponse(BaseModel):
    success: bool = True
    message: str
    verified_until: datetime | None = None


class CheckVerifiedRequest(RequestModel):
    """Body for POST /email/check-verified."""
    email: str | None = None


class VerificationStatus(BaseModel):
    """Returned by /email/check-verified."""
    verified: bool
    expires_at: datetime | None = None
    days_remaining: int | None = None
    verified_at: datetime | None = None


class OTPEntry(BaseModel):
    """A stored one-time code."""
    email: str
    otp_code: str
    expires_at: datetime


class InternalSendRequest(RequestModel):
    """Body for the internal send endpoint used by edge functions."""
    to: str = Field(..., min_length=3)
    subject: str = Field(..., min_length=1, max_length=500)
    html: str = Field(..., min_length=1)


class DiagnosticEmailRequest(RequestModel):
    to: str = Field(..., min_length=3)


class EmailSendResponse(BaseModel):
    success: bool
    message: str | None = None
    warning: str | None = None
    message_id: str | None = None
