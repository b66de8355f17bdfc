# =============================================================================
# core/services/otp_service.py - Email OTP Verification
# =============================================================================
# One-time codes for proving ownership of an email address.
#
# Lifecycle:
#   issued    stored for OTP_EXPIRY_MINUTES (reissuing overwrites)
#   consumed  deleted on the first matching verify
#   expired   deleted when read, or by the memory sweep / cleanup task
#
# A successful verify promotes the email to a verified_emails row valid for
# VERIFIED_EMAIL_DAYS, so returning customers skip the code step.
#
# Codes live in the otp_verifications table. If the database write fails,
# the code is kept in a process-local dict instead, which is swept
# periodically by the API lifespan task.
# =============================================================================

import hmac
import logging
import secrets
import threading
from datetime import datetime, timedelta, timezone
from typing import Any

from lib.supabase_client import SupabaseClient
from lib.timezone import parse_timestamp, to_utc_iso
from lib.utils import is_valid_email, normalize_email
from core.models.email import OTPEntry
from app.config import settings

logger = logging.getLogger(__name__)

OTP_TABLE = "otp_verifications"
VERIFIED_TABLE = "verified_emails"


def generate_otp() -> str:
    """Six-digit code in 100000-999999 from a CSPRNG."""
    return str(100000 + secrets.randbelow(900000))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OTPStore:
    """
    One code per email, database first with an in-memory fallback.

    All methods normalize the email (trim + lowercase).
    """

    _memory: dict[str, OTPEntry] = {}
    _lock = threading.Lock()

    @classmethod
    def store(cls, email: str, otp: str, expires_in_minutes: int | None = None) -> OTPEntry:
        """Store (or replace) the code for an email."""
        email = normalize_email(email)
        minutes = expires_in_minutes or settings.OTP_EXPIRY_MINUTES
        now = _utcnow()
        entry = OTPEntry(email=email, otp_code=otp, expires_at=now + timedelta(minutes=minutes))

        try:
            client = SupabaseClient.get_client()
            client.table(OTP_TABLE).upsert(
                {
                    "email": email,
                    "otp_code": otp,
                    "expires_at": to_utc_iso(entry.expires_at),
                    "created_at": to_utc_iso(now),
                },
                on_conflict="email",
            ).execute()
            logger.info(f"Stored OTP for {email}, expires in {minutes} minutes")
            return entry
        except Exception as e:
            logger.warning(f"OTP database write failed, using memory fallback: {e}")

        with cls._lock:
            cls._memory[email] = entry
        logger.info(f"Stored OTP in memory for {email}, expires in {minutes} minutes")
        return entry

    @classmethod
    def get(cls, email: str) -> OTPEntry | None:
        """
        The live code for an email, or None.

        An expired code is deleted and reads as missing.
        """
        email = normalize_email(email)
        now = _utcnow()

        try:
            client = SupabaseClient.get_client()
            rows = (
                client.table(OTP_TABLE)
                .select("otp_code, expires_at")
                .eq("email", email)
                .limit(1)
                .execute()
                .data
            ) or []
        except Exception as e:
            logger.warning(f"OTP database read failed, checking memory: {e}")
            rows = []

        if rows:
            expires_at = parse_timestamp(rows[0]["expires_at"])
            if expires_at < now:
                logger.info(f"OTP expired for {email}")
                cls.delete(email)
                return None
            return OTPEntry(email=email, otp_code=rows[0]["otp_code"], expires_at=expires_at)

        with cls._lock:
            entry = cls._memory.get(email)
            if entry is None:
                return None
            if entry.expires_at < now:
                logger.info(f"OTP expired in memory for {email}")
                del cls._memory[email]
                return None
            return entry

    @classmethod
    def delete(cls, email: str) -> None:
        """Remove the code from the database and memory."""
        email = normalize_email(email)

        try:
            client = SupabaseClient.get_client()
            client.table(OTP_TABLE).delete().eq("email", email).execute()
        except Exception as e:
            logger.warning(f"OTP database delete failed for {email}: {e}")

        with cls._lock:
            cls._memory.pop(email, None)

    @classmethod
    def verify(cls, email: str, otp: str) -> bool:
        """
        Check a submitted code. A match consumes the code.

        Whitespace inside the submitted code is ignored.
        """
        entry = cls.get(email)
        if entry is None:
            return False

        submitted = "".join(otp.split())
        if not hmac.compare_digest(entry.otp_code.encode(), submitted.encode()):
            return False

        cls.delete(email)
        return True

    @classmethod
    def sweep_memory(cls, now: datetime | None = None) -> int:
        """
        Drop expired in-memory codes.

        Returns:
            Number of codes removed
        """
        now = now or _utcnow()
        with cls._lock:
            expired = [email for email, entry in cls._memory.items() if entry.expires_at < now]
            for email in expired:
                del cls._memory[email]

        if expired:
            logger.debug(f"Swept {len(expired)} expired in-memory OTPs")
        return len(expired)

    @classmethod
    def cleanup_expired(cls) -> int:
        """Delete expired otp_verifications rows. Returns the number removed."""
        client = SupabaseClient.get_client()
        response = client.table(OTP_TABLE).delete().lt("expires_at", to_utc_iso(_utcnow())).execute()
        return len(response.data or [])


class VerifiedEmailStore:
    """Emails that passed OTP verification, valid for VERIFIED_EMAIL_DAYS."""

    @staticmethod
    def mark_verified(email: str, days: int | None = None) -> dict[str, Any] | None:
        """
        Record (or refresh) a verification.

        Returns:
            The stored row, or None if the email is invalid or the write failed
        """
        email = normalize_email(email)
        if not is_valid_email(email):
            logger.error(f"Refusing to mark invalid email as verified: {email!r}")
            return None

        now = _utcnow()
        row = {
            "email": email,
            "verified_at": to_utc_iso(now),
            "expires_at": to_utc_iso(now + timedelta(days=days or settings.VERIFIED_EMAIL_DAYS)),
            "verification_method": "otp",
            "updated_at": to_utc_iso(now),
        }

        try:
            client = SupabaseClient.get_client()
            response = client.table(VERIFIED_TABLE).upsert(row, on_conflict="email").execute()
        except Exception as e:
            logger.error(f"Failed to store verified email {email}: {e}")
            return None

        logger.info(f"Marked {email} verified until {row['expires_at']}")
        return (response.data or [row])[0]

    @staticmethod
    def get_verification(email: str) -> dict[str, Any] | None:
        """
        The live verification row for an email, or None.

        An expired row is deleted and reads as None.
        """
        email = normalize_email(email)
        if not is_valid_email(email):
            return None

        client = SupabaseClient.get_client()
        try:
            rows = client.table(VERIFIED_TABLE).select("*").eq("email", email).limit(1).execute().data or []
        except Exception as e:
            logger.error(f"Failed to check verified email {email}: {e}")
            return None

        if not rows:
            return None

        row = rows[0]
        if parse_timestamp(row["expires_at"]) < _utcnow():
            try:
                client.table(VERIFIED_TABLE).delete().eq("email", email).execute()
            except Exception as e:
                logger.warning(f"Failed to delete expired verification for {email}: {e}")
            logger.info(f"Verification expired for {email}")
            return None

        return row

    @staticmethod
    def days_remaining(row: dict[str, Any], now: datetime | None = None) -> int:
        """Whole days until a verification row expires."""
        now = now or _utcnow()
        return max(0, (parse_timestamp(row["expires_at"]) - now).days)

    @staticmethod
    def cleanup_expired() -> int:
        """Delete expired verified_emails rows. Returns the number removed."""
        client = SupabaseClient.get_client()
        response = client.table(VERIFIED_TABLE).delete().lt("expires_at", to_utc_iso(_utcnow())).execute()
        count = len(response.data or [])
        if count:
            logger.info(f"Cleaned up {count} expired verification(s)")
        return count
