# =============================================================================
# lib/utils.py - Shared Utilities
# =============================================================================
# Common utilities used across the application.
# =============================================================================

import re
import secrets
import string
from datetime import datetime
from typing import Any


# =============================================================================
# Email Utilities
# =============================================================================

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: str | None) -> str:
    """Lowercase and trim an email address. None becomes an empty string."""
    return (email or "").strip().lower()


def is_valid_email(email: str | None) -> bool:
    """Loose format check: something@something.tld, no whitespace."""
    return bool(email) and EMAIL_PATTERN.match(email) is not None


# =============================================================================
# Reference Numbers
# =============================================================================

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference(prefix: str, when: datetime | None = None, length: int = 6) -> str:
    """
    Build a human-readable reference like ``TKT-20260118-7QX2KD``.

    Args:
        prefix: Short uppercase prefix (e.g. "TKT", "ORD")
        when: Date stamped into the reference (defaults to now)
        length: Number of random characters in the suffix
    """
    when = when or datetime.now()
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(length))
    return f"{prefix}-{when.strftime('%Y%m%d')}-{suffix}"


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce a numeric column (often returned as a string) to float."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


# =============================================================================
# Base Error Class
# =============================================================================

class ApplicationError(Exception):
    """
    Base error class for errors raised by lib/ helpers.

    Provides actionable error messages following the principle:
    "Errors should tell HOW to fix, not just WHAT failed."

    Attributes:
        code: Error code for categorization
        message: Human-readable error message
        suggestion: Actionable suggestion for fixing the error
        details: Additional context for debugging

    Example:
        class SignatureVerificationError(ApplicationError):
            def __init__(self, message: str, **kwargs):
                super().__init__(message, code="INVALID_SIGNATURE", **kwargs)
    """

    def __init__(
        self,
        message: str,
        code: str = "APPLICATION_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f"\n  Suggestion: {self.suggestion}"
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "code": self.code,
            "message": self.message,
            "suggestion": self.suggestion,
            "details": self.details,
        }
