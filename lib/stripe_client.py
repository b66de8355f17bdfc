# =============================================================================
# lib/stripe_client.py - Stripe Checkout Client
# =============================================================================
# Thin wrapper around the official stripe SDK:
# - create / retrieve Checkout Sessions as plain dicts
# - webhook verification via stripe.Webhook.construct_event
# - amount conversion between major units and Stripe's smallest unit
#
# SDK errors are re-raised as StripeError / SignatureVerificationError so
# services only deal with ApplicationError subclasses.
#
# Usage:
#   from lib.stripe_client import StripeClient
#   session = StripeClient.create_checkout_session({...})
# =============================================================================

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe

from app.config import settings
from lib.utils import ApplicationError

logger = logging.getLogger(__name__)

# Currencies Stripe charges in whole units
ZERO_DECIMAL_CURRENCIES = {
    "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
    "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
}

SIGNATURE_TOLERANCE_SECONDS = 300


class StripeError(ApplicationError):
    """Stripe rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None, **kwargs):
        super().__init__(message, code="STRIPE_ERROR", **kwargs)
        self.status_code = status_code


class SignatureVerificationError(ApplicationError):
    """A webhook payload's signature didn't match."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="INVALID_SIGNATURE", **kwargs)


# =============================================================================
# Amount Helpers
# =============================================================================

def format_amount_for_stripe(amount: float, currency: str = "usd") -> int:
    """
    Convert a major-unit amount (e.g. 25.50 USD) to Stripe's smallest unit (2550).

    Rounds half up so 19.995 becomes 2000, not 1999.
    """
    value = Decimal(str(amount))
    if currency.lower() not in ZERO_DECIMAL_CURRENCIES:
        value = value * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_amount_from_stripe(amount: int, currency: str = "usd") -> float:
    """Convert Stripe's smallest unit back to a major-unit amount."""
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return float(amount)
    return round(amount / 100, 2)


def _wrap_error(action: str, error: stripe.StripeError) -> StripeError:
    message = error.user_message or str(error) or type(error).__name__
    logger.error(f"Stripe error on {action}: {message}")
    return StripeError(
        message,
        status_code=error.http_status,
        details={"type": type(error).__name__, "code": error.code},
    )


# =============================================================================
# Client
# =============================================================================

class StripeClient:
    """
    Stripe Checkout operations.

    All methods are class methods; the secret key is read from settings
    on every call and passed per request, so tests can patch it.
    """

    @classmethod
    def is_configured(cls) -> bool:
        return bool(settings.STRIPE_SECRET_KEY)

    @classmethod
    def _api_key(cls) -> str:
        if not settings.STRIPE_SECRET_KEY:
            raise StripeError(
                "Stripe secret key is not configured",
                suggestion="Set STRIPE_SECRET_KEY in your .env file",
            )
        return settings.STRIPE_SECRET_KEY

    @classmethod
    def create_checkout_session(cls, params: dict[str, Any]) -> dict[str, Any]:
        """
        Create a Checkout Session.

        Args:
            params: Session parameters in Stripe's shape (line_items,
                mode, success_url, cancel_url, metadata, ...)

        Returns:
            The session object as a dict (``id``, ``url``, ...)

        Raises:
            StripeError: If Stripe rejects the request
        """
        api_key = cls._api_key()
        try:
            session = stripe.checkout.Session.create(api_key=api_key, **params)
        except stripe.StripeError as e:
            raise _wrap_error("create checkout session", e)

        logger.info(f"Created Stripe checkout session {session.id}")
        return session.to_dict()

    @classmethod
    def retrieve_checkout_session(cls, session_id: str) -> dict[str, Any]:
        """Fetch a Checkout Session by ID."""
        api_key = cls._api_key()
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=api_key)
        except stripe.StripeError as e:
            raise _wrap_error(f"retrieve checkout session {session_id}", e)
        return session.to_dict()

    @classmethod
    def construct_event(
        cls,
        payload: bytes | str,
        sig_header: str,
        secret: str,
        tolerance: int = SIGNATURE_TOLERANCE_SECONDS,
    ) -> dict[str, Any]:
        """
        Verify a webhook signature and parse the event.

        Raises:
            SignatureVerificationError: Bad header, bad signature, stale
                timestamp or a payload that isn't JSON
        """
        try:
            event = stripe.Webhook.construct_event(payload, sig_header, secret, tolerance=tolerance)
        except stripe.SignatureVerificationError as e:
            raise SignatureVerificationError(str(e))
        except ValueError as e:
            raise SignatureVerificationError(f"Invalid payload: {e}")
        return event.to_dict()
