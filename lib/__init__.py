# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable utilities:
# - supabase_client.py: Typed Supabase wrapper for database operations
# - timezone.py: Restaurant-local date/time math and formatting
# - stripe_client.py: Stripe SDK wrapper for Checkout and webhook verification
# - mailer.py: SMTP and Edge Function email transports
# - email_templates.py: HTML bodies for customer emails
# - content_cache.py: Tagged TTL cache for page content
# - qr.py: Ticket QR payloads and PNG rendering
# - utils.py: Shared utilities (error handling, IDs, emails, references)
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.supabase_client import SupabaseClient, SupabaseClientError
from lib.utils import (
    ApplicationError,
    generate_reference,
    is_valid_email,
    normalize_email,
    to_float,
)

__all__ = [
    # Supabase
    "SupabaseClient",
    "SupabaseClientError",
    # Utils
    "ApplicationError",
    "generate_reference",
    "is_valid_email",
    "normalize_email",
    "to_float",
]
