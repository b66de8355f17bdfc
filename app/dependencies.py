# =============================================================================
# app/dependencies.py - Shared Dependencies
# =============================================================================
# FastAPI dependency injection for shared resources.
# These are injected into route handlers using Depends().
# =============================================================================

import hmac
import logging
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.exceptions import UnauthorizedError
from lib.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

# Bearer extractor that leaves the 401 to us
security_optional = HTTPBearer(auto_error=False)


def get_supabase_client() -> type[SupabaseClient]:
    """
    Get Supabase client instance.

    Returns the singleton client wrapper.
    """
    return SupabaseClient


def secrets_match(provided: str | None, expected: str | None) -> bool:
    """Constant-time comparison that fails when either side is empty."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


async def require_internal_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security_optional),
) -> None:
    """
    Guard for service-to-service endpoints.

    Requires ``Authorization: Bearer <INTERNAL_API_KEY>``.

    Raises:
        UnauthorizedError: Missing or wrong token, or no key configured
    """
    if not settings.INTERNAL_API_KEY:
        logger.error("INTERNAL_API_KEY is not set; rejecting internal request")
        raise UnauthorizedError()

    token = credentials.credentials if credentials else None
    if not secrets_match(token, settings.INTERNAL_API_KEY):
        raise UnauthorizedError()


# Type aliases for dependency injection
SupabaseDep = Annotated[type[SupabaseClient], Depends(get_supabase_client)]
InternalKeyDep = Annotated[None, Depends(require_internal_key)]
