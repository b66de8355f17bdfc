# =============================================================================
# app/routers/revalidate.py - Content Cache Revalidation
# =============================================================================
# Called by the CMS (or a database webhook) after content changes so the
# next request reads fresh rows instead of waiting out the cache TTL.
# =============================================================================

import logging
import time
from typing import Annotated

from fastapi import APIRouter, Query

from app.dependencies import secrets_match
from app.config import settings
from app.exceptions import UnauthorizedError, ValidationFailedError
from lib import content_cache

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/revalidate")
async def revalidate(
    secret: Annotated[str | None, Query()] = None,
    path: Annotated[str | None, Query(description="Page path, e.g. /menu")] = None,
    tag: Annotated[str | None, Query(description="Cache tag, e.g. events")] = None,
):
    """
    Drop cached content for a page path or a tag.

    Returns:
        {revalidated, path | tag, now} where now is epoch milliseconds
    """
    if not secrets_match(secret, settings.REVALIDATION_SECRET):
        raise UnauthorizedError("Invalid secret")

    now = int(time.time() * 1000)

    if tag:
        removed = content_cache.invalidate_tags([tag])
        logger.info(f"Revalidated tag {tag} ({removed} entries)")
        return {"revalidated": True, "tag": tag, "now": now}

    if path:
        tags = content_cache.tags_for_path(path)
        removed = content_cache.invalidate_tags(tags)
        logger.info(f"Revalidated path {path} -> {sorted(tags)} ({removed} entries)")
        return {"revalidated": True, "path": path, "now": now}

    raise ValidationFailedError("Missing path or tag parameter", code="MISSING_PARAMETER")
