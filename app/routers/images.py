# =============================================================================
# app/routers/images.py - Storage Image Proxy
# =============================================================================
# GET|HEAD /api/images/{bucket}/{path...}
#
# Serves public Supabase Storage objects from our own origin with a year-long
# immutable cache and an ETag derived from the path, so repeat requests from
# browsers and the CDN end in a 304 without touching storage.
# =============================================================================

from typing import Annotated

from fastapi import APIRouter, Header, Path, Request, Response

from core.services.image_service import ImageService

router = APIRouter()


@router.api_route("/{full_path:path}", methods=["GET", "HEAD"])
def proxy_image(
    request: Request,
    full_path: Annotated[str, Path(description="Bucket followed by the object path")],
    if_none_match: Annotated[str | None, Header()] = None,
):
    """
    Proxy an image from storage.

    Returns 304 when If-None-Match matches, 400 for malformed paths, and the
    upstream status when storage can't serve the object.
    """
    image = ImageService.fetch(
        full_path,
        if_none_match=if_none_match,
        head=request.method == "HEAD",
    )

    return Response(
        content=image.content,
        status_code=image.status_code,
        headers=image.headers,
    )
