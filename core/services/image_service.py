# =============================================================================
# core/services/image_service.py - Supabase Storage Image Proxy
# =============================================================================
# Serves public Storage images through the API so every image gets the
# same long-lived cache headers and a stable ETag.
#
# Image files are never overwritten in place: a changed image is uploaded
# under a new filename, so the ETag can be derived from the path alone and
# a conditional request can be answered without touching Storage.
# =============================================================================

import logging
from dataclasses import dataclass, field

import httpx

from app.config import settings
from app.exceptions import ImageFetchError, ValidationFailedError

logger = logging.getLogger(__name__)

IMAGE_CACHE_CONTROL = "public, max-age=31536000, immutable, stale-while-revalidate=86400"
DEFAULT_CONTENT_TYPE = "image/jpeg"
UPSTREAM_TIMEOUT = 15.0


@dataclass
class ProxiedImage:
    """Result of a proxy lookup. content is None for 304 and HEAD responses."""
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes | None = None


def storage_public_url(bucket: str, path: str) -> str:
    return f"{settings.SUPABASE_URL.rstrip('/')}/storage/v1/object/public/{bucket}/{path}"


def make_etag(bucket: str, path: str) -> str:
    return f'"{bucket}/{path}"'


def etag_matches(if_none_match: str | None, etag: str) -> bool:
    """True if an If-None-Match header value covers the ETag."""
    if not if_none_match:
        return False

    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == "*" or candidate == etag:
            return True
    return False


def split_image_path(full_path: str) -> tuple[str, str]:
    """
    Split "bucket/dir/file.webp" into ("bucket", "dir/file.webp").

    Raises:
        ValidationFailedError: Fewer than two segments, or any ".." segment
    """
    segments = [segment for segment in full_path.split("/") if segment]

    if len(segments) < 2:
        raise ValidationFailedError(
            "Invalid image path. Format: /api/images/[bucket]/[image-path]",
            code="INVALID_IMAGE_PATH",
        )
    if any(segment == ".." for segment in segments):
        raise ValidationFailedError("Invalid image path", code="INVALID_IMAGE_PATH")

    return segments[0], "/".join(segments[1:])


def response_headers(etag: str, content_type: str | None = None) -> dict[str, str]:
    headers = {
        "Cache-Control": IMAGE_CACHE_CONTROL,
        "ETag": etag,
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, HEAD",
    }
    if content_type:
        headers["Content-Type"] = content_type
    return headers


class ImageService:
    """Image proxy operations."""

    @staticmethod
    def fetch(full_path: str, if_none_match: str | None = None, head: bool = False) -> ProxiedImage:
        """
        Resolve an image request.

        Args:
            full_path: "{bucket}/{path...}" from the URL
            if_none_match: Client's If-None-Match header, if any
            head: Only headers are wanted

        Returns:
            ProxiedImage with status 200 or 304

        Raises:
            ValidationFailedError: Malformed path (400)
            ImageFetchError: Upstream returned non-2xx (its status) or failed (500)
        """
        bucket, path = split_image_path(full_path)
        etag = make_etag(bucket, path)

        if etag_matches(if_none_match, etag):
            return ProxiedImage(status_code=304, headers=response_headers(etag))

        url = storage_public_url(bucket, path)
        try:
            if head:
                upstream = httpx.head(url, headers={"Accept": "image/*"}, follow_redirects=True, timeout=UPSTREAM_TIMEOUT)
            else:
                upstream = httpx.get(url, headers={"Accept": "image/*"}, follow_redirects=True, timeout=UPSTREAM_TIMEOUT)
        except httpx.HTTPError as e:
            logger.error(f"Image proxy failed for {bucket}/{path}: {e}")
            raise ImageFetchError(f"{bucket}/{path}", status_code=500)

        if not upstream.is_success:
            logger.warning(f"Image upstream returned {upstream.status_code} for {bucket}/{path}")
            raise ImageFetchError(f"{bucket}/{path}", status_code=upstream.status_code)

        content_type = upstream.headers.get("content-type") or DEFAULT_CONTENT_TYPE
        return ProxiedImage(
            status_code=200,
            headers=response_headers(etag, content_type),
            content=None if head else upstream.content,
        )


def get_image_url(image_path: str | None, bucket: str | None = None, use_proxy: bool | None = None) -> str | None:
    """
    Public URL for a stored image.

    Absolute URLs pass through. Otherwise the bucket is the given one, or
    the first path segment. Returns None if no bucket can be determined.

    Example:
        get_image_url("banners/hero.webp")  # "/api/images/banners/hero.webp"
    """
    if not image_path or not isinstance(image_path, str):
        return None

    if image_path.startswith("http://") or image_path.startswith("https://"):
        return image_path

    clean_path = image_path.lstrip("/")

    if bucket:
        final_bucket, final_path = bucket, clean_path
    else:
        parts = [part for part in clean_path.split("/") if part]
        if len(parts) < 2:
            logger.warning(f"Cannot determine bucket for image path: {image_path}")
            return None
        final_bucket, final_path = parts[0], "/".join(parts[1:])

    if not final_path:
        return None

    if use_proxy is None:
        use_proxy = settings.USE_IMAGE_PROXY

    if use_proxy:
        return f"/api/images/{final_bucket}/{final_path}"
    return storage_public_url(final_bucket, final_path)
