# =============================================================================
# lib/content_cache.py - Tagged TTL Cache for Page Content
# =============================================================================
# Menu, gallery, events and home-page content changes rarely, so fetchers
# cache results for CONTENT_CACHE_TTL_SECONDS. Entries carry tags so the
# revalidate endpoint can drop everything for one page at once.
#
# Only real results are stored: a fetcher that raises or finds nothing
# (None) is not cached, so a database blip isn't served for the whole TTL.
# Expired entries are swept on every write and the cache holds at most
# CONTENT_CACHE_MAX_ENTRIES, oldest evicted first.
#
# Usage:
#   @cached_content("menu", fallback=list)
#   def menu_categories(): ...
#
#   invalidate_tags(["menu"])
# =============================================================================

import functools
import logging
import threading
import time
from typing import Any, Callable, Iterable

from app.config import settings

logger = logging.getLogger(__name__)

# key -> (stored_at, tags, value), in insertion order
_cache: dict[tuple, tuple[float, frozenset[str], Any]] = {}
_lock = threading.Lock()

ALL_TAGS = frozenset({"menu", "events", "gallery", "home", "offers", "settings", "content"})


def _make_key(name: str, args: tuple, kwargs: dict) -> tuple:
    return (name, args, tuple(sorted(kwargs.items())))


def _expired(stored_at: float, ttl: int, now: float) -> bool:
    return ttl <= 0 or (now - stored_at) >= ttl


def get(key: tuple) -> tuple[bool, Any]:
    """Return (hit, value) for a key, treating expired entries as misses."""
    ttl = settings.CONTENT_CACHE_TTL_SECONDS
    with _lock:
        entry = _cache.get(key)
        if entry is None:
            return False, None
        stored_at, _, value = entry
        if _expired(stored_at, ttl, time.time()):
            del _cache[key]
            return False, None
        return True, value


def put(key: tuple, tags: Iterable[str], value: Any) -> None:
    """
    Store a value under a key with its tags.

    Sweeps expired entries first, then evicts the oldest entries while
    the cache is full.
    """
    ttl = settings.CONTENT_CACHE_TTL_SECONDS
    if ttl <= 0:
        return

    now = time.time()
    with _lock:
        for stale in [k for k, (stored_at, _, _) in _cache.items() if _expired(stored_at, ttl, now)]:
            del _cache[stale]

        _cache.pop(key, None)
        while _cache and len(_cache) >= settings.CONTENT_CACHE_MAX_ENTRIES:
            del _cache[next(iter(_cache))]

        _cache[key] = (now, frozenset(tags), value)


def size() -> int:
    with _lock:
        return len(_cache)


def invalidate_tags(tags: Iterable[str]) -> int:
    """
    Drop every entry carrying any of the given tags.

    Returns:
        Number of entries removed
    """
    wanted = set(tags)
    with _lock:
        stale = [key for key, (_, entry_tags, _) in _cache.items() if entry_tags & wanted]
        for key in stale:
            del _cache[key]
    logger.info(f"Invalidated {len(stale)} cached entries for tags {sorted(wanted)}")
    return len(stale)


def clear() -> None:
    """Drop the whole cache."""
    with _lock:
        _cache.clear()


def cached_content(*tags: str, fallback: Callable[[], Any] | None = None) -> Callable:
    """
    Decorator caching a fetcher's return value under the given tags.

    Arguments must be hashable. If the fetcher raises, the error is
    logged and ``fallback()`` (or None) is returned without caching, so
    pages still render and the next request retries the database.
    None results are not cached either.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            key = _make_key(func.__qualname__, args, kwargs)
            hit, value = get(key)
            if hit:
                return value

            try:
                value = func(*args, **kwargs)
            except Exception as e:
                logger.error(f"{func.__qualname__} failed: {e}")
                return fallback() if fallback else None

            if value is not None:
                put(key, tags, value)
            return value

        wrapper.uncached = func
        return wrapper

    return decorator


# Page path prefix -> tags to drop when that page is revalidated
PATH_TAGS = (
    ("/menu", ("menu",)),
    ("/events", ("events",)),
    ("/gallery", ("gallery",)),
    ("/offers", ("offers",)),
)


def tags_for_path(path: str) -> frozenset[str]:
    """
    Map a page path to the cache tags it renders from.

    "/" is the home page; unknown paths drop everything.
    """
    path = "/" + path.strip().strip("/")
    if path == "/":
        return frozenset({"home"})
    for prefix, tags in PATH_TAGS:
        if path == prefix or path.startswith(prefix + "/"):
            return frozenset(tags)
    return ALL_TAGS
