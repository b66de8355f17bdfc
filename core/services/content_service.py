# =============================================================================
# core/services/content_service.py - Page Content Fetchers
# =============================================================================
# Read-only queries behind the public pages (home, menu, events, gallery,
# offers, contact). On a database error the cache decorator logs the
# failure and returns an empty result, so a page can still render.
#
# Results are cached in lib.content_cache under page tags, which the
# revalidate endpoint clears when content changes.
# =============================================================================

import json
import logging
from typing import Any
from urllib.parse import unquote

from lib.content_cache import cached_content
from lib.supabase_client import SupabaseClient
from lib.timezone import (
    day_range_utc,
    is_event_active,
    parse_timestamp,
    restaurant_now,
    restaurant_today,
    to_local,
    to_utc_iso,
)
from core.services.image_service import get_image_url
from app.exceptions import EventNotFoundError, MenuItemNotFoundError, SectionNotFoundError

logger = logging.getLogger(__name__)

MENU_ITEM_SELECT = "*, menu_item_variants (*), menu_categories (*)"
EVENT_WITH_TICKETS_SELECT = "*, event_tickets (*)"
FEATURED_ITEMS_LIMIT = 6
HOME_UPCOMING_EVENTS_LIMIT = 6


def parse_setting_value(value: Any) -> Any:
    """
    Decode a site_settings value.

    Values are stored as JSON text, so strings may arrive quoted
    ('"555-1234"') or as objects ('{"url": ...}').
    """
    if isinstance(value, str) and (value.startswith('"') or value.startswith("{")):
        try:
            value = json.loads(value)
        except ValueError:
            pass

    if isinstance(value, str):
        if value.startswith('"'):
            value = value[1:]
        if value.endswith('"'):
            value = value[:-1]
    return value


def is_offer_live(offer: dict[str, Any], now=None) -> bool:
    """Offers are live between start_date and end_date; a missing bound is open."""
    now = now or restaurant_now()
    if offer.get("start_date") and parse_timestamp(offer["start_date"]) > now:
        return False
    if offer.get("end_date") and parse_timestamp(offer["end_date"]) < now:
        return False
    return True


class ContentService:
    """
    Cached content lookups.

    Each fetcher exposes ``.uncached`` for callers that need a fresh read;
    the uncached form raises on database errors instead of degrading.
    """

    # -------------------------------------------------------------------------
    # Home
    # -------------------------------------------------------------------------

    @staticmethod
    @cached_content("home", fallback=list)
    def banners() -> list[dict[str, Any]]:
        return ContentService._active_ordered("banners")

    @staticmethod
    @cached_content("home", fallback=list)
    def home_features() -> list[dict[str, Any]]:
        return ContentService._active_ordered("home_features")

    @staticmethod
    def _active_ordered(table: str) -> list[dict[str, Any]]:
        client = SupabaseClient.get_client()
        response = (
            client.table(table)
            .select("*")
            .eq("is_active", True)
            .order("display_order")
            .execute()
        )
        return response.data or []

    # -------------------------------------------------------------------------
    # Menu
    # -------------------------------------------------------------------------

    @staticmethod
    @cached_content("menu", fallback=list)
    def menu_categories() -> list[dict[str, Any]]:
        return ContentService._active_ordered("menu_categories")

    @staticmethod
    @cached_content("menu", fallback=list)
    def menu_items(category_id: str | None = None) -> list[dict[str, Any]]:
        """Available items (with variants), newest first."""
        client = SupabaseClient.get_client()
        query = (
            client.table("menu_items")
            .select("*, menu_item_variants (*)")
            .eq("is_available", True)
        )
        if category_id:
            query = query.eq("category_id", category_id)
        return query.order("created_at", desc=True).execute().data or []

    @staticmethod
    @cached_content("menu", "home", fallback=list)
    def featured_menu_items() -> list[dict[str, Any]]:
        client = SupabaseClient.get_client()
        response = (
            client.table("menu_items")
            .select(MENU_ITEM_SELECT)
            .eq("is_featured", True)
            .eq("is_available", True)
            .order("created_at", desc=True)
            .limit(FEATURED_ITEMS_LIMIT)
            .execute()
        )
        return response.data or []

    @staticmethod
    @cached_content("menu")
    def _menu_item(item_id: str) -> dict[str, Any] | None:
        client = SupabaseClient.get_client()
        rows = (
            client.table("menu_items")
            .select(MENU_ITEM_SELECT)
            .eq("id", item_id)
            .eq("is_available", True)
            .limit(1)
            .execute()
            .data
        ) or []
        return rows[0] if rows else None

    @staticmethod
    def menu_item(item_id: str) -> dict[str, Any]:
        """
        A single available menu item.

        Raises:
            MenuItemNotFoundError: Unknown or unavailable item
        """
        item = ContentService._menu_item(item_id)
        if not item:
            raise MenuItemNotFoundError(item_id)
        return item

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    @staticmethod
    @cached_content("events", fallback=list)
    def events(featured: bool = False) -> list[dict[str, Any]]:
        """All events (any status) by start time."""
        client = SupabaseClient.get_client()
        query = client.table("events").select("*").order("event_start")
        if featured:
            query = query.eq("is_featured", True)
        return query.execute().data or []

    @staticmethod
    @cached_content("events", "home", fallback=list)
    def upcoming_events(limit: int | None = None) -> list[dict[str, Any]]:
        """
        Events starting today or later (local) that haven't ended yet.

        The limit applies to the query, before ended events are dropped.
        """
        today = restaurant_today()
        start_of_today, _ = day_range_utc(today)

        client = SupabaseClient.get_client()
        query = (
            client.table("events")
            .select("*")
            .gte("event_start", to_utc_iso(start_of_today))
            .order("event_start")
        )
        if limit:
            query = query.limit(limit)
        rows = query.execute().data or []

        now = restaurant_now()
        return [
            event for event in rows
            if event.get("event_start")
            and to_local(event["event_start"]).strftime("%Y-%m-%d") >= today
            and is_event_active(event, now)
        ]

    @staticmethod
    @cached_content("events")
    def _event_by_slug(slug: str) -> dict[str, Any] | None:
        client = SupabaseClient.get_client()
        decoded = unquote(slug)

        attempts = [("eq", decoded)]
        if decoded != slug:
            attempts.append(("eq", slug))
        attempts.append(("ilike", decoded))

        for operator, value in attempts:
            query = client.table("events").select(EVENT_WITH_TICKETS_SELECT)
            query = query.eq("slug", value) if operator == "eq" else query.ilike("slug", value)
            rows = query.limit(1).execute().data or []
            if rows:
                return rows[0]

        logger.warning(f"Event not found for slug {slug!r} (decoded {decoded!r})")
        return None

    @staticmethod
    def event_by_slug(slug: str) -> dict[str, Any]:
        """
        Event with ticket types by slug.

        Tries the URL-decoded slug, the raw slug, then a case-insensitive
        match.

        Raises:
            EventNotFoundError: No match
        """
        event = ContentService._event_by_slug(slug)
        if not event:
            raise EventNotFoundError(slug)
        return event

    # -------------------------------------------------------------------------
    # Offers, Gallery, Sections
    # -------------------------------------------------------------------------

    @staticmethod
    @cached_content("offers", "home", fallback=list)
    def offers() -> list[dict[str, Any]]:
        client = SupabaseClient.get_client()
        rows = (
            client.table("offers")
            .select("*")
            .eq("is_active", True)
            .order("priority")
            .execute()
            .data
        ) or []

        now = restaurant_now()
        return [offer for offer in rows if is_offer_live(offer, now)]

    @staticmethod
    @cached_content("gallery", fallback=list)
    def gallery(category: str | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        """Active gallery images; category 'all' means no filter."""
        client = SupabaseClient.get_client()
        query = (
            client.table("gallery_images")
            .select("*")
            .eq("is_active", True)
            .order("display_order")
        )
        if category and category != "all":
            query = query.eq("category", category)
        if limit:
            query = query.limit(limit)
        return query.execute().data or []

    @staticmethod
    @cached_content("content")
    def _static_section(section_key: str) -> dict[str, Any] | None:
        client = SupabaseClient.get_client()
        rows = (
            client.table("static_sections")
            .select("*")
            .eq("section_key", section_key)
            .limit(1)
            .execute()
            .data
        ) or []
        return rows[0] if rows else None

    @staticmethod
    def static_section(section_key: str) -> dict[str, Any]:
        section = ContentService._static_section(section_key)
        if not section:
            raise SectionNotFoundError(section_key)
        return section

    @staticmethod
    @cached_content("content", "settings", fallback=list)
    def opening_hours() -> list[dict[str, Any]]:
        client = SupabaseClient.get_client()
        return client.table("opening_hours").select("*").order("weekday").execute().data or []

    # -------------------------------------------------------------------------
    # Site Settings
    # -------------------------------------------------------------------------

    @staticmethod
    @cached_content("settings", "home", fallback=dict)
    def site_settings() -> dict[str, Any]:
        """
        All site settings as a flat dict (address, phone, socials, logo...).

        logo_path is rewritten to a servable image URL.
        """
        client = SupabaseClient.get_client()
        rows = client.table("site_settings").select("key, value").execute().data or []

        result = {row["key"]: parse_setting_value(row.get("value")) for row in rows if row.get("key")}

        if result.get("logo_path"):
            result["logo_url"] = get_image_url(result["logo_path"], "site-assets")

        return result

    @staticmethod
    def home_page() -> dict[str, Any]:
        """Everything the home page renders, in one payload."""
        return {
            "banners": ContentService.banners(),
            "features": ContentService.home_features(),
            "featured_items": ContentService.featured_menu_items(),
            "upcoming_events": ContentService.upcoming_events(HOME_UPCOMING_EVENTS_LIMIT),
            "offers": ContentService.offers(),
            "settings": ContentService.site_settings(),
        }
