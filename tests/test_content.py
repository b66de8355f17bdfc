# =============================================================================
# tests/test_content.py - Page Content & Cache Tests
# =============================================================================
# Run with: pytest tests/test_content.py -v
# =============================================================================

from unittest.mock import patch

import pytest

from app.config import settings
from app.exceptions import EventNotFoundError, MenuItemNotFoundError, SectionNotFoundError
from core.services.content_service import ContentService, is_offer_live, parse_setting_value
from lib import content_cache
from tests.conftest import local_date, local_iso


# =============================================================================
# Cache
# =============================================================================

class TestContentCache:
    """Tests for the tagged TTL cache."""

    @pytest.mark.parametrize("path,expected", [
        ("/", {"home"}),
        ("", {"home"}),
        ("/menu", {"menu"}),
        ("/events/friday-night-live", {"events"}),
        ("gallery/", {"gallery"}),
        ("/offers", {"offers"}),
    ])
    def test_tags_for_path(self, path, expected):
        """Known page paths map to their tags."""
        assert content_cache.tags_for_path(path) == frozenset(expected)

    def test_unknown_path_drops_everything(self):
        """Unrecognized paths map to every tag."""
        assert content_cache.tags_for_path("/about") == content_cache.ALL_TAGS
        assert content_cache.tags_for_path("/menus-old") == content_cache.ALL_TAGS

    def test_results_are_cached(self, db):
        """A second call doesn't touch the database."""
        db.seed("banners", {"title": "Welcome", "is_active": True, "display_order": 1})

        ContentService.banners()
        ContentService.banners()

        assert db.queries.count(("banners", "select")) == 1

    def test_invalidate_by_tag(self, db):
        """Invalidating a tag forces a fresh read."""
        db.seed("menu_categories", {"name": "Starters", "is_active": True, "display_order": 1})
        assert len(ContentService.menu_categories()) == 1

        db.seed("menu_categories", {"name": "Mains", "is_active": True, "display_order": 2})
        assert len(ContentService.menu_categories()) == 1

        assert content_cache.invalidate_tags(["menu"]) == 1
        assert [c["name"] for c in ContentService.menu_categories()] == ["Starters", "Mains"]

    def test_other_tags_survive(self, db):
        """Invalidating one tag leaves other entries alone."""
        ContentService.gallery()
        ContentService.menu_categories()

        content_cache.invalidate_tags(["gallery"])
        ContentService.menu_categories()

        assert db.queries.count(("menu_categories", "select")) == 1

    def test_zero_ttl_disables_cache(self, db):
        """A TTL of zero always reads through."""
        with patch.object(settings, "CONTENT_CACHE_TTL_SECONDS", 0):
            ContentService.banners()
            ContentService.banners()

        assert db.queries.count(("banners", "select")) == 2

    def test_uncached_bypasses(self, db):
        """.uncached reads fresh without populating the cache."""
        ContentService.banners.uncached()
        ContentService.banners.uncached()
        assert db.queries.count(("banners", "select")) == 2

    def test_failures_are_not_cached(self, db):
        """A failed read is retried on the next call."""
        db.fail_tables.add("menu_items")
        assert ContentService.menu_items() == []

        db.fail_tables.clear()
        db.seed("menu_items", {"name": "Burger", "is_available": True})

        assert [item["name"] for item in ContentService.menu_items()] == ["Burger"]

    def test_missing_results_are_not_cached(self, db):
        """Unknown slugs and failed lookups leave no entries behind."""
        for i in range(50):
            with pytest.raises(EventNotFoundError):
                ContentService.event_by_slug(f"nope-{i}")
        assert content_cache.size() == 0

        db.fail_tables.add("events")
        with pytest.raises(EventNotFoundError):
            ContentService.event_by_slug("friday-night-live")
        assert content_cache.size() == 0

    def test_expired_entries_swept_on_write(self, db):
        """Writing drops entries past their TTL, even ones never read again."""
        with patch("lib.content_cache.time.time", return_value=1_000.0):
            ContentService.gallery("patio")

        later = 1_000.0 + settings.CONTENT_CACHE_TTL_SECONDS + 1
        with patch("lib.content_cache.time.time", return_value=later):
            ContentService.gallery("bar")

        assert content_cache.size() == 1

    def test_size_is_capped(self, db):
        """The oldest entries are evicted once the cache is full."""
        with patch.object(settings, "CONTENT_CACHE_MAX_ENTRIES", 3):
            for category in ("a", "b", "c", "d", "e"):
                ContentService.gallery(category)

            assert content_cache.size() == 3

            ContentService.gallery("e")
            ContentService.gallery("a")

        assert db.queries.count(("gallery_images", "select")) == 6


# =============================================================================
# Helpers
# =============================================================================

class TestHelpers:
    """Tests for setting decoding and offer windows."""

    @pytest.mark.parametrize("raw,expected", [
        ('"555-1234"', "555-1234"),
        ('{"url": "https://x.test"}', {"url": "https://x.test"}),
        ("plain", "plain"),
        (42, 42),
    ])
    def test_parse_setting_value(self, raw, expected):
        """JSON-encoded values are unwrapped."""
        assert parse_setting_value(raw) == expected

    def test_offer_windows(self):
        """Offers respect start and end dates; missing bounds are open."""
        assert is_offer_live({})
        assert is_offer_live({"start_date": "2000-01-01T00:00:00+00:00"})
        assert not is_offer_live({"start_date": "2999-01-01T00:00:00+00:00"})
        assert not is_offer_live({"end_date": "2000-01-01T00:00:00+00:00"})


# =============================================================================
# ContentService
# =============================================================================

class TestMenu:
    """Tests for menu lookups."""

    def test_menu_items_filter_and_variants(self, db):
        """Only available items are listed, with variants embedded."""
        burger = db.seed("menu_items", {"name": "Burger", "category_id": "c1", "is_available": True})[0]
        db.seed("menu_items", {"name": "Old Soup", "category_id": "c1", "is_available": False})
        db.seed("menu_item_variants", {"menu_item_id": burger["id"], "name": "Double", "price": 14})

        items = ContentService.menu_items("c1")

        assert [item["name"] for item in items] == ["Burger"]
        assert items[0]["menu_item_variants"][0]["name"] == "Double"

    def test_menu_item_lookup(self, db):
        """Single items come with their category."""
        category = db.seed("menu_categories", {"name": "Mains"})[0]
        item = db.seed("menu_items", {"name": "Burger", "category_id": category["id"], "is_available": True})[0]

        assert ContentService.menu_item(item["id"])["menu_categories"]["name"] == "Mains"

    def test_unavailable_item_not_found(self, db):
        """Unavailable items raise 404."""
        item = db.seed("menu_items", {"name": "Old Soup", "is_available": False})[0]

        with pytest.raises(MenuItemNotFoundError):
            ContentService.menu_item(item["id"])

    def test_featured_items_limited(self, db):
        """At most six featured items are returned."""
        db.seed("menu_items", *[
            {"name": f"Dish {i}", "is_featured": True, "is_available": True} for i in range(8)
        ])
        assert len(ContentService.featured_menu_items()) == 6

    def test_database_failure_degrades(self, db):
        """Failed queries yield empty results."""
        db.fail_tables.add("menu_items")
        assert ContentService.menu_items() == []


class TestEvents:
    """Tests for event lookups."""

    def test_upcoming_excludes_past_and_ended(self, db):
        """Past events and events that already ended are dropped."""
        future = local_date(5)
        db.seed(
            "events",
            {"title": "Last Week", "event_start": local_iso(local_date(-7), "20:00")},
            {"title": "Soon", "event_start": local_iso(future, "20:00"), "event_end": local_iso(future, "23:00")},
            {"title": "Later", "event_start": local_iso(local_date(9), "19:00")},
        )

        titles = [event["title"] for event in ContentService.upcoming_events()]

        assert titles == ["Soon", "Later"]

    def test_event_by_slug_with_tickets(self, ticketed_event):
        """Slug lookups embed ticket types."""
        event = ContentService.event_by_slug("friday-night-live")
        assert event["id"] == ticketed_event["id"]
        assert event["event_tickets"][0]["name"] == "VIP"

    def test_event_slug_decoded_and_case_insensitive(self, db):
        """Encoded and differently-cased slugs still match."""
        db.seed("events", {"title": "Jazz", "slug": "jazz night"})
        db.seed("events", {"title": "Blues", "slug": "blues-night"})

        assert ContentService.event_by_slug("jazz%20night")["title"] == "Jazz"
        assert ContentService.event_by_slug("Blues-Night")["title"] == "Blues"

    def test_unknown_slug(self, db):
        """Missing events raise 404."""
        with pytest.raises(EventNotFoundError):
            ContentService.event_by_slug("nope")


class TestPages:
    """Tests for gallery, sections, settings and the home page."""

    def test_gallery_category(self, db):
        """'all' means every category."""
        db.seed(
            "gallery_images",
            {"title": "Bar", "category": "interior", "is_active": True, "display_order": 1},
            {"title": "Band", "category": "events", "is_active": True, "display_order": 2},
        )

        assert len(ContentService.gallery("all")) == 2
        assert [image["title"] for image in ContentService.gallery("events")] == ["Band"]

    def test_static_section(self, db):
        """Sections are looked up by key."""
        db.seed("static_sections", {"section_key": "about", "title": "Our Story"})

        assert ContentService.static_section("about")["title"] == "Our Story"
        with pytest.raises(SectionNotFoundError):
            ContentService.static_section("missing")

    def test_site_settings(self, db):
        """Settings are flattened and the logo gets a URL."""
        db.seed(
            "site_settings",
            {"key": "phone", "value": '"555-1234"'},
            {"key": "logo_path", "value": "logo.png"},
        )

        result = ContentService.site_settings()

        assert result["phone"] == "555-1234"
        assert result["logo_url"].endswith("site-assets/logo.png")

    def test_home_page(self, db):
        """The home payload gathers every section."""
        db.seed("offers", {"title": "Happy Hour", "is_active": True, "priority": 1})

        page = ContentService.home_page()

        assert set(page) == {"banners", "features", "featured_items", "upcoming_events", "offers", "settings"}
        assert page["offers"][0]["title"] == "Happy Hour"
