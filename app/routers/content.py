# =============================================================================
# app/routers/content.py - Menu & Site Content Endpoints
# =============================================================================
# Read-only data behind the public pages: home, menu, events, offers,
# gallery, static sections, opening hours and site settings.
#
# Fetchers degrade to empty results on database errors, so these endpoints
# only fail with a 404 for a specific missing record.
# =============================================================================

from typing import Annotated, Any

from fastapi import APIRouter, Path, Query

from core.services.content_service import ContentService

router = APIRouter()


# =============================================================================
# Home & Site
# =============================================================================

@router.get("/content/home")
async def get_home_page() -> dict[str, Any]:
    """
    Home page payload.

    Banners, features, featured menu items, upcoming events, live offers
    and site settings in a single response.
    """
    return ContentService.home_page()


@router.get("/content/banners")
async def list_banners():
    return {"banners": ContentService.banners()}


@router.get("/content/features")
async def list_home_features():
    return {"features": ContentService.home_features()}


@router.get("/content/settings")
async def get_site_settings():
    """Site settings as key -> value, plus a resolved logo_url."""
    return {"settings": ContentService.site_settings()}


@router.get("/content/opening-hours")
async def get_opening_hours():
    return {"opening_hours": ContentService.opening_hours()}


@router.get("/content/sections/{section_key}")
async def get_static_section(
    section_key: Annotated[str, Path(min_length=1, description="Section key, e.g. 'about'")],
):
    """A static content section. 404 if the key doesn't exist."""
    return {"section": ContentService.static_section(section_key)}


# =============================================================================
# Menu
# =============================================================================

@router.get("/menu/categories")
async def list_menu_categories():
    return {"categories": ContentService.menu_categories()}


@router.get("/menu/items")
async def list_menu_items(
    category_id: Annotated[str | None, Query(alias="categoryId", description="Filter by category")] = None,
):
    """Available menu items with their variants, newest first."""
    return {"items": ContentService.menu_items(category_id)}


@router.get("/menu/featured")
async def list_featured_menu_items():
    return {"items": ContentService.featured_menu_items()}


@router.get("/menu/items/{item_id}")
async def get_menu_item(
    item_id: Annotated[str, Path(description="Menu item ID")],
):
    return {"item": ContentService.menu_item(item_id)}


# =============================================================================
# Events
# =============================================================================

@router.get("/events")
async def list_events(
    featured: Annotated[bool, Query(description="Only featured events")] = False,
):
    return {"events": ContentService.events(featured)}


@router.get("/events/upcoming")
async def list_upcoming_events(
    limit: Annotated[int | None, Query(ge=1, le=100)] = None,
):
    """Events that haven't finished yet, soonest first."""
    return {"events": ContentService.upcoming_events(limit)}


@router.get("/events/{slug}")
async def get_event(
    slug: Annotated[str, Path(description="Event slug (URL-encoded is fine)")],
):
    return {"event": ContentService.event_by_slug(slug)}


# =============================================================================
# Offers & Gallery
# =============================================================================

@router.get("/offers")
async def list_offers():
    """Active offers whose date window includes now."""
    return {"offers": ContentService.offers()}


@router.get("/gallery")
async def list_gallery(
    category: Annotated[str | None, Query(description="'all' or a category name")] = None,
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
):
    return {"images": ContentService.gallery(category, limit)}
