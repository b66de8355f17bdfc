# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the Good Times API.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
# =============================================================================

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.exceptions import (
    GoodTimesException,
    goodtimes_exception_handler,
    validation_exception_handler,
)
from app.routers import (
    content,
    email,
    health,
    images,
    orders,
    payments,
    reservations,
    revalidate,
    tickets,
)
from core.services.otp_service import OTPStore

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# Background sweep of the in-memory OTP fallback
_otp_sweep_task = None


async def otp_sweeper(interval_seconds: int):
    """
    Background task that drops expired codes from the in-memory OTP store.

    Codes normally live in the database; the memory store only fills up
    when database writes fail, and nothing else would ever clear it.
    """
    logger.info(f"Starting OTP memory sweeper (every {interval_seconds}s)")

    try:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                removed = OTPStore.sweep_memory()
                if removed:
                    logger.info(f"Swept {removed} expired in-memory OTP(s)")
            except Exception as e:
                logger.error(f"OTP sweep failed: {e}")

    except asyncio.CancelledError:
        logger.info("OTP memory sweeper cancelled")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup and shutdown:
    - Startup: log config, start the OTP sweeper
    - Shutdown: stop the sweeper
    """
    global _otp_sweep_task

    # Startup
    logger.info(f"Starting Good Times API in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS origins: {settings.cors_origins_list}")
    if not settings.smtp_configured and not settings.use_edge_functions_for_email:
        logger.warning("No email transport configured; OTP and ticket emails will fail")
    if not settings.STRIPE_SECRET_KEY:
        logger.warning("STRIPE_SECRET_KEY not set; checkout is disabled")

    _otp_sweep_task = asyncio.create_task(otp_sweeper(settings.OTP_SWEEP_INTERVAL_SECONDS))

    yield

    # Shutdown
    logger.info("Shutting down Good Times API")

    if _otp_sweep_task:
        _otp_sweep_task.cancel()
        try:
            await _otp_sweep_task
        except asyncio.CancelledError:
            pass


# Create FastAPI application
app = FastAPI(
    title="Good Times API",
    description="""
## Good Times Bar & Grill API

Backend for the restaurant website: menu and page content, online ordering,
table reservations, ticketed events with card checkout, email verification
and an image proxy for storage assets.

### Ticket Flow

1. **Verify email** - `POST /api/email/send-otp`, then `POST /api/email/verify-otp`
2. **Purchase** - `POST /api/tickets/purchase` creates a pending order
3. **Pay** - `POST /api/payments/stripe/create-checkout` returns a checkout URL
4. **Return** - `GET /api/payments/stripe/verify-session` issues the tickets
5. **View** - `GET /api/tickets/{order_id}`

### Reservations

1. **Slots** - `GET /api/reservations/availability?date=YYYY-MM-DD`
2. **Book** - `POST /api/reservations` (prepayment goes through checkout)
""",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Content",
            "description": "Menu, events, offers, gallery and site content",
        },
        {
            "name": "Reservations",
            "description": "Availability and table bookings",
        },
        {
            "name": "Orders",
            "description": "Online food orders",
        },
        {
            "name": "Tickets",
            "description": "Event ticket purchase and delivery",
        },
        {
            "name": "Payments",
            "description": "Stripe checkout, verification and webhooks",
        },
        {
            "name": "Email",
            "description": "Email verification (OTP) and sending",
        },
        {
            "name": "Images",
            "description": "Cached proxy for storage images",
        },
        {
            "name": "Revalidate",
            "description": "Content cache invalidation",
        },
        {
            "name": "Health",
            "description": "API health and readiness checks",
        },
    ],
)


# =============================================================================
# Middleware
# =============================================================================

# CORS middleware - allows cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(GoodTimesException)
async def handle_goodtimes_exception(request: Request, exc: GoodTimesException):
    """Handle custom Good Times exceptions."""
    return await goodtimes_exception_handler(request, exc)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    """Handle request body/query validation errors (400)."""
    return await validation_exception_handler(request, exc)


@app.exception_handler(Exception)
async def handle_general_exception(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        }
    )


# =============================================================================
# Routers
# =============================================================================

# Health check endpoints
app.include_router(
    health.router,
    prefix="/api/v1",
    tags=["Health"]
)

# Menu, events and page content
app.include_router(
    content.router,
    prefix="/api",
    tags=["Content"]
)

# Content cache revalidation
app.include_router(
    revalidate.router,
    prefix="/api",
    tags=["Revalidate"]
)

# Reservation endpoints
app.include_router(
    reservations.router,
    prefix="/api/reservations",
    tags=["Reservations"]
)

# Online ordering endpoints
app.include_router(
    orders.router,
    prefix="/api/orders",
    tags=["Orders"]
)

# Event ticket endpoints
app.include_router(
    tickets.router,
    prefix="/api/tickets",
    tags=["Tickets"]
)

# Stripe checkout endpoints
app.include_router(
    payments.router,
    prefix="/api/payments/stripe",
    tags=["Payments"]
)

# Email verification and sending
app.include_router(
    email.router,
    prefix="/api/email",
    tags=["Email"]
)

# Image proxy
app.include_router(
    images.router,
    prefix="/api/images",
    tags=["Images"]
)


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - returns API info.
    """
    return {
        "name": "Good Times API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/v1/health",
    }
