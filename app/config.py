# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# This module loads configuration from environment variables using pydantic-settings.
# It provides a single Settings class with all configuration values.
#
# Usage:
#   from app.config import settings
#   print(settings.SUPABASE_URL)
#
# Environment variables are loaded from:
# 1. System environment variables
# 2. .env file in project root (if exists)
#
# The Settings class validates all values at startup, catching configuration
# errors early rather than at runtime.
# =============================================================================

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses pydantic-settings to:
    - Automatically load from .env file
    - Validate types and constraints
    - Provide sensible defaults for development

    All settings are accessed via the global `settings` instance.
    """

    # -------------------------------------------------------------------------
    # Supabase Configuration
    # -------------------------------------------------------------------------
    # These are required - app won't start without them

    SUPABASE_URL: str = Field(
        ...,  # ... means required (no default)
        description="Supabase project URL (e.g., https://xxx.supabase.co)"
    )

    SUPABASE_ANON_KEY: str = Field(
        ...,
        description="Supabase anon/public API key"
    )

    SUPABASE_SERVICE_KEY: str = Field(
        ...,
        description="Supabase service_role key (bypasses RLS)"
    )

    # -------------------------------------------------------------------------
    # Redis Configuration (for Celery)
    # -------------------------------------------------------------------------

    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for Celery broker"
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Current environment"
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (verbose logging, auto-reload)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the API server to"
    )

    API_PORT: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port for the API server"
    )

    # CORS origins (comma-separated string that gets parsed)
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # -------------------------------------------------------------------------
    # Restaurant
    # -------------------------------------------------------------------------

    SITE_URL: str = Field(
        default="http://localhost:3000",
        description="Public site base URL (checkout redirects, email links)"
    )

    RESTAURANT_NAME: str = Field(
        default="Good Times Bar & Grill",
        description="Display name used in emails and checkout"
    )

    SUPPORT_EMAIL: str = Field(
        default="support@goodtimesbar.com",
        description="Contact address printed in customer emails"
    )

    # All reservation, event and opening-hours math happens in this zone
    RESTAURANT_TIMEZONE: str = Field(
        default="America/New_York",
        description="IANA timezone of the restaurant"
    )

    TAX_RATE: float = Field(
        default=0.08,
        ge=0.0,
        le=1.0,
        description="Sales tax applied to online orders"
    )

    # -------------------------------------------------------------------------
    # Email (SMTP / Edge Functions)
    # -------------------------------------------------------------------------

    SMTP_HOST: str = Field(
        default="smtpout.secureserver.net",
        description="SMTP server hostname"
    )

    SMTP_PORT: int = Field(
        default=587,
        ge=1,
        le=65535,
        description="SMTP port (465 = implicit TLS, otherwise STARTTLS)"
    )

    SMTP_USER: str | None = Field(
        default=None,
        description="SMTP username"
    )

    SMTP_PASSWORD: str | None = Field(
        default=None,
        description="SMTP password"
    )

    SMTP_FROM: str | None = Field(
        default=None,
        description="From address (defaults to SMTP_USER)"
    )

    SMTP_FROM_NAME: str = Field(
        default="Good Times Bar & Grill",
        description="From display name"
    )

    USE_EDGE_FUNCTIONS: bool = Field(
        default=False,
        description="Relay emails through Supabase Edge Functions (non-localhost sites only)"
    )

    # -------------------------------------------------------------------------
    # Email Verification
    # -------------------------------------------------------------------------

    OTP_EXPIRY_MINUTES: int = Field(
        default=10,
        ge=1,
        le=60,
        description="Lifetime of a one-time verification code"
    )

    VERIFIED_EMAIL_DAYS: int = Field(
        default=30,
        ge=1,
        description="How long a verified email skips OTP verification"
    )

    OTP_SWEEP_INTERVAL_SECONDS: int = Field(
        default=300,
        ge=10,
        description="Interval for sweeping the in-memory OTP fallback"
    )

    REQUIRE_VERIFIED_EMAIL_FOR_TICKETS: bool = Field(
        default=True,
        description="Reject ticket purchases from unverified emails"
    )

    # -------------------------------------------------------------------------
    # Payments (Stripe)
    # -------------------------------------------------------------------------

    STRIPE_SECRET_KEY: str | None = Field(
        default=None,
        description="Stripe secret API key"
    )

    STRIPE_WEBHOOK_SECRET: str | None = Field(
        default=None,
        description="Stripe webhook signing secret (whsec_...)"
    )

    STRIPE_CURRENCY: str = Field(
        default="usd",
        description="Currency for checkout sessions"
    )

    STRIPE_MIN_AMOUNT: float = Field(
        default=0.50,
        ge=0.0,
        description="Smallest chargeable amount in major units"
    )

    # -------------------------------------------------------------------------
    # Security
    # -------------------------------------------------------------------------

    INTERNAL_API_KEY: str | None = Field(
        default=None,
        description="Bearer token for internal service-to-service endpoints"
    )

    REVALIDATION_SECRET: str | None = Field(
        default=None,
        description="Shared secret for the content revalidation endpoint"
    )

    # -------------------------------------------------------------------------
    # Content
    # -------------------------------------------------------------------------

    CONTENT_CACHE_TTL_SECONDS: int = Field(
        default=300,
        ge=0,
        description="How long page content stays cached (0 disables caching)"
    )

    CONTENT_CACHE_MAX_ENTRIES: int = Field(
        default=512,
        ge=1,
        description="Most content entries kept in memory; oldest are evicted first"
    )

    USE_IMAGE_PROXY: bool = Field(
        default=True,
        description="Serve storage images through /api/images instead of direct URLs"
    )

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------

    model_config = SettingsConfigDict(
        # Load from .env file in project root
        env_file=".env",
        env_file_encoding="utf-8",
        # Don't fail if .env doesn't exist (useful for production where
        # env vars are set directly)
        env_ignore_empty=True,
        # Case-sensitive environment variable names
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Parse CORS_ORIGINS string into a list.

        Example: "http://localhost:3000, https://goodtimesbar.com" -> ["http://localhost:3000", "https://goodtimesbar.com"]
        """
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def site_url(self) -> str:
        """SITE_URL without a trailing slash."""
        return self.SITE_URL.rstrip("/")

    @property
    def smtp_configured(self) -> bool:
        """True when SMTP credentials are present."""
        return bool(self.SMTP_USER and self.SMTP_PASSWORD)

    @property
    def use_edge_functions_for_email(self) -> bool:
        """
        Whether emails go through Supabase Edge Functions.

        Edge Functions call back into the public site, so they are never
        used when the site runs on localhost.
        """
        return self.USE_EDGE_FUNCTIONS and "localhost" not in self.SITE_URL

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Using lru_cache ensures we only parse .env and validate once,
    not on every access.

    Returns:
        Settings: The application settings instance
    """
    return Settings()


# Global settings instance for easy importing
# Usage: from app.config import settings
settings = get_settings()
