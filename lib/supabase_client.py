# =============================================================================
# lib/supabase_client.py - Supabase Client Wrapper
# =============================================================================
# This module provides a typed wrapper for Supabase database operations.
# It implements the singleton pattern to reuse a single client connection
# and provides specialized methods for fetching:
# - Reservations and ticket orders by ID
# - Events (with their ticket types)
# - Single rows from any table
#
# Usage:
#   from lib.supabase_client import SupabaseClient
#   reservation = SupabaseClient.fetch_reservation(reservation_id)
# =============================================================================

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from supabase import create_client, Client

from app.config import settings

# Set up logging for this module
logger = logging.getLogger(__name__)


# Embedded selects reused by several services
TICKET_ORDER_SELECT = (
    "*, events (id, title, slug, event_start, event_end, location, image_url, base_ticket_price)"
)
TICKET_ORDER_WITH_TICKETS_SELECT = (
    "*, events (id, title, slug, event_start, event_end, location), "
    "purchased_tickets (id, ticket_number, qr_code_data, qr_code_hash, "
    "ticket_type_name, price_paid, customer_name, status)"
)


class SupabaseClientError(Exception):
    """
    Error during Supabase operations.

    Errors should tell HOW to fix, not just WHAT failed.
    """

    def __init__(
        self,
        message: str,
        code: str = "SUPABASE_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result


class SupabaseClient:
    """
    Typed wrapper for Supabase database operations.

    Implements singleton pattern - one client instance is shared across
    the application. All methods are class methods for easy access without
    instantiation.

    Example:
        order = SupabaseClient.fetch_ticket_order(order_id)
        event = order.get("events") if order else None
    """

    _instance: Client | None = None

    @classmethod
    def get_client(cls) -> Client:
        """
        Get or create the singleton Supabase client.

        Uses service_role key which bypasses Row Level Security (RLS).
        This is appropriate for server-side operations.

        Returns:
            Client: Supabase client instance

        Raises:
            SupabaseClientError: If client creation fails
        """
        if cls._instance is None:
            try:
                cls._instance = create_client(
                    settings.SUPABASE_URL,
                    settings.SUPABASE_SERVICE_KEY
                )
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                raise SupabaseClientError(
                    message=f"Failed to create Supabase client: {e}",
                    code="CLIENT_INIT_FAILED",
                    suggestion="Check SUPABASE_URL and SUPABASE_SERVICE_KEY in your .env file"
                )
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the cached client (next call to get_client recreates it)."""
        cls._instance = None

    @classmethod
    def _normalize_uuid(cls, uuid_value: str | UUID) -> str:
        """Convert UUID to string for queries."""
        return str(uuid_value) if isinstance(uuid_value, UUID) else uuid_value

    # -------------------------------------------------------------------------
    # Generic Row Access
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_one(
        cls,
        table: str,
        column: str,
        value: Any,
        select: str = "*",
    ) -> dict[str, Any] | None:
        """
        Fetch the first row where ``column == value``.

        Returns None when no row matches instead of raising, which keeps
        "not found" handling in the service layer.

        Raises:
            SupabaseClientError: If the query itself fails
        """
        client = cls.get_client()

        try:
            response = (
                client.table(table)
                .select(select)
                .eq(column, cls._normalize_uuid(value))
                .limit(1)
                .execute()
            )
            rows = response.data or []
            return rows[0] if rows else None

        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to fetch from {table}: {e}",
                code="FETCH_FAILED",
                suggestion=f"Check that the {table} table exists and is accessible",
                details={"table": table, "column": column, "value": str(value)}
            )

    @classmethod
    def rpc(cls, function_name: str, params: dict[str, Any] | None = None) -> Any:
        """
        Call a Postgres function and return its data.

        Raises:
            SupabaseClientError: If the function call fails
        """
        client = cls.get_client()

        try:
            response = client.rpc(function_name, params or {}).execute()
            return response.data
        except Exception as e:
            raise SupabaseClientError(
                message=f"RPC {function_name} failed: {e}",
                code="RPC_FAILED",
                suggestion=f"Check that the {function_name} function is deployed",
                details={"function": function_name}
            )

    # -------------------------------------------------------------------------
    # Reservations
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_reservation(cls, reservation_id: str | UUID) -> dict[str, Any] | None:
        """Fetch a reservation row by ID (None if it doesn't exist)."""
        return cls.fetch_one("reservations", "id", reservation_id)

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_event(cls, event_id: str | UUID) -> dict[str, Any] | None:
        """Fetch an event with its ticket types."""
        return cls.fetch_one("events", "id", event_id, select="*, event_tickets (*)")

    # -------------------------------------------------------------------------
    # Ticket Orders
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_ticket_order(
        cls,
        order_id: str | UUID,
        with_tickets: bool = False,
    ) -> dict[str, Any] | None:
        """
        Fetch a ticket order with its event embedded.

        Args:
            order_id: The ticket order UUID
            with_tickets: Also embed purchased_tickets

        Returns:
            Order dict with an ``events`` key (and ``purchased_tickets`` when
            requested), or None if the order doesn't exist
        """
        select = TICKET_ORDER_WITH_TICKETS_SELECT if with_tickets else TICKET_ORDER_SELECT
        return cls.fetch_one("ticket_orders", "id", order_id, select=select)

    @classmethod
    def fetch_purchased_tickets(cls, order_id: str | UUID) -> list[dict[str, Any]]:
        """Fetch all tickets issued for an order."""
        client = cls.get_client()
        order_id_str = cls._normalize_uuid(order_id)

        try:
            response = (
                client.table("purchased_tickets")
                .select("*")
                .eq("ticket_order_id", order_id_str)
                .execute()
            )
            return response.data or []
        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to fetch purchased tickets: {e}",
                code="FETCH_TICKETS_FAILED",
                details={"order_id": order_id_str}
            )
