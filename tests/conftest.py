# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up mock environment variables before any imports
# - FakeSupabase: in-memory stand-in for the supabase-py query builder,
#   installed as the SupabaseClient singleton
# - Celery .delay calls are replaced with mocks so no test needs Redis
# =============================================================================

import hashlib
import hmac
import os
import re
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SITE_URL", "https://goodtimes.test")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")
os.environ.setdefault("REVALIDATION_SECRET", "test-revalidate-secret")
os.environ.setdefault("RESTAURANT_TIMEZONE", "America/New_York")

from unittest.mock import MagicMock, patch

import pytest


# =============================================================================
# In-Memory Supabase
# =============================================================================

# (parent table, embedded name) -> (cardinality, foreign key)
# "many": child rows whose fk == parent id
# "one": the row whose id == parent[fk]
RELATIONS = {
    ("events", "event_tickets"): ("many", "event_id"),
    ("ticket_orders", "events"): ("one", "event_id"),
    ("ticket_orders", "purchased_tickets"): ("many", "ticket_order_id"),
    ("menu_items", "menu_item_variants"): ("many", "menu_item_id"),
    ("menu_items", "menu_categories"): ("one", "category_id"),
    ("special_hours", "special_hours_seatings"): ("many", "special_hours_id"),
    ("special_hours", "special_hours_limits"): ("many", "special_hours_id"),
    ("special_hours", "special_hours_payment"): ("many", "special_hours_id"),
    ("special_hours", "special_hours_fields"): ("many", "special_hours_id"),
}

_EMBED_RE = re.compile(r"(\w+)\s*\(")


class FakeResponse:
    """What .execute() returns: rows under .data."""

    def __init__(self, data: Any):
        self.data = data


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return value


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(left: Any, right: Any) -> bool:
        if left is None:
            return False
        a, b = _comparable(left), _comparable(right)
        if type(a) is not type(b):
            a, b = left, right
        return op(a, b)
    return check


class FakeQuery:
    """Chainable query over one table of a FakeSupabase."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.filters: list[Callable[[dict], bool]] = []
        self.embeds: list[str] = []
        self.orderings: list[tuple[str, bool]] = []
        self.limit_count: int | None = None
        self.offset = 0
        self.action = "select"
        self.payload: Any = None
        self.on_conflict = "id"

    # --- Actions ---

    def select(self, columns: str = "*", **kwargs):
        self.embeds = _EMBED_RE.findall(columns)
        return self

    def insert(self, data):
        self.action, self.payload = "insert", data
        return self

    def update(self, values: dict):
        self.action, self.payload = "update", values
        return self

    def upsert(self, data, on_conflict: str = "id", **kwargs):
        self.action, self.payload, self.on_conflict = "upsert", data, on_conflict
        return self

    def delete(self):
        self.action = "delete"
        return self

    # --- Filters ---

    def _filter(self, column: str, check: Callable[[Any], bool]):
        self.filters.append(lambda row: check(row.get(column)))
        return self

    def eq(self, column: str, value: Any):
        return self._filter(column, lambda v: v == value)

    def neq(self, column: str, value: Any):
        return self._filter(column, lambda v: v != value)

    def gt(self, column: str, value: Any):
        return self._filter(column, lambda v: _compare(lambda a, b: a > b)(v, value))

    def gte(self, column: str, value: Any):
        return self._filter(column, lambda v: _compare(lambda a, b: a >= b)(v, value))

    def lt(self, column: str, value: Any):
        return self._filter(column, lambda v: _compare(lambda a, b: a < b)(v, value))

    def lte(self, column: str, value: Any):
        return self._filter(column, lambda v: _compare(lambda a, b: a <= b)(v, value))

    def in_(self, column: str, values):
        values = list(values)
        return self._filter(column, lambda v: v in values)

    def ilike(self, column: str, pattern: str):
        regex = re.compile("^" + ".*".join(re.escape(part) for part in pattern.split("%")) + "$", re.IGNORECASE)
        return self._filter(column, lambda v: isinstance(v, str) and regex.match(v) is not None)

    def order(self, column: str, desc: bool = False, **kwargs):
        self.orderings.append((column, desc))
        return self

    def limit(self, count: int):
        self.limit_count = count
        return self

    def range(self, start: int, end: int):
        self.offset, self.limit_count = start, end - start + 1
        return self

    # --- Execution ---

    def _matches(self, row: dict) -> bool:
        return all(check(row) for check in self.filters)

    def _embed(self, row: dict) -> dict:
        result = dict(row)
        for name in self.embeds:
            if name in result:
                continue
            kind, fk = RELATIONS.get((self.table_name, name), ("many", f"{self.table_name.rstrip('s')}_id"))
            if kind == "one":
                target = next((r for r in self.db.tables.get(name, []) if r.get("id") == row.get(fk)), None)
                result[name] = dict(target) if target else None
            else:
                result[name] = [dict(r) for r in self.db.tables.get(name, []) if r.get(fk) == row.get("id")]
        return result

    def execute(self) -> FakeResponse:
        self.db.queries.append((self.table_name, self.action))
        if self.table_name in self.db.fail_tables:
            raise Exception(f"simulated failure on {self.table_name}")

        rows = self.db.tables.setdefault(self.table_name, [])

        if self.action == "insert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = [self.db.prepare_row(item) for item in items]
            rows.extend(inserted)
            return FakeResponse([dict(r) for r in inserted])

        if self.action == "upsert":
            items = self.payload if isinstance(self.payload, list) else [self.payload]
            result = []
            for item in items:
                existing = next((r for r in rows if r.get(self.on_conflict) == item.get(self.on_conflict)), None)
                if existing is not None:
                    existing.update(item)
                    result.append(dict(existing))
                else:
                    row = self.db.prepare_row(item)
                    rows.append(row)
                    result.append(dict(row))
            return FakeResponse(result)

        matched = [row for row in rows if self._matches(row)]

        if self.action == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse([dict(r) for r in matched])

        if self.action == "delete":
            self.db.tables[self.table_name] = [row for row in rows if not self._matches(row)]
            return FakeResponse([dict(r) for r in matched])

        for column, desc in reversed(self.orderings):
            present = [r for r in matched if r.get(column) is not None]
            missing = [r for r in matched if r.get(column) is None]
            present.sort(key=lambda r: _comparable(r.get(column)), reverse=desc)
            matched = present + missing

        matched = matched[self.offset:]
        if self.limit_count is not None:
            matched = matched[:self.limit_count]

        return FakeResponse([self._embed(row) for row in matched])


class FakeRPC:
    def __init__(self, db: "FakeSupabase", name: str, params: dict):
        self.db, self.name, self.params = db, name, params

    def execute(self) -> FakeResponse:
        handler = self.db.rpc_handlers.get(self.name)
        if handler is None:
            raise Exception(f"function {self.name} does not exist")
        return FakeResponse(handler(self.params))


class FakeSupabase:
    """
    Dict-of-lists database speaking enough of the supabase-py builder API
    for the services: select/filters/order/limit, insert, update, upsert,
    delete, rpc, storage.list_buckets and functions.invoke.
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.fail_tables: set[str] = set()
        self.rpc_handlers: dict[str, Callable[[dict], Any]] = {}
        self.queries: list[tuple[str, str]] = []
        self.storage = MagicMock()
        self.storage.list_buckets.return_value = []
        self.functions = MagicMock()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict | None = None) -> FakeRPC:
        return FakeRPC(self, name, params or {})

    def prepare_row(self, item: dict) -> dict:
        row = dict(item)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        return row

    def seed(self, table: str, *rows: dict) -> list[dict]:
        """Insert rows directly; returns the stored rows (with ids)."""
        stored = [self.prepare_row(row) for row in rows]
        self.tables.setdefault(table, []).extend(stored)
        return stored

    def rows(self, table: str) -> list[dict]:
        return self.tables.get(table, [])


# =============================================================================
# Time Helpers
# =============================================================================

def local_date(days_from_today: int = 0) -> str:
    """Restaurant-local date string N days from today."""
    from lib.timezone import restaurant_now

    return (restaurant_now().date() + timedelta(days=days_from_today)).isoformat()


def local_iso(date_str: str, time_str: str) -> str:
    """UTC ISO timestamp for a restaurant-local date and time."""
    from lib.timezone import local_to_utc, to_utc_iso

    return to_utc_iso(local_to_utc(date_str, time_str))


# =============================================================================
# Webhook Helpers
# =============================================================================

def stripe_signature(payload: str, secret: str, timestamp: int | None = None) -> str:
    """Stripe-Signature header for a payload, as Stripe would send it."""
    timestamp = timestamp or int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def db():
    """Fresh FakeSupabase installed as the Supabase singleton."""
    from lib.supabase_client import SupabaseClient

    fake = FakeSupabase()
    SupabaseClient._instance = fake
    yield fake
    SupabaseClient.reset()


@pytest.fixture(autouse=True)
def reset_process_state():
    """Clear caches and in-memory stores between tests."""
    from lib import content_cache
    from core.services import ticket_service
    from core.services.otp_service import OTPStore

    content_cache.clear()
    OTPStore._memory.clear()
    ticket_service._processing.clear()
    yield
    content_cache.clear()
    OTPStore._memory.clear()
    ticket_service._processing.clear()


@pytest.fixture(autouse=True)
def queued():
    """Replace Celery submission with mocks; yields them by task name."""
    from workers import tasks

    with patch.object(tasks.send_ticket_email_task, "delay") as ticket_delay, \
            patch.object(tasks.send_reservation_confirmation_task, "delay") as reservation_delay, \
            patch.object(tasks.send_email_task, "delay") as email_delay:
        ticket_delay.return_value.id = "task-ticket"
        reservation_delay.return_value.id = "task-reservation"
        email_delay.return_value.id = "task-email"
        yield {
            "ticket_email": ticket_delay,
            "reservation_confirmation": reservation_delay,
            "email": email_delay,
        }


@pytest.fixture
def client(db):
    """FastAPI TestClient backed by the fake database."""
    from fastapi.testclient import TestClient
    from app.main import app

    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def open_every_day(db):
    """Regular hours 16:00-00:00 on every weekday."""
    return db.seed("opening_hours", *[
        {"weekday": day, "is_closed": False, "open_time": "16:00", "close_time": "00:00"}
        for day in range(7)
    ])


@pytest.fixture
def ticketed_event(db):
    """A future event with General Admission at 20.00 and a VIP tier."""
    date = local_date(10)
    event = db.seed("events", {
        "title": "Friday Night Live",
        "slug": "friday-night-live",
        "status": "upcoming",
        "event_start": local_iso(date, "20:00"),
        "event_end": local_iso(date, "23:00"),
        "location": "Main Stage",
        "base_ticket_price": 20.0,
        "action_button_type": "custom_tickets",
    })[0]
    vip = db.seed("event_tickets", {
        "event_id": event["id"],
        "name": "VIP",
        "price": 50.0,
        "quantity_total": 10,
        "quantity_sold": 8,
    })[0]
    event["date"] = date
    event["vip"] = vip
    return event
