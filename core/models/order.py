# =============================================================================
# core/models/order.py - Online Order Schemas
# =============================================================================
# These models define the API contract for online ordering:
# - OrderCreate: Checkout request from the order page
# - Cart / CartLine: Line items keyed by (item_id, variant_id), with totals
# - OrderCreateResponse: Persisted order with its order number
#
# Prices in the request are never trusted; the order service reprices
# every line from the menu tables before building the Cart.
# =============================================================================

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from .common import RequestModel


class OrderType(str, Enum):
    """How the guest receives the order."""
    PICKUP = "pickup"
    DELIVERY = "delivery"
    DINE_IN = "dine_in"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CustomerInfo(RequestModel):
    """Contact details for an order."""
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=1, max_length=50)
    email: str | None = Field(default=None, max_length=320)
    address: str | None = Field(default=None, max_length=500)


class OrderItemRequest(RequestModel):
    """One cart line as sent by the client."""
    item_id: str = Field(..., min_length=1)
    variant_id: str | None = None
    quantity: int = Field(..., ge=1, le=99)
    special_instructions: str | None = Field(default=None, max_length=500)


class OrderCreate(RequestModel):
    """
    Schema for placing an online order.

    Example:
        {
            "orderType": "pickup",
            "customerInfo": {"name": "Jane", "phone": "555-0100"},
            "items": [{"itemId": "...", "variantId": "...", "quantity": 2}],
            "scheduledTime": "2026-01-02T18:30"
        }
    """

    order_type: OrderType
    customer_info: CustomerInfo
    items: list[OrderItemRequest] = Field(..., min_length=1)

    # Local datetime-local value (YYYY-MM-DDTHH:mm); None means ASAP
    scheduled_time: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}$")

    notes: str | None = Field(default=None, max_length=2000)

    @field_validator("scheduled_time")
    @classmethod
    def real_local_datetime(cls, value: str | None) -> str | None:
        if value is not None:
            datetime.strptime(value, "%Y-%m-%dT%H:%M")
        return value

    @model_validator(mode="after")
    def delivery_needs_address(self) -> "OrderCreate":
        if self.order_type == OrderType.DELIVERY and not (self.customer_info.address or "").strip():
            raise ValueError("Delivery orders require an address")
        return self


class OrderCreateResponse(BaseModel):
    """Returned by POST /orders (201)."""
    success: bool = True
    order: dict[str, Any]


# =============================================================================
# Cart
# =============================================================================

def _money(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class CartLine(BaseModel):
    """A priced line in the cart."""
    item_id: str
    variant_id: str | None = None
    name: str
    variant_name: str | None = None
    unit_price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    special_instructions: str | None = None

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.item_id, self.variant_id)

    @property
    def line_total(self) -> float:
        return float(_money(Decimal(str(self.unit_price)) * self.quantity))


class Cart(BaseModel):
    """
    Priced cart with merge semantics.

    Adding a line for an (item, variant) already in the cart bumps its
    quantity instead of adding a duplicate. Setting a quantity to 0
    removes the line.
    """

    lines: list[CartLine] = Field(default_factory=list)

    def add(self, line: CartLine) -> None:
        for existing in self.lines:
            if existing.key == line.key:
                existing.quantity += line.quantity
                if line.special_instructions:
                    existing.special_instructions = line.special_instructions
                return
        self.lines.append(line)

    def update_quantity(self, item_id: str, variant_id: str | None, quantity: int) -> None:
        if quantity <= 0:
            self.remove(item_id, variant_id)
            return
        for line in self.lines:
            if line.key == (item_id, variant_id):
                line.quantity = quantity
                return

    def remove(self, item_id: str, variant_id: str | None) -> None:
        self.lines = [line for line in self.lines if line.key != (item_id, variant_id)]

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def subtotal(self) -> float:
        total = sum((Decimal(str(line.unit_price)) * line.quantity for line in self.lines), Decimal("0"))
        return float(_money(total))

    def tax(self, rate: float) -> float:
        return float(_money(Decimal(str(self.subtotal)) * Decimal(str(rate))))

    def total(self, rate: float) -> float:
        return float(_money(Decimal(str(self.subtotal)) + Decimal(str(self.tax(rate)))))
