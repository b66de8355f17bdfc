# =============================================================================
# core/services/order_service.py - Online Order Business Logic
# =============================================================================
# Places pickup / delivery / dine-in orders:
# 1. Reprice every requested line from menu_items / menu_item_variants
# 2. Build a Cart (merging duplicate lines) and compute tax and total
# 3. Insert the orders row and its order_items
# =============================================================================

import logging
from typing import Any

from lib.supabase_client import SupabaseClient
from lib.timezone import local_datetime_input_to_utc, restaurant_now
from lib.utils import generate_reference, to_float
from core.models.order import Cart, CartLine, OrderCreate, OrderStatus
from app.config import settings
from app.exceptions import DatabaseUnavailableError, ValidationFailedError

logger = logging.getLogger(__name__)

ORDER_NUMBER_PREFIX = "ORD"


def unit_price(item: dict[str, Any], variant: dict[str, Any] | None) -> float:
    """Variant price when a variant was chosen, else the item's base price."""
    if variant is not None:
        return to_float(variant.get("price"))
    return to_float(item.get("base_price", item.get("price")))


class OrderService:
    """
    Service for online order operations.

    Client-sent prices are ignored; totals always come from the menu tables.
    """

    @staticmethod
    def _fetch_menu_rows(item_ids: list[str]) -> dict[str, dict[str, Any]]:
        client = SupabaseClient.get_client()
        response = (
            client.table("menu_items")
            .select("id, name, base_price, is_available, menu_item_variants (id, name, price)")
            .in_("id", item_ids)
            .execute()
        )
        return {row["id"]: row for row in response.data or []}

    @staticmethod
    def build_cart(request: OrderCreate) -> Cart:
        """
        Price the requested lines into a Cart.

        Raises:
            ValidationFailedError: Unknown, unavailable, or mis-matched variant
            DatabaseUnavailableError: Menu lookup failed
        """
        item_ids = sorted({line.item_id for line in request.items})

        try:
            menu = OrderService._fetch_menu_rows(item_ids)
        except Exception as e:
            logger.error(f"Failed to load menu items for order: {e}")
            raise DatabaseUnavailableError(str(e))

        cart = Cart()
        for line in request.items:
            item = menu.get(line.item_id)
            if not item or not item.get("is_available", True):
                raise ValidationFailedError(
                    "One or more items are no longer available.",
                    code="ITEM_UNAVAILABLE",
                    suggestion="Refresh the menu and update your cart",
                    details={"item_id": line.item_id},
                )

            variant = None
            if line.variant_id:
                variant = next(
                    (v for v in item.get("menu_item_variants") or [] if v.get("id") == line.variant_id),
                    None,
                )
                if variant is None:
                    raise ValidationFailedError(
                        "Selected option is no longer available.",
                        code="VARIANT_UNAVAILABLE",
                        details={"item_id": line.item_id, "variant_id": line.variant_id},
                    )

            cart.add(CartLine(
                item_id=line.item_id,
                variant_id=line.variant_id,
                name=item.get("name") or "",
                variant_name=variant.get("name") if variant else None,
                unit_price=unit_price(item, variant),
                quantity=line.quantity,
                special_instructions=line.special_instructions,
            ))

        return cart

    @staticmethod
    def create_order(request: OrderCreate) -> dict[str, Any]:
        """
        Place an order.

        Returns:
            The inserted order row with an ``items`` list

        Raises:
            ValidationFailedError: Unavailable items
            DatabaseUnavailableError: Insert failed
        """
        cart = OrderService.build_cart(request)
        rate = settings.TAX_RATE
        customer = request.customer_info

        data = {
            "order_number": generate_reference(ORDER_NUMBER_PREFIX, restaurant_now()),
            "order_type": request.order_type.value,
            "status": OrderStatus.PENDING.value,
            "customer_name": customer.name,
            "customer_phone": customer.phone,
            "customer_email": (customer.email or "").strip().lower() or None,
            "customer_address": customer.address or None,
            "scheduled_time": local_datetime_input_to_utc(request.scheduled_time) if request.scheduled_time else None,
            "notes": request.notes or None,
            "subtotal": cart.subtotal,
            "tax": cart.tax(rate),
            "total_amount": cart.total(rate),
        }

        client = SupabaseClient.get_client()
        try:
            response = client.table("orders").insert(data).execute()
            if not response.data:
                raise DatabaseUnavailableError("Insert returned no data")
            order = response.data[0]

            items = [
                {
                    "order_id": order["id"],
                    "menu_item_id": line.item_id,
                    "variant_id": line.variant_id,
                    "item_name": line.name,
                    "variant_name": line.variant_name,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price,
                    "total_price": line.line_total,
                    "special_instructions": line.special_instructions,
                }
                for line in cart.lines
            ]
            items_response = client.table("order_items").insert(items).execute()
        except DatabaseUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Failed to create order: {e}")
            raise DatabaseUnavailableError(str(e))

        order["items"] = items_response.data or items
        logger.info(
            f"Created order {order.get('order_number')} ({request.order_type.value}, "
            f"{cart.item_count} items, total {data['total_amount']:.2f})"
        )
        return order
