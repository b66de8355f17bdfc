# =============================================================================
# core/services/ticket_service.py - Ticketed Event Business Logic
# =============================================================================
# Two-step ticket sales:
#
#   purchase           price the selection, create a pending ticket_orders
#                      row and remember the selection
#   complete_purchase  after payment (or immediately for free orders):
#                      mark paid, issue purchased_tickets with QR codes,
#                      bump quantity_sold
#
# complete_purchase can be reached from the browser, verify-session and
# the Stripe webhook for the same order, so it is idempotent: a paid order
# with tickets returns them, and an in-process lock turns away concurrent
# completion of the same order.
# =============================================================================

import logging
import threading
import time
import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from lib.qr import qr_data_url, qr_hash, ticket_qr_payload
from lib.supabase_client import SupabaseClient, SupabaseClientError
from lib.timezone import is_event_active, restaurant_now, to_utc_iso
from lib.utils import generate_reference, normalize_email, to_float
from core.models.ticket import (
    BASE_TICKET_TYPE,
    GENERAL_ADMISSION,
    PaymentStatus,
    TicketOrderStatus,
    TicketPurchaseRequest,
)
from core.services.otp_service import VerifiedEmailStore
from app.config import settings
from app.exceptions import (
    DatabaseUnavailableError,
    EmailNotVerifiedError,
    EventNotFoundError,
    OrderProcessingError,
    PastEventError,
    TicketOrderNotFoundError,
    TicketUnavailableError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 30
ORDER_NUMBER_PREFIX = "TKO"
TICKET_NUMBER_PREFIX = "TKT"

# Reconstruction search bound for the second-ticket-type quantity loop
MAX_PAIR_QUANTITY = 10


# =============================================================================
# Processing Lock
# =============================================================================

_processing: dict[str, float] = {}
_processing_lock = threading.Lock()


def acquire_order_lock(order_id: str, now: float | None = None) -> bool:
    """
    Claim an order for completion.

    A claim older than LOCK_TIMEOUT_SECONDS is treated as abandoned.
    """
    now = time.monotonic() if now is None else now
    with _processing_lock:
        started = _processing.get(order_id)
        if started is not None and now - started < LOCK_TIMEOUT_SECONDS:
            return False
        _processing[order_id] = now
        return True


def release_order_lock(order_id: str) -> None:
    with _processing_lock:
        _processing.pop(order_id, None)


# =============================================================================
# Selection Helpers
# =============================================================================

def normalize_selection(selection: Any) -> list[dict[str, Any]]:
    """
    Coerce a stored or submitted selection into
    [{"ticket_type_id": str, "quantity": int}, ...].

    Accepts camelCase keys and pydantic items; drops empty lines.
    """
    result = []
    for item in selection or []:
        if hasattr(item, "model_dump"):
            item = item.model_dump()
        if not isinstance(item, dict):
            continue
        type_id = item.get("ticket_type_id") or item.get("ticketTypeId")
        quantity = int(item.get("quantity") or 0)
        if type_id and quantity > 0:
            result.append({"ticket_type_id": str(type_id), "quantity": quantity})
    return result


def _close(a: float, b: float) -> bool:
    return abs(a - b) < 0.01


def reconstruct_selection(
    total_amount: float,
    base_ticket_price: float | None,
    ticket_types: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """
    Best-effort guess at what was bought, from the order total alone.

    Tries, in order: N base tickets; N of a single ticket type whose price
    divides the total; a pair of types (q1 up to 10). Returns [] if
    nothing fits.
    """
    if total_amount <= 0:
        return []

    if base_ticket_price:
        quantity = round(total_amount / base_ticket_price)
        if quantity > 0:
            return [{"ticket_type_id": BASE_TICKET_TYPE, "quantity": quantity}]
        return []

    priced = sorted(
        (t for t in ticket_types if to_float(t.get("price")) > 0),
        key=lambda t: to_float(t.get("price")),
    )

    for ticket_type in priced:
        price = to_float(ticket_type["price"])
        quantity = round(total_amount / price)
        if quantity > 0 and _close(total_amount, price * quantity):
            return [{"ticket_type_id": ticket_type["id"], "quantity": quantity}]

    for i, first in enumerate(priced):
        for second in priced[i:]:
            price1, price2 = to_float(first["price"]), to_float(second["price"])
            for q1 in range(1, MAX_PAIR_QUANTITY + 1):
                remaining = total_amount - price1 * q1
                if remaining < 0:
                    break
                q2 = round(remaining / price2)
                if q2 > 0 and _close(remaining, price2 * q2):
                    return [
                        {"ticket_type_id": first["id"], "quantity": q1},
                        {"ticket_type_id": second["id"], "quantity": q2},
                    ]
    return []


def tickets_available(ticket_type: dict[str, Any]) -> int | None:
    """Remaining stock for a ticket type; None means unlimited."""
    if ticket_type.get("quantity_total") is None:
        return None
    return max(0, int(ticket_type["quantity_total"]) - int(ticket_type.get("quantity_sold") or 0))


def _money(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def ticket_redirect_url(event_slug: str | None, order_id: str) -> str:
    return f"/events/{event_slug or 'events'}/tickets/{order_id}"


class TicketService:
    """
    Service for ticket sales.

    Email delivery is queued by the caller; results carry the order's
    customer_email for that.
    """

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    @staticmethod
    def get_order(order_id: str) -> dict[str, Any]:
        """
        Ticket order with its event and purchased tickets.

        Raises:
            TicketOrderNotFoundError: If it doesn't exist
        """
        try:
            order = SupabaseClient.fetch_ticket_order(order_id, with_tickets=True)
        except SupabaseClientError as e:
            logger.error(f"Failed to fetch ticket order {order_id}: {e}")
            raise TicketOrderNotFoundError(order_id)

        if not order:
            raise TicketOrderNotFoundError(order_id)
        return order

    @staticmethod
    def get_stored_selection(order_id: str) -> list[dict[str, Any]]:
        """Selection saved at purchase time ([] if none or unreadable)."""
        try:
            row = SupabaseClient.fetch_one(
                "ticket_order_selections", "ticket_order_id", order_id, select="ticket_selection"
            )
        except SupabaseClientError as e:
            logger.warning(f"Could not read stored selection for {order_id}: {e}")
            return []
        return normalize_selection((row or {}).get("ticket_selection"))

    @staticmethod
    def _event_ticket_types(event_id: str) -> list[dict[str, Any]]:
        client = SupabaseClient.get_client()
        response = client.table("event_tickets").select("*").eq("event_id", event_id).order("price").execute()
        return response.data or []

    @staticmethod
    def _has_tickets(order_id: str) -> list[dict[str, Any]]:
        client = SupabaseClient.get_client()
        response = (
            client.table("purchased_tickets")
            .select("*")
            .eq("ticket_order_id", order_id)
            .execute()
        )
        return response.data or []

    # -------------------------------------------------------------------------
    # Pricing
    # -------------------------------------------------------------------------

    @staticmethod
    def price_selection(
        event: dict[str, Any],
        selection: list[dict[str, Any]],
        ticket_types: list[dict[str, Any]] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Resolve each selected line to a ticket type and check stock.

        Returns:
            [{"ticket_type": dict, "quantity": int}, ...] where the base line
            has ticket_type id "base"

        Raises:
            TicketUnavailableError: Unknown type, no base price, or not enough left
        """
        if ticket_types is None:
            ticket_types = event.get("event_tickets") or []
        by_id = {str(t.get("id")): t for t in ticket_types}

        lines = []
        for item in selection:
            type_id, quantity = item["ticket_type_id"], item["quantity"]

            if type_id == BASE_TICKET_TYPE:
                if event.get("base_ticket_price") is None:
                    raise TicketUnavailableError(
                        "Base ticket price not set for this event",
                        details={"event_id": event.get("id")},
                    )
                lines.append({
                    "ticket_type": {
                        "id": BASE_TICKET_TYPE,
                        "name": GENERAL_ADMISSION,
                        "price": to_float(event["base_ticket_price"]),
                        "quantity_total": None,
                        "quantity_sold": 0,
                        "currency": event.get("ticket_currency") or "USD",
                    },
                    "quantity": quantity,
                })
                continue

            ticket_type = by_id.get(type_id)
            if ticket_type is None:
                raise TicketUnavailableError(
                    f"Ticket type {type_id} not found",
                    details={"ticket_type_id": type_id},
                )

            available = tickets_available(ticket_type)
            if available is not None and quantity > available:
                raise TicketUnavailableError(
                    f"Only {available} {ticket_type.get('name')} tickets available",
                    details={"ticket_type_id": type_id, "available": available},
                )

            lines.append({"ticket_type": ticket_type, "quantity": quantity})

        return lines

    @staticmethod
    def selection_total(lines: list[dict[str, Any]]) -> float:
        total = sum(
            (Decimal(str(to_float(line["ticket_type"].get("price")))) * line["quantity"] for line in lines),
            Decimal("0"),
        )
        return _money(total)

    # -------------------------------------------------------------------------
    # Purchase
    # -------------------------------------------------------------------------

    @staticmethod
    def purchase(request: TicketPurchaseRequest) -> dict[str, Any]:
        """
        Create a pending ticket order.

        Returns:
            Dict with order, payment_required and payment_url (None for free
            orders, which the client completes directly)

        Raises:
            EventNotFoundError, PastEventError, EmailNotVerifiedError,
            TicketUnavailableError, DatabaseUnavailableError
        """
        email = normalize_email(request.customer_email)

        try:
            event = SupabaseClient.fetch_event(request.event_id)
        except SupabaseClientError as e:
            logger.error(f"Failed to fetch event {request.event_id}: {e}")
            raise DatabaseUnavailableError(str(e))

        if not event:
            raise EventNotFoundError(request.event_id)

        if not is_event_active(event):
            raise PastEventError(request.event_id)

        if settings.REQUIRE_VERIFIED_EMAIL_FOR_TICKETS and not VerifiedEmailStore.get_verification(email):
            raise EmailNotVerifiedError(email)

        selection = normalize_selection(request.tickets)
        lines = TicketService.price_selection(event, selection)
        total = TicketService.selection_total(lines)

        client = SupabaseClient.get_client()
        try:
            response = client.table("ticket_orders").insert({
                "event_id": event["id"],
                "order_number": generate_reference(ORDER_NUMBER_PREFIX, restaurant_now()),
                "customer_name": request.customer_name,
                "customer_email": email,
                "customer_phone": request.customer_phone or None,
                "total_amount": total,
                "status": TicketOrderStatus.PENDING.value,
                "payment_status": PaymentStatus.PENDING.value,
            }).execute()
        except Exception as e:
            logger.error(f"Failed to create ticket order: {e}")
            raise DatabaseUnavailableError(str(e))

        if not response.data:
            raise DatabaseUnavailableError("Insert returned no data")
        order = response.data[0]

        try:
            client.table("ticket_order_selections").insert({
                "ticket_order_id": order["id"],
                "ticket_selection": selection,
            }).execute()
        except Exception as e:
            # Completion can still reconstruct the selection from the total
            logger.warning(f"Could not store ticket selection for order {order['id']}: {e}")

        payment_required = total > 0
        payment_url = None
        if payment_required:
            payment_url = f"/events/{event.get('slug')}/payment?orderId={order['id']}&amount={total:.2f}"

        logger.info(
            f"Created ticket order {order.get('order_number')} for event {event['id']} "
            f"({sum(i['quantity'] for i in selection)} tickets, total {total:.2f})"
        )

        return {
            "order": order,
            "payment_required": payment_required,
            "payment_url": payment_url,
        }

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    @staticmethod
    def generate_ticket_number() -> str:
        """Ticket number from the database sequence, else TKT-YYYYMMDD-XXXXXX."""
        try:
            number = SupabaseClient.rpc("generate_ticket_number")
            if number:
                return str(number)
        except SupabaseClientError as e:
            logger.warning(f"generate_ticket_number unavailable, using local fallback: {e}")
        return generate_reference(TICKET_NUMBER_PREFIX, restaurant_now())

    @staticmethod
    def complete_purchase(
        order_id: str,
        payment_transaction_id: str,
        payment_method: str = "stripe",
        tickets: list[Any] | None = None,
        payment_confirmed: bool = False,
    ) -> dict[str, Any]:
        """
        Mark an order paid and issue its tickets.

        payment_confirmed is set by callers that checked the payment with
        the provider themselves (verify-session, webhook). Otherwise a
        priced order must already be marked paid.

        Returns:
            Dict with message, order, tickets (each with qr_code_image),
            event, redirect_url, and send_email (True when tickets were
            issued by this call)

        Raises:
            OrderProcessingError: Another completion of this order is in flight
            TicketOrderNotFoundError, PastEventError, TicketUnavailableError,
            ValidationFailedError (no selection or unpaid), DatabaseUnavailableError
        """
        if not acquire_order_lock(order_id):
            logger.info(f"Order {order_id} is already being processed")
            raise OrderProcessingError(order_id)

        try:
            return TicketService._complete_locked(
                order_id, payment_transaction_id, payment_method, tickets, payment_confirmed
            )
        finally:
            release_order_lock(order_id)

    @staticmethod
    def _complete_locked(
        order_id: str,
        payment_transaction_id: str,
        payment_method: str,
        tickets: list[Any] | None,
        payment_confirmed: bool,
    ) -> dict[str, Any]:
        client = SupabaseClient.get_client()

        try:
            order = SupabaseClient.fetch_one("ticket_orders", "id", order_id, select="*, events (*)")
        except SupabaseClientError as e:
            logger.error(f"Failed to fetch ticket order {order_id}: {e}")
            raise DatabaseUnavailableError(str(e))
        if not order:
            raise TicketOrderNotFoundError(order_id)

        event = order.get("events") or {}
        event_summary = {"id": event.get("id"), "title": event.get("title"), "slug": event.get("slug")}
        redirect_url = ticket_redirect_url(event.get("slug"), order["id"])

        # --- Idempotency ---
        if order.get("payment_status") == PaymentStatus.PAID.value:
            existing = TicketService._has_tickets(order_id)
            if existing:
                logger.info(f"Order {order_id} already processed with {len(existing)} ticket(s)")
                return {
                    "message": "Order already processed",
                    "order": order,
                    "tickets": existing,
                    "event": event_summary,
                    "redirect_url": redirect_url,
                    "send_email": False,
                }
            logger.info(f"Order {order_id} is paid but has no tickets, continuing")
        elif not payment_confirmed and to_float(order.get("total_amount")) > 0:
            raise ValidationFailedError(
                "Payment has not been confirmed for this order.",
                code="PAYMENT_NOT_CONFIRMED",
                suggestion="Complete checkout before requesting tickets",
            )

        if event and not is_event_active(event):
            raise PastEventError(event.get("id") or order.get("event_id"))

        # --- Selection ---
        ticket_types = TicketService._event_ticket_types(order["event_id"])

        selection = TicketService.get_stored_selection(order_id) or normalize_selection(tickets)
        if not selection:
            selection = reconstruct_selection(
                to_float(order.get("total_amount")),
                to_float(event.get("base_ticket_price")) or None,
                ticket_types,
            )
            if selection:
                logger.info(f"Reconstructed selection for order {order_id}: {selection}")
        if not selection:
            logger.error(
                f"No ticket selection for order {order_id} "
                f"(total {order.get('total_amount')}, base price {event.get('base_ticket_price')})"
            )
            raise ValidationFailedError(
                "Ticket selection not found. Please try purchasing again.",
                code="SELECTION_NOT_FOUND",
            )

        lines = TicketService.price_selection(event, selection, ticket_types)

        # --- Mark paid ---
        now_iso = to_utc_iso(restaurant_now())
        try:
            client.table("ticket_orders").update({
                "payment_status": PaymentStatus.PAID.value,
                "payment_method": payment_method,
                "payment_transaction_id": payment_transaction_id,
                "status": TicketOrderStatus.CONFIRMED.value,
                "updated_at": now_iso,
            }).eq("id", order_id).execute()
        except Exception as e:
            logger.error(f"Failed to mark order {order_id} paid: {e}")
            raise DatabaseUnavailableError(str(e))

        order.update({
            "payment_status": PaymentStatus.PAID.value,
            "payment_method": payment_method,
            "payment_transaction_id": payment_transaction_id,
            "status": TicketOrderStatus.CONFIRMED.value,
        })

        # --- Issue tickets ---
        issued = []
        for line in lines:
            ticket_type, quantity = line["ticket_type"], line["quantity"]
            type_id = ticket_type["id"]
            if type_id == BASE_TICKET_TYPE:
                type_id = TicketService._general_admission_type_id(order["event_id"], event)
                if type_id is None:
                    continue

            issued_for_type = 0
            for _ in range(quantity):
                ticket = TicketService._issue_ticket(order, type_id, ticket_type)
                if ticket:
                    issued.append(ticket)
                    issued_for_type += 1

            if issued_for_type:
                TicketService._bump_quantity_sold(type_id, issued_for_type)

        try:
            client.table("ticket_order_selections").delete().eq("ticket_order_id", order_id).execute()
        except Exception as e:
            logger.warning(f"Could not delete stored selection for order {order_id}: {e}")

        logger.info(f"Issued {len(issued)} ticket(s) for order {order_id}")

        return {
            "message": None,
            "order": order,
            "tickets": issued,
            "event": event_summary,
            "redirect_url": redirect_url,
            "send_email": bool(issued and order.get("customer_email")),
        }

    @staticmethod
    def _general_admission_type_id(event_id: str, event: dict[str, Any]) -> str | None:
        """Find or create the event's General Admission ticket type."""
        client = SupabaseClient.get_client()

        rows = (
            client.table("event_tickets")
            .select("id")
            .eq("event_id", event_id)
            .eq("name", GENERAL_ADMISSION)
            .limit(1)
            .execute()
            .data
        ) or []
        if rows:
            return rows[0]["id"]

        try:
            created = client.table("event_tickets").insert({
                "event_id": event_id,
                "name": GENERAL_ADMISSION,
                "price": to_float(event.get("base_ticket_price")),
                "currency": event.get("ticket_currency") or "USD",
                "quantity_total": None,
                "quantity_sold": 0,
            }).execute().data or []
        except Exception as e:
            logger.error(f"Failed to create General Admission type for event {event_id}: {e}")
            return None

        return created[0]["id"] if created else None

    @staticmethod
    def _issue_ticket(order: dict[str, Any], type_id: str, ticket_type: dict[str, Any]) -> dict[str, Any] | None:
        ticket_number = TicketService.generate_ticket_number()
        qr_data = ticket_qr_payload(
            ticket_id=str(uuid.uuid4()),
            order_id=order["id"],
            event_id=order["event_id"],
            ticket_number=ticket_number,
            timestamp_ms=int(time.time() * 1000),
        )

        client = SupabaseClient.get_client()
        try:
            rows = client.table("purchased_tickets").insert({
                "ticket_order_id": order["id"],
                "event_ticket_id": type_id,
                "ticket_number": ticket_number,
                "qr_code_data": qr_data,
                "qr_code_hash": qr_hash(qr_data),
                "status": "valid",
                "customer_name": order.get("customer_name"),
                "ticket_type_name": ticket_type.get("name"),
                "price_paid": to_float(ticket_type.get("price")),
            }).execute().data or []
        except Exception as e:
            logger.error(f"Ticket creation failed for order {order['id']}: {e}")
            return None

        if not rows:
            return None

        ticket = dict(rows[0])
        ticket["qr_code_image"] = qr_data_url(qr_data)
        return ticket

    @staticmethod
    def _bump_quantity_sold(type_id: str, quantity: int) -> None:
        client = SupabaseClient.get_client()
        try:
            rows = client.table("event_tickets").select("quantity_sold").eq("id", type_id).limit(1).execute().data or []
            if not rows:
                return
            sold = int(rows[0].get("quantity_sold") or 0) + quantity
            client.table("event_tickets").update({"quantity_sold": sold}).eq("id", type_id).execute()
        except Exception as e:
            logger.error(f"Failed to update quantity_sold for ticket type {type_id}: {e}")

    # -------------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------------

    @staticmethod
    def mark_paid(order_id: str, transaction_id: str | None, payment_method: str = "stripe") -> dict[str, Any] | None:
        """
        Mark an order paid without issuing tickets.

        Returns:
            The order (with events) as it was before the update, or None if missing
        """
        order = SupabaseClient.fetch_ticket_order(order_id)
        if not order:
            return None

        if order.get("payment_status") != PaymentStatus.PAID.value:
            client = SupabaseClient.get_client()
            client.table("ticket_orders").update({
                "payment_status": PaymentStatus.PAID.value,
                "payment_method": payment_method,
                "payment_transaction_id": transaction_id,
                "status": TicketOrderStatus.CONFIRMED.value,
                "updated_at": to_utc_iso(restaurant_now()),
            }).eq("id", order_id).execute()
            logger.info(f"Order {order_id} marked paid ({transaction_id})")

        return order

    @staticmethod
    def has_tickets(order_id: str) -> bool:
        return bool(TicketService._has_tickets(order_id))
