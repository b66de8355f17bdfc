# =============================================================================
# core/services/payment_service.py - Stripe Checkout Business Logic
# =============================================================================
# Card payments for ticket orders and reservation prepayments:
#
#   create_checkout   validate the amount, open a hosted Checkout Session
#   verify_session    customer returned from Checkout; apply the payment
#   handle_webhook    Stripe told us directly; apply the payment and
#                     record it in the payments table
#
# verify_session and the webhook usually both fire for one payment, so
# apply_paid_session is safe to run twice. Follow-up emails are returned
# to the caller as a list of actions to queue.
# =============================================================================

import json
import logging
import math
from typing import Any

from lib.stripe_client import (
    SignatureVerificationError,
    StripeClient,
    StripeError,
    format_amount_for_stripe,
    format_amount_from_stripe,
)
from lib.supabase_client import SupabaseClient, SupabaseClientError
from lib.utils import to_float
from core.models.payment import CheckoutType, CreateCheckoutRequest
from core.models.reservation import PrepaymentStatus
from core.services.reservation_service import ReservationService
from core.services.ticket_service import TicketService
from app.config import settings
from app.exceptions import (
    GoodTimesException,
    PaymentAmountError,
    PaymentNotConfiguredError,
    PaymentProviderError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"


def _metadata_value(metadata: dict[str, Any], key: str, legacy_key: str) -> str | None:
    """Read a metadata key, accepting the camelCase name older sessions used."""
    return metadata.get(key) or metadata.get(legacy_key)


def validate_checkout_amount(amount: float) -> float:
    """
    Check an amount can be charged through Checkout.

    Raises:
        PaymentAmountError: NaN/negative, zero, or below STRIPE_MIN_AMOUNT
    """
    if amount is None or math.isnan(amount) or amount < 0:
        raise PaymentAmountError("Invalid amount")

    if amount == 0:
        raise PaymentAmountError(
            "Cannot process $0 payments through Stripe. Free tickets should be handled separately.",
            code="ZERO_AMOUNT",
        )

    minimum = settings.STRIPE_MIN_AMOUNT
    if amount < minimum:
        raise PaymentAmountError(
            f"Amount must be at least ${minimum:.2f} USD. Current amount: ${amount:.2f}. "
            "Free or low-cost tickets should be handled separately.",
            code="amount_too_small",
            details={"minimum_amount": minimum},
        )
    return amount


class PaymentService:
    """Service for Stripe Checkout flows."""

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    @staticmethod
    def create_checkout(request: CreateCheckoutRequest) -> dict[str, Any]:
        """
        Open a Checkout Session for a ticket order or reservation prepayment.

        Returns:
            Dict with session_id and url

        Raises:
            ValidationFailedError: Missing ID or email
            PaymentAmountError: Amount can't be charged or doesn't match the record
            PaymentNotConfiguredError: No Stripe key
            PaymentProviderError: Stripe rejected the request
        """
        target_id = request.order_id if request.type == CheckoutType.TICKET else request.reservation_id
        if not target_id or not request.customer_email:
            raise ValidationFailedError(
                "Missing required fields: type, orderId/reservationId, amount, customerEmail",
                code="MISSING_FIELDS",
            )

        amount = validate_checkout_amount(request.amount)

        if not StripeClient.is_configured():
            raise PaymentNotConfiguredError("STRIPE_SECRET_KEY")

        site_url = settings.site_url

        if request.type == CheckoutType.TICKET:
            order = SupabaseClient.fetch_ticket_order(target_id)
            expected = to_float((order or {}).get("total_amount")) if order else None
            event_slug = ((order or {}).get("events") or {}).get("slug") or "events"

            metadata = {"type": CheckoutType.TICKET.value, "order_id": target_id, "event_slug": event_slug}
            selection = TicketService.get_stored_selection(target_id)
            if selection:
                metadata["ticket_selection"] = json.dumps(selection)

            success_url = f"{site_url}/events/payment/success?session_id={{CHECKOUT_SESSION_ID}}"
            cancel_url = f"{site_url}/events/payment/cancel"
            product_name = "Event Tickets"
            description = f"Tickets order #{target_id}"
        else:
            reservation = SupabaseClient.fetch_reservation(target_id)
            expected = to_float((reservation or {}).get("prepayment_amount")) if reservation else None

            metadata = {"type": CheckoutType.RESERVATION.value, "reservation_id": target_id}
            success_url = f"{site_url}/reservations/payment/success?session_id={{CHECKOUT_SESSION_ID}}"
            cancel_url = f"{site_url}/reservations/payment/cancel"
            product_name = "Reservation Prepayment"
            description = f"Reservation #{target_id}"

        if expected and abs(expected - amount) >= 0.01:
            logger.warning(f"Checkout amount {amount:.2f} does not match {request.type.value} {target_id} ({expected:.2f})")
            raise PaymentAmountError(
                "Amount does not match the order total.",
                code="AMOUNT_MISMATCH",
                details={"expected_amount": expected},
            )

        currency = settings.STRIPE_CURRENCY
        params = {
            "payment_method_types": ["card"],
            "line_items": [{
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": product_name, "description": description},
                    "unit_amount": format_amount_for_stripe(amount, currency),
                },
                "quantity": 1,
            }],
            "mode": "payment",
            "customer_email": request.customer_email,
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }

        try:
            session = StripeClient.create_checkout_session(params)
        except StripeError as e:
            raise PaymentProviderError(e.message)

        return {"session_id": session.get("id"), "url": session.get("url")}

    # -------------------------------------------------------------------------
    # Apply
    # -------------------------------------------------------------------------

    @staticmethod
    def apply_paid_session(session: dict[str, Any], source: str = "verify-session") -> dict[str, Any]:
        """
        Apply a Checkout Session's outcome to the order or reservation.

        Only paid sessions change anything. Safe to call repeatedly.

        Returns:
            Dict with type, order_id / reservation_id, event_slug,
            payment_status, and actions: a list of follow-up tasks, each
            ("ticket_email", order_id, email) or ("reservation_confirmation",
            reservation_id)
        """
        metadata = session.get("metadata") or {}
        kind = metadata.get("type")
        paid = session.get("payment_status") == "paid"
        transaction_id = session.get("payment_intent")
        result: dict[str, Any] = {"type": None, "payment_status": session.get("payment_status"), "actions": []}

        order_id = _metadata_value(metadata, "order_id", "orderId")
        reservation_id = _metadata_value(metadata, "reservation_id", "reservationId")

        if kind == CheckoutType.TICKET.value and order_id:
            result.update(type=CheckoutType.TICKET, order_id=order_id)
            result["event_slug"] = _metadata_value(metadata, "event_slug", "eventSlug")
            if paid:
                PaymentService._apply_ticket_payment(order_id, transaction_id, metadata, result, source)
            result["event_slug"] = result.get("event_slug") or "events"

        elif kind == CheckoutType.RESERVATION.value and reservation_id:
            result.update(type=CheckoutType.RESERVATION, reservation_id=reservation_id)
            if paid:
                PaymentService._apply_reservation_payment(reservation_id, transaction_id, result, source)

        return result

    @staticmethod
    def _apply_ticket_payment(
        order_id: str,
        transaction_id: str | None,
        metadata: dict[str, Any],
        result: dict[str, Any],
        source: str,
    ) -> None:
        try:
            order = TicketService.mark_paid(order_id, transaction_id)
        except Exception as e:
            logger.error(f"[{source}] Failed to mark order {order_id} paid: {e}")
            return

        if not order:
            logger.error(f"[{source}] Paid session references unknown order {order_id}")
            return

        if not result.get("event_slug"):
            result["event_slug"] = (order.get("events") or {}).get("slug")

        if TicketService.has_tickets(order_id):
            logger.info(f"[{source}] Order {order_id} already has tickets")
            return

        selection = None
        if metadata.get("ticket_selection"):
            try:
                selection = json.loads(metadata["ticket_selection"])
            except ValueError as e:
                logger.error(f"[{source}] Bad ticket_selection metadata for order {order_id}: {e}")

        try:
            completed = TicketService.complete_purchase(
                order_id,
                transaction_id or "stripe",
                payment_method="stripe",
                tickets=selection,
                payment_confirmed=True,
            )
        except GoodTimesException as e:
            # The other payment path or the ticket page retries
            logger.error(f"[{source}] Ticket completion failed for order {order_id}: {e.message}")
            return

        logger.info(f"[{source}] Issued {len(completed['tickets'])} ticket(s) for order {order_id}")
        if completed.get("send_email"):
            result["actions"].append(("ticket_email", order_id, completed["order"].get("customer_email")))

    @staticmethod
    def _apply_reservation_payment(
        reservation_id: str,
        transaction_id: str | None,
        result: dict[str, Any],
        source: str,
    ) -> None:
        try:
            reservation = SupabaseClient.fetch_reservation(reservation_id)
        except SupabaseClientError as e:
            logger.error(f"[{source}] Failed to fetch reservation {reservation_id}: {e}")
            return

        if not reservation:
            logger.error(f"[{source}] Paid session references unknown reservation {reservation_id}")
            return

        if reservation.get("payment_status") == "paid" or reservation.get("prepayment_status") == PrepaymentStatus.PAID.value:
            logger.info(f"[{source}] Reservation {reservation_id} already paid")
            return

        try:
            updated = ReservationService.mark_prepayment_paid(reservation_id, transaction_id)
        except Exception as e:
            logger.error(f"[{source}] Error updating reservation {reservation_id}: {e}")
            return

        if updated:
            result["actions"].append(("reservation_confirmation", reservation_id))

    # -------------------------------------------------------------------------
    # Verify / Webhook
    # -------------------------------------------------------------------------

    @staticmethod
    def verify_session(session_id: str) -> dict[str, Any]:
        """
        Look up a Checkout Session and apply it if paid.

        Raises:
            ValidationFailedError: No session ID
            PaymentNotConfiguredError: No Stripe key
            PaymentProviderError: Stripe lookup failed
        """
        if not session_id:
            raise ValidationFailedError("Session ID is required", code="MISSING_SESSION_ID")
        if not StripeClient.is_configured():
            raise PaymentNotConfiguredError("STRIPE_SECRET_KEY")

        try:
            session = StripeClient.retrieve_checkout_session(session_id)
        except StripeError as e:
            status = 404 if e.status_code == 404 else 502
            raise PaymentProviderError(e.message, status_code=status)

        return PaymentService.apply_paid_session(session, source="verify-session")

    @staticmethod
    def handle_webhook(payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Verify and process a Stripe webhook delivery.

        Processing errors after verification are logged, not raised, so
        Stripe gets a 200 and the verify-session path can finish the job.

        Returns:
            Dict with event_type and actions (see apply_paid_session)

        Raises:
            PaymentNotConfiguredError: No webhook secret
            ValidationFailedError: Missing or invalid signature
        """
        secret = settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not set")
            raise PaymentNotConfiguredError("STRIPE_WEBHOOK_SECRET")

        if not signature:
            raise ValidationFailedError("Missing stripe-signature header", code="MISSING_SIGNATURE")

        try:
            event = StripeClient.construct_event(payload, signature, secret)
        except SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e.message}")
            raise ValidationFailedError(
                f"Webhook signature verification failed: {e.message}",
                code="INVALID_SIGNATURE",
            )

        event_type = event.get("type")
        data_object = (event.get("data") or {}).get("object") or {}
        result: dict[str, Any] = {"event_type": event_type, "actions": []}

        if event_type == CHECKOUT_COMPLETED:
            if data_object.get("payment_status") == "paid":
                applied = PaymentService.apply_paid_session(data_object, source="webhook")
                result["actions"] = applied["actions"]
                PaymentService.record_payment(data_object)
        elif event_type == PAYMENT_INTENT_SUCCEEDED:
            logger.info(f"Payment intent succeeded: {data_object.get('id')}")
        elif event_type == PAYMENT_INTENT_FAILED:
            error = (data_object.get("last_payment_error") or {}).get("message")
            logger.error(f"Payment intent failed: {data_object.get('id')} ({error})")
        else:
            logger.info(f"Unhandled event type: {event_type}")

        return result

    @staticmethod
    def record_payment(session: dict[str, Any]) -> None:
        """Insert a payments row for a completed session (failures are logged)."""
        metadata = session.get("metadata") or {}
        kind = metadata.get("type")
        currency = session.get("currency") or settings.STRIPE_CURRENCY

        row = {
            "amount": format_amount_from_stripe(session.get("amount_total") or 0, currency),
            "currency": currency,
            "payment_method": "stripe",
            "transaction_id": session.get("payment_intent"),
            "status": "completed",
            "type": kind,
        }
        if kind == CheckoutType.TICKET.value:
            row["order_id"] = _metadata_value(metadata, "order_id", "orderId")
        elif kind == CheckoutType.RESERVATION.value:
            row["reservation_id"] = _metadata_value(metadata, "reservation_id", "reservationId")
        else:
            return

        try:
            SupabaseClient.get_client().table("payments").insert(row).execute()
        except Exception as e:
            logger.warning(f"Could not record payment {row['transaction_id']}: {e}")
