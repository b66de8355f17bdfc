# =============================================================================
# tests/test_payments.py - Stripe Checkout Tests
# =============================================================================
# Stripe itself is never called: StripeClient methods are patched, and the
# SDK wrapper is tested against patched stripe.checkout.Session calls.
#
# Run with: pytest tests/test_payments.py -v
# =============================================================================

import json
import time
from unittest.mock import patch

import pytest
import stripe

from app.config import settings
from app.exceptions import (
    PaymentAmountError,
    PaymentNotConfiguredError,
    PaymentProviderError,
    ValidationFailedError,
)
from core.models.payment import CreateCheckoutRequest
from core.models.ticket import TicketPurchaseRequest
from core.services.payment_service import PaymentService, validate_checkout_amount
from core.services.ticket_service import TicketService
from lib.stripe_client import (
    SignatureVerificationError,
    StripeClient,
    StripeError,
    format_amount_for_stripe,
    format_amount_from_stripe,
)
from tests.conftest import stripe_signature

EMAIL = "fan@example.com"


@pytest.fixture
def ticket_order(db, ticketed_event):
    """Pending two-ticket order (40.00) with a stored selection."""
    request = TicketPurchaseRequest(
        eventId=ticketed_event["id"],
        tickets=[{"ticketTypeId": "base", "quantity": 2}],
        customerName="Pat Fan",
        customerEmail=EMAIL,
    )
    with patch.object(settings, "REQUIRE_VERIFIED_EMAIL_FOR_TICKETS", False):
        return TicketService.purchase(request)["order"]


@pytest.fixture
def prepaid_reservation(db):
    return db.seed("reservations", {
        "customer_name": "Jane",
        "customer_email": "jane@example.com",
        "status": "pending",
        "prepayment_status": "unpaid",
        "prepayment_amount": 40.0,
    })[0]


def paid_session(metadata: dict, amount_total: int = 4000) -> dict:
    return {
        "id": "cs_test_123",
        "payment_status": "paid",
        "payment_intent": "pi_123",
        "amount_total": amount_total,
        "currency": "usd",
        "metadata": metadata,
    }


# =============================================================================
# Amounts & Encoding
# =============================================================================

class TestAmounts:
    """Tests for amount validation and conversion."""

    def test_zero_amount(self):
        """$0 checkouts are refused with ZERO_AMOUNT."""
        with pytest.raises(PaymentAmountError) as exc_info:
            validate_checkout_amount(0)
        assert exc_info.value.code == "ZERO_AMOUNT"

    def test_below_minimum(self):
        """Amounts under the Stripe minimum report it."""
        with pytest.raises(PaymentAmountError) as exc_info:
            validate_checkout_amount(0.25)

        assert exc_info.value.code == "amount_too_small"
        assert exc_info.value.details == {"minimum_amount": 0.5}

    @pytest.mark.parametrize("amount", [-1, float("nan"), None])
    def test_invalid_amounts(self, amount):
        """Negative, NaN and missing amounts are invalid."""
        with pytest.raises(PaymentAmountError) as exc_info:
            validate_checkout_amount(amount)
        assert exc_info.value.code == "INVALID_AMOUNT"

    def test_minimum_is_allowed(self):
        """The minimum itself is chargeable."""
        assert validate_checkout_amount(0.5) == 0.5

    def test_format_for_stripe_rounds_half_up(self):
        """Major units become cents, rounding half up."""
        assert format_amount_for_stripe(25.5) == 2550
        assert format_amount_for_stripe(19.995) == 2000
        assert format_amount_for_stripe(500, "jpy") == 500

    def test_format_from_stripe(self):
        """Cents convert back to major units."""
        assert format_amount_from_stripe(2550) == 25.5
        assert format_amount_from_stripe(500, "JPY") == 500.0


# =============================================================================
# StripeClient
# =============================================================================

class TestStripeClient:
    """Tests for the SDK wrapper and signature checks."""

    def test_create_session_returns_dict(self):
        """Sessions are created with the configured key and returned as dicts."""
        session = stripe.checkout.Session.construct_from(
            {"id": "cs_1", "url": "https://checkout.stripe.com/c/cs_1"}, "sk_test_123"
        )

        with patch("stripe.checkout.Session.create", return_value=session) as create:
            result = StripeClient.create_checkout_session({"mode": "payment"})

        assert result == {"id": "cs_1", "url": "https://checkout.stripe.com/c/cs_1"}
        create.assert_called_once_with(api_key="sk_test_123", mode="payment")

    def test_error_response(self):
        """Stripe errors carry the message and status."""
        error = stripe.InvalidRequestError("No such checkout.session", param="id", http_status=404)

        with patch("stripe.checkout.Session.retrieve", side_effect=error):
            with pytest.raises(StripeError) as exc_info:
                StripeClient.retrieve_checkout_session("cs_missing")

        assert exc_info.value.status_code == 404
        assert "No such checkout.session" in exc_info.value.message

    def test_network_error(self):
        """Connection failures become StripeError."""
        with patch("stripe.checkout.Session.retrieve", side_effect=stripe.APIConnectionError("boom")):
            with pytest.raises(StripeError):
                StripeClient.retrieve_checkout_session("cs_1")

    def test_missing_key(self):
        """No secret key means no request."""
        with patch.object(settings, "STRIPE_SECRET_KEY", None), \
                patch("stripe.checkout.Session.retrieve") as retrieve:
            with pytest.raises(StripeError):
                StripeClient.retrieve_checkout_session("cs_1")

        retrieve.assert_not_called()

    def test_signed_payload_verifies(self):
        """A freshly signed payload verifies."""
        payload = json.dumps({"id": "evt_1", "object": "event", "type": "checkout.session.completed"})
        header = stripe_signature(payload, "whsec_x")

        event = StripeClient.construct_event(payload.encode(), header, "whsec_x")
        assert event["type"] == "checkout.session.completed"

    def test_wrong_secret(self):
        """Signatures from another secret fail."""
        payload = "{}"
        with pytest.raises(SignatureVerificationError):
            StripeClient.construct_event(payload, stripe_signature(payload, "whsec_other"), "whsec_x")

    def test_stale_timestamp(self):
        """Old signatures are outside the tolerance."""
        payload = "{}"
        header = stripe_signature(payload, "whsec_x", timestamp=int(time.time()) - 3600)

        with pytest.raises(SignatureVerificationError):
            StripeClient.construct_event(payload, header, "whsec_x")

    def test_malformed_header(self):
        """Headers without t= and v1= fail."""
        with pytest.raises(SignatureVerificationError):
            StripeClient.construct_event("{}", "garbage", "whsec_x")

    def test_payload_not_json(self):
        """Correctly signed garbage is still rejected."""
        payload = "not json"
        with pytest.raises(SignatureVerificationError):
            StripeClient.construct_event(payload, stripe_signature(payload, "whsec_x"), "whsec_x")


# =============================================================================
# create_checkout
# =============================================================================

class TestCreateCheckout:
    """Tests for PaymentService.create_checkout."""

    def test_ticket_checkout(self, db, ticket_order):
        """Ticket sessions carry the order, slug and selection."""
        request = CreateCheckoutRequest(type="ticket", orderId=ticket_order["id"], amount=40, customerEmail=EMAIL)

        with patch.object(StripeClient, "create_checkout_session", return_value={"id": "cs_1", "url": "https://pay"}) as create:
            result = PaymentService.create_checkout(request)

        assert result == {"session_id": "cs_1", "url": "https://pay"}
        params = create.call_args.args[0]
        assert params["mode"] == "payment"
        assert params["customer_email"] == EMAIL
        assert params["line_items"][0]["price_data"]["unit_amount"] == 4000
        assert params["line_items"][0]["price_data"]["product_data"]["name"] == "Event Tickets"
        assert params["metadata"]["order_id"] == ticket_order["id"]
        assert params["metadata"]["event_slug"] == "friday-night-live"
        assert json.loads(params["metadata"]["ticket_selection"]) == [{"ticket_type_id": "base", "quantity": 2}]
        assert params["success_url"] == "https://goodtimes.test/events/payment/success?session_id={CHECKOUT_SESSION_ID}"
        assert params["cancel_url"] == "https://goodtimes.test/events/payment/cancel"

    def test_reservation_checkout(self, db, prepaid_reservation):
        """Reservation sessions use the reservation URLs."""
        request = CreateCheckoutRequest(
            type="reservation", reservationId=prepaid_reservation["id"], amount=40, customerEmail="jane@example.com"
        )

        with patch.object(StripeClient, "create_checkout_session", return_value={"id": "cs_2"}) as create:
            PaymentService.create_checkout(request)

        params = create.call_args.args[0]
        assert params["metadata"] == {"type": "reservation", "reservation_id": prepaid_reservation["id"]}
        assert params["line_items"][0]["price_data"]["product_data"]["name"] == "Reservation Prepayment"
        assert "/reservations/payment/success" in params["success_url"]

    def test_amount_must_match_order(self, db, ticket_order):
        """Tampered amounts are refused."""
        request = CreateCheckoutRequest(type="ticket", orderId=ticket_order["id"], amount=1, customerEmail=EMAIL)

        with pytest.raises(PaymentAmountError) as exc_info:
            PaymentService.create_checkout(request)

        assert exc_info.value.code == "AMOUNT_MISMATCH"
        assert exc_info.value.details == {"expected_amount": 40.0}

    def test_missing_fields(self, db):
        """An ID and email are required."""
        request = CreateCheckoutRequest(type="ticket", amount=40, customerEmail=EMAIL)

        with pytest.raises(ValidationFailedError) as exc_info:
            PaymentService.create_checkout(request)
        assert exc_info.value.code == "MISSING_FIELDS"

    def test_not_configured(self, db, ticket_order):
        """No secret key, no checkout."""
        request = CreateCheckoutRequest(type="ticket", orderId=ticket_order["id"], amount=40, customerEmail=EMAIL)

        with patch.object(settings, "STRIPE_SECRET_KEY", None):
            with pytest.raises(PaymentNotConfiguredError):
                PaymentService.create_checkout(request)

    def test_stripe_rejection(self, db, ticket_order):
        """Stripe errors become provider errors."""
        request = CreateCheckoutRequest(type="ticket", orderId=ticket_order["id"], amount=40, customerEmail=EMAIL)

        with patch.object(StripeClient, "create_checkout_session", side_effect=StripeError("card declined")):
            with pytest.raises(PaymentProviderError) as exc_info:
                PaymentService.create_checkout(request)

        assert exc_info.value.status_code == 502


# =============================================================================
# Applying Paid Sessions
# =============================================================================

class TestApplyPaidSession:
    """Tests for verify_session and apply_paid_session."""

    def test_paid_ticket_session_issues_tickets(self, db, ticket_order):
        """A paid session marks the order paid and issues its tickets."""
        session = paid_session({"type": "ticket", "order_id": ticket_order["id"], "event_slug": "friday-night-live"})

        with patch.object(StripeClient, "retrieve_checkout_session", return_value=session):
            result = PaymentService.verify_session("cs_test_123")

        assert result["type"] == "ticket"
        assert result["order_id"] == ticket_order["id"]
        assert result["event_slug"] == "friday-night-live"
        assert result["actions"] == [("ticket_email", ticket_order["id"], EMAIL)]
        assert len(db.rows("purchased_tickets")) == 2
        assert db.rows("ticket_orders")[0]["payment_transaction_id"] == "pi_123"

    def test_applying_twice_issues_once(self, db, ticket_order):
        """Verify-session and webhook for the same session don't duplicate."""
        session = paid_session({"type": "ticket", "order_id": ticket_order["id"]})

        PaymentService.apply_paid_session(session)
        second = PaymentService.apply_paid_session(session, source="webhook")

        assert second["actions"] == []
        assert len(db.rows("purchased_tickets")) == 2

    def test_legacy_camel_case_metadata(self, db, ticket_order):
        """Older sessions used orderId / eventSlug."""
        session = paid_session({"type": "ticket", "orderId": ticket_order["id"]})

        result = PaymentService.apply_paid_session(session)

        assert result["order_id"] == ticket_order["id"]
        assert result["event_slug"] == "friday-night-live"

    def test_unpaid_session_changes_nothing(self, db, ticket_order):
        """Open sessions are reported but not applied."""
        session = paid_session({"type": "ticket", "order_id": ticket_order["id"]})
        session["payment_status"] = "unpaid"

        result = PaymentService.apply_paid_session(session)

        assert result["payment_status"] == "unpaid"
        assert result["event_slug"] == "events"
        assert db.rows("ticket_orders")[0]["payment_status"] == "pending"
        assert db.rows("purchased_tickets") == []

    def test_paid_reservation_confirms(self, db, prepaid_reservation):
        """Prepayment confirms the reservation once."""
        session = paid_session({"type": "reservation", "reservation_id": prepaid_reservation["id"]})

        first = PaymentService.apply_paid_session(session)
        second = PaymentService.apply_paid_session(session)

        assert first["actions"] == [("reservation_confirmation", prepaid_reservation["id"])]
        assert second["actions"] == []
        assert db.rows("reservations")[0]["status"] == "confirmed"

    def test_unknown_order_is_logged(self, db):
        """Sessions for missing orders do nothing."""
        result = PaymentService.apply_paid_session(paid_session({"type": "ticket", "order_id": "missing"}))
        assert result["actions"] == []

    def test_verify_requires_session_id(self, db):
        """Empty IDs are rejected."""
        with pytest.raises(ValidationFailedError):
            PaymentService.verify_session("")

    def test_verify_unknown_session(self, db):
        """Stripe 404s stay 404s."""
        with patch.object(StripeClient, "retrieve_checkout_session", side_effect=StripeError("No such session", status_code=404)):
            with pytest.raises(PaymentProviderError) as exc_info:
                PaymentService.verify_session("cs_missing")

        assert exc_info.value.status_code == 404


# =============================================================================
# Webhooks
# =============================================================================

class TestWebhook:
    """Tests for PaymentService.handle_webhook."""

    def _deliver(self, event: dict, secret: str = "whsec_test_secret"):
        payload = json.dumps(event)
        return PaymentService.handle_webhook(payload.encode(), stripe_signature(payload, secret))

    def test_checkout_completed(self, db, ticket_order):
        """Completed checkouts issue tickets and record the payment."""
        session = paid_session({"type": "ticket", "order_id": ticket_order["id"]})

        result = self._deliver({"type": "checkout.session.completed", "data": {"object": session}})

        assert result["event_type"] == "checkout.session.completed"
        assert result["actions"] == [("ticket_email", ticket_order["id"], EMAIL)]
        payment = db.rows("payments")[0]
        assert payment["amount"] == 40.0
        assert payment["order_id"] == ticket_order["id"]
        assert payment["transaction_id"] == "pi_123"
        assert payment["status"] == "completed"

    def test_reservation_payment_recorded(self, db, prepaid_reservation):
        """Reservation payments reference the reservation."""
        session = paid_session({"type": "reservation", "reservation_id": prepaid_reservation["id"]})

        self._deliver({"type": "checkout.session.completed", "data": {"object": session}})

        assert db.rows("payments")[0]["reservation_id"] == prepaid_reservation["id"]

    def test_payment_record_failure_is_tolerated(self, db, prepaid_reservation):
        """A failing payments insert doesn't fail the webhook."""
        db.fail_tables.add("payments")
        session = paid_session({"type": "reservation", "reservation_id": prepaid_reservation["id"]})

        result = self._deliver({"type": "checkout.session.completed", "data": {"object": session}})

        assert result["actions"] == [("reservation_confirmation", prepaid_reservation["id"])]

    def test_other_events_acknowledged(self, db):
        """Payment intent events are only logged."""
        result = self._deliver({"type": "payment_intent.payment_failed", "data": {"object": {"id": "pi_1"}}})

        assert result == {"event_type": "payment_intent.payment_failed", "actions": []}

    def test_bad_signature(self, db):
        """Wrongly signed deliveries are rejected."""
        with pytest.raises(ValidationFailedError) as exc_info:
            self._deliver({"type": "checkout.session.completed"}, secret="whsec_wrong")

        assert exc_info.value.code == "INVALID_SIGNATURE"

    def test_missing_signature(self, db):
        """No header, no processing."""
        with pytest.raises(ValidationFailedError) as exc_info:
            PaymentService.handle_webhook(b"{}", None)

        assert exc_info.value.code == "MISSING_SIGNATURE"

    def test_missing_secret(self, db):
        """Webhooks need a signing secret."""
        with patch.object(settings, "STRIPE_WEBHOOK_SECRET", None):
            with pytest.raises(PaymentNotConfiguredError):
                PaymentService.handle_webhook(b"{}", "t=1,v1=x")
