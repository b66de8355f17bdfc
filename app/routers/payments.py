# =============================================================================
# app/routers/payments.py - Stripe Checkout Endpoints
# =============================================================================
# - POST /payments/stripe/create-checkout  hosted checkout for tickets or a
#                                         reservation prepayment
# - GET  /payments/stripe/verify-session  customer came back from checkout
# - POST /payments/stripe/webhook         Stripe event delivery
#
# Follow-up emails from verify-session and the webhook are queued on the
# worker after the database has been updated.
# =============================================================================

import logging
from typing import Annotated

from fastapi import APIRouter, Header, Query, Request
from fastapi.concurrency import run_in_threadpool

from app.dispatch import dispatch_actions
from core.models.payment import (
    CheckoutSessionResponse,
    CreateCheckoutRequest,
    VerifySessionResponse,
    WebhookAck,
)
from core.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-checkout", response_model=CheckoutSessionResponse)
def create_checkout(request: CreateCheckoutRequest):
    """
    Create a Stripe Checkout Session.

    Amounts are in dollars. Zero, negative and sub-minimum amounts are
    rejected with distinct error codes (amount_too_small carries
    details.minimum_amount).
    """
    session = PaymentService.create_checkout(request)
    return CheckoutSessionResponse(session_id=session["session_id"], url=session["url"])


@router.get("/verify-session", response_model=VerifySessionResponse, response_model_exclude_none=True)
def verify_session(
    session_id: Annotated[str | None, Query()] = None,
):
    """
    Confirm a checkout after the customer is redirected back.

    If the session is paid, the order is marked paid and tickets issued
    (or the reservation confirmed). Calling it again is harmless.
    """
    result = PaymentService.verify_session(session_id or "")
    dispatch_actions(result["actions"])

    return VerifySessionResponse(
        type=result["type"],
        payment_status=result["payment_status"] or "unknown",
        order_id=result.get("order_id"),
        reservation_id=result.get("reservation_id"),
        event_slug=result.get("event_slug"),
    )


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: Annotated[str | None, Header(alias="stripe-signature")] = None,
):
    """
    Receive Stripe events.

    The raw body is verified against the stripe-signature header before
    anything is parsed.
    """
    payload = await request.body()
    result = await run_in_threadpool(PaymentService.handle_webhook, payload, stripe_signature)
    dispatch_actions(result["actions"])
    return WebhookAck()
