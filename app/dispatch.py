# =============================================================================
# app/dispatch.py - Fire-and-Forget Task Submission
# =============================================================================
# Routers hand follow-up emails to the Celery worker. Submission problems
# (Redis down, worker misconfigured) are logged and never fail the request
# that triggered them: the booking or payment has already been committed.
# =============================================================================

import logging
from typing import Any

logger = logging.getLogger(__name__)


def enqueue_ticket_email(order_id: str, customer_email: str | None) -> str | None:
    """Queue the ticket email for an order. Returns the task ID or None."""
    if not customer_email:
        logger.warning(f"Order {order_id} has no customer email; skipping ticket email")
        return None

    try:
        from workers.tasks import send_ticket_email_task

        result = send_ticket_email_task.delay(order_id, customer_email)
        logger.info(f"Queued ticket email for order {order_id} (task {result.id})")
        return result.id

    except Exception as e:
        logger.error(f"Failed to queue ticket email for order {order_id}: {e}")
        return None


def enqueue_reservation_confirmation(reservation_id: str) -> str | None:
    """Queue the confirmation email for a reservation. Returns the task ID or None."""
    try:
        from workers.tasks import send_reservation_confirmation_task

        result = send_reservation_confirmation_task.delay(reservation_id)
        logger.info(f"Queued confirmation email for reservation {reservation_id} (task {result.id})")
        return result.id

    except Exception as e:
        logger.error(f"Failed to queue confirmation email for reservation {reservation_id}: {e}")
        return None


def dispatch_actions(actions: list[tuple[Any, ...]]) -> None:
    """
    Run follow-up actions returned by the payment service.

    Each action is ("ticket_email", order_id, email) or
    ("reservation_confirmation", reservation_id).
    """
    for action in actions:
        kind = action[0]
        if kind == "ticket_email":
            enqueue_ticket_email(action[1], action[2])
        elif kind == "reservation_confirmation":
            enqueue_reservation_confirmation(action[1])
        else:
            logger.warning(f"Unknown follow-up action: {kind}")
