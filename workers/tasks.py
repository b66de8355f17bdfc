# =============================================================================
# workers/tasks.py - Celery Task Definitions
# =============================================================================
# Defines background tasks for customer email and housekeeping.
#
# Tasks:
# - send_ticket_email_task: Ticket email with inline QR codes
# - send_reservation_confirmation_task: Reservation confirmed / received
# - send_email_task: Arbitrary HTML email
# - cleanup_expired_verifications: Periodic purge of expired OTPs and
#   verified emails (celery beat)
#
# Email tasks retry delivery failures (SMTP hiccups) but give up at once
# when the order or reservation doesn't exist.
# =============================================================================

import logging
from typing import Any

from celery import shared_task

logger = logging.getLogger(__name__)


def _retry_or_fail(task, error: str | None) -> dict[str, Any]:
    """Schedule a retry while attempts remain, else report the failure."""
    if task.request.retries < task.max_retries:
        logger.warning(f"{task.name} delivery failed ({error}), retrying")
        raise task.retry()
    logger.error(f"{task.name} giving up after {task.request.retries} retries: {error}")
    return {"success": False, "error": error}


# =============================================================================
# Email Tasks
# =============================================================================

@shared_task(bind=True, name="workers.tasks.send_ticket_email_task")
def send_ticket_email_task(self, order_id: str, customer_email: str) -> dict[str, Any]:
    """
    Send the ticket email for an order.

    Args:
        order_id: Ticket order UUID
        customer_email: Recipient

    Returns:
        Dict with success and, on failure, error
    """
    from app.exceptions import GoodTimesException
    from core.services.email_service import EmailService

    logger.info(f"Sending tickets for order {order_id} to {customer_email}")

    try:
        result = EmailService.send_ticket_email(order_id, customer_email)
    except GoodTimesException as e:
        logger.error(f"Ticket email for order {order_id} not sent: {e.message}")
        return {"success": False, "error": e.message}

    if not result.success:
        return _retry_or_fail(self, result.error)

    return {"success": True, "message_id": result.message_id}


@shared_task(bind=True, name="workers.tasks.send_reservation_confirmation_task")
def send_reservation_confirmation_task(self, reservation_id: str) -> dict[str, Any]:
    """
    Send a reservation's confirmation (or pending) email.

    Args:
        reservation_id: Reservation UUID

    Returns:
        Dict with success and, on failure, error
    """
    from app.exceptions import GoodTimesException
    from core.services.email_service import NO_EMAIL_ADDRESS, EmailService

    logger.info(f"Sending confirmation for reservation {reservation_id}")

    try:
        result = EmailService.send_reservation_confirmation(reservation_id)
    except GoodTimesException as e:
        logger.error(f"Confirmation for reservation {reservation_id} not sent: {e.message}")
        return {"success": False, "error": e.message}

    if not result.success:
        if result.error == NO_EMAIL_ADDRESS:
            return {"success": False, "error": result.error}
        return _retry_or_fail(self, result.error)

    return {"success": True, "message_id": result.message_id}


@shared_task(bind=True, name="workers.tasks.send_email_task")
def send_email_task(self, to: str, subject: str, html: str) -> dict[str, Any]:
    """Send an HTML email over SMTP."""
    from core.services.email_service import EmailService

    result = EmailService.send_raw(to, subject, html)
    if not result.success:
        return _retry_or_fail(self, result.error)

    return {"success": True, "message_id": result.message_id}


# =============================================================================
# Housekeeping
# =============================================================================

@shared_task(bind=True, name="workers.tasks.cleanup_expired_verifications")
def cleanup_expired_verifications(self) -> dict[str, Any]:
    """
    Delete expired OTP codes and email verifications.

    Scheduled hourly by celery beat (see CeleryConfig.beat_schedule).

    Returns:
        Dict with the number of rows removed from each table
    """
    from core.services.otp_service import OTPStore, VerifiedEmailStore

    try:
        otps = OTPStore.cleanup_expired()
        verifications = VerifiedEmailStore.cleanup_expired()
    except Exception as e:
        logger.exception(f"Verification cleanup failed: {e}")
        return {"success": False, "error": str(e)}

    logger.info(f"Cleanup removed {otps} OTP(s) and {verifications} verification(s)")
    return {
        "success": True,
        "otp_verifications": otps,
        "verified_emails": verifications,
    }
