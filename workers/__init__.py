# =============================================================================
# workers/ - Celery Background Task Workers
# =============================================================================
# This package contains the Celery configuration and task definitions for
# background work the API shouldn't wait on: customer emails and periodic
# cleanup of expired email verifications.
#
# Components:
# - celery_app.py: Celery application configuration
# - tasks.py: Task definitions (emails, cleanup)
# - config.py: Worker-specific settings and the beat schedule
#
# Usage:
#   # Start worker (with the embedded beat scheduler)
#   celery -A workers.celery_app worker -B --loglevel=info
#
#   # Submit task (from API)
#   from workers.tasks import send_ticket_email_task
#   result = send_ticket_email_task.delay(order_id, customer_email)
# =============================================================================

from .celery_app import celery_app
from . import tasks

__all__ = [
    "celery_app",
    "tasks",
]
