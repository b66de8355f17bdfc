# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - health.py: Health check endpoints
# - content.py: Menu, events, offers, gallery and site content
# - revalidate.py: Content cache revalidation
# - reservations.py: Availability and table bookings
# - orders.py: Online ordering
# - tickets.py: Event ticket purchase and completion
# - payments.py: Stripe checkout, verification and webhooks
# - email.py: OTP verification and email sending
# - images.py: Storage image proxy
#
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import health
from . import content
from . import revalidate
from . import reservations
from . import orders
from . import tickets
from . import payments
from . import email
from . import images

__all__ = [
    "health",
    "content",
    "revalidate",
    "reservations",
    "orders",
    "tickets",
    "payments",
    "email",
    "images",
]
