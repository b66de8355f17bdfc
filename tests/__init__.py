# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the Good Times API:
# - conftest.py: In-memory Supabase fake and shared fixtures
# - test_timezone.py, test_availability.py: Date/time and slot math
# - test_reservations.py, test_orders.py, test_tickets.py: Booking and sales
# - test_payments.py: Stripe checkout, verification and webhooks
# - test_otp.py, test_email.py: Verification codes and email delivery
# - test_content.py, test_image_proxy.py: Page content, cache and images
# - test_api.py: Endpoint tests through TestClient
# - test_workers.py: Celery tasks and dispatch
#
# Run tests with: pytest
# =============================================================================
