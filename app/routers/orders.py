# =============================================================================
# app/routers/orders.py - Online Ordering Endpoints
# =============================================================================

from fastapi import APIRouter

from core.models.order import OrderCreate, OrderCreateResponse
from core.services.order_service import OrderService

router = APIRouter()


@router.post("", response_model=OrderCreateResponse, status_code=201)
async def create_order(request: OrderCreate):
    """
    Place a pickup, delivery or dine-in order.

    Prices are taken from the menu, not the request. The response carries
    the generated order_number and the computed subtotal, tax and total.
    """
    order = OrderService.create_order(request)
    return OrderCreateResponse(order=order)
