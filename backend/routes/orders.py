"""
Order endpoints — create, list, look up, change status, open payment sessions.
"""

import logging

from fastapi import APIRouter, Depends, Path, Query

from deps import PageParams, get_order_service, page_params
from domain.enums import OrderStatus
from domain.errors import ConflictError
from domain.responses import page_response, success_response
from models import ChangeOrderStatusRequest, CreateOrderRequest
from services.order_service import OrderService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("")
async def create_order(
    request: CreateOrderRequest,
    service: OrderService = Depends(get_order_service),
):
    """Create an order from catalog prices, then open its payment session."""
    order = await service.create_order(
        [{"product_id": i.product_id, "quantity": i.quantity} for i in request.items]
    )
    payment_session = await service.create_payment_session(order)
    return success_response(data={"order": order, "paymentSession": payment_session})


@router.get("")
async def list_orders(
    params: PageParams = Depends(page_params),
    service: OrderService = Depends(get_order_service),
):
    page = await service.find_all(page=params["page"], limit=params["limit"], status=params["status"])
    return page_response(page)


@router.get("/status/{status}")
async def list_orders_by_status(
    status: OrderStatus,
    page: int = Query(1, ge=1, le=100_000),
    limit: int = Query(10, ge=1, le=200),
    service: OrderService = Depends(get_order_service),
):
    result = await service.find_all(page=page, limit=limit, status=status)
    return page_response(result)


@router.get("/{order_id}")
async def get_order(
    order_id: str = Path(..., min_length=1, max_length=36),
    service: OrderService = Depends(get_order_service),
):
    order = await service.find_one(order_id)
    return success_response(data=order)


@router.patch("/{order_id}/status")
async def change_order_status(
    request: ChangeOrderStatusRequest,
    order_id: str = Path(..., min_length=1, max_length=36),
    service: OrderService = Depends(get_order_service),
):
    order = await service.change_status(order_id, request.status)
    return success_response(data=order)


@router.post("/{order_id}/payment-session")
async def create_payment_session(
    order_id: str = Path(..., min_length=1, max_length=36),
    service: OrderService = Depends(get_order_service),
):
    """Open a new payment session for an existing order (e.g. after an expired checkout)."""
    order = await service.find_one(order_id)
    if order["paid"]:
        raise ConflictError(f"Order {order_id} is already paid")

    payment_session = await service.create_payment_session(order)
    return success_response(data={"order": order, "paymentSession": payment_session})
