"""
Payment webhook — inbound paid-order notifications from the payment gateway.

Notifications are HMAC-signed (see PAYMENT_SIGNATURE_HEADER). When the payment
listener is running they are queued and acknowledged with 202; otherwise the
order is finalized inline and returned.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from deps import get_order_service
from domain.constants import PAYMENT_SIGNATURE_HEADER
from domain.errors import UnauthorizedError, ValidationError
from domain.responses import success_response
from models import PaidOrderNotification
from services import payment_listener
from services.order_service import OrderService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["payments"])


@router.post("/webhooks/payments/succeeded")
async def payment_succeeded(
    request: Request,
    service: OrderService = Depends(get_order_service),
):
    body = await request.body()
    signature = request.headers.get(PAYMENT_SIGNATURE_HEADER, "")

    if not payment_listener.verify_webhook_signature(body, signature):
        logger.warning("Rejected paid notification with invalid signature")
        raise UnauthorizedError("Invalid notification signature")

    try:
        notification = PaidOrderNotification.model_validate_json(body)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid paid notification payload",
            details={"errors": e.error_count()},
        ) from e

    if payment_listener.get_status()["running"]:
        payment_listener.enqueue(notification)
        return JSONResponse(
            status_code=202,
            content=success_response(data={"status": "queued", "orderId": notification.order_id}),
        )

    order = await service.paid_order(notification)
    return success_response(data=order)


@router.get("/payments/listener/status")
async def get_listener_status():
    """Get the current status of the paid-notification listener."""
    return payment_listener.get_status()
