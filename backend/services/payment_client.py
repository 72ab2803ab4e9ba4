"""
Payment session capability — the order core's view of the payment gateway.
"""
from typing import Any, Protocol, Sequence

from domain.constants import CREATE_PAYMENT_SESSION_PATTERN
from models import PaymentSessionItem
from services.rpc_client import RpcClient


class PaymentGateway(Protocol):
    async def create_payment_session(
        self, *, order_id: str, currency: str, items: Sequence[PaymentSessionItem]
    ) -> Any:
        """Return the gateway's session payload (e.g. checkout URL)."""
        ...


class RpcPaymentGateway:
    """PaymentGateway backed by the payments service's 'create.payment.session' handler."""

    def __init__(self, rpc: RpcClient):
        self.rpc = rpc

    async def create_payment_session(
        self, *, order_id: str, currency: str, items: Sequence[PaymentSessionItem]
    ) -> Any:
        return await self.rpc.send(
            CREATE_PAYMENT_SESSION_PATTERN,
            {
                "orderId": order_id,
                "currency": currency,
                "items": [item.model_dump() for item in items],
            },
        )
