"""
Pydantic models for request/response validation and remote payloads.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from domain.enums import OrderStatus


CENT = Decimal("0.01")


class ApiBase(BaseModel):
    """Shared base — allows construction by Python name or alias."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ── Order Requests ──────────────────────────────────────────────────

class OrderItemRequest(ApiBase):
    """One requested line: product and quantity."""
    product_id: str = Field(..., alias="productId", min_length=1, max_length=100)
    quantity: int = Field(..., gt=0)
    # Accepted for client compatibility but never used; prices come from the catalog.
    price: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator("product_id", mode="before")
    @classmethod
    def _coerce_product_id(cls, v):
        return str(v) if isinstance(v, int) else v


class CreateOrderRequest(ApiBase):
    """Request model for order creation."""
    items: List[OrderItemRequest] = Field(..., min_length=1)


class ChangeOrderStatusRequest(ApiBase):
    """Request model for a status transition."""
    status: OrderStatus


class PaidOrderNotification(ApiBase):
    """Inbound paid-order notification relayed from the payment gateway."""
    order_id: str = Field(..., alias="orderId", min_length=1)
    payment_charge_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("paymentChargeId", "stripePaymentId", "payment_charge_id"),
        serialization_alias="paymentChargeId",
    )
    receipt_url: str = Field(..., alias="receiptUrl", min_length=1)


# ── Remote Payloads ─────────────────────────────────────────────────

class ProductRecord(ApiBase):
    """Authoritative product record returned by the catalog service."""
    id: str
    price: Decimal = Field(..., ge=0)
    name: str

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        return str(v) if isinstance(v, int) else v

    @field_validator("price")
    @classmethod
    def _to_cents(cls, v: Decimal) -> Decimal:
        # Same scale as the Numeric(12, 2) price/total columns
        return v.quantize(CENT, rounding=ROUND_HALF_UP)


class PaymentSessionItem(ApiBase):
    """Billable line sent to the payment gateway (no product id)."""
    name: str
    price: float
    quantity: int
