"""
SQLAlchemy ORM models for the Orders Service.

Tables:
    orders          — one row per order with aggregated totals and payment state
    order_items     — priced line items (price is a snapshot taken at creation)
    order_receipts  — payment receipt, one-to-one with a paid order

product_id on order_items is an opaque reference into the product catalog
service, not a foreign key; products are not stored here.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, DateTime, Text, ForeignKey,
    CheckConstraint, Index,
)
from sqlalchemy.orm import relationship

from database import Base
from domain.enums import OrderStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Order(Base):
    """A customer's purchase record."""
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_new_id)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_items = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value, index=True)
    paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_charge_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    items = relationship(
        "OrderItem", back_populates="order", lazy="raise", order_by="OrderItem.id"
    )
    receipt = relationship("OrderReceipt", back_populates="order", uselist=False, lazy="raise")

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_amount_non_negative"),
        CheckConstraint("total_items >= 0", name="ck_orders_total_items_non_negative"),
        # For paginated listing filtered by status, in creation order
        Index("ix_orders_status_created", "status", "created_at"),
    )


class OrderItem(Base):
    """One priced, quantified reference to an externally-owned product."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)  # snapshot at creation, never re-derived

    # Relationships
    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("price >= 0", name="ck_order_items_price_non_negative"),
    )


class OrderReceipt(Base):
    """Payment receipt created by paid finalization."""
    __tablename__ = "order_receipts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), unique=True, nullable=False)
    receipt_url = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    # Relationships
    order = relationship("Order", back_populates="receipt")
