"""
Order service — the orchestration core.

Coordinates the order store with two remote collaborators:
    - the product catalog (validate_products) for prices and names
    - the payment gateway (create.payment.session) for checkout sessions

Every operation runs as its own unit of work with its own session. Failures
surface as DomainError subclasses (see domain/errors.py); nothing is retried
or compensated here beyond the store's transaction atomicity.

Returned orders are plain dicts. Point lookups (create_order, find_one) carry
an ``items`` list decorated with product names from the catalog; listing and
change_status return bare order rows without ``items``.
"""
import logging
import math
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database import Database
from db_models import Order, OrderItem, OrderReceipt
from domain.enums import OrderStatus
from domain.errors import (
    ConflictError,
    DependencyError,
    DomainError,
    NotFoundError,
    ProductValidationError,
    StorageError,
    ValidationError,
)
from models import PaidOrderNotification, PaymentSessionItem, ProductRecord
from services.payment_client import PaymentGateway
from services.product_client import ProductValidator

logger = logging.getLogger(__name__)


@contextmanager
def _storage_guard(action: str):
    """Re-raise store failures as StorageError."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Storage failure while trying to {action}: {e}")
        raise StorageError(f"Failed to {action}", cause=e) from e


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is written as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def serialize_order(order: Order) -> dict:
    return {
        "id": order.id,
        "total_amount": order.total_amount,
        "total_items": order.total_items,
        "status": order.status,
        "paid": order.paid,
        "paid_at": _as_utc(order.paid_at),
        "payment_charge_id": order.payment_charge_id,
        "created_at": _as_utc(order.created_at),
        "updated_at": _as_utc(order.updated_at),
    }


def _decorate_items(items: Sequence[OrderItem], names: dict[str, str | None]) -> list[dict]:
    return [
        {
            "product_id": item.product_id,
            "quantity": item.quantity,
            "price": item.price,
            "name": names.get(item.product_id),
        }
        for item in items
    ]


async def _load_order(db: AsyncSession, order_id: str, *, with_items: bool = True) -> Order | None:
    query = select(Order).where(Order.id == order_id)
    if with_items:
        query = query.options(selectinload(Order.items)).execution_options(populate_existing=True)
    res = await db.execute(query)
    return res.scalar_one_or_none()


class OrderService:
    """Order lifecycle orchestration over an injected store, catalog and gateway."""

    def __init__(
        self,
        database: Database,
        products: ProductValidator,
        payments: PaymentGateway,
        *,
        currency: str = "usd",
    ):
        self.database = database
        self.products = products
        self.payments = payments
        self.currency = currency

    # ════════════════════════════════════════════════════════════════
    # Creation
    # ════════════════════════════════════════════════════════════════

    async def create_order(self, items: Sequence[dict]) -> dict:
        """
        Validate items against the catalog, price them and persist the order.

        items: [{product_id: str, quantity: int}]. Any client-supplied price is
        ignored; the catalog price is the one charged and snapshotted.

        Raises:
            ValidationError: empty cart, blank product id or non-positive quantity
            ProductValidationError: catalog did not return some product (no write happens)
            DependencyError: catalog unreachable or errored
            StorageError: the order could not be persisted
        """
        try:
            return await self._create_order(items)
        except DomainError:
            raise
        except Exception as e:
            logger.error(f"Order creation failed unexpectedly: {e}", exc_info=True)
            raise DomainError("Order creation failed", status_code=500, cause=e) from e

    async def _create_order(self, items: Sequence[dict]) -> dict:
        if not items:
            raise ValidationError("Order must contain at least one item", field="items")

        requested: list[tuple[str, int]] = []
        for i in items:
            pid = str(i.get("product_id") or "").strip()
            qty = i.get("quantity", 0)
            if not pid:
                raise ValidationError("Product id is required", field="product_id")
            if not isinstance(qty, int) or isinstance(qty, bool):
                raise ValidationError(f"Quantity must be a whole number for product {pid}", field="quantity")
            if qty <= 0:
                raise ValidationError(f"Quantity must be positive for product {pid}", field="quantity")
            requested.append((pid, qty))

        product_ids = list(dict.fromkeys(pid for pid, _ in requested))
        products = await self._resolve_products(product_ids)

        missing = [pid for pid in product_ids if pid not in products]
        if missing:
            logger.warning(f"Order rejected, unknown products: {missing}")
            raise ProductValidationError(missing)

        total_amount = sum((products[pid].price * qty for pid, qty in requested), Decimal("0"))
        total_items = sum(qty for _, qty in requested)

        with _storage_guard("persist order"):
            async with self.database.session() as db:
                order = Order(
                    total_amount=total_amount,
                    total_items=total_items,
                    status=OrderStatus.PENDING.value,
                    paid=False,
                )
                db.add(order)
                await db.flush()

                for pid, qty in requested:
                    db.add(
                        OrderItem(
                            order_id=order.id,
                            product_id=pid,
                            quantity=qty,
                            price=products[pid].price,
                        )
                    )
                await db.commit()

                order = await _load_order(db, order.id)

        logger.info(
            f"🧾 Order created: {order.id} ({total_items} item(s), total {total_amount})"
        )

        result = serialize_order(order)
        result["items"] = _decorate_items(order.items, {pid: p.name for pid, p in products.items()})
        return result

    async def _resolve_products(self, product_ids: Sequence[str]) -> dict[str, ProductRecord]:
        try:
            records = await self.products.validate_products(product_ids)
        except DomainError:
            raise
        except Exception as e:
            logger.error(f"Product validation failed: {e}")
            raise DependencyError("Product validation failed", service="products", cause=e) from e
        return {record.id: record for record in records}

    # ════════════════════════════════════════════════════════════════
    # Queries
    # ════════════════════════════════════════════════════════════════

    async def find_all(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        status: OrderStatus | str | None = None,
    ) -> dict:
        """
        One page of orders in creation order, with pagination metadata.

        A page past the last one returns empty data, not an error.
        """
        if page < 1:
            raise ValidationError("Page must be >= 1", field="page")
        if limit < 1:
            raise ValidationError("Limit must be >= 1", field="limit")

        status_value = OrderStatus(status).value if status is not None else None

        count_query = select(func.count(Order.id))
        page_query = (
            select(Order)
            .order_by(Order.created_at.asc(), Order.id.asc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        if status_value is not None:
            count_query = count_query.where(Order.status == status_value)
            page_query = page_query.where(Order.status == status_value)

        with _storage_guard("list orders"):
            async with self.database.session() as db:
                total = (await db.execute(count_query)).scalar_one()
                orders = (await db.execute(page_query)).scalars().all()

        last_page = math.ceil(total / limit)
        return {
            "data": [serialize_order(o) for o in orders],
            "meta": {
                "page": page,
                "total": total,
                "totalPages": last_page,
                "lastPage": last_page,
            },
        }

    async def find_one(self, order_id: str) -> dict:
        """
        Order with its items, each named from a fresh catalog lookup.

        Items whose product the catalog no longer knows keep name=None; the
        order itself is historical and still returned.
        """
        with _storage_guard("load order"):
            async with self.database.session() as db:
                order = await _load_order(db, order_id)

        if order is None:
            raise NotFoundError("Order", order_id)

        product_ids = list(dict.fromkeys(item.product_id for item in order.items))
        products = await self._resolve_products(product_ids) if product_ids else {}

        unnamed = [pid for pid in product_ids if pid not in products]
        if unnamed:
            logger.warning(f"Order {order_id}: catalog has no record for {unnamed}")

        result = serialize_order(order)
        result["items"] = _decorate_items(order.items, {pid: p.name for pid, p in products.items()})
        return result

    # ════════════════════════════════════════════════════════════════
    # Status
    # ════════════════════════════════════════════════════════════════

    async def change_status(self, order_id: str, status: OrderStatus | str) -> dict:
        """
        Move an order to another status.

        Same status: the find_one result is returned as-is and nothing is written.
        Otherwise only the status column is updated and the bare order row is
        returned (no items, no names).
        """
        target = OrderStatus(status)
        order = await self.find_one(order_id)

        if order["status"] == target.value:
            return order

        if target is OrderStatus.PAID:
            raise ValidationError(
                "Orders become PAID only through payment confirmation", field="status"
            )

        with _storage_guard("update order status"):
            async with self.database.session() as db:
                await db.execute(
                    update(Order)
                    .where(Order.id == order_id)
                    .values(status=target.value)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
                updated = await _load_order(db, order_id, with_items=False)

        logger.info(f"Order {order_id} status: {order['status']} → {target.value}")
        return serialize_order(updated)

    # ════════════════════════════════════════════════════════════════
    # Payments
    # ════════════════════════════════════════════════════════════════

    async def create_payment_session(self, order: dict) -> Any:
        """
        Ask the payment gateway for a checkout session for an order with named items.

        Returns the gateway payload unmodified. No local state changes.
        """
        items = [
            PaymentSessionItem(
                name=item.get("name") or item["product_id"],
                price=float(item["price"]),
                quantity=item["quantity"],
            )
            for item in order["items"]
        ]

        try:
            session = await self.payments.create_payment_session(
                order_id=order["id"],
                currency=self.currency,
                items=items,
            )
        except DependencyError as e:
            logger.error(f"Payment session for order {order['id']} failed: {e}")
            raise
        except Exception as e:
            logger.error(f"Payment session for order {order['id']} failed: {e}")
            raise DependencyError("Payment session creation failed", service="payments", cause=e) from e

        logger.info(f"💳 Payment session created for order {order['id']}")
        return session

    async def paid_order(self, notification: PaidOrderNotification) -> dict:
        """
        Mark an order as paid and create its receipt, in one transaction.

        The update only applies while the order is unpaid, so re-delivery is safe:
          - already paid with the same charge id → no-op, stored order returned
          - already paid with another charge id → ConflictError
          - unknown order → NotFoundError
        """
        order_id = notification.order_id
        charge_id = notification.payment_charge_id
        logger.info(f"Order paid notification: order={order_id} charge={charge_id}")

        now = datetime.now(timezone.utc)

        with _storage_guard("finalize paid order"):
            async with self.database.session() as db:
                res = await db.execute(
                    update(Order)
                    .where(Order.id == order_id, Order.paid.is_(False))
                    .values(
                        status=OrderStatus.PAID.value,
                        paid=True,
                        paid_at=now,
                        payment_charge_id=charge_id,
                    )
                    .execution_options(synchronize_session=False)
                )

                if res.rowcount == 0:
                    existing = await _load_order(db, order_id, with_items=False)
                    if existing is None:
                        raise NotFoundError("Order", order_id)
                    if existing.payment_charge_id == charge_id:
                        logger.warning(f"Order {order_id} already paid with {charge_id}, ignoring replay")
                        return serialize_order(existing)
                    raise ConflictError(
                        f"Order {order_id} already paid with a different charge",
                        details={"order_id": order_id, "payment_charge_id": charge_id},
                    )

                db.add(OrderReceipt(order_id=order_id, receipt_url=notification.receipt_url))
                await db.commit()

                order = await _load_order(db, order_id, with_items=False)

        logger.info(f"✅ Order {order_id} marked PAID (charge {charge_id})")

        result = serialize_order(order)
        result["receipt_url"] = notification.receipt_url
        return result
