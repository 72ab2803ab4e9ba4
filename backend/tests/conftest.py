"""
Pytest configuration and shared fixtures for Orders Service tests.

Provides an in-memory SQLite store, in-process fakes for the product catalog
and payment gateway, an OrderService wired to them, and an HTTP client for
the FastAPI app with dependencies overridden.
"""
from decimal import Decimal
from typing import AsyncGenerator, Sequence

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event

from config import settings
from database import Database
from domain.errors import DependencyError
from models import PaymentSessionItem, ProductRecord
from services.order_service import OrderService

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
settings.payment_webhook_secret = "test-webhook-secret-for-pytest-only"


# ── Remote Service Fakes ─────────────────────────────────────────────


class FakeProductValidator:
    """Catalog fake: returns records for known ids, records every call."""

    def __init__(self, catalog: dict[str, tuple[str, str]] | None = None):
        # {product_id: (price, name)}
        self.catalog = dict(catalog or {})
        self.calls: list[list[str]] = []
        self.error: Exception | None = None

    async def validate_products(self, product_ids: Sequence[str]) -> list[ProductRecord]:
        self.calls.append(list(product_ids))
        if self.error is not None:
            raise self.error
        return [
            ProductRecord(id=pid, price=Decimal(price), name=name)
            for pid, (price, name) in self.catalog.items()
            if pid in product_ids
        ]


class FakePaymentGateway:
    """Gateway fake: returns a checkout payload, records every call."""

    def __init__(self):
        self.calls: list[dict] = []
        self.error: Exception | None = None

    async def create_payment_session(
        self, *, order_id: str, currency: str, items: Sequence[PaymentSessionItem]
    ) -> dict:
        self.calls.append({"order_id": order_id, "currency": currency, "items": list(items)})
        if self.error is not None:
            raise self.error
        return {
            "cancelUrl": "http://localhost:3003/payments/cancel",
            "successUrl": "http://localhost:3003/payments/success",
            "url": f"https://checkout.example.com/session/{order_id}",
        }


# ── Store / Service Fixtures ─────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def database() -> AsyncGenerator[Database, None]:
    """Fresh in-memory SQLite order store for each test."""
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.open()
    yield db
    await db.close()


@pytest.fixture
def products() -> FakeProductValidator:
    return FakeProductValidator(
        {
            "A": ("10.00", "Keyboard"),
            "B": ("5.00", "Mouse"),
            "C": ("19.99", "Headset"),
        }
    )


@pytest.fixture
def payments() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def order_service(database, products, payments) -> OrderService:
    return OrderService(database, products, payments, currency="usd")


@pytest.fixture
def write_counter(database):
    """Counts INSERT/UPDATE/DELETE statements sent to the store."""
    counts = {"writes": 0}

    def _count(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith(("INSERT", "UPDATE", "DELETE")):
            counts["writes"] += 1

    event.listen(database.engine.sync_engine, "before_cursor_execute", _count)
    yield counts
    event.remove(database.engine.sync_engine, "before_cursor_execute", _count)


@pytest.fixture
def unreachable_catalog(products) -> FakeProductValidator:
    products.error = DependencyError("products service unavailable", service="products")
    return products


# ── HTTP Client ──────────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def client(database, order_service) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the app, with the store and service overridden."""
    from main import app
    from deps import get_database, get_order_service

    app.dependency_overrides[get_order_service] = lambda: order_service
    app.dependency_overrides[get_database] = lambda: database

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
