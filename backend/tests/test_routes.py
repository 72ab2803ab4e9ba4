"""
Tests for API route endpoints.

Tests: health, orders CRUD/listing, payment sessions, paid-order webhook and
the error envelope, through the FastAPI app with the service overridden.
"""
import hashlib
import hmac
import json

import pytest
from fastapi import status
from sqlalchemy import func, select

from config import settings
from db_models import OrderReceipt
from domain.constants import PAYMENT_SIGNATURE_HEADER
from domain.errors import DependencyError
from services import payment_listener


def _signed(payload: dict) -> tuple[bytes, dict]:
    body = json.dumps(payload).encode("utf-8")
    signature = hmac.new(
        settings.payment_webhook_secret.encode("utf-8"), body, hashlib.sha256
    ).hexdigest()
    return body, {PAYMENT_SIGNATURE_HEADER: signature, "Content-Type": "application/json"}


async def _create(client, items=None) -> dict:
    response = await client.post(
        "/orders",
        json={"items": items or [{"productId": "A", "quantity": 2}, {"productId": "B", "quantity": 1}]},
    )
    assert response.status_code == status.HTTP_200_OK, response.text
    return response.json()["data"]


class TestHealthEndpoint:
    """Tests for GET /health."""

    @pytest.mark.asyncio
    async def test_health_returns_200(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database_connected"] is True


class TestOrderEndpoints:
    """Tests for /orders endpoints."""

    @pytest.mark.asyncio
    async def test_create_returns_order_and_payment_session(self, client, payments):
        data = await _create(client)

        order = data["order"]
        assert float(order["total_amount"]) == 25.0
        assert order["total_items"] == 3
        assert order["status"] == "PENDING"
        assert {i["name"] for i in order["items"]} == {"Keyboard", "Mouse"}
        assert data["paymentSession"]["url"].endswith(order["id"])
        assert len(payments.calls) == 1

    @pytest.mark.asyncio
    async def test_create_ignores_client_price(self, client):
        data = await _create(client, [{"productId": "A", "quantity": 1, "price": 0.5}])
        assert float(data["order"]["total_amount"]) == 10.0

    @pytest.mark.asyncio
    async def test_create_unknown_product(self, client, payments):
        response = await client.post(
            "/orders", json={"items": [{"productId": "nope", "quantity": 1}]}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "productvalidation"
        assert body["error"]["details"]["missing_product_ids"] == ["nope"]
        assert payments.calls == []

    @pytest.mark.asyncio
    async def test_create_rejects_malformed_body(self, client):
        response = await client.post("/orders", json={"items": [{"productId": "A", "quantity": 0}]})
        assert response.status_code == 422

        response = await client.post("/orders", json={"items": []})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_create_catalog_down_is_bad_gateway(self, client, unreachable_catalog):
        response = await client.post("/orders", json={"items": [{"productId": "A", "quantity": 1}]})

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["error"]["code"] == "dependency"
        assert response.json()["error"]["details"]["service"] == "products"

    @pytest.mark.asyncio
    async def test_get_order(self, client):
        created = (await _create(client))["order"]

        response = await client.get(f"/orders/{created['id']}")

        assert response.status_code == 200
        assert response.json()["data"]["id"] == created["id"]
        assert len(response.json()["data"]["items"]) == 2

    @pytest.mark.asyncio
    async def test_get_missing_order_is_404(self, client):
        response = await client.get("/orders/does-not-exist")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"]["code"] == "notfound"
        assert "does-not-exist" in response.json()["error"]["message"]

    @pytest.mark.asyncio
    async def test_list_orders_pagination(self, client):
        for _ in range(3):
            await _create(client)

        response = await client.get("/orders?page=2&limit=2")

        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 1
        assert body["meta"] == {"page": 2, "total": 3, "totalPages": 2, "lastPage": 2}

    @pytest.mark.asyncio
    async def test_list_orders_invalid_status(self, client):
        response = await client.get("/orders?status=SHIPPED")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_orders_by_status_path(self, client):
        created = (await _create(client))["order"]
        await _create(client)
        await client.patch(f"/orders/{created['id']}/status", json={"status": "DELIVERED"})

        response = await client.get("/orders/status/DELIVERED")

        assert response.status_code == 200
        assert [o["id"] for o in response.json()["data"]] == [created["id"]]

    @pytest.mark.asyncio
    async def test_change_status(self, client):
        created = (await _create(client))["order"]

        response = await client.patch(
            f"/orders/{created['id']}/status", json={"status": "CANCELLED"}
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "CANCELLED"
        assert "items" not in response.json()["data"]

    @pytest.mark.asyncio
    async def test_change_status_to_paid_rejected(self, client):
        created = (await _create(client))["order"]

        response = await client.patch(f"/orders/{created['id']}/status", json={"status": "PAID"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.asyncio
    async def test_new_payment_session_for_existing_order(self, client, payments):
        created = (await _create(client))["order"]

        response = await client.post(f"/orders/{created['id']}/payment-session")

        assert response.status_code == 200
        assert response.json()["data"]["paymentSession"]["url"].endswith(created["id"])
        assert len(payments.calls) == 2

    @pytest.mark.asyncio
    async def test_payment_gateway_down(self, client, payments):
        payments.error = DependencyError("payments service unavailable", service="payments")

        response = await client.post("/orders", json={"items": [{"productId": "A", "quantity": 1}]})

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["error"]["details"]["service"] == "payments"


class TestPaymentWebhook:
    """Tests for POST /webhooks/payments/succeeded."""

    @pytest.mark.asyncio
    async def test_paid_notification_finalizes_inline(self, client):
        created = (await _create(client))["order"]
        body, headers = _signed(
            {
                "orderId": created["id"],
                "stripePaymentId": "ch_3Nx",
                "receiptUrl": "https://pay.example.com/receipts/ch_3Nx",
            }
        )

        response = await client.post("/webhooks/payments/succeeded", content=body, headers=headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "PAID"
        assert data["paid"] is True
        assert data["payment_charge_id"] == "ch_3Nx"

        session = await client.post(f"/orders/{created['id']}/payment-session")
        assert session.status_code == status.HTTP_409_CONFLICT

    @pytest.mark.asyncio
    async def test_bad_signature_rejected(self, client):
        created = (await _create(client))["order"]
        body, headers = _signed(
            {"orderId": created["id"], "paymentChargeId": "ch_1", "receiptUrl": "https://r"}
        )
        headers[PAYMENT_SIGNATURE_HEADER] = "0" * 64

        response = await client.post("/webhooks/payments/succeeded", content=body, headers=headers)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        order = await client.get(f"/orders/{created['id']}")
        assert order.json()["data"]["paid"] is False

    @pytest.mark.asyncio
    async def test_invalid_payload_rejected(self, client):
        body, headers = _signed({"orderId": "x"})

        response = await client.post("/webhooks/payments/succeeded", content=body, headers=headers)

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @pytest.mark.asyncio
    async def test_unknown_order_is_404(self, client):
        body, headers = _signed(
            {"orderId": "ghost", "paymentChargeId": "ch_1", "receiptUrl": "https://r"}
        )

        response = await client.post("/webhooks/payments/succeeded", content=body, headers=headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_listener_status(self, client):
        response = await client.get("/payments/listener/status")

        assert response.status_code == 200
        assert response.json()["running"] is False

    @pytest.mark.asyncio
    async def test_paid_notification_queued_when_listener_running(
        self, client, database, order_service
    ):
        created = (await _create(client))["order"]
        body, headers = _signed(
            {
                "orderId": created["id"],
                "paymentChargeId": "ch_async",
                "receiptUrl": "https://pay.example.com/receipts/ch_async",
            }
        )

        await payment_listener.start(order_service)
        try:
            response = await client.post(
                "/webhooks/payments/succeeded", content=body, headers=headers
            )

            assert response.status_code == status.HTTP_202_ACCEPTED
            assert response.json()["data"] == {"status": "queued", "orderId": created["id"]}

            await payment_listener.drain()
        finally:
            await payment_listener.stop()

        order = (await client.get(f"/orders/{created['id']}")).json()["data"]
        assert order["status"] == "PAID"
        assert order["payment_charge_id"] == "ch_async"
        async with database.session() as db:
            receipts = (
                await db.execute(
                    select(func.count())
                    .select_from(OrderReceipt)
                    .where(OrderReceipt.order_id == created["id"])
                )
            ).scalar_one()
        assert receipts == 1
