import pytest
from httpx import ASGITransport, AsyncClient

from summit_api.services.ticketing.client import TicketingClient
from summit_api.services.ticketing.signatures import compute_signature, payment_signature_message

from factories import ticketing_client

MEMBER = {"X-Auth-User": "auth_ada", "X-Auth-Email": "ada@example.com"}


@pytest.fixture
def mocked_ticketing(monkeypatch):
    client = ticketing_client(["order_api_buy"])
    monkeypatch.setattr(TicketingClient, "from_settings", classmethod(lambda cls, config=None: client))
    return client


@pytest.mark.asyncio
async def test_purchase_over_http(app_with_db, mocked_ticketing) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        order = await client.post("/api/v1/payments/orders", json={"tier": "Silicon Pass"}, headers=MEMBER)
        assert order.status_code == 200
        assert order.json()["orderId"] == "order_api_buy"
        assert float(order.json()["amount"]) == 499

        bad = await client.post(
            "/api/v1/payments/verify",
            json={"orderId": "order_api_buy", "paymentId": "pay_x", "signature": "deadbeef"},
            headers=MEMBER,
        )
        assert bad.status_code == 400

        signature = compute_signature("test-secret", payment_signature_message("order_api_buy", "pay_ok"))
        verified = await client.post(
            "/api/v1/payments/verify",
            json={"orderId": "order_api_buy", "paymentId": "pay_ok", "signature": signature},
            headers=MEMBER,
        )
        assert verified.status_code == 200
        body = verified.json()
        assert body["success"] is True
        assert body["pass"]["tier"] == "silicon"

        transaction = await client.get(f"/api/v1/payments/transactions/{body['transactionId']}", headers=MEMBER)
        assert transaction.json()["status"] == "completed"
        assert transaction.json()["paymentId"] == "pay_ok"

        second = await client.post("/api/v1/payments/orders", json={"tier": "quantum"}, headers=MEMBER)
        assert second.status_code == 409


@pytest.mark.asyncio
async def test_orders_are_private_to_their_buyer(app_with_db, mocked_ticketing) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        order = await client.post("/api/v1/payments/orders", json={"tier": "pixel"}, headers=MEMBER)
        stranger = {"X-Auth-User": "auth_eve", "X-Auth-Email": "eve@example.com"}
        failed = await client.post(
            "/api/v1/payments/failed",
            json={"orderId": order.json()["orderId"], "reason": "card_declined"},
            headers=stranger,
        )
        free = await client.post("/api/v1/payments/orders", json={"tier": "free"}, headers=stranger)

    assert failed.status_code == 403
    assert free.status_code == 400
