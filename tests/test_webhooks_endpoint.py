import json

import pytest
from httpx import ASGITransport, AsyncClient

from summit_api.core.settings import settings
from summit_api.observability.passes import get_pass_observability_store
from summit_api.services.ticketing.signatures import compute_signature


@pytest.mark.asyncio
async def test_ticketing_webhook_requires_valid_signature(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "ticketing_webhook_secret", "whsec_test")
    body = json.dumps(
        {
            "event": "ticket.issued",
            "orderId": "KON-ORD-9",
            "ticketId": "KON-TKT-9",
            "email": "walkin@example.com",
            "tier": "Pixel Pass",
        }
    ).encode()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        rejected = await client.post(
            "/api/v1/webhooks/ticketing",
            content=body,
            headers={"X-Ticketing-Signature": "bad", "Content-Type": "application/json"},
        )
        headers = {
            "X-Ticketing-Signature": compute_signature("whsec_test", body),
            "X-Ticketing-Delivery": "dlv_1",
            "Content-Type": "application/json",
        }
        accepted = await client.post("/api/v1/webhooks/ticketing", content=body, headers=headers)
        duplicate = await client.post("/api/v1/webhooks/ticketing", content=body, headers=headers)

    assert rejected.status_code == 400
    assert accepted.status_code == 200
    assert accepted.json() == {"success": True, "message": "synced", "duplicate": False}
    assert duplicate.json()["duplicate"] is True

    snapshot = get_pass_observability_store().snapshot().as_dict()
    assert snapshot["webhooks"]["totals"]["failed"]["ticketing.signature_error"] == 1
    assert snapshot["webhooks"]["totals"]["processed"]["ticket.issued"] == 2


@pytest.mark.asyncio
async def test_webhook_without_secret_outside_development(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "environment", "production")
    monkeypatch.setattr(settings, "identity_webhook_secret", "")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/webhooks/identity",
            json={"type": "user.created", "userId": "auth_1", "email": "a@example.com"},
        )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_identity_webhook_and_malformed_payload(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "identity_webhook_secret", "idsec")
    body = json.dumps({"type": "user.created", "userId": "auth_2", "email": "b@example.com"}).encode()
    malformed = b'{"type": "user.created"}'

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        created = await client.post(
            "/api/v1/webhooks/identity",
            content=body,
            headers={"X-Identity-Signature": compute_signature("idsec", body), "X-Identity-Delivery": "id_1"},
        )
        invalid = await client.post(
            "/api/v1/webhooks/identity",
            content=malformed,
            headers={"X-Identity-Signature": compute_signature("idsec", malformed)},
        )

    assert created.json()["message"] == "created"
    assert invalid.status_code == 400
