import pytest
from httpx import ASGITransport, AsyncClient

from summit_api.models.passes import PassTier
from summit_api.services.ticketing.client import TicketingClient
from summit_api.services.ticketing.signatures import compute_signature, payment_signature_message

from factories import create_pass, create_user, ticketing_client

MEMBER = {"X-Auth-User": "auth_ada", "X-Auth-Email": "ada@example.com"}


@pytest.fixture
def mocked_ticketing(monkeypatch):
    client = ticketing_client(["order_api_up"])
    monkeypatch.setattr(TicketingClient, "from_settings", classmethod(lambda cls, config=None: client))
    return client


@pytest.mark.asyncio
async def test_upgrade_flow_over_http(app_with_db, mocked_ticketing) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        user = await create_user(session, "ada@example.com", external_id="auth_ada")
        await create_pass(session, user, pass_code="ESUMMIT-2026-AAAAA", tier=PassTier.PIXEL)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        eligibility = await client.get("/api/v1/upgrades/ESUMMIT-2026-AAAAA/eligibility", headers=MEMBER)
        assert eligibility.status_code == 200
        assert eligibility.json()["canUpgrade"] is True
        assert [option["tier"] for option in eligibility.json()["options"]] == ["silicon", "quantum"]

        initiated = await client.post(
            "/api/v1/upgrades/ESUMMIT-2026-AAAAA/initiate",
            json={"toTier": "Quantum Pass"},
            headers=MEMBER,
        )
        assert initiated.status_code == 200
        order = initiated.json()
        assert order["paymentOrderRef"] == "order_api_up"
        assert float(order["fee"]) == 700

        signature = compute_signature("test-secret", payment_signature_message("order_api_up", "pay_api_up"))
        completed = await client.post(
            "/api/v1/upgrades/ESUMMIT-2026-AAAAA/complete",
            json={"toTier": "quantum", "orderId": "order_api_up", "paymentId": "pay_api_up", "signature": signature},
            headers=MEMBER,
        )
        assert completed.status_code == 200
        body = completed.json()
        assert body["pass"]["tier"] == "quantum"
        assert float(body["pass"]["price"]) == 999
        assert float(body["upgradeRecord"]["fee"]) == 700
        assert body["upgradeRecord"]["paymentReference"] == "pay_api_up"

        history = await client.get("/api/v1/upgrades/ESUMMIT-2026-AAAAA/history", headers=MEMBER)
        assert len(history.json()) == 1

        downgrade = await client.post(
            "/api/v1/upgrades/ESUMMIT-2026-AAAAA/initiate",
            json={"toTier": "silicon"},
            headers=MEMBER,
        )
        assert downgrade.status_code == 400


@pytest.mark.asyncio
async def test_upgrade_rejects_foreign_pass_and_unknown_tier(app_with_db, mocked_ticketing) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        owner = await create_user(session, "owner@example.com", external_id="auth_owner")
        await create_pass(session, owner, pass_code="ESUMMIT-2026-OWNED", tier=PassTier.PIXEL)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        foreign = await client.get("/api/v1/upgrades/ESUMMIT-2026-OWNED/eligibility", headers=MEMBER)
        missing = await client.get("/api/v1/upgrades/ESUMMIT-2026-NONE/eligibility", headers=MEMBER)
        unknown = await client.post(
            "/api/v1/upgrades/ESUMMIT-2026-OWNED/initiate",
            json={"toTier": "platinum"},
            headers={"X-Auth-User": "auth_owner"},
        )

    assert foreign.status_code == 403
    assert missing.status_code == 404
    assert unknown.status_code == 400
