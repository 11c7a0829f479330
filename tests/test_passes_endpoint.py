import pytest
from httpx import ASGITransport, AsyncClient

from summit_api.core.settings import settings


@pytest.mark.asyncio
async def test_admin_issues_pass_and_member_reads_it(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "admin_api_key", "admin-key")
    admin = {"X-API-Key": "admin-key"}
    member = {"X-Auth-User": "auth_ada", "X-Auth-Email": "ada@example.com"}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        issued = await client.post(
            "/api/v1/passes",
            json={"email": "ada@example.com", "externalId": "auth_ada", "tier": "TCET Student Pass"},
            headers=admin,
        )
        again = await client.post(
            "/api/v1/passes",
            json={"email": "ada@example.com", "tier": "quantum"},
            headers=admin,
        )
        pass_code = issued.json()["passCode"]
        fetched = await client.get(f"/api/v1/passes/{pass_code}", headers=member)
        stranger = await client.get(
            f"/api/v1/passes/{pass_code}",
            headers={"X-Auth-User": "auth_eve", "X-Auth-Email": "eve@example.com"},
        )
        unauthorised = await client.post(
            "/api/v1/passes",
            json={"email": "bob@example.com", "tier": "pixel"},
        )

    assert issued.status_code == 201
    assert issued.json()["tier"] == "free"
    assert float(issued.json()["price"]) == 0
    assert again.status_code == 409
    assert fetched.json()["id"] == issued.json()["id"]
    assert stranger.status_code == 403
    assert unauthorised.status_code == 401
