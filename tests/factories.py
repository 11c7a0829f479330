"""Row builders shared by the test modules."""

from datetime import datetime, timezone
from decimal import Decimal

from summit_api.models.passes import Pass, PassStatusEnum, PassTier
from summit_api.models.user import User
from summit_api.services.passes.tiers import tier_price


async def create_user(session, email: str, *, external_id: str | None = None, full_name: str | None = None) -> User:
    user = User(email=email.lower(), external_id=external_id, full_name=full_name)
    session.add(user)
    await session.commit()
    return user


async def create_pass(
    session,
    user: User,
    *,
    pass_code: str,
    tier: PassTier = PassTier.PIXEL,
    status: PassStatusEnum = PassStatusEnum.ACTIVE,
    booking_id: str | None = None,
    external_order_id: str | None = None,
    qr_payload: str | None = None,
    price: Decimal | None = None,
) -> Pass:
    record = Pass(
        pass_code=pass_code,
        user_id=user.id,
        tier=tier,
        price=tier_price(tier) if price is None else price,
        status=status,
        booking_id=booking_id,
        external_order_id=external_order_id,
        qr_payload=qr_payload,
        purchased_at=datetime.now(timezone.utc),
    )
    session.add(record)
    await session.commit()
    return record


def ticketing_client(order_ids=None, *, secret: str = "test-secret", requests: list | None = None):
    """Configured ``TicketingClient`` backed by an ``httpx.MockTransport``."""

    import httpx

    from summit_api.services.ticketing.client import TicketingClient

    pending = list(order_ids or [])
    counter = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        counter["n"] += 1
        order_id = pending.pop(0) if pending else f"order_test_{counter['n']}"
        return httpx.Response(200, json={"id": order_id, "currency": "INR"})

    return TicketingClient(
        base_url="https://ticketing.test",
        api_key="key_test",
        api_secret=secret,
        transport=httpx.MockTransport(handler),
    )
