import json
from decimal import Decimal

import httpx
import pytest

from summit_api.services.ticketing.client import TicketingClient, TicketingProviderError
from summit_api.services.ticketing.signatures import (
    compute_signature,
    payment_signature_message,
    verify_payment_signature,
    verify_signature,
)

from factories import ticketing_client


@pytest.mark.asyncio
async def test_create_payment_order_posts_minor_units():
    requests = []
    client = ticketing_client(["order_abc"], requests=requests)

    order = await client.create_payment_order(
        amount=Decimal("700"),
        currency="INR",
        receipt="upgrade_1",
        notes={"kind": "upgrade"},
    )

    assert order.order_id == "order_abc"
    assert order.amount == Decimal("700")
    request = requests[0]
    assert request.url.path == "/v1/orders"
    assert request.headers["authorization"].startswith("Basic ")
    assert json.loads(request.content) == {
        "amount": 70000,
        "currency": "INR",
        "receipt": "upgrade_1",
        "notes": {"kind": "upgrade"},
    }


@pytest.mark.asyncio
async def test_provider_error_status_is_wrapped():
    client = TicketingClient(
        base_url="https://ticketing.test",
        api_key="key",
        api_secret="secret",
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")),
    )

    with pytest.raises(TicketingProviderError):
        await client.create_payment_order(amount=Decimal("299"), currency="INR", receipt="r")


@pytest.mark.asyncio
async def test_missing_order_id_is_rejected():
    client = TicketingClient(
        base_url="https://ticketing.test",
        api_key="key",
        api_secret="secret",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"status": "created"})),
    )

    with pytest.raises(TicketingProviderError):
        await client.create_payment_order(amount=Decimal("299"), currency="INR", receipt="r")


@pytest.mark.asyncio
async def test_unconfigured_client_issues_local_orders_only_when_allowed():
    local = TicketingClient(base_url="https://ticketing.test", api_key="", api_secret="", allow_local_orders=True)
    order = await local.create_payment_order(amount=Decimal("299"), currency="INR", receipt="r")
    assert order.order_id.startswith("order_local_")

    strict = TicketingClient(base_url="https://ticketing.test", api_key="", api_secret="")
    with pytest.raises(TicketingProviderError):
        await strict.create_payment_order(amount=Decimal("299"), currency="INR", receipt="r")


def test_payment_signature_verification():
    signature = compute_signature("secret", payment_signature_message("order_1", "pay_1"))

    assert verify_payment_signature("secret", "order_1", "pay_1", signature)
    assert verify_payment_signature("secret", "order_1", "pay_1", signature.upper())
    assert not verify_payment_signature("secret", "order_1", "pay_2", signature)
    assert not verify_payment_signature("", "order_1", "pay_1", signature)
    assert not verify_signature("secret", b"body", None)


def test_client_verifies_provider_signatures_and_accepts_own_local_orders():
    configured = TicketingClient(base_url="https://ticketing.test", api_key="key", api_secret="secret")
    signature = compute_signature("secret", payment_signature_message("order_1", "pay_1"))
    assert configured.verify_payment("order_1", "pay_1", signature)
    assert not configured.verify_payment("order_1", "pay_1", "bogus")
    assert not configured.verify_payment("order_local_abc", "pay_1", "")

    local = TicketingClient(base_url="https://ticketing.test", api_key="", api_secret="", allow_local_orders=True)
    assert local.verify_payment("order_local_abc", "pay_local", "")
    assert not local.verify_payment("order_provider_1", "pay_1", "anything")

    strict = TicketingClient(base_url="https://ticketing.test", api_key="", api_secret="")
    assert not strict.verify_payment("order_local_abc", "pay_local", "")
