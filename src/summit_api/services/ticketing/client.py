"""HTTP client for the ticketing provider's payment order API."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any
from uuid import uuid4

import httpx
from loguru import logger

from summit_api.core.settings import Settings, settings as default_settings

from .signatures import verify_payment_signature

LOCAL_ORDER_PREFIX = "order_local_"


class TicketingProviderError(RuntimeError):
    """Raised when the ticketing provider rejects or fails a request."""


@dataclass(slots=True)
class PaymentOrder:
    order_id: str
    amount: Decimal
    currency: str
    receipt: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def _to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


class TicketingClient:
    """Creates payment orders with the ticketing provider."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        api_secret: str,
        timeout_seconds: float = 10.0,
        allow_local_orders: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._api_secret = api_secret
        self._timeout_seconds = timeout_seconds
        self._allow_local_orders = allow_local_orders
        self._transport = transport

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "TicketingClient":
        config = config or default_settings
        return cls(
            base_url=config.ticketing_api_base_url,
            api_key=config.ticketing_api_key,
            api_secret=config.ticketing_api_secret,
            timeout_seconds=config.ticketing_timeout_seconds,
            allow_local_orders=config.environment == "development",
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key and self._api_secret)

    def verify_payment(self, order_id: str, payment_id: str, signature: str | None) -> bool:
        """Check the provider signature for a paid order.

        Orders this client issued locally (unconfigured development setup) have
        no provider signature and are accepted as paid.
        """

        if self._allow_local_orders and not self.is_configured and order_id.startswith(LOCAL_ORDER_PREFIX):
            logger.warning("Accepting unsigned local payment order", order_id=order_id, payment_id=payment_id)
            return True
        return verify_payment_signature(self._api_secret, order_id, payment_id, signature)

    async def create_payment_order(
        self,
        *,
        amount: Decimal,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> PaymentOrder:
        if not self.is_configured:
            if not self._allow_local_orders:
                raise TicketingProviderError("Ticketing provider credentials are not configured")
            order_id = f"{LOCAL_ORDER_PREFIX}{uuid4().hex[:16]}"
            logger.warning(
                "Ticketing provider not configured; issuing local payment order",
                order_id=order_id,
                receipt=receipt,
            )
            return PaymentOrder(order_id=order_id, amount=Decimal(amount), currency=currency, receipt=receipt)

        payload = {
            "amount": _to_minor_units(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout_seconds,
                auth=(self._api_key, self._api_secret),
                transport=self._transport,
            ) as client:
                response = await client.post("/v1/orders", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Ticketing provider rejected payment order",
                status=exc.response.status_code,
                body=exc.response.text[:256],
                receipt=receipt,
            )
            raise TicketingProviderError(
                f"Ticketing provider returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Ticketing provider request failed", error=str(exc), receipt=receipt)
            raise TicketingProviderError("Ticketing provider unavailable") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise TicketingProviderError("Ticketing provider returned invalid JSON") from exc
        order_id = data.get("id") if isinstance(data, dict) else None
        if not order_id:
            raise TicketingProviderError("Ticketing provider response missing order id")

        logger.info("Created ticketing payment order", order_id=order_id, receipt=receipt)
        return PaymentOrder(
            order_id=str(order_id),
            amount=Decimal(amount),
            currency=str(data.get("currency") or currency),
            receipt=receipt,
            raw=data,
        )


__all__ = ["LOCAL_ORDER_PREFIX", "PaymentOrder", "TicketingClient", "TicketingProviderError"]
