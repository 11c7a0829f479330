"""Processors for signed ticketing and identity provider webhooks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.core.settings import settings
from summit_api.models.claims import PendingClaim
from summit_api.models.passes import Pass, PassStatusEnum
from summit_api.models.transactions import PassTransaction, TransactionKindEnum, TransactionStatusEnum
from summit_api.models.webhook_event import WebhookEvent, WebhookProviderEnum
from summit_api.services.identity.resolver import IdentityResolver
from summit_api.services.passes import tiers
from summit_api.services.passes.exceptions import AlreadyHasPassError, InvalidStateError, UnknownTierError
from summit_api.services.passes.purchases import PassPurchaseService, get_transaction_by_order
from summit_api.services.passes.store import BookingRefs, PassStore

from .client import TicketingClient

ORDER_COMPLETED_EVENTS = frozenset({"order.completed", "ticket.issued"})
ORDER_CANCELLED_EVENTS = frozenset({"order.cancelled", "ticket.cancelled"})
_REFUND_STATUSES = frozenset({TransactionStatusEnum.REFUND_PENDING, TransactionStatusEnum.REFUNDED})


class TicketingWebhookPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    event: str
    event_id: str | None = Field(default=None, alias="eventId")
    order_id: str | None = Field(default=None, alias="orderId")
    ticket_id: str | None = Field(default=None, alias="ticketId")
    payment_id: str | None = Field(default=None, alias="paymentId")
    refund_id: str | None = Field(default=None, alias="refundId")
    booking_id: str | None = Field(default=None, alias="bookingId")
    email: str | None = None
    name: str | None = None
    phone: str | None = None
    tier: str | None = None
    qr_payload: str | None = Field(default=None, alias="qrCode")
    reason: str | None = None
    data: dict[str, Any] | None = None


class IdentityWebhookPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    event: str = Field(alias="type")
    event_id: str | None = Field(default=None, alias="eventId")
    user_id: str = Field(alias="userId")
    email: str | None = None
    full_name: str | None = Field(default=None, alias="fullName")
    phone: str | None = None


@dataclass(slots=True)
class WebhookResult:
    event_type: str
    outcome: str
    duplicate: bool = False


class _WebhookLedger:
    def __init__(self, session: AsyncSession, provider: WebhookProviderEnum) -> None:
        self._session = session
        self._provider = provider

    async def seen(self, delivery_id: str | None) -> bool:
        if not delivery_id:
            return False
        stmt = select(WebhookEvent.id).where(
            WebhookEvent.provider == self._provider,
            WebhookEvent.external_id == delivery_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def record(self, delivery_id: str | None, event_type: str) -> bool:
        """Persist ``delivery_id``; returns False when a concurrent delivery won."""

        if not delivery_id:
            return True
        self._session.add(
            WebhookEvent(provider=self._provider, external_id=delivery_id, event_type=event_type)
        )
        try:
            await self._session.commit()
        except IntegrityError:
            await self._session.rollback()
            return False
        return True


class TicketingWebhookProcessor:
    """Apply ticketing provider events to passes and transactions."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        client: TicketingClient | None = None,
        auto_sync: bool | None = None,
    ) -> None:
        self._session = session
        self._store = PassStore(session)
        self._purchases = PassPurchaseService(session, client=client)
        self._resolver = IdentityResolver(session)
        self._ledger = _WebhookLedger(session, WebhookProviderEnum.TICKETING)
        self._auto_sync = settings.ticketing_auto_sync if auto_sync is None else auto_sync

    async def process(self, payload: TicketingWebhookPayload, *, delivery_id: str | None = None) -> WebhookResult:
        event_type = payload.event
        delivery_id = delivery_id or payload.event_id

        if await self._ledger.seen(delivery_id):
            logger.info("Duplicate ticketing webhook ignored", delivery_id=delivery_id, event_type=event_type)
            return WebhookResult(event_type=event_type, outcome="duplicate", duplicate=True)

        allowed = settings.ticketing_allowed_events
        if allowed and event_type not in allowed:
            outcome = "ignored"
        elif event_type in ORDER_COMPLETED_EVENTS:
            outcome = await self._handle_completed(payload)
        elif event_type in ORDER_CANCELLED_EVENTS:
            outcome = await self._handle_cancelled(payload)
        elif event_type == "payment.failed":
            outcome = await self._handle_payment_failed(payload)
        elif event_type == "refund.processed":
            outcome = await self._handle_refund(payload)
        else:
            logger.info("Unhandled ticketing webhook event", event_type=event_type)
            outcome = "ignored"

        if not await self._ledger.record(delivery_id, event_type):
            return WebhookResult(event_type=event_type, outcome="duplicate", duplicate=True)
        return WebhookResult(event_type=event_type, outcome=outcome)

    async def _handle_completed(self, payload: TicketingWebhookPayload) -> str:
        refs = BookingRefs(
            booking_id=payload.booking_id,
            external_order_id=payload.order_id,
            external_ticket_id=payload.ticket_id,
            qr_payload=payload.qr_payload,
            ticket_details=payload.data,
        )
        if payload.order_id:
            transaction = await get_transaction_by_order(self._session, payload.order_id)
            if transaction is not None and transaction.kind == TransactionKindEnum.PURCHASE:
                if transaction.status in _REFUND_STATUSES:
                    return f"already_{transaction.status.value}"
                try:
                    outcome = await self._purchases.complete_purchase(
                        payload.order_id,
                        payload.payment_id,
                        refs=refs,
                    )
                except AlreadyHasPassError:
                    return "refund_pending"
                except InvalidStateError as error:
                    logger.info("Completed order not applicable", order_id=payload.order_id, reason=str(error))
                    return "not_completable"
                return "pass_issued" if outcome.created else "already_completed"
            if transaction is not None:
                # Upgrade orders complete through the signed upgrade flow.
                return "ignored"

        if not self._auto_sync:
            return "ignored"
        return await self._sync_ticket(payload, refs)

    async def _sync_ticket(self, payload: TicketingWebhookPayload, refs: BookingRefs) -> str:
        """Create a pass for a ticket bought directly on the provider's storefront."""

        if not payload.email:
            logger.warning("Ticket sync skipped; attendee email missing", order_id=payload.order_id)
            return "ignored"
        if payload.ticket_id and await self._store.find_by_external_ticket_id(payload.ticket_id):
            return "already_synced"
        if payload.order_id and await self._store.find_by_external_order_id(payload.order_id):
            return "already_synced"

        try:
            tier = tiers.parse_tier(payload.tier)
        except UnknownTierError:
            logger.warning("Ticket sync skipped; unknown tier", tier=payload.tier, order_id=payload.order_id)
            return "unknown_tier"

        user = await self._resolver.resolve(None, payload.email, full_name=payload.name, phone=payload.phone)
        try:
            record = await self._store.create_active_pass(user, tier, tiers.tier_price(tier), refs)
        except AlreadyHasPassError:
            logger.info("Ticket sync skipped; attendee already holds a pass", user_id=str(user.id))
            return "already_has_pass"
        await self._session.commit()
        logger.info("Synced ticket into pass", pass_id=str(record.id), order_id=payload.order_id)
        return "synced"

    async def _handle_cancelled(self, payload: TicketingWebhookPayload) -> str:
        if payload.order_id:
            cancelled = await self._purchases.cancel_passes_for_order(payload.order_id)
            return "cancelled" if cancelled else "ignored"
        if payload.ticket_id:
            record = await self._store.find_by_external_ticket_id(payload.ticket_id)
            if record is not None and record.status == PassStatusEnum.ACTIVE:
                await self._store.mark_status(record, PassStatusEnum.CANCELLED)
                await self._session.commit()
                return "cancelled"
        return "ignored"

    async def _handle_payment_failed(self, payload: TicketingWebhookPayload) -> str:
        if not payload.order_id:
            return "ignored"
        transaction = await self._purchases.mark_failed(payload.order_id, payload.reason)
        return "failed" if transaction is not None else "ignored"

    async def _handle_refund(self, payload: TicketingWebhookPayload) -> str:
        if not payload.payment_id:
            return "ignored"
        transaction = await self._purchases.process_refund(payload.payment_id, payload.refund_id)
        return "refunded" if transaction is not None else "ignored"


class IdentityWebhookProcessor:
    """Keep local users in step with the identity provider."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._resolver = IdentityResolver(session)
        self._ledger = _WebhookLedger(session, WebhookProviderEnum.IDENTITY)

    async def process(self, payload: IdentityWebhookPayload, *, delivery_id: str | None = None) -> WebhookResult:
        event_type = payload.event
        delivery_id = delivery_id or payload.event_id
        if await self._ledger.seen(delivery_id):
            return WebhookResult(event_type=event_type, outcome="duplicate", duplicate=True)

        if event_type in {"user.created", "user.updated"}:
            outcome = await self._upsert(payload)
        elif event_type == "user.deleted":
            outcome = await self._delete(payload)
        else:
            outcome = "ignored"

        if not await self._ledger.record(delivery_id, event_type):
            return WebhookResult(event_type=event_type, outcome="duplicate", duplicate=True)
        return WebhookResult(event_type=event_type, outcome=outcome)

    async def _upsert(self, payload: IdentityWebhookPayload) -> str:
        user = await self._resolver.get_by_external_id(payload.user_id)
        if user is None:
            if not payload.email:
                return "ignored"
            await self._resolver.resolve(
                payload.user_id,
                payload.email,
                full_name=payload.full_name,
                phone=payload.phone,
            )
            return "created"
        await self._resolver.update_profile(
            user,
            email=payload.email,
            full_name=payload.full_name,
            phone=payload.phone,
        )
        return "updated"

    async def _delete(self, payload: IdentityWebhookPayload) -> str:
        user = await self._resolver.get_by_external_id(payload.user_id)
        if user is None:
            return "ignored"
        user_id = user.id

        owned = 0
        for model in (Pass, PendingClaim, PassTransaction):
            stmt = select(func.count()).select_from(model).where(model.user_id == user_id)
            owned += (await self._session.execute(stmt)).scalar_one()

        if owned:
            user.external_id = None
            await self._session.commit()
            logger.info("Unlinked deleted identity from user with pass records", user_id=str(user_id))
            return "unlinked"

        await self._session.delete(user)
        await self._session.commit()
        logger.info("Deleted user for removed identity", user_id=str(user_id))
        return "deleted"


__all__ = [
    "IdentityWebhookPayload",
    "IdentityWebhookProcessor",
    "TicketingWebhookPayload",
    "TicketingWebhookProcessor",
    "WebhookResult",
]
