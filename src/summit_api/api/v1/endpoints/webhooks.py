"""Signed webhook receivers for the ticketing and identity providers."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, Field
from pydantic import ValidationError as PayloadValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.core.settings import settings
from summit_api.db.session import get_session
from summit_api.observability.passes import get_pass_observability_store
from summit_api.services.ticketing.signatures import verify_signature
from summit_api.services.ticketing.webhooks import (
    IdentityWebhookPayload,
    IdentityWebhookProcessor,
    TicketingWebhookPayload,
    TicketingWebhookProcessor,
)


router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class WebhookResponse(BaseModel):
    """Response model for webhook processing."""
    success: bool = Field(..., description="Whether webhook was processed successfully")
    message: str = Field(..., description="Processing result message")
    duplicate: bool = Field(default=False, description="Whether the delivery was already processed")


def _check_signature(provider: str, secret: str, body: bytes, signature: str | None, delivery_id: str | None) -> None:
    if not secret:
        if settings.environment == "development":
            logger.warning(
                "Webhook secret not configured; skipping signature check",
                provider=provider,
                delivery_id=delivery_id,
            )
            return
        raise HTTPException(status_code=400, detail="Webhook signature cannot be verified")
    if not verify_signature(secret, body, signature):
        logger.warning("Invalid webhook signature", provider=provider, delivery_id=delivery_id)
        get_pass_observability_store().record_webhook(
            event_type=f"{provider}.signature_error",
            success=False,
            delivery_id=delivery_id,
            error="signature_verification_failed",
        )
        raise HTTPException(status_code=400, detail="Invalid webhook signature")


@router.post("/ticketing", response_model=WebhookResponse)
async def handle_ticketing_webhook(
    request: Request,
    signature: str | None = Header(None, alias="X-Ticketing-Signature"),
    delivery_id: str | None = Header(None, alias="X-Ticketing-Delivery"),
    db: AsyncSession = Depends(get_session),
) -> WebhookResponse:
    """Apply order, ticket, payment and refund events from the ticketing provider."""

    body = await request.body()
    _check_signature("ticketing", settings.ticketing_webhook_secret, body, signature, delivery_id)

    try:
        payload = TicketingWebhookPayload.model_validate_json(body)
    except PayloadValidationError as error:
        raise HTTPException(status_code=400, detail="Malformed webhook payload") from error

    store = get_pass_observability_store()
    logger.info(
        "Processing ticketing webhook event",
        event_type=payload.event,
        delivery_id=delivery_id or payload.event_id,
        order_id=payload.order_id,
    )
    try:
        result = await TicketingWebhookProcessor(db).process(payload, delivery_id=delivery_id)
    except Exception as error:
        logger.exception(
            "Ticketing webhook processing error",
            event_type=payload.event,
            delivery_id=delivery_id,
            error=str(error),
        )
        store.record_webhook(event_type=payload.event, success=False, delivery_id=delivery_id, error=str(error))
        raise HTTPException(status_code=500, detail="Webhook processing failed") from error

    store.record_webhook(event_type=result.event_type, success=True, delivery_id=delivery_id, error=None)
    return WebhookResponse(success=True, message=result.outcome, duplicate=result.duplicate)


@router.post("/identity", response_model=WebhookResponse)
async def handle_identity_webhook(
    request: Request,
    signature: str | None = Header(None, alias="X-Identity-Signature"),
    delivery_id: str | None = Header(None, alias="X-Identity-Delivery"),
    db: AsyncSession = Depends(get_session),
) -> WebhookResponse:
    body = await request.body()
    _check_signature("identity", settings.identity_webhook_secret, body, signature, delivery_id)

    try:
        payload = IdentityWebhookPayload.model_validate_json(body)
    except PayloadValidationError as error:
        raise HTTPException(status_code=400, detail="Malformed webhook payload") from error

    store = get_pass_observability_store()
    try:
        result = await IdentityWebhookProcessor(db).process(payload, delivery_id=delivery_id)
    except Exception as error:
        logger.exception("Identity webhook processing error", event_type=payload.event, error=str(error))
        store.record_webhook(event_type=payload.event, success=False, delivery_id=delivery_id, error=str(error))
        raise HTTPException(status_code=500, detail="Webhook processing failed") from error

    store.record_webhook(event_type=result.event_type, success=True, delivery_id=delivery_id, error=None)
    return WebhookResponse(success=True, message=result.outcome, duplicate=result.duplicate)
