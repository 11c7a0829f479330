from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.core.settings import settings
from summit_api.db.session import get_session
from summit_api.observability.passes import get_pass_observability_store


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "starting", "disabled", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")
    last_error_at: str | None = Field(default=None, description="ISO timestamp of most recent error")
    last_success_at: str | None = Field(default=None, description="ISO timestamp of most recent success")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/health/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
        components["database"] = ComponentStatus(status="ready")
    except SQLAlchemyError as error:
        logger.warning("Readiness database probe failed", error=str(error))
        components["database"] = ComponentStatus(status="error", detail="Database unreachable")
        status = "error"

    sweep_events = get_pass_observability_store().snapshot().sweep_events
    last_run_at = sweep_events.last_run_at.isoformat() if sweep_events.last_run_at else None
    last_error_at = sweep_events.last_error_at.isoformat() if sweep_events.last_error_at else None

    worker = getattr(request.app.state, "claim_sweep_worker", None)
    if settings.claim_sweep_worker_enabled and worker is not None:
        running = bool(getattr(worker, "is_running", False))
        worker_status: Literal["ready", "starting", "disabled", "error"] = "ready" if running else "starting"
        detail = None if running else "Claim expiry sweep worker not running"
        if worker.last_error:
            worker_status = "error"
            detail = worker.last_error
            status = "degraded" if status == "ready" else status
        elif not running:
            status = "degraded" if status == "ready" else status
        components["claim_sweep"] = ComponentStatus(
            status=worker_status,
            detail=detail,
            last_error_at=last_error_at,
            last_success_at=last_run_at,
        )
    else:
        components["claim_sweep"] = ComponentStatus(
            status="disabled",
            detail="Claim sweep worker disabled via settings (claims still expire lazily on read)",
            last_success_at=last_run_at,
        )

    return ReadinessPayload(status=status, components=components)
