from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from summit_api.core.settings import settings
from summit_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .workers import ClaimExpirySweepWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweep_worker = ClaimExpirySweepWorker(
        session_factory=_session_factory,
        interval_seconds=settings.claim_sweep_interval_seconds,
        trigger_label=settings.claim_sweep_trigger_label,
    )
    app.state.claim_sweep_worker = sweep_worker

    sweep_enabled = settings.claim_sweep_worker_enabled
    if sweep_enabled:
        sweep_worker.start()
        logger.info(
            "Claim expiry sweep worker enabled",
            interval_seconds=sweep_worker.interval_seconds,
            expiry_hours=settings.claim_expiry_hours,
        )
    else:
        logger.info(
            "Claim expiry sweep worker disabled",
            reason="claim_sweep_worker_enabled is false",
        )

    try:
        yield
    finally:
        if sweep_enabled and sweep_worker.is_running:
            await sweep_worker.stop()


def create_app() -> FastAPI:
    """Application factory for the summit pass service."""
    configure_logging(
        service_name="summit-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Summit Pass API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="summit-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
