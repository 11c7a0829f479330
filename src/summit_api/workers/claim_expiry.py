"""Worker wiring for periodic pending-claim expiry sweeps."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from summit_api.core.settings import settings
from summit_api.observability.passes import get_pass_observability_store
from summit_api.services.claims.lifecycle import ClaimLifecycleManager

SessionFactory = Callable[[], Awaitable[AsyncSession]] | Callable[[], AsyncSession]
Clock = Callable[[], datetime]


class ClaimExpirySweepWorker:
    """Periodically moves overdue pending claims to ``expired``."""

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        clock: Clock | None = None,
        interval_seconds: int | None = None,
        trigger_label: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self.interval_seconds = interval_seconds or settings.claim_sweep_interval_seconds
        self._trigger_label = trigger_label or settings.claim_sweep_trigger_label
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.is_running: bool = False
        self.last_error: str | None = None

    def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        self.is_running = True
        logger.info("Claim expiry sweep worker started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        self.is_running = False
        logger.info("Claim expiry sweep worker stopped")

    async def run_once(self, *, triggered_by: str | None = None) -> Dict[str, int | str]:
        """Execute a single sweep and return a summary."""

        trigger = triggered_by or self._trigger_label
        store = get_pass_observability_store()
        session = await self._ensure_session()
        async with session as managed_session:
            manager = ClaimLifecycleManager(managed_session, clock=self._clock)
            try:
                expired = await manager.sweep_expired()
            except Exception as exc:
                await managed_session.rollback()
                self.last_error = str(exc)
                store.record_sweep_failure(str(exc))
                logger.exception("Claim expiry sweep failed", trigger=trigger, error=str(exc))
                raise

        self.last_error = None
        store.record_sweep(expired, trigger=trigger)
        logger.info("Claim expiry sweep completed", expired=expired, trigger=trigger)
        return {"expired": expired, "triggered_by": trigger}

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:  # pragma: no cover - logged in run_once
                logger.warning("Claim expiry sweep iteration failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def _ensure_session(self) -> AsyncSession:
        maybe_session = self._session_factory()
        if isinstance(maybe_session, AsyncSession):
            return maybe_session
        return await maybe_session
