"""In-memory observability helper for claim, upgrade, webhook and sweep flows."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class UpgradeEventLog:
    last_success_at: datetime | None = None
    last_success_pass_id: str | None = None
    last_failure_at: datetime | None = None
    last_failure_reason: str | None = None


@dataclass
class WebhookEventLog:
    last_event_at: datetime | None = None
    last_event_type: str | None = None
    last_event_delivery_id: str | None = None
    last_failure_at: datetime | None = None
    last_failure_type: str | None = None
    last_failure_reason: str | None = None


@dataclass
class SweepEventLog:
    last_run_at: datetime | None = None
    last_run_trigger: str | None = None
    last_expired_count: int = 0
    last_error_at: datetime | None = None
    last_error: str | None = None


@dataclass
class PassObservabilitySnapshot:
    claim_totals: Dict[str, int]
    upgrade_totals: Dict[str, int]
    webhook_totals: Dict[str, Dict[str, int]]
    sweep_totals: Dict[str, int]
    upgrade_events: UpgradeEventLog
    webhook_events: WebhookEventLog
    sweep_events: SweepEventLog

    def as_dict(self) -> Dict[str, object]:
        return {
            "claims": {"totals": self.claim_totals},
            "upgrades": {
                "totals": self.upgrade_totals,
                "events": {
                    "last_success_at": _iso(self.upgrade_events.last_success_at),
                    "last_success_pass_id": self.upgrade_events.last_success_pass_id,
                    "last_failure_at": _iso(self.upgrade_events.last_failure_at),
                    "last_failure_reason": self.upgrade_events.last_failure_reason,
                },
            },
            "webhooks": {
                "totals": self.webhook_totals,
                "events": {
                    "last_event_at": _iso(self.webhook_events.last_event_at),
                    "last_event_type": self.webhook_events.last_event_type,
                    "last_event_delivery_id": self.webhook_events.last_event_delivery_id,
                    "last_failure_at": _iso(self.webhook_events.last_failure_at),
                    "last_failure_type": self.webhook_events.last_failure_type,
                    "last_failure_reason": self.webhook_events.last_failure_reason,
                },
            },
            "sweeps": {
                "totals": self.sweep_totals,
                "events": {
                    "last_run_at": _iso(self.sweep_events.last_run_at),
                    "last_run_trigger": self.sweep_events.last_run_trigger,
                    "last_expired_count": self.sweep_events.last_expired_count,
                    "last_error_at": _iso(self.sweep_events.last_error_at),
                    "last_error": self.sweep_events.last_error,
                },
            },
        }


@dataclass
class PassObservabilityStore:
    _lock: Lock = field(default_factory=Lock)
    _claim_totals: Counter = field(default_factory=Counter)
    _upgrade_totals: Counter = field(default_factory=Counter)
    _upgrade_events: UpgradeEventLog = field(default_factory=UpgradeEventLog)
    _webhook_totals: Dict[str, Counter] = field(
        default_factory=lambda: {"processed": Counter(), "failed": Counter()}
    )
    _webhook_events: WebhookEventLog = field(default_factory=WebhookEventLog)
    _sweep_totals: Counter = field(default_factory=Counter)
    _sweep_events: SweepEventLog = field(default_factory=SweepEventLog)

    def record_claim(self, outcome: str, count: int = 1) -> None:
        """Count a claim outcome such as ``submitted``, ``verified`` or ``conflict``."""

        with self._lock:
            self._claim_totals[outcome] += count

    def record_upgrade_success(self, pass_id: str) -> None:
        with self._lock:
            self._upgrade_totals["succeeded"] += 1
            self._upgrade_events.last_success_at = _utcnow()
            self._upgrade_events.last_success_pass_id = pass_id

    def record_upgrade_failure(self, reason: str) -> None:
        with self._lock:
            self._upgrade_totals["failed"] += 1
            self._upgrade_events.last_failure_at = _utcnow()
            self._upgrade_events.last_failure_reason = reason

    def record_webhook(self, event_type: str, success: bool, delivery_id: str | None, error: str | None) -> None:
        with self._lock:
            bucket = "processed" if success else "failed"
            self._webhook_totals[bucket][event_type] += 1
            now = _utcnow()
            self._webhook_events.last_event_at = now
            self._webhook_events.last_event_type = event_type
            self._webhook_events.last_event_delivery_id = delivery_id
            if not success:
                self._webhook_events.last_failure_at = now
                self._webhook_events.last_failure_type = event_type
                self._webhook_events.last_failure_reason = error

    def record_sweep(self, expired: int, *, trigger: str | None = None) -> None:
        with self._lock:
            self._sweep_totals["runs"] += 1
            self._sweep_totals["expired"] += expired
            self._sweep_events.last_run_at = _utcnow()
            self._sweep_events.last_run_trigger = trigger
            self._sweep_events.last_expired_count = expired

    def record_sweep_failure(self, error: str) -> None:
        with self._lock:
            self._sweep_totals["failed"] += 1
            self._sweep_events.last_error_at = _utcnow()
            self._sweep_events.last_error = error

    def snapshot(self) -> PassObservabilitySnapshot:
        with self._lock:
            return PassObservabilitySnapshot(
                claim_totals=dict(self._claim_totals),
                upgrade_totals=dict(self._upgrade_totals),
                webhook_totals={bucket: dict(counter) for bucket, counter in self._webhook_totals.items()},
                sweep_totals=dict(self._sweep_totals),
                upgrade_events=UpgradeEventLog(**vars(self._upgrade_events)),
                webhook_events=WebhookEventLog(**vars(self._webhook_events)),
                sweep_events=SweepEventLog(**vars(self._sweep_events)),
            )

    def reset(self) -> None:
        with self._lock:
            self._claim_totals.clear()
            self._upgrade_totals.clear()
            self._sweep_totals.clear()
            for counter in self._webhook_totals.values():
                counter.clear()
            self._upgrade_events = UpgradeEventLog()
            self._webhook_events = WebhookEventLog()
            self._sweep_events = SweepEventLog()


_PASS_STORE = PassObservabilityStore()


def get_pass_observability_store() -> PassObservabilityStore:
    return _PASS_STORE
