import pytest

from summit_api.observability.passes import get_pass_observability_store
from summit_api.observability.tracing import pass_span


def test_snapshot_aggregates_pass_engine_events():
    store = get_pass_observability_store()
    store.record_claim("submitted")
    store.record_claim("verified")
    store.record_upgrade_success("pass-1")
    store.record_upgrade_failure("InvalidUpgradeError")
    store.record_webhook(event_type="order.completed", success=True, delivery_id="evt_1", error=None)
    store.record_webhook(event_type="ticketing.signature_error", success=False, delivery_id=None, error="bad")
    store.record_sweep(3, trigger="cron")
    store.record_sweep_failure("database unavailable")

    snapshot = store.snapshot().as_dict()

    assert snapshot["claims"]["totals"] == {"submitted": 1, "verified": 1}
    assert snapshot["upgrades"]["totals"] == {"succeeded": 1, "failed": 1}
    assert snapshot["upgrades"]["events"]["last_failure_reason"] == "InvalidUpgradeError"
    assert snapshot["webhooks"]["totals"]["processed"] == {"order.completed": 1}
    assert snapshot["webhooks"]["events"]["last_failure_reason"] == "bad"
    assert snapshot["sweeps"]["totals"] == {"runs": 1, "expired": 3, "failed": 1}
    assert snapshot["sweeps"]["events"]["last_run_trigger"] == "cron"

    store.reset()
    assert store.snapshot().as_dict()["claims"]["totals"] == {}


def test_pass_span_propagates_errors():
    with pass_span("pass_upgrade.apply", pass_id="abc", to_tier=None) as span:
        assert span is not None

    with pytest.raises(ValueError):
        with pass_span("pass_claim.match", claim_id="c-1"):
            raise ValueError("boom")
