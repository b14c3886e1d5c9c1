import asyncio
import json

import pytest

from app.coordinator import CompletionCoordinator, CompletionOutcome, build_payload
from app.models import WorkOrderState
from conftest import FakeReconciliationClient, TECH, open_work_order


async def _populated_work_order(store, interventions, parts, external_id="WO-1"):
    await open_work_order(store, external_id)
    maintenance = await interventions.add_intervention(external_id, "maintenance", {"category": "hypercare"})
    await interventions.add_intervention(external_id, "wind_audit", {"wind_speed": 9})
    await parts.attribute_parts(external_id, maintenance.id, [("Hinge", 2), ("Latch", 1)])
    return maintenance


@pytest.mark.asyncio
async def test_complete_delivers_and_reconciles(store, interventions, parts, coordinator, fake_client):
    maintenance = await _populated_work_order(store, interventions, parts)

    result = await coordinator.complete("WO-1")

    assert result.outcome == CompletionOutcome.FULLY_SUCCEEDED
    assert result.http_status == 200
    assert result.work_order.state == WorkOrderState.RECONCILED
    assert result.work_order.reconciled_at is not None

    payload = fake_client.payloads[0]
    assert payload["workOrderId"] == "WO-1"
    assert payload["assigneeIdentifier"] == TECH
    assert payload["completedAt"] == result.work_order.completed_at
    assert [i["type"] for i in payload["interventions"]] == ["maintenance", "wind_audit"]
    assert {p["interventionLocalId"] for p in payload["partUsages"]} == {maintenance.id}
    assert [p["name"] for p in payload["partUsages"]] == ["Hinge", "Latch"]


@pytest.mark.asyncio
async def test_delivery_failure_leaves_work_order_locally_complete(store, interventions, parts, audit):
    await _populated_work_order(store, interventions, parts)
    client = FakeReconciliationClient(failures=1)
    coordinator = CompletionCoordinator(store, interventions, client, audit=audit)

    first = await coordinator.complete("WO-1")

    assert first.outcome == CompletionOutcome.LOCALLY_SAVED_UNSYNCED
    assert first.http_status == 207
    assert first.retryable
    assert "503" in first.error.message
    work_order = store.get("WO-1").work_order
    assert work_order.state == WorkOrderState.LOCALLY_COMPLETE
    assert work_order.completed_at is not None
    assert work_order.reconciled_at is None
    assert work_order.reconciliation_failed

    second = await coordinator.complete("WO-1")

    assert second.outcome == CompletionOutcome.FULLY_SUCCEEDED
    work_order = store.get("WO-1").work_order
    assert work_order.state == WorkOrderState.RECONCILED
    assert work_order.reconciled_at is not None
    assert work_order.completed_at == first.work_order.completed_at
    assert not work_order.reconciliation_failed
    assert work_order.reconciliation_attempts == 2
    assert [e.outcome for e in audit.events_for("WO-1")] == ["failed", "delivered"]


@pytest.mark.asyncio
async def test_reconciled_work_order_short_circuits(store, coordinator, fake_client):
    await open_work_order(store)

    await coordinator.complete("WO-1")
    again = await coordinator.complete("WO-1")

    assert again.outcome == CompletionOutcome.FULLY_SUCCEEDED
    assert again.already_done
    assert fake_client.calls == 1


@pytest.mark.asyncio
async def test_concurrent_completes_deliver_once(store, interventions, audit):
    await open_work_order(store)
    client = FakeReconciliationClient(delay=0.05)
    coordinator = CompletionCoordinator(store, interventions, client, audit=audit)

    results = await asyncio.gather(coordinator.complete("WO-1"), coordinator.complete("WO-1"))

    assert client.calls == 1
    assert all(r.outcome == CompletionOutcome.FULLY_SUCCEEDED for r in results)
    assert sorted(r.already_done for r in results) == [False, True]


@pytest.mark.asyncio
async def test_slow_delivery_does_not_block_other_work_orders(store, interventions):
    await open_work_order(store, "WO-slow")
    await open_work_order(store, "WO-other")
    blocker = asyncio.Event()

    class BlockingClient(FakeReconciliationClient):
        async def deliver(self, payload):
            if payload["workOrderId"] == "WO-slow":
                await blocker.wait()
            return await super().deliver(payload)

    coordinator = CompletionCoordinator(store, interventions, BlockingClient())
    slow = asyncio.create_task(coordinator.complete("WO-slow"))
    await asyncio.sleep(0)

    other = await asyncio.wait_for(coordinator.complete("WO-other"), timeout=1)
    assert other.outcome == CompletionOutcome.FULLY_SUCCEEDED

    blocker.set()
    assert (await slow).outcome == CompletionOutcome.FULLY_SUCCEEDED


@pytest.mark.asyncio
async def test_delivery_deadline_becomes_unsynced(store, interventions):
    await open_work_order(store)
    coordinator = CompletionCoordinator(
        store, interventions, FakeReconciliationClient(delay=1.0), delivery_timeout=0.05
    )

    result = await coordinator.complete("WO-1")

    assert result.outcome == CompletionOutcome.LOCALLY_SAVED_UNSYNCED
    assert store.get("WO-1").work_order.state == WorkOrderState.LOCALLY_COMPLETE


@pytest.mark.asyncio
async def test_cancelled_delivery_leaves_retryable_state(store, interventions, audit):
    await open_work_order(store)
    client = FakeReconciliationClient(delay=10)
    coordinator = CompletionCoordinator(store, interventions, client, audit=audit)

    task = asyncio.create_task(coordinator.complete("WO-1"))
    while client.calls == 0:
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    work_order = store.get("WO-1").work_order
    assert work_order.state == WorkOrderState.LOCALLY_COMPLETE
    assert work_order.completed_at is not None
    assert not store.lock("WO-1").locked()
    assert [e.outcome for e in audit.events_for("WO-1")] == ["cancelled"]

    client.delay = 0
    assert (await coordinator.complete("WO-1")).outcome == CompletionOutcome.FULLY_SUCCEEDED


@pytest.mark.asyncio
async def test_complete_unknown_work_order_is_rejected(coordinator, fake_client):
    result = await coordinator.complete("nope")

    assert result.outcome == CompletionOutcome.REJECTED
    assert result.http_status == 404
    assert not result.retryable
    assert fake_client.calls == 0


@pytest.mark.asyncio
async def test_payload_is_deterministic_apart_from_delivery_time(store, interventions, parts):
    await _populated_work_order(store, interventions, parts)
    document = await interventions.mark_locally_complete("WO-1")

    first = build_payload(document, delivered_at="2026-10-17T10:00:00Z")
    second = build_payload(document, delivered_at="2026-10-17T10:00:00Z")
    later = build_payload(document, delivered_at="2026-10-17T11:00:00Z")

    assert json.dumps(first) == json.dumps(second)
    later.pop("deliveredAt")
    first.pop("deliveredAt")
    assert later == first


@pytest.mark.asyncio
async def test_audit_timestamps_use_utc_z_suffix(store, coordinator, audit):
    await open_work_order(store)

    await coordinator.complete("WO-1")

    [event] = audit.events_for("WO-1")
    assert event.timestamp.endswith("Z")
    assert "+00:00" not in event.timestamp
