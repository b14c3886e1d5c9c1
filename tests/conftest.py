import asyncio

import pytest

from app.audit import ReconciliationLog
from app.coordinator import CompletionCoordinator
from app.errors import DeliveryError
from app.interventions import InterventionLedger
from app.models import Ack, WorkOrder
from app.parts import PartsLedger
from app.store import WorkOrderDocument, WorkOrderStore

TECH = "tech@fieldsync.dev"


class FakeReconciliationClient:
    """Stands in for the webhook: records payloads, fails on demand"""

    def __init__(self, failures: int = 0, delay: float = 0.0):
        self.failures = failures
        self.delay = delay
        self.payloads = []

    async def deliver(self, payload: dict) -> Ack:
        self.payloads.append(payload)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise DeliveryError("webhook returned 503: unavailable")
        return Ack(status_code=200, body={"success": True})

    @property
    def calls(self) -> int:
        return len(self.payloads)


@pytest.fixture
def store(tmp_path):
    return WorkOrderStore(str(tmp_path / "data"))


@pytest.fixture
def interventions(store):
    return InterventionLedger(store)


@pytest.fixture
def parts(store):
    return PartsLedger(store)


@pytest.fixture
def audit(tmp_path):
    return ReconciliationLog(str(tmp_path / "logs" / "reconciliation_log.jsonl"))


@pytest.fixture
def fake_client():
    return FakeReconciliationClient()


@pytest.fixture
def coordinator(store, interventions, fake_client, audit):
    return CompletionCoordinator(store, interventions, fake_client, audit=audit)


async def open_work_order(store: WorkOrderStore, external_id: str = "WO-1", technician_id: str = TECH):
    return await store.save(WorkOrderDocument(
        work_order=WorkOrder(external_id=external_id, technician_id=technician_id, work_type="maintenance")
    ))
