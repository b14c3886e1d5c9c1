"""
FieldSync Completion Coordinator
Two-phase completion: commit the work order locally, then propagate it to the
system of record. Local data is never hostage to the remote side; a failed
delivery leaves the work order LOCALLY_COMPLETE and retryable via complete().
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from .audit import ReconciliationLog
from .errors import DeliveryError, WorkOrderError
from .interventions import InterventionLedger
from .models import Ack, WorkOrder, WorkOrderState, utcnow_iso
from .reconciliation import ReconciliationClient
from .registry import REGISTRY_VERSION
from .store import WorkOrderDocument, WorkOrderStore
from .work_orders import get_work_order

logger = structlog.get_logger(__name__)


class CompletionOutcome(str, Enum):
    FULLY_SUCCEEDED = "fully-succeeded"
    LOCALLY_SAVED_UNSYNCED = "locally-saved-but-unsynced"
    REJECTED = "rejected"


@dataclass
class CompletionResult:
    """What the caller of complete() gets back"""
    outcome: CompletionOutcome
    work_order: Optional[WorkOrder] = None
    error: Optional[WorkOrderError] = None
    already_done: bool = False
    ack: Optional[Ack] = None

    @property
    def retryable(self) -> bool:
        return self.outcome == CompletionOutcome.LOCALLY_SAVED_UNSYNCED

    @property
    def http_status(self) -> int:
        if self.outcome == CompletionOutcome.FULLY_SUCCEEDED:
            return 200
        if self.outcome == CompletionOutcome.LOCALLY_SAVED_UNSYNCED:
            return 207  # Multi-Status: saved, not synced
        return self.error.status_code if self.error else 400

    def to_dict(self) -> dict:
        data = {
            "outcome": self.outcome.value,
            "workOrderCompleted": self.outcome != CompletionOutcome.REJECTED,
            "synced": self.outcome == CompletionOutcome.FULLY_SUCCEEDED,
            "canRetry": self.retryable,
            "alreadyDone": self.already_done,
        }
        if self.work_order is not None:
            data["workOrder"] = self.work_order.to_dict()
        if self.error is not None:
            data.update(self.error.to_dict())
        if self.ack is not None:
            data["response"] = self.ack.body
        return data


def build_payload(document: WorkOrderDocument, delivered_at: str) -> dict:
    """
    Reconciliation payload for a locally complete work order.
    Deterministic for a given document apart from delivered_at.
    """
    work_order = document.work_order
    interventions = sorted(document.interventions, key=lambda i: i.id)
    parts = sorted(document.parts, key=lambda p: p.id)
    return {
        "workOrderId": work_order.external_id,
        "workType": work_order.work_type,
        "registryVersion": REGISTRY_VERSION,
        "completedAt": work_order.completed_at,
        "assigneeIdentifier": work_order.technician_id,
        "deliveredAt": delivered_at,
        "interventions": [
            {
                "localId": i.id,
                "type": i.type.value,
                "payload": i.payload,
                "submittedAt": i.submitted_at,
            }
            for i in interventions
        ],
        "partUsages": [
            {
                "localId": p.id,
                "interventionLocalId": p.intervention_id,
                "name": p.name,
                "quantity": p.quantity,
                "recordedAt": p.recorded_at,
            }
            for p in parts
        ],
    }


class CompletionCoordinator:
    """
    Orchestrates OPEN -> LOCALLY_COMPLETE -> RECONCILED.

    The work order's lock is held from the state check through the delivery,
    so there is at most one delivery in flight per work order. Other work
    orders are unaffected.
    """

    def __init__(
        self,
        store: WorkOrderStore,
        interventions: InterventionLedger,
        client: ReconciliationClient,
        audit: Optional[ReconciliationLog] = None,
        delivery_timeout: Optional[float] = None
    ):
        self.store = store
        self.interventions = interventions
        self.client = client
        self.audit = audit
        self.delivery_timeout = delivery_timeout

    async def complete(self, external_id: str) -> CompletionResult:
        """
        Complete a work order and try to reconcile it.

        Safe to call repeatedly: a reconciled work order short-circuits
        without a network call, and a locally complete one is redelivered.
        """
        try:
            async with self.store.lock(external_id):
                document = get_work_order(self.store, external_id)
                if document.work_order.state == WorkOrderState.RECONCILED:
                    logger.info("work_order_already_reconciled", work_order_id=external_id)
                    return CompletionResult(
                        outcome=CompletionOutcome.FULLY_SUCCEEDED,
                        work_order=document.work_order,
                        already_done=True,
                    )

                document = await self.interventions.complete_locked(document)
                return await self._reconcile(document)
        except WorkOrderError as e:
            logger.warning("completion_rejected", work_order_id=external_id, error=e.message)
            return CompletionResult(outcome=CompletionOutcome.REJECTED, error=e)

    async def _deliver(self, payload: dict) -> Ack:
        if self.delivery_timeout is None:
            return await self.client.deliver(payload)
        try:
            return await asyncio.wait_for(self.client.deliver(payload), timeout=self.delivery_timeout)
        except asyncio.TimeoutError as e:
            raise DeliveryError(f"delivery exceeded {self.delivery_timeout}s") from e

    async def _record(self, external_id: str, outcome: str, attempt: int, detail: Optional[str] = None) -> None:
        if self.audit is not None:
            await self.audit.record(external_id, outcome, attempt, detail)

    async def _reconcile(self, document: WorkOrderDocument) -> CompletionResult:
        """Deliver a locally complete document. Caller holds its lock."""
        external_id = document.external_id
        attempt = document.work_order.reconciliation_attempts + 1
        payload = build_payload(document, delivered_at=utcnow_iso())

        try:
            ack = await self._deliver(payload)
        except DeliveryError as e:
            document = await self.store.save(document.with_work_order(
                reconciliation_failed=True,
                last_reconciliation_error=e.message,
                reconciliation_attempts=attempt,
            ))
            await self._record(external_id, "failed", attempt, e.message)
            logger.warning("reconciliation_failed",
                           work_order_id=external_id,
                           attempt=attempt,
                           error=e.message)
            return CompletionResult(
                outcome=CompletionOutcome.LOCALLY_SAVED_UNSYNCED,
                work_order=document.work_order,
                error=e,
            )
        except asyncio.CancelledError:
            # completed_at is already on disk; the work order stays retryable
            logger.warning("reconciliation_cancelled", work_order_id=external_id, attempt=attempt)
            await self._record(external_id, "cancelled", attempt)
            raise

        document = await self.store.save(document.with_work_order(
            state=WorkOrderState.RECONCILED,
            reconciled_at=utcnow_iso(),
            reconciliation_failed=False,
            last_reconciliation_error=None,
            reconciliation_attempts=attempt,
        ))
        await self._record(external_id, "delivered", attempt, f"status {ack.status_code}")
        logger.info("work_order_reconciled", work_order_id=external_id, attempt=attempt)
        return CompletionResult(
            outcome=CompletionOutcome.FULLY_SUCCEEDED,
            work_order=document.work_order,
            ack=ack,
        )
