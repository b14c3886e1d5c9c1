"""
FieldSync Reconciliation Retry Policy
Re-drives unreconciled work orders through CompletionCoordinator.complete().

Policy: up to max_attempts deliveries per work order per sweep, with
exponential backoff (base_delay * 2**(n-1)) between attempts. Sweeps are
triggered explicitly; nothing here runs on a timer.
"""

import asyncio
from dataclasses import dataclass, field

import structlog

from .coordinator import CompletionCoordinator, CompletionOutcome
from .models import WorkOrderState
from .store import WorkOrderStore

logger = structlog.get_logger(__name__)


@dataclass
class SweepReport:
    reconciled: list[str] = field(default_factory=list)
    still_pending: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "reconciled": self.reconciled,
            "stillPending": self.still_pending,
            "reconciledCount": len(self.reconciled),
            "pendingCount": len(self.still_pending),
        }


async def reconcile_with_backoff(
    coordinator: CompletionCoordinator,
    external_id: str,
    max_attempts: int = 3,
    base_delay: float = 1.0
):
    """Call complete() until it fully succeeds or attempts run out. Always tries at least once."""
    max_attempts = max(1, max_attempts)
    for attempt in range(1, max_attempts + 1):
        result = await coordinator.complete(external_id)
        if not result.retryable:
            return result
        if attempt < max_attempts:
            delay = base_delay * 2 ** (attempt - 1)
            logger.info("reconciliation_retry_scheduled",
                        work_order_id=external_id,
                        attempt=attempt,
                        delay_seconds=delay)
            await asyncio.sleep(delay)
    return result


async def reconcile_pending(
    store: WorkOrderStore,
    coordinator: CompletionCoordinator,
    max_attempts: int = 3,
    base_delay: float = 1.0
) -> SweepReport:
    """Retry every LOCALLY_COMPLETE work order once per sweep, sequentially."""
    report = SweepReport()
    pending = [d.external_id for d in store.in_state(WorkOrderState.LOCALLY_COMPLETE)]

    for external_id in pending:
        result = await reconcile_with_backoff(coordinator, external_id, max_attempts, base_delay)
        if result.outcome == CompletionOutcome.FULLY_SUCCEEDED:
            report.reconciled.append(external_id)
        else:
            report.still_pending[external_id] = result.error.message if result.error else "unknown"

    logger.info("retry_sweep_finished",
                reconciled=len(report.reconciled),
                still_pending=len(report.still_pending))
    return report
