"""
FieldSync Parts Ledger
Attributes consumables to the interventions that used them.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import structlog

from .errors import InterventionNotFound, UntrackedType
from .models import PartUsage, WorkOrderState, utcnow_iso
from .registry import REGISTRY, InterventionRule, InterventionType
from .store import WorkOrderDocument, WorkOrderStore
from .work_orders import get_work_order

logger = structlog.get_logger(__name__)


@dataclass
class PartsBatchResult:
    """Outcome of a multi-intervention parts submission"""
    saved: list[PartUsage] = field(default_factory=list)
    rejected: list[dict] = field(default_factory=list)
    # saved after the work order was reconciled; never delivered
    after_reconciliation: bool = False

    def to_dict(self) -> dict:
        return {
            "saved": [p.to_dict() for p in self.saved],
            "rejected": self.rejected,
            "partsCount": len(self.saved),
            "willSync": not (self.saved and self.after_reconciliation),
        }


def _clean_entry(entry: Any):
    """Return (name, quantity) for a usable entry, or None to drop it."""
    try:
        name, quantity = entry
    except (TypeError, ValueError):
        return None
    if not isinstance(name, str) or not name.strip():
        return None
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        return None
    return name.strip(), quantity


class PartsLedger:
    def __init__(
        self,
        store: WorkOrderStore,
        registry: Mapping[InterventionType, InterventionRule] = REGISTRY
    ):
        self.store = store
        self.registry = registry

    async def attribute_parts(
        self,
        external_id: str,
        intervention_id: int,
        entries: Iterable[tuple[str, int]]
    ) -> list[PartUsage]:
        """
        Record parts used by one intervention.

        Entries with a blank name or a non-positive quantity are dropped
        without failing the rest of the batch.

        Raises:
            InterventionNotFound: intervention missing or on another work order
            UntrackedType: the intervention's type does not track parts
        """
        async with self.store.lock(external_id):
            document = get_work_order(self.store, external_id)
            intervention = document.intervention(intervention_id)
            if intervention is None:
                raise InterventionNotFound(
                    f"Intervention {intervention_id} does not belong to work order {external_id}"
                )
            if not self.registry[intervention.type].tracks_parts:
                raise UntrackedType(
                    f"{intervention.type.value} interventions do not track parts"
                )

            recorded_at = utcnow_iso()
            parts = []
            for entry in entries:
                cleaned = _clean_entry(entry)
                if cleaned is None:
                    logger.debug("part_entry_dropped",
                                 work_order_id=external_id,
                                 intervention_id=intervention_id,
                                 entry=repr(entry))
                    continue
                name, quantity = cleaned
                parts.append(PartUsage(
                    id=self.store.next_part_id(),
                    intervention_id=intervention_id,
                    work_order_id=external_id,
                    name=name,
                    quantity=quantity,
                    recorded_at=recorded_at,
                ))

            if parts:
                await self.store.save(WorkOrderDocument(
                    work_order=document.work_order,
                    interventions=document.interventions,
                    parts=document.parts + tuple(parts),
                ))
                if document.work_order.state == WorkOrderState.RECONCILED:
                    logger.warning("parts_recorded_after_reconciliation",
                                   work_order_id=external_id,
                                   intervention_id=intervention_id,
                                   count=len(parts))

        logger.info("parts_attributed",
                    work_order_id=external_id,
                    intervention_id=intervention_id,
                    count=len(parts))
        return parts

    async def attribute_parts_batch(
        self,
        external_id: str,
        entries: Iterable[tuple[int, str, int]]
    ) -> PartsBatchResult:
        """
        Record a parts form covering several interventions.
        An intervention that cannot take parts is reported in `rejected`
        while the other interventions' parts are still saved.
        """
        document = get_work_order(self.store, external_id)

        grouped: dict[int, list[tuple[str, int]]] = {}
        for intervention_id, name, quantity in entries:
            grouped.setdefault(intervention_id, []).append((name, quantity))

        result = PartsBatchResult(
            after_reconciliation=document.work_order.state == WorkOrderState.RECONCILED
        )
        for intervention_id, group in grouped.items():
            try:
                result.saved.extend(await self.attribute_parts(external_id, intervention_id, group))
            except (UntrackedType, InterventionNotFound) as e:
                logger.warning("parts_rejected",
                               work_order_id=external_id,
                               intervention_id=intervention_id,
                               error=e.message)
                result.rejected.append({
                    "interventionId": intervention_id,
                    "error": type(e).__name__,
                    "message": e.message,
                })
        return result
