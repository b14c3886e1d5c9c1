"""
FieldSync Intervention Ledger
Records interventions against open work orders and owns the OPEN -> LOCALLY_COMPLETE step.
"""

import copy
from typing import Any, Mapping

import structlog

from .errors import DisallowedCombination, InvalidCategory, InvalidState
from .models import Intervention, WorkOrderState, utcnow_iso
from .registry import (
    REGISTRY, InterventionRule, InterventionType,
    available_types, check_addable, check_category, parse_type
)
from .store import WorkOrderDocument, WorkOrderStore
from .work_orders import get_work_order

logger = structlog.get_logger(__name__)


class InterventionLedger:
    """Validates and appends interventions using the registry as the only rule source"""

    def __init__(
        self,
        store: WorkOrderStore,
        registry: Mapping[InterventionType, InterventionRule] = REGISTRY
    ):
        self.store = store
        self.registry = registry

    def available_types_for(self, external_id: str) -> set[InterventionType]:
        document = get_work_order(self.store, external_id)
        if document.work_order.state != WorkOrderState.OPEN:
            return set()
        return available_types((i.type for i in document.interventions), self.registry)

    async def add_intervention(
        self,
        external_id: str,
        intervention_type: Any,
        payload: dict
    ) -> Intervention:
        """
        Append an intervention to an open work order.

        Args:
            external_id: Work order identifier
            intervention_type: Registered type (enum member or its string value)
            payload: Form output, copied on submission and forwarded verbatim

        Returns:
            The recorded Intervention; its id is usable for parts right away

        Raises:
            InvalidState: work order is no longer open
            DisallowedCombination: type not addable next (or not registered)
            InvalidCategory: type requires a category the payload lacks
        """
        async with self.store.lock(external_id):
            document = get_work_order(self.store, external_id)
            state = document.work_order.state
            if state != WorkOrderState.OPEN:
                raise InvalidState(
                    f"Work order {external_id} is {state.value}; interventions can only be added while open"
                )

            parsed = parse_type(intervention_type)
            if parsed is None or parsed not in self.registry:
                raise DisallowedCombination(f"Unknown intervention type {intervention_type!r}")

            try:
                check_addable(parsed, (i.type for i in document.interventions), self.registry)
                check_category(parsed, payload, self.registry)
            except (DisallowedCombination, InvalidCategory) as e:
                logger.warning("intervention_rejected",
                               work_order_id=external_id,
                               type=parsed.value,
                               error=e.message)
                raise

            intervention = Intervention(
                id=self.store.next_intervention_id(),
                work_order_id=external_id,
                type=parsed,
                payload=copy.deepcopy(payload),
                submitted_at=utcnow_iso(),
            )
            await self.store.save(
                WorkOrderDocument(
                    work_order=document.work_order,
                    interventions=document.interventions + (intervention,),
                    parts=document.parts,
                )
            )

        logger.info("intervention_added",
                    work_order_id=external_id,
                    intervention_id=intervention.id,
                    type=parsed.value)
        return intervention

    async def mark_locally_complete(self, external_id: str) -> WorkOrderDocument:
        async with self.store.lock(external_id):
            return await self.complete_locked(get_work_order(self.store, external_id))

    async def complete_locked(self, document: WorkOrderDocument) -> WorkOrderDocument:
        """
        OPEN -> LOCALLY_COMPLETE, stamping completed_at.
        Caller must hold the work order's lock. Repeating it on a locally
        complete work order is a no-op.
        """
        state = document.work_order.state
        if state == WorkOrderState.LOCALLY_COMPLETE:
            return document
        if state != WorkOrderState.OPEN:
            raise InvalidState(f"Work order {document.external_id} is already {state.value}")

        document = await self.store.save(document.with_work_order(
            state=WorkOrderState.LOCALLY_COMPLETE,
            completed_at=utcnow_iso(),
        ))
        logger.info("work_order_locally_completed",
                    work_order_id=document.external_id,
                    interventions=len(document.interventions),
                    parts=len(document.parts))
        return document
