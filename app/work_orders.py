"""
FieldSync Work Orders Module
Starts work orders from the scheduling feed and looks them up for their owner.
"""

import structlog

from .errors import NotOwner, WorkOrderNotFound
from .models import WorkOrder
from .schedule_feed import ScheduleFeed
from .store import WorkOrderDocument, WorkOrderStore

logger = structlog.get_logger(__name__)


def get_work_order(store: WorkOrderStore, external_id: str) -> WorkOrderDocument:
    document = store.get(external_id)
    if document is None:
        raise WorkOrderNotFound(f"Work order {external_id} not found")
    return document


def get_owned_work_order(store: WorkOrderStore, external_id: str, technician_id: str) -> WorkOrderDocument:
    """Fetch a work order, failing unless it belongs to the technician."""
    document = get_work_order(store, external_id)
    if document.work_order.technician_id != technician_id:
        raise NotOwner(f"Work order {external_id} belongs to another technician")
    return document


async def start_work_order(
    store: WorkOrderStore,
    feed: ScheduleFeed,
    external_id: str,
    technician_id: str
) -> WorkOrderDocument:
    """
    Create the local work order for a scheduled item.

    Starting the same item twice returns the existing record. The feed
    assignment decides ownership, which then never changes.
    """
    async with store.lock(external_id):
        existing = store.get(external_id)
        if existing is not None:
            if existing.work_order.technician_id != technician_id:
                raise NotOwner(f"Work order {external_id} was started by another technician")
            logger.info("work_order_already_started", work_order_id=external_id)
            return existing

        record = feed.fetch(external_id)
        if record is None:
            raise WorkOrderNotFound(f"Work order {external_id} is not in the schedule")
        if record.assignee != technician_id:
            logger.warning("work_order_assignment_mismatch",
                           work_order_id=external_id,
                           assignee=record.assignee,
                           technician_id=technician_id)
            raise NotOwner(f"Work order {external_id} is not assigned to you")

        document = WorkOrderDocument(work_order=WorkOrder(
            external_id=record.external_id,
            technician_id=technician_id,
            work_type=record.type,
            client=record.client,
            point_code=record.point_code,
            locker_version=record.locker_version,
            initial_issue=record.initial_issue,
            planned_at=record.planned_at,
        ))
        await store.save(document)

    logger.info("work_order_started", work_order_id=external_id, technician_id=technician_id)
    return document


def list_assigned(store: WorkOrderStore, feed: ScheduleFeed, technician_id: str) -> list[dict]:
    """Scheduled items for a technician, with local lifecycle state where started."""
    orders = []
    for record in feed.fetch_for_assignee(technician_id):
        entry = record.to_dict()
        document = store.get(record.external_id)
        if document is not None and document.work_order.technician_id == technician_id:
            entry["state"] = document.work_order.state.value
            entry["reconciliation_failed"] = document.work_order.reconciliation_failed
        else:
            entry["state"] = None
            entry["reconciliation_failed"] = False
        orders.append(entry)
    return orders
