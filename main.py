"""
FieldSync - Field Work Order Completion Service
FastAPI Main Application
"""

import logging
from pathlib import Path
from contextlib import asynccontextmanager
import structlog
from fastapi import FastAPI, Depends, Request, HTTPException
from fastapi.responses import JSONResponse

from app.auth import get_current_user, get_technician_id, has_permission
from app.config import Settings, get_settings
from app.coordinator import CompletionCoordinator
from app.dependencies import (
    get_coordinator, get_intervention_ledger, get_parts_ledger,
    get_reconciliation_log, get_schedule_feed, get_store
)
from app.errors import WorkOrderError
from app.interventions import InterventionLedger
from app.models import WorkOrderState
from app.parts import PartsLedger
from app.audit import ReconciliationLog
from app.registry import REGISTRY
from app.retry import reconcile_pending
from app.schedule_feed import ScheduleFeed
from app.schemas import InterventionRequest, PartsRequest, StartWorkOrderRequest
from app.store import WorkOrderDocument, WorkOrderStore
from app.work_orders import get_owned_work_order, list_assigned, start_work_order

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    logger.info(
        "fieldsync_starting",
        host=settings.host,
        port=settings.port,
        data_dir=settings.data_dir,
        webhook_configured=bool(settings.reconciliation_webhook_url)
    )

    Path(settings.audit_log_path).parent.mkdir(parents=True, exist_ok=True)
    store = get_store()
    pending = len(store.in_state(WorkOrderState.LOCALLY_COMPLETE))
    if pending:
        logger.warning("unreconciled_work_orders_at_startup", count=pending)

    yield

    logger.info("fieldsync_shutdown")


app = FastAPI(
    title="FieldSync",
    description="Field work order completion and reconciliation",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(WorkOrderError)
async def work_order_error_handler(request: Request, exc: WorkOrderError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _detail(document: WorkOrderDocument, ledger: InterventionLedger) -> dict:
    data = document.to_dict()
    data["available_types"] = sorted(t.value for t in ledger.available_types_for(document.external_id))
    return data


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "FieldSync",
        "version": "1.0.0"
    }


# ── Work Orders API ──
@app.get("/api/work-orders")
async def list_work_orders(
    technician_id: str = Depends(get_technician_id),
    store: WorkOrderStore = Depends(get_store),
    feed: ScheduleFeed = Depends(get_schedule_feed)
):
    """Scheduled work orders assigned to the caller"""
    orders = list_assigned(store, feed, technician_id)
    return {"work_orders": orders, "count": len(orders)}


@app.post("/api/work-orders/init")
async def init_work_order(
    body: StartWorkOrderRequest,
    technician_id: str = Depends(get_technician_id),
    store: WorkOrderStore = Depends(get_store),
    feed: ScheduleFeed = Depends(get_schedule_feed)
):
    """Start working on a scheduled item (idempotent)"""
    document = await start_work_order(store, feed, body.work_order_id, technician_id)
    return {"work_order": document.work_order.to_dict()}


@app.get("/api/work-orders/{work_order_id}")
async def get_work_order_detail(
    work_order_id: str,
    technician_id: str = Depends(get_technician_id),
    store: WorkOrderStore = Depends(get_store),
    ledger: InterventionLedger = Depends(get_intervention_ledger)
):
    document = get_owned_work_order(store, work_order_id, technician_id)
    return _detail(document, ledger)


@app.get("/api/work-orders/{work_order_id}/available-types")
async def get_available_types(
    work_order_id: str,
    technician_id: str = Depends(get_technician_id),
    store: WorkOrderStore = Depends(get_store),
    ledger: InterventionLedger = Depends(get_intervention_ledger)
):
    """Intervention types that may be added next, with their rules"""
    get_owned_work_order(store, work_order_id, technician_id)
    available = sorted(ledger.available_types_for(work_order_id), key=lambda t: t.value)
    return {
        "work_order_id": work_order_id,
        "types": [{"type": t.value, **REGISTRY[t].to_dict()} for t in available]
    }


@app.post("/api/work-orders/{work_order_id}/interventions", status_code=201)
async def add_intervention(
    work_order_id: str,
    body: InterventionRequest,
    technician_id: str = Depends(get_technician_id),
    store: WorkOrderStore = Depends(get_store),
    ledger: InterventionLedger = Depends(get_intervention_ledger)
):
    """Record a completed intervention form"""
    get_owned_work_order(store, work_order_id, technician_id)
    intervention = await ledger.add_intervention(work_order_id, body.type, body.payload)
    return {"interventionId": intervention.id, "intervention": intervention.to_dict()}


@app.post("/api/work-orders/{work_order_id}/parts")
async def add_parts(
    work_order_id: str,
    body: PartsRequest,
    technician_id: str = Depends(get_technician_id),
    store: WorkOrderStore = Depends(get_store),
    parts: PartsLedger = Depends(get_parts_ledger)
):
    """Save the parts form; each row names the intervention it belongs to"""
    get_owned_work_order(store, work_order_id, technician_id)
    result = await parts.attribute_parts_batch(
        work_order_id,
        [(p.intervention_id, p.name, p.quantity) for p in body.parts]
    )
    return result.to_dict()


@app.post("/api/work-orders/{work_order_id}/complete")
async def complete_work_order(
    work_order_id: str,
    technician_id: str = Depends(get_technician_id),
    store: WorkOrderStore = Depends(get_store),
    coordinator: CompletionCoordinator = Depends(get_coordinator)
):
    """
    Finalize a work order and sync it to the system of record.
    200 = completed and synced, 207 = saved locally but not synced (retry later).
    """
    get_owned_work_order(store, work_order_id, technician_id)
    result = await coordinator.complete(work_order_id)
    return JSONResponse(status_code=result.http_status, content=result.to_dict())


@app.get("/api/work-orders/{work_order_id}/reconciliation-log")
async def get_reconciliation_log_entries(
    work_order_id: str,
    technician_id: str = Depends(get_technician_id),
    store: WorkOrderStore = Depends(get_store),
    audit: ReconciliationLog = Depends(get_reconciliation_log)
):
    get_owned_work_order(store, work_order_id, technician_id)
    events = audit.events_for(work_order_id)
    return {"work_order_id": work_order_id, "events": [e.to_dict() for e in events]}


@app.post("/api/admin/reconcile")
async def reconcile_unsynced(
    user: dict = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    store: WorkOrderStore = Depends(get_store),
    coordinator: CompletionCoordinator = Depends(get_coordinator)
):
    """Retry every locally complete work order - operators only"""
    if not has_permission(user, "reconcile_work_orders"):
        raise HTTPException(status_code=403, detail="Not authorized to reconcile work orders")
    report = await reconcile_pending(
        store,
        coordinator,
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay_seconds
    )
    return report.to_dict()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
