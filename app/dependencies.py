"""
FieldSync Service Wiring
Process-wide service instances, built lazily from settings.
Routes receive them through FastAPI dependencies, which tests override.
"""

from typing import Optional

from .audit import ReconciliationLog
from .config import get_settings
from .coordinator import CompletionCoordinator
from .interventions import InterventionLedger
from .parts import PartsLedger
from .reconciliation import ReconciliationClient
from .schedule_feed import ScheduleFeed, build_schedule_feed
from .store import WorkOrderStore

_store: Optional[WorkOrderStore] = None
_feed: Optional[ScheduleFeed] = None
_audit: Optional[ReconciliationLog] = None
_coordinator: Optional[CompletionCoordinator] = None


def get_store() -> WorkOrderStore:
    global _store
    if _store is None:
        _store = WorkOrderStore(get_settings().data_dir)
    return _store


def get_schedule_feed() -> ScheduleFeed:
    global _feed
    if _feed is None:
        settings = get_settings()
        _feed = build_schedule_feed(settings.use_mock_schedule, settings.schedule_feed_path)
    return _feed


def get_reconciliation_log() -> ReconciliationLog:
    global _audit
    if _audit is None:
        _audit = ReconciliationLog(get_settings().audit_log_path)
    return _audit


def get_intervention_ledger() -> InterventionLedger:
    return InterventionLedger(get_store())


def get_parts_ledger() -> PartsLedger:
    return PartsLedger(get_store())


def get_coordinator() -> CompletionCoordinator:
    global _coordinator
    if _coordinator is None:
        settings = get_settings()
        client = ReconciliationClient(
            settings.reconciliation_webhook_url,
            secret=settings.reconciliation_webhook_secret,
            timeout=settings.reconciliation_timeout_seconds,
        )
        _coordinator = CompletionCoordinator(
            get_store(),
            InterventionLedger(get_store()),
            client,
            audit=get_reconciliation_log(),
            delivery_timeout=settings.reconciliation_deadline_seconds,
        )
    return _coordinator
