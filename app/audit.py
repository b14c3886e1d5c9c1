"""
FieldSync Reconciliation Audit Trail
Append-only record of every delivery attempt to the system of record
"""

import json
import asyncio
from pathlib import Path
from typing import Optional, Literal
from dataclasses import dataclass, asdict
import aiofiles
import structlog

from .models import utcnow_iso

logger = structlog.get_logger(__name__)

AttemptOutcome = Literal["delivered", "failed", "cancelled"]


@dataclass
class ReconciliationEvent:
    """One delivery attempt for a work order"""
    timestamp: str
    work_order_id: str
    outcome: AttemptOutcome
    attempt: int
    detail: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class ReconciliationLog:
    """
    Audit trail for reconciliation attempts.
    Writes one JSON object per line.
    The in-memory index keeps every event seen since startup; it is not pruned.
    """

    def __init__(self, log_path: str = "./logs/reconciliation_log.jsonl"):
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()
        self._events: dict[str, list[ReconciliationEvent]] = {}

        self._load_history()

    def _load_history(self) -> None:
        """Load audit history from disk"""
        if not self.log_path.exists():
            return

        with open(self.log_path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    event = ReconciliationEvent(**json.loads(line))
                except (json.JSONDecodeError, TypeError):
                    # a torn final line from an interrupted append
                    logger.warning("reconciliation_log_line_skipped", path=str(self.log_path))
                    continue
                self._events.setdefault(event.work_order_id, []).append(event)

        logger.info("reconciliation_history_loaded",
                    work_orders=len(self._events),
                    total_events=sum(len(e) for e in self._events.values()))

    async def record(
        self,
        work_order_id: str,
        outcome: AttemptOutcome,
        attempt: int,
        detail: Optional[str] = None
    ) -> ReconciliationEvent:
        event = ReconciliationEvent(
            timestamp=utcnow_iso(),
            work_order_id=work_order_id,
            outcome=outcome,
            attempt=attempt,
            detail=detail,
        )
        self._events.setdefault(work_order_id, []).append(event)

        async with self._lock:
            async with aiofiles.open(self.log_path, mode="a", encoding="utf-8") as f:
                await f.write(json.dumps(event.to_dict()) + "\n")

        return event

    def events_for(self, work_order_id: str) -> list[ReconciliationEvent]:
        return list(self._events.get(work_order_id, []))
