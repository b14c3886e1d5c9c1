"""
FieldSync Work Order Store
Durable storage for work orders and everything attached to them.

Each work order lives in its own JSON document under data_dir, rewritten
atomically (temp file + os.replace) on every change. Documents are treated as
immutable values: callers build a new version and hand it to save(), and the
in-memory copy is only swapped once the file is on disk.
"""

import asyncio
import itertools
import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import aiofiles
import structlog

from .models import Intervention, PartUsage, WorkOrder, WorkOrderState

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class WorkOrderDocument:
    """A work order with its interventions and part usages, in insertion order"""
    work_order: WorkOrder
    interventions: tuple[Intervention, ...] = ()
    parts: tuple[PartUsage, ...] = ()

    @property
    def external_id(self) -> str:
        return self.work_order.external_id

    def intervention(self, intervention_id: int) -> Optional[Intervention]:
        for intervention in self.interventions:
            if intervention.id == intervention_id:
                return intervention
        return None

    def with_work_order(self, **changes) -> "WorkOrderDocument":
        return replace(self, work_order=replace(self.work_order, **changes))

    def to_dict(self) -> dict:
        return {
            "work_order": self.work_order.to_dict(),
            "interventions": [i.to_dict() for i in self.interventions],
            "parts": [p.to_dict() for p in self.parts],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkOrderDocument":
        return cls(
            work_order=WorkOrder.from_dict(data["work_order"]),
            interventions=tuple(Intervention.from_dict(i) for i in data.get("interventions", [])),
            parts=tuple(PartUsage.from_dict(p) for p in data.get("parts", [])),
        )


class WorkOrderStore:
    """
    File-backed work order store.
    Hands out one asyncio.Lock per work order; unrelated work orders never share a lock.
    Locks live as long as the process, one per work order touched, like the documents themselves.
    """

    def __init__(self, data_dir: str = "./data"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._documents: dict[str, WorkOrderDocument] = {}
        self._locks: dict[str, asyncio.Lock] = {}

        self._load()

        max_intervention = max(
            (i.id for d in self._documents.values() for i in d.interventions), default=0
        )
        max_part = max(
            (p.id for d in self._documents.values() for p in d.parts), default=0
        )
        self._intervention_ids = itertools.count(max_intervention + 1)
        self._part_ids = itertools.count(max_part + 1)

    def _load(self) -> None:
        """Load every work order document from disk"""
        for path in sorted(self.data_dir.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    document = WorkOrderDocument.from_dict(json.load(f))
            except (json.JSONDecodeError, KeyError, ValueError) as e:
                logger.error("work_order_document_unreadable", path=str(path), error=str(e))
                raise
            self._documents[document.external_id] = document

        logger.info("work_order_store_loaded",
                    data_dir=str(self.data_dir),
                    work_orders=len(self._documents))

    def _path(self, external_id: str) -> Path:
        return self.data_dir / f"{quote(external_id, safe='')}.json"

    def lock(self, external_id: str) -> asyncio.Lock:
        """Per-work-order guard for read-modify-write sequences"""
        return self._locks.setdefault(external_id, asyncio.Lock())

    def get(self, external_id: str) -> Optional[WorkOrderDocument]:
        return self._documents.get(external_id)

    def all(self) -> list[WorkOrderDocument]:
        return list(self._documents.values())

    def in_state(self, state: WorkOrderState) -> list[WorkOrderDocument]:
        return [d for d in self._documents.values() if d.work_order.state == state]

    def next_intervention_id(self) -> int:
        return next(self._intervention_ids)

    def next_part_id(self) -> int:
        return next(self._part_ids)

    async def save(self, document: WorkOrderDocument) -> WorkOrderDocument:
        """Persist a new version of a document, then publish it in memory"""
        path = self._path(document.external_id)
        tmp_path = path.with_name(path.name + ".tmp")

        async with aiofiles.open(tmp_path, mode="w", encoding="utf-8") as f:
            await f.write(json.dumps(document.to_dict(), indent=2))
        os.replace(tmp_path, path)

        self._documents[document.external_id] = document
        return document
