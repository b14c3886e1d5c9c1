"""
FieldSync Data Model
Work orders, the interventions completed against them, and the parts those consumed.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .registry import InterventionType


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class WorkOrderState(str, Enum):
    """Work order lifecycle: OPEN -> LOCALLY_COMPLETE -> RECONCILED"""
    OPEN = "open"
    LOCALLY_COMPLETE = "locally_complete"
    RECONCILED = "reconciled"


@dataclass
class WorkOrder:
    """A unit of field work started from the scheduling feed"""
    external_id: str
    technician_id: str
    work_type: str
    state: WorkOrderState = WorkOrderState.OPEN
    created_at: str = field(default_factory=utcnow_iso)
    completed_at: Optional[str] = None
    reconciled_at: Optional[str] = None

    # Reconciliation bookkeeping, meaningful only while LOCALLY_COMPLETE
    reconciliation_failed: bool = False
    last_reconciliation_error: Optional[str] = None
    reconciliation_attempts: int = 0

    # Descriptive fields copied from the feed record
    client: Optional[str] = None
    point_code: Optional[str] = None
    locker_version: Optional[str] = None
    initial_issue: Optional[str] = None
    planned_at: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "WorkOrder":
        data = dict(data)
        data["state"] = WorkOrderState(data["state"])
        return cls(**data)


@dataclass(frozen=True)
class Intervention:
    """One typed unit of completed work; immutable once recorded"""
    id: int
    work_order_id: str
    type: InterventionType
    payload: dict[str, Any]
    submitted_at: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "work_order_id": self.work_order_id,
            "type": self.type.value,
            "payload": self.payload,
            "submitted_at": self.submitted_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Intervention":
        return cls(
            id=data["id"],
            work_order_id=data["work_order_id"],
            type=InterventionType(data["type"]),
            payload=data["payload"],
            submitted_at=data["submitted_at"],
        )


@dataclass(frozen=True)
class PartUsage:
    """A consumable attributed to one intervention"""
    id: int
    intervention_id: int
    work_order_id: str
    name: str
    quantity: int
    recorded_at: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PartUsage":
        return cls(**data)


@dataclass(frozen=True)
class Ack:
    """Acknowledgement returned by the system of record"""
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)
