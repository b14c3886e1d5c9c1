"""
FieldSync Request Bodies
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class StartWorkOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    work_order_id: str = Field(..., alias="workOrderId", min_length=1)


class InterventionRequest(BaseModel):
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)


class PartEntry(BaseModel):
    """Parts form row; blank names and non-positive quantities are dropped later, not rejected here"""
    model_config = ConfigDict(populate_by_name=True)

    intervention_id: int = Field(..., alias="interventionId")
    name: Optional[str] = None
    quantity: Optional[int] = None


class PartsRequest(BaseModel):
    parts: list[PartEntry]
