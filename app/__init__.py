"""
FieldSync App Package
"""

from .config import get_settings, Settings
from .coordinator import CompletionCoordinator, CompletionOutcome, CompletionResult
from .registry import InterventionType, available_types

__all__ = [
    "get_settings",
    "Settings",
    "CompletionCoordinator",
    "CompletionOutcome",
    "CompletionResult",
    "InterventionType",
    "available_types"
]
