"""
FieldSync Intervention Registry
Static, versioned rules for which intervention types may be added to a work order.

The table is built once at import time and exposed read-only, so
available_types() stays a pure function of the interventions passed in.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from .errors import DisallowedCombination, InvalidCategory

REGISTRY_VERSION = "2026.1"


class InterventionType(str, Enum):
    """Registered intervention types"""
    BATTERY_SWAP = "battery_swap"
    MAINTENANCE = "maintenance"
    WIND_AUDIT = "wind_audit"
    SURVEY = "survey"


@dataclass(frozen=True)
class Category:
    value: str
    label: str


MAINTENANCE_CATEGORIES: tuple[Category, ...] = (
    Category("compartment_does_not_open", "Compartment Does Not Open"),
    Category("screen_is_black", "Screen Is Black"),
    Category("printer_does_not_work", "Printer Does Not Work"),
    Category("battery_under_voltage", "Battery Under Voltage"),
    Category("scanner_does_not_work", "Scanner Does Not Work"),
    Category("screen_not_responsive", "Screen Not Responsive"),
    Category("hypercare", "Hypercare"),
    Category("all_retrofit", "All Retrofit"),
    Category("other", "Other"),
)


@dataclass(frozen=True)
class InterventionRule:
    """Cardinality and combination rules for one intervention type"""
    name: str
    repeatable: bool
    combinable: bool
    tracks_parts: bool
    categories: tuple[Category, ...] = ()

    @property
    def requires_category(self) -> bool:
        return bool(self.categories)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "repeatable": self.repeatable,
            "combinable": self.combinable,
            "tracksParts": self.tracks_parts,
            "requiresCategory": self.requires_category,
            "categories": [{"value": c.value, "label": c.label} for c in self.categories],
        }


REGISTRY: Mapping[InterventionType, InterventionRule] = MappingProxyType({
    InterventionType.BATTERY_SWAP: InterventionRule(
        name="Battery Swap",
        repeatable=False,
        combinable=False,
        tracks_parts=False,
    ),
    InterventionType.MAINTENANCE: InterventionRule(
        name="Maintenance",
        repeatable=True,
        combinable=True,
        tracks_parts=True,
        categories=MAINTENANCE_CATEGORIES,
    ),
    InterventionType.WIND_AUDIT: InterventionRule(
        name="Wind Audit",
        repeatable=False,
        combinable=True,
        tracks_parts=True,
    ),
    InterventionType.SURVEY: InterventionRule(
        name="Survey",
        repeatable=False,
        combinable=True,
        tracks_parts=False,
    ),
})


def parse_type(value) -> Optional[InterventionType]:
    """Return the registered type for a raw value, or None if unknown."""
    try:
        return InterventionType(value)
    except ValueError:
        return None


def available_types(
    existing: Iterable[InterventionType],
    registry: Mapping[InterventionType, InterventionRule] = REGISTRY,
) -> set[InterventionType]:
    """
    Intervention types that may legally be added next.

    Args:
        existing: Types of the interventions already attached to the work order
        registry: Rule table to evaluate against

    Returns:
        Set of addable types (empty once a non-combinable type is present)
    """
    present = set(existing)

    if any(not registry[t].combinable for t in present):
        return set()

    available = set()
    for intervention_type, rule in registry.items():
        if intervention_type in present and not rule.repeatable:
            continue
        # a non-combinable type can only ever be the sole intervention
        if not rule.combinable and present:
            continue
        available.add(intervention_type)
    return available


def check_addable(
    intervention_type: InterventionType,
    existing: Iterable[InterventionType],
    registry: Mapping[InterventionType, InterventionRule] = REGISTRY,
) -> None:
    """Raise DisallowedCombination unless the type is currently addable."""
    existing = list(existing)
    if intervention_type not in available_types(existing, registry):
        present = sorted(t.value for t in set(existing))
        raise DisallowedCombination(
            f"{intervention_type.value} cannot be added to a work order with {present or 'no interventions'}"
        )


def check_category(
    intervention_type: InterventionType,
    payload: dict,
    registry: Mapping[InterventionType, InterventionRule] = REGISTRY,
) -> None:
    """Raise InvalidCategory if the type needs a category the payload lacks."""
    rule = registry[intervention_type]
    if not rule.requires_category:
        return
    category = payload.get("category")
    if category not in {c.value for c in rule.categories}:
        raise InvalidCategory(
            f"{intervention_type.value} requires a category, got {category!r}"
        )


def tracks_parts(
    intervention_type: InterventionType,
    registry: Mapping[InterventionType, InterventionRule] = REGISTRY,
) -> bool:
    return registry[intervention_type].tracks_parts
