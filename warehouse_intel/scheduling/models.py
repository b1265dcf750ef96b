"""
Scheduling tool data model: configuration, entries, shift context and derived values.
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from warehouse_intel.config import (
    CAPABILITY_SENTINEL,
    RESERVED_NAME_PREFIX,
    SHIFT_CODES,
    TASK_CATEGORIES,
)


# Resource types assumed when the configuration defines none
FALLBACK_RESOURCE_TYPES = ["PPT", "CB", "VNA"]


class ValidationError(Exception):
    """Raised when an action is attempted with missing or invalid input."""

    def __init__(self, message: str, field_name: Optional[str] = None):
        super().__init__(message)
        self.field_name = field_name


class RowKind(Enum):
    """Kind of a persisted scheduling_entries row."""
    CAPABILITY = "capability"
    TASK_VOLUME = "task_volume"


def row_kind(row: Dict[str, Any]) -> RowKind:
    """Classify a persisted row by its task_name marker."""
    if str(row.get("task_name") or "").strip() == CAPABILITY_SENTINEL:
        return RowKind.CAPABILITY
    return RowKind.TASK_VOLUME


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class ResourceDefinition:
    """A labour/equipment pool that tasks consume and costs are charged to."""
    id: str
    label: str
    type: str
    cost_per_hour: float = 0.0
    count: int = 0

    @property
    def type_key(self) -> str:
        return (self.type or "").strip()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceDefinition":
        return cls(
            id=str(data.get("id") or ""),
            label=str(data.get("label") or ""),
            type=str(data.get("type") or ""),
            cost_per_hour=_to_float(data.get("cost_per_hour", data.get("costPerHour"))),
            count=int(_to_float(data.get("count"))),
        )


@dataclass
class TaskDefinition:
    """A unit of warehouse work with a productivity standard."""
    id: str
    name: str
    area: str = ""
    resource: str = ""
    unit: str = "Units"
    minutes_per_unit: float = 0.0
    category: str = "Direct"

    @property
    def resource_key(self) -> str:
        return (self.resource or "").strip()

    @property
    def name_key(self) -> str:
        return (self.name or "").strip()

    @property
    def is_indirect(self) -> bool:
        return (self.category or "Direct").strip() == "Indirect"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskDefinition":
        category = str(data.get("category") or "Direct").strip()
        if category not in TASK_CATEGORIES:
            category = "Direct"
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            area=str(data.get("area") or ""),
            resource=str(data.get("resource") or ""),
            unit=str(data.get("unit") or "Units"),
            minutes_per_unit=_to_float(data.get("minutes_per_unit", data.get("minutesPerUnit"))),
            category=category,
        )


@dataclass
class PlanConfig:
    """Operator-tunable scheduling configuration, passed to the calculator at call time."""
    resources: List[ResourceDefinition] = field(default_factory=list)
    tasks: List[TaskDefinition] = field(default_factory=list)
    indirect_limit_pct: float = 5.0

    @property
    def resource_types(self) -> List[str]:
        """Unique, non-blank resource types in configuration order."""
        types = [r.type_key for r in self.resources if r.type_key]
        unique = list(dict.fromkeys(types))
        return unique or list(FALLBACK_RESOURCE_TYPES)

    @property
    def rate_by_resource(self) -> Dict[str, float]:
        """Cost per hour by resource type. Duplicate types: last definition wins."""
        rates = {}
        for r in self.resources:
            if r.type_key:
                rates[r.type_key] = r.cost_per_hour
        return rates

    def task_by_id(self, task_id: str) -> Optional[TaskDefinition]:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None

    def validate(self) -> Tuple[List[str], List[str]]:
        """
        Check configuration consistency.

        Returns (errors, warnings). Errors must be fixed before saving;
        warnings describe tolerated issues such as orphaned tasks.
        """
        errors = []
        warnings = []

        seen_types = {}
        for r in self.resources:
            if not r.type_key:
                errors.append(f"Resource '{r.label or r.id}' has no type.")
                continue
            if r.cost_per_hour < 0:
                errors.append(f"Resource '{r.type_key}' has a negative cost per hour.")
            if r.type_key in seen_types:
                warnings.append(
                    f"Resource type '{r.type_key}' is defined more than once; "
                    f"the last definition ('{r.label}') is used."
                )
            seen_types[r.type_key] = r

        seen_names = set()
        known_types = set(seen_types)
        for t in self.tasks:
            name = t.name_key
            if not name:
                errors.append(f"Task '{t.id}' has no name.")
                continue
            if name.startswith(RESERVED_NAME_PREFIX):
                errors.append(f"Task name '{name}' is reserved (names may not start with '{RESERVED_NAME_PREFIX}').")
            if name in seen_names:
                errors.append(f"Task name '{name}' is used more than once.")
            seen_names.add(name)
            if t.minutes_per_unit < 0:
                errors.append(f"Task '{name}' has negative minutes per unit.")
            if t.resource_key and known_types and t.resource_key not in known_types:
                warnings.append(f"Task '{name}' uses unknown resource type '{t.resource_key}'.")

        if self.indirect_limit_pct < 0:
            errors.append("Indirect limit must be zero or more.")

        return errors, warnings


# =============================================================================
# ENTRIES AND CONTEXT
# =============================================================================

@dataclass
class CapabilityEntry:
    """Planned/available capacity for one resource type in a shift. Blank values are None or ''."""
    headcount_plan: Any = None
    headcount_expected: Any = None
    headcount_actual: Any = None
    hours_available: Any = None


@dataclass
class TaskVolumeEntry:
    """Entered volumes for one task in a shift. Blank values are None or ''."""
    plan_volume: Any = None
    actual_volume: Any = None


@dataclass(frozen=True)
class ShiftContext:
    """The (site, date, shift) key that scopes capability and volume entries."""
    site_id: Optional[str]
    scheduled_date: date
    shift_code: str = "AM"
    tenant_id: Optional[str] = None

    @property
    def date_iso(self) -> str:
        return self.scheduled_date.isoformat()

    def validate(self):
        """Raise ValidationError if the context cannot be persisted."""
        if not self.site_id:
            raise ValidationError("Select a Site before saving.", field_name="site_id")
        if self.shift_code not in SHIFT_CODES:
            raise ValidationError(
                f"Shift must be one of {', '.join(SHIFT_CODES)}.", field_name="shift_code"
            )
        # tenant_id is part of the conflict key and NULLs never conflict
        if not self.tenant_id:
            raise ValidationError("Set TENANT_ID before saving shifts.", field_name="tenant_id")


# =============================================================================
# DERIVED VALUES
# =============================================================================

@dataclass
class DerivedHours:
    """Hours derived from a task's volumes."""
    plan_hours: float = 0.0
    actual_hours: float = 0.0


@dataclass
class ResourceHours:
    """Plan/actual hours aggregated for one resource type."""
    plan_hours: float = 0.0
    actual_hours: float = 0.0


@dataclass
class Summary:
    """Shift-level rollup of derived hours, capacity and cost."""
    by_resource: Dict[str, ResourceHours] = field(default_factory=dict)
    plan_direct_hours: float = 0.0
    plan_indirect_hours: float = 0.0
    actual_direct_hours: float = 0.0
    actual_indirect_hours: float = 0.0
    total_available_hours: float = 0.0
    total_plan_hours: float = 0.0
    total_actual_hours: float = 0.0
    plan_cost: float = 0.0
    actual_cost: float = 0.0
    indirect_pct_of_plan: float = 0.0

    @property
    def indirect_plan_hours(self) -> float:
        return self.plan_indirect_hours

    @property
    def capacity_variance(self) -> float:
        return self.total_available_hours - self.total_plan_hours

    def indirect_limit_exceeded(self, limit_pct: float) -> bool:
        """True when indirect plan hours exceed the limit share of total plan hours."""
        return self.indirect_pct_of_plan > limit_pct


@dataclass
class DailySummaryRow:
    """Hours and cost summed across one shift of a day."""
    shift_code: str
    planned_direct_hours: float = 0.0
    planned_indirect_hours: float = 0.0
    expected_direct_hours: float = 0.0
    expected_indirect_hours: float = 0.0
    actual_direct_hours: float = 0.0
    actual_indirect_hours: float = 0.0
    plan_cost: float = 0.0
    expected_cost: float = 0.0
    actual_cost: float = 0.0

    @property
    def planned_hours(self) -> float:
        return self.planned_direct_hours + self.planned_indirect_hours

    @property
    def expected_hours(self) -> float:
        return self.expected_direct_hours + self.expected_indirect_hours

    @property
    def actual_hours(self) -> float:
        return self.actual_direct_hours + self.actual_indirect_hours

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _to_float(value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    if result != result or result in (float("inf"), float("-inf")):
        return 0.0
    return result
