"""
Shift plan calculator.

Single source of truth for: task hours, shift summary, labour cost,
persisted row mapping and the daily rollup across shifts.

All functions are pure: same inputs, same outputs, no hidden state.
Invalid numbers degrade to 0 rather than raising.
"""
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from warehouse_intel.config import (
    CAPABILITY_SENTINEL,
    RESERVED_NAME_PREFIX,
    SCHEDULING_COLUMNS,
    SCHEDULING_COST_COLUMNS,
    SCHEDULING_HOUR_COLUMNS,
    SHIFT_CODES,
)
from warehouse_intel.logging_config import get_logger
from warehouse_intel.scheduling.models import (
    CapabilityEntry,
    DailySummaryRow,
    DerivedHours,
    ResourceHours,
    RowKind,
    ShiftContext,
    Summary,
    TaskDefinition,
    TaskVolumeEntry,
    row_kind,
)

logger = get_logger(__name__)


# =============================================================================
# NUMERIC COERCION
# =============================================================================

def safe_num(value: Any) -> float:
    """Coerce to a finite float; blank, non-numeric, NaN and infinity become 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(result):
        return 0.0
    return result


def optional_num(value: Any) -> Optional[float]:
    """Like safe_num but keeps 'empty' distinct: blank or invalid input gives None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def _optional_count(value: Any) -> Optional[int]:
    num = optional_num(value)
    if num is None:
        return None
    return int(round(num))


# =============================================================================
# DERIVATION
# =============================================================================

def derive_task_hours(task: TaskDefinition, volume: Optional[TaskVolumeEntry]) -> DerivedHours:
    """
    Convert a task's volumes into hours using its minutes-per-unit standard.

    hours = volume * minutes_per_unit / 60, with zero hours whenever the
    standard is missing or not positive. Output is never negative.
    """
    minutes = safe_num(task.minutes_per_unit)
    if minutes <= 0 or volume is None:
        return DerivedHours(0.0, 0.0)

    plan_volume = max(safe_num(volume.plan_volume), 0.0)
    actual_volume = max(safe_num(volume.actual_volume), 0.0)

    return DerivedHours(
        plan_hours=plan_volume * minutes / 60,
        actual_hours=actual_volume * minutes / 60,
    )


def derive_all(tasks: Sequence[TaskDefinition],
               volumes_by_task: Dict[str, TaskVolumeEntry]) -> Dict[str, DerivedHours]:
    """Derived hours keyed by task id."""
    return {t.id: derive_task_hours(t, volumes_by_task.get(t.id)) for t in tasks}


def summarize(tasks: Sequence[TaskDefinition],
              volumes_by_task: Dict[str, TaskVolumeEntry],
              resource_types: Sequence[str],
              capability_by_resource: Dict[str, CapabilityEntry],
              rate_by_resource: Dict[str, float]) -> Summary:
    """
    Roll task hours up to resource types and shift totals.

    - Tasks whose resource is not a known type are left out of by_resource
      and cost, but still count towards direct/indirect totals.
    - total_available_hours sums hours_available over known types.
    - Cost is resource hours * rate; a type without a rate costs 0.
    """
    known = list(dict.fromkeys(rt.strip() for rt in resource_types if rt and rt.strip()))
    by_resource = {rt: ResourceHours() for rt in known}

    plan_direct = plan_indirect = actual_direct = actual_indirect = 0.0

    for task in tasks:
        hours = derive_task_hours(task, volumes_by_task.get(task.id))

        resource = task.resource_key
        if resource in by_resource:
            by_resource[resource].plan_hours += hours.plan_hours
            by_resource[resource].actual_hours += hours.actual_hours

        if task.is_indirect:
            plan_indirect += hours.plan_hours
            actual_indirect += hours.actual_hours
        else:
            plan_direct += hours.plan_hours
            actual_direct += hours.actual_hours

    total_available = 0.0
    for rt in known:
        entry = capability_by_resource.get(rt)
        if entry is not None:
            total_available += max(safe_num(entry.hours_available), 0.0)

    plan_cost = actual_cost = 0.0
    for rt, res_hours in by_resource.items():
        rate = max(safe_num(rate_by_resource.get(rt)), 0.0)
        plan_cost += res_hours.plan_hours * rate
        actual_cost += res_hours.actual_hours * rate

    total_plan = plan_direct + plan_indirect
    total_actual = actual_direct + actual_indirect
    indirect_pct = plan_indirect / total_plan * 100 if total_plan > 0 else 0.0

    return Summary(
        by_resource=by_resource,
        plan_direct_hours=plan_direct,
        plan_indirect_hours=plan_indirect,
        actual_direct_hours=actual_direct,
        actual_indirect_hours=actual_indirect,
        total_available_hours=total_available,
        total_plan_hours=total_plan,
        total_actual_hours=total_actual,
        plan_cost=plan_cost,
        actual_cost=actual_cost,
        indirect_pct_of_plan=indirect_pct,
    )


# =============================================================================
# PERSISTED ROW MAPPING
# =============================================================================

def _empty_row(context: ShiftContext) -> Dict[str, Any]:
    row = {col: None for col in SCHEDULING_COLUMNS}
    row.update({
        "tenant_id": context.tenant_id,
        "site_id": context.site_id,
        "scheduled_date": context.date_iso,
        "shift_code": context.shift_code,
    })
    for col in SCHEDULING_HOUR_COLUMNS:
        row[col] = 0.0
    return row


def _cost(hours: float, rate: Optional[float]) -> Optional[float]:
    if rate is None or rate <= 0:
        return None
    return hours * rate


def to_persisted_rows(context: ShiftContext,
                      tasks: Sequence[TaskDefinition],
                      capability_by_resource: Dict[str, CapabilityEntry],
                      task_volumes: Dict[str, TaskVolumeEntry],
                      derived_hours: Dict[str, DerivedHours],
                      rate_by_resource: Dict[str, float],
                      resource_types: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
    """
    Flatten a shift's capability and volumes into scheduling_entries rows.

    Capability rows carry the reserved task name and put their own hours in
    the direct columns (plan, available, actual). Task rows split hours into
    direct/indirect by category and carry costs when the resource has a
    positive rate. Rows without any nonzero value are skipped.
    """
    context.validate()

    if resource_types is None:
        resource_types = list(capability_by_resource.keys()) + [t.resource_key for t in tasks]
    types = list(dict.fromkeys(rt.strip() for rt in resource_types if rt and rt.strip()))

    # Aggregate derived hours per resource for the capability rows
    hours_by_resource = {rt: ResourceHours() for rt in types}
    for task in tasks:
        hours = derived_hours.get(task.id) or DerivedHours()
        if task.resource_key in hours_by_resource:
            hours_by_resource[task.resource_key].plan_hours += safe_num(hours.plan_hours)
            hours_by_resource[task.resource_key].actual_hours += safe_num(hours.actual_hours)

    rows = []

    for rt in types:
        entry = capability_by_resource.get(rt) or CapabilityEntry()
        hc_plan = _optional_count(entry.headcount_plan)
        hc_expected = _optional_count(entry.headcount_expected)
        hc_actual = _optional_count(entry.headcount_actual)
        available = optional_num(entry.hours_available)
        planned = hours_by_resource[rt].plan_hours
        actual = hours_by_resource[rt].actual_hours

        signals = [hc_plan, hc_expected, hc_actual, available, planned, actual]
        if not any(safe_num(v) != 0 for v in signals):
            continue

        row = _empty_row(context)
        row.update({
            "resource_or_task_key": rt,
            "task_name": CAPABILITY_SENTINEL,
            "headcount_plan": hc_plan,
            "headcount_expected": hc_expected,
            "headcount_actual": hc_actual,
            "hours_direct_plan": planned,
            "hours_direct_expected": available,
            "hours_direct_actual": actual,
        })
        rows.append(row)

    for task in tasks:
        volume = task_volumes.get(task.id) or TaskVolumeEntry()
        plan_volume = optional_num(volume.plan_volume)
        actual_volume = optional_num(volume.actual_volume)
        hours = derived_hours.get(task.id) or DerivedHours()
        plan_hours = safe_num(hours.plan_hours)
        actual_hours = safe_num(hours.actual_hours)

        has_any = (
            (plan_volume is not None and plan_volume > 0)
            or (actual_volume is not None and actual_volume > 0)
            or plan_hours > 0
            or actual_hours > 0
        )
        if not has_any:
            continue

        expected_hours = plan_hours
        rate_value = rate_by_resource.get(task.resource_key)
        rate = safe_num(rate_value) if rate_value is not None else None

        if task.is_indirect:
            split = {
                "hours_indirect_plan": plan_hours,
                "hours_indirect_expected": expected_hours,
                "hours_indirect_actual": actual_hours,
            }
        else:
            split = {
                "hours_direct_plan": plan_hours,
                "hours_direct_expected": expected_hours,
                "hours_direct_actual": actual_hours,
            }

        row = _empty_row(context)
        row.update(split)
        row.update({
            "resource_or_task_key": task.resource_key,
            "task_name": task.name_key,
            "units_planned": plan_volume,
            "units_actual": actual_volume,
            "cost_plan": _cost(plan_hours, rate),
            "cost_expected": _cost(expected_hours, rate),
            "cost_actual": _cost(actual_hours, rate),
        })
        rows.append(row)

    return rows


def from_persisted_rows(rows: Iterable[Dict[str, Any]],
                        task_definitions: Sequence[TaskDefinition]
                        ) -> Tuple[Dict[str, CapabilityEntry], Dict[str, TaskVolumeEntry]]:
    """
    Rebuild capability and task volumes from scheduling_entries rows.

    Task rows are matched to definitions by exact (case-sensitive) name.
    Rows naming a task that no longer exists are dropped.
    """
    task_by_name = {}
    for t in task_definitions:
        task_by_name[t.name_key] = t

    capability = {}
    volumes = {}
    dropped = []

    for row in rows:
        if row_kind(row) is RowKind.CAPABILITY:
            resource = str(row.get("resource_or_task_key") or "").strip()
            if not resource:
                dropped.append(CAPABILITY_SENTINEL)
                continue
            capability[resource] = CapabilityEntry(
                headcount_plan=_optional_count(row.get("headcount_plan")),
                headcount_expected=_optional_count(row.get("headcount_expected")),
                headcount_actual=_optional_count(row.get("headcount_actual")),
                hours_available=optional_num(row.get("hours_direct_expected")),
            )
            continue

        name = str(row.get("task_name") or "").strip()
        task = task_by_name.get(name)
        if task is None:
            dropped.append(name)
            continue
        volumes[task.id] = TaskVolumeEntry(
            plan_volume=optional_num(row.get("units_planned")),
            actual_volume=optional_num(row.get("units_actual")),
        )

    if dropped:
        logger.debug("Ignored %d persisted row(s) with no matching task: %s", len(dropped), sorted(set(dropped)))

    return capability, volumes


# =============================================================================
# DAILY ROLLUP
# =============================================================================

DAILY_FIELD_MAP = {
    "planned_direct_hours": "hours_direct_plan",
    "planned_indirect_hours": "hours_indirect_plan",
    "expected_direct_hours": "hours_direct_expected",
    "expected_indirect_hours": "hours_indirect_expected",
    "actual_direct_hours": "hours_direct_actual",
    "actual_indirect_hours": "hours_indirect_actual",
    "plan_cost": "cost_plan",
    "expected_cost": "cost_expected",
    "actual_cost": "cost_actual",
}


def aggregate_daily(rows: Iterable[Dict[str, Any]],
                    shift_codes: Sequence[str] = SHIFT_CODES) -> List[DailySummaryRow]:
    """
    Sum task rows for one (site, date) into one row per shift.

    Capability rows are excluded. Every requested shift code is returned,
    zero-filled when it has no rows.
    """
    shift_codes = list(shift_codes)
    value_cols = list(DAILY_FIELD_MAP.values())

    df = pd.DataFrame(list(rows))
    if len(df) > 0 and "task_name" in df.columns:
        names = df["task_name"].fillna("").astype(str).str.strip()
        df = df[~names.str.startswith(RESERVED_NAME_PREFIX)]

    if len(df) == 0:
        totals = pd.DataFrame(0.0, index=shift_codes, columns=value_cols)
    else:
        df = df.copy()
        if "shift_code" not in df.columns:
            df["shift_code"] = "AM"
        df["shift_code"] = df["shift_code"].fillna("").astype(str).str.strip().replace("", "AM")

        for col in value_cols:
            if col in df.columns:
                values = pd.to_numeric(df[col], errors="coerce")
                df[col] = values.where(np.isfinite(values), 0.0).fillna(0.0)
            else:
                df[col] = 0.0

        df = df[df["shift_code"].isin(shift_codes)]
        totals = (
            df.groupby("shift_code")[value_cols]
            .sum()
            .reindex(shift_codes, fill_value=0.0)
        )

    result = []
    for shift in shift_codes:
        values = totals.loc[shift]
        result.append(DailySummaryRow(
            shift_code=shift,
            **{name: float(values[col]) for name, col in DAILY_FIELD_MAP.items()},
        ))
    return result


# =============================================================================
# TABULAR VIEWS
# =============================================================================

def capability_table(summary: Summary,
                     resource_types: Sequence[str],
                     capability_by_resource: Dict[str, CapabilityEntry]) -> pd.DataFrame:
    """Per-resource capacity vs planned demand. variance = available - planned."""
    records = []
    for rt in resource_types:
        entry = capability_by_resource.get(rt) or CapabilityEntry()
        res_hours = summary.by_resource.get(rt) or ResourceHours()
        available = max(safe_num(entry.hours_available), 0.0)
        records.append({
            "resource_type": rt,
            "headcount_plan": _optional_count(entry.headcount_plan),
            "headcount_expected": _optional_count(entry.headcount_expected),
            "headcount_actual": _optional_count(entry.headcount_actual),
            "hours_available": available,
            "planned_hours": res_hours.plan_hours,
            "actual_hours": res_hours.actual_hours,
            "variance": available - res_hours.plan_hours,
        })
    return pd.DataFrame(records, columns=[
        "resource_type", "headcount_plan", "headcount_expected", "headcount_actual",
        "hours_available", "planned_hours", "actual_hours", "variance",
    ])


def plan_vs_actual_table(tasks: Sequence[TaskDefinition],
                         volumes_by_task: Dict[str, TaskVolumeEntry],
                         derived_hours: Dict[str, DerivedHours]) -> pd.DataFrame:
    """Per-task volumes and hours with hour variance (actual - plan)."""
    records = []
    for t in tasks:
        volume = volumes_by_task.get(t.id) or TaskVolumeEntry()
        hours = derived_hours.get(t.id) or DerivedHours()
        records.append({
            "task_id": t.id,
            "task_name": t.name,
            "area": t.area,
            "resource": t.resource_key,
            "category": "Indirect" if t.is_indirect else "Direct",
            "unit": t.unit,
            "plan_volume": optional_num(volume.plan_volume),
            "actual_volume": optional_num(volume.actual_volume),
            "plan_hours": hours.plan_hours,
            "actual_hours": hours.actual_hours,
            "variance_hours": hours.actual_hours - hours.plan_hours,
        })
    return pd.DataFrame(records, columns=[
        "task_id", "task_name", "area", "resource", "category", "unit",
        "plan_volume", "actual_volume", "plan_hours", "actual_hours", "variance_hours",
    ])


def daily_summary_frame(daily_rows: Sequence[DailySummaryRow], include_total: bool = True) -> pd.DataFrame:
    """Daily rollup as a DataFrame, optionally with a TOTAL row."""
    columns = ["shift_code"] + list(DAILY_FIELD_MAP.keys())
    df = pd.DataFrame([r.to_dict() for r in daily_rows], columns=columns)

    if include_total and len(df) > 0:
        totals = {"shift_code": "TOTAL"}
        for col in DAILY_FIELD_MAP:
            totals[col] = df[col].sum()
        df = pd.concat([df, pd.DataFrame([totals])], ignore_index=True)

    return df
