"""
Column and row-shape checks for scheduling extracts, MHE records and imports.

scheduling_entries holds two kinds of row in one table. Capability rows
(task_name "__capability__") carry headcounts against a resource key; task
rows carry unit volumes. The columns an extract needs therefore depend on
which kinds of row it contains.
"""
import pandas as pd
import streamlit as st
from typing import Any, Dict, List

from warehouse_intel.config import (
    REQUIRED_COLUMNS,
    OPTIONAL_COLUMNS,
    ROW_KIND_COLUMNS,
    RESERVED_NAME_PREFIX,
    SCHEDULING_HOUR_COLUMNS,
    SCHEDULING_COST_COLUMNS,
    SHIFT_CODES,
)
from warehouse_intel.scheduling.models import RowKind, row_kind


class SchemaValidationError(ValueError):
    """Raised in strict mode when an extract lacks columns it needs."""

    def __init__(self, table_name: str, missing: List[str]):
        super().__init__(f"{table_name} is missing required column(s): {', '.join(missing)}")
        self.table_name = table_name
        self.missing = list(missing)


def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    return df.astype(object).where(df.notna(), None).to_dict("records")


def _row_numbers(positions: List[int], limit: int = 5) -> str:
    """Spreadsheet row numbers (header is row 1) for messages."""
    shown = ", ".join(str(p + 2) for p in positions[:limit])
    if len(positions) > limit:
        shown += f", … (+{len(positions) - limit})"
    return shown


def row_kind_counts(df: pd.DataFrame) -> Dict[RowKind, int]:
    """Number of capability and task rows in a scheduling extract."""
    counts = {kind: 0 for kind in RowKind}
    if "task_name" not in df.columns:
        return counts
    for record in _records(df[["task_name"]]):
        counts[row_kind(record)] += 1
    return counts


def required_columns(df: pd.DataFrame, table_name: str) -> List[str]:
    """
    Columns this frame must have.

    For scheduling_entries the base set grows with the row kinds present:
    capability rows need the resource key and headcounts, task rows need
    unit volumes. An extract of only capability rows needs no units_*.
    """
    required = list(REQUIRED_COLUMNS.get(table_name, []))
    if table_name == "scheduling_entries":
        for kind, count in row_kind_counts(df).items():
            if count:
                required.extend(ROW_KIND_COLUMNS[kind.value])
    return list(dict.fromkeys(required))


def missing_optional_columns(df: pd.DataFrame, table_name: str) -> List[str]:
    """Optional columns absent from the frame, excluding any the row kinds made required."""
    needed = set(required_columns(df, table_name))
    return [
        col for col in OPTIONAL_COLUMNS.get(table_name, [])
        if col not in df.columns and col not in needed
    ]


def scheduling_row_issues(df: pd.DataFrame) -> List[str]:
    """
    Row-level problems in a scheduling_entries extract.

    One message per kind of problem, naming the offending rows. Blank shift
    codes count as AM. Columns the frame lacks are skipped.
    """
    issues = []
    records = _records(df)
    kinds = [row_kind(r) for r in records]

    if "shift_code" in df.columns:
        bad = [
            i for i, r in enumerate(records)
            if (str(r.get("shift_code") or "").strip() or "AM") not in SHIFT_CODES
        ]
        if bad:
            issues.append(f"{len(bad)} row(s) with a shift_code outside {', '.join(SHIFT_CODES)} "
                          f"(rows {_row_numbers(bad)})")

    if "scheduled_date" in df.columns:
        dates = pd.to_datetime(df["scheduled_date"], format="%Y-%m-%d", errors="coerce")
        bad = [i for i, missing in enumerate(dates.isna()) if missing]
        if bad:
            issues.append(f"{len(bad)} row(s) with a scheduled_date that is not YYYY-MM-DD "
                          f"(rows {_row_numbers(bad)})")

    if "resource_or_task_key" in df.columns:
        bad = [
            i for i, r in enumerate(records)
            if kinds[i] is RowKind.CAPABILITY and not str(r.get("resource_or_task_key") or "").strip()
        ]
        if bad:
            issues.append(f"{len(bad)} capability row(s) without a resource_or_task_key "
                          f"(rows {_row_numbers(bad)})")

    if "task_name" in df.columns:
        names = [str(r.get("task_name") or "").strip() for r in records]
        blank = [i for i, name in enumerate(names) if not name]
        if blank:
            issues.append(f"{len(blank)} task row(s) without a task_name (rows {_row_numbers(blank)})")
        reserved = [
            i for i, name in enumerate(names)
            if kinds[i] is RowKind.TASK_VOLUME and name.startswith(RESERVED_NAME_PREFIX)
        ]
        if reserved:
            issues.append(f"{len(reserved)} task row(s) using the reserved '{RESERVED_NAME_PREFIX}' "
                          f"name prefix (rows {_row_numbers(reserved)})")

    hour_cols = [c for c in SCHEDULING_HOUR_COLUMNS if c in df.columns]
    if hour_cols:
        hours = df[hour_cols].apply(pd.to_numeric, errors="coerce")
        bad = [i for i, negative in enumerate((hours < 0).any(axis=1)) if negative]
        if bad:
            issues.append(f"{len(bad)} row(s) with negative hours (rows {_row_numbers(bad)})")

    return issues


def validate_schema(df: pd.DataFrame, table_name: str, strict: bool = True) -> Dict:
    """
    Full validation of a frame against its table.

    Args:
        df: DataFrame to validate
        table_name: Key into REQUIRED_COLUMNS / OPTIONAL_COLUMNS
        strict: If True, raise SchemaValidationError on missing required columns

    Returns:
        Dict with is_valid, missing_required, missing_optional, row_issues,
        row_kinds (scheduling_entries only), total_rows and total_columns.
    """
    missing_required = [c for c in required_columns(df, table_name) if c not in df.columns]
    if strict and missing_required:
        raise SchemaValidationError(table_name, missing_required)

    row_issues = []
    row_kinds = {}
    if table_name == "scheduling_entries":
        row_kinds = {kind.value: count for kind, count in row_kind_counts(df).items()}
        row_issues = scheduling_row_issues(df)

    return {
        "is_valid": not missing_required and not row_issues,
        "missing_required": missing_required,
        "missing_optional": missing_optional_columns(df, table_name),
        "row_issues": row_issues,
        "row_kinds": row_kinds,
        "total_columns": len(df.columns),
        "total_rows": len(df),
    }


def display_validation_result(result: Dict, table_name: str):
    """Display validation result in Streamlit."""
    if result["is_valid"]:
        st.success(f"{table_name}: valid ({result['total_rows']:,} rows, {result['total_columns']} columns)")
    if result["missing_required"]:
        st.error(f"{table_name}: missing required columns: {', '.join(result['missing_required'])}")
    for issue in result["row_issues"]:
        st.error(f"{table_name}: {issue}")
    if result["missing_optional"]:
        st.warning(f"{table_name}: optional columns absent, shown as blank: {', '.join(result['missing_optional'])}")


def ensure_column_types(df: pd.DataFrame) -> pd.DataFrame:
    """Coerce numeric, key and date columns of scheduling, asset and training extracts."""
    df = df.copy()

    numeric_cols = [
        *ROW_KIND_COLUMNS["capability"][1:],
        *ROW_KIND_COLUMNS["task_volume"],
        *SCHEDULING_HOUR_COLUMNS,
        *SCHEDULING_COST_COLUMNS,
        "inspection_cycle_days",
    ]
    for col in numeric_cols:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")

    for col in ["site_id", "shift_code", "task_name", "resource_or_task_key", "status"]:
        if col in df.columns:
            df[col] = df[col].astype("string").str.strip()

    date_cols = [
        "scheduled_date", "trained_on", "expires_on",
        "next_inspection_due", "next_loler_due", "next_service_due", "next_puwer_due",
    ]
    for col in date_cols:
        if col in df.columns:
            df[col] = pd.to_datetime(df[col], errors="coerce")

    return df
