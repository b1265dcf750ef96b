"""
MHE compliance metrics.

Single source of truth for: next due date per asset, overdue / due-soon alerts.
"""
import pandas as pd
import numpy as np
from typing import Optional, List, Dict, Any, Tuple
from datetime import date, datetime

from warehouse_intel.config import config


# (label, asset column) checked for the next due date
DUE_FIELDS = [
    ("Inspection", "next_inspection_due"),
    ("LOLER", "next_loler_due"),
    ("Service", "next_service_due"),
    ("PUWER", "next_puwer_due"),
]

BUCKET_OVERDUE = 0
BUCKET_DUE_SOON = 1
BUCKET_OK = 2
BUCKET_NO_DATES = 3

ALERT_COLUMNS = [
    "bucket",
    "site_label",
    "asset_label",
    "type_label",
    "reason",
    "due_date",
    "days",
    "status",
]


def parse_ymd(value: Any) -> Optional[date]:
    """Parse a YYYY-MM-DD value; anything unparseable gives None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = pd.to_datetime(str(value).strip()[:10], format="%Y-%m-%d", errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


def days_until(due: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Whole days from today to the due date (negative when overdue)."""
    if due is None:
        return None
    today = today or date.today()
    return (due - today).days


def next_due_reason(asset: Dict[str, Any], today: Optional[date] = None) -> Tuple[str, Optional[date], Optional[int]]:
    """
    Earliest upcoming compliance date of an asset.

    Returns (label, due_date, days_until). ("No dates", None, None) when the
    asset has no parseable due dates.
    """
    options = []
    for label, column in DUE_FIELDS:
        due = parse_ymd(asset.get(column))
        if due is not None:
            options.append((due, label))

    if not options:
        return "No dates", None, None

    # Stable on ties: first field in DUE_FIELDS order wins
    due, label = min(options, key=lambda x: x[0])
    return label, due, days_until(due, today)


def _bucket(days: Optional[int], due_soon_days: int) -> int:
    if days is None:
        return BUCKET_NO_DATES
    if days < 0:
        return BUCKET_OVERDUE
    if days < due_soon_days:
        return BUCKET_DUE_SOON
    return BUCKET_OK


def _safe(value: Any) -> str:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return ""
    return str(value)


def compute_compliance_alerts(assets: List[Dict[str, Any]],
                              sites: List[Dict[str, Any]],
                              mhe_types: List[Dict[str, Any]],
                              company_name: str = "",
                              today: Optional[date] = None,
                              due_soon_days: Optional[int] = None) -> pd.DataFrame:
    """
    Assets that are overdue or due soon, most urgent first.

    Sorted by bucket (overdue before due soon) then by due date.
    """
    due_soon_days = config.due_soon_days if due_soon_days is None else due_soon_days
    site_by_id = {s.get("id"): s for s in sites}
    type_by_id = {t.get("id"): t for t in mhe_types}

    records = []
    for asset in assets:
        reason, due, days = next_due_reason(asset, today)
        bucket = _bucket(days, due_soon_days)
        if bucket not in (BUCKET_OVERDUE, BUCKET_DUE_SOON):
            continue

        site = site_by_id.get(asset.get("site_id")) or {}
        mhe_type = type_by_id.get(asset.get("mhe_type_id")) or {}

        site_label = f"{_safe(company_name)} – {_safe(site.get('name'))}"
        if site.get("code"):
            site_label += f" ({_safe(site.get('code'))})"

        records.append({
            "bucket": bucket,
            "site_label": site_label,
            "asset_label": _safe(asset.get("asset_tag")) or _safe(asset.get("serial_number")) or "—",
            "type_label": _safe(mhe_type.get("type_name")) or "—",
            "reason": reason,
            "due_date": due,
            "days": days,
            "status": _safe(asset.get("status")) or "—",
        })

    alerts = pd.DataFrame(records, columns=ALERT_COLUMNS)
    if len(alerts) == 0:
        return alerts

    return alerts.sort_values(["bucket", "due_date"], kind="mergesort").reset_index(drop=True)


def compliance_summary(alerts: pd.DataFrame) -> Dict[str, int]:
    """Counts of overdue and due-soon assets."""
    if len(alerts) == 0:
        return {"overdue": 0, "due_soon": 0, "total": 0}

    overdue = int((alerts["bucket"] == BUCKET_OVERDUE).sum())
    due_soon = int((alerts["bucket"] == BUCKET_DUE_SOON).sum())
    return {"overdue": overdue, "due_soon": due_soon, "total": overdue + due_soon}
