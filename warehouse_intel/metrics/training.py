"""
MHE training authorisation metrics.

An authorisation expires inspection_cycle_days after the colleague was
trained on that MHE type. A colleague is due soon when any current
authorisation expires within TRAINING_DUE_SOON_DAYS (expired included).
"""
import pandas as pd
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from warehouse_intel.config import AUTH_STATUS_ACTIVE, TRAINING_DUE_SOON_DAYS
from warehouse_intel.data.colleagues import is_valid_ymd, parse_bool
from warehouse_intel.metrics.compliance import days_until, parse_ymd


# Sort weight for authorisations without an expiry date
NO_EXPIRY_DAYS = 999999

REGISTER_COLUMNS = [
    "colleague_id",
    "colleague_name",
    "colleague_due_soon",
    "authorisation_id",
    "mhe_type_id",
    "type_label",
    "trained_on",
    "expires_on",
    "days_to_expiry",
    "due_soon",
    "has_certificate",
    "notes",
]

HISTORY_COLUMNS = [
    "authorisation_id",
    "type_label",
    "trained_on",
    "expires_on",
    "days_to_expiry",
    "status",
    "has_certificate",
    "notes",
]


class TrainingInputError(ValueError):
    """Raised when a training record cannot be built from the given input."""


def _text(value: Any) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


def _cycle_days(mhe_type: Optional[Dict[str, Any]]) -> Optional[int]:
    try:
        cycle = float((mhe_type or {}).get("inspection_cycle_days"))
    except (TypeError, ValueError):
        return None
    if pd.isna(cycle):
        return None
    return int(cycle)


def expiry_date(trained_on: Any, cycle_days: Optional[int]) -> Optional[date]:
    """Training date plus the MHE type's inspection cycle; None when either is missing."""
    trained = parse_ymd(trained_on)
    if trained is None or cycle_days is None:
        return None
    return trained + timedelta(days=cycle_days)


def is_due_soon(days: Optional[int], threshold: int = TRAINING_DUE_SOON_DAYS) -> bool:
    """Expired or expiring within the threshold. No expiry date is never due soon."""
    return days is not None and days <= threshold


def with_expiry(auth: Dict[str, Any], mhe_types_by_id: Dict[str, Dict[str, Any]],
                today: Optional[date] = None) -> Dict[str, Any]:
    """Copy of an authorisation with expires_on and days_to_expiry filled in."""
    expires = parse_ymd(auth.get("expires_on"))
    if expires is None:
        expires = expiry_date(auth.get("trained_on"), _cycle_days(mhe_types_by_id.get(auth.get("mhe_type_id"))))
    return {
        **auth,
        "expires_on": expires,
        "days_to_expiry": days_until(expires, today),
    }


def _matches_name(colleague: Dict[str, Any], name_filter: str) -> bool:
    needle = name_filter.strip().lower()
    if not needle:
        return True
    first = _text(colleague.get("first_name"))
    last = _text(colleague.get("last_name"))
    return needle in f"{first} {last}".lower() or needle in f"{last} {first}".lower()


def training_register(colleagues: List[Dict[str, Any]],
                      authorisations: List[Dict[str, Any]],
                      mhe_types: List[Dict[str, Any]],
                      name_filter: str = "",
                      mhe_type_id: Optional[str] = None,
                      today: Optional[date] = None,
                      due_soon_days: int = TRAINING_DUE_SOON_DAYS) -> pd.DataFrame:
    """
    Current authorisations of a site's active colleagues, one row per authorisation.

    Colleagues without a current authorisation are left out. Colleagues who
    are due soon come first, then the soonest expiry, then last and first
    name. Within a colleague, authorisations run by expiry date.

    The MHE type filter narrows the rows shown, but a colleague's due-soon
    flag and ordering still reflect all of their authorisations.
    """
    types_by_id = {t.get("id"): t for t in mhe_types}

    by_colleague = {}
    for auth in authorisations:
        by_colleague.setdefault(auth.get("colleague_id"), []).append(with_expiry(auth, types_by_id, today))

    groups = []
    for colleague in colleagues:
        if not parse_bool(colleague.get("active"), False):
            continue
        auths = by_colleague.get(colleague.get("id")) or []
        if not auths or not _matches_name(colleague, name_filter):
            continue
        visible = [a for a in auths if not mhe_type_id or a.get("mhe_type_id") == mhe_type_id]
        if not visible:
            continue

        days = [a["days_to_expiry"] for a in auths]
        due_soon = any(is_due_soon(d, due_soon_days) for d in days)
        min_days = min(NO_EXPIRY_DAYS if d is None else d for d in days)
        first = _text(colleague.get("first_name"))
        last = _text(colleague.get("last_name"))
        visible.sort(key=lambda a: (a["expires_on"] is None, a["expires_on"] or date.min))
        groups.append(((not due_soon, min_days, last.lower(), first.lower()), colleague, due_soon, visible))

    groups.sort(key=lambda g: g[0])

    records = []
    for _, colleague, colleague_due_soon, visible in groups:
        name = f"{_text(colleague.get('first_name'))} {_text(colleague.get('last_name'))}".strip()
        for auth in visible:
            mhe_type = types_by_id.get(auth.get("mhe_type_id")) or {}
            records.append({
                "colleague_id": colleague.get("id"),
                "colleague_name": name,
                "colleague_due_soon": colleague_due_soon,
                "authorisation_id": auth.get("id"),
                "mhe_type_id": auth.get("mhe_type_id"),
                "type_label": _text(mhe_type.get("type_name")) or "—",
                "trained_on": parse_ymd(auth.get("trained_on")),
                "expires_on": auth["expires_on"],
                "days_to_expiry": auth["days_to_expiry"],
                "due_soon": is_due_soon(auth["days_to_expiry"], due_soon_days),
                "has_certificate": bool(_text(auth.get("certificate_path"))),
                "notes": _text(auth.get("notes")),
            })

    return pd.DataFrame(records, columns=REGISTER_COLUMNS)


def training_summary(register: pd.DataFrame) -> Dict[str, int]:
    """Counts of colleagues, authorisations and due-soon colleagues in a register."""
    if len(register) == 0:
        return {"colleagues": 0, "authorisations": 0, "due_soon": 0}

    colleagues = register.drop_duplicates("colleague_id")
    return {
        "colleagues": len(colleagues),
        "authorisations": len(register),
        "due_soon": int(colleagues["colleague_due_soon"].sum()),
    }


def authorisation_history(rows: List[Dict[str, Any]],
                          mhe_types: List[Dict[str, Any]],
                          today: Optional[date] = None) -> pd.DataFrame:
    """All authorisations of one colleague, most recent training first."""
    types_by_id = {t.get("id"): t for t in mhe_types}
    records = []
    for row in rows:
        auth = with_expiry(row, types_by_id, today)
        mhe_type = types_by_id.get(row.get("mhe_type_id")) or {}
        records.append({
            "authorisation_id": row.get("id"),
            "type_label": _text(mhe_type.get("type_name")) or "—",
            "trained_on": parse_ymd(row.get("trained_on")),
            "expires_on": auth["expires_on"],
            "days_to_expiry": auth["days_to_expiry"],
            "status": _text(row.get("status")) or "—",
            "has_certificate": bool(_text(row.get("certificate_path"))),
            "notes": _text(row.get("notes")),
        })

    records.sort(key=lambda r: r["trained_on"] or date.min, reverse=True)
    return pd.DataFrame(records, columns=HISTORY_COLUMNS)


def build_training_record(colleague_id: str,
                          mhe_type_id: str,
                          trained_on: str,
                          company_id: Optional[str] = None,
                          site_id: Optional[str] = None,
                          certificate_path: str = "",
                          notes: str = "") -> Dict[str, Any]:
    """New ACTIVE authorisation row. Raises TrainingInputError on missing input."""
    if not _text(colleague_id):
        raise TrainingInputError("Colleague is required.")
    if not _text(mhe_type_id):
        raise TrainingInputError("MHE type is required.")
    trained_on = _text(trained_on)
    if not trained_on or not is_valid_ymd(trained_on):
        raise TrainingInputError("Trained on date is required.")

    return {
        "company_id": company_id or None,
        "site_id": site_id or None,
        "colleague_id": colleague_id,
        "mhe_type_id": mhe_type_id,
        "trained_on": trained_on,
        "status": AUTH_STATUS_ACTIVE,
        "certificate_path": _text(certificate_path) or None,
        "notes": _text(notes) or None,
    }


def expiry_preview(trained_on: str, mhe_type: Optional[Dict[str, Any]],
                   today: Optional[date] = None) -> Dict[str, Any]:
    """Next training due date and days away for a training date being entered."""
    if not is_valid_ymd(_text(trained_on)):
        return {"expires_on": None, "days_to_expiry": None}
    expires = expiry_date(trained_on, _cycle_days(mhe_type))
    return {"expires_on": expires, "days_to_expiry": days_until(expires, today)}
