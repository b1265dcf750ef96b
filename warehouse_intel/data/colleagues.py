"""
Colleague CSV import validation, template and export.
"""
import math
import re
from dataclasses import dataclass, field
from io import StringIO
from typing import Any, Dict, List

import pandas as pd

from warehouse_intel.config import REQUIRED_COLUMNS


CSV_HEADERS = REQUIRED_COLUMNS["colleagues_import"]

EMPLOYMENT_TYPES = {
    "FULL_TIME": "Full Time",
    "AGENCY": "Agency",
}

EXPORT_COLUMNS = [
    "first_name",
    "last_name",
    "employment_type",
    "employment_start_date",
    "agency_name",
    "agency_start_date",
    "weeks_until_full_time",
    "emergency_contact_name",
    "emergency_contact_phone",
    "active",
]

_YMD = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _text(value: Any) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


def parse_bool(value: Any, default: bool = True) -> bool:
    """Interpret true/false style text; unrecognised or blank values give the default."""
    text = _text(value).lower()
    if not text:
        return default
    if text in ("true", "t", "yes", "y", "1"):
        return True
    if text in ("false", "f", "no", "n", "0"):
        return False
    return default


def is_valid_ymd(value: Any) -> bool:
    """True for a real calendar date written as YYYY-MM-DD."""
    text = _text(value)
    if not _YMD.match(text):
        return False
    return not pd.isna(pd.to_datetime(text, format="%Y-%m-%d", errors="coerce"))


@dataclass
class ImportValidation:
    """Outcome of validating an uploaded colleagues CSV."""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    preview: pd.DataFrame = field(default_factory=pd.DataFrame)
    ready_count: int = 0
    total: int = 0

    @property
    def can_import(self) -> bool:
        return self.ready_count > 0


def read_import_csv(data: Any) -> pd.DataFrame:
    """Read uploaded CSV bytes/text/file into a string-typed frame."""
    if isinstance(data, bytes):
        data = StringIO(data.decode("utf-8-sig"))
    elif isinstance(data, str):
        data = StringIO(data)
    df = pd.read_csv(data, dtype=str, keep_default_na=False, skip_blank_lines=True)
    df.columns = [str(c).strip() for c in df.columns]
    return df


def _validate_row(row: Dict[str, Any], company_name: str, sites_by_name: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    errors = []
    warnings = []

    company = _text(row.get("company_name"))
    site_name = _text(row.get("site_name"))
    first = _text(row.get("first_name"))
    last = _text(row.get("last_name"))
    emp_type = _text(row.get("employment_type")).upper()
    emp_start = _text(row.get("employment_start_date"))
    agency = _text(row.get("agency_name"))
    agency_start = _text(row.get("agency_start_date"))
    weeks = _text(row.get("weeks_until_full_time"))

    if not company_name:
        errors.append("No company assigned to this user.")
    if not company:
        errors.append("company_name is required.")
    if not site_name:
        errors.append("site_name is required.")
    if not first:
        errors.append("first_name is required.")
    if not last:
        errors.append("last_name is required.")
    if not emp_type:
        errors.append("employment_type is required.")
    elif emp_type not in EMPLOYMENT_TYPES:
        errors.append("employment_type must be FULL_TIME or AGENCY.")

    if company_name and company and company.lower() != company_name.strip().lower():
        errors.append(f'company_name must be "{company_name}".')

    site = sites_by_name.get(site_name.lower()) if site_name else None
    if site_name and site is None:
        errors.append(f'site_name not found for company "{company_name}": "{site_name}".')

    if emp_type == "FULL_TIME":
        if not emp_start:
            errors.append("employment_start_date is required for FULL_TIME.")
        elif not is_valid_ymd(emp_start):
            errors.append("employment_start_date must be YYYY-MM-DD.")
        if agency:
            warnings.append("agency_name provided but employment_type is FULL_TIME (ignored).")
        if agency_start:
            warnings.append("agency_start_date provided but employment_type is FULL_TIME (ignored).")
        if weeks:
            warnings.append("weeks_until_full_time provided but employment_type is FULL_TIME (ignored).")

    if emp_type == "AGENCY":
        if not agency:
            errors.append("agency_name is required for AGENCY.")
        if not agency_start:
            errors.append("agency_start_date is required for AGENCY.")
        elif not is_valid_ymd(agency_start):
            errors.append("agency_start_date must be YYYY-MM-DD.")
        if emp_start:
            warnings.append("employment_start_date provided but employment_type is AGENCY (ignored).")
        if weeks:
            try:
                n = float(weeks)
            except ValueError:
                errors.append("weeks_until_full_time must be a number if provided.")
            else:
                if not math.isfinite(n):
                    errors.append("weeks_until_full_time must be a number if provided.")
                elif n < 0:
                    errors.append("weeks_until_full_time cannot be negative.")

    return {
        "_ok": len(errors) == 0,
        "_site_id": site.get("id") if site else None,
        "company_name": company,
        "site_name": site_name,
        "first_name": first,
        "last_name": last,
        "employment_type": emp_type,
        "employment_start_date": emp_start,
        "agency_name": agency,
        "agency_start_date": agency_start,
        "weeks_until_full_time": weeks,
        "emergency_contact_name": _text(row.get("emergency_contact_name")),
        "emergency_contact_phone": _text(row.get("emergency_contact_phone")),
        "active": parse_bool(row.get("active"), True),
        "_errors": errors,
        "_warnings": warnings,
    }


def validate_import_rows(df: pd.DataFrame,
                         company_name: str,
                         sites_by_name: Dict[str, Dict[str, Any]]) -> ImportValidation:
    """
    Validate uploaded colleague rows against the user's company and its sites.

    Args:
        df: Uploaded rows (one per colleague)
        company_name: The company the user is locked to
        sites_by_name: Sites of that company keyed by lower-cased name

    Returns:
        ImportValidation with file-level and per-row messages. Row numbers
        in messages match the spreadsheet (header is row 1).
    """
    result = ImportValidation(total=len(df))

    if len(df) == 0:
        result.errors.append("No data rows found in CSV.")
        return result

    found = [c for c in df.columns if c]
    missing = [h for h in CSV_HEADERS if h not in found]
    extra = [h for h in found if h not in CSV_HEADERS]
    if missing:
        result.errors.append(f"CSV is missing required header(s): {', '.join(missing)}")
    if extra:
        result.warnings.append(f"CSV has extra column(s) that will be ignored: {', '.join(extra)}")

    preview = []
    for idx, row in enumerate(df.to_dict("records")):
        row_num = idx + 2
        checked = _validate_row(row, company_name, sites_by_name)
        checked["_row"] = row_num
        preview.append(checked)

        if checked["_errors"]:
            result.errors.append(f"Row {row_num}: {' '.join(checked['_errors'])}")
        if checked["_warnings"]:
            result.warnings.append(f"Row {row_num}: {' '.join(checked['_warnings'])}")

    result.preview = pd.DataFrame(preview)
    result.ready_count = int(result.preview["_ok"].sum()) if not missing else 0
    return result


def build_insert_payload(preview: pd.DataFrame, company_id: str) -> List[Dict[str, Any]]:
    """Rows for the colleagues table from the valid preview rows."""
    if len(preview) == 0:
        return []

    payload = []
    for row in preview[preview["_ok"]].to_dict("records"):
        is_agency = row["employment_type"] == "AGENCY"
        weeks = row.get("weeks_until_full_time") or ""
        payload.append({
            "company_id": company_id,
            "site_id": row["_site_id"],
            "first_name": row["first_name"],
            "last_name": row["last_name"],
            "employment_type": row["employment_type"],
            "employment_start_date": None if is_agency else (row["employment_start_date"] or None),
            "agency_name": (row["agency_name"] or None) if is_agency else None,
            "agency_start_date": (row["agency_start_date"] or None) if is_agency else None,
            "weeks_until_full_time": float(weeks) if is_agency and weeks else None,
            "emergency_contact_name": row["emergency_contact_name"] or None,
            "emergency_contact_phone": row["emergency_contact_phone"] or None,
            "active": bool(row["active"]),
        })
    return payload


def import_template_csv(company_name: str = "") -> str:
    """Header plus one example row, every value quoted."""
    example = [
        company_name or "Your Company",
        "Example Site",
        "John",
        "Smith",
        "FULL_TIME",
        "2025-01-01",
        "",
        "",
        "",
        "",
        "",
        "true",
    ]
    quoted = ",".join('"' + v.replace('"', '""') + '"' for v in example)
    return ",".join(CSV_HEADERS) + "\n" + quoted


def export_colleagues_csv(colleagues: pd.DataFrame, company_name: str = "",
                          site_name: str = "") -> tuple:
    """
    Export colleagues to CSV bytes.

    Returns: (csv_bytes, filename)
    """
    df = colleagues.copy()
    for col in EXPORT_COLUMNS:
        if col not in df.columns:
            df[col] = ""
    df.insert(0, "site_name", site_name)
    df.insert(0, "company_name", company_name)
    df = df[["company_name", "site_name"] + EXPORT_COLUMNS]

    filename = re.sub(r"\s+", "_", f"colleagues_export_{company_name}_{site_name}") + ".csv"
    return df.to_csv(index=False).encode("utf-8"), filename
