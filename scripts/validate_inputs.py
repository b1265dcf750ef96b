#!/usr/bin/env python
"""
Validate input files against schema requirements.

Usage:
    python scripts/validate_inputs.py --colleagues colleagues.csv
    python scripts/validate_inputs.py --colleagues colleagues.csv --company "Acme Logistics"
    python scripts/validate_inputs.py --entries scheduling_entries.csv
"""
import argparse
import sys
from pathlib import Path

# Add package root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd
from warehouse_intel.config import config
from warehouse_intel.data.backend import BackendError, get_store
from warehouse_intel.data.colleagues import read_import_csv, validate_import_rows
from warehouse_intel.data.reference import load_companies, load_sites, sites_by_name
from warehouse_intel.data.schema import validate_schema
from warehouse_intel.scheduling.models import RowKind


def validate_file(filepath: Path, table_name: str) -> dict:
    """Validate a single CSV file's columns."""
    result = {
        "exists": False,
        "rows": 0,
        "columns": 0,
        "valid": False,
        "missing_required": [],
        "missing_optional": [],
        "row_issues": [],
        "row_kinds": {},
        "errors": [],
        "df": None,
    }

    if not filepath.exists():
        result["errors"].append(f"File not found: {filepath}")
        return result
    result["exists"] = True

    try:
        if table_name == "colleagues_import":
            df = read_import_csv(filepath.read_bytes())
        else:
            df = pd.read_csv(filepath)
        result["rows"] = len(df)
        result["columns"] = len(df.columns)
        result["df"] = df
    except (OSError, ValueError, UnicodeDecodeError) as e:
        result["errors"].append(f"Failed to load: {e}")
        return result

    schema_result = validate_schema(df, table_name, strict=False)
    result["valid"] = not schema_result["missing_required"]
    result["missing_required"] = schema_result["missing_required"]
    result["missing_optional"] = schema_result["missing_optional"]
    result["row_issues"] = schema_result["row_issues"]
    result["row_kinds"] = schema_result["row_kinds"]

    return result


def check_entries(result: dict) -> list:
    """Row-level checks for a scheduling_entries extract. Returns error strings."""
    kinds = result["row_kinds"]
    print(f"    Capability rows: {kinds.get(RowKind.CAPABILITY.value, 0):,}")
    print(f"    Task rows: {kinds.get(RowKind.TASK_VOLUME.value, 0):,}")
    return list(result["row_issues"])


def check_colleagues(df: pd.DataFrame, company: str) -> list:
    """Full row validation against a company's sites in the configured store."""
    store = get_store(config)
    try:
        companies = load_companies(store)
        match = [c for c in companies if (c.get("name") or "").strip().lower() == company.strip().lower()]
        if not match:
            return [f"Company not found in {store.description}: {company}"]
        sites = load_sites(store, match[0]["id"])
    except BackendError as e:
        return [f"Could not read reference data: {e}"]

    validation = validate_import_rows(df, match[0].get("name") or company, sites_by_name(sites))
    print(f"    Ready to import: {validation.ready_count:,} of {validation.total:,}")
    for warning in validation.warnings:
        print(f"  ⚠ {warning}")
    return validation.errors


def main():
    parser = argparse.ArgumentParser(description="Validate input files")
    parser.add_argument("--colleagues", type=str, default=None, help="Colleagues import CSV")
    parser.add_argument("--company", type=str, default=None,
                        help="Validate colleague rows against this company's sites")
    parser.add_argument("--entries", type=str, default=None, help="scheduling_entries CSV extract")

    args = parser.parse_args()

    if not args.colleagues and not args.entries:
        parser.error("nothing to validate: pass --colleagues and/or --entries")

    checks = []
    if args.colleagues:
        checks.append(("colleagues_import", Path(args.colleagues)))
    if args.entries:
        checks.append(("scheduling_entries", Path(args.entries)))

    print("=" * 60)
    print("Input Validation")
    print("=" * 60)
    print()

    all_valid = True

    for table_name, filepath in checks:
        print(f"Validating: {table_name}")
        print("-" * 40)

        result = validate_file(filepath, table_name)

        if result["exists"]:
            print(f"  ✓ Found: {filepath.name}")
            print(f"    Rows: {result['rows']:,}")
            print(f"    Columns: {result['columns']}")

            if result["valid"]:
                print(f"  ✓ Schema valid")
            else:
                print(f"  ✗ Schema invalid")
                print(f"    Missing required: {result['missing_required']}")
                all_valid = False

            if result["missing_optional"]:
                print(f"  ⚠ Missing optional: {result['missing_optional']}")

            if result["valid"]:
                if table_name == "scheduling_entries":
                    result["errors"].extend(check_entries(result))
                elif args.company:
                    result["errors"].extend(check_colleagues(result["df"], args.company))

        if result["errors"]:
            for err in result["errors"]:
                print(f"  ✗ Error: {err}")
            all_valid = False

        print()

    print("=" * 60)
    if all_valid:
        print("✓ All validations passed")
        sys.exit(0)
    else:
        print("✗ Validation failed - see errors above")
        sys.exit(1)


if __name__ == "__main__":
    main()
