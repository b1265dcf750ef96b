#!/usr/bin/env python
"""
Print the direct/indirect hours rollup for one site and date.

Usage:
    python scripts/daily_summary.py --site SITE_ID --date 2025-03-14
    python scripts/daily_summary.py --site SITE_ID --date 2025-03-14 --output summary.csv
    python scripts/daily_summary.py --site SITE_ID --date 2025-03-14 --data-dir /path/to/data
"""
import argparse
import sys
from datetime import date
from pathlib import Path

# Add package root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from warehouse_intel.config import config, TABLES
from warehouse_intel.data.backend import BackendError, LocalTableStore, get_store
from warehouse_intel.logging_config import setup_logging, get_logger
from warehouse_intel.scheduling.calculator import aggregate_daily, daily_summary_frame
from warehouse_intel.ui.formatting import format_frame


def main():
    parser = argparse.ArgumentParser(description="Daily scheduling summary")
    parser.add_argument("--site", type=str, required=True, help="Site id")
    parser.add_argument("--date", type=str, default=None, help="Scheduled date (YYYY-MM-DD, default today)")
    parser.add_argument("--tenant", type=str, default=None, help="Tenant id (defaults to TENANT_ID)")
    parser.add_argument("--data-dir", type=str, default=None, help="Read local CSV tables from this directory")
    parser.add_argument("--output", "-o", type=str, default=None, help="Write the summary to a CSV file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args()

    setup_logging(level="DEBUG" if args.verbose else None)
    logger = get_logger("scripts.daily_summary")

    try:
        scheduled_date = date.fromisoformat(args.date) if args.date else date.today()
    except ValueError:
        parser.error(f"invalid --date: {args.date}")

    if args.data_dir:
        store = LocalTableStore(Path(args.data_dir))
    else:
        store = get_store(config)

    filters = {"site_id": args.site, "scheduled_date": scheduled_date.isoformat()}
    tenant_id = args.tenant if args.tenant is not None else config.tenant_id
    if tenant_id:
        filters["tenant_id"] = tenant_id

    print(f"Daily summary")
    print(f"  Store: {store.description}")
    print(f"  Site:  {args.site}")
    print(f"  Date:  {scheduled_date.isoformat()}")
    print()

    try:
        rows = store.query(TABLES["scheduling_entries"], filters=filters)
    except BackendError as e:
        logger.error("Daily summary read failed: %s", e)
        print(f"ERROR: Daily summary read failed: {e}")
        sys.exit(1)

    df = daily_summary_frame(aggregate_daily(rows))

    if args.output:
        df.to_csv(args.output, index=False)
        print(f"Wrote {args.output}")
    else:
        hours_cols = [c for c in df.columns if c.endswith("_hours")]
        cost_cols = [c for c in df.columns if c.endswith("_cost")]
        print(format_frame(df, hours_cols=hours_cols, currency_cols=cost_cols).to_string(index=False))

    print()
    print(f"{len(rows)} row(s) read.")


if __name__ == "__main__":
    main()
