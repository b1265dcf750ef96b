"""
Export utilities for tables, shift rows and daily summaries.
"""
import pandas as pd
from typing import Optional, List, Dict, Any
from datetime import datetime
from io import BytesIO

from warehouse_intel.config import SCHEDULING_COLUMNS
from warehouse_intel.scheduling.calculator import daily_summary_frame
from warehouse_intel.scheduling.models import DailySummaryRow, ShiftContext


def export_dataframe_csv(df: pd.DataFrame, filename: Optional[str] = None) -> tuple:
    """
    Export dataframe to CSV bytes.

    Returns: (csv_bytes, filename)
    """
    if filename is None:
        filename = f"export_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"

    csv_bytes = df.to_csv(index=False).encode('utf-8')

    return csv_bytes, filename


def export_dataframe_excel(df: pd.DataFrame, filename: Optional[str] = None,
                           sheet_name: str = "Data") -> tuple:
    """
    Export dataframe to Excel bytes.

    Returns: (excel_bytes, filename)
    """
    if filename is None:
        filename = f"export_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)

    excel_bytes = buffer.getvalue()

    return excel_bytes, filename


def export_shift_rows_csv(context: ShiftContext, rows: List[Dict[str, Any]]) -> tuple:
    """
    Export the rows a save would write for one shift.

    Returns: (csv_bytes, filename)
    """
    df = pd.DataFrame(rows, columns=SCHEDULING_COLUMNS)
    filename = f"shift_{context.site_id}_{context.date_iso}_{context.shift_code}.csv"
    return export_dataframe_csv(df, filename)


def export_daily_summary(daily_rows: List[DailySummaryRow], site_label: str, scheduled_date: str,
                         excel: bool = False) -> tuple:
    """
    Export the daily rollup (with TOTAL row) as CSV or Excel.

    Returns: (bytes, filename)
    """
    df = daily_summary_frame(daily_rows)
    df.insert(0, "scheduled_date", scheduled_date)
    df.insert(0, "site", site_label)

    stem = f"daily_summary_{site_label}_{scheduled_date}".replace(" ", "_")
    if excel:
        return export_dataframe_excel(df, f"{stem}.xlsx", sheet_name="Daily summary")
    return export_dataframe_csv(df, f"{stem}.csv")
