"""
Consistent number and display formatting.
"""
import pandas as pd
from typing import Union, Optional


# =============================================================================
# NUMBER FORMATTERS
# =============================================================================

def fmt_currency(value: Union[float, int, None], decimals: int = 2) -> str:
    """Format as currency: £1,234 or £1,234.56"""
    if value is None or pd.isna(value):
        return "—"
    if decimals == 0:
        return f"£{value:,.0f}"
    return f"£{value:,.{decimals}f}"


def fmt_hours(value: Union[float, int, None]) -> str:
    """Format hours: 1,234.50"""
    if value is None or pd.isna(value):
        return "—"
    return f"{value:,.2f}"


def fmt_percent(value: Union[float, int, None], decimals: int = 1) -> str:
    """Format percentage: 12.3%"""
    if value is None or pd.isna(value):
        return "—"
    return f"{value:,.{decimals}f}%"


def fmt_count(value: Union[float, int, None]) -> str:
    """Format count: 1,234"""
    if value is None or pd.isna(value):
        return "—"
    return f"{int(value):,}"


def fmt_days(value: Optional[int]) -> str:
    """Format days until due: 'in 5 days', '3 days overdue', 'today'."""
    if value is None or pd.isna(value):
        return "—"
    value = int(value)
    if value == 0:
        return "today"
    if value < 0:
        return f"{-value} day{'s' if value != -1 else ''} overdue"
    return f"in {value} day{'s' if value != 1 else ''}"


# =============================================================================
# DATAFRAME FORMATTERS
# =============================================================================

def format_frame(df: pd.DataFrame,
                 hours_cols: Optional[list] = None,
                 currency_cols: Optional[list] = None,
                 count_cols: Optional[list] = None) -> pd.DataFrame:
    """Return a display copy with formatted string columns."""
    out = df.copy()
    for col in hours_cols or []:
        if col in out.columns:
            out[col] = out[col].apply(fmt_hours)
    for col in currency_cols or []:
        if col in out.columns:
            out[col] = out[col].apply(fmt_currency)
    for col in count_cols or []:
        if col in out.columns:
            out[col] = out[col].apply(fmt_count)
    return out
