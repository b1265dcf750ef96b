"""
Layout components: section headers, status line, KPI strip.
"""
import streamlit as st
from typing import Optional

from warehouse_intel.scheduling.models import Summary
from warehouse_intel.scheduling.session import StatusMessage
from warehouse_intel.ui.formatting import fmt_currency, fmt_hours, fmt_percent


# =============================================================================
# SECTION HEADERS
# =============================================================================

def section_header(title: str, description: Optional[str] = None):
    """Render section header with optional description."""
    st.subheader(title)
    if description:
        st.caption(description)


def render_status(status: StatusMessage):
    """Render the page status line."""
    if status.is_error:
        st.error(status.text)
    else:
        st.caption(status.text)


# =============================================================================
# KPI CARDS
# =============================================================================

def render_summary_strip(summary: Summary, indirect_limit_pct: float):
    """Shift KPIs: capacity, plan, actual, cost and indirect share."""
    cols = st.columns(6)

    with cols[0]:
        st.metric("Available hours", fmt_hours(summary.total_available_hours))
    with cols[1]:
        st.metric(
            "Planned hours",
            fmt_hours(summary.total_plan_hours),
            delta=fmt_hours(summary.capacity_variance) + " spare",
        )
    with cols[2]:
        st.metric("Actual hours", fmt_hours(summary.total_actual_hours))
    with cols[3]:
        st.metric("Plan cost", fmt_currency(summary.plan_cost))
    with cols[4]:
        st.metric("Actual cost", fmt_currency(summary.actual_cost))
    with cols[5]:
        st.metric(
            "Indirect % of plan",
            fmt_percent(summary.indirect_pct_of_plan),
            delta=f"limit {fmt_percent(indirect_limit_pct)}",
            delta_color="off",
        )

    if summary.indirect_limit_exceeded(indirect_limit_pct):
        st.warning(
            f"Indirect hours are {fmt_percent(summary.indirect_pct_of_plan)} of planned hours, "
            f"above the {fmt_percent(indirect_limit_pct)} limit."
        )
