"""
Standard chart wrappers using Plotly.
"""
import plotly.graph_objects as go
import pandas as pd


# =============================================================================
# CHART THEME
# =============================================================================

CHART_COLORS = {
    "primary": "#1f77b4",
    "secondary": "#ff7f0e",
    "success": "#28a745",
    "warning": "#ffc107",
    "danger": "#dc3545",
    "neutral": "#6c757d",
    "light": "#f8f9fa",
}

CHART_TEMPLATE = "plotly_white"

DEFAULT_LAYOUT = {
    "template": CHART_TEMPLATE,
    "font": {"family": "Arial, sans-serif", "size": 12},
    "margin": {"l": 50, "r": 30, "t": 40, "b": 50},
    "hoverlabel": {"bgcolor": "white"},
}


def apply_layout(fig: go.Figure, **kwargs) -> go.Figure:
    """Apply standard layout to figure."""
    layout = {**DEFAULT_LAYOUT, **kwargs}
    fig.update_layout(**layout)
    return fig


# =============================================================================
# BAR CHARTS
# =============================================================================

def capacity_bar(capability: pd.DataFrame, title: str = "Capacity vs planned hours") -> go.Figure:
    """Available vs planned hours per resource type, planned bar red when over capacity."""
    fig = go.Figure()

    fig.add_trace(go.Bar(
        name="Available",
        x=capability["resource_type"],
        y=capability["hours_available"],
        marker_color=CHART_COLORS["neutral"],
    ))

    over = capability["planned_hours"] > capability["hours_available"]
    fig.add_trace(go.Bar(
        name="Planned",
        x=capability["resource_type"],
        y=capability["planned_hours"],
        marker_color=[CHART_COLORS["danger"] if o else CHART_COLORS["primary"] for o in over],
    ))

    fig.update_layout(barmode="group", title=title, yaxis_title="Hours")

    return apply_layout(fig)


def daily_hours_bar(daily: pd.DataFrame, title: str = "Hours by shift") -> go.Figure:
    """Stacked direct/indirect hours per shift for plan and actual, side by side."""
    df = daily[daily["shift_code"] != "TOTAL"]
    fig = go.Figure()

    # Indirect bars sit on top of the direct bar of the same group
    series = [
        ("Plan direct", "planned_direct_hours", "plan", CHART_COLORS["primary"], None),
        ("Plan indirect", "planned_indirect_hours", "plan", CHART_COLORS["secondary"], "planned_direct_hours"),
        ("Actual direct", "actual_direct_hours", "actual", CHART_COLORS["success"], None),
        ("Actual indirect", "actual_indirect_hours", "actual", CHART_COLORS["warning"], "actual_direct_hours"),
    ]
    for name, col, group, color, base_col in series:
        fig.add_trace(go.Bar(
            name=name,
            x=df["shift_code"],
            y=df[col],
            base=df[base_col].tolist() if base_col else None,
            offsetgroup=group,
            marker_color=color,
        ))

    fig.update_layout(barmode="group", title=title, yaxis_title="Hours")

    return apply_layout(fig)


def indirect_gauge(value: float, limit: float, title: str = "Indirect % of plan") -> go.Figure:
    """Gauge of indirect share with the limit as threshold."""
    color = CHART_COLORS["danger"] if value > limit else CHART_COLORS["success"]
    fig = go.Figure(go.Indicator(
        mode="gauge+number",
        value=value,
        title={"text": title},
        number={"suffix": "%"},
        gauge={
            "axis": {"range": [0, max(100, value)]},
            "bar": {"color": color},
            "threshold": {
                "line": {"color": CHART_COLORS["danger"], "width": 2},
                "value": limit,
            },
        },
    ))

    return apply_layout(fig, height=220)
