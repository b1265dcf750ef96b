"""
Scheduling Tool Page

Plan resource capability and task volumes for a site/date/shift, compare
plan against actual, and review the daily rollup across shifts.
"""
import streamlit as st
import pandas as pd
from pathlib import Path
from datetime import date
from typing import Any, Dict, List, Optional
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from warehouse_intel.config import config, SHIFT_CODES, TASK_CATEGORIES
from warehouse_intel.data.backend import BackendError
from warehouse_intel.data.reference import load_companies, load_sites
from warehouse_intel.exports import export_daily_summary, export_shift_rows_csv
from warehouse_intel.logging_config import setup_logging, get_logger
from warehouse_intel.scheduling.calculator import (
    capability_table, plan_vs_actual_table, daily_summary_frame, optional_num
)
from warehouse_intel.scheduling.config_store import new_id, save_plan_config
from warehouse_intel.scheduling.models import (
    PlanConfig, ResourceDefinition, TaskDefinition, ValidationError
)
from warehouse_intel.scheduling.session import PlanSession
from warehouse_intel.ui.charts import capacity_bar, daily_hours_bar, indirect_gauge
from warehouse_intel.ui.formatting import fmt_hours, fmt_percent
from warehouse_intel.ui.layout import section_header, render_status, render_summary_strip
from warehouse_intel.ui.state import (
    init_state, get_state, set_state,
    get_session_store, get_plan_config, set_plan_config, get_plan_session
)


st.set_page_config(page_title="Scheduling Tool", page_icon="🗓️", layout="wide")

setup_logging()
logger = get_logger(__name__)

init_state()


# =============================================================================
# DATA LOADING
# =============================================================================

@st.cache_data(ttl=config.cache_ttl_seconds, show_spinner=False)
def cached_companies(_store) -> List[Dict[str, Any]]:
    return load_companies(_store)


@st.cache_data(ttl=config.cache_ttl_seconds, show_spinner=False)
def cached_sites(_store, company_id: str) -> List[Dict[str, Any]]:
    return load_sites(_store, company_id)


# =============================================================================
# HELPERS
# =============================================================================

def _cell(value: Any) -> Optional[float]:
    """Editor cell to entry value; empty cells stay None."""
    return optional_num(value)


def _clean_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Editor rows with NaN replaced by None."""
    return df.astype(object).where(df.notna(), None).to_dict("records")


def _editor_frame(rows: List[Dict[str, Any]], numeric_cols: List[str]) -> pd.DataFrame:
    """Rows for st.data_editor with numeric columns as float even when all blank."""
    df = pd.DataFrame(rows)
    for col in numeric_cols:
        df[col] = pd.to_numeric(df[col], errors="coerce").astype(float)
    return df


def _site_label(site: Dict[str, Any]) -> str:
    label = site.get("name") or site.get("id")
    if site.get("code"):
        label += f" ({site['code']})"
    return label


def render_context_sidebar(store) -> Optional[Dict[str, Any]]:
    """Company / site / date / shift selectors. Returns the selected site."""
    st.sidebar.header("Shift")

    try:
        companies = cached_companies(store)
    except BackendError as e:
        st.sidebar.error(f"Failed to load companies: {e}")
        companies = []

    company_ids = [c["id"] for c in companies]
    company_names = {c["id"]: c.get("name") or c["id"] for c in companies}
    current_company = get_state("company_id")
    company_id = st.sidebar.selectbox(
        "Company",
        options=company_ids,
        index=company_ids.index(current_company) if current_company in company_ids else 0,
        format_func=lambda cid: company_names.get(cid, cid),
    ) if company_ids else None
    set_state("company_id", company_id or "")

    sites = []
    if company_id:
        try:
            sites = cached_sites(store, company_id)
        except BackendError as e:
            st.sidebar.error(f"Failed to load sites: {e}")

    site_by_id = {s["id"]: s for s in sites}
    site_options = [""] + list(site_by_id)
    current_site = get_state("site_id")
    site_id = st.sidebar.selectbox(
        "Site",
        options=site_options,
        index=site_options.index(current_site) if current_site in site_options else 0,
        format_func=lambda sid: _site_label(site_by_id[sid]) if sid else "Select a site…",
    )
    set_state("site_id", site_id)

    scheduled_date = st.sidebar.date_input("Date", value=get_state("scheduled_date") or date.today())
    set_state("scheduled_date", scheduled_date)

    shift_code = st.sidebar.radio(
        "Shift",
        options=list(SHIFT_CODES),
        index=list(SHIFT_CODES).index(get_state("shift_code")) if get_state("shift_code") in SHIFT_CODES else 0,
        horizontal=True,
    )
    set_state("shift_code", shift_code)

    if st.sidebar.button("Reload shift", disabled=not site_id):
        get_plan_session().load(store)

    return site_by_id.get(site_id)


# =============================================================================
# TABS
# =============================================================================

def render_capability_tab(session: PlanSession):
    section_header(
        "Capability plan",
        "Headcount and available hours per resource type, against hours planned from task volumes.",
    )

    plan = session.plan

    rows = []
    for rt in plan.resource_types:
        entry = session.capability.get(rt)
        rows.append({
            "Resource": rt,
            "Headcount plan": _cell(entry.headcount_plan) if entry else None,
            "Headcount expected": _cell(entry.headcount_expected) if entry else None,
            "Headcount actual": _cell(entry.headcount_actual) if entry else None,
            "Hours available": _cell(entry.hours_available) if entry else None,
        })

    fields = {
        "Headcount plan": "headcount_plan",
        "Headcount expected": "headcount_expected",
        "Headcount actual": "headcount_actual",
        "Hours available": "hours_available",
    }
    edited = st.data_editor(
        _editor_frame(rows, list(fields)),
        column_config={
            "Resource": st.column_config.TextColumn("Resource", disabled=True),
            "Headcount plan": st.column_config.NumberColumn("Headcount plan", min_value=0, step=1),
            "Headcount expected": st.column_config.NumberColumn("Headcount expected", min_value=0, step=1),
            "Headcount actual": st.column_config.NumberColumn("Headcount actual", min_value=0, step=1),
            "Hours available": st.column_config.NumberColumn("Hours available", min_value=0, step=0.5),
        },
        use_container_width=True,
        hide_index=True,
        num_rows="fixed",
        key=f"capability_editor_{session.generation}",
    )

    # Apply only real changes so an untouched rerun keeps the Loaded state
    for before, after in zip(rows, _clean_records(edited)):
        changes = {
            attr: _cell(after[col])
            for col, attr in fields.items()
            if _cell(after[col]) != before[col]
        }
        if changes:
            session.set_capability(before["Resource"], **changes)

    summary = session.summary()
    cap = capability_table(summary, plan.resource_types, session.capability)

    col1, col2 = st.columns([3, 1])
    with col1:
        st.plotly_chart(capacity_bar(cap), use_container_width=True)
    with col2:
        st.plotly_chart(
            indirect_gauge(summary.indirect_pct_of_plan, plan.indirect_limit_pct),
            use_container_width=True,
        )

    over = cap[cap["variance"] < 0]
    for _, row in over.iterrows():
        st.warning(
            f"{row['resource_type']}: planned {fmt_hours(row['planned_hours'])}h exceeds "
            f"available {fmt_hours(row['hours_available'])}h."
        )


def render_plan_vs_actual_tab(session: PlanSession, store):
    section_header(
        "Plan vs Actual",
        "Enter planned and actual volumes; hours follow from each task's minutes per unit.",
    )

    plan = session.plan
    if not plan.tasks:
        st.info("No tasks configured. Add tasks in the Configuration tab.")
        return

    rows = []
    for t in plan.tasks:
        entry = session.volumes.get(t.id)
        rows.append({
            "task_id": t.id,
            "Task": t.name,
            "Area": t.area,
            "Resource": t.resource,
            "Category": t.category,
            "Unit": t.unit,
            "Min/unit": t.minutes_per_unit,
            "Plan volume": _cell(entry.plan_volume) if entry else None,
            "Actual volume": _cell(entry.actual_volume) if entry else None,
        })

    fields = {"Plan volume": "plan_volume", "Actual volume": "actual_volume"}
    edited = st.data_editor(
        _editor_frame(rows, list(fields)),
        column_config={
            "task_id": None,
            "Task": st.column_config.TextColumn("Task", disabled=True),
            "Area": st.column_config.TextColumn("Area", disabled=True),
            "Resource": st.column_config.TextColumn("Resource", disabled=True),
            "Category": st.column_config.TextColumn("Category", disabled=True),
            "Unit": st.column_config.TextColumn("Unit", disabled=True),
            "Min/unit": st.column_config.NumberColumn("Min/unit", format="%.2f", disabled=True),
            "Plan volume": st.column_config.NumberColumn("Plan volume", min_value=0, step=1),
            "Actual volume": st.column_config.NumberColumn("Actual volume", min_value=0, step=1),
        },
        use_container_width=True,
        hide_index=True,
        num_rows="fixed",
        key=f"volume_editor_{session.generation}",
    )

    for before, after in zip(rows, _clean_records(edited)):
        changes = {
            attr: _cell(after[col])
            for col, attr in fields.items()
            if _cell(after[col]) != before[col]
        }
        if changes:
            session.set_volume(before["task_id"], **changes)

    table = plan_vs_actual_table(plan.tasks, session.volumes, session.derived())
    st.dataframe(
        table.drop(columns=["task_id"]).rename(columns={
            "task_name": "Task",
            "area": "Area",
            "resource": "Resource",
            "category": "Category",
            "unit": "Unit",
            "plan_volume": "Plan volume",
            "actual_volume": "Actual volume",
            "plan_hours": "Plan hours",
            "actual_hours": "Actual hours",
            "variance_hours": "Variance (h)",
        }),
        column_config={
            "Plan hours": st.column_config.NumberColumn(format="%.2f"),
            "Actual hours": st.column_config.NumberColumn(format="%.2f"),
            "Variance (h)": st.column_config.NumberColumn(format="%+.2f"),
        },
        use_container_width=True,
        hide_index=True,
    )

    st.markdown("---")
    action_cols = st.columns([1, 1, 3])

    with action_cols[0]:
        if st.button("Save shift", type="primary"):
            with st.spinner("Saving..."):
                session.save(store)
            st.rerun()

    with action_cols[1]:
        try:
            rows_to_save = session.persisted_rows()
        except ValidationError:
            rows_to_save = []
        if rows_to_save:
            data, filename = export_shift_rows_csv(session.context, rows_to_save)
            st.download_button("Export shift CSV", data=data, file_name=filename, mime="text/csv")


def render_configuration_tab(plan: PlanConfig):
    section_header(
        "Configuration",
        "Resource fleet, task standards and the indirect limit. Stored on this machine.",
    )

    st.markdown("#### Resources")
    resources_df = pd.DataFrame(
        [r.to_dict() for r in plan.resources],
        columns=["id", "label", "type", "cost_per_hour", "count"],
    )
    edited_resources = st.data_editor(
        resources_df,
        column_config={
            "id": None,
            "label": st.column_config.TextColumn("Label", required=True),
            "type": st.column_config.TextColumn("Type", required=True),
            "cost_per_hour": st.column_config.NumberColumn("Cost/hr", min_value=0, format="£%.2f"),
            "count": st.column_config.NumberColumn("Count", min_value=0, step=1),
        },
        use_container_width=True,
        hide_index=True,
        num_rows="dynamic",
        key="resource_config_editor",
    )

    st.markdown("#### Tasks")
    resource_types = list(dict.fromkeys(
        str(t).strip() for t in edited_resources["type"].dropna() if str(t).strip()
    ))
    tasks_df = pd.DataFrame(
        [t.to_dict() for t in plan.tasks],
        columns=["id", "name", "area", "resource", "unit", "minutes_per_unit", "category"],
    )
    edited_tasks = st.data_editor(
        tasks_df,
        column_config={
            "id": None,
            "name": st.column_config.TextColumn("Task", required=True),
            "area": st.column_config.TextColumn("Area"),
            "resource": st.column_config.SelectboxColumn("Resource", options=resource_types),
            "unit": st.column_config.TextColumn("Unit"),
            "minutes_per_unit": st.column_config.NumberColumn("Min/unit", min_value=0, step=0.1),
            "category": st.column_config.SelectboxColumn("Category", options=list(TASK_CATEGORIES)),
        },
        use_container_width=True,
        hide_index=True,
        num_rows="dynamic",
        key="task_config_editor",
    )

    limit = st.number_input(
        "Indirect limit (% of planned hours)",
        min_value=0.0,
        max_value=100.0,
        value=float(plan.indirect_limit_pct),
        step=0.5,
    )

    resources = []
    for record in _clean_records(edited_resources):
        if not any(record.get(k) for k in ("label", "type")):
            continue
        record["id"] = record.get("id") or new_id()
        resources.append(ResourceDefinition.from_dict(record))

    tasks = []
    for record in _clean_records(edited_tasks):
        if not record.get("name"):
            continue
        record["id"] = record.get("id") or new_id()
        tasks.append(TaskDefinition.from_dict(record))

    candidate = PlanConfig(resources=resources, tasks=tasks, indirect_limit_pct=limit)
    errors, warnings = candidate.validate()
    for message in errors:
        st.error(message)
    for message in warnings:
        st.warning(message)

    if st.button("Save configuration", type="primary", disabled=bool(errors)):
        if save_plan_config(candidate):
            set_plan_config(candidate)
            st.success("Configuration saved.")
            st.rerun()
        else:
            st.error("Configuration could not be written. See logs for details.")


def render_daily_tab(session: PlanSession, store, site: Optional[Dict[str, Any]]):
    section_header(
        "Daily summary",
        "Direct and indirect hours across all shifts of the selected date.",
    )

    if st.button("Refresh daily summary"):
        session.refresh_daily(store)

    daily = daily_summary_frame(session.daily_rows)
    totals = daily[daily["shift_code"] == "TOTAL"].iloc[0]

    c1, c2, c3 = st.columns(3)
    with c1:
        st.metric("Planned hours", fmt_hours(totals["planned_direct_hours"] + totals["planned_indirect_hours"]))
    with c2:
        st.metric("Expected hours", fmt_hours(totals["expected_direct_hours"] + totals["expected_indirect_hours"]))
    with c3:
        st.metric("Actual hours", fmt_hours(totals["actual_direct_hours"] + totals["actual_indirect_hours"]))

    st.plotly_chart(daily_hours_bar(daily), use_container_width=True)

    st.dataframe(
        daily.rename(columns={
            "shift_code": "Shift",
            "planned_direct_hours": "Plan direct",
            "planned_indirect_hours": "Plan indirect",
            "expected_direct_hours": "Expected direct",
            "expected_indirect_hours": "Expected indirect",
            "actual_direct_hours": "Actual direct",
            "actual_indirect_hours": "Actual indirect",
            "plan_cost": "Plan cost",
            "expected_cost": "Expected cost",
            "actual_cost": "Actual cost",
        }),
        column_config={
            col: st.column_config.NumberColumn(format="£%.2f" if "cost" in col else "%.2f")
            for col in ["Plan direct", "Plan indirect", "Expected direct", "Expected indirect",
                        "Actual direct", "Actual indirect", "Plan cost", "Expected cost", "Actual cost"]
        },
        use_container_width=True,
        hide_index=True,
    )

    if site and session.context is not None:
        site_label = site.get("code") or site.get("name") or site["id"]
        col1, col2, _ = st.columns([1, 1, 3])
        with col1:
            data, filename = export_daily_summary(session.daily_rows, site_label, session.context.date_iso)
            st.download_button("Download CSV", data=data, file_name=filename, mime="text/csv")
        with col2:
            data, filename = export_daily_summary(
                session.daily_rows, site_label, session.context.date_iso, excel=True
            )
            st.download_button(
                "Download Excel",
                data=data,
                file_name=filename,
                mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            )


# =============================================================================
# MAIN
# =============================================================================

def main():
    st.title("Scheduling Tool")

    store = get_session_store()
    plan = get_plan_config()
    session = get_plan_session()

    site = render_context_sidebar(store)

    changed = session.set_context(get_state("site_id"), get_state("scheduled_date"), get_state("shift_code"))
    if changed and session.context.site_id:
        with st.spinner("Loading shift..."):
            session.refresh_daily(store)
            session.load(store)

    if not session.context or not session.context.site_id:
        st.info("Select a Site in the sidebar to load or save a shift.")

    status_area = st.container()
    strip_area = st.container()

    tab_cap, tab_pva, tab_cfg, tab_daily = st.tabs(
        ["Capability plan", "Plan vs Actual", "Configuration", "Daily summary"]
    )

    with tab_cap:
        render_capability_tab(session)

    with tab_pva:
        render_plan_vs_actual_tab(session, store)

    with tab_cfg:
        render_configuration_tab(plan)

    with tab_daily:
        render_daily_tab(session, store, site)

    # Filled last so they reflect edits made in the tabs above
    with status_area:
        render_status(session.status)
    with strip_area:
        render_summary_strip(session.summary(), session.plan.indirect_limit_pct)

    st.caption(
        f"Indirect share of plan: {fmt_percent(session.summary().indirect_pct_of_plan)} · "
        f"state: {session.state.value}"
    )


if __name__ == "__main__":
    main()
