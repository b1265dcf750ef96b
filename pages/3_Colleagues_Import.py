"""
Colleagues Import Page

Bulk-add colleagues to a company's sites from CSV, and export a site's
colleagues in the same layout.
"""
import streamlit as st
import pandas as pd
from pathlib import Path
from typing import Any, Dict, List
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from warehouse_intel.config import config, TABLES
from warehouse_intel.data.backend import BackendError
from warehouse_intel.data.colleagues import (
    read_import_csv, validate_import_rows, build_insert_payload,
    import_template_csv, export_colleagues_csv, EMPLOYMENT_TYPES
)
from warehouse_intel.data.reference import load_companies, load_sites, load_colleagues, sites_by_name
from warehouse_intel.logging_config import setup_logging, get_logger
from warehouse_intel.ui.formatting import fmt_count
from warehouse_intel.ui.layout import section_header
from warehouse_intel.ui.state import init_state, get_state, set_state, get_session_store


st.set_page_config(page_title="Colleagues Import", page_icon="👥", layout="wide")

setup_logging()
logger = get_logger(__name__)

init_state()


@st.cache_data(ttl=config.cache_ttl_seconds, show_spinner=False)
def cached_companies(_store) -> List[Dict[str, Any]]:
    return load_companies(_store)


@st.cache_data(ttl=config.cache_ttl_seconds, show_spinner=False)
def cached_sites(_store, company_id: str) -> List[Dict[str, Any]]:
    return load_sites(_store, company_id)


def render_export(store, company_name: str, sites: List[Dict[str, Any]]):
    section_header("Export", "Download the colleagues of one site.")

    if not sites:
        st.info("This company has no sites.")
        return

    site_by_id = {s["id"]: s for s in sites}
    site_id = st.selectbox(
        "Site",
        options=list(site_by_id),
        format_func=lambda sid: site_by_id[sid].get("name") or sid,
        key="export_site",
    )

    try:
        colleagues = pd.DataFrame(load_colleagues(store, site_id))
    except BackendError as e:
        st.error(f"Failed to load colleagues: {e}")
        return

    st.caption(f"{fmt_count(len(colleagues))} colleague(s) at this site.")
    if len(colleagues) > 0 and "employment_type" in colleagues.columns:
        counts = colleagues["employment_type"].map(EMPLOYMENT_TYPES).fillna("Other").value_counts()
        st.dataframe(counts.rename("Colleagues"), use_container_width=True)

    data, filename = export_colleagues_csv(colleagues, company_name, site_by_id[site_id].get("name") or "")
    st.download_button("Export colleagues CSV", data=data, file_name=filename, mime="text/csv",
                       disabled=len(colleagues) == 0)


def render_import(store, company_id: str, company_name: str, sites: List[Dict[str, Any]]):
    section_header(
        "Import",
        "One colleague per row. company_name must match your company; site_name must be one of its sites.",
    )

    st.download_button(
        "Download template",
        data=import_template_csv(company_name),
        file_name="colleagues_import_template.csv",
        mime="text/csv",
    )

    uploaded = st.file_uploader("Colleagues CSV", type=["csv"])
    if uploaded is None:
        set_state("import_validation", None)
        return

    try:
        df = read_import_csv(uploaded.getvalue())
    except (ValueError, UnicodeDecodeError) as e:
        st.error(f"Could not read CSV: {e}")
        return

    validation = validate_import_rows(df, company_name, sites_by_name(sites))
    set_state("import_validation", validation)

    c1, c2, c3 = st.columns(3)
    with c1:
        st.metric("Rows", fmt_count(validation.total))
    with c2:
        st.metric("Ready", fmt_count(validation.ready_count))
    with c3:
        st.metric("Errors", fmt_count(len(validation.errors)))

    if validation.errors:
        with st.expander(f"Errors ({len(validation.errors)})", expanded=True):
            for message in validation.errors[:50]:
                st.error(message)
            if len(validation.errors) > 50:
                st.caption(f"…and {len(validation.errors) - 50} more.")
    if validation.warnings:
        with st.expander(f"Warnings ({len(validation.warnings)})"):
            for message in validation.warnings[:50]:
                st.warning(message)

    if len(validation.preview) > 0:
        preview = validation.preview.copy()
        preview["status"] = preview["_ok"].map({True: "✅", False: "❌"})
        st.dataframe(
            preview[["_row", "status", "site_name", "first_name", "last_name", "employment_type",
                     "employment_start_date", "agency_name", "agency_start_date", "active"]]
            .rename(columns={"_row": "Row"}),
            use_container_width=True,
            hide_index=True,
        )

    if st.button(f"Import {validation.ready_count} colleague(s)", type="primary",
                 disabled=not validation.can_import):
        payload = build_insert_payload(validation.preview, company_id)
        try:
            inserted = store.insert(TABLES["colleagues"], payload)
        except BackendError as e:
            logger.error("Colleague import failed: %s", e)
            st.error(f"Import failed: {e}")
            return
        logger.info("Imported %d colleague(s) for company %s", inserted, company_id)
        st.success(f"Imported {inserted} colleague(s).")


def main():
    st.title("Colleagues Import")

    store = get_session_store()

    try:
        companies = cached_companies(store)
    except BackendError as e:
        st.error(f"Failed to load companies: {e}")
        st.stop()

    if not companies:
        st.error("No company assigned to this user.")
        st.stop()

    company_ids = [c["id"] for c in companies]
    company_names = {c["id"]: c.get("name") or "" for c in companies}
    current = get_state("company_id")
    company_id = st.sidebar.selectbox(
        "Company",
        options=company_ids,
        index=company_ids.index(current) if current in company_ids else 0,
        format_func=lambda cid: company_names.get(cid) or cid,
    )
    set_state("company_id", company_id)
    company_name = company_names.get(company_id, "")

    try:
        sites = cached_sites(store, company_id)
    except BackendError as e:
        st.error(f"Failed to load sites: {e}")
        st.stop()

    tab_import, tab_export = st.tabs(["Import", "Export"])

    with tab_import:
        render_import(store, company_id, company_name, sites)

    with tab_export:
        render_export(store, company_name, sites)


if __name__ == "__main__":
    main()
