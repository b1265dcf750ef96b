"""
MHE Compliance Page

Overdue and due-soon inspection, LOLER, service and PUWER dates for the
material handling equipment of a company's sites, plus the training
register of colleagues authorised to operate it.
"""
import streamlit as st
import pandas as pd
from pathlib import Path
from typing import Any, Dict, List
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from warehouse_intel.config import config, TRAINING_DUE_SOON_DAYS
from warehouse_intel.data.authorisations import (
    add_training,
    load_authorisation_history,
    load_current_authorisations,
    retrain,
)
from warehouse_intel.data.backend import BackendError
from warehouse_intel.data.colleagues import parse_bool
from warehouse_intel.data.reference import load_companies, load_sites, load_mhe_types, load_mhe_assets, load_colleagues
from warehouse_intel.data.schema import validate_schema, display_validation_result
from warehouse_intel.exports import export_dataframe_csv
from warehouse_intel.logging_config import setup_logging, get_logger
from warehouse_intel.metrics.compliance import compute_compliance_alerts, compliance_summary, BUCKET_OVERDUE
from warehouse_intel.metrics.training import (
    TrainingInputError,
    authorisation_history,
    expiry_preview,
    training_register,
    training_summary,
)
from warehouse_intel.ui.formatting import fmt_count, fmt_days
from warehouse_intel.ui.layout import section_header
from warehouse_intel.ui.state import init_state, get_state, set_state, get_session_store


st.set_page_config(page_title="MHE Compliance", page_icon="🦺", layout="wide")

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


@st.cache_data(ttl=config.cache_ttl_seconds, show_spinner=False)
def cached_mhe_types(_store) -> List[Dict[str, Any]]:
    return load_mhe_types(_store)


@st.cache_data(ttl=config.cache_ttl_seconds, show_spinner=False)
def cached_assets(_store, site_ids: tuple) -> List[Dict[str, Any]]:
    return load_mhe_assets(_store, list(site_ids))


@st.cache_data(ttl=config.cache_ttl_seconds, show_spinner=False)
def cached_colleagues(_store, site_id: str) -> List[Dict[str, Any]]:
    return load_colleagues(_store, site_id)


@st.cache_data(ttl=config.cache_ttl_seconds, show_spinner=False)
def cached_authorisations(_store, site_id: str) -> List[Dict[str, Any]]:
    return load_current_authorisations(_store, site_id)


# =============================================================================
# EQUIPMENT TAB
# =============================================================================

def render_equipment_tab(sites, mhe_types, assets, company_name: str, company_id: str, due_soon_days: int):
    if assets:
        result = validate_schema(pd.DataFrame(assets), "mhe_assets", strict=False)
        if not result["is_valid"]:
            display_validation_result(result, "mhe_assets")

    alerts = compute_compliance_alerts(
        assets, sites, mhe_types,
        company_name=company_name,
        due_soon_days=due_soon_days,
    )
    counts = compliance_summary(alerts)

    c1, c2, c3, c4 = st.columns(4)
    with c1:
        st.metric("Sites", fmt_count(len(sites)))
    with c2:
        st.metric("Assets", fmt_count(len(assets)))
    with c3:
        st.metric("Overdue", fmt_count(counts["overdue"]))
    with c4:
        st.metric(f"Due within {due_soon_days} days", fmt_count(counts["due_soon"]))

    st.markdown("---")
    section_header("Compliance alerts", "Most urgent first. Each asset shows its earliest upcoming due date.")

    if len(alerts) == 0:
        st.success("No MHE compliance alerts.")
        return

    display = alerts.copy()
    display["flag"] = display["bucket"].map(lambda b: "🔴" if b == BUCKET_OVERDUE else "🟡")
    display["when"] = display["days"].apply(fmt_days)

    st.dataframe(
        display[["flag", "site_label", "asset_label", "type_label", "reason", "due_date", "when", "status"]].rename(columns={
            "flag": "",
            "site_label": "Site",
            "asset_label": "Asset",
            "type_label": "Type",
            "reason": "Check",
            "due_date": "Due",
            "when": "When",
            "status": "Status",
        }),
        use_container_width=True,
        hide_index=True,
    )

    data, filename = export_dataframe_csv(
        alerts.drop(columns=["bucket"]),
        f"mhe_compliance_{company_name or company_id}.csv".replace(" ", "_"),
    )
    st.download_button("Download alerts CSV", data=data, file_name=filename, mime="text/csv")


# =============================================================================
# TRAINING TAB
# =============================================================================

def render_training_form(store, colleagues, mhe_types, company_id: str, site_id: str):
    """Record a new training authorisation."""
    type_names = {t["id"]: t.get("type_name") or t["id"] for t in mhe_types}
    colleague_names = {
        c["id"]: f"{c.get('first_name') or ''} {c.get('last_name') or ''}".strip() or c["id"]
        for c in colleagues
    }

    colleague_id = st.selectbox("Colleague", options=[""] + list(colleague_names),
                                format_func=lambda cid: colleague_names.get(cid, "Select..."), key="add_colleague")
    mhe_type_id = st.selectbox("MHE type", options=[""] + list(type_names),
                               format_func=lambda tid: type_names.get(tid, "Select..."), key="add_type")
    trained_on = st.text_input("Trained on (YYYY-MM-DD)", key="add_trained_on")
    certificate_path = st.text_input("Certificate reference", key="add_certificate")
    notes = st.text_area("Notes", key="add_notes")

    preview = expiry_preview(trained_on, next((t for t in mhe_types if t["id"] == mhe_type_id), None))
    if preview["expires_on"]:
        st.caption(f"Next training due {preview['expires_on']} ({fmt_days(preview['days_to_expiry'])})")

    if st.button("Add training", type="primary"):
        try:
            add_training(store, colleague_id, mhe_type_id, trained_on,
                         company_id=company_id, site_id=site_id,
                         certificate_path=certificate_path, notes=notes)
        except TrainingInputError as e:
            st.error(str(e))
            return
        except BackendError as e:
            logger.error("Training insert failed: %s", e)
            st.error(f"Failed to create training record: {e}")
            return
        cached_authorisations.clear()
        st.success("Training record created.")


def render_retrain(store, register: pd.DataFrame, authorisations, company_id: str, site_id: str):
    """Revoke a current authorisation and record the new training."""
    by_id = {a.get("id"): a for a in authorisations}
    labels = {
        row.authorisation_id: f"{row.colleague_name} · {row.type_label} (expires {row.expires_on or '—'})"
        for row in register.itertuples()
        if row.authorisation_id in by_id
    }
    if not labels:
        return

    with st.form("retrain", clear_on_submit=True):
        auth_id = st.selectbox("Authorisation", options=list(labels), format_func=labels.get, key="retrain_auth")
        trained_on = st.text_input("Retrained on (YYYY-MM-DD)", key="retrain_trained_on")
        certificate_path = st.text_input("Certificate reference", key="retrain_certificate")
        notes = st.text_area("Notes", key="retrain_notes")

        if st.form_submit_button("Record retraining"):
            try:
                retrain(store, by_id[auth_id], trained_on,
                        company_id=company_id, site_id=site_id,
                        certificate_path=certificate_path, notes=notes)
            except TrainingInputError as e:
                st.error(str(e))
                return
            except BackendError as e:
                logger.error("Retraining failed: %s", e)
                st.error(f"Failed to record retraining: {e}")
                return
            cached_authorisations.clear()
            st.success("Retraining recorded. History preserved.")


def render_history(store, colleagues, mhe_types):
    colleague_names = {
        c["id"]: f"{c.get('first_name') or ''} {c.get('last_name') or ''}".strip() or c["id"]
        for c in colleagues
    }
    type_names = {t["id"]: t.get("type_name") or t["id"] for t in mhe_types}
    if not colleague_names:
        st.info("No colleagues at this site.")
        return

    h1, h2 = st.columns(2)
    with h1:
        colleague_id = st.selectbox("Colleague", options=list(colleague_names),
                                    format_func=colleague_names.get, key="history_colleague")
    with h2:
        mhe_type_id = st.selectbox("MHE type", options=[""] + list(type_names),
                                   format_func=lambda tid: type_names.get(tid, "All"), key="history_type")

    try:
        rows = load_authorisation_history(store, colleague_id, mhe_type_id or None)
    except BackendError as e:
        st.error(f"Failed to load training history: {e}")
        return

    history = authorisation_history(rows, mhe_types)
    if len(history) == 0:
        st.info("No training records for this colleague.")
        return

    display = history.copy()
    display["when"] = display["days_to_expiry"].apply(fmt_days)
    display["certificate"] = display["has_certificate"].map({True: "Yes", False: "No"})
    st.dataframe(
        display[["type_label", "trained_on", "expires_on", "when", "status", "certificate", "notes"]].rename(columns={
            "type_label": "Type",
            "trained_on": "Trained",
            "expires_on": "Expires",
            "when": "When",
            "status": "Status",
            "certificate": "Certificate",
            "notes": "Notes",
        }),
        use_container_width=True,
        hide_index=True,
    )


def render_training_tab(store, sites, mhe_types, company_id: str):
    if not sites:
        st.info("No sites for this company.")
        return

    site_names = {s["id"]: s.get("name") or s["id"] for s in sites}
    current = get_state("site_id")
    site_ids = list(site_names)
    f1, f2, f3 = st.columns(3)
    with f1:
        site_id = st.selectbox("Site", options=site_ids,
                               index=site_ids.index(current) if current in site_ids else 0,
                               format_func=site_names.get, key="training_site")
    set_state("site_id", site_id)
    type_names = {t["id"]: t.get("type_name") or t["id"] for t in mhe_types}
    with f2:
        name_filter = st.text_input("Search colleague")
    with f3:
        mhe_type_id = st.selectbox("MHE type", options=[""] + list(type_names),
                                   format_func=lambda tid: type_names.get(tid, "All"), key="training_type")

    try:
        colleagues = cached_colleagues(store, site_id)
        authorisations = cached_authorisations(store, site_id)
    except BackendError as e:
        logger.error("Training data load failed: %s", e)
        st.error(f"Failed to load site training data: {e}")
        return

    register = training_register(colleagues, authorisations, mhe_types,
                                 name_filter=name_filter, mhe_type_id=mhe_type_id or None)
    counts = training_summary(register)

    c1, c2, c3 = st.columns(3)
    with c1:
        st.metric("Trained colleagues", fmt_count(counts["colleagues"]))
    with c2:
        st.metric("Authorisations", fmt_count(counts["authorisations"]))
    with c3:
        st.metric(f"Due within {TRAINING_DUE_SOON_DAYS} days", fmt_count(counts["due_soon"]))

    register_tab, history_tab = st.tabs(["Register", "History"])

    with register_tab:
        section_header("Training register", "Colleagues due for retraining first.")
        if len(register) == 0:
            st.info("No current training authorisations match.")
        else:
            display = register.copy()
            display["flag"] = display["due_soon"].map({True: "🟡", False: ""})
            display["when"] = display["days_to_expiry"].apply(fmt_days)
            display["certificate"] = display["has_certificate"].map({True: "Yes", False: "No"})
            st.dataframe(
                display[["flag", "colleague_name", "type_label", "trained_on", "expires_on", "when", "certificate"]].rename(columns={
                    "flag": "",
                    "colleague_name": "Colleague",
                    "type_label": "Type",
                    "trained_on": "Trained",
                    "expires_on": "Expires",
                    "when": "When",
                    "certificate": "Certificate",
                }),
                use_container_width=True,
                hide_index=True,
            )

        active = [c for c in colleagues if parse_bool(c.get("active"), False)]
        with st.expander("Add training"):
            render_training_form(store, active, mhe_types, company_id, site_id)
        with st.expander("Retrain"):
            render_retrain(store, register, authorisations, company_id, site_id)

    with history_tab:
        render_history(store, colleagues, mhe_types)


# =============================================================================
# MAIN
# =============================================================================

def main():
    st.title("MHE Compliance")

    store = get_session_store()

    try:
        companies = cached_companies(store)
    except BackendError as e:
        st.error(f"Failed to load companies: {e}")
        st.stop()

    if not companies:
        st.info("No companies found.")
        st.stop()

    st.sidebar.header("Filters")
    company_ids = [c["id"] for c in companies]
    company_names = {c["id"]: c.get("name") or c["id"] for c in companies}
    current = get_state("company_id")
    company_id = st.sidebar.selectbox(
        "Company",
        options=company_ids,
        index=company_ids.index(current) if current in company_ids else 0,
        format_func=lambda cid: company_names.get(cid, cid),
    )
    set_state("company_id", company_id)

    due_soon_days = st.sidebar.slider(
        "Due soon window (days)", min_value=7, max_value=90, value=config.due_soon_days, step=1
    )

    with st.spinner("Loading equipment..."):
        try:
            sites = cached_sites(store, company_id)
            mhe_types = cached_mhe_types(store)
            assets = cached_assets(store, tuple(s["id"] for s in sites))
        except BackendError as e:
            logger.error("Compliance data load failed: %s", e)
            st.error(f"Failed to load equipment: {e}")
            st.stop()

    equipment_tab, training_tab = st.tabs(["Equipment", "Training"])

    with equipment_tab:
        render_equipment_tab(sites, mhe_types, assets, company_names.get(company_id, ""), company_id, due_soon_days)

    with training_tab:
        render_training_tab(store, sites, mhe_types, company_id)


if __name__ == "__main__":
    main()
