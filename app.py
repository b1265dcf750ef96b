"""
Warehouse Intelligence

Main entry point for Streamlit app.
"""
import streamlit as st
from pathlib import Path

# Page config must be first Streamlit command
st.set_page_config(
    page_title="Warehouse Intelligence",
    page_icon="🏭",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Add package root to path
import sys
sys.path.insert(0, str(Path(__file__).parent))

from warehouse_intel.config import config, CONFIG_KEYS, TABLES
from warehouse_intel.data.backend import BackendError
from warehouse_intel.data.reference import load_companies, load_sites
from warehouse_intel.logging_config import setup_logging, get_logger
from warehouse_intel.ui.formatting import fmt_percent
from warehouse_intel.ui.state import init_state, get_session_store, get_plan_config


setup_logging()
logger = get_logger(__name__)


def main():
    """Main app entry point."""

    # Initialize session state
    init_state()

    # Header
    st.title("Warehouse Intelligence")
    st.caption("Company → Site → Shift → Resource/Task")

    store = get_session_store()

    # Backend check
    with st.spinner("Connecting to data store..."):
        try:
            companies = load_companies(store)
            sites = load_sites(store)
        except BackendError as e:
            logger.error("Backend check failed: %s", e)
            st.error(f"Could not read from the data store: {e}")
            st.markdown(f"""
            ### Setup Required

            The app reads from `{store.description}`.

            - Set `BACKEND_URL` and `BACKEND_ANON_KEY` to use the managed backend, or
            - leave `BACKEND_URL` unset to use local CSV tables in `{config.tables_dir}`.
            """)
            st.info("Once the data store is reachable, refresh this page.")
            return

    if not sites:
        st.warning("No sites found. Add a site before planning shifts.")

    # Navigation
    st.markdown("---")

    col1, col2 = st.columns([1, 4])

    with col1:
        st.markdown("### Quick Links")
        st.page_link("pages/1_Scheduling_Tool.py", label="Scheduling Tool", icon="🗓️")
        st.page_link("pages/2_MHE_Compliance.py", label="MHE Compliance", icon="🦺")
        st.page_link("pages/3_Colleagues_Import.py", label="Colleagues Import", icon="👥")

    with col2:
        st.markdown("### Overview")

        plan = get_plan_config()

        c1, c2, c3, c4 = st.columns(4)

        with c1:
            st.metric("Companies", f"{len(companies):,}")

        with c2:
            st.metric("Sites", f"{len(sites):,}")

        with c3:
            st.metric("Resource types", f"{len(plan.resource_types):,}")

        with c4:
            st.metric("Tasks configured", f"{len(plan.tasks):,}")

        errors, warnings = plan.validate()
        for message in errors:
            st.error(message)
        for message in warnings:
            st.warning(message)

    # Configuration status
    st.markdown("---")
    with st.expander("Configuration"):
        col1, col2 = st.columns(2)

        with col1:
            st.markdown("**Data store**")
            icon = "🌐" if config.store_kind == "rest" else "💾"
            st.markdown(f"{icon} `{store.description}`")
            st.markdown(f"Environment: `{config.app_env}`")
            if config.tenant_id:
                st.markdown(f"Tenant: `{config.tenant_id}`")
            st.markdown("**Tables**")
            for name in TABLES.values():
                st.markdown(f"- `{name}`")

        with col2:
            st.markdown("**Scheduling configuration**")
            st.markdown(f"Stored in `{config.config_dir}`")
            for key in CONFIG_KEYS.values():
                exists = (config.config_dir / f"{key}.json").exists()
                icon = "✅" if exists else "⚪"
                st.markdown(f"{icon} `{key}`" + ("" if exists else " (defaults)"))
            st.markdown(f"Indirect limit: {fmt_percent(plan.indirect_limit_pct)}")


if __name__ == "__main__":
    main()
