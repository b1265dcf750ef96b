"""
Session state management for Streamlit app.
"""
import streamlit as st
from datetime import date
from typing import Any

from warehouse_intel.config import config
from warehouse_intel.data.backend import TableStore, get_store
from warehouse_intel.scheduling.config_store import load_plan_config
from warehouse_intel.scheduling.models import PlanConfig
from warehouse_intel.scheduling.session import PlanSession


# =============================================================================
# STATE KEYS
# =============================================================================

STATE_KEYS = {
    # Context
    "company_id": "company_id",
    "site_id": "site_id",
    "scheduled_date": "scheduled_date",
    "shift_code": "shift_code",

    # Scheduling tool
    "plan_config": "plan_config",
    "plan_session": "plan_session",

    # Colleague import
    "import_validation": "import_validation",

    # Backend
    "store": "store",
}


# =============================================================================
# DEFAULT VALUES
# =============================================================================

DEFAULTS = {
    "company_id": "",
    "site_id": "",
    "scheduled_date": None,
    "shift_code": "AM",
    "plan_config": None,
    "plan_session": None,
    "import_validation": None,
    "store": None,
}


# =============================================================================
# STATE HELPERS
# =============================================================================

def init_state():
    """Initialize all session state keys with defaults."""
    for key, default in DEFAULTS.items():
        if key not in st.session_state:
            st.session_state[key] = default
    if st.session_state["scheduled_date"] is None:
        st.session_state["scheduled_date"] = date.today()


def get_state(key: str) -> Any:
    """Get state value with default fallback."""
    init_state()
    return st.session_state.get(key, DEFAULTS.get(key))


def set_state(key: str, value: Any):
    """Set state value."""
    st.session_state[key] = value


# =============================================================================
# BACKEND
# =============================================================================

def get_session_store() -> TableStore:
    """Table store for this browser session, built once from config."""
    store = get_state("store")
    if store is None:
        store = get_store(config)
        set_state("store", store)
    return store


# =============================================================================
# SCHEDULING
# =============================================================================

def get_plan_config() -> PlanConfig:
    """Scheduling configuration, loaded from local storage on first use."""
    plan = get_state("plan_config")
    if plan is None:
        plan = load_plan_config()
        set_state("plan_config", plan)
    return plan


def set_plan_config(plan: PlanConfig):
    """Replace configuration and hand it to the live session."""
    set_state("plan_config", plan)
    session = get_state("plan_session")
    if session is not None:
        session.update_plan(plan)


def get_plan_session() -> PlanSession:
    """The operator's PlanSession, created on first use."""
    session = get_state("plan_session")
    if session is None:
        session = PlanSession(get_plan_config(), tenant_id=config.save_tenant_id)
        set_state("plan_session", session)
    return session
