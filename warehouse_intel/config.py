"""
Application configuration management.
"""
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional


def _default_data_dir() -> Path:
    env_dir = os.getenv("DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path("./data")


def _default_config_dir() -> Path:
    env_dir = os.getenv("CONFIG_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".warehouse_intel"


@dataclass
class AppConfig:
    """Application configuration with environment overrides."""

    # Paths
    data_dir: Path = field(default_factory=_default_data_dir)
    config_dir: Path = field(default_factory=_default_config_dir)

    # Environment
    app_env: str = field(default_factory=lambda: os.getenv("APP_ENV", "dev"))

    # Managed backend (REST data API)
    backend_url: Optional[str] = field(default_factory=lambda: os.getenv("BACKEND_URL") or None)
    backend_anon_key: str = field(default_factory=lambda: os.getenv("BACKEND_ANON_KEY", ""))
    backend_access_token: str = field(default_factory=lambda: os.getenv("BACKEND_ACCESS_TOKEN", ""))
    backend_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("BACKEND_TIMEOUT_SECONDS", "15")))
    tenant_id: str = field(default_factory=lambda: os.getenv("TENANT_ID", ""))

    # Cache settings
    cache_ttl_seconds: int = field(default_factory=lambda: int(os.getenv("CACHE_TTL_SECONDS", "300")))

    # Scheduling defaults
    default_indirect_limit_pct: float = field(default_factory=lambda: float(os.getenv("DEFAULT_INDIRECT_LIMIT_PCT", "5")))

    # Compliance
    due_soon_days: int = field(default_factory=lambda: int(os.getenv("DUE_SOON_DAYS", "30")))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_json: bool = field(default_factory=lambda: os.getenv("LOG_JSON", "0").lower() in ("1", "true", "yes"))

    @property
    def store_kind(self) -> str:
        return "rest" if self.backend_url else "local"

    @property
    def tables_dir(self) -> Path:
        return self.data_dir / "tables"

    @property
    def save_tenant_id(self) -> Optional[str]:
        """Tenant stamped on saved rows. Local tables fall back to a fixed tenant; REST needs TENANT_ID."""
        if self.tenant_id:
            return self.tenant_id
        return LOCAL_TENANT_ID if self.store_kind == "local" else None


# Tenant used for local CSV tables when TENANT_ID is unset
LOCAL_TENANT_ID = "local"

# Global config instance
config = AppConfig()


# Shift enumeration (display order)
SHIFT_CODES = ("AM", "PM", "Nights")

# Reserved task_name marking capability rows in scheduling_entries
CAPABILITY_SENTINEL = "__capability__"
RESERVED_NAME_PREFIX = "__"

TASK_CATEGORIES = ("Direct", "Indirect")

# Backend table names
TABLES = {
    "scheduling_entries": "scheduling_entries",
    "companies": "companies",
    "sites": "sites",
    "mhe_types": "mhe_types",
    "mhe_assets": "mhe_assets",
    "colleagues": "colleagues",
    "mhe_authorisations": "colleague_mhe_authorisations",
    "mhe_authorisations_current": "v_mhe_authorisations_current",
}

# Training authorisation lifecycle
AUTH_STATUS_ACTIVE = "ACTIVE"
AUTH_STATUS_REVOKED = "REVOKED"
TRAINING_DUE_SOON_DAYS = 30

# Upsert conflict keys per table
CONFLICT_KEYS = {
    "scheduling_entries": [
        "tenant_id",
        "site_id",
        "scheduled_date",
        "shift_code",
        "resource_or_task_key",
        "task_name",
    ],
}

# Local configuration blob keys (versioned)
CONFIG_KEYS = {
    "resources": "wi_sched_cfg_mhe_v1",
    "tasks": "wi_sched_cfg_tasks_v1",
    "limits": "wi_sched_cfg_limits_v1",
}

SCHEDULING_HOUR_COLUMNS = [
    "hours_direct_plan",
    "hours_direct_expected",
    "hours_direct_actual",
    "hours_indirect_plan",
    "hours_indirect_expected",
    "hours_indirect_actual",
]

SCHEDULING_COST_COLUMNS = ["cost_plan", "cost_expected", "cost_actual"]

SCHEDULING_COLUMNS = [
    "tenant_id",
    "site_id",
    "scheduled_date",
    "shift_code",
    "resource_or_task_key",
    "task_name",
    "headcount_plan",
    "headcount_expected",
    "headcount_actual",
    "units_planned",
    "units_actual",
    *SCHEDULING_HOUR_COLUMNS,
    *SCHEDULING_COST_COLUMNS,
]

# Required columns (hard fail if missing)
REQUIRED_COLUMNS = {
    "scheduling_entries": [
        "site_id",
        "scheduled_date",
        "shift_code",
        "task_name",
        *SCHEDULING_HOUR_COLUMNS,
    ],
    "colleagues_import": [
        "company_name",
        "site_name",
        "first_name",
        "last_name",
        "employment_type",
        "employment_start_date",
        "agency_name",
        "agency_start_date",
        "weeks_until_full_time",
        "emergency_contact_name",
        "emergency_contact_phone",
        "active",
    ],
    "mhe_assets": [
        "id",
        "site_id",
        "mhe_type_id",
    ],
    "mhe_authorisations": [
        "colleague_id",
        "mhe_type_id",
        "trained_on",
        "status",
    ],
}

# Columns each kind of scheduling_entries row needs on top of the table's required set
ROW_KIND_COLUMNS = {
    "capability": [
        "resource_or_task_key",
        "headcount_plan",
        "headcount_expected",
        "headcount_actual",
    ],
    "task_volume": [
        "units_planned",
        "units_actual",
    ],
}

# Optional columns (soft warn if missing)
OPTIONAL_COLUMNS = {
    "scheduling_entries": [
        "tenant_id",
        "resource_or_task_key",
        *SCHEDULING_COST_COLUMNS,
    ],
    "mhe_assets": [
        "asset_tag",
        "serial_number",
        "status",
        "next_inspection_due",
        "next_loler_due",
        "next_service_due",
        "next_puwer_due",
    ],
}
