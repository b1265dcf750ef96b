"""
Load/edit/save cycle for one operator's scheduling page.

Idle -> Loading -> Loaded -> Editing -> Saving -> Loaded | Error.
Error is never terminal: it returns to Loaded (entries kept) or Idle
(context cleared).

Every context change bumps a generation counter. Load and save results
carry the generation they were issued under; results for an abandoned
context are discarded instead of overwriting newer entries.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from warehouse_intel.config import CAPABILITY_SENTINEL, TABLES
from warehouse_intel.data.backend import BackendError, TableStore
from warehouse_intel.logging_config import get_logger
from warehouse_intel.scheduling.calculator import (
    aggregate_daily,
    derive_all,
    from_persisted_rows,
    summarize,
    to_persisted_rows,
)
from warehouse_intel.scheduling.models import (
    CapabilityEntry,
    DailySummaryRow,
    DerivedHours,
    PlanConfig,
    ShiftContext,
    Summary,
    TaskVolumeEntry,
    ValidationError,
)

logger = get_logger(__name__)

RowKey = Tuple[str, str]


def _row_key(row: Dict[str, Any]) -> RowKey:
    """(resource_or_task_key, task_name) of a persisted row, blanks as ''."""
    return (
        str(row.get("resource_or_task_key") or "").strip(),
        str(row.get("task_name") or "").strip(),
    )


class SessionState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    EDITING = "editing"
    SAVING = "saving"
    ERROR = "error"


ALLOWED_TRANSITIONS = {
    SessionState.IDLE: {SessionState.IDLE, SessionState.LOADING},
    SessionState.LOADING: {SessionState.LOADING, SessionState.LOADED, SessionState.ERROR, SessionState.IDLE},
    SessionState.LOADED: {SessionState.LOADING, SessionState.EDITING, SessionState.SAVING, SessionState.IDLE},
    SessionState.EDITING: {SessionState.LOADING, SessionState.EDITING, SessionState.SAVING, SessionState.IDLE},
    SessionState.SAVING: {SessionState.LOADING, SessionState.LOADED, SessionState.ERROR, SessionState.IDLE},
    SessionState.ERROR: {SessionState.LOADING, SessionState.LOADED, SessionState.IDLE},
}


@dataclass
class StatusMessage:
    """Operator-facing status line."""
    text: str = "Ready."
    is_error: bool = False


class PlanSession:
    """In-memory entries for the selected shift context plus their load/save lifecycle."""

    def __init__(self, plan: PlanConfig, tenant_id: Optional[str] = None):
        self.plan = plan
        self.tenant_id = tenant_id or None
        self.context: Optional[ShiftContext] = None
        self.state = SessionState.IDLE
        self.generation = 0
        self.capability: Dict[str, CapabilityEntry] = {}
        self.volumes: Dict[str, TaskVolumeEntry] = {}
        self.daily_rows: List[DailySummaryRow] = aggregate_daily([])
        self.status = StatusMessage()
        # Rows known to exist in the backend for this context, by key, with their stored key values
        self.persisted_keys: Dict[RowKey, Dict[str, Any]] = {}

    # -------------------------------------------------------------------------
    # State helpers
    # -------------------------------------------------------------------------

    def _transition(self, new_state: SessionState):
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid scheduling state change: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _set_status(self, text: str, is_error: bool = False):
        self.status = StatusMessage(text, is_error)
        if is_error:
            logger.warning(text)
        else:
            logger.info(text)

    def _is_current(self, token: int, action: str) -> bool:
        if token != self.generation:
            logger.info("Discarding %s result for an abandoned context (generation %d, current %d)",
                        action, token, self.generation)
            return False
        return True

    def acknowledge_error(self):
        """Leave the Error state: back to Loaded with the current entries, or Idle without a site."""
        if self.state is SessionState.ERROR:
            has_site = self.context is not None and self.context.site_id
            self._transition(SessionState.LOADED if has_site else SessionState.IDLE)

    # -------------------------------------------------------------------------
    # Context
    # -------------------------------------------------------------------------

    def set_context(self, site_id: Optional[str], scheduled_date: date, shift_code: str) -> bool:
        """
        Select a (site, date, shift). Returns True when the context changed,
        in which case in-memory entries are discarded and a reload is due.
        """
        new_context = ShiftContext(site_id or None, scheduled_date, shift_code, self.tenant_id)
        if new_context == self.context:
            return False

        self.generation += 1
        self.context = new_context
        self.capability = {}
        self.volumes = {}
        self.daily_rows = aggregate_daily([])
        self.persisted_keys = {}

        if self.state is SessionState.ERROR:
            self.acknowledge_error()
        self._transition(SessionState.LOADING if site_id else SessionState.IDLE)
        return True

    def update_plan(self, plan: PlanConfig):
        """Swap configuration; entries are kept (volumes by task id, capability by type)."""
        self.plan = plan

    def _filters(self, with_shift: bool = True) -> Dict[str, Any]:
        filters = {
            "site_id": self.context.site_id,
            "scheduled_date": self.context.date_iso,
        }
        if with_shift:
            filters["shift_code"] = self.context.shift_code
        if self.tenant_id:
            filters["tenant_id"] = self.tenant_id
        return filters

    # -------------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------------

    def begin_load(self) -> int:
        """Mark a load as in flight and return its generation token."""
        if self.state is not SessionState.LOADING:
            self._transition(SessionState.LOADING)
        return self.generation

    def apply_loaded(self, token: int, rows: List[Dict[str, Any]]) -> bool:
        """Hydrate entries from persisted rows unless the token is stale."""
        if not self._is_current(token, "load"):
            return False
        self.capability, self.volumes = from_persisted_rows(rows, self.plan.tasks)
        self.persisted_keys = {
            _row_key(row): {
                "resource_or_task_key": row.get("resource_or_task_key"),
                "task_name": row.get("task_name"),
            }
            for row in rows
        }
        self._transition(SessionState.LOADED)
        count = len(self.capability) + len(self.volumes)
        self._set_status(f"Loaded {count} saved entr{'y' if count == 1 else 'ies'} for this shift.")
        return True

    def fail(self, token: int, message: str) -> bool:
        """Record a backend failure for the given generation."""
        if not self._is_current(token, "failure"):
            return False
        self._transition(SessionState.ERROR)
        self._set_status(message, is_error=True)
        return True

    def load(self, store: TableStore) -> bool:
        """Load the selected shift's rows from the store."""
        if self.context is None or not self.context.site_id:
            return False
        token = self.begin_load()
        try:
            rows = store.query(TABLES["scheduling_entries"], filters=self._filters())
        except BackendError as e:
            self.fail(token, f"Failed to load shift: {e}")
            return False
        except Exception as e:
            logger.exception("Unexpected error loading %s", TABLES["scheduling_entries"])
            self.fail(token, f"Failed to load shift: {e}")
            return False
        return self.apply_loaded(token, rows)

    # -------------------------------------------------------------------------
    # Edit
    # -------------------------------------------------------------------------

    def _mark_edited(self):
        if self.state is SessionState.ERROR:
            self.acknowledge_error()
        if self.state in (SessionState.LOADED, SessionState.EDITING):
            self._transition(SessionState.EDITING)

    def set_capability(self, resource_type: str, **values: Any):
        """Patch the capability entry of a resource type (headcount_plan, hours_available, ...)."""
        entry = self.capability.get(resource_type) or CapabilityEntry()
        for name, value in values.items():
            if not hasattr(entry, name):
                raise AttributeError(f"Unknown capability field: {name}")
            setattr(entry, name, value)
        self.capability[resource_type] = entry
        self._mark_edited()

    def set_volume(self, task_id: str, **values: Any):
        """Patch the volume entry of a task (plan_volume, actual_volume)."""
        entry = self.volumes.get(task_id) or TaskVolumeEntry()
        for name, value in values.items():
            if not hasattr(entry, name):
                raise AttributeError(f"Unknown volume field: {name}")
            setattr(entry, name, value)
        self.volumes[task_id] = entry
        self._mark_edited()

    # -------------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------------

    def derived(self) -> Dict[str, DerivedHours]:
        return derive_all(self.plan.tasks, self.volumes)

    def summary(self) -> Summary:
        return summarize(
            self.plan.tasks,
            self.volumes,
            self.plan.resource_types,
            self.capability,
            self.plan.rate_by_resource,
        )

    def persisted_rows(self) -> List[Dict[str, Any]]:
        if self.context is None:
            raise ValidationError("Select a Site before saving.", field_name="site_id")
        return to_persisted_rows(
            self.context,
            self.plan.tasks,
            self.capability,
            self.volumes,
            self.derived(),
            self.plan.rate_by_resource,
            resource_types=self.plan.resource_types,
        )

    # -------------------------------------------------------------------------
    # Save
    # -------------------------------------------------------------------------

    def _cleared_keys(self, saved: Dict[RowKey, Dict[str, Any]]) -> List[RowKey]:
        """
        Persisted rows this session owns that the current entries no longer produce.

        Capability rows are owned for configured resource types and task rows
        for configured task names; rows for anything else are left untouched.
        """
        types = set(self.plan.resource_types)
        names = {t.name_key for t in self.plan.tasks if t.name_key}
        cleared = []
        for key in self.persisted_keys:
            resource, name = key
            if key in saved:
                continue
            owned = resource in types if name == CAPABILITY_SENTINEL else name in names
            if owned:
                cleared.append(key)
        return sorted(cleared)

    def save(self, store: TableStore) -> bool:
        """
        Upsert the current shift and delete rows whose entries were cleared.

        Validation problems block the save before any backend call.
        """
        try:
            rows = self.persisted_rows()
        except ValidationError as e:
            self._set_status(str(e), is_error=True)
            return False

        saved = {
            _row_key(row): {"resource_or_task_key": row["resource_or_task_key"], "task_name": row["task_name"]}
            for row in rows
        }
        cleared = self._cleared_keys(saved)
        if not rows and not cleared:
            self._set_status("Nothing to save for this date/shift.", is_error=True)
            return False

        if self.state in (SessionState.LOADING, SessionState.SAVING):
            self._set_status("Wait for the current shift to finish loading or saving.", is_error=True)
            return False

        if self.state is SessionState.ERROR:
            self.acknowledge_error()
        token = self.generation
        self._transition(SessionState.SAVING)

        table = TABLES["scheduling_entries"]
        deletes = [(key, {**self._filters(), **self.persisted_keys[key]}) for key in cleared]
        removed = 0
        try:
            written = store.upsert(table, rows)
            if token == self.generation:
                self.persisted_keys.update(saved)
            for key, filters in deletes:
                removed += store.delete(table, filters)
                if token == self.generation:
                    self.persisted_keys.pop(key, None)
        except BackendError as e:
            self.fail(token, f"DB write failed: {e}")
            return False
        except Exception as e:
            logger.exception("Unexpected error saving %s", table)
            self.fail(token, f"DB write failed: {e}")
            return False

        if not self._is_current(token, "save"):
            return False
        self._transition(SessionState.LOADED)
        message = f"Saved {written} row(s) to {table}."
        if cleared:
            message += f" Removed {removed} cleared row(s)."
        self._set_status(message)
        return True

    # -------------------------------------------------------------------------
    # Daily summary
    # -------------------------------------------------------------------------

    def refresh_daily(self, store: TableStore) -> bool:
        """Reload all shifts of the selected site and date into daily_rows."""
        if self.context is None or not self.context.site_id:
            self._set_status("Select a Site to view daily summary.", is_error=True)
            return False

        token = self.generation
        try:
            rows = store.query(TABLES["scheduling_entries"], filters=self._filters(with_shift=False))
        except BackendError as e:
            if self._is_current(token, "daily summary"):
                self._set_status(f"Daily summary read failed: {e}", is_error=True)
            return False

        if not self._is_current(token, "daily summary"):
            return False
        self.daily_rows = aggregate_daily(rows)
        self._set_status("Daily summary refreshed.")
        return True
