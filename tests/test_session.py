"""
Tests for the scheduling page load/edit/save lifecycle.
"""
import pytest
import pandas as pd
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from warehouse_intel.config import CAPABILITY_SENTINEL, TABLES
from warehouse_intel.data.backend import BackendError, LocalTableStore
from warehouse_intel.scheduling.models import PlanConfig, ResourceDefinition, TaskDefinition
from warehouse_intel.scheduling.session import PlanSession, SessionState


DAY = date(2025, 3, 14)
TABLE = TABLES["scheduling_entries"]
TENANT = "tenant-1"


def make_plan():
    return PlanConfig(
        resources=[
            ResourceDefinition("r1", "PPT fleet", "PPT", 18.0, 4),
            ResourceDefinition("r2", "Admin", "Admin", 0.0, 1),
        ],
        tasks=[
            TaskDefinition("t1", "Putaway", "Inbound", "PPT", "Pallets", 3.0, "Direct"),
            TaskDefinition("t2", "Admin – inbound", "Office", "Admin", "Units", 0.6, "Indirect"),
        ],
        indirect_limit_pct=5.0,
    )


class FailingStore(LocalTableStore):
    """Store whose writes (and optionally reads) fail."""

    def __init__(self, fail_reads=False):
        super().__init__()
        self.fail_reads = fail_reads

    def query(self, table, filters=None, order=None, columns=None):
        if self.fail_reads:
            raise BackendError("connection refused")
        return super().query(table, filters, order, columns)

    def upsert(self, table, rows, on_conflict=None):
        raise BackendError("permission denied for table scheduling_entries")


class BrokenStore(LocalTableStore):
    """Store that raises something other than BackendError."""

    def query(self, table, filters=None, order=None, columns=None):
        raise RuntimeError("response was not valid JSON")

    def upsert(self, table, rows, on_conflict=None):
        raise ValueError("Out of range float values are not JSON compliant")


class FailingDeleteStore(LocalTableStore):
    """Store whose deletes fail."""

    def delete(self, table, filters):
        raise BackendError("permission denied for table scheduling_entries")


class TestContext:
    """Tests for selecting a shift."""

    def test_starts_idle(self):
        session = PlanSession(make_plan(), tenant_id=TENANT)

        assert session.state is SessionState.IDLE
        assert session.status.text == "Ready."

    def test_site_selection_starts_loading(self):
        session = PlanSession(make_plan(), tenant_id=TENANT)

        changed = session.set_context("site-1", DAY, "AM")

        assert changed is True
        assert session.state is SessionState.LOADING

    def test_same_context_is_not_a_change(self):
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        generation = session.generation

        assert session.set_context("site-1", DAY, "AM") is False
        assert session.generation == generation

    def test_context_change_clears_entries(self):
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        session.load(LocalTableStore())
        session.set_volume("t1", plan_volume=100)

        session.set_context("site-1", DAY, "PM")

        assert session.volumes == {}
        assert session.capability == {}

    def test_no_site_goes_idle(self):
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")

        session.set_context("", DAY, "AM")

        assert session.state is SessionState.IDLE


class TestLoad:
    """Tests for loading a shift."""

    def test_load_hydrates_entries(self):
        store = LocalTableStore()
        store.upsert(TABLE, [
            {"tenant_id": TENANT, "site_id": "site-1", "scheduled_date": "2025-03-14", "shift_code": "AM",
             "resource_or_task_key": "PPT", "task_name": "Putaway", "units_planned": 100},
            {"tenant_id": TENANT, "site_id": "site-1", "scheduled_date": "2025-03-14", "shift_code": "AM",
             "resource_or_task_key": "PPT", "task_name": CAPABILITY_SENTINEL, "headcount_plan": 2,
             "hours_direct_expected": 15},
            {"tenant_id": TENANT, "site_id": "site-1", "scheduled_date": "2025-03-14", "shift_code": "PM",
             "resource_or_task_key": "PPT", "task_name": "Putaway", "units_planned": 7},
        ])
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")

        assert session.load(store) is True

        assert session.state is SessionState.LOADED
        assert session.volumes["t1"].plan_volume == 100.0
        assert session.capability["PPT"].hours_available == 15.0
        assert session.status.text == "Loaded 2 saved entries for this shift."

    def test_stale_load_discarded(self):
        """A load issued for an abandoned context does not overwrite newer entries."""
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        token = session.begin_load()

        session.set_context("site-2", DAY, "AM")
        applied = session.apply_loaded(token, [
            {"task_name": "Putaway", "units_planned": 999, "resource_or_task_key": "PPT"},
        ])

        assert applied is False
        assert session.volumes == {}
        assert session.state is SessionState.LOADING

    def test_stale_failure_discarded(self):
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        token = session.begin_load()
        session.set_context("site-1", DAY, "PM")

        assert session.fail(token, "Failed to load shift: timeout") is False
        assert session.state is SessionState.LOADING
        assert session.status.is_error is False

    def test_load_failure_sets_error(self):
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")

        assert session.load(FailingStore(fail_reads=True)) is False

        assert session.state is SessionState.ERROR
        assert session.status.is_error is True
        assert session.status.text.startswith("Failed to load shift:")

    def test_unexpected_load_error_sets_error(self):
        """Errors other than BackendError still leave Loading, and the shift can be saved afterwards."""
        store = LocalTableStore()
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")

        assert session.load(BrokenStore()) is False

        assert session.state is SessionState.ERROR
        assert session.status.text == "Failed to load shift: response was not valid JSON"
        session.set_volume("t1", plan_volume=100)
        assert session.save(store) is True
        assert session.state is SessionState.LOADED

    def test_load_without_site_is_noop(self):
        session = PlanSession(make_plan(), tenant_id=TENANT)

        assert session.load(LocalTableStore()) is False
        assert session.state is SessionState.IDLE


class TestSave:
    """Tests for saving a shift."""

    def test_save_without_site_blocked(self):
        """Validation stops the save before any backend call."""
        store = FailingStore()
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_volume("t1", plan_volume=100)

        assert session.save(store) is False

        assert session.status.is_error is True
        assert session.status.text == "Select a Site before saving."

    def test_nothing_to_save(self):
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        session.load(LocalTableStore())

        assert session.save(LocalTableStore()) is False
        assert session.status.text == "Nothing to save for this date/shift."

    def test_save_writes_rows(self):
        store = LocalTableStore()
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        session.load(store)
        session.set_capability("PPT", headcount_plan=2, hours_available=15)
        session.set_volume("t1", plan_volume=100)

        assert session.state is SessionState.EDITING
        assert session.save(store) is True

        assert session.state is SessionState.LOADED
        assert session.status.text == "Saved 2 row(s) to scheduling_entries."
        saved = store.query(TABLE, filters={"site_id": "site-1"})
        assert sorted(r["task_name"] for r in saved) == sorted([CAPABILITY_SENTINEL, "Putaway"])

    def test_resave_replaces_rows(self):
        store = LocalTableStore()
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        session.load(store)
        session.set_volume("t1", plan_volume=100)
        session.save(store)

        session.set_volume("t1", plan_volume=40)
        session.save(store)

        saved = [r for r in store.query(TABLE) if r["task_name"] == "Putaway"]
        assert len(saved) == 1
        assert saved[0]["units_planned"] == 40.0

    def test_backend_failure_keeps_entries(self):
        """A failed write reports the error and leaves the entries for a retry."""
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        session.load(LocalTableStore())
        session.set_volume("t1", plan_volume=100)

        assert session.save(FailingStore()) is False

        assert session.state is SessionState.ERROR
        assert session.status.text == "DB write failed: permission denied for table scheduling_entries"
        assert session.volumes["t1"].plan_volume == 100

        session.acknowledge_error()
        assert session.state is SessionState.LOADED

    def test_retry_after_failure(self):
        store = LocalTableStore()
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        session.load(store)
        session.set_volume("t1", plan_volume=100)
        session.save(FailingStore())

        assert session.save(store) is True
        assert session.state is SessionState.LOADED

    def test_save_while_loading_blocked(self):
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        session.set_volume("t1", plan_volume=100)

        assert session.save(LocalTableStore()) is False
        assert session.state is SessionState.LOADING
        assert "finish loading" in session.status.text


    def test_save_without_tenant_blocked(self):
        """Rows without a tenant never match the conflict key, so the save is refused."""
        session = PlanSession(make_plan())
        session.set_context("site-1", DAY, "AM")
        session.load(LocalTableStore())
        session.set_volume("t1", plan_volume=100)

        assert session.save(FailingStore()) is False

        assert session.status.text == "Set TENANT_ID before saving shifts."
        assert session.state is SessionState.EDITING

    def test_unexpected_write_error_sets_error(self):
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        session.load(LocalTableStore())
        session.set_volume("t1", plan_volume=100)

        assert session.save(BrokenStore()) is False

        assert session.state is SessionState.ERROR
        assert session.status.text.startswith("DB write failed:")
        assert session.save(LocalTableStore()) is True


class TestClearedEntries:
    """Tests for removing rows whose entries were cleared."""

    def reload(self, session, store):
        session.set_context("site-1", DAY, "PM")
        session.load(store)
        session.set_context("site-1", DAY, "AM")
        session.load(store)

    def test_cleared_volume_removed(self):
        store = LocalTableStore()
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        session.load(store)
        session.set_volume("t1", plan_volume=100)
        session.save(store)

        session.set_volume("t1", plan_volume=None)
        assert session.save(store) is True

        assert session.status.text == "Saved 0 row(s) to scheduling_entries. Removed 2 cleared row(s)."
        self.reload(session, store)
        assert session.volumes == {}
        session.refresh_daily(store)
        by_shift = {r.shift_code: r for r in session.daily_rows}
        assert by_shift["AM"].planned_hours == 0.0

    def test_cleared_capability_removed(self):
        store = LocalTableStore()
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        session.load(store)
        session.set_capability("PPT", headcount_plan=2, hours_available=15)
        session.set_volume("t1", plan_volume=100)
        session.save(store)

        session.set_capability("PPT", headcount_plan=None, hours_available=None)
        session.set_volume("t1", plan_volume=None)
        session.save(store)

        self.reload(session, store)
        assert session.capability == {}
        assert store.query(TABLE) == []

    def test_cleared_after_reload(self):
        """Rows loaded from the backend are removed once their entries are cleared."""
        store = LocalTableStore()
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        session.load(store)
        session.set_volume("t1", plan_volume=100)
        session.set_volume("t2", plan_volume=10)
        session.save(store)
        self.reload(session, store)

        session.set_volume("t2", plan_volume="")
        session.save(store)

        names = sorted(r["task_name"] for r in store.query(TABLE))
        assert names == sorted([CAPABILITY_SENTINEL, "Putaway"])

    def test_rows_for_unknown_tasks_kept(self):
        store = LocalTableStore()
        store.upsert(TABLE, [
            {"tenant_id": TENANT, "site_id": "site-1", "scheduled_date": "2025-03-14", "shift_code": "AM",
             "resource_or_task_key": "PPT", "task_name": "Retired task", "units_planned": 5},
        ])
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        session.load(store)
        session.set_volume("t1", plan_volume=100)
        session.save(store)
        session.set_volume("t1", plan_volume=None)
        session.save(store)

        assert [r["task_name"] for r in store.query(TABLE)] == ["Retired task"]

    def test_failed_delete_retried(self):
        store = LocalTableStore()
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")
        session.load(store)
        session.set_volume("t1", plan_volume=100)
        session.save(store)
        session.set_volume("t1", plan_volume=None)

        failing = FailingDeleteStore(tables={TABLE: pd.DataFrame(store.query(TABLE))})
        assert session.save(failing) is False
        assert session.state is SessionState.ERROR

        assert session.save(store) is True
        assert store.query(TABLE) == []

class TestDailySummary:
    """Tests for refreshing the daily rollup."""

    def test_requires_site(self):
        session = PlanSession(make_plan(), tenant_id=TENANT)

        assert session.refresh_daily(LocalTableStore()) is False
        assert session.status.text == "Select a Site to view daily summary."

    def test_refresh_across_shifts(self):
        store = LocalTableStore()
        session = PlanSession(make_plan(), tenant_id=TENANT)
        for shift, volume in (("AM", 100), ("Nights", 20)):
            session.set_context("site-1", DAY, shift)
            session.load(store)
            session.set_volume("t1", plan_volume=volume)
            session.save(store)

        assert session.refresh_daily(store) is True

        by_shift = {r.shift_code: r for r in session.daily_rows}
        assert by_shift["AM"].planned_direct_hours == pytest.approx(5.0)
        assert by_shift["PM"].planned_direct_hours == 0.0
        assert by_shift["Nights"].planned_direct_hours == pytest.approx(1.0)
        assert by_shift["AM"].plan_cost == pytest.approx(90.0)

    def test_read_failure_reported(self):
        session = PlanSession(make_plan(), tenant_id=TENANT)
        session.set_context("site-1", DAY, "AM")

        assert session.refresh_daily(FailingStore(fail_reads=True)) is False
        assert session.status.text == "Daily summary read failed: connection refused"
        assert session.status.is_error is True
