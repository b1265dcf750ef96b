"""
Tests for MHE training authorisations.
"""
import pytest
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from warehouse_intel.config import TABLES
from warehouse_intel.data.authorisations import (
    add_training,
    load_authorisation_history,
    load_current_authorisations,
    retrain,
)
from warehouse_intel.data.backend import BackendError, LocalTableStore, TableStore
from warehouse_intel.metrics.training import (
    TrainingInputError,
    authorisation_history,
    build_training_record,
    expiry_date,
    expiry_preview,
    is_due_soon,
    training_register,
    training_summary,
)


TODAY = date(2025, 3, 1)

MHE_TYPES = [
    {"id": "m1", "type_name": "PPT", "inspection_cycle_days": 365},
    {"id": "m2", "type_name": "Counterbalance", "inspection_cycle_days": 30},
]

COLLEAGUES = [
    {"id": "c1", "first_name": "Ann", "last_name": "Lee", "active": True},
    {"id": "c2", "first_name": "Bo", "last_name": "Adams", "active": "true"},
    {"id": "c3", "first_name": "Cy", "last_name": "Zed", "active": False},
    {"id": "c4", "first_name": "Di", "last_name": "Brown", "active": True},
    {"id": "c5", "first_name": "Ed", "last_name": "Adams", "active": True},
]

AUTHORISATIONS = [
    {"id": "a2", "colleague_id": "c1", "mhe_type_id": "m2", "trained_on": "2025-02-25", "certificate_path": "certs/a2.pdf"},
    {"id": "a1", "colleague_id": "c1", "mhe_type_id": "m1", "trained_on": "2024-03-20"},
    {"id": "a3", "colleague_id": "c2", "mhe_type_id": "m1", "trained_on": "2024-06-01"},
    {"id": "a4", "colleague_id": "c3", "mhe_type_id": "m1", "trained_on": "2024-01-01"},
    {"id": "a6", "colleague_id": "c5", "mhe_type_id": "m2", "trained_on": None},
    {"id": "a5", "colleague_id": "c5", "mhe_type_id": "m1", "trained_on": "2024-06-01"},
]


def register(**kwargs):
    return training_register(COLLEAGUES, AUTHORISATIONS, MHE_TYPES, today=TODAY, **kwargs)


class TestExpiry:
    """Tests for expiry dates and the due-soon rule."""

    def test_expiry_adds_cycle(self):
        assert expiry_date("2024-03-20", 365) == date(2025, 3, 20)
        assert expiry_date("2025-02-25", 30) == date(2025, 3, 27)

    def test_expiry_needs_date_and_cycle(self):
        assert expiry_date(None, 365) is None
        assert expiry_date("20/03/2024", 365) is None
        assert expiry_date("2024-03-20", None) is None

    @pytest.mark.parametrize("days,expected", [
        (-5, True),
        (0, True),
        (30, True),
        (31, False),
        (None, False),
    ])
    def test_due_soon(self, days, expected):
        assert is_due_soon(days) is expected

    def test_preview(self):
        preview = expiry_preview("2025-02-25", MHE_TYPES[1], today=TODAY)

        assert preview == {"expires_on": date(2025, 3, 27), "days_to_expiry": 26}
        assert expiry_preview("", MHE_TYPES[1], today=TODAY)["expires_on"] is None
        assert expiry_preview("2025-02-25", None, today=TODAY)["expires_on"] is None


class TestTrainingRegister:
    """Tests for the site training register."""

    def test_order_and_grouping(self):
        result = register()

        assert list(result["authorisation_id"]) == ["a1", "a2", "a3", "a5", "a6"]
        assert list(result["colleague_name"].unique()) == ["Ann Lee", "Bo Adams", "Ed Adams"]

    def test_due_soon_flags(self):
        result = register().set_index("authorisation_id")

        assert result.loc["a1", "days_to_expiry"] == 19
        assert result.loc["a1", "due_soon"] == True  # noqa: E712
        assert result.loc["a3", "due_soon"] == False  # noqa: E712
        assert result.loc["a6", "expires_on"] is None
        assert result.loc["a6", "due_soon"] == False  # noqa: E712
        assert result.loc["a3", "colleague_due_soon"] == False  # noqa: E712

    def test_inactive_and_untrained_colleagues_left_out(self):
        ids = set(register()["colleague_id"])

        assert "c3" not in ids
        assert "c4" not in ids

    def test_type_filter_keeps_colleague_flag(self):
        result = register(mhe_type_id="m2")

        assert list(result["authorisation_id"]) == ["a2", "a6"]
        assert result.iloc[0]["colleague_due_soon"] == True  # noqa: E712

    @pytest.mark.parametrize("needle,expected", [
        ("lee ann", ["c1"]),
        ("ANN", ["c1"]),
        ("adams", ["c2", "c5"]),
        ("nobody", []),
    ])
    def test_name_filter(self, needle, expected):
        result = register(name_filter=needle)

        assert list(result["colleague_id"].unique()) == expected

    def test_view_expiry_preferred(self):
        auths = [{"id": "a", "colleague_id": "c1", "mhe_type_id": "m1",
                  "trained_on": "2024-03-20", "expires_on": "2025-04-01"}]

        result = training_register(COLLEAGUES, auths, MHE_TYPES, today=TODAY)

        assert result.iloc[0]["expires_on"] == date(2025, 4, 1)
        assert result.iloc[0]["days_to_expiry"] == 31

    def test_certificate_flag(self):
        result = register().set_index("authorisation_id")

        assert result.loc["a2", "has_certificate"] == True  # noqa: E712
        assert result.loc["a1", "has_certificate"] == False  # noqa: E712

    def test_summary(self):
        assert training_summary(register()) == {"colleagues": 3, "authorisations": 5, "due_soon": 1}
        assert training_summary(register(name_filter="nobody")) == {
            "colleagues": 0, "authorisations": 0, "due_soon": 0,
        }


class TestHistory:
    """Tests for a colleague's authorisation history."""

    def test_latest_first_with_status(self):
        rows = [
            {"id": "old", "mhe_type_id": "m1", "trained_on": "2023-05-01", "status": "REVOKED"},
            {"id": "new", "mhe_type_id": "m1", "trained_on": "2024-05-01", "status": "ACTIVE", "notes": " refresher "},
            {"id": "blank", "mhe_type_id": "m9", "trained_on": None, "status": None},
        ]

        history = authorisation_history(rows, MHE_TYPES, today=TODAY)

        assert list(history["authorisation_id"]) == ["new", "old", "blank"]
        assert history.iloc[0]["expires_on"] == date(2025, 5, 1)
        assert history.iloc[0]["notes"] == "refresher"
        assert history.iloc[1]["status"] == "REVOKED"
        assert history.iloc[2]["type_label"] == "—"
        assert history.iloc[2]["status"] == "—"

    def test_empty(self):
        assert len(authorisation_history([], MHE_TYPES)) == 0


class TestTrainingRecord:
    """Tests for building new authorisation rows."""

    def test_record_fields(self):
        record = build_training_record("c1", "m1", " 2025-03-01 ", company_id="co1", site_id="s1", notes="  ")

        assert record == {
            "company_id": "co1",
            "site_id": "s1",
            "colleague_id": "c1",
            "mhe_type_id": "m1",
            "trained_on": "2025-03-01",
            "status": "ACTIVE",
            "certificate_path": None,
            "notes": None,
        }

    @pytest.mark.parametrize("args,message", [
        (("", "m1", "2025-03-01"), "Colleague is required."),
        (("c1", "", "2025-03-01"), "MHE type is required."),
        (("c1", "m1", ""), "Trained on date is required."),
        (("c1", "m1", "2025-13-01"), "Trained on date is required."),
    ])
    def test_missing_input(self, args, message):
        with pytest.raises(TrainingInputError) as exc:
            build_training_record(*args)

        assert str(exc.value) == message


class RecordingStore(TableStore):
    """Store that records queries and returns nothing."""

    def __init__(self):
        self.queries = []

    def query(self, table, filters=None, order=None, columns=None):
        self.queries.append({"table": table, "filters": filters, "order": order, "columns": columns})
        return []


class TestAuthorisationStore:
    """Tests for reading and writing authorisations through a store."""

    def test_current_reads_view(self):
        store = RecordingStore()

        load_current_authorisations(store, "s1")

        assert store.queries == [{
            "table": TABLES["mhe_authorisations_current"],
            "filters": {"site_id": "s1"},
            "order": ["last_name"],
            "columns": None,
        }]

    def test_history_query(self):
        store = RecordingStore()

        load_authorisation_history(store, "c1", "m2")

        query = store.queries[0]
        assert query["table"] == TABLES["mhe_authorisations"]
        assert query["filters"] == {"colleague_id": "c1", "mhe_type_id": "m2"}
        assert query["order"] == [("trained_on", True)]

    def test_blank_keys_skip_query(self):
        store = RecordingStore()

        assert load_current_authorisations(store, "") == []
        assert load_authorisation_history(store, "") == []
        assert store.queries == []

    def test_add_then_current(self):
        store = LocalTableStore()

        add_training(store, "c1", "m1", "2025-03-01", company_id="co1", site_id="s1")

        current = load_current_authorisations(store, "s1")
        assert len(current) == 1
        assert current[0]["id"]
        assert current[0]["status"] == "ACTIVE"
        assert load_current_authorisations(store, "s2") == []

    def test_retrain_revokes_and_inserts(self):
        store = LocalTableStore()
        add_training(store, "c1", "m1", "2024-03-01", site_id="s1")
        old = load_current_authorisations(store, "s1")[0]

        retrain(store, old, "2025-03-01", site_id="s1", notes="refresher")

        current = load_current_authorisations(store, "s1")
        assert [r["trained_on"] for r in current] == ["2025-03-01"]
        history = load_authorisation_history(store, "c1")
        assert [(r["trained_on"], r["status"]) for r in history] == [
            ("2025-03-01", "ACTIVE"),
            ("2024-03-01", "REVOKED"),
        ]

    def test_retrain_with_bad_date_writes_nothing(self):
        store = LocalTableStore()
        add_training(store, "c1", "m1", "2024-03-01", site_id="s1")
        old = load_current_authorisations(store, "s1")[0]

        with pytest.raises(TrainingInputError):
            retrain(store, old, "01/03/2025", site_id="s1")

        assert [r["status"] for r in store.query(TABLES["mhe_authorisations"])] == ["ACTIVE"]

    def test_retrain_unknown_authorisation(self):
        store = LocalTableStore()
        add_training(store, "c1", "m1", "2024-03-01", site_id="s1")

        with pytest.raises(BackendError):
            retrain(store, {"id": "missing", "colleague_id": "c1", "mhe_type_id": "m1"}, "2025-03-01")

        assert len(store.query(TABLES["mhe_authorisations"])) == 1
