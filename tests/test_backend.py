"""
Tests for the table stores.
"""
import json
import pytest
import pandas as pd
import requests
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from warehouse_intel.config import AppConfig
from warehouse_intel.data.backend import (
    BackendError,
    LocalTableStore,
    RestTableStore,
    get_store,
)
from warehouse_intel.data.reference import load_sites, load_mhe_assets, sites_by_name


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        if text is not None:
            self.text = text
        else:
            self.text = json.dumps(payload) if payload is not None else ""
        self.content = self.text.encode("utf-8")

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    """Records requests and replays a queued response."""

    def __init__(self, response=None, error=None):
        self.headers = {}
        self.calls = []
        self.response = response or FakeResponse(200, [])
        self.error = error

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append({
            "method": method,
            "url": url,
            "params": params,
            "json": json,
            "headers": headers,
            "timeout": timeout,
        })
        if self.error:
            raise self.error
        return self.response


def rest_store(session):
    return RestTableStore("https://example.test/", "anon-key", session=session, timeout=5)


class TestRestTableStore:
    """Tests for the REST data API client."""

    def test_base_url_and_headers(self):
        session = FakeSession()
        store = rest_store(session)

        assert store.base_url == "https://example.test/rest/v1"
        assert session.headers["apikey"] == "anon-key"
        assert session.headers["Authorization"] == "Bearer anon-key"

    def test_access_token_used_for_authorization(self):
        session = FakeSession()
        RestTableStore("https://example.test/rest/v1", "anon-key", access_token="user-jwt", session=session)

        assert session.headers["Authorization"] == "Bearer user-jwt"

    def test_query_params(self):
        session = FakeSession(FakeResponse(200, [{"id": "s1"}]))
        store = rest_store(session)

        rows = store.query(
            "sites",
            filters={"company_id": "c1", "id": ["s1", "s2"], "deleted_at": None, "active": True},
            order=["name", ("code", True)],
        )

        assert rows == [{"id": "s1"}]
        call = session.calls[0]
        assert call["method"] == "GET"
        assert call["url"] == "https://example.test/rest/v1/sites"
        assert call["params"] == {
            "company_id": "eq.c1",
            "id": "in.(s1,s2)",
            "deleted_at": "is.null",
            "active": "eq.true",
            "select": "*",
            "order": "name.asc,code.desc",
        }
        assert call["timeout"] == 5

    def test_upsert_uses_conflict_key(self):
        session = FakeSession(FakeResponse(201, None, text=""))
        store = rest_store(session)
        rows = [{"site_id": "s1", "task_name": "Putaway"}]

        assert store.upsert("scheduling_entries", rows) == 1

        call = session.calls[0]
        assert call["method"] == "POST"
        assert call["json"] == rows
        assert call["params"]["on_conflict"] == (
            "tenant_id,site_id,scheduled_date,shift_code,resource_or_task_key,task_name"
        )
        assert "resolution=merge-duplicates" in call["headers"]["Prefer"]

    def test_upsert_nothing_makes_no_call(self):
        session = FakeSession()

        assert rest_store(session).upsert("scheduling_entries", []) == 0
        assert session.calls == []

    def test_http_error_message(self):
        session = FakeSession(FakeResponse(403, {"message": "permission denied for table sites"}))

        with pytest.raises(BackendError) as exc:
            rest_store(session).query("sites")

        assert str(exc.value) == "permission denied for table sites"
        assert exc.value.status_code == 403

    def test_http_error_without_json(self):
        session = FakeSession(FakeResponse(502, None, text="Bad Gateway"))

        with pytest.raises(BackendError) as exc:
            rest_store(session).query("sites")

        assert str(exc.value) == "Bad Gateway"

    def test_connection_error(self):
        session = FakeSession(error=requests.ConnectionError("refused"))

        with pytest.raises(BackendError) as exc:
            rest_store(session).query("sites")

        assert str(exc.value).startswith("Could not reach backend:")

    def test_update_counts_returned_rows(self):
        session = FakeSession(FakeResponse(200, [{"id": "a"}, {"id": "b"}]))

        count = rest_store(session).update("colleagues", {"active": False}, {"site_id": "s1"})

        assert count == 2
        assert session.calls[0]["method"] == "PATCH"
        assert session.calls[0]["params"] == {"site_id": "eq.s1"}


class TestLocalTableStore:
    """Tests for the pandas-backed store."""

    def test_query_filters_and_order(self):
        store = LocalTableStore(tables={
            "sites": pd.DataFrame({
                "id": ["s1", "s2", "s3"],
                "company_id": ["c1", "c1", "c2"],
                "name": ["Beta", "Alpha", "Gamma"],
            }),
        })

        rows = store.query("sites", filters={"company_id": "c1"}, order=["name"])

        assert [r["id"] for r in rows] == ["s2", "s1"]

    def test_membership_filter(self):
        store = LocalTableStore(tables={"sites": pd.DataFrame({"id": ["s1", "s2", "s3"]})})

        rows = store.query("sites", filters={"id": ["s1", "s3"]})

        assert [r["id"] for r in rows] == ["s1", "s3"]

    def test_unknown_table_is_empty(self):
        assert LocalTableStore().query("nothing") == []

    def test_filter_on_missing_column_matches_nothing(self):
        store = LocalTableStore(tables={"sites": pd.DataFrame({"id": ["s1"]})})

        assert store.query("sites", filters={"company_id": "c1"}) == []

    def test_missing_values_are_none(self):
        store = LocalTableStore(tables={"t": pd.DataFrame({"id": ["a"], "x": [float("nan")]})})

        assert store.query("t") == [{"id": "a", "x": None}]

    def test_upsert_replaces_on_conflict_key(self):
        store = LocalTableStore()
        base = {"tenant_id": "tenant-1", "site_id": "s1", "scheduled_date": "2025-03-14",
                "shift_code": "AM", "resource_or_task_key": "PPT", "task_name": "Putaway"}

        store.upsert("scheduling_entries", [{**base, "units_planned": 10}])
        store.upsert("scheduling_entries", [{**base, "units_planned": 12}, {**base, "shift_code": "PM", "units_planned": 1}])

        rows = store.query("scheduling_entries", order=["shift_code"])
        assert len(rows) == 2
        assert rows[0]["units_planned"] == 12

    def test_csv_persistence(self, tmp_path):
        store = LocalTableStore(tmp_path)
        base = {"tenant_id": "tenant-1", "site_id": "s1", "scheduled_date": "2025-03-14",
                "shift_code": "AM", "resource_or_task_key": "PPT", "task_name": "Putaway"}
        store.upsert("scheduling_entries", [{**base, "units_planned": 10}])

        assert (tmp_path / "scheduling_entries.csv").exists()

        # A new store reads the CSV back and still matches on upsert
        reopened = LocalTableStore(tmp_path)
        reopened.upsert("scheduling_entries", [{**base, "units_planned": 11}])
        rows = LocalTableStore(tmp_path).query("scheduling_entries")
        assert len(rows) == 1
        assert float(rows[0]["units_planned"]) == 11.0

    def test_null_key_never_conflicts(self):
        """Rows with a NULL key column are kept side by side, as a unique index would."""
        store = LocalTableStore()
        base = {"tenant_id": None, "site_id": "s1", "scheduled_date": "2025-03-14",
                "shift_code": "AM", "resource_or_task_key": "PPT", "task_name": "Putaway"}

        store.upsert("scheduling_entries", [{**base, "units_planned": 10}])
        store.upsert("scheduling_entries", [{**base, "units_planned": 12}, {**base, "units_planned": 13}])

        rows = store.query("scheduling_entries")
        assert [r["units_planned"] for r in rows] == [10, 12, 13]

    def test_blank_key_survives_csv(self, tmp_path):
        """A task without a resource saves a blank key; reopening the CSV still matches it."""
        base = {"tenant_id": "tenant-1", "site_id": "s1", "scheduled_date": "2025-03-14",
                "shift_code": "AM", "resource_or_task_key": "", "task_name": "Cycle count"}
        LocalTableStore(tmp_path).upsert("scheduling_entries", [{**base, "units_planned": 1}])

        LocalTableStore(tmp_path).upsert("scheduling_entries", [{**base, "units_planned": 2}])

        rows = LocalTableStore(tmp_path).query("scheduling_entries")
        assert len(rows) == 1
        assert rows[0]["resource_or_task_key"] == ""

    def test_delete_without_filters_refused(self):
        store = LocalTableStore(tables={"colleagues": pd.DataFrame({"id": ["a"]})})

        with pytest.raises(BackendError):
            store.delete("colleagues", {})

        assert len(store.query("colleagues")) == 1

    def test_insert_assigns_ids(self):
        store = LocalTableStore()

        assert store.insert("colleagues", [{"first_name": "Ann"}, {"id": "keep", "first_name": "Bo"}]) == 2

        rows = store.query("colleagues")
        assert rows[0]["id"]
        assert rows[1]["id"] == "keep"

    def test_update_and_delete(self):
        store = LocalTableStore(tables={"colleagues": pd.DataFrame({
            "id": ["a", "b"], "site_id": ["s1", "s2"], "active": [True, True],
        })})

        assert store.update("colleagues", {"active": False}, {"site_id": "s1"}) == 1
        updated = store.query("colleagues", filters={"id": "a"})[0]
        assert updated["active"] is not None
        assert not updated["active"]

        assert store.delete("colleagues", {"site_id": "s2"}) == 1
        assert [r["id"] for r in store.query("colleagues")] == ["a"]


class TestReferenceLookups:
    """Tests for reference data helpers."""

    def test_sites_for_blank_company(self):
        assert load_sites(LocalTableStore(), "") == []

    def test_assets_for_no_sites_skips_query(self):
        class NoQueryStore(LocalTableStore):
            def query(self, *args, **kwargs):
                raise AssertionError("query should not be called")

        assert load_mhe_assets(NoQueryStore(), []) == []

    def test_sites_by_name_normalised(self):
        lookup = sites_by_name([{"id": "s1", "name": "  Leeds DC "}, {"id": "s2", "name": None}])

        assert list(lookup) == ["leeds dc"]


class TestGetStore:
    """Tests for store selection from config."""

    def test_local_without_backend_url(self, tmp_path):
        cfg = AppConfig(data_dir=tmp_path, backend_url=None)

        store = get_store(cfg)

        assert isinstance(store, LocalTableStore)
        assert store.data_dir == tmp_path / "tables"

    def test_rest_with_backend_url(self):
        cfg = AppConfig(backend_url="https://example.test", backend_anon_key="k")

        store = get_store(cfg)

        assert isinstance(store, RestTableStore)
        assert store.base_url == "https://example.test/rest/v1"

    def test_save_tenant(self):
        assert AppConfig(backend_url=None, tenant_id="").save_tenant_id == "local"
        assert AppConfig(backend_url="https://example.test", tenant_id="").save_tenant_id is None
        assert AppConfig(backend_url="https://example.test", tenant_id="t-9").save_tenant_id == "t-9"
