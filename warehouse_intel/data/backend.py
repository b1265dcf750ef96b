"""
Data-access collaborator for the managed backend.

Two stores share one interface:
- RestTableStore: the backend's REST data API (PostgREST conventions).
- LocalTableStore: pandas tables in memory, optionally mirrored to CSV.

Every failure surfaces as BackendError with an operator-readable message.
"""
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd
import requests

from warehouse_intel.config import config as app_config, AppConfig, CONFLICT_KEYS
from warehouse_intel.logging_config import get_logger

logger = get_logger(__name__)

Filters = Optional[Dict[str, Any]]
Order = Optional[Sequence[Union[str, Tuple[str, bool]]]]


class BackendError(Exception):
    """Raised when the backend rejects or fails a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TableStore:
    """Generic tabular data access. Subclasses implement the backend calls."""

    # Whether database views can be queried like tables
    supports_views = True

    def query(self, table: str, filters: Filters = None, order: Order = None,
              columns: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def upsert(self, table: str, rows: List[Dict[str, Any]],
               on_conflict: Optional[Sequence[str]] = None) -> int:
        raise NotImplementedError

    def insert(self, table: str, rows: List[Dict[str, Any]]) -> int:
        raise NotImplementedError

    def update(self, table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> int:
        raise NotImplementedError

    def delete(self, table: str, filters: Dict[str, Any]) -> int:
        raise NotImplementedError

    @property
    def description(self) -> str:
        return self.__class__.__name__


# =============================================================================
# REST STORE
# =============================================================================

def _order_items(order: Order) -> List[Tuple[str, bool]]:
    """Normalise an order argument to [(column, descending)]."""
    items = []
    for item in order or []:
        if isinstance(item, tuple):
            items.append((item[0], bool(item[1])))
        else:
            items.append((item, False))
    return items


class RestTableStore(TableStore):
    """Tables served by the backend's REST data API."""

    def __init__(self, base_url: str, api_key: str, access_token: str = "",
                 timeout: float = 15.0, session: Optional[requests.Session] = None):
        base = base_url.rstrip("/")
        if not base.endswith("/rest/v1"):
            base = f"{base}/rest/v1"
        self.base_url = base
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        })

    @property
    def description(self) -> str:
        return f"REST backend at {self.base_url}"

    @staticmethod
    def _filter_params(filters: Filters) -> Dict[str, str]:
        params = {}
        for col, value in (filters or {}).items():
            if value is None:
                params[col] = "is.null"
            elif isinstance(value, (list, tuple, set)):
                params[col] = "in.(" + ",".join(str(v) for v in value) + ")"
            elif isinstance(value, bool):
                params[col] = f"eq.{str(value).lower()}"
            else:
                params[col] = f"eq.{value}"
        return params

    def _request(self, method: str, table: str, params: Optional[Dict[str, str]] = None,
                 payload: Any = None, prefer: Optional[str] = None) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        try:
            resp = self.session.request(
                method,
                f"{self.base_url}/{table}",
                params=params,
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, table, e, extra={"table": table})
            raise BackendError(f"Could not reach backend: {e}") from e

        if resp.status_code >= 400:
            message = resp.text[:200]
            try:
                body = resp.json()
                if isinstance(body, dict) and body.get("message"):
                    message = body["message"]
            except ValueError:
                pass
            logger.warning("%s %s returned HTTP %s: %s", method, table, resp.status_code, message,
                           extra={"table": table})
            raise BackendError(message, status_code=resp.status_code)

        if not resp.content:
            return []
        try:
            return resp.json()
        except ValueError as e:
            raise BackendError(f"Unexpected response from backend for {table}.") from e

    def query(self, table, filters=None, order=None, columns=None):
        params = self._filter_params(filters)
        params["select"] = ",".join(columns) if columns else "*"
        items = _order_items(order)
        if items:
            params["order"] = ",".join(f"{col}.{'desc' if desc else 'asc'}" for col, desc in items)
        data = self._request("GET", table, params=params)
        return list(data or [])

    def upsert(self, table, rows, on_conflict=None):
        if not rows:
            return 0
        keys = list(on_conflict or CONFLICT_KEYS.get(table, []))
        params = {"on_conflict": ",".join(keys)} if keys else None
        self._request("POST", table, params=params, payload=rows,
                      prefer="resolution=merge-duplicates,return=minimal")
        return len(rows)

    def insert(self, table, rows):
        if not rows:
            return 0
        self._request("POST", table, payload=rows, prefer="return=minimal")
        return len(rows)

    def update(self, table, values, filters):
        data = self._request("PATCH", table, params=self._filter_params(filters), payload=values,
                             prefer="return=representation")
        return len(data or [])

    def delete(self, table, filters):
        if not filters:
            raise BackendError(f"Refusing to delete from {table} without filters.")
        data = self._request("DELETE", table, params=self._filter_params(filters),
                             prefer="return=representation")
        return len(data or [])


# =============================================================================
# LOCAL STORE
# =============================================================================

def _records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame to records with missing values as None."""
    if len(df) == 0:
        return []
    return df.astype(object).where(df.notna(), None).to_dict("records")


def _conflict_keys(df: pd.DataFrame, keys: Sequence[str]) -> pd.Series:
    """Joined key per row; missing where any key column is NULL."""
    part = df[list(keys)].astype(object)
    complete = part.notna().all(axis=1)
    return part.astype(str).agg("|".join, axis=1).where(complete)


class LocalTableStore(TableStore):
    """
    pandas-backed tables for development and tests.

    When data_dir is given, each table is read from and written back to
    <data_dir>/<table>.csv.
    """

    supports_views = False

    def __init__(self, data_dir: Optional[Path] = None,
                 tables: Optional[Dict[str, pd.DataFrame]] = None):
        self.data_dir = Path(data_dir) if data_dir else None
        self._tables = {name: df.copy() for name, df in (tables or {}).items()}

    @property
    def description(self) -> str:
        if self.data_dir:
            return f"Local tables in {self.data_dir}"
        return "In-memory tables"

    def _table(self, table: str) -> pd.DataFrame:
        if table not in self._tables:
            df = pd.DataFrame()
            if self.data_dir:
                csv_path = self.data_dir / f"{table}.csv"
                if csv_path.exists():
                    try:
                        df = pd.read_csv(csv_path, dtype=object, keep_default_na=True)
                    except (OSError, ValueError) as e:
                        raise BackendError(f"Could not read {csv_path}: {e}") from e
                    # CSV cannot tell NULL from blank; conflict key columns read back as blanks
                    for col in CONFLICT_KEYS.get(table, []):
                        if col in df.columns:
                            df[col] = df[col].fillna("")
            self._tables[table] = df
        return self._tables[table]

    def _store(self, table: str, df: pd.DataFrame):
        self._tables[table] = df.reset_index(drop=True)
        if self.data_dir:
            try:
                self.data_dir.mkdir(parents=True, exist_ok=True)
                df.to_csv(self.data_dir / f"{table}.csv", index=False)
            except OSError as e:
                raise BackendError(f"Could not write {table}: {e}") from e

    @staticmethod
    def _mask(df: pd.DataFrame, filters: Filters) -> pd.Series:
        mask = pd.Series(True, index=df.index)
        for col, value in (filters or {}).items():
            if col not in df.columns:
                return pd.Series(False, index=df.index)
            as_text = df[col].astype(str)
            if value is None:
                mask &= df[col].isna()
            elif isinstance(value, (list, tuple, set)):
                mask &= as_text.isin([str(v) for v in value])
            else:
                mask &= as_text == str(value)
        return mask

    def query(self, table, filters=None, order=None, columns=None):
        df = self._table(table)
        if len(df) == 0:
            return []
        result = df[self._mask(df, filters)]
        items = [(col, desc) for col, desc in _order_items(order) if col in result.columns]
        if items:
            result = result.sort_values(
                [col for col, _ in items],
                ascending=[not desc for _, desc in items],
                kind="mergesort",
            )
        if columns:
            result = result[[c for c in columns if c in result.columns]]
        return _records(result)

    def upsert(self, table, rows, on_conflict=None):
        if not rows:
            return 0
        df = self._table(table)
        new = pd.DataFrame(rows)
        keys = list(on_conflict or CONFLICT_KEYS.get(table, []))
        if not keys and "id" in new.columns:
            keys = ["id"]

        if len(df) > 0 and keys and all(k in df.columns for k in keys):
            # A NULL in any key column never conflicts, as with a Postgres unique index
            df = df[~_conflict_keys(df, keys).isin(set(_conflict_keys(new, keys).dropna()))]

        if keys and all(k in new.columns for k in keys):
            new_keys = _conflict_keys(new, keys)
            new = new[~(new_keys.duplicated(keep="last") & new_keys.notna())]
        self._store(table, pd.concat([df, new], ignore_index=True))
        return len(rows)

    def insert(self, table, rows):
        if not rows:
            return 0
        df = self._table(table)
        prepared = [{"id": uuid.uuid4().hex, **r} if not r.get("id") else dict(r) for r in rows]
        self._store(table, pd.concat([df, pd.DataFrame(prepared)], ignore_index=True))
        return len(rows)

    def update(self, table, values, filters):
        df = self._table(table).copy()
        if len(df) == 0:
            return 0
        mask = self._mask(df, filters)
        for col, value in values.items():
            if col not in df.columns:
                df[col] = None
            df[col] = df[col].astype(object)
            df.loc[mask, col] = value
        self._store(table, df)
        return int(mask.sum())

    def delete(self, table, filters):
        if not filters:
            raise BackendError(f"Refusing to delete from {table} without filters.")
        df = self._table(table)
        if len(df) == 0:
            return 0
        mask = self._mask(df, filters)
        self._store(table, df[~mask])
        return int(mask.sum())


def get_store(cfg: Optional[AppConfig] = None) -> TableStore:
    """Build the configured store: REST when BACKEND_URL is set, else local CSV tables."""
    cfg = cfg or app_config
    if cfg.store_kind == "rest":
        return RestTableStore(
            cfg.backend_url,
            cfg.backend_anon_key,
            access_token=cfg.backend_access_token,
            timeout=cfg.backend_timeout_seconds,
        )
    return LocalTableStore(cfg.tables_dir)
