"""
Reference data lookups (companies, sites, MHE, colleagues) through the table store.
"""
from typing import Any, Dict, List, Optional, Sequence

from warehouse_intel.config import TABLES
from warehouse_intel.data.backend import TableStore


def load_companies(store: TableStore) -> List[Dict[str, Any]]:
    """All companies visible to the current user, by name."""
    return store.query(TABLES["companies"], order=["name"], columns=["id", "name"])


def load_sites(store: TableStore, company_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Sites, optionally restricted to one company, by name."""
    if company_id is None:
        return store.query(TABLES["sites"], order=["name"])
    if not company_id:
        return []
    return store.query(TABLES["sites"], filters={"company_id": company_id}, order=["name"])


def load_mhe_types(store: TableStore) -> List[Dict[str, Any]]:
    return store.query(TABLES["mhe_types"], order=["type_name"])


def load_mhe_assets(store: TableStore, site_ids: Sequence[str]) -> List[Dict[str, Any]]:
    """Assets for the given sites. No sites, no query."""
    site_ids = [s for s in site_ids if s]
    if not site_ids:
        return []
    return store.query(TABLES["mhe_assets"], filters={"site_id": list(site_ids)})


def load_colleagues(store: TableStore, site_id: str) -> List[Dict[str, Any]]:
    if not site_id:
        return []
    return store.query(TABLES["colleagues"], filters={"site_id": site_id}, order=["last_name", "first_name"])


def sites_by_name(sites: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Sites keyed by lower-cased, trimmed name."""
    return {str(s.get("name") or "").strip().lower(): s for s in sites if s.get("name")}
