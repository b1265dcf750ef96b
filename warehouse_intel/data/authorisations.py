"""
MHE training authorisations through the table store.

Records are never edited in place: retraining revokes the current record
and inserts a new ACTIVE one, so history is preserved.
"""
from typing import Any, Dict, List, Optional

from warehouse_intel.config import AUTH_STATUS_ACTIVE, AUTH_STATUS_REVOKED, TABLES
from warehouse_intel.data.backend import BackendError, TableStore
from warehouse_intel.logging_config import get_logger
from warehouse_intel.metrics.training import build_training_record

logger = get_logger(__name__)

HISTORY_FIELDS = [
    "id", "mhe_type_id", "trained_on", "expires_on", "status",
    "certificate_path", "notes", "signed_off_at", "created_at",
]


def load_current_authorisations(store: TableStore, site_id: str) -> List[Dict[str, Any]]:
    """Current authorisations at a site, by colleague last name."""
    if not site_id:
        return []
    if store.supports_views:
        return store.query(
            TABLES["mhe_authorisations_current"],
            filters={"site_id": site_id},
            order=["last_name"],
        )
    # Without the view, current means ACTIVE
    return store.query(
        TABLES["mhe_authorisations"],
        filters={"site_id": site_id, "status": AUTH_STATUS_ACTIVE},
    )


def load_authorisation_history(store: TableStore, colleague_id: str,
                               mhe_type_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Every authorisation of one colleague, optionally for one MHE type, latest training first."""
    if not colleague_id:
        return []
    filters = {"colleague_id": colleague_id}
    if mhe_type_id:
        filters["mhe_type_id"] = mhe_type_id
    return store.query(
        TABLES["mhe_authorisations"],
        filters=filters,
        order=[("trained_on", True)],
        columns=HISTORY_FIELDS,
    )


def add_training(store: TableStore, colleague_id: str, mhe_type_id: str, trained_on: str,
                 company_id: Optional[str] = None, site_id: Optional[str] = None,
                 certificate_path: str = "", notes: str = "") -> Dict[str, Any]:
    """Insert a new ACTIVE authorisation and return the row written."""
    record = build_training_record(
        colleague_id, mhe_type_id, trained_on,
        company_id=company_id, site_id=site_id,
        certificate_path=certificate_path, notes=notes,
    )
    store.insert(TABLES["mhe_authorisations"], [record])
    logger.info("Recorded %s training for colleague %s", mhe_type_id, colleague_id)
    return record


def retrain(store: TableStore, authorisation: Dict[str, Any], trained_on: str,
            company_id: Optional[str] = None, site_id: Optional[str] = None,
            certificate_path: str = "", notes: str = "") -> Dict[str, Any]:
    """
    Revoke an authorisation and insert its ACTIVE replacement.

    The new record is validated before anything is written.
    """
    record = build_training_record(
        authorisation.get("colleague_id"), authorisation.get("mhe_type_id"), trained_on,
        company_id=company_id, site_id=site_id,
        certificate_path=certificate_path, notes=notes,
    )
    auth_id = authorisation.get("id")
    if not auth_id:
        raise BackendError("No authorisation selected.")

    revoked = store.update(TABLES["mhe_authorisations"], {"status": AUTH_STATUS_REVOKED}, {"id": auth_id})
    if revoked == 0:
        raise BackendError(f"Authorisation {auth_id} was not found.")
    store.insert(TABLES["mhe_authorisations"], [record])
    logger.info("Retrained colleague %s on %s (revoked %s)",
                record["colleague_id"], record["mhe_type_id"], auth_id)
    return record
