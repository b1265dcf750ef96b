"""
Local persistence for scheduling configuration.

Resource definitions, task definitions and the indirect limit are stored as
versioned JSON blobs in the client's config directory. They survive reloads
but are not shared across devices or users.
"""
import json
import uuid
from pathlib import Path
from typing import Any, List, Optional

from warehouse_intel.config import config, CONFIG_KEYS
from warehouse_intel.logging_config import get_logger
from warehouse_intel.scheduling.models import PlanConfig, ResourceDefinition, TaskDefinition

logger = get_logger(__name__)


def new_id() -> str:
    """Opaque identifier for a new resource or task."""
    return f"id_{uuid.uuid4().hex[:12]}"


def default_resources() -> List[ResourceDefinition]:
    return [
        ResourceDefinition(id=new_id(), label="PPT fleet", type="PPT", count=4),
        ResourceDefinition(id=new_id(), label="CB fleet", type="CB", count=3),
        ResourceDefinition(id=new_id(), label="VNA trucks", type="VNA", count=2),
        ResourceDefinition(id=new_id(), label="Manual labour", type="Manual", count=10),
        ResourceDefinition(id=new_id(), label="Admin", type="Admin", count=2),
    ]


def default_tasks() -> List[TaskDefinition]:
    return [
        TaskDefinition("trailer_unload", "Trailer unload (rear tip)", "Inbound – BAYM", "PPT", "Pallets", 2.0, "Direct"),
        TaskDefinition("container_20", "Container unload (20ft)", "Inbound", "PPT", "Pallets", 2.5, "Direct"),
        TaskDefinition("container_40", "Container unload (40ft)", "Inbound", "PPT", "Pallets", 3.0, "Direct"),
        TaskDefinition("putaway_vna", "Putaway – VNA", "High bay", "VNA", "Pallets", 3.0, "Direct"),
        TaskDefinition("replenishment", "Replenishment move", "Replen", "CB", "Pallets", 2.2, "Direct"),
        TaskDefinition("picking_manual", "Case picking", "Pick face", "Manual", "Units", 0.1, "Direct"),
        TaskDefinition("admin_inbound", "Admin – inbound", "Office", "Admin", "Units", 0.6, "Indirect"),
    ]


def _blob_path(key: str, config_dir: Optional[Path] = None) -> Path:
    return Path(config_dir or config.config_dir) / f"{key}.json"


def load_json(key: str, fallback: Any, config_dir: Optional[Path] = None) -> Any:
    """Read a JSON blob; missing, empty or corrupt blobs give the fallback."""
    path = _blob_path(key, config_dir)
    if not path.exists():
        return fallback
    try:
        raw = path.read_text(encoding="utf-8")
        if not raw.strip():
            return fallback
        parsed = json.loads(raw)
    except (OSError, ValueError) as e:
        logger.warning("Could not read config blob %s: %s", path, e)
        return fallback
    return fallback if parsed is None else parsed


def save_json(key: str, value: Any, config_dir: Optional[Path] = None) -> bool:
    """Write a JSON blob. Returns False (and logs) when the write fails."""
    path = _blob_path(key, config_dir)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(value, indent=2, default=str), encoding="utf-8")
    except OSError as e:
        logger.warning("Could not write config blob %s: %s", path, e)
        return False
    return True


def load_plan_config(config_dir: Optional[Path] = None) -> PlanConfig:
    """Load scheduling configuration, falling back to the default fleet and task list."""
    raw_resources = load_json(CONFIG_KEYS["resources"], None, config_dir)
    raw_tasks = load_json(CONFIG_KEYS["tasks"], None, config_dir)
    raw_limits = load_json(CONFIG_KEYS["limits"], {}, config_dir)

    if isinstance(raw_resources, list):
        resources = [ResourceDefinition.from_dict(r) for r in raw_resources if isinstance(r, dict)]
    else:
        resources = default_resources()

    if isinstance(raw_tasks, list):
        tasks = [TaskDefinition.from_dict(t) for t in raw_tasks if isinstance(t, dict)]
    else:
        tasks = default_tasks()

    limit = config.default_indirect_limit_pct
    if isinstance(raw_limits, dict) and "indirect_limit_pct" in raw_limits:
        try:
            limit = float(raw_limits["indirect_limit_pct"])
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid indirect limit %r", raw_limits["indirect_limit_pct"])

    return PlanConfig(resources=resources, tasks=tasks, indirect_limit_pct=limit)


def save_plan_config(plan: PlanConfig, config_dir: Optional[Path] = None) -> bool:
    """Persist all three configuration blobs. Returns True only if every write succeeded."""
    results = [
        save_json(CONFIG_KEYS["resources"], [r.to_dict() for r in plan.resources], config_dir),
        save_json(CONFIG_KEYS["tasks"], [t.to_dict() for t in plan.tasks], config_dir),
        save_json(CONFIG_KEYS["limits"], {"indirect_limit_pct": plan.indirect_limit_pct}, config_dir),
    ]
    return all(results)
