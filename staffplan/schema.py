# staffplan/schema.py
from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

from staffplan.util.dates import iso_z, utc_now
from staffplan.workflow import CLOSED, STAGES, closure_from_status, derive_status, stage_from_status

SCHEMA_NAME = "staffplan.snapshot"
LATEST_SCHEMA_VERSION = 2

DEFAULT_FILTERS: Dict[str, str] = {"search": "", "position": "all", "project": "all"}
DEFAULT_VIEW_MODE = "month"
DEFAULT_VIEW_FILTER = "all"

# v1 (legacy store) key -> v2 key
_LEGACY_KEYS = {
    "ganttFilters": "filters",
    "ganttViewMode": "viewMode",
    "spcrViewFilter": "viewFilter",
}


def _list(v: Any) -> List[Any]:
    return list(v) if isinstance(v, list) else []


# --- Schema appliers ----------------------------------------------------------

def apply_schema_v1(snapshot: Any) -> Dict[str, Any]:
    """Normalize a legacy (unversioned) store snapshot to schema v1.

    v1 is the original store shape: staffMembers/projects/spcrs plus
    ganttFilters/ganttViewMode/spcrViewFilter. SPCRs may carry only a
    status label; a workflowStage is derived from it.
    """
    if not isinstance(snapshot, dict):
        raise TypeError(f"snapshot must be dict; got {type(snapshot).__name__}")

    out = copy.deepcopy(snapshot)
    out["schema_version"] = 1
    out["staffMembers"] = _list(out.get("staffMembers"))
    out["projects"] = _list(out.get("projects"))

    spcrs: List[Any] = []
    for s in _list(out.get("spcrs")):
        if isinstance(s, dict):
            s = dict(s)
            stage = s.get("workflowStage")
            if not isinstance(stage, str) or not stage.strip():
                s["workflowStage"] = stage_from_status(s.get("status"))
            if not isinstance(s.get("comments"), list):
                s["comments"] = []
        spcrs.append(s)
    out["spcrs"] = spcrs
    return out


def apply_schema_v2(snapshot: Dict[str, Any], *, generated_at: Optional[str] = None) -> Dict[str, Any]:
    """Upgrade a v1 snapshot to schema v2 (idempotent).

    v2:
      - schema_version = 2, meta.schema = {name: 'staffplan.snapshot', version: 2}
      - legacy view keys renamed (filters/viewMode/viewFilter)
      - closed SPCRs carry `closure`; `status` is recomputed from the stage
    """
    if not isinstance(snapshot, dict):
        raise TypeError(f"snapshot must be dict; got {type(snapshot).__name__}")

    out = dict(snapshot)
    for old, new in _LEGACY_KEYS.items():
        if old in out:
            val = out.pop(old)
            out.setdefault(new, val)

    filters = dict(DEFAULT_FILTERS)
    if isinstance(out.get("filters"), dict):
        filters.update({k: v for k, v in out["filters"].items() if isinstance(v, str)})
    out["filters"] = filters
    if not isinstance(out.get("viewMode"), str) or not out["viewMode"]:
        out["viewMode"] = DEFAULT_VIEW_MODE
    if not isinstance(out.get("viewFilter"), str) or not out["viewFilter"]:
        out["viewFilter"] = DEFAULT_VIEW_FILTER
    if not isinstance(out.get("spcrDraft"), dict):
        out["spcrDraft"] = None

    spcrs: List[Any] = []
    for s in _list(out.get("spcrs")):
        if isinstance(s, dict):
            s = dict(s)
            stage = s.get("workflowStage")
            if stage == CLOSED:
                closure = s.get("closure")
                if closure not in ("implemented", "rejected"):
                    closure = closure_from_status(s.get("status"))
                s["closure"] = closure
                s["status"] = derive_status(CLOSED, closure)
            elif stage in STAGES:
                s.pop("closure", None)
                s["status"] = derive_status(stage)
        spcrs.append(s)
    out["spcrs"] = spcrs

    out["schema_version"] = 2
    meta = dict(out["meta"]) if isinstance(out.get("meta"), dict) else {}
    meta["schema"] = {"name": SCHEMA_NAME, "version": 2}
    ga = meta.get("generated_at")
    if not isinstance(ga, str) or not ga.strip():
        meta["generated_at"] = generated_at or iso_z(utc_now())
    out["meta"] = meta
    return out


# --- Upgrader ----------------------------------------------------------------

def _coerce_version(v: Any) -> int:
    return int(v) if isinstance(v, int) and not isinstance(v, bool) else 0


def declared_version(snapshot: Dict[str, Any]) -> int:
    return _coerce_version(snapshot.get("schema_version"))


def is_supported_version(v: Any) -> bool:
    """True for a missing tag (legacy dump) or an int tag from 1 to LATEST_SCHEMA_VERSION."""
    if v is None:
        return True
    return isinstance(v, int) and not isinstance(v, bool) and 1 <= v <= LATEST_SCHEMA_VERSION


def upgrade_snapshot(snapshot: Any, target_version: Optional[int] = None) -> Dict[str, Any]:
    """Upgrade snapshot to target_version (default: latest). Never downgrades.

    Inputs without schema_version are treated as legacy v1 store dumps.
    Raises ValueError for versions newer than LATEST_SCHEMA_VERSION.
    """
    if not isinstance(snapshot, dict):
        raise TypeError(f"snapshot must be dict; got {type(snapshot).__name__}")

    req = LATEST_SCHEMA_VERSION if target_version is None else int(target_version)
    if req < 1:
        req = 1

    cur = declared_version(snapshot)
    if cur > LATEST_SCHEMA_VERSION:
        raise ValueError(f"Unsupported input schema_version: {cur} (latest={LATEST_SCHEMA_VERSION})")
    if req > LATEST_SCHEMA_VERSION:
        raise ValueError(f"Unsupported schema_version: {req} (latest={LATEST_SCHEMA_VERSION})")

    target = max(cur, req)

    if target == 1:
        return apply_schema_v1(snapshot)

    if cur == 2:
        # Re-apply to repair missing defaults; apply_schema_v2 is idempotent.
        return apply_schema_v2(copy.deepcopy(snapshot))
    return apply_schema_v2(apply_schema_v1(snapshot))


if __name__ == "__main__":
    raise SystemExit("staffplan.schema is a library module")
