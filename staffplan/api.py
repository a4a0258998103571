"""staffplan.api

Stable *library* entrypoint for staffplan.

Policy:
  - Only names listed in __all__ are considered public API.
  - Everything else is internal and may change without notice.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from staffplan.availability import NeedingAssignment, available_staff, is_available, needing_assignment
from staffplan.config import DEFAULT_CONFIG, StaffingConfig, config_from_env, load_config
from staffplan.errors import NotFoundError, OpResult, PermissionDeniedError, StaffingError, ValidationError
from staffplan.financials import (
    DemoUtilizationProvider,
    MappingUtilizationProvider,
    PortfolioFinancials,
    ProjectFinancials,
    SPCRImpact,
    UtilizationProvider,
    estimate_spcr_impact,
    portfolio_financials,
    project_financials,
)
from staffplan.model import SPCR, Assignment, Comment, Project, StaffMember
from staffplan.persistence import JsonFileSnapshotStore, MemorySnapshotStore, SnapshotStore
from staffplan.roles import apply_view_filter, inbox_counts, spcrs_for_role
from staffplan.schema import LATEST_SCHEMA_VERSION, upgrade_snapshot
from staffplan.store import StaffingStore, StoreState
from staffplan.timeline import TimelineLayout
from staffplan.validate import SnapshotValidationError, assert_valid_snapshot, validate_snapshot
from staffplan.workflow import available_actions, derive_status, plan_transition

JsonPath = Union[str, Path]
Snapshot = Dict[str, Any]


def load_snapshot_from_json(
    path: JsonPath,
    *,
    upgrade: bool = True,
    validate: bool = True,
    target_version: Optional[int] = None,
) -> Snapshot:
    """Load a snapshot from a JSON file.

    Defaults:
      - upgrade=True upgrades to the latest schema (LATEST_SCHEMA_VERSION).
      - validate=True validates the (possibly upgraded) snapshot.

    Never downgrades: an input newer than target_version keeps its version.
    """
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8", errors="replace"))
    if not isinstance(raw, dict):
        raise ValueError(f"JSON snapshot must be an object/dict; got {type(raw).__name__}")

    snap = upgrade_snapshot(raw, target_version=target_version) if upgrade else raw
    if validate:
        assert_valid_snapshot(snap)
    return snap


def normalize_snapshot(
    snapshot: Snapshot,
    *,
    validate: bool = True,
    target_version: Optional[int] = None,
) -> Snapshot:
    """Normalize an in-memory snapshot to the latest schema by default."""
    if not isinstance(snapshot, dict):
        raise TypeError(f"snapshot must be a dict/object; got {type(snapshot).__name__}")
    out = upgrade_snapshot(snapshot, target_version=target_version)
    if validate:
        assert_valid_snapshot(out)
    return out


def load_store(path: JsonPath, **kwargs: Any) -> StaffingStore:
    """Build a StaffingStore from a snapshot JSON file (any supported schema)."""
    return StaffingStore.from_snapshot(load_snapshot_from_json(path), **kwargs)


# --- Public API exports -------------------------------------------------------
_PUBLIC_EXPORTS = (
    "Assignment",
    "Comment",
    "DEFAULT_CONFIG",
    "DemoUtilizationProvider",
    "JsonFileSnapshotStore",
    "LATEST_SCHEMA_VERSION",
    "MappingUtilizationProvider",
    "MemorySnapshotStore",
    "NeedingAssignment",
    "NotFoundError",
    "OpResult",
    "PermissionDeniedError",
    "PortfolioFinancials",
    "Project",
    "ProjectFinancials",
    "SPCR",
    "SPCRImpact",
    "SnapshotStore",
    "SnapshotValidationError",
    "StaffMember",
    "StaffingConfig",
    "StaffingError",
    "StaffingStore",
    "StoreState",
    "TimelineLayout",
    "UtilizationProvider",
    "ValidationError",
    "apply_view_filter",
    "assert_valid_snapshot",
    "available_actions",
    "available_staff",
    "config_from_env",
    "derive_status",
    "estimate_spcr_impact",
    "inbox_counts",
    "is_available",
    "load_config",
    "load_snapshot_from_json",
    "load_store",
    "needing_assignment",
    "normalize_snapshot",
    "plan_transition",
    "portfolio_financials",
    "project_financials",
    "spcrs_for_role",
    "upgrade_snapshot",
    "validate_snapshot",
)

__all__ = [n for n in _PUBLIC_EXPORTS if n in globals()]
# --- /Public API exports ------------------------------------------------------
