from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from staffplan.util.console import warn

DEFAULT_PM_PROJECT_ID = 2525840
DEFAULT_PORTFOLIO_PROJECT_IDS: Tuple[int, ...] = (2525840, 2525841, 2525842, 2525843, 2525844, 2525845)


@dataclass(frozen=True)
class StaffingConfig:
    """Role scope and the fixed assumptions behind rollups and availability.

    weekly_hours / duration_weeks are placeholders for a real
    time-and-attendance feed.
    """

    pm_project_id: int = DEFAULT_PM_PROJECT_ID
    portfolio_project_ids: Tuple[int, ...] = DEFAULT_PORTFOLIO_PROJECT_IDS
    weekly_hours: float = 40
    duration_weeks: float = 52
    availability_grace_days: int = 30
    high_risk_margin: float = 10
    medium_risk_margin: float = 20
    needing_assignment_horizon_days: int = 90


DEFAULT_CONFIG = StaffingConfig()


def _as_int(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, str):
        s = v.strip()
        if s.lstrip("-").isdigit():
            return int(s)
    return None


def _as_number(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    return None


def _as_id_tuple(v: Any) -> Optional[Tuple[int, ...]]:
    if isinstance(v, str):
        v = [x for x in v.split(",") if x.strip()]
    if not isinstance(v, (list, tuple)):
        return None
    out = []
    for x in v:
        i = _as_int(x)
        if i is not None and i not in out:
            out.append(i)
    return tuple(out)


def config_from_mapping(raw: Mapping[str, Any], *, base: StaffingConfig = DEFAULT_CONFIG) -> StaffingConfig:
    """Overlay recognised keys from `raw` on `base`; unknown or mistyped keys are ignored."""
    changes: Dict[str, Any] = {}

    pm = _as_int(raw.get("pm_project_id"))
    if pm is not None:
        changes["pm_project_id"] = pm

    portfolio = _as_id_tuple(raw.get("portfolio_project_ids"))
    if portfolio is not None:
        changes["portfolio_project_ids"] = portfolio

    for key in ("weekly_hours", "duration_weeks", "high_risk_margin", "medium_risk_margin"):
        n = _as_number(raw.get(key))
        if n is not None and n >= 0:
            changes[key] = n

    for key in ("availability_grace_days", "needing_assignment_horizon_days"):
        i = _as_int(raw.get(key))
        if i is not None and i >= 0:
            changes[key] = i

    return dataclasses.replace(base, **changes)


def load_config(path: Optional[str], *, base: StaffingConfig = DEFAULT_CONFIG) -> StaffingConfig:
    """Load config JSON.

    Accepted formats:
      - { "staffing": { ... } }
      - { ... }

    A missing or unreadable file yields `base` unchanged.
    """
    if not path:
        return base
    try:
        if not os.path.exists(path):
            return base
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as e:
        warn(f"ignoring unreadable config {path} ({type(e).__name__}: {e})")
        return base

    if isinstance(raw, dict) and isinstance(raw.get("staffing"), dict):
        raw = raw["staffing"]
    if not isinstance(raw, dict):
        return base
    return config_from_mapping(raw, base=base)


def config_from_env(base: StaffingConfig = DEFAULT_CONFIG, environ: Optional[Mapping[str, str]] = None) -> StaffingConfig:
    """Apply STAFFPLAN_PM_PROJECT / STAFFPLAN_PORTFOLIO overrides."""
    env = os.environ if environ is None else environ
    raw: Dict[str, Any] = {}
    if env.get("STAFFPLAN_PM_PROJECT"):
        raw["pm_project_id"] = env["STAFFPLAN_PM_PROJECT"]
    if env.get("STAFFPLAN_PORTFOLIO"):
        raw["portfolio_project_ids"] = env["STAFFPLAN_PORTFOLIO"]
    if not raw:
        return base
    return config_from_mapping(raw, base=base)


__all__ = [
    "DEFAULT_CONFIG",
    "StaffingConfig",
    "config_from_env",
    "config_from_mapping",
    "load_config",
]
