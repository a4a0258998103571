# staffplan/financials.py
"""Labor cost and margin rollups.

Labor cost is a fixed-assumption estimate (rate x weekly hours x duration),
not an actuals ledger.
"""

from __future__ import annotations

import datetime as dt
import math
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from staffplan.availability import project_staff_conflicts
from staffplan.config import DEFAULT_CONFIG, StaffingConfig
from staffplan.model import Project, StaffMember

DEFAULT_WEEKLY_HOURS = 40

# Hourly estimates used to price a change request before anyone is assigned.
ESTIMATED_RATES: Dict[str, float] = {
    "Project Executive": 85,
    "Senior Project Manager": 75,
    "Project Manager III": 70,
    "Project Manager II": 65,
    "Project Manager I": 60,
    "Assistant Project Manager": 50,
    "General Superintendent": 80,
    "Superintendent III": 75,
    "Superintendent II": 65,
    "Superintendent I": 55,
    "Assistant Superintendent": 45,
    "Field Engineer": 58,
    "Safety Manager": 62,
    "Quality Manager": 60,
    "Senior Estimator": 68,
    "Estimator II": 58,
    "Estimator I": 48,
    "VDC Manager": 72,
    "BIM Coordinator": 62,
    "Scheduler": 55,
    "Procurement Manager": 65,
    "Project Accountant": 52,
    "Project Administrator": 45,
}
DEFAULT_ESTIMATED_RATE = 55.0


class UtilizationProvider(Protocol):
    def utilization_rate(self, project: Project) -> Optional[float]:
        """Percent utilization for a project, or None when unknown."""


class MappingUtilizationProvider:
    """Utilization from an external feed keyed by project_id."""

    def __init__(self, rates: Mapping[int, float]) -> None:
        self._rates = dict(rates)

    def utilization_rate(self, project: Project) -> Optional[float]:
        v = self._rates.get(project.project_id)
        return float(v) if v is not None else None


class DemoUtilizationProvider:
    """Demo/test double: clamped random utilization in [65, 95].

    Seeded so repeated runs with the same seed agree.
    """

    LOW = 65.0
    HIGH = 95.0

    def __init__(self, seed: Optional[int] = 0) -> None:
        self._rng = random.Random(seed)
        self._cache: Dict[int, float] = {}

    def utilization_rate(self, project: Project) -> Optional[float]:
        if project.project_id not in self._cache:
            raw = 80.0 + self._rng.random() * 20.0
            self._cache[project.project_id] = min(self.HIGH, max(self.LOW, raw))
        return self._cache[project.project_id]


def calculate_labor_cost(
    staff: Iterable[StaffMember],
    staff_ids: Iterable[str],
    weekly_hours: float = DEFAULT_WEEKLY_HOURS,
) -> float:
    """Weekly labor cost of the listed staff; unknown ids contribute nothing."""
    wanted = set(staff_ids)
    return sum(s.labor_rate * weekly_hours for s in staff if s.id in wanted)


def risk_level(margin_percent: float, config: StaffingConfig = DEFAULT_CONFIG) -> str:
    if margin_percent < config.high_risk_margin:
        return "high"
    if margin_percent < config.medium_risk_margin:
        return "medium"
    return "low"


def _margin_percent(contract_value: float, gross_margin: float) -> float:
    if not contract_value:
        return 0.0
    return gross_margin / contract_value * 100.0


@dataclass(frozen=True)
class ProjectFinancials:
    project_id: int
    project_name: str
    contract_value: float
    labor_cost: float
    gross_margin: float
    margin_percent: float
    staff_count: int
    utilization_rate: Optional[float]
    risk_level: str


def project_financials(
    project: Project,
    project_staff: Sequence[StaffMember],
    *,
    config: StaffingConfig = DEFAULT_CONFIG,
    utilization: Optional[UtilizationProvider] = None,
) -> ProjectFinancials:
    weekly = calculate_labor_cost(project_staff, [s.id for s in project_staff], config.weekly_hours)
    labor_cost = weekly * config.duration_weeks
    gross_margin = project.contract_value - labor_cost
    margin = _margin_percent(project.contract_value, gross_margin)
    return ProjectFinancials(
        project_id=project.project_id,
        project_name=project.name,
        contract_value=project.contract_value,
        labor_cost=labor_cost,
        gross_margin=gross_margin,
        margin_percent=margin,
        staff_count=len(project_staff),
        utilization_rate=utilization.utilization_rate(project) if utilization is not None else None,
        risk_level=risk_level(margin, config),
    )


@dataclass(frozen=True)
class PortfolioFinancials:
    project_count: int
    total_contract_value: float
    total_labor_cost: float
    total_gross_margin: float
    margin_percent: float
    total_staff_count: int
    average_utilization: Optional[float]
    high_risk_count: int
    projects: Tuple[ProjectFinancials, ...]


def portfolio_financials(items: Sequence[ProjectFinancials]) -> PortfolioFinancials:
    """Aggregate per-project rollups.

    Margin percent is derived once from the summed contract value and labor
    cost, never averaged across projects.
    """
    total_cv = sum(p.contract_value for p in items)
    total_labor = sum(p.labor_cost for p in items)
    gross = total_cv - total_labor
    util = [p.utilization_rate for p in items if p.utilization_rate is not None]
    return PortfolioFinancials(
        project_count=len(items),
        total_contract_value=total_cv,
        total_labor_cost=total_labor,
        total_gross_margin=gross,
        margin_percent=_margin_percent(total_cv, gross),
        total_staff_count=sum(p.staff_count for p in items),
        average_utilization=(sum(util) / len(util)) if util else None,
        high_risk_count=sum(1 for p in items if p.risk_level == "high"),
        projects=tuple(items),
    )


@dataclass(frozen=True)
class SPCRImpact:
    duration_days: int
    duration_weeks: int
    estimated_rate: float
    total_cost: float
    conflicts: int
    conflict_names: Tuple[str, ...]


def estimated_rate_for(position: str) -> float:
    return float(ESTIMATED_RATES.get(position, DEFAULT_ESTIMATED_RATE))


def estimate_spcr_impact(
    position: str,
    start: dt.date,
    end: dt.date,
    project_staff: Iterable[StaffMember] = (),
    *,
    weekly_hours: float = DEFAULT_WEEKLY_HOURS,
) -> SPCRImpact:
    """Price a requested position over [start, end] and flag overlapping staff."""
    days = max(0, (end - start).days)
    weeks = int(math.ceil(days / 7))
    rate = estimated_rate_for(position)
    conflicts: List[StaffMember] = project_staff_conflicts(project_staff, position, start, end)
    return SPCRImpact(
        duration_days=days,
        duration_weeks=weeks,
        estimated_rate=rate,
        total_cost=rate * weekly_hours * weeks,
        conflicts=len(conflicts),
        conflict_names=tuple(s.name for s in conflicts),
    )


__all__ = [
    "DEFAULT_ESTIMATED_RATE",
    "DemoUtilizationProvider",
    "ESTIMATED_RATES",
    "MappingUtilizationProvider",
    "PortfolioFinancials",
    "ProjectFinancials",
    "SPCRImpact",
    "UtilizationProvider",
    "calculate_labor_cost",
    "estimate_spcr_impact",
    "estimated_rate_for",
    "portfolio_financials",
    "project_financials",
    "risk_level",
]
