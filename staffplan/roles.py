from __future__ import annotations

"""staffplan.roles

Role visibility over SPCRs and projects.

- project-manager sees one project, every stage.
- project-executive sees a fixed portfolio once intake has been routed to review.
- executive sees only what reached executive review.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from staffplan.config import DEFAULT_CONFIG, StaffingConfig
from staffplan.errors import ValidationError
from staffplan.model import SPCR, Project
from staffplan.workflow import (
    CLOSED,
    EXECUTIVE,
    EXECUTIVE_REVIEW,
    FINAL_APPROVED,
    FINAL_REJECTED,
    PE_APPROVED,
    PE_REJECTED,
    PE_REVIEW,
    PROJECT_EXECUTIVE,
    PROJECT_MANAGER,
    ROLES,
    SUBMITTED,
)

VIEW_FILTERS = ("all", "pending", "approved", "rejected", "closed")

_PE_STAGES: FrozenSet[str] = frozenset(
    {PE_REVIEW, PE_APPROVED, PE_REJECTED, EXECUTIVE_REVIEW, FINAL_APPROVED, FINAL_REJECTED}
)
_EXECUTIVE_STAGES: FrozenSet[str] = frozenset({EXECUTIVE_REVIEW, FINAL_APPROVED, FINAL_REJECTED})

_APPROVED_STAGES: FrozenSet[str] = frozenset({PE_APPROVED, FINAL_APPROVED})
_REJECTED_STAGES: FrozenSet[str] = frozenset({PE_REJECTED, FINAL_REJECTED})
_IN_PROGRESS_STAGES: FrozenSet[str] = frozenset({SUBMITTED, PE_REVIEW, EXECUTIVE_REVIEW})

# Stage each role is expected to act on next.
_ACTION_STAGE: Dict[str, str] = {
    PROJECT_EXECUTIVE: PE_REVIEW,
    EXECUTIVE: EXECUTIVE_REVIEW,
}


def _check_role(role: str) -> None:
    if role not in ROLES:
        raise ValidationError(f"unknown role: {role!r}")


def project_scope(role: str, config: StaffingConfig = DEFAULT_CONFIG) -> Optional[FrozenSet[int]]:
    """Project ids visible to `role`; None means every project."""
    _check_role(role)
    if role == PROJECT_MANAGER:
        return frozenset({config.pm_project_id})
    if role == PROJECT_EXECUTIVE:
        return frozenset(config.portfolio_project_ids)
    return None


def is_visible(spcr: SPCR, role: str, config: StaffingConfig = DEFAULT_CONFIG) -> bool:
    _check_role(role)
    if role == PROJECT_MANAGER:
        return spcr.project_id == config.pm_project_id
    if role == PROJECT_EXECUTIVE:
        return spcr.project_id in config.portfolio_project_ids and spcr.workflow_stage in _PE_STAGES
    return spcr.workflow_stage in _EXECUTIVE_STAGES


def spcrs_for_role(spcrs: Iterable[SPCR], role: str, config: StaffingConfig = DEFAULT_CONFIG) -> List[SPCR]:
    """Role-visible subset, in collection order, without duplicates."""
    _check_role(role)
    out: List[SPCR] = []
    seen = set()
    for s in spcrs:
        if s.id in seen:
            continue
        if is_visible(s, role, config):
            out.append(s)
            seen.add(s.id)
    return out


def projects_for_role(projects: Iterable[Project], role: str, config: StaffingConfig = DEFAULT_CONFIG) -> List[Project]:
    scope = project_scope(role, config)
    return [p for p in projects if scope is None or p.project_id in scope]


def is_pending_for(spcr: SPCR, role: str) -> bool:
    stage = _ACTION_STAGE.get(role)
    if stage is not None:
        return spcr.workflow_stage == stage
    return spcr.workflow_stage in _IN_PROGRESS_STAGES


def needs_action(spcr: SPCR, role: str) -> bool:
    return spcr.workflow_stage == _ACTION_STAGE.get(role)


def apply_view_filter(spcrs: Sequence[SPCR], view_filter: str, role: str) -> List[SPCR]:
    """Narrow an already role-scoped list; newest first.

    "all" hides closed requests; "pending" is relative to `role`.
    """
    _check_role(role)
    if view_filter == "pending":
        got = [s for s in spcrs if is_pending_for(s, role)]
    elif view_filter == "approved":
        got = [s for s in spcrs if s.workflow_stage in _APPROVED_STAGES]
    elif view_filter == "rejected":
        got = [s for s in spcrs if s.workflow_stage in _REJECTED_STAGES]
    elif view_filter == "closed":
        got = [s for s in spcrs if s.workflow_stage == CLOSED]
    elif view_filter == "all":
        got = [s for s in spcrs if s.workflow_stage != CLOSED]
    else:
        raise ValidationError(f"unknown view filter: {view_filter!r}")
    return sorted(got, key=lambda s: s.created_at, reverse=True)


@dataclass(frozen=True)
class InboxCounts:
    total: int
    pending: int
    approved: int
    rejected: int
    closed: int
    needs_action: int


def inbox_counts(spcrs: Sequence[SPCR], role: str) -> InboxCounts:
    _check_role(role)
    return InboxCounts(
        total=sum(1 for s in spcrs if s.workflow_stage != CLOSED),
        pending=sum(1 for s in spcrs if is_pending_for(s, role)),
        approved=sum(1 for s in spcrs if s.workflow_stage in _APPROVED_STAGES),
        rejected=sum(1 for s in spcrs if s.workflow_stage in _REJECTED_STAGES),
        closed=sum(1 for s in spcrs if s.workflow_stage == CLOSED),
        needs_action=sum(1 for s in spcrs if needs_action(s, role)),
    )


@dataclass(frozen=True)
class ProjectSPCRSummary:
    total: int
    pending: int
    approved: int
    rejected: int
    approval_rate: float
    top_position: Optional[str]
    top_position_count: int


def project_spcr_summary(spcrs: Sequence[SPCR]) -> ProjectSPCRSummary:
    """Counts for one project's requests; approval rate is over decided requests."""
    pending = sum(1 for s in spcrs if s.workflow_stage in _IN_PROGRESS_STAGES)
    approved = sum(1 for s in spcrs if s.workflow_stage in _APPROVED_STAGES)
    rejected = sum(1 for s in spcrs if s.workflow_stage in _REJECTED_STAGES)
    decided = approved + rejected
    rate = (approved / decided * 100.0) if decided else 0.0

    top: Optional[str] = None
    top_n = 0
    if spcrs:
        # most_common is stable for ties (first seen wins)
        top, top_n = Counter(s.position for s in spcrs).most_common(1)[0]

    return ProjectSPCRSummary(
        total=len(spcrs),
        pending=pending,
        approved=approved,
        rejected=rejected,
        approval_rate=rate,
        top_position=top,
        top_position_count=top_n,
    )


__all__ = [
    "InboxCounts",
    "ProjectSPCRSummary",
    "VIEW_FILTERS",
    "apply_view_filter",
    "inbox_counts",
    "is_pending_for",
    "is_visible",
    "needs_action",
    "project_scope",
    "project_spcr_summary",
    "projects_for_role",
    "spcrs_for_role",
]
