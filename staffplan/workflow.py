# staffplan/workflow.py
"""SPCR approval state machine.

Pure functions over stage names; committing a transition to a stored
request is the store's job. Roles are checked here, but nothing upstream
authenticates the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Tuple

from staffplan.errors import PermissionDeniedError, ValidationError

SUBMITTED = "submitted"
PE_REVIEW = "pe-review"
PE_APPROVED = "pe-approved"
PE_REJECTED = "pe-rejected"
EXECUTIVE_REVIEW = "executive-review"
FINAL_APPROVED = "final-approved"
FINAL_REJECTED = "final-rejected"
CLOSED = "closed"
WITHDRAWN = "withdrawn"

STAGES: Tuple[str, ...] = (
    SUBMITTED,
    PE_REVIEW,
    PE_APPROVED,
    PE_REJECTED,
    EXECUTIVE_REVIEW,
    FINAL_APPROVED,
    FINAL_REJECTED,
    CLOSED,
    WITHDRAWN,
)
TERMINAL_STAGES: FrozenSet[str] = frozenset({PE_REJECTED, FINAL_REJECTED, WITHDRAWN, CLOSED})

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
STATUSES: Tuple[str, ...] = (PENDING, APPROVED, REJECTED)

IMPLEMENTED = "implemented"
CLOSURES: Tuple[str, ...] = (IMPLEMENTED, REJECTED)

PROJECT_MANAGER = "project-manager"
PROJECT_EXECUTIVE = "project-executive"
EXECUTIVE = "executive"
ROLES: Tuple[str, ...] = (PROJECT_MANAGER, PROJECT_EXECUTIVE, EXECUTIVE)

SPCR_TYPES: Tuple[str, ...] = ("increase", "decrease")
COMMENT_ACTIONS: Tuple[str, ...] = ("approve", "reject", "forward")

_STAGE_STATUS: Dict[str, str] = {
    SUBMITTED: PENDING,
    PE_REVIEW: PENDING,
    PE_APPROVED: PENDING,
    EXECUTIVE_REVIEW: PENDING,
    FINAL_APPROVED: APPROVED,
    PE_REJECTED: REJECTED,
    FINAL_REJECTED: REJECTED,
    WITHDRAWN: REJECTED,
}


@dataclass(frozen=True)
class Transition:
    action: str
    source: str
    target: str
    roles: FrozenSet[str]
    comment_action: Optional[str] = None
    closure: Optional[str] = None


def _t(action: str, source: str, target: str, roles, tag: Optional[str], closure: Optional[str] = None) -> Transition:
    return Transition(action=action, source=source, target=target, roles=frozenset(roles), comment_action=tag, closure=closure)


_TRANSITIONS: Tuple[Transition, ...] = (
    _t("route", SUBMITTED, PE_REVIEW, (PROJECT_MANAGER, PROJECT_EXECUTIVE), "forward"),
    _t("approve", PE_REVIEW, PE_APPROVED, (PROJECT_EXECUTIVE,), "approve"),
    _t("reject", PE_REVIEW, PE_REJECTED, (PROJECT_EXECUTIVE,), "reject"),
    _t("forward", PE_APPROVED, EXECUTIVE_REVIEW, (PROJECT_EXECUTIVE,), "forward"),
    _t("approve", EXECUTIVE_REVIEW, FINAL_APPROVED, (EXECUTIVE,), "approve"),
    _t("reject", EXECUTIVE_REVIEW, FINAL_REJECTED, (EXECUTIVE,), "reject"),
    _t("implement", PE_APPROVED, CLOSED, (EXECUTIVE,), "forward", IMPLEMENTED),
    _t("implement", FINAL_APPROVED, CLOSED, (EXECUTIVE,), "forward", IMPLEMENTED),
    _t("close-reject", PE_APPROVED, CLOSED, (EXECUTIVE,), "forward", REJECTED),
    _t("close-reject", FINAL_APPROVED, CLOSED, (EXECUTIVE,), "forward", REJECTED),
) + tuple(
    _t("withdraw", s, WITHDRAWN, (PROJECT_MANAGER,), None)
    for s in STAGES
    if s not in TERMINAL_STAGES
)

_BY_KEY: Dict[Tuple[str, str], Transition] = {(t.source, t.action): t for t in _TRANSITIONS}

ACTIONS: Tuple[str, ...] = tuple(dict.fromkeys(t.action for t in _TRANSITIONS))


def transitions() -> Tuple[Transition, ...]:
    return _TRANSITIONS


def derive_status(stage: str, closure: Optional[str] = None) -> str:
    """Legacy status label for a stage; closed requests need their closure."""
    if stage == CLOSED:
        return APPROVED if closure == IMPLEMENTED else REJECTED
    return _STAGE_STATUS.get(stage, PENDING)


def stage_from_status(status: Optional[str]) -> str:
    """Best-effort stage for records that only carry a status label."""
    if status == APPROVED:
        return FINAL_APPROVED
    if status == REJECTED:
        return FINAL_REJECTED
    return SUBMITTED


def closure_from_status(status: Optional[str]) -> str:
    return IMPLEMENTED if status == APPROVED else REJECTED


def is_terminal(stage: str) -> bool:
    return stage in TERMINAL_STAGES


def successors(stage: str) -> List[str]:
    out: List[str] = []
    for t in _TRANSITIONS:
        if t.source == stage and t.target not in out:
            out.append(t.target)
    return out


def is_edge(source: str, target: str) -> bool:
    return target in successors(source)


def available_actions(stage: str, role: Optional[str] = None) -> List[str]:
    """Actions legal from `stage`, limited to those `role` may take when given."""
    out: List[str] = []
    for t in _TRANSITIONS:
        if t.source != stage:
            continue
        if role is not None and role not in t.roles:
            continue
        if t.action not in out:
            out.append(t.action)
    return out


def plan_transition(stage: str, action: str, role: Optional[str]) -> Transition:
    """Resolve (stage, action, role) to a Transition or raise.

    ValidationError: unknown action/role, or action not legal from `stage`.
    PermissionDeniedError: legal action, but `role` is not entitled to it.
    """
    if action not in ACTIONS:
        raise ValidationError(f"unknown action: {action!r}")
    if role not in ROLES:
        raise ValidationError(f"unknown role: {role!r}")
    t = _BY_KEY.get((stage, action))
    if t is None:
        raise ValidationError(f"action {action!r} is not allowed from stage {stage!r}")
    if role not in t.roles:
        raise PermissionDeniedError(f"role {role!r} may not {action} an SPCR in stage {stage!r}")
    return t


def resolve_stage_change(
    current: str,
    target: str,
    *,
    status: Optional[str] = None,
    closure: Optional[str] = None,
    current_closure: Optional[str] = None,
) -> Optional[str]:
    """Validate a direct stage patch and return the closure to store.

    `status` (legacy label) must agree with the derived status of `target`;
    for `closed` it selects the closure when `closure` is not given.
    Re-stating the current stage is allowed but cannot change the outcome.
    """
    if target not in STAGES:
        raise ValidationError(f"unknown workflowStage: {target!r}")
    if status is not None and status not in STATUSES:
        raise ValidationError(f"unknown status: {status!r}")
    if closure is not None and closure not in CLOSURES:
        raise ValidationError(f"unknown closure: {closure!r}")
    if target == current:
        if closure is not None and closure != current_closure:
            raise ValidationError("closure can only be set when the SPCR is closed")
        expected = derive_status(current, current_closure)
        if status is not None and status != expected:
            raise ValidationError(f"status {status!r} disagrees with workflowStage {current!r} (expected {expected!r})")
        return current_closure
    if not is_edge(current, target):
        raise ValidationError(f"illegal workflow transition: {current} -> {target}")

    if target != CLOSED:
        if closure is not None:
            raise ValidationError("closure is only valid for closed SPCRs")
        if status is not None and status != derive_status(target):
            raise ValidationError(
                f"status {status!r} disagrees with workflowStage {target!r} (expected {derive_status(target)!r})"
            )
        return None

    if closure is None:
        closure = closure_from_status(status) if status is not None else IMPLEMENTED
    if status is not None and status != derive_status(CLOSED, closure):
        raise ValidationError(f"status {status!r} disagrees with closure {closure!r}")
    return closure


__all__ = [
    "ACTIONS",
    "CLOSED",
    "COMMENT_ACTIONS",
    "EXECUTIVE",
    "EXECUTIVE_REVIEW",
    "FINAL_APPROVED",
    "FINAL_REJECTED",
    "PE_APPROVED",
    "PE_REJECTED",
    "PE_REVIEW",
    "PROJECT_EXECUTIVE",
    "PROJECT_MANAGER",
    "ROLES",
    "SPCR_TYPES",
    "STAGES",
    "STATUSES",
    "SUBMITTED",
    "TERMINAL_STAGES",
    "Transition",
    "WITHDRAWN",
    "available_actions",
    "closure_from_status",
    "derive_status",
    "is_edge",
    "is_terminal",
    "plan_transition",
    "resolve_stage_change",
    "stage_from_status",
    "successors",
    "transitions",
]
