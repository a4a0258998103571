# staffplan/model.py
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from staffplan.util.dates import format_date, parse_date, parse_opt_date
from staffplan.workflow import (
    CLOSED,
    COMMENT_ACTIONS,
    SPCR_TYPES,
    STAGES,
    closure_from_status,
    derive_status,
    stage_from_status,
)

# JSON-facing types (wire format keeps the original field names)
JsonDict = Dict[str, Any]


def _as_str(v: Any, default: str = "") -> str:
    if v is None:
        return default
    return v if isinstance(v, str) else str(v)


def _as_opt_str(v: Any) -> Optional[str]:
    s = _as_str(v).strip()
    return s or None


def _as_float(v: Any, default: float = 0.0) -> float:
    if v is None or isinstance(v, bool):
        return default
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str) and v.strip():
        try:
            return float(v)
        except ValueError:
            return default
    return default


def _as_project_id(v: Any) -> int:
    if isinstance(v, bool):
        raise ValueError(f"Invalid project_id: {v!r}")
    if isinstance(v, int):
        return v
    if isinstance(v, str) and v.strip().isdigit():
        return int(v.strip())
    raise ValueError(f"Invalid project_id: {v!r}")


def _str_tuple(v: Any) -> Tuple[str, ...]:
    if not isinstance(v, (list, tuple)):
        return ()
    return tuple(str(x) for x in v if str(x).strip())


@dataclass(frozen=True)
class Assignment:
    project_id: int
    role: str
    start_date: dt.date
    end_date: dt.date

    def __post_init__(self) -> None:
        if self.start_date > self.end_date:
            raise ValueError(
                f"assignment startDate {self.start_date.isoformat()} is after endDate {self.end_date.isoformat()}"
            )

    def covers(self, day: dt.date) -> bool:
        return self.start_date <= day <= self.end_date

    def overlaps(self, start: dt.date, end: dt.date) -> bool:
        return start <= self.end_date and end >= self.start_date

    @classmethod
    def from_dict(cls, raw: JsonDict) -> "Assignment":
        return cls(
            project_id=_as_project_id(raw.get("project_id")),
            role=_as_str(raw.get("role")),
            start_date=parse_date(raw.get("startDate")),
            end_date=parse_date(raw.get("endDate")),
        )

    def to_dict(self) -> JsonDict:
        return {
            "project_id": self.project_id,
            "role": self.role,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
        }


@dataclass(frozen=True)
class StaffMember:
    id: str
    name: str
    position: str
    labor_rate: float = 0.0
    billable_rate: float = 0.0
    experience: float = 0.0
    strengths: Tuple[str, ...] = ()
    weaknesses: Tuple[str, ...] = ()
    behavioral_profile: Optional[str] = None
    assignments: Tuple[Assignment, ...] = ()

    def is_on_project(self, project_id: int) -> bool:
        return any(a.project_id == project_id for a in self.assignments)

    @classmethod
    def from_dict(cls, raw: JsonDict) -> "StaffMember":
        sid = _as_str(raw.get("id")).strip()
        if not sid:
            raise ValueError("staff member id must be non-empty")
        assignments = raw.get("assignments") or []
        if not isinstance(assignments, list):
            raise ValueError(f"staff member {sid}: assignments must be a list")
        return cls(
            id=sid,
            name=_as_str(raw.get("name")),
            position=_as_str(raw.get("position")),
            labor_rate=_as_float(raw.get("laborRate")),
            billable_rate=_as_float(raw.get("billableRate")),
            experience=_as_float(raw.get("experience")),
            strengths=_str_tuple(raw.get("strengths")),
            weaknesses=_str_tuple(raw.get("weaknesses")),
            behavioral_profile=_as_opt_str(raw.get("behavioralProfile")),
            assignments=tuple(Assignment.from_dict(a) for a in assignments if isinstance(a, dict)),
        )

    def to_dict(self) -> JsonDict:
        out: JsonDict = {
            "id": self.id,
            "name": self.name,
            "position": self.position,
            "laborRate": self.labor_rate,
            "billableRate": self.billable_rate,
            "experience": self.experience,
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "assignments": [a.to_dict() for a in self.assignments],
        }
        if self.behavioral_profile is not None:
            out["behavioralProfile"] = self.behavioral_profile
        return out


@dataclass(frozen=True)
class Project:
    project_id: int
    name: str
    stage: str = ""
    contract_value: float = 0.0
    project_number: str = ""
    active: bool = True

    @classmethod
    def from_dict(cls, raw: JsonDict) -> "Project":
        active = raw.get("active")
        return cls(
            project_id=_as_project_id(raw.get("project_id")),
            name=_as_str(raw.get("name")),
            stage=_as_str(raw.get("stage")),
            contract_value=_as_float(raw.get("contract_value")),
            project_number=_as_str(raw.get("project_number")),
            active=True if active is None else bool(active),
        )

    def to_dict(self) -> JsonDict:
        return {
            "project_id": self.project_id,
            "name": self.name,
            "stage": self.stage,
            "contract_value": self.contract_value,
            "project_number": self.project_number,
            "active": self.active,
        }


@dataclass(frozen=True)
class Comment:
    id: str
    author: str
    content: str
    timestamp: str
    action: Optional[str] = None  # "approve" | "reject" | "forward"

    @classmethod
    def from_dict(cls, raw: JsonDict) -> "Comment":
        action = _as_opt_str(raw.get("action"))
        if action is not None and action not in COMMENT_ACTIONS:
            raise ValueError(f"Invalid comment action: {action!r}")
        return cls(
            id=_as_str(raw.get("id")),
            author=_as_str(raw.get("author")),
            content=_as_str(raw.get("content")),
            timestamp=_as_str(raw.get("timestamp")),
            action=action,
        )

    def to_dict(self) -> JsonDict:
        out: JsonDict = {
            "id": self.id,
            "author": self.author,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.action is not None:
            out["action"] = self.action
        return out


@dataclass(frozen=True)
class SPCR:
    """Staffing Plan Change Request.

    `workflow_stage` is the single source of truth; `status` is derived.
    `closure` is only meaningful once the request is closed.
    """

    id: str
    project_id: int
    type: str
    position: str
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    schedule_activity: str = ""
    schedule_ref: str = ""
    budget: float = 0.0
    explanation: str = ""
    workflow_stage: str = "submitted"
    closure: Optional[str] = None
    created_by: str = ""
    created_at: str = ""
    updated_at: str = ""
    comments: Tuple[Comment, ...] = field(default_factory=tuple)

    @property
    def status(self) -> str:
        return derive_status(self.workflow_stage, self.closure)

    @classmethod
    def from_dict(cls, raw: JsonDict) -> "SPCR":
        rid = _as_str(raw.get("id")).strip()
        if not rid:
            raise ValueError("SPCR id must be non-empty")

        status = _as_opt_str(raw.get("status"))
        stage = _as_opt_str(raw.get("workflowStage"))
        if stage is None:
            stage = stage_from_status(status)
        if stage not in STAGES:
            raise ValueError(f"SPCR {rid}: unknown workflowStage {stage!r}")

        closure = _as_opt_str(raw.get("closure"))
        if stage == CLOSED and closure is None:
            closure = closure_from_status(status)
        if stage != CLOSED:
            closure = None

        spcr_type = _as_str(raw.get("type")).strip()
        if spcr_type not in SPCR_TYPES:
            raise ValueError(f"SPCR {rid}: type must be one of {', '.join(SPCR_TYPES)}")

        comments = raw.get("comments") or []
        return cls(
            id=rid,
            project_id=_as_project_id(raw.get("project_id")),
            type=spcr_type,
            position=_as_str(raw.get("position")),
            start_date=parse_opt_date(raw.get("startDate")),
            end_date=parse_opt_date(raw.get("endDate")),
            schedule_activity=_as_str(raw.get("schedule_activity")),
            schedule_ref=_as_str(raw.get("scheduleRef")),
            budget=_as_float(raw.get("budget")),
            explanation=_as_str(raw.get("explanation")),
            workflow_stage=stage,
            closure=closure,
            created_by=_as_str(raw.get("createdBy")),
            created_at=_as_str(raw.get("createdAt")),
            updated_at=_as_str(raw.get("updatedAt")),
            comments=tuple(Comment.from_dict(c) for c in comments if isinstance(c, dict)),
        )

    def to_dict(self) -> JsonDict:
        out: JsonDict = {
            "id": self.id,
            "project_id": self.project_id,
            "type": self.type,
            "position": self.position,
            "startDate": format_date(self.start_date),
            "endDate": format_date(self.end_date),
            "schedule_activity": self.schedule_activity,
            "scheduleRef": self.schedule_ref,
            "budget": self.budget,
            "explanation": self.explanation,
            "status": self.status,
            "workflowStage": self.workflow_stage,
            "createdBy": self.created_by,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "comments": [c.to_dict() for c in self.comments],
        }
        if self.closure is not None:
            out["closure"] = self.closure
        return out


__all__ = [
    "Assignment",
    "Comment",
    "JsonDict",
    "Project",
    "SPCR",
    "StaffMember",
]
