# staffplan/store.py
"""StaffingStore: the single mutation/query surface.

One store owns all mutable state. Mutations return OpResult and never raise
for domain failures; each builds the replacement record first and swaps it
in only once it is complete. After a successful mutation the snapshot is
handed to the persistence collaborator, whose failures are reported on
stderr and otherwise ignored.
"""

from __future__ import annotations

import copy
import dataclasses
import datetime as dt
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar, Union

from staffplan import availability as _availability
from staffplan import financials as _financials
from staffplan import roles as _roles
from staffplan.config import DEFAULT_CONFIG, StaffingConfig
from staffplan.errors import NotFoundError, OpResult, StaffingError, ValidationError
from staffplan.model import SPCR, Assignment, Comment, JsonDict, Project, StaffMember
from staffplan.persistence import SnapshotStore
from staffplan.schema import (
    DEFAULT_FILTERS,
    DEFAULT_VIEW_FILTER,
    DEFAULT_VIEW_MODE,
    LATEST_SCHEMA_VERSION,
    SCHEMA_NAME,
    upgrade_snapshot,
)
from staffplan.timeline import GRANULARITIES, TimelineItem, TimelineLayout, assignment_bars
from staffplan.util.console import warn
from staffplan.util.dates import iso_z, parse_date, utc_now
from staffplan.validate import assert_valid_snapshot
from staffplan.workflow import (
    COMMENT_ACTIONS,
    SUBMITTED,
    available_actions,
    plan_transition,
    resolve_stage_change,
)

T = TypeVar("T")

Clock = Callable[[], dt.datetime]
IdFactory = Callable[[str], str]

_FILTER_KEYS = tuple(DEFAULT_FILTERS)

# SPCR wire keys a partial update may carry.
_PATCHABLE = frozenset(
    {
        "project_id",
        "type",
        "position",
        "startDate",
        "endDate",
        "schedule_activity",
        "scheduleRef",
        "budget",
        "explanation",
        "workflowStage",
        "status",
        "closure",
    }
)
_IDENTITY = frozenset({"id", "createdAt", "createdBy", "comments", "updatedAt"})


def _default_id(kind: str) -> str:
    return f"{kind}-{uuid.uuid4().hex[:12]}"


def _blank(v: Any) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


@dataclass(frozen=True)
class StoreState:
    """Full outbound view handed to UI collaborators."""

    staff: Tuple[StaffMember, ...]
    projects: Tuple[Project, ...]
    spcrs: Tuple[SPCR, ...]
    filters: Dict[str, str]
    view_mode: str
    view_filter: str
    spcr_draft: Optional[JsonDict]


class StaffingStore:
    def __init__(
        self,
        staff: Iterable[StaffMember] = (),
        projects: Iterable[Project] = (),
        spcrs: Iterable[SPCR] = (),
        *,
        config: StaffingConfig = DEFAULT_CONFIG,
        persistence: Optional[SnapshotStore] = None,
        clock: Optional[Clock] = None,
        id_factory: Optional[IdFactory] = None,
        utilization: Optional[_financials.UtilizationProvider] = None,
        filters: Optional[Mapping[str, str]] = None,
        view_mode: str = DEFAULT_VIEW_MODE,
        view_filter: str = DEFAULT_VIEW_FILTER,
        spcr_draft: Optional[JsonDict] = None,
    ) -> None:
        self.config = config
        self.persistence = persistence
        self.utilization = utilization
        self._clock: Clock = clock or utc_now
        self._new_id: IdFactory = id_factory or _default_id

        self._staff: List[StaffMember] = list(staff)
        self._projects: List[Project] = list(projects)
        self._spcrs: List[SPCR] = list(spcrs)
        for label, ids in (
            ("staff id", [s.id for s in self._staff]),
            ("project_id", [p.project_id for p in self._projects]),
            ("SPCR id", [s.id for s in self._spcrs]),
        ):
            if len(set(ids)) != len(ids):
                raise ValidationError(f"duplicate {label} in initial data")

        self._filters: Dict[str, str] = dict(DEFAULT_FILTERS)
        if filters:
            self._filters.update({k: str(v) for k, v in filters.items() if k in _FILTER_KEYS})
        self._view_mode = view_mode if view_mode in GRANULARITIES else DEFAULT_VIEW_MODE
        self._view_filter = view_filter if view_filter in _roles.VIEW_FILTERS else DEFAULT_VIEW_FILTER
        self._spcr_draft: Optional[JsonDict] = copy.deepcopy(spcr_draft) if spcr_draft else None

    # --- snapshot conversion ----------------------------------------------------

    @classmethod
    def from_snapshot(cls, snapshot: Mapping[str, Any], **kwargs: Any) -> "StaffingStore":
        """Build a store from a snapshot dict of any supported schema version."""
        snap = upgrade_snapshot(dict(snapshot))
        assert_valid_snapshot(snap)
        return cls(
            [StaffMember.from_dict(s) for s in snap["staffMembers"]],
            [Project.from_dict(p) for p in snap["projects"]],
            [SPCR.from_dict(s) for s in snap["spcrs"]],
            filters=snap.get("filters"),
            view_mode=snap.get("viewMode") or DEFAULT_VIEW_MODE,
            view_filter=snap.get("viewFilter") or DEFAULT_VIEW_FILTER,
            spcr_draft=snap.get("spcrDraft"),
            **kwargs,
        )

    @classmethod
    def from_persistence(
        cls,
        persistence: SnapshotStore,
        *,
        fallback: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> "StaffingStore":
        """Restore from `persistence`, or from `fallback` when nothing usable is stored.

        A stored snapshot that fails validation is discarded like a stale one.
        """
        snap = persistence.load()
        if snap is not None:
            try:
                return cls.from_snapshot(snap, persistence=persistence, **kwargs)
            except (StaffingError, ValueError) as e:
                warn(f"discarding invalid stored snapshot ({e})")
        return cls.from_snapshot(dict(fallback) if fallback is not None else {}, persistence=persistence, **kwargs)

    def snapshot(self) -> JsonDict:
        return {
            "schema_version": LATEST_SCHEMA_VERSION,
            "meta": {
                "schema": {"name": SCHEMA_NAME, "version": LATEST_SCHEMA_VERSION},
                "generated_at": iso_z(self._clock()),
            },
            "staffMembers": [s.to_dict() for s in self._staff],
            "projects": [p.to_dict() for p in self._projects],
            "spcrs": [s.to_dict() for s in self._spcrs],
            "filters": dict(self._filters),
            "viewMode": self._view_mode,
            "viewFilter": self._view_filter,
            "spcrDraft": copy.deepcopy(self._spcr_draft),
        }

    def state(self) -> StoreState:
        return StoreState(
            staff=tuple(self._staff),
            projects=tuple(self._projects),
            spcrs=tuple(self._spcrs),
            filters=dict(self._filters),
            view_mode=self._view_mode,
            view_filter=self._view_filter,
            spcr_draft=copy.deepcopy(self._spcr_draft),
        )

    # --- mutation plumbing ------------------------------------------------------

    def _now(self) -> str:
        return iso_z(self._clock())

    def _persist(self) -> None:
        if self.persistence is None:
            return
        try:
            self.persistence.save(self.snapshot())
        except Exception as e:
            warn(f"snapshot save failed; keeping in-memory state ({type(e).__name__}: {e})")

    def _apply(self, op: Callable[[], T]) -> OpResult[T]:
        try:
            value = op()
        except StaffingError as e:
            return OpResult.failure(e)
        except (ValueError, TypeError) as e:
            return OpResult.failure(ValidationError(str(e)))
        self._persist()
        return OpResult.success(value)

    def _staff_index(self, staff_id: str) -> int:
        for i, s in enumerate(self._staff):
            if s.id == staff_id:
                return i
        raise NotFoundError(f"unknown staff id: {staff_id!r}")

    def _spcr_index(self, spcr_id: str) -> int:
        for i, s in enumerate(self._spcrs):
            if s.id == spcr_id:
                return i
        raise NotFoundError(f"unknown SPCR id: {spcr_id!r}")

    def _require_project(self, project_id: int) -> Project:
        p = self.get_project(project_id)
        if p is None:
            raise NotFoundError(f"unknown project_id: {project_id}")
        return p

    def _check_spcr(self, spcr: SPCR) -> None:
        self._require_project(spcr.project_id)
        if not spcr.position.strip():
            raise ValidationError("position must be non-empty")
        if spcr.start_date is not None and spcr.end_date is not None and spcr.start_date > spcr.end_date:
            raise ValidationError("startDate must not be after endDate")

    # --- mutations --------------------------------------------------------------

    def update_staff_assignment(
        self, staff_id: str, assignments: Iterable[Any]
    ) -> OpResult[StaffMember]:
        """Replace one staff member's whole assignment set."""

        def op() -> StaffMember:
            idx = self._staff_index(staff_id)
            built: List[Assignment] = []
            for a in assignments:
                if isinstance(a, Assignment):
                    built.append(a)
                elif isinstance(a, Mapping):
                    built.append(Assignment.from_dict(dict(a)))
                else:
                    raise ValidationError(f"assignment must be Assignment or dict; got {type(a).__name__}")
            member = dataclasses.replace(self._staff[idx], assignments=tuple(built))
            self._staff[idx] = member
            return member

        return self._apply(op)

    def create_spcr(self, data: Mapping[str, Any]) -> OpResult[SPCR]:
        """Create a request in the submitted stage.

        Requires project_id, type and position. Without a budget, one is
        estimated from the position and dates when both dates are given.
        """

        def op() -> SPCR:
            missing = [k for k in ("project_id", "type", "position") if _blank(data.get(k))]
            if missing:
                raise ValidationError(f"missing required field(s): {', '.join(missing)}")

            rid = str(data.get("id") or "").strip() or self._new_id("spcr")
            if self.get_spcr(rid) is not None:
                raise ValidationError(f"duplicate SPCR id: {rid!r}")

            now = self._now()
            raw: JsonDict = {k: data[k] for k in _PATCHABLE if k in data}
            raw.pop("status", None)
            raw.pop("closure", None)
            raw.update(
                {
                    "id": rid,
                    "workflowStage": SUBMITTED,
                    "createdBy": str(data.get("createdBy") or ""),
                    "createdAt": now,
                    "updatedAt": now,
                    "comments": [],
                }
            )
            spcr = SPCR.from_dict(raw)
            self._check_spcr(spcr)

            if _blank(data.get("budget")) and spcr.start_date is not None and spcr.end_date is not None:
                impact = _financials.estimate_spcr_impact(
                    spcr.position,
                    spcr.start_date,
                    spcr.end_date,
                    self.get_staff_by_project(spcr.project_id),
                    weekly_hours=self.config.weekly_hours,
                )
                spcr = dataclasses.replace(spcr, budget=impact.total_cost)

            self._spcrs.append(spcr)
            return spcr

        return self._apply(op)

    def update_spcr(self, spcr_id: str, partial: Mapping[str, Any]) -> OpResult[SPCR]:
        """Merge `partial` (wire field names) into a request.

        A workflowStage change must follow an edge of the workflow graph and
        a status given alongside must agree with it. Role entitlement is not
        checked here; use transition_spcr for the role-gated path.
        """

        def op() -> SPCR:
            idx = self._spcr_index(spcr_id)
            current = self._spcrs[idx]

            for k in partial:
                if k in _IDENTITY:
                    raise ValidationError(f"field {k!r} cannot be updated")
                if k not in _PATCHABLE:
                    raise ValidationError(f"unknown SPCR field: {k!r}")

            target = partial.get("workflowStage", current.workflow_stage)
            closure = resolve_stage_change(
                current.workflow_stage,
                target,
                status=partial.get("status"),
                closure=partial.get("closure"),
                current_closure=current.closure,
            )

            raw = current.to_dict()
            raw.update({k: v for k, v in partial.items() if k not in ("status", "closure")})
            raw.pop("status", None)
            raw.pop("closure", None)
            if closure is not None:
                raw["closure"] = closure
            raw["updatedAt"] = self._now()

            spcr = SPCR.from_dict(raw)
            self._check_spcr(spcr)
            self._spcrs[idx] = spcr
            return spcr

        return self._apply(op)

    def add_spcr_comment(self, spcr_id: str, comment: Union[Comment, Mapping[str, Any]]) -> OpResult[Comment]:
        """Append a comment; comments are never edited or removed.

        Accepts a Comment record or a mapping with author, content and an
        optional action. The timestamp is always taken from the store clock.
        """

        def op() -> Comment:
            idx = self._spcr_index(spcr_id)
            if isinstance(comment, Comment):
                cid, author, content, action = comment.id, comment.author, comment.content, comment.action
            elif isinstance(comment, Mapping):
                cid = comment.get("id")
                author, content, action = comment.get("author"), comment.get("content"), comment.get("action")
            else:
                raise ValidationError(f"comment must be Comment or dict; got {type(comment).__name__}")
            author = str(author or "").strip()
            content = str(content or "").strip()
            if not author or not content:
                raise ValidationError("comment requires author and content")
            if action is not None and action not in COMMENT_ACTIONS:
                raise ValidationError(f"comment action must be one of {', '.join(COMMENT_ACTIONS)}")

            current = self._spcrs[idx]
            cid = str(cid or "").strip() or self._new_id("comment")
            if any(c.id == cid for c in current.comments):
                cid = self._new_id("comment")

            now = self._now()
            c = Comment(id=cid, author=author, content=content, timestamp=now, action=action)
            self._spcrs[idx] = dataclasses.replace(current, comments=current.comments + (c,), updated_at=now)
            return c

        return self._apply(op)

    def transition_spcr(
        self,
        spcr_id: str,
        action: str,
        role: str,
        comment: Optional[str] = None,
        author: Optional[str] = None,
    ) -> OpResult[SPCR]:
        """Role-gated workflow step; stage, closure and the optional comment commit together."""

        def op() -> SPCR:
            idx = self._spcr_index(spcr_id)
            current = self._spcrs[idx]
            t = plan_transition(current.workflow_stage, action, role)

            now = self._now()
            comments = current.comments
            if comment is not None and comment.strip():
                comments = comments + (
                    Comment(
                        id=self._new_id("comment"),
                        author=(author or role),
                        content=comment.strip(),
                        timestamp=now,
                        action=t.comment_action,
                    ),
                )
            spcr = dataclasses.replace(
                current,
                workflow_stage=t.target,
                closure=t.closure,
                updated_at=now,
                comments=comments,
            )
            self._spcrs[idx] = spcr
            return spcr

        return self._apply(op)

    def set_filters(self, filters: Mapping[str, Any]) -> OpResult[Dict[str, str]]:
        def op() -> Dict[str, str]:
            unknown = [k for k in filters if k not in _FILTER_KEYS]
            if unknown:
                raise ValidationError(f"unknown filter(s): {', '.join(sorted(unknown))}")
            merged = dict(self._filters)
            merged.update({k: str(v) for k, v in filters.items()})
            self._filters = merged
            return dict(merged)

        return self._apply(op)

    def set_view_mode(self, view_mode: str) -> OpResult[str]:
        def op() -> str:
            if view_mode not in GRANULARITIES:
                raise ValidationError(f"view mode must be one of {', '.join(GRANULARITIES)}")
            self._view_mode = view_mode
            return view_mode

        return self._apply(op)

    def set_view_filter(self, view_filter: str) -> OpResult[str]:
        def op() -> str:
            if view_filter not in _roles.VIEW_FILTERS:
                raise ValidationError(f"view filter must be one of {', '.join(_roles.VIEW_FILTERS)}")
            self._view_filter = view_filter
            return view_filter

        return self._apply(op)

    def set_spcr_draft(self, draft: Mapping[str, Any]) -> OpResult[JsonDict]:
        def op() -> JsonDict:
            if not isinstance(draft, Mapping):
                raise ValidationError("draft must be a mapping")
            self._spcr_draft = copy.deepcopy(dict(draft))
            return copy.deepcopy(self._spcr_draft)

        return self._apply(op)

    def clear_spcr_draft(self) -> OpResult[None]:
        def op() -> None:
            self._spcr_draft = None

        return self._apply(op)

    # --- queries ----------------------------------------------------------------

    @property
    def filters(self) -> Dict[str, str]:
        return dict(self._filters)

    @property
    def view_mode(self) -> str:
        return self._view_mode

    @property
    def view_filter(self) -> str:
        return self._view_filter

    @property
    def spcr_draft(self) -> Optional[JsonDict]:
        return copy.deepcopy(self._spcr_draft)

    def get_staff(self, staff_id: str) -> Optional[StaffMember]:
        return next((s for s in self._staff if s.id == staff_id), None)

    def get_project(self, project_id: int) -> Optional[Project]:
        return next((p for p in self._projects if p.project_id == project_id), None)

    def get_spcr(self, spcr_id: str) -> Optional[SPCR]:
        return next((s for s in self._spcrs if s.id == spcr_id), None)

    def get_staff_by_project(self, project_id: int) -> List[StaffMember]:
        return [s for s in self._staff if s.is_on_project(project_id)]

    def get_spcrs_by_project(self, project_id: int) -> List[SPCR]:
        return [s for s in self._spcrs if s.project_id == project_id]

    def get_spcrs_by_role(self, role: str) -> List[SPCR]:
        return _roles.spcrs_for_role(self._spcrs, role, self.config)

    def visible_spcrs(self, role: str, view_filter: Optional[str] = None) -> List[SPCR]:
        return _roles.apply_view_filter(self.get_spcrs_by_role(role), view_filter or self._view_filter, role)

    def inbox_counts(self, role: str) -> _roles.InboxCounts:
        return _roles.inbox_counts(self.get_spcrs_by_role(role), role)

    def project_spcr_summary(self, project_id: int) -> _roles.ProjectSPCRSummary:
        return _roles.project_spcr_summary(self.get_spcrs_by_project(project_id))

    def projects_for_role(self, role: str) -> List[Project]:
        return _roles.projects_for_role(self._projects, role, self.config)

    def available_actions(self, spcr_id: str, role: Optional[str] = None) -> List[str]:
        spcr = self.get_spcr(spcr_id)
        if spcr is None:
            raise NotFoundError(f"unknown SPCR id: {spcr_id!r}")
        return available_actions(spcr.workflow_stage, role)

    def calculate_labor_cost(self, staff_ids: Iterable[str], weekly_hours: Optional[float] = None) -> float:
        """Weekly labor cost; `weekly_hours` defaults to the configured value."""
        hours = self.config.weekly_hours if weekly_hours is None else weekly_hours
        return _financials.calculate_labor_cost(self._staff, staff_ids, hours)

    def available_staff(
        self,
        group: str,
        target_date: Optional[dt.date] = None,
        *,
        strict: bool = False,
    ) -> List[StaffMember]:
        return _availability.available_staff(
            self._staff,
            group,
            target_date,
            grace_days=self.config.availability_grace_days,
            strict=strict,
        )

    def needing_assignment(
        self, today: dt.date, *, position: Optional[str] = None
    ) -> List[_availability.NeedingAssignment]:
        return _availability.needing_assignment(
            self._staff,
            self._projects,
            today,
            horizon_days=self.config.needing_assignment_horizon_days,
            position=position,
        )

    def timeline_layout(self, now: dt.date, granularity: Optional[str] = None) -> TimelineLayout:
        return TimelineLayout(now, granularity or self._view_mode)

    def timeline_items(
        self, role: str, now: dt.date, granularity: Optional[str] = None
    ) -> List[TimelineItem]:
        """Role-scoped assignment bars under the stored gantt filters."""
        return assignment_bars(
            self._staff,
            self._projects,
            self.timeline_layout(now, granularity),
            scope=_roles.project_scope(role, self.config),
            filters=self._filters,
        )

    def project_financials(self, project_id: int) -> _financials.ProjectFinancials:
        project = self._require_project(project_id)
        return _financials.project_financials(
            project,
            self.get_staff_by_project(project_id),
            config=self.config,
            utilization=self.utilization,
        )

    def portfolio_financials(self, role: Optional[str] = None) -> _financials.PortfolioFinancials:
        projects: Sequence[Project] = self.projects_for_role(role) if role else self._projects
        return _financials.portfolio_financials([self.project_financials(p.project_id) for p in projects])

    def estimate_spcr_impact(
        self, project_id: int, position: str, start: Any, end: Any
    ) -> _financials.SPCRImpact:
        self._require_project(project_id)
        return _financials.estimate_spcr_impact(
            position,
            parse_date(start),
            parse_date(end),
            self.get_staff_by_project(project_id),
            weekly_hours=self.config.weekly_hours,
        )


__all__ = [
    "StaffingStore",
    "StoreState",
]
