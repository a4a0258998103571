# staffplan/availability.py
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from staffplan.model import Assignment, Project, StaffMember

DEFAULT_GRACE_DAYS = 30

# Position groups: a named cluster of interchangeable job titles.
POSITION_GROUPS: Dict[str, Tuple[str, ...]] = {
    "Assistant Project Manager": ("Assistant Project Manager", "Project Administrator"),
    "Project Accountant": ("Project Accountant",),
    "Project Executive": ("Project Executive",),
    "Senior Project Manager": ("Senior Project Manager",),
    "Project Manager": ("Project Manager I", "Project Manager II", "Project Manager III", "Project Manager"),
    "General Superintendent": ("General Superintendent",),
    "Assistant Superintendent": ("Assistant Superintendent", "Foreman"),
    "Superintendent": ("Superintendent I", "Superintendent II", "Superintendent III", "Superintendent"),
}


def group_positions(group: str, groups: Mapping[str, Sequence[str]] = POSITION_GROUPS) -> Tuple[str, ...]:
    return tuple(groups.get(group) or ())


def staff_in_group(
    staff: Iterable[StaffMember],
    group: str,
    groups: Mapping[str, Sequence[str]] = POSITION_GROUPS,
) -> List[StaffMember]:
    positions = set(group_positions(group, groups))
    if not positions:
        return []
    return [s for s in staff if s.position in positions]


def _blocks(a: Assignment, target: dt.date) -> bool:
    return a.covers(target)


def _recently_ended(a: Assignment, target: dt.date, grace_days: int) -> bool:
    return target - dt.timedelta(days=grace_days) <= a.end_date <= target


def is_available(
    member: StaffMember,
    target: dt.date,
    *,
    grace_days: int = DEFAULT_GRACE_DAYS,
    strict: bool = False,
) -> bool:
    """Whether `member` can be offered for work starting on `target`.

    Lenient (default): free on the day, OR some assignment ended within the
    grace window before it. A staff member rolling off soon stays a
    candidate even when another assignment still covers the day.

    Strict: every assignment covering the day must itself end on that day
    (i.e. be inside the grace window); an unrelated covering assignment
    blocks regardless of other recently ended ones.
    """
    covering = [a for a in member.assignments if _blocks(a, target)]
    if not covering:
        return True
    if strict:
        return all(_recently_ended(a, target, grace_days) for a in covering)
    return any(_recently_ended(a, target, grace_days) for a in member.assignments)


def available_staff(
    staff: Iterable[StaffMember],
    group: str,
    target_date: Optional[dt.date] = None,
    *,
    grace_days: int = DEFAULT_GRACE_DAYS,
    strict: bool = False,
    groups: Mapping[str, Sequence[str]] = POSITION_GROUPS,
) -> List[StaffMember]:
    """Candidates for a position group, optionally filtered by a target date.

    Order follows the staff collection; ranking is the caller's concern.
    """
    candidates = staff_in_group(staff, group, groups)
    if target_date is None:
        return candidates
    return [s for s in candidates if is_available(s, target_date, grace_days=grace_days, strict=strict)]


def project_staff_conflicts(
    project_staff: Iterable[StaffMember],
    position: str,
    start: dt.date,
    end: dt.date,
) -> List[StaffMember]:
    """Same-position staff already holding an assignment overlapping [start, end]."""
    return [
        s
        for s in project_staff
        if s.position == position and any(a.overlaps(start, end) for a in s.assignments)
    ]


@dataclass(frozen=True)
class NeedingAssignment:
    staff: StaffMember
    project: Project
    end_date: dt.date
    days_until_end: int
    urgency: str  # "high" | "medium" | "low"


_URGENCY_ORDER = {"high": 0, "medium": 1, "low": 2}


def _urgency(days_until_end: int) -> str:
    if days_until_end < 30:
        return "high"
    if days_until_end < 60:
        return "medium"
    return "low"


def _has_follow_up(member: StaffMember, current: Assignment) -> bool:
    cutoff = current.end_date - dt.timedelta(days=7)
    for other in member.assignments:
        if other.start_date > current.end_date:
            return True
        if other is not current and other.start_date > cutoff:
            return True
    return False


def needing_assignment(
    staff: Iterable[StaffMember],
    projects: Iterable[Project],
    today: dt.date,
    *,
    horizon_days: int = 90,
    position: Optional[str] = None,
) -> List[NeedingAssignment]:
    """Staff rolling off an assignment within the horizon with nothing lined up next.

    Sorted by urgency, then by days remaining.
    """
    by_id = {p.project_id: p for p in projects}
    horizon = today + dt.timedelta(days=horizon_days)
    out: List[NeedingAssignment] = []

    for member in staff:
        if position is not None and member.position != position:
            continue
        for a in member.assignments:
            if not (today < a.end_date < horizon):
                continue
            if _has_follow_up(member, a):
                continue
            project = by_id.get(a.project_id)
            if project is None:
                continue
            days = (a.end_date - today).days
            out.append(
                NeedingAssignment(
                    staff=member,
                    project=project,
                    end_date=a.end_date,
                    days_until_end=days,
                    urgency=_urgency(days),
                )
            )

    out.sort(key=lambda x: (_URGENCY_ORDER[x.urgency], x.days_until_end))
    return out


__all__ = [
    "DEFAULT_GRACE_DAYS",
    "NeedingAssignment",
    "POSITION_GROUPS",
    "available_staff",
    "group_positions",
    "is_available",
    "needing_assignment",
    "project_staff_conflicts",
    "staff_in_group",
]
