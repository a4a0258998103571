# staffplan/timeline.py
"""Date -> percentage geometry for the staffing timeline.

Pure: a TimelineLayout is fully determined by (now, granularity).
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from staffplan.model import Project, StaffMember
from staffplan.util.dates import (
    add_months,
    add_years,
    days_between,
    end_of_month,
    end_of_quarter,
    end_of_week,
    end_of_year,
    start_of_month,
    start_of_quarter,
    start_of_week,
    start_of_year,
)

GRANULARITIES: Tuple[str, ...] = ("week", "month", "quarter", "year")
DEFAULT_GRANULARITY = "month"

MIN_WIDTH = 1.0


def _week_window(now: dt.date) -> Tuple[dt.date, dt.date]:
    # 4 weeks back, 8 ahead
    return (
        start_of_week(now - dt.timedelta(weeks=4)),
        end_of_week(now + dt.timedelta(weeks=8)),
    )


def _month_window(now: dt.date) -> Tuple[dt.date, dt.date]:
    # 2 months back, 10 ahead
    return start_of_month(add_months(now, -2)), end_of_month(add_months(now, 10))


def _quarter_window(now: dt.date) -> Tuple[dt.date, dt.date]:
    # 2 quarters back, 6 ahead
    return start_of_quarter(add_months(now, -6)), end_of_quarter(add_months(now, 18))


def _year_window(now: dt.date) -> Tuple[dt.date, dt.date]:
    # 1 year back, 4 ahead
    return start_of_year(add_years(now, -1)), end_of_year(add_years(now, 4))


_WINDOWS: Dict[str, Callable[[dt.date], Tuple[dt.date, dt.date]]] = {
    "week": _week_window,
    "month": _month_window,
    "quarter": _quarter_window,
    "year": _year_window,
}

_ALIGN: Dict[str, Tuple[Callable[[dt.date], dt.date], Callable[[dt.date], dt.date]]] = {
    "week": (start_of_week, lambda d: d + dt.timedelta(weeks=1)),
    "month": (start_of_month, lambda d: add_months(d, 1)),
    "quarter": (start_of_quarter, lambda d: add_months(d, 3)),
    "year": (start_of_year, lambda d: add_years(d, 1)),
}


def normalize_granularity(g: str | None) -> str:
    s = str(g or "").strip().lower()
    return s if s in GRANULARITIES else DEFAULT_GRANULARITY


def _as_date(v: dt.date) -> dt.date:
    return v.date() if isinstance(v, dt.datetime) else v


def _clamp(lo: float, hi: float, v: float) -> float:
    return max(lo, min(hi, v))


@dataclass(frozen=True)
class TimelineLayout:
    now: dt.date
    granularity: str = DEFAULT_GRANULARITY

    def __post_init__(self) -> None:
        object.__setattr__(self, "now", _as_date(self.now))
        object.__setattr__(self, "granularity", normalize_granularity(self.granularity))

    @property
    def window(self) -> Tuple[dt.date, dt.date]:
        return _WINDOWS[self.granularity](self.now)

    @property
    def window_start(self) -> dt.date:
        return self.window[0]

    @property
    def window_end(self) -> dt.date:
        return self.window[1]

    @property
    def total_days(self) -> int:
        start, end = self.window
        return days_between(start, end)

    def ticks(self) -> List[dt.date]:
        """Period boundaries for the axis, aligned to the granularity."""
        start, end = self.window
        align, step = _ALIGN[self.granularity]
        out: List[dt.date] = []
        cur = align(start)
        while cur <= end:
            out.append(cur)
            cur = step(cur)
        return out

    def position(self, day: dt.date) -> float:
        """Left offset in percent of the window, clamped to [0, 100]."""
        start, _end = self.window
        return _clamp(0.0, 100.0, days_between(start, _as_date(day)) / self.total_days * 100.0)

    def width(self, start: dt.date, end: dt.date) -> float:
        """Bar width in percent of the window.

        Only the part of [start, end] inside the window counts. Never below
        MIN_WIDTH so zero-length or off-window spans stay visible.
        """
        w_start, w_end = self.window
        s = max(_as_date(start), w_start)
        e = min(_as_date(end), w_end)
        days = max(0, days_between(s, e))
        return _clamp(MIN_WIDTH, 100.0, days / self.total_days * 100.0)

    def bar(self, start: dt.date, end: dt.date) -> Tuple[float, float]:
        """(left, width) for one span."""
        return self.position(start), self.width(start, end)


@dataclass(frozen=True)
class TimelineItem:
    id: str
    staff: StaffMember
    project: Project
    start_date: dt.date
    end_date: dt.date
    left: float
    width: float


def _matches(member: StaffMember, project: Project, filters: Mapping[str, str]) -> bool:
    search = str(filters.get("search") or "").strip().lower()
    if search and not (
        search in member.name.lower() or search in member.position.lower() or search in project.name.lower()
    ):
        return False
    position = filters.get("position") or "all"
    if position != "all" and member.position != position:
        return False
    project_filter = str(filters.get("project") or "all")
    if project_filter != "all" and str(project.project_id) != project_filter:
        return False
    return True


def assignment_bars(
    staff: Iterable[StaffMember],
    projects: Iterable[Project],
    layout: TimelineLayout,
    *,
    scope: Optional[FrozenSet[int]] = None,
    filters: Optional[Mapping[str, str]] = None,
) -> List[TimelineItem]:
    """One bar per assignment, limited to `scope` project ids and the gantt filters.

    Assignments on unknown projects are skipped. Sorted by staff name, then start.
    """
    by_id = {p.project_id: p for p in projects}
    flt = filters or {}
    out: List[TimelineItem] = []
    for member in staff:
        for i, a in enumerate(member.assignments):
            project = by_id.get(a.project_id)
            if project is None:
                continue
            if scope is not None and a.project_id not in scope:
                continue
            if not _matches(member, project, flt):
                continue
            left, width = layout.bar(a.start_date, a.end_date)
            out.append(
                TimelineItem(
                    id=f"{member.id}-{a.project_id}-{i}",
                    staff=member,
                    project=project,
                    start_date=a.start_date,
                    end_date=a.end_date,
                    left=left,
                    width=width,
                )
            )
    out.sort(key=lambda x: (x.staff.name.lower(), x.start_date))
    return out


__all__ = [
    "DEFAULT_GRANULARITY",
    "GRANULARITIES",
    "MIN_WIDTH",
    "TimelineItem",
    "TimelineLayout",
    "assignment_bars",
    "normalize_granularity",
]
