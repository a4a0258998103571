from __future__ import annotations

import argparse
import dataclasses
import datetime as dt
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List

from .api import load_snapshot_from_json
from .availability import NeedingAssignment
from .config import config_from_env, load_config
from .errors import StaffingError
from .financials import PortfolioFinancials, ProjectFinancials
from .roles import VIEW_FILTERS
from .store import StaffingStore
from .timeline import GRANULARITIES, TimelineItem
from .util.dates import parse_date_yyyy_mm_dd, utc_now
from .workflow import ROLES

REPORTS = ("inbox", "rollup", "timeline", "availability", "needing")


def _die(msg: str, rc: int = 2) -> int:
    print(f"[staffplan] ERROR: {msg}", file=sys.stderr)
    return rc


def _staff_brief(s: Any) -> Dict[str, Any]:
    return {"id": s.id, "name": s.name, "position": s.position}


def _financials_dict(f: ProjectFinancials) -> Dict[str, Any]:
    return dataclasses.asdict(f)


def _portfolio_dict(p: PortfolioFinancials) -> Dict[str, Any]:
    out = dataclasses.asdict(p)
    out["projects"] = [_financials_dict(x) for x in p.projects]
    return out


def _bar_dict(item: TimelineItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "staff": _staff_brief(item.staff),
        "project_id": item.project.project_id,
        "project_name": item.project.name,
        "startDate": item.start_date.isoformat(),
        "endDate": item.end_date.isoformat(),
        "left": round(item.left, 4),
        "width": round(item.width, 4),
    }


def _needing_dict(n: NeedingAssignment) -> Dict[str, Any]:
    return {
        "staff": _staff_brief(n.staff),
        "project_id": n.project.project_id,
        "project_name": n.project.name,
        "endDate": n.end_date.isoformat(),
        "days_until_end": n.days_until_end,
        "urgency": n.urgency,
    }


def build_report(store: StaffingStore, report: str, args: argparse.Namespace, now: dt.date) -> Dict[str, Any]:
    role = args.role
    if report == "inbox":
        spcrs = store.visible_spcrs(role, args.view_filter)
        return {
            "role": role,
            "view_filter": args.view_filter or store.view_filter,
            "counts": dataclasses.asdict(store.inbox_counts(role)),
            "spcrs": [s.to_dict() for s in spcrs],
            "actions": {s.id: store.available_actions(s.id, role) for s in spcrs},
        }
    if report == "rollup":
        return {"role": role, "portfolio": _portfolio_dict(store.portfolio_financials(role))}
    if report == "timeline":
        layout = store.timeline_layout(now, args.granularity)
        return {
            "role": role,
            "granularity": layout.granularity,
            "window": {"start": layout.window_start.isoformat(), "end": layout.window_end.isoformat()},
            "ticks": [t.isoformat() for t in layout.ticks()],
            "today": round(layout.position(now), 4),
            "items": [_bar_dict(i) for i in store.timeline_items(role, now, args.granularity)],
        }
    if report == "availability":
        target = parse_date_yyyy_mm_dd(args.date) if args.date else None
        return {
            "group": args.group,
            "date": target.isoformat() if target else None,
            "staff": [_staff_brief(s) for s in store.available_staff(args.group, target, strict=args.strict)],
        }
    if report == "needing":
        return {"today": now.isoformat(), "staff": [_needing_dict(n) for n in store.needing_assignment(now)]}
    raise ValueError(f"unknown report: {report}")


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        prog="staffplan",
        description="Staffing plan reports (SPCR inbox, financial rollup, timeline, availability) from a snapshot.",
    )
    ap.add_argument("--in", dest="in_json", required=True, help="Snapshot JSON path (any supported schema)")
    ap.add_argument("--report", choices=REPORTS, default="inbox", help="Report to print (default: inbox)")
    ap.add_argument(
        "--role",
        choices=ROLES,
        default=os.getenv("STAFFPLAN_ROLE", "executive"),
        help="Acting role (default: env STAFFPLAN_ROLE or 'executive')",
    )
    ap.add_argument("--now", default=None, help="Reference date YYYY-MM-DD (default: today, UTC)")
    ap.add_argument("--granularity", choices=GRANULARITIES, default=None, help="Timeline granularity (default: snapshot viewMode)")
    ap.add_argument("--view-filter", choices=VIEW_FILTERS, default=None, help="Inbox filter (default: snapshot viewFilter)")
    ap.add_argument("--group", default="Project Manager", help="Position group for --report availability")
    ap.add_argument("--date", default=None, help="Target date YYYY-MM-DD for --report availability")
    ap.add_argument("--strict", action="store_true", help="Strict availability: any covering assignment blocks")
    ap.add_argument(
        "--config",
        default=os.getenv("STAFFPLAN_CONFIG"),
        help="Config JSON (default: env STAFFPLAN_CONFIG). If missing, built-in defaults apply.",
    )
    ap.add_argument("--pretty", action="store_true", help="Indent JSON output")
    args = ap.parse_args(argv)

    p = Path(args.in_json)
    if not p.exists():
        return _die(f"Missing JSON file: {p}")

    try:
        now = parse_date_yyyy_mm_dd(args.now) if args.now else utc_now().date()
        if args.date:
            parse_date_yyyy_mm_dd(args.date)
    except ValueError as e:
        return _die(f"Invalid date: {e}")

    config = config_from_env(load_config(args.config))

    try:
        store = StaffingStore.from_snapshot(load_snapshot_from_json(p), config=config)
        report = build_report(store, args.report, args, now)
    except (StaffingError, ValueError) as e:
        return _die(f"{p}: {e}")

    print(json.dumps(report, ensure_ascii=False, indent=2 if args.pretty else None, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
