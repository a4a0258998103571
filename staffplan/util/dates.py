# staffplan/util/dates.py
from __future__ import annotations

import calendar
import datetime as dt
import re
from typing import Any, Optional

_YMD_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def parse_date(v: Any) -> dt.date:
    """Coerce a wire value into a calendar date.

    Accepts date/datetime objects, "YYYY-MM-DD" and ISO timestamps
    ("2024-01-10T00:00:00Z"); only the calendar day is kept.
    Raises ValueError for anything else.
    """
    if isinstance(v, dt.datetime):
        return v.date()
    if isinstance(v, dt.date):
        return v
    if isinstance(v, str):
        m = _YMD_RE.match(v.strip())
        if m:
            y, mo, d = (int(x) for x in m.groups())
            return dt.date(y, mo, d)
    raise ValueError(f"Invalid date: {v!r}")


def parse_opt_date(v: Any) -> Optional[dt.date]:
    if v is None:
        return None
    if isinstance(v, str) and not v.strip():
        return None
    return parse_date(v)


def format_date(d: Optional[dt.date]) -> Optional[str]:
    return d.isoformat() if d is not None else None


def days_between(a: dt.date, b: dt.date) -> int:
    """Whole days from a to b (negative when b is before a)."""
    return (b - a).days


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def iso_z(ts: dt.datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=dt.timezone.utc)
    return ts.astimezone(dt.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def add_months(d: dt.date, months: int) -> dt.date:
    idx = d.year * 12 + (d.month - 1) + int(months)
    y, m0 = divmod(idx, 12)
    last = calendar.monthrange(y, m0 + 1)[1]
    return dt.date(y, m0 + 1, min(d.day, last))


def add_years(d: dt.date, years: int) -> dt.date:
    return add_months(d, 12 * int(years))


# Weeks start on Sunday.
def start_of_week(d: dt.date) -> dt.date:
    return d - dt.timedelta(days=(d.weekday() + 1) % 7)


def end_of_week(d: dt.date) -> dt.date:
    return start_of_week(d) + dt.timedelta(days=6)


def start_of_month(d: dt.date) -> dt.date:
    return d.replace(day=1)


def end_of_month(d: dt.date) -> dt.date:
    return d.replace(day=calendar.monthrange(d.year, d.month)[1])


def start_of_quarter(d: dt.date) -> dt.date:
    return dt.date(d.year, ((d.month - 1) // 3) * 3 + 1, 1)


def end_of_quarter(d: dt.date) -> dt.date:
    return end_of_month(add_months(start_of_quarter(d), 2))


def start_of_year(d: dt.date) -> dt.date:
    return dt.date(d.year, 1, 1)


def end_of_year(d: dt.date) -> dt.date:
    return dt.date(d.year, 12, 31)


def parse_date_yyyy_mm_dd(s: str) -> dt.date:
    return dt.datetime.strptime(s, "%Y-%m-%d").date()
