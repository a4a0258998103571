"""Snapshot validation helpers (library-facing)."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from staffplan.schema import LATEST_SCHEMA_VERSION as _LATEST_SCHEMA_VERSION
from staffplan.schema import SCHEMA_NAME
from staffplan.util.dates import parse_date
from staffplan.workflow import CLOSED, CLOSURES, COMMENT_ACTIONS, SPCR_TYPES, STAGES, derive_status


class SnapshotValidationError(ValueError):
    """Raised when a snapshot fails validation."""


LATEST_SCHEMA_VERSION = _LATEST_SCHEMA_VERSION


def _require(cond: bool, msg: str, errs: List[str]) -> None:
    if not cond:
        errs.append(msg)


def _is_date(v: Any) -> bool:
    if not isinstance(v, str):
        return False
    try:
        parse_date(v)
    except ValueError:
        return False
    return True


def _is_project_id(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _validate_staff(staff: List[Any], *, label: str, errs: List[str]) -> None:
    seen = set()
    for i, s in enumerate(staff):
        if not isinstance(s, dict):
            errs.append(f"{label}: staffMembers[{i}] must be dict")
            continue
        sid = s.get("id")
        _require(isinstance(sid, str) and bool(sid.strip()), f"{label}: staffMembers[{i}].id must be non-empty string", errs)
        if isinstance(sid, str):
            _require(sid not in seen, f"{label}: duplicate staff id: {sid!r}", errs)
            seen.add(sid)
        _require(isinstance(s.get("position"), str), f"{label}: staffMembers[{i}].position must be string", errs)

        assignments = s.get("assignments", [])
        if not isinstance(assignments, list):
            errs.append(f"{label}: staffMembers[{i}].assignments must be list")
            continue
        for j, a in enumerate(assignments):
            where = f"{label}: staffMembers[{i}].assignments[{j}]"
            if not isinstance(a, dict):
                errs.append(f"{where} must be dict")
                continue
            _require(_is_project_id(a.get("project_id")), f"{where}.project_id must be int", errs)
            ok_start = _is_date(a.get("startDate"))
            ok_end = _is_date(a.get("endDate"))
            _require(ok_start, f"{where}.startDate must be YYYY-MM-DD", errs)
            _require(ok_end, f"{where}.endDate must be YYYY-MM-DD", errs)
            if ok_start and ok_end:
                _require(
                    parse_date(a["startDate"]) <= parse_date(a["endDate"]),
                    f"{where}: startDate must not be after endDate",
                    errs,
                )


def _validate_projects(projects: List[Any], *, label: str, errs: List[str]) -> None:
    seen = set()
    for i, p in enumerate(projects):
        if not isinstance(p, dict):
            errs.append(f"{label}: projects[{i}] must be dict")
            continue
        pid = p.get("project_id")
        _require(_is_project_id(pid), f"{label}: projects[{i}].project_id must be int", errs)
        if _is_project_id(pid):
            _require(pid not in seen, f"{label}: duplicate project_id: {pid}", errs)
            seen.add(pid)
        _require(isinstance(p.get("name"), str), f"{label}: projects[{i}].name must be string", errs)


def _validate_spcrs(spcrs: List[Any], *, label: str, expect_version: int, errs: List[str]) -> None:
    seen = set()
    for i, s in enumerate(spcrs):
        where = f"{label}: spcrs[{i}]"
        if not isinstance(s, dict):
            errs.append(f"{where} must be dict")
            continue
        rid = s.get("id")
        _require(isinstance(rid, str) and bool(rid.strip()), f"{where}.id must be non-empty string", errs)
        if isinstance(rid, str):
            _require(rid not in seen, f"{label}: duplicate SPCR id: {rid!r}", errs)
            seen.add(rid)
        _require(_is_project_id(s.get("project_id")), f"{where}.project_id must be int", errs)
        _require(s.get("type") in SPCR_TYPES, f"{where}.type must be one of {', '.join(SPCR_TYPES)}", errs)

        stage = s.get("workflowStage")
        _require(stage in STAGES, f"{where}.workflowStage must be a known stage", errs)
        if expect_version >= 2 and stage in STAGES:
            closure = s.get("closure")
            if stage == CLOSED:
                _require(closure in CLOSURES, f"{where}.closure must be one of {', '.join(CLOSURES)}", errs)
            else:
                _require(closure is None, f"{where}.closure is only valid for closed SPCRs", errs)
            if "status" in s and (stage != CLOSED or closure in CLOSURES):
                _require(
                    s.get("status") == derive_status(stage, closure),
                    f"{where}.status disagrees with workflowStage {stage!r}",
                    errs,
                )

        for key in ("startDate", "endDate"):
            v = s.get(key)
            if v is not None and v != "":
                _require(_is_date(v), f"{where}.{key} must be YYYY-MM-DD", errs)

        comments = s.get("comments", [])
        if not isinstance(comments, list):
            errs.append(f"{where}.comments must be list")
            continue
        for j, c in enumerate(comments):
            if not isinstance(c, dict):
                errs.append(f"{where}.comments[{j}] must be dict")
                continue
            action = c.get("action")
            _require(
                action is None or action in COMMENT_ACTIONS,
                f"{where}.comments[{j}].action must be one of {', '.join(COMMENT_ACTIONS)}",
                errs,
            )


def _get_generated_at(snapshot: Dict[str, Any]) -> Optional[str]:
    meta = snapshot.get("meta")
    if isinstance(meta, dict):
        ga = meta.get("generated_at")
        if isinstance(ga, str) and ga.strip():
            return ga.strip()
    return None


def _validate_common(snapshot: Dict[str, Any], *, label: str, expect_version: int) -> List[str]:
    errs: List[str] = []

    _require(snapshot.get("schema_version") == expect_version, f"{label}: schema_version must be {expect_version}", errs)

    staff = snapshot.get("staffMembers")
    projects = snapshot.get("projects")
    spcrs = snapshot.get("spcrs")

    _require(isinstance(staff, list), f"{label}: staffMembers must be list", errs)
    _require(isinstance(projects, list), f"{label}: projects must be list", errs)
    _require(isinstance(spcrs, list), f"{label}: spcrs must be list", errs)

    if isinstance(staff, list):
        _validate_staff(staff, label=label, errs=errs)
    if isinstance(projects, list):
        _validate_projects(projects, label=label, errs=errs)
    if isinstance(spcrs, list):
        _validate_spcrs(spcrs, label=label, expect_version=expect_version, errs=errs)

    return errs


def validate_schema_v1(snapshot: Dict[str, Any], *, label: str = "snapshot") -> List[str]:
    return _validate_common(snapshot, label=label, expect_version=1)


def validate_schema_v2(snapshot: Dict[str, Any], *, label: str = "snapshot") -> List[str]:
    errs = _validate_common(snapshot, label=label, expect_version=2)

    meta = snapshot.get("meta")
    _require(isinstance(meta, dict), f"{label}: meta must be dict", errs)
    if isinstance(meta, dict):
        schema = meta.get("schema")
        _require(
            isinstance(schema, dict) and schema.get("name") == SCHEMA_NAME and schema.get("version") == 2,
            f"{label}: meta.schema must be {{name: {SCHEMA_NAME!r}, version: 2}}",
            errs,
        )
    ga = _get_generated_at(snapshot)
    _require(isinstance(ga, str) and bool(ga), f"{label}: meta.generated_at must be non-empty string", errs)

    _require(isinstance(snapshot.get("filters"), dict), f"{label}: filters must be dict", errs)
    _require(isinstance(snapshot.get("viewMode"), str), f"{label}: viewMode must be string", errs)
    _require(isinstance(snapshot.get("viewFilter"), str), f"{label}: viewFilter must be string", errs)
    draft = snapshot.get("spcrDraft")
    _require(draft is None or isinstance(draft, dict), f"{label}: spcrDraft must be dict or null", errs)
    return errs


def validate_snapshot(snapshot: Dict[str, Any], *, label: str = "snapshot") -> List[str]:
    if not isinstance(snapshot, dict):
        return [f"{label}: snapshot must be a dict/object"]
    sv = snapshot.get("schema_version")
    if sv == 1:
        return validate_schema_v1(snapshot, label=label)
    if sv == 2:
        return validate_schema_v2(snapshot, label=label)
    if isinstance(sv, int):
        return [f"Unsupported schema_version: {sv} (latest={LATEST_SCHEMA_VERSION})"]
    return [f"{label}: schema_version must be an int"]


def assert_valid_snapshot(snapshot: Dict[str, Any]) -> None:
    if not isinstance(snapshot, dict):
        raise SnapshotValidationError("snapshot must be a JSON object")
    errs = validate_snapshot(snapshot, label="snapshot")
    if errs:
        raise SnapshotValidationError(errs[0])


__all__ = [
    "LATEST_SCHEMA_VERSION",
    "SnapshotValidationError",
    "assert_valid_snapshot",
    "validate_schema_v1",
    "validate_schema_v2",
    "validate_snapshot",
]
