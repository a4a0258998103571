#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

from staffplan.schema import LATEST_SCHEMA_VERSION, declared_version, upgrade_snapshot
from staffplan.validate import validate_snapshot


def _die(msg: str, rc: int = 2) -> int:
    print(f"[staffplan-validate-snapshot] ERROR: {msg}", file=sys.stderr)
    return rc


def _load_snapshot_from_json(p: Path) -> Dict[str, Any]:
    obj = json.loads(p.read_text(encoding="utf-8", errors="replace"))
    if not isinstance(obj, dict):
        raise ValueError(f"snapshot must be a JSON object; got {type(obj).__name__}")
    return obj


def _resolve_target_schema(raw: Dict[str, Any], requested: int) -> int:
    """Resolve the schema to validate.

    requested:
      - 0 => auto: the declared version as-is, or latest for unversioned input
      - 1..LATEST => explicit; never downgrades
    """
    declared = declared_version(raw)

    if declared > LATEST_SCHEMA_VERSION:
        raise ValueError(f"Unsupported schema_version: {declared} (latest={LATEST_SCHEMA_VERSION})")

    if requested == 0:
        return declared if declared >= 1 else LATEST_SCHEMA_VERSION

    if requested < 1:
        return 1
    if requested > LATEST_SCHEMA_VERSION:
        raise ValueError(f"--schema {requested} unsupported (latest={LATEST_SCHEMA_VERSION})")

    if declared >= 1 and requested < declared:
        raise ValueError(f"Refusing to downgrade input schema_version={declared} to --schema {requested}")

    return requested


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        prog="staffplan-validate-snapshot",
        description=(
            "Validate a staffplan snapshot JSON file.\n"
            "Default behavior is auto: validate the declared schema version as-is.\n"
            "Use --schema N to validate schema N (upgrading legacy inputs when needed)."
        ),
    )
    ap.add_argument("--in", dest="in_json", default=None, help="Input snapshot JSON path")
    ap.add_argument("--schema", type=int, default=0, help="Target schema version to validate (0=auto; default).")
    ns = ap.parse_args(argv)

    if not ns.in_json:
        return _die("Provide --in")

    p = Path(ns.in_json)
    if not p.exists():
        return _die(f"Missing JSON file: {p}")

    try:
        raw = _load_snapshot_from_json(p)
        target = _resolve_target_schema(raw, int(ns.schema))
        if declared_version(raw) == target:
            snap = raw
        else:
            snap = upgrade_snapshot(raw, target_version=target)
    except ValueError as e:
        return _die(f"Failed to load/validate JSON snapshot: {p} ({e})")

    errs = validate_snapshot(snap)
    if errs:
        print("[staffplan-validate-snapshot] FAIL", file=sys.stderr)
        for e in errs:
            print(f"  - json:{p}: {e}", file=sys.stderr)
        return 3

    print("[staffplan-validate-snapshot] OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
