# staffplan/persistence.py
"""Snapshot persistence side channel.

The store hands a full snapshot to `save()` after every successful
mutation and reads one back with `load()` at startup. Callers decide what
to do with save failures; the store only reports them.
"""

from __future__ import annotations

import copy
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from staffplan.schema import LATEST_SCHEMA_VERSION, declared_version, is_supported_version, upgrade_snapshot
from staffplan.util.console import info, warn

Snapshot = Dict[str, Any]


class SnapshotStore(Protocol):
    def load(self) -> Optional[Snapshot]:
        """Return the stored snapshot upgraded to the latest schema, or None."""

    def save(self, snapshot: Snapshot) -> None:
        """Persist `snapshot`; raise OSError (or similar) on failure."""


def _accept(raw: Any, *, source: str) -> Optional[Snapshot]:
    if not isinstance(raw, dict):
        warn(f"{source}: snapshot must be a JSON object; ignoring it")
        return None
    sv = raw.get("schema_version")
    if not is_supported_version(sv):
        # Unknown or newer layout: discard rather than guess.
        warn(f"{source}: discarding snapshot with unsupported schema_version {sv!r} (latest={LATEST_SCHEMA_VERSION})")
        return None
    cur = declared_version(raw)
    if cur < LATEST_SCHEMA_VERSION:
        info(f"{source}: migrating snapshot from schema_version {cur or 1} to {LATEST_SCHEMA_VERSION}")
    return upgrade_snapshot(raw)


class JsonFileSnapshotStore:
    """Snapshot kept as one JSON file, replaced atomically on save."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def load(self) -> Optional[Snapshot]:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            warn(f"{self.path}: cannot read snapshot ({e}); ignoring it")
            return None
        return _accept(raw, source=str(self.path))

    def save(self, snapshot: Snapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(snapshot, ensure_ascii=False, indent=2, sort_keys=True) + "\n"
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                f.write(text)
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise


class MemorySnapshotStore:
    """In-process store; keeps deep copies so callers cannot alias saved state."""

    def __init__(self, initial: Optional[Snapshot] = None) -> None:
        self._snapshot: Optional[Snapshot] = copy.deepcopy(initial) if initial is not None else None
        self.saves = 0

    def load(self) -> Optional[Snapshot]:
        if self._snapshot is None:
            return None
        return _accept(copy.deepcopy(self._snapshot), source="memory")

    def save(self, snapshot: Snapshot) -> None:
        self._snapshot = copy.deepcopy(snapshot)
        self.saves += 1


__all__ = [
    "JsonFileSnapshotStore",
    "MemorySnapshotStore",
    "Snapshot",
    "SnapshotStore",
]
