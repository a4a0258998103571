from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
FIXTURE_V2 = REPO_ROOT / "tests" / "fixtures" / "staffing_snapshot_v2.json"
FIXTURE_LEGACY = REPO_ROOT / "tests" / "fixtures" / "staffing_snapshot_legacy_v1.json"


def _run(*args: str) -> subprocess.CompletedProcess:
    cmd = [sys.executable, "-m", "staffplan.tools.validate_snapshot", *args]
    return subprocess.run(cmd, cwd=str(REPO_ROOT), capture_output=True, text=True)


class TestValidateSnapshotToolContract:
    def test_ok_for_fixtures(self):
        for fixture in (FIXTURE_V2, FIXTURE_LEGACY):
            p = _run("--in", str(fixture))
            assert p.returncode == 0, (p.stdout or "") + "\n" + (p.stderr or "")
            assert "[staffplan-validate-snapshot] OK" in p.stdout

    def test_legacy_validates_as_v1(self):
        p = _run("--in", str(FIXTURE_LEGACY), "--schema", "1")
        assert p.returncode == 0, p.stderr

    def test_refuses_downgrade(self):
        p = _run("--in", str(FIXTURE_V2), "--schema", "1")
        assert p.returncode == 2
        assert "Refusing to downgrade" in p.stderr

    def test_fail_lists_errors(self, tmp_path: Path):
        snap = json.loads(FIXTURE_V2.read_text(encoding="utf-8"))
        snap["spcrs"][0]["workflowStage"] = "limbo"
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps(snap), encoding="utf-8")

        p = _run("--in", str(bad))
        assert p.returncode == 3
        assert "[staffplan-validate-snapshot] FAIL" in p.stderr
        assert "spcrs[0].workflowStage must be a known stage" in p.stderr

    def test_missing_args(self):
        p = _run()
        assert p.returncode == 2
        assert "Provide --in" in p.stderr
