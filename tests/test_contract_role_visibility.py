from __future__ import annotations

import itertools
import json
import unittest
from pathlib import Path

from staffplan.config import StaffingConfig
from staffplan.errors import ValidationError
from staffplan.model import SPCR
from staffplan.roles import (
    apply_view_filter,
    inbox_counts,
    project_spcr_summary,
    spcrs_for_role,
)
from staffplan.store import StaffingStore
from staffplan.workflow import ROLES, STAGES

REPO_ROOT = Path(__file__).resolve().parents[1]
FIXTURE = REPO_ROOT / "tests" / "fixtures" / "staffing_snapshot_v2.json"


def _store() -> StaffingStore:
    return StaffingStore.from_snapshot(json.loads(FIXTURE.read_text(encoding="utf-8")))


def _spcr(rid: str, project_id: int, stage: str, created_at: str = "2024-01-01T00:00:00Z") -> SPCR:
    closure = "implemented" if stage == "closed" else None
    return SPCR(
        id=rid,
        project_id=project_id,
        type="increase",
        position="Scheduler",
        workflow_stage=stage,
        closure=closure,
        created_at=created_at,
    )


class TestRoleVisibilityContract(unittest.TestCase):
    def test_fixture_visibility_per_role(self) -> None:
        store = _store()
        ids = lambda role: [s.id for s in store.get_spcrs_by_role(role)]  # noqa: E731
        self.assertEqual(ids("project-manager"), ["SPCR-001", "SPCR-002", "SPCR-005"])
        self.assertEqual(ids("project-executive"), ["SPCR-002", "SPCR-003", "SPCR-004"])
        self.assertEqual(ids("executive"), ["SPCR-003", "SPCR-004"])

    def test_role_view_is_duplicate_free_subset_for_every_stage_mix(self) -> None:
        cfg = StaffingConfig()
        pool = []
        for n, (stage, pid) in enumerate(itertools.product(STAGES, (2525840, 2525843, 9999999))):
            pool.append(_spcr(f"R-{n}", pid, stage))
        doubled = pool + pool[:5]

        for role in ROLES:
            got = spcrs_for_role(doubled, role, cfg)
            ids = [s.id for s in got]
            self.assertEqual(len(ids), len(set(ids)), role)
            for s in got:
                self.assertIn(s, pool)
            # collection order preserved
            self.assertEqual(ids, [s.id for s in pool if s.id in set(ids)])

            # consistent with the fixed scope
            for s in got:
                if role == "project-manager":
                    self.assertEqual(s.project_id, cfg.pm_project_id)
                elif role == "project-executive":
                    self.assertIn(s.project_id, cfg.portfolio_project_ids)
                    self.assertNotIn(s.workflow_stage, ("submitted", "closed", "withdrawn"))
                else:
                    self.assertIn(s.workflow_stage, ("executive-review", "final-approved", "final-rejected"))

    def test_scope_comes_from_config(self) -> None:
        cfg = StaffingConfig(pm_project_id=2525841)
        got = spcrs_for_role([_spcr("a", 2525840, "submitted"), _spcr("b", 2525841, "submitted")], "project-manager", cfg)
        self.assertEqual([s.id for s in got], ["b"])

    def test_unknown_role(self) -> None:
        with self.assertRaises(ValidationError):
            spcrs_for_role([], "intern")

    def test_projects_for_role(self) -> None:
        store = _store()
        self.assertEqual([p.project_id for p in store.projects_for_role("project-manager")], [2525840])
        self.assertEqual([p.project_id for p in store.projects_for_role("project-executive")], [2525840, 2525841])
        self.assertEqual(len(store.projects_for_role("executive")), 3)


class TestViewFilterContract(unittest.TestCase):
    def setUp(self) -> None:
        self.items = [
            _spcr("old", 2525840, "pe-review", "2024-01-01T00:00:00Z"),
            _spcr("new", 2525840, "executive-review", "2024-03-01T00:00:00Z"),
            _spcr("mid", 2525840, "pe-approved", "2024-02-01T00:00:00Z"),
            _spcr("done", 2525840, "closed", "2024-04-01T00:00:00Z"),
            _spcr("no", 2525840, "final-rejected", "2024-01-15T00:00:00Z"),
        ]

    def test_all_hides_closed_newest_first(self) -> None:
        got = apply_view_filter(self.items, "all", "executive")
        self.assertEqual([s.id for s in got], ["new", "mid", "no", "old"])

    def test_pending_is_role_relative(self) -> None:
        self.assertEqual([s.id for s in apply_view_filter(self.items, "pending", "project-executive")], ["old"])
        self.assertEqual([s.id for s in apply_view_filter(self.items, "pending", "executive")], ["new"])
        self.assertEqual([s.id for s in apply_view_filter(self.items, "pending", "project-manager")], ["new", "old"])

    def test_approved_rejected_closed(self) -> None:
        self.assertEqual([s.id for s in apply_view_filter(self.items, "approved", "executive")], ["mid"])
        self.assertEqual([s.id for s in apply_view_filter(self.items, "rejected", "executive")], ["no"])
        self.assertEqual([s.id for s in apply_view_filter(self.items, "closed", "executive")], ["done"])

    def test_unknown_filter(self) -> None:
        with self.assertRaises(ValidationError):
            apply_view_filter(self.items, "mine", "executive")

    def test_store_uses_stored_view_filter(self) -> None:
        store = _store()
        store.set_view_filter("pending")
        self.assertEqual([s.id for s in store.visible_spcrs("executive")], ["SPCR-003"])
        self.assertEqual([s.id for s in store.visible_spcrs("executive", "approved")], ["SPCR-004"])


class TestInboxAndSummaryContract(unittest.TestCase):
    def test_inbox_counts(self) -> None:
        store = _store()
        c = store.inbox_counts("project-executive")
        self.assertEqual((c.total, c.pending, c.approved, c.rejected, c.closed, c.needs_action), (3, 1, 1, 0, 0, 1))
        pm = store.inbox_counts("project-manager")
        self.assertEqual((pm.total, pm.closed), (2, 1))

    def test_inbox_counts_pure_function(self) -> None:
        items = [_spcr("a", 1, "executive-review"), _spcr("b", 1, "executive-review")]
        self.assertEqual(inbox_counts(items, "executive").needs_action, 2)

    def test_project_summary(self) -> None:
        s = _store().project_spcr_summary(2525841)
        self.assertEqual((s.total, s.pending, s.approved, s.rejected), (2, 1, 1, 0))
        self.assertEqual(s.approval_rate, 100.0)

    def test_empty_summary(self) -> None:
        s = project_spcr_summary([])
        self.assertEqual((s.total, s.approval_rate, s.top_position, s.top_position_count), (0, 0.0, None, 0))


if __name__ == "__main__":
    unittest.main(verbosity=2)
