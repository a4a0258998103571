from __future__ import annotations

import contextlib
import datetime as dt
import io
import itertools
import json
import unittest
from pathlib import Path

from staffplan.errors import NotFoundError, PermissionDeniedError, ValidationError
from staffplan.model import Comment
from staffplan.persistence import MemorySnapshotStore
from staffplan.store import StaffingStore

REPO_ROOT = Path(__file__).resolve().parents[1]
FIXTURE = REPO_ROOT / "tests" / "fixtures" / "staffing_snapshot_v2.json"
FIXED = dt.datetime(2024, 6, 15, 12, 0, tzinfo=dt.timezone.utc)
FIXED_ISO = "2024-06-15T12:00:00Z"


def _ids():
    n = itertools.count(1)
    return lambda kind: f"{kind}-{next(n)}"


def _store(**kwargs) -> StaffingStore:
    snap = json.loads(FIXTURE.read_text(encoding="utf-8"))
    return StaffingStore.from_snapshot(snap, clock=lambda: FIXED, id_factory=_ids(), **kwargs)


class _BrokenPersistence:
    def __init__(self) -> None:
        self.calls = 0

    def load(self):
        return None

    def save(self, snapshot) -> None:
        self.calls += 1
        raise OSError("disk full")


class TestSpcrLifecycleContract(unittest.TestCase):
    def test_full_approval_path_appends_one_comment_per_step(self) -> None:
        store = _store()
        created = store.create_spcr(
            {
                "project_id": 2525840,
                "type": "increase",
                "position": "Superintendent",
                "budget": 50000,
                "createdBy": "Alice Moreno",
            }
        )
        self.assertTrue(created.ok, created.error)
        spcr = created.value
        self.assertEqual(spcr.workflow_stage, "submitted")
        self.assertEqual(spcr.status, "pending")
        self.assertEqual(spcr.budget, 50000.0)
        self.assertEqual(spcr.created_at, FIXED_ISO)
        self.assertEqual(spcr.comments, ())

        steps = [
            ("route", "project-manager", "pe-review", "pending", "forward"),
            ("approve", "project-executive", "pe-approved", "pending", "approve"),
            ("forward", "project-executive", "executive-review", "pending", "forward"),
            ("approve", "executive", "final-approved", "approved", "approve"),
            ("implement", "executive", "closed", "approved", "forward"),
        ]
        for n, (action, role, stage, status, tag) in enumerate(steps, start=1):
            res = store.transition_spcr(spcr.id, action, role, comment=f"step {n}", author=role)
            self.assertTrue(res.ok, res.error)
            got = store.get_spcr(spcr.id)
            self.assertEqual(got.workflow_stage, stage)
            self.assertEqual(got.status, status)
            self.assertEqual(len(got.comments), n)
            self.assertEqual(got.comments[-1].content, f"step {n}")
            self.assertEqual(got.comments[-1].action, tag)

        final = store.get_spcr(spcr.id)
        self.assertEqual(final.closure, "implemented")
        self.assertEqual(final.to_dict()["status"], "approved")

    def test_transition_without_comment_adds_none(self) -> None:
        store = _store()
        res = store.transition_spcr("SPCR-001", "route", "project-manager")
        self.assertTrue(res.ok)
        self.assertEqual(res.value.comments, ())

    def test_wrong_role_is_rejected_and_nothing_changes(self) -> None:
        store = _store()
        before = store.get_spcr("SPCR-002")
        res = store.transition_spcr("SPCR-002", "approve", "project-manager", comment="lgtm")
        self.assertFalse(res.ok)
        self.assertIsInstance(res.error, PermissionDeniedError)
        self.assertEqual(store.get_spcr("SPCR-002"), before)
        with self.assertRaises(PermissionDeniedError):
            res.unwrap()

    def test_illegal_action_for_stage(self) -> None:
        store = _store()
        res = store.transition_spcr("SPCR-001", "implement", "executive")
        self.assertIsInstance(res.error, ValidationError)
        self.assertEqual(store.get_spcr("SPCR-001").workflow_stage, "submitted")

    def test_available_actions_for_role(self) -> None:
        store = _store()
        self.assertEqual(store.available_actions("SPCR-003", "executive"), ["approve", "reject"])
        self.assertEqual(store.available_actions("SPCR-003", "project-executive"), [])
        with self.assertRaises(NotFoundError):
            store.available_actions("nope", "executive")


class TestCreateSpcrContract(unittest.TestCase):
    def test_missing_required_fields(self) -> None:
        store = _store()
        n = len(store.state().spcrs)
        res = store.create_spcr({"project_id": 2525840, "type": "increase"})
        self.assertFalse(res.ok)
        self.assertIsInstance(res.error, ValidationError)
        self.assertIn("position", str(res.error))
        self.assertEqual(len(store.state().spcrs), n)

    def test_unknown_project(self) -> None:
        res = _store().create_spcr({"project_id": 999, "type": "increase", "position": "Scheduler"})
        self.assertIsInstance(res.error, NotFoundError)

    def test_bad_type(self) -> None:
        res = _store().create_spcr({"project_id": 2525840, "type": "swap", "position": "Scheduler"})
        self.assertIsInstance(res.error, ValidationError)

    def test_reversed_dates(self) -> None:
        res = _store().create_spcr(
            {
                "project_id": 2525840,
                "type": "increase",
                "position": "Scheduler",
                "startDate": "2024-09-01",
                "endDate": "2024-08-01",
            }
        )
        self.assertIsInstance(res.error, ValidationError)

    def test_budget_defaults_to_impact_estimate(self) -> None:
        res = _store().create_spcr(
            {
                "project_id": 2525840,
                "type": "increase",
                "position": "Field Engineer",
                "startDate": "2024-07-01",
                "endDate": "2024-07-29",
            }
        )
        self.assertTrue(res.ok, res.error)
        # 28 days -> 4 weeks at 58/h x 40h
        self.assertAlmostEqual(res.value.budget, 58 * 40 * 4)

    def test_status_and_stage_in_input_are_ignored(self) -> None:
        res = _store().create_spcr(
            {
                "project_id": 2525840,
                "type": "increase",
                "position": "Scheduler",
                "workflowStage": "final-approved",
                "status": "approved",
            }
        )
        self.assertTrue(res.ok, res.error)
        self.assertEqual(res.value.workflow_stage, "submitted")

    def test_generated_ids_are_unique(self) -> None:
        store = _store()
        a = store.create_spcr({"project_id": 2525840, "type": "increase", "position": "Scheduler"}).unwrap()
        b = store.create_spcr({"project_id": 2525840, "type": "decrease", "position": "Scheduler"}).unwrap()
        self.assertNotEqual(a.id, b.id)


class TestUpdateSpcrContract(unittest.TestCase):
    def test_unknown_id(self) -> None:
        res = _store().update_spcr("missing", {"explanation": "x"})
        self.assertIsInstance(res.error, NotFoundError)

    def test_field_merge_refreshes_updated_at(self) -> None:
        store = _store()
        res = store.update_spcr("SPCR-001", {"explanation": "Revised", "budget": 1000})
        self.assertTrue(res.ok, res.error)
        got = store.get_spcr("SPCR-001")
        self.assertEqual(got.explanation, "Revised")
        self.assertEqual(got.budget, 1000.0)
        self.assertEqual(got.updated_at, FIXED_ISO)
        self.assertEqual(got.created_at, "2024-06-01T09:00:00Z")

    def test_legal_stage_edge(self) -> None:
        store = _store()
        res = store.update_spcr("SPCR-002", {"workflowStage": "pe-approved", "status": "pending"})
        self.assertTrue(res.ok, res.error)
        self.assertEqual(store.get_spcr("SPCR-002").workflow_stage, "pe-approved")

    def test_illegal_stage_edge_leaves_record_unchanged(self) -> None:
        store = _store()
        before = store.get_spcr("SPCR-001")
        res = store.update_spcr("SPCR-001", {"workflowStage": "final-approved", "explanation": "skip"})
        self.assertIsInstance(res.error, ValidationError)
        self.assertEqual(store.get_spcr("SPCR-001"), before)

    def test_divergent_status(self) -> None:
        res = _store().update_spcr("SPCR-003", {"workflowStage": "final-approved", "status": "rejected"})
        self.assertIsInstance(res.error, ValidationError)

    def test_close_selects_closure_from_status(self) -> None:
        store = _store()
        res = store.update_spcr("SPCR-004", {"workflowStage": "closed", "status": "rejected"})
        self.assertTrue(res.ok, res.error)
        got = store.get_spcr("SPCR-004")
        self.assertEqual((got.workflow_stage, got.closure, got.status), ("closed", "rejected", "rejected"))

    def test_identity_fields_are_not_patchable(self) -> None:
        store = _store()
        for key in ("id", "createdAt", "createdBy", "comments"):
            res = store.update_spcr("SPCR-001", {key: "x"})
            self.assertIsInstance(res.error, ValidationError, key)

    def test_unknown_field(self) -> None:
        res = _store().update_spcr("SPCR-001", {"colour": "red"})
        self.assertIsInstance(res.error, ValidationError)


class TestCommentsContract(unittest.TestCase):
    def test_comments_are_append_only(self) -> None:
        store = _store()
        res = store.add_spcr_comment("SPCR-002", {"author": "Frank Lee", "content": "Looks fine", "action": "approve"})
        self.assertTrue(res.ok, res.error)
        got = store.get_spcr("SPCR-002")
        self.assertEqual([c.id for c in got.comments], ["C-1", res.value.id])
        self.assertEqual(got.comments[-1].timestamp, FIXED_ISO)
        self.assertEqual(got.updated_at, FIXED_ISO)

    def test_author_and_content_required(self) -> None:
        store = _store()
        self.assertIsInstance(store.add_spcr_comment("SPCR-002", {"author": "", "content": "x"}).error, ValidationError)
        self.assertIsInstance(store.add_spcr_comment("SPCR-002", {"author": "x"}).error, ValidationError)
        self.assertEqual(len(store.get_spcr("SPCR-002").comments), 1)

    def test_bad_action_tag(self) -> None:
        res = _store().add_spcr_comment("SPCR-002", {"author": "a", "content": "b", "action": "veto"})
        self.assertIsInstance(res.error, ValidationError)

    def test_unknown_spcr(self) -> None:
        res = _store().add_spcr_comment("nope", {"author": "a", "content": "b"})
        self.assertIsInstance(res.error, NotFoundError)

    def test_comment_record_is_accepted(self) -> None:
        store = _store()
        res = store.add_spcr_comment("SPCR-002", Comment(id="C-9", author="pm", content="hello", timestamp="", action="forward"))
        self.assertTrue(res.ok, res.error)
        self.assertEqual((res.value.id, res.value.author, res.value.action), ("C-9", "pm", "forward"))
        self.assertEqual(res.value.timestamp, FIXED_ISO)
        self.assertEqual(store.get_spcr("SPCR-002").comments[-1], res.value)

    def test_comment_record_reusing_an_id_gets_a_fresh_one(self) -> None:
        store = _store()
        res = store.add_spcr_comment("SPCR-002", Comment(id="C-1", author="pm", content="again", timestamp=""))
        self.assertTrue(res.ok, res.error)
        self.assertNotEqual(res.value.id, "C-1")
        ids = [c.id for c in store.get_spcr("SPCR-002").comments]
        self.assertEqual(len(ids), len(set(ids)))

    def test_comment_of_other_type_is_a_validation_failure(self) -> None:
        res = _store().add_spcr_comment("SPCR-002", "looks fine")  # type: ignore[arg-type]
        self.assertFalse(res.ok)
        self.assertIsInstance(res.error, ValidationError)


class TestStaffAssignmentContract(unittest.TestCase):
    def test_full_replacement(self) -> None:
        store = _store()
        res = store.update_staff_assignment(
            "S004",
            [{"project_id": 2525841, "role": "Project Manager", "startDate": "2024-07-01", "endDate": "2024-12-31"}],
        )
        self.assertTrue(res.ok, res.error)
        member = store.get_staff("S004")
        self.assertEqual(len(member.assignments), 1)
        self.assertEqual(member.assignments[0].start_date, dt.date(2024, 7, 1))
        self.assertIn(member, store.get_staff_by_project(2525841))

    def test_reversed_dates_rejected(self) -> None:
        store = _store()
        before = store.get_staff("S001")
        res = store.update_staff_assignment(
            "S001",
            [{"project_id": 2525840, "role": "PM", "startDate": "2024-12-31", "endDate": "2024-01-01"}],
        )
        self.assertIsInstance(res.error, ValidationError)
        self.assertEqual(store.get_staff("S001"), before)

    def test_unknown_staff(self) -> None:
        res = _store().update_staff_assignment("S999", [])
        self.assertIsInstance(res.error, NotFoundError)


class TestViewPreferencesContract(unittest.TestCase):
    def test_filters_view_mode_and_draft(self) -> None:
        store = _store()
        self.assertTrue(store.set_filters({"search": "ben"}).ok)
        self.assertEqual(store.filters, {"search": "ben", "position": "all", "project": "all"})
        self.assertIsInstance(store.set_filters({"colour": "red"}).error, ValidationError)

        self.assertTrue(store.set_view_mode("quarter").ok)
        self.assertIsInstance(store.set_view_mode("decade").error, ValidationError)
        self.assertEqual(store.view_mode, "quarter")

        self.assertTrue(store.set_view_filter("pending").ok)
        self.assertIsInstance(store.set_view_filter("mine").error, ValidationError)

        draft = {"position": "Scheduler"}
        store.set_spcr_draft(draft)
        draft["position"] = "mutated"
        self.assertEqual(store.spcr_draft, {"position": "Scheduler"})
        store.clear_spcr_draft()
        self.assertIsNone(store.state().spcr_draft)


class TestPersistenceSideChannelContract(unittest.TestCase):
    def test_saves_after_successful_mutation_only(self) -> None:
        mem = MemorySnapshotStore()
        store = _store(persistence=mem)
        store.add_spcr_comment("SPCR-001", {"author": "a", "content": "b"})
        self.assertEqual(mem.saves, 1)
        store.add_spcr_comment("SPCR-001", {"author": "", "content": "b"})
        self.assertEqual(mem.saves, 1)

        saved = mem.load()
        self.assertEqual(saved["schema_version"], 2)
        spcr = next(s for s in saved["spcrs"] if s["id"] == "SPCR-001")
        self.assertEqual(len(spcr["comments"]), 1)

    def test_failing_persistence_does_not_change_result_or_state(self) -> None:
        broken = _BrokenPersistence()
        store = _store(persistence=broken)
        err = io.StringIO()
        with contextlib.redirect_stderr(err):
            res = store.transition_spcr("SPCR-001", "route", "project-manager")
        self.assertTrue(res.ok)
        self.assertEqual(broken.calls, 1)
        self.assertEqual(store.get_spcr("SPCR-001").workflow_stage, "pe-review")
        self.assertIn("[staffplan] WARN:", err.getvalue())


if __name__ == "__main__":
    unittest.main(verbosity=2)
