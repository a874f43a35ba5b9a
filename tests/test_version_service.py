"""
Tests — version snapshots.

Covers:
    - semantic version bump
    - snapshot copies scalars and every step (order, disabled) in one commit
    - frozen steps unaffected by later live reorder / edit / delete
    - retrieval scope isolation (version of another test case → NotFoundError)
    - version rows are append-only
    - diff between version numbers
    - restore replaces live steps and records a new version
"""

import pytest
from sqlalchemy.exc import OperationalError

from stepwise.core.exceptions import NotFoundError, StoreError, ValidationError
from stepwise.models import db as _db
from stepwise.models.testing import TestCaseVersion
from stepwise.services import ordering_service, version_service


def _add_steps(project_id, test_case_id, *actions):
    return [
        ordering_service.create_step(project_id, test_case_id, {"action": a}, actor="tester")
        for a in actions
    ]


class TestIncrementVersion:
    @pytest.mark.parametrize("label,expected", [
        ("1.0.0", "1.0.1"),
        ("2.4.9", "2.4.10"),
        ("1.0", "1.0.1"),
        ("v1.0.0", "1.0.1"),
        ("", "1.0.1"),
        (None, "1.0.1"),
    ])
    def test_bump(self, label, expected):
        assert version_service.increment_version(label) == expected


class TestCreateVersion:
    def test_copies_case_and_steps(self, project, case):
        s1, s2 = _add_steps(project.id, case.id, "open", "submit")
        ordering_service.update_step(project.id, case.id, s2.id, {"disabled": True})

        version = version_service.create_version(
            project.id, case.id, actor="dave", change_summary="baseline",
        )

        # initial create, two step adds and one step update came first
        assert version.version_no == 5
        assert version.version == "1.0.4"
        assert version.name == "Login"
        assert version.status == "draft"
        assert version.order == case.order
        assert version.created_by == "dave"
        frozen = [(sv.source_step_id, sv.order, sv.action, sv.disabled) for sv in version.step_versions]
        assert frozen == [(s1.id, 1, "open", False), (s2.id, 2, "submit", True)]
        assert case.version == "1.0.4"

    def test_explicit_label(self, project, case):
        version = version_service.create_version(project.id, case.id, version_label="2.0.0")
        assert version.version == "2.0.0"
        assert case.version == "2.0.0"

    def test_wrong_project(self, project, case):
        other = ordering_service.create_project({"name": "Other"})
        with pytest.raises(NotFoundError):
            version_service.create_version(other.id, case.id)

    def test_partial_snapshot_never_committed(self, project, case, monkeypatch):
        _add_steps(project.id, case.id, "a", "b")
        before = TestCaseVersion.query.count()

        def _fail_on_step_version(**kwargs):
            raise OperationalError("INSERT INTO test_step_versions", {}, Exception("disk full"))

        monkeypatch.setattr(version_service, "TestStepVersion", _fail_on_step_version)
        with pytest.raises(StoreError):
            version_service.create_version(project.id, case.id)

        assert TestCaseVersion.query.count() == before
        _db.session.expire_all()
        assert case.version == "1.0.2"

    @pytest.mark.parametrize("kwargs", [
        {"version_label": 5},
        {"version_label": "1.0.0-release-candidate-7"},
        {"change_summary": {"x": 1}},
    ])
    def test_bad_label_or_summary_rejected(self, project, case, kwargs):
        before = TestCaseVersion.query.count()
        with pytest.raises(ValidationError):
            version_service.create_version(project.id, case.id, **kwargs)
        assert TestCaseVersion.query.count() == before
        assert case.version == "1.0.0"

    def test_list_newest_first(self, project, case):
        version_service.create_version(project.id, case.id)
        version_service.create_version(project.id, case.id)
        numbers = [v.version_no for v in version_service.list_versions(project.id, case.id)]
        assert numbers == [3, 2, 1]


class TestVersionImmutability:
    def test_live_reorder_does_not_touch_snapshot(self, project, case):
        s1, s2, s3 = _add_steps(project.id, case.id, "a", "b", "c")
        version = version_service.create_version(project.id, case.id)
        version_id = version.id

        ordering_service.reorder_steps(
            project.id, case.id,
            [{"id": s3.id, "order": 1}, {"id": s1.id, "order": 2}, {"id": s2.id, "order": 3}],
        )
        ordering_service.update_step(project.id, case.id, s1.id, {"action": "changed"})
        ordering_service.bulk_delete_steps(project.id, case.id, [s2.id])
        ordering_service.update_test_case(project.id, case.id, {"name": "Renamed"})

        _db.session.expire_all()
        frozen, steps = version_service.get_version(case.id, version_id, project_id=project.id)
        assert frozen.name == "Login"
        assert [(s.order, s.action) for s in steps] == [(1, "a"), (2, "b"), (3, "c")]

    def test_update_of_version_row_rejected(self, project, case):
        version = TestCaseVersion.query.filter_by(test_case_id=case.id).first()
        version.name = "tampered"
        with pytest.raises(ValidationError):
            _db.session.commit()
        _db.session.rollback()
        assert _db.session.get(TestCaseVersion, version.id).name == "Login"

    def test_update_of_step_version_row_rejected(self, project, case):
        _add_steps(project.id, case.id, "a")
        version = version_service.create_version(project.id, case.id)
        sv = version.step_versions[0]
        sv.order = 42
        with pytest.raises(ValidationError):
            _db.session.flush()
        _db.session.rollback()

    def test_direct_delete_rejected(self, project, case):
        version = TestCaseVersion.query.filter_by(test_case_id=case.id).first()
        _db.session.delete(version)
        with pytest.raises(ValidationError):
            _db.session.flush()
        _db.session.rollback()
        assert TestCaseVersion.query.filter_by(test_case_id=case.id).count() == 1


class TestGetVersion:
    def test_steps_ordered_by_frozen_order(self, project, case):
        s1, s2 = _add_steps(project.id, case.id, "a", "b")
        ordering_service.reorder_steps(
            project.id, case.id, [{"id": s1.id, "order": 2}, {"id": s2.id, "order": 1}],
        )
        version = version_service.create_version(project.id, case.id)

        _, steps = version_service.get_version(case.id, version.id)

        assert [s.action for s in steps] == ["b", "a"]

    def test_version_of_other_case_not_found(self, project, case):
        other = ordering_service.create_test_case(project.id, {"name": "Other"})
        foreign = version_service.create_version(project.id, other.id)

        with pytest.raises(NotFoundError):
            version_service.get_version(case.id, foreign.id)

    def test_missing_version(self, project, case):
        with pytest.raises(NotFoundError):
            version_service.get_version(case.id, 9999)

    def test_case_outside_project(self, project, case):
        other = ordering_service.create_project({"name": "Other"})
        version = TestCaseVersion.query.filter_by(test_case_id=case.id).first()
        with pytest.raises(NotFoundError):
            version_service.get_version(case.id, version.id, project_id=other.id)


class TestDiffVersions:
    def test_field_and_step_changes(self, project, case):
        (s1,) = _add_steps(project.id, case.id, "a")
        left = version_service.create_version(project.id, case.id)
        ordering_service.update_test_case(project.id, case.id, {"name": "Login v2"})
        ordering_service.update_step(project.id, case.id, s1.id, {"action": "a2"})
        _add_steps(project.id, case.id, "b")
        right = version_service.create_version(project.id, case.id)

        result = version_service.diff_versions(
            project.id, case.id, left.version_no, right.version_no,
        )

        diff = result["diff"]
        changed = {c["field"] for c in diff["field_changes"]}
        assert "name" in changed
        assert "version" in changed
        assert diff["summary"]["step_added_count"] == 1
        assert diff["steps"]["changed"][0]["changes"]["action"] == {"from": "a", "to": "a2"}

    def test_unknown_version_no(self, project, case):
        with pytest.raises(NotFoundError):
            version_service.diff_versions(project.id, case.id, 1, 7)


class TestRestoreVersion:
    def test_restore_replaces_steps_and_fields(self, project, case):
        _add_steps(project.id, case.id, "a", "b")
        baseline = version_service.create_version(project.id, case.id)
        baseline_id, baseline_no = baseline.id, baseline.version_no

        ordering_service.update_test_case(project.id, case.id, {"name": "Changed", "status": "failed"})
        ordering_service.bulk_delete_steps(
            project.id, case.id, [s.id for s in ordering_service.list_steps(project.id, case.id)],
        )
        _add_steps(project.id, case.id, "z")
        latest_no = version_service.list_versions(project.id, case.id)[0].version_no

        tc, new_version = version_service.restore_version(
            project.id, case.id, baseline_id, actor="erin",
        )

        assert tc.name == "Login"
        assert tc.status == "draft"  # adding steps put the case in draft before the baseline
        live = [(s.order, s.action) for s in ordering_service.list_steps(project.id, case.id)]
        assert live == [(1, "a"), (2, "b")]
        assert new_version.change_summary == f"restored from version {baseline_no}"
        assert latest_no == baseline_no + 1
        assert new_version.version_no == latest_no + 1
        assert tc.version == new_version.version

        # Source version untouched
        _, source_steps = version_service.get_version(case.id, baseline_id)
        assert [s.action for s in source_steps] == ["a", "b"]

    def test_restore_keeps_project_position(self, project, case):
        other = ordering_service.create_test_case(project.id, {"name": "Second"})
        baseline = TestCaseVersion.query.filter_by(test_case_id=case.id).first()
        ordering_service.reorder_test_cases(
            project.id, [{"id": case.id, "order": 2}, {"id": other.id, "order": 1}],
        )

        tc, _ = version_service.restore_version(project.id, case.id, baseline.id)

        assert tc.order == 2

    def test_restore_summary_must_be_string(self, project, case):
        baseline = TestCaseVersion.query.filter_by(test_case_id=case.id).first()
        with pytest.raises(ValidationError):
            version_service.restore_version(
                project.id, case.id, baseline.id, change_summary=["restored"],
            )

    def test_restore_foreign_version_not_found(self, project, case):
        other = ordering_service.create_test_case(project.id, {"name": "Other"})
        foreign = TestCaseVersion.query.filter_by(test_case_id=other.id).first()
        with pytest.raises(NotFoundError):
            version_service.restore_version(project.id, case.id, foreign.id)
