"""Version snapshot service — immutable point-in-time copies of test cases.

A version is a TestCaseVersion row plus one TestStepVersion row per live
step, written in a single transaction so no reader ever sees a version
with only part of its steps. Version rows are never updated or deleted by
this service; retrieval reads the version tables only, never the live ones.

Transaction policy: public functions own their transaction via
store.atomic(). ``snapshot_test_case`` and ``bump_and_snapshot`` write into
the caller's transaction. The ordering service calls them when a test case is
created or cloned, and after each single-step create, update, clone or
delete, so the snapshot commits together with the change it records.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select

from stepwise.core.exceptions import NotFoundError
from stepwise.models import db
from stepwise.models.testing import (
    STEP_CONTENT_FIELDS,
    TestCase,
    TestCaseVersion,
    TestStep,
    TestStepVersion,
)
from stepwise.services import ordering_engine
from stepwise.services.helpers import store
from stepwise.services.helpers.scoped_queries import get_scoped
from stepwise.services.helpers.validation import clean_str

logger = logging.getLogger(__name__)

# Fields restored onto the live test case. ``order`` is deliberately absent:
# the case's position among its project siblings is live state.
_RESTORE_FIELDS = ("name", "description", "status", "tags", "playwright_test_script")

# Width of TestCase.version and TestCaseVersion.version
_VERSION_LABEL_MAX_LEN = 20

_DIFF_IGNORE_FIELDS = {
    "id", "test_case_id", "version_no", "change_summary", "created_by", "created_at", "steps",
}


def increment_version(version: str | None) -> str:
    """Bump the patch component of a ``major.minor.patch`` label.

    Malformed labels restart at ``1.0.1``.
    """
    parts = (version or "").split(".")
    if len(parts) != 3:
        return "1.0.1"
    try:
        major, minor, patch = (int(p) for p in parts)
    except ValueError:
        return "1.0.1"
    return f"{major}.{minor}.{patch + 1}"


def _next_version_no(test_case_id: int) -> int:
    latest = db.session.execute(
        select(func.max(TestCaseVersion.version_no)).where(
            TestCaseVersion.test_case_id == test_case_id
        )
    ).scalar()
    return (latest or 0) + 1


# ═════════════════════════════════════════════════════════════════════════════
# CREATE
# ═════════════════════════════════════════════════════════════════════════════


def snapshot_test_case(
    tc: TestCase,
    *,
    actor: str | None = None,
    change_summary: str = "",
    version_label: str | None = None,
) -> TestCaseVersion:
    """Copy the live test case and its current steps into version rows.

    Runs inside the caller's transaction. ``version_label`` defaults to the
    test case's current semantic version.
    """
    db.session.flush()
    steps = store.load_siblings(store.SiblingSet(TestStep, "test_case_id", tc.id))

    version = TestCaseVersion(
        test_case_id=tc.id,
        version_no=_next_version_no(tc.id),
        version=version_label or tc.version,
        name=tc.name,
        description=tc.description,
        status=tc.status,
        tags=tc.tags,
        playwright_test_script=tc.playwright_test_script,
        order=tc.order,
        change_summary=change_summary or "snapshot",
        created_by=actor,
    )
    db.session.add(version)
    db.session.flush()

    for step in steps:
        step_version = TestStepVersion(
            test_case_version_id=version.id,
            source_step_id=step.id,
            order=step.order,
            disabled=step.disabled,
            created_by=actor,
        )
        for field in STEP_CONTENT_FIELDS:
            setattr(step_version, field, getattr(step, field))
        db.session.add(step_version)
    db.session.flush()
    return version


def bump_and_snapshot(
    tc: TestCase,
    *,
    actor: str | None = None,
    change_summary: str = "",
    version_label: str | None = None,
) -> TestCaseVersion:
    """Move the live case to its next semantic version and snapshot it.

    ``version_label`` replaces the automatic patch bump. Runs inside the
    caller's transaction.
    """
    tc.version = version_label or increment_version(tc.version)
    if actor:
        tc.updated_by = actor
    return snapshot_test_case(
        tc, actor=actor, change_summary=change_summary, version_label=tc.version,
    )


def create_version(
    project_id: int,
    test_case_id: int,
    *,
    actor: str | None = None,
    change_summary: str = "",
    version_label: str = "",
) -> TestCaseVersion:
    """Take a new snapshot of a test case and bump its semantic version.

    An explicit ``version_label`` replaces the automatic patch bump.

    Raises:
        ValidationError: label or summary is not a string, or the label is too long.
        NotFoundError: test case missing or not in the project.
    """
    fields = {"version_label": version_label, "change_summary": change_summary}
    label = (clean_str(fields, "version_label", max_len=_VERSION_LABEL_MAX_LEN) or "").strip()
    summary = clean_str(fields, "change_summary") or "manual snapshot"

    with store.atomic("create_version"):
        tc = get_scoped(TestCase, test_case_id, project_id=project_id)
        version = bump_and_snapshot(
            tc, actor=actor, change_summary=summary, version_label=label or None,
        )

    logger.info(
        "Version created test_case_id=%s version_no=%s label=%s steps=%d",
        test_case_id, version.version_no, version.version, len(version.step_versions),
    )
    return version


# ═════════════════════════════════════════════════════════════════════════════
# READ
# ═════════════════════════════════════════════════════════════════════════════


def list_versions(project_id: int, test_case_id: int) -> list[TestCaseVersion]:
    """All versions of a test case, newest first."""
    get_scoped(TestCase, test_case_id, project_id=project_id)
    stmt = (
        select(TestCaseVersion)
        .where(TestCaseVersion.test_case_id == test_case_id)
        .order_by(TestCaseVersion.version_no.desc())
    )
    return list(db.session.execute(stmt).scalars().all())


def get_version(
    test_case_id: int,
    version_id: int,
    *,
    project_id: int | None = None,
) -> tuple[TestCaseVersion, list[TestStepVersion]]:
    """Return a version and its steps ordered by their frozen position.

    A version owned by another test case is reported exactly like a missing
    one, so guessed ids never reveal data.

    Raises:
        NotFoundError: test case not in project (when ``project_id`` given),
            version missing, or version owned by another test case.
    """
    if project_id is not None:
        get_scoped(TestCase, test_case_id, project_id=project_id)

    version = db.session.get(TestCaseVersion, version_id)
    if version is None or version.test_case_id != test_case_id:
        raise NotFoundError(
            resource="TestCaseVersion", resource_id=version_id,
            scope={"test_case_id": test_case_id},
        )

    steps = db.session.execute(
        select(TestStepVersion)
        .where(TestStepVersion.test_case_version_id == version.id)
        .order_by(TestStepVersion.order.asc(), TestStepVersion.id.asc())
    ).scalars().all()
    return version, list(steps)


def _get_version_by_no(test_case_id: int, version_no: int) -> TestCaseVersion:
    version = db.session.execute(
        select(TestCaseVersion).where(
            TestCaseVersion.test_case_id == test_case_id,
            TestCaseVersion.version_no == version_no,
        )
    ).scalar_one_or_none()
    if version is None:
        raise NotFoundError(resource="TestCaseVersion", resource_id=version_no)
    return version


def _compute_snapshot_diff(left_snapshot: dict, right_snapshot: dict) -> dict:
    left = left_snapshot or {}
    right = right_snapshot or {}

    fields = []
    for key in sorted(set(left.keys()) | set(right.keys())):
        if key in _DIFF_IGNORE_FIELDS:
            continue
        if left.get(key) != right.get(key):
            fields.append({"field": key, "from": left.get(key), "to": right.get(key)})

    left_steps = {s["order"]: s for s in (left.get("steps") or [])}
    right_steps = {s["order"]: s for s in (right.get("steps") or [])}
    step_added = []
    step_removed = []
    step_changed = []

    for order in sorted(set(left_steps) | set(right_steps)):
        ls = left_steps.get(order)
        rs = right_steps.get(order)
        if ls and not rs:
            step_removed.append({"order": order, "from": ls})
            continue
        if rs and not ls:
            step_added.append({"order": order, "to": rs})
            continue

        row_changes = {}
        for col in STEP_CONTENT_FIELDS + ("disabled",):
            if ls.get(col) != rs.get(col):
                row_changes[col] = {"from": ls.get(col), "to": rs.get(col)}
        if row_changes:
            step_changed.append({"order": order, "changes": row_changes})

    return {
        "field_changes": fields,
        "steps": {
            "added": step_added,
            "removed": step_removed,
            "changed": step_changed,
        },
        "summary": {
            "field_change_count": len(fields),
            "step_added_count": len(step_added),
            "step_removed_count": len(step_removed),
            "step_changed_count": len(step_changed),
        },
    }


def diff_versions(project_id: int, test_case_id: int, from_no: int, to_no: int) -> dict:
    """Field- and step-level diff between two version numbers of one test case."""
    get_scoped(TestCase, test_case_id, project_id=project_id)
    left = _get_version_by_no(test_case_id, from_no)
    right = _get_version_by_no(test_case_id, to_no)
    return {
        "test_case_id": test_case_id,
        "from": left.to_dict(),
        "to": right.to_dict(),
        "diff": _compute_snapshot_diff(
            left.to_dict(include_steps=True), right.to_dict(include_steps=True),
        ),
    }


# ═════════════════════════════════════════════════════════════════════════════
# RESTORE
# ═════════════════════════════════════════════════════════════════════════════


def restore_version(
    project_id: int,
    test_case_id: int,
    version_id: int,
    *,
    actor: str | None = None,
    change_summary: str = "",
) -> tuple[TestCase, TestCaseVersion]:
    """Make the live test case match a version, then snapshot the result.

    Live steps are replaced by copies of the version's steps, renumbered
    densely in their frozen relative order. The source version is read only.
    Everything happens in one transaction.

    Returns:
        (live test case, newly created version)
    """
    summary = clean_str({"change_summary": change_summary}, "change_summary")

    with store.atomic("restore_version"):
        tc = get_scoped(TestCase, test_case_id, project_id=project_id)
        source, source_steps = get_version(test_case_id, version_id)

        for field in _RESTORE_FIELDS:
            setattr(tc, field, getattr(source, field))
        if actor:
            tc.updated_by = actor

        live_set = store.SiblingSet(TestStep, "test_case_id", tc.id)
        store.delete_many(live_set, [s.id for s in store.load_siblings(live_set)])

        assignment = ordering_engine.compute_reindex_after_removal(
            [sv.id for sv in source_steps]
        )
        by_id = {sv.id: sv for sv in source_steps}
        for item in assignment:
            sv = by_id[item.id]
            step = TestStep(
                test_case_id=tc.id,
                order=item.order,
                disabled=sv.disabled,
                created_by=actor,
                updated_by=actor,
            )
            for field in STEP_CONTENT_FIELDS:
                setattr(step, field, getattr(sv, field))
            db.session.add(step)
        db.session.flush()
        # The in-memory collection still holds the deleted rows.
        db.session.expire(tc, ["steps"])

        new_version = bump_and_snapshot(
            tc,
            actor=actor,
            change_summary=summary or f"restored from version {source.version_no}",
        )

    logger.info(
        "Version restored test_case_id=%s from_version_no=%s new_version_no=%s",
        test_case_id, source.version_no, new_version.version_no,
    )
    return tc, new_version
