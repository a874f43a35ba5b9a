"""Ordering service — every structural change to a sibling set goes through here.

Sibling sets:
    - test cases of one project  (parent column: project_id)
    - steps of one test case     (parent column: test_case_id)

Rules:
  - Input is validated before the store is touched; a ValidationError never
    leaves partial writes.
  - Ancestry is checked end to end (project → test case → step). Anything
    outside the path's scope is reported as NotFoundError.
  - Each operation runs in exactly one store.atomic() block: all order
    writes of a reorder, or a delete plus its reindex, commit together or
    not at all.
  - ``order`` is written only by the functions in this module.
  - Single-step create, update, clone and delete bump the test case's
    semantic version and snapshot it inside the same transaction.
  - Actor strings come from the request's authentication context and are
    stored verbatim in created_by / updated_by.

Operations with a lower guarantee:
  - reorder_*: caller-supplied positions are stored as given unless
    ``strict=True``.
  - update_step_position: writes one position without touching siblings.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_, select

from stepwise.core.exceptions import NotFoundError, ValidationError
from stepwise.models import db
from stepwise.models.project import Project
from stepwise.models.testing import (
    STEP_CONTENT_FIELDS,
    TEST_CASE_STATUSES,
    TestCase,
    TestStep,
)
from stepwise.services import ordering_engine as engine
from stepwise.services import version_service
from stepwise.services.helpers import store
from stepwise.services.helpers.scoped_queries import get_scoped
from stepwise.services.helpers.validation import clean_bool, clean_str

logger = logging.getLogger(__name__)

_TEST_CASE_FIELDS = ("name", "description", "status", "tags", "playwright_test_script")

SEARCH_LIMIT = 20


def _case_set(project_id: int) -> store.SiblingSet:
    return store.SiblingSet(TestCase, "project_id", project_id)


def _step_set(test_case_id: int) -> store.SiblingSet:
    return store.SiblingSet(TestStep, "test_case_id", test_case_id)


def _get_project(project_id: int) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


# ── Shared sibling-set mechanics ─────────────────────────────────────────────


def _reorder(sibling_set, items, *, actor, strict) -> int:
    rows = store.load_siblings(sibling_set)
    current = store.sibling_orders(rows)
    assignment = engine.compute_reorder(current, items, resource=sibling_set.model.__name__)

    if strict:
        merged = {s.id: s.order for s in current}
        merged.update({s.id: s.order for s in assignment})
        engine.validate_strict_order(
            [engine.SiblingOrder(id=k, order=v) for k, v in merged.items()]
        )

    changed = store.apply_orders(rows, assignment, actor=actor)
    logger.debug(
        "Reorder %s %s=%s requested=%d changed=%d",
        sibling_set.model.__name__, sibling_set.parent_field, sibling_set.parent_id,
        len(assignment), changed,
    )
    return len(assignment)


def _reindex(sibling_set, *, actor=None) -> int:
    """Renumber a set densely from 1, keeping its current relative order."""
    rows = store.load_siblings(sibling_set)
    assignment = engine.compute_reindex_after_removal([row.id for row in rows])
    return store.apply_orders(rows, assignment, actor=actor)


def _delete_and_reindex(sibling_set, ids, *, actor=None) -> int:
    deleted = store.delete_many(sibling_set, ids)
    if deleted:
        _reindex(sibling_set, actor=actor)
    return deleted


# ═════════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════════


def create_project(data: dict, actor: str | None = None) -> Project:
    name = clean_str(data, "name", required=True, max_len=200)
    description = clean_str(data, "description") or ""
    url = clean_str(data, "url", max_len=500) or ""

    with store.atomic("create_project"):
        project = Project(
            name=name, description=description, url=url,
            created_by=actor, updated_by=actor,
        )
        db.session.add(project)
        db.session.flush()

    logger.info("Project created id=%s", project.id)
    return project


def get_project(project_id: int) -> Project:
    return _get_project(project_id)


def list_projects() -> list[Project]:
    return list(db.session.execute(select(Project).order_by(Project.id)).scalars().all())


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASES
# ═════════════════════════════════════════════════════════════════════════════


def list_test_cases(project_id: int) -> list[TestCase]:
    _get_project(project_id)
    return store.load_siblings(_case_set(project_id))


def get_test_case(project_id: int, test_case_id: int) -> TestCase:
    return get_scoped(TestCase, test_case_id, project_id=project_id)


def create_test_case(project_id: int, data: dict, actor: str | None = None) -> TestCase:
    """Append a new test case at the end of the project and snapshot it."""
    name = clean_str(data, "name", required=True, max_len=300)
    status = clean_str(data, "status") or "pending"
    if status not in TEST_CASE_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(TEST_CASE_STATUSES))}",
            details={"status": status},
        )
    description = clean_str(data, "description") or ""
    tags = clean_str(data, "tags") or ""
    script = clean_str(data, "playwright_test_script") or ""

    with store.atomic("create_test_case"):
        _get_project(project_id)
        order = engine.compute_append_order(store.max_order(_case_set(project_id)))
        tc = TestCase(
            project_id=project_id,
            order=order,
            name=name,
            description=description,
            status=status,
            tags=tags,
            playwright_test_script=script,
            created_by=actor,
            updated_by=actor,
        )
        db.session.add(tc)
        db.session.flush()
        version_service.snapshot_test_case(tc, actor=actor, change_summary="initial create")

    logger.info("Test case created id=%s project_id=%s order=%s", tc.id, project_id, tc.order)
    return tc


def update_test_case(
    project_id: int, test_case_id: int, data: dict, actor: str | None = None,
) -> TestCase:
    """Update scalar fields. Position changes must use reorder_test_cases."""
    if "order" in data:
        raise ValidationError(
            "order cannot be changed here; use the reorder endpoint",
            details={"order": "read-only"},
        )
    updates = {}
    for field in _TEST_CASE_FIELDS:
        if field in data:
            updates[field] = clean_str(data, field, required=(field == "name"))
    if "status" in updates and updates["status"] not in TEST_CASE_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(TEST_CASE_STATUSES))}",
            details={"status": updates["status"]},
        )

    with store.atomic("update_test_case"):
        tc = get_scoped(TestCase, test_case_id, project_id=project_id)
        for field, value in updates.items():
            setattr(tc, field, value)
        if actor:
            tc.updated_by = actor

    return tc


def delete_test_case(project_id: int, test_case_id: int, actor: str | None = None) -> None:
    """Delete one test case (steps and versions cascade) and close the gap."""
    with store.atomic("delete_test_case"):
        deleted = _delete_and_reindex(_case_set(project_id), [test_case_id], actor=actor)
        if not deleted:
            raise NotFoundError(resource="TestCase", resource_id=test_case_id)

    logger.info("Test case deleted id=%s project_id=%s", test_case_id, project_id)


def bulk_delete_test_cases(project_id: int, raw_ids, actor: str | None = None) -> int:
    """Delete the listed test cases of a project, then reindex the survivors."""
    ids = engine.parse_id_list(raw_ids, field="testCaseIds")

    with store.atomic("bulk_delete_test_cases"):
        _get_project(project_id)
        deleted = _delete_and_reindex(_case_set(project_id), ids, actor=actor)

    logger.info(
        "Bulk delete test cases project_id=%s requested=%d deleted=%d",
        project_id, len(ids), deleted,
    )
    return deleted


def reorder_test_cases(
    project_id: int, raw_items, actor: str | None = None, *, strict: bool = False,
) -> int:
    """Apply caller-supplied positions to a project's test cases atomically."""
    items = engine.parse_reorder_payload(raw_items, field="testCases")

    with store.atomic("reorder_test_cases"):
        _get_project(project_id)
        count = _reorder(_case_set(project_id), items, actor=actor, strict=strict)

    logger.info("Test cases reordered project_id=%s count=%d strict=%s", project_id, count, strict)
    return count


def clone_test_case(project_id: int, test_case_id: int, actor: str | None = None) -> TestCase:
    """Copy a test case and all of its steps to the end of the same project.

    Steps keep their relative order (renumbered 1..N) and their disabled flag.
    """
    with store.atomic("clone_test_case"):
        source = get_scoped(TestCase, test_case_id, project_id=project_id)
        source_steps = store.load_siblings(_step_set(source.id))

        clone = TestCase(
            project_id=project_id,
            order=engine.compute_append_order(store.max_order(_case_set(project_id))),
            name=f"{source.name} (Clone)",
            description=source.description,
            status="pending",
            tags=source.tags,
            version=source.version,
            playwright_test_script=source.playwright_test_script,
            created_by=actor,
            updated_by=actor,
        )
        db.session.add(clone)
        db.session.flush()

        assignment = engine.compute_reindex_after_removal([s.id for s in source_steps])
        by_id = {s.id: s for s in source_steps}
        for item in assignment:
            src = by_id[item.id]
            step = TestStep(
                test_case_id=clone.id,
                order=item.order,
                disabled=src.disabled,
                created_by=actor,
                updated_by=actor,
            )
            for field in STEP_CONTENT_FIELDS:
                setattr(step, field, getattr(src, field))
            db.session.add(step)
        db.session.flush()

        version_service.snapshot_test_case(
            clone, actor=actor, change_summary=f"cloned from test case {source.id}",
        )

    logger.info(
        "Test case cloned source_id=%s clone_id=%s steps=%d",
        test_case_id, clone.id, len(source_steps),
    )
    return clone


# ═════════════════════════════════════════════════════════════════════════════
# TEST STEPS
# ═════════════════════════════════════════════════════════════════════════════


def list_steps(project_id: int, test_case_id: int) -> list[TestStep]:
    tc = get_scoped(TestCase, test_case_id, project_id=project_id)
    return store.load_siblings(_step_set(tc.id))


def search_steps(
    project_id: int,
    *,
    query: str | None = None,
    test_case_id: int | None = None,
    action_type: str | None = None,
    limit: int = SEARCH_LIMIT,
) -> list[TestStep]:
    """Find steps across a project's test cases, newest first.

    ``query`` matches action, data or expected; ``action_type`` matches the
    action only. Both are case-insensitive substring matches.
    """
    _get_project(project_id)
    stmt = (
        select(TestStep)
        .join(TestCase, TestStep.test_case_id == TestCase.id)
        .where(TestCase.project_id == project_id)
    )
    if test_case_id is not None:
        stmt = stmt.where(TestStep.test_case_id == test_case_id)
    if action_type:
        stmt = stmt.where(TestStep.action.ilike(f"%{action_type}%"))
    if query:
        pattern = f"%{query}%"
        stmt = stmt.where(or_(
            TestStep.action.ilike(pattern),
            TestStep.data.ilike(pattern),
            TestStep.expected.ilike(pattern),
        ))
    stmt = stmt.order_by(TestStep.created_at.desc(), TestStep.id.desc()).limit(limit)
    return list(db.session.execute(stmt).scalars().all())


def _record_step_change(tc: TestCase, *, actor, change_summary: str) -> None:
    """Bump the owning case's version and snapshot it in the current transaction."""
    version_service.bump_and_snapshot(tc, actor=actor, change_summary=change_summary)


def create_step(
    project_id: int, test_case_id: int, data: dict, actor: str | None = None,
) -> TestStep:
    """Append a new step at the end of a test case.

    The test case goes back to ``draft`` and gets a new version.
    """
    action = clean_str(data, "action", required=True)
    content = {field: clean_str(data, field) or "" for field in STEP_CONTENT_FIELDS if field != "action"}
    disabled = clean_bool(data, "disabled") or False

    with store.atomic("create_step"):
        tc = get_scoped(TestCase, test_case_id, project_id=project_id)
        step = TestStep(
            test_case_id=tc.id,
            order=engine.compute_append_order(store.max_order(_step_set(tc.id))),
            action=action,
            disabled=disabled,
            created_by=actor,
            updated_by=actor,
            **content,
        )
        db.session.add(step)
        db.session.flush()
        tc.status = "draft"
        _record_step_change(tc, actor=actor, change_summary=f"step {step.order} added")

    logger.info("Step created id=%s test_case_id=%s order=%s", step.id, test_case_id, step.order)
    return step


def update_step(
    project_id: int, test_case_id: int, step_id: int, data: dict, actor: str | None = None,
) -> TestStep:
    """Update step content; only the fields present in ``data`` change.

    ``order`` is not accepted here. ``action`` may be omitted but not blanked.
    """
    if "order" in data:
        raise ValidationError(
            "order cannot be changed here; use the reorder or position endpoint",
            details={"order": "read-only"},
        )
    updates = {}
    if "action" in data:
        updates["action"] = clean_str(data, "action", required=True)
    for field in STEP_CONTENT_FIELDS:
        if field != "action" and field in data:
            updates[field] = clean_str(data, field) or ""
    disabled = clean_bool(data, "disabled")
    if disabled is not None:
        updates["disabled"] = disabled
    if not updates:
        fields = ", ".join(STEP_CONTENT_FIELDS + ("disabled",))
        raise ValidationError(f"Nothing to update; expected one of: {fields}")

    with store.atomic("update_step"):
        tc = get_scoped(TestCase, test_case_id, project_id=project_id)
        step = get_scoped(TestStep, step_id, test_case_id=tc.id)
        for field, value in updates.items():
            setattr(step, field, value)
        if actor:
            step.updated_by = actor
        db.session.flush()
        _record_step_change(tc, actor=actor, change_summary=f"step {step.order} updated")

    logger.info("Step updated id=%s test_case_id=%s fields=%s", step_id, test_case_id, sorted(updates))
    return step


def delete_step(
    project_id: int, test_case_id: int, step_id: int, actor: str | None = None,
) -> None:
    """Delete one step, renumber the remaining steps 1..N and snapshot the case."""
    with store.atomic("delete_step"):
        tc = get_scoped(TestCase, test_case_id, project_id=project_id)
        deleted = _delete_and_reindex(_step_set(tc.id), [step_id], actor=actor)
        if not deleted:
            raise NotFoundError(resource="TestStep", resource_id=step_id)
        _record_step_change(tc, actor=actor, change_summary="step deleted")

    logger.info("Step deleted id=%s test_case_id=%s", step_id, test_case_id)


def bulk_delete_steps(
    project_id: int, test_case_id: int, raw_ids, actor: str | None = None,
) -> int:
    """Delete the listed steps of one test case, then reindex the survivors.

    Ids that are not steps of this test case are ignored. Returns the number
    of steps actually deleted.
    """
    ids = engine.parse_id_list(raw_ids, field="stepIds")

    with store.atomic("bulk_delete_steps"):
        tc = get_scoped(TestCase, test_case_id, project_id=project_id)
        deleted = _delete_and_reindex(_step_set(tc.id), ids, actor=actor)

    logger.info(
        "Bulk delete steps test_case_id=%s requested=%d deleted=%d",
        test_case_id, len(ids), deleted,
    )
    return deleted


def reorder_steps(
    project_id: int, test_case_id: int, raw_items, actor: str | None = None,
    *, strict: bool = False,
) -> int:
    """Apply caller-supplied positions to a test case's steps atomically.

    Every id must be a step of the test case; otherwise NotFoundError is
    raised and nothing is written.
    """
    items = engine.parse_reorder_payload(raw_items, field="steps")

    with store.atomic("reorder_steps"):
        tc = get_scoped(TestCase, test_case_id, project_id=project_id)
        count = _reorder(_step_set(tc.id), items, actor=actor, strict=strict)

    logger.info("Steps reordered test_case_id=%s count=%d strict=%s", test_case_id, count, strict)
    return count


def clone_step(
    project_id: int, test_case_id: int, raw_source_id, actor: str | None = None,
) -> TestStep:
    """Duplicate a step of this test case at the end of the same test case.

    The copy takes every content field of the source; it is always enabled.
    """
    source_id = engine.parse_id(raw_source_id, field="sourceStepId")

    with store.atomic("clone_step"):
        tc = get_scoped(TestCase, test_case_id, project_id=project_id)
        source = get_scoped(TestStep, source_id, test_case_id=tc.id)

        step = TestStep(
            test_case_id=tc.id,
            order=engine.compute_append_order(store.max_order(_step_set(tc.id))),
            disabled=False,
            created_by=actor,
            updated_by=actor,
        )
        for field in STEP_CONTENT_FIELDS:
            setattr(step, field, getattr(source, field))
        db.session.add(step)
        db.session.flush()
        _record_step_change(
            tc, actor=actor, change_summary=f"step {source.order} cloned to {step.order}",
        )

    logger.info(
        "Step cloned source_id=%s new_id=%s test_case_id=%s order=%s",
        source_id, step.id, test_case_id, step.order,
    )
    return step


def update_step_position(
    project_id: int, test_case_id: int, step_id: int, raw_order, actor: str | None = None,
) -> TestStep:
    """Move one step to ``raw_order`` without renumbering its siblings.

    Lower guarantee than reorder_steps: the caller is responsible for
    avoiding collisions with other steps.
    """
    new_order = engine.parse_position(raw_order)

    with store.atomic("update_step_position"):
        tc = get_scoped(TestCase, test_case_id, project_id=project_id)
        step = get_scoped(TestStep, step_id, test_case_id=tc.id)
        step.order = new_order
        if actor:
            step.updated_by = actor

    logger.info("Step position set id=%s test_case_id=%s order=%s", step_id, test_case_id, new_order)
    return step
