"""
Scope-checked lookup helpers.

Every get-by-id on a child entity MUST go through these helpers instead of
``db.session.get(Model, pk)``. A bare ``.get()`` accepts any id, which lets a
caller reach a step through the wrong test case or a version through the
wrong test case simply by guessing ids.

Usage:
    # Test case must belong to the project in the URL
    tc = get_scoped(TestCase, test_case_id, project_id=project_id)

    # Step must belong to that test case
    step = get_scoped(TestStep, step_id, test_case_id=tc.id)

    # When None is an acceptable outcome
    step = get_scoped_or_none(TestStep, step_id, test_case_id=tc.id)

Scope field resolution:
    Each keyword argument maps directly to a column name on the model.
    If the model does not have that column, a ValueError is raised at call
    time so the bug surfaces during development instead of silently
    performing an unscoped lookup.
"""

import logging

from sqlalchemy import select

from stepwise.core.exceptions import NotFoundError
from stepwise.models import db

logger = logging.getLogger(__name__)


def get_scoped(
    model,
    pk: int,
    *,
    project_id: int | None = None,
    test_case_id: int | None = None,
    test_case_version_id: int | None = None,
):
    """Fetch a single entity by PK with a mandatory parent filter.

    Out-of-scope access is indistinguishable from a missing record: both
    raise NotFoundError → HTTP 404.

    Raises:
        ValueError: No scope given, or a scope names a column the model lacks.
        NotFoundError: The entity does not exist OR belongs to another parent.
    """
    provided_scopes = {
        "project_id": project_id,
        "test_case_id": test_case_id,
        "test_case_version_id": test_case_version_id,
    }
    provided_scopes = {k: v for k, v in provided_scopes.items() if v is not None}

    if not provided_scopes:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter "
            "(project_id, test_case_id or test_case_version_id)."
        )

    missing_fields = sorted(f for f in provided_scopes if not hasattr(model, f))
    if missing_fields:
        raise ValueError(
            f"{model.__name__} has no scope column(s) {missing_fields}; "
            "refusing to perform an unscoped lookup."
        )

    stmt = select(model).where(model.id == pk)
    for field, value in provided_scopes.items():
        stmt = stmt.where(getattr(model, field) == value)

    result = db.session.execute(stmt).scalar_one_or_none()

    if result is None:
        logger.debug(
            "get_scoped: %s id=%s not found in scope %s",
            model.__name__,
            pk,
            provided_scopes,
        )
        raise NotFoundError(resource=model.__name__, resource_id=pk, scope=provided_scopes)

    return result


def get_scoped_or_none(
    model,
    pk: int,
    *,
    project_id: int | None = None,
    test_case_id: int | None = None,
    test_case_version_id: int | None = None,
):
    """Same as get_scoped but returns None instead of raising NotFoundError."""
    try:
        return get_scoped(
            model,
            pk,
            project_id=project_id,
            test_case_id=test_case_id,
            test_case_version_id=test_case_version_id,
        )
    except NotFoundError:
        return None
