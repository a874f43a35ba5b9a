"""
Stepwise
Testing Blueprint — projects, test cases, steps and version snapshots.

Endpoints (all under /api/v1):
    Projects:
        GET    /projects                                         — List projects
        POST   /projects                                         — Create project
        GET    /projects/<pid>                                   — Detail

    Test Cases:
        GET    /projects/<pid>/test-cases                        — List (by order)
        POST   /projects/<pid>/test-cases                        — Create (appended)
        PUT    /projects/<pid>/test-cases/reorder                — Reorder {"testCases": [{id, order}]}
        DELETE /projects/<pid>/test-cases/bulk-delete            — Bulk delete {"testCaseIds": [...]}
        GET    /projects/<pid>/test-cases/<tcid>                 — Detail (+ steps)
        PUT    /projects/<pid>/test-cases/<tcid>                 — Update fields
        DELETE /projects/<pid>/test-cases/<tcid>                 — Delete
        POST   /projects/<pid>/test-cases/<tcid>/clone           — Clone with steps

    Test Steps:
        GET    /projects/<pid>/test-cases/<tcid>/steps                    — List (by order)
        POST   /projects/<pid>/test-cases/<tcid>/steps                    — Create (appended)
        PUT    /projects/<pid>/test-cases/<tcid>/steps/reorder            — Reorder {"steps": [{id, order}]}
        DELETE /projects/<pid>/test-cases/<tcid>/steps/bulk-delete        — Bulk delete {"stepIds": [...]}
        POST   /projects/<pid>/test-cases/<tcid>/steps/clone              — Clone {"sourceStepId": id}
        PUT    /projects/<pid>/test-cases/<tcid>/steps/<sid>              — Update content
        PATCH  /projects/<pid>/test-cases/<tcid>/steps/<sid>              — Same, partial body
        DELETE /projects/<pid>/test-cases/<tcid>/steps/<sid>              — Delete
        PUT    /projects/<pid>/test-cases/<tcid>/steps/<sid>/position     — Set one position {"order": n}
        GET    /projects/<pid>/test-steps/search?q=&testCaseId=&actionType= — Search (newest 20)

    Versions:
        GET    /projects/<pid>/test-cases/<tcid>/versions                 — List (newest first)
        POST   /projects/<pid>/test-cases/<tcid>/versions                 — Create snapshot
        GET    /projects/<pid>/test-cases/<tcid>/versions/diff?from=&to=  — Diff by version_no
        GET    /projects/<pid>/test-cases/<tcid>/versions/<vid>           — Detail (+ frozen steps)
        POST   /projects/<pid>/test-cases/<tcid>/versions/<vid>/restore   — Restore live case

Reorder endpoints accept ``?strict=1`` to require final positions 1..N.
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request
from werkzeug.exceptions import HTTPException

from stepwise.core.exceptions import ConflictError, NotFoundError, StoreError, ValidationError
from stepwise.services import ordering_service, version_service
from stepwise.services.helpers.validation import clean_str
from stepwise.utils.errors import E, api_error

logger = logging.getLogger(__name__)

testing_bp = Blueprint("testing", __name__, url_prefix="/api/v1")

# Width of the created_by / updated_by audit columns
_ACTOR_MAX_LEN = 100


# ── Error handlers ───────────────────────────────────────────────────────


@testing_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    # resource_id and scope stay in the logs, never in the response
    logger.debug("Not found: %s", error)
    return api_error(E.NOT_FOUND, f"{error.resource} not found")


@testing_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


@testing_bp.errorhandler(ConflictError)
def _handle_conflict(error: ConflictError):
    return api_error(E.CONFLICT_STATE, str(error))


@testing_bp.errorhandler(StoreError)
def _handle_store_error(error: StoreError):
    return api_error(E.DATABASE, "Database error")


@testing_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in testing_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ── Request helpers ──────────────────────────────────────────────────────


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _actor_from_request(data):
    actor = (
        request.headers.get("X-User")
        or clean_str(data, "updated_by", max_len=_ACTOR_MAX_LEN)
        or "system"
    )
    if len(actor) > _ACTOR_MAX_LEN:
        raise ValidationError(
            f"X-User must be at most {_ACTOR_MAX_LEN} characters", details={"X-User": "too long"},
        )
    g.actor = actor
    return actor


def _strict_requested() -> bool:
    raw = request.args.get("strict")
    if raw is not None:
        return raw.lower() in ("1", "true", "yes")
    return bool(current_app.config.get("ORDERING_STRICT_REORDER", False))


# ═════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════


@testing_bp.route("/projects", methods=["GET"])
def list_projects():
    return jsonify([p.to_dict() for p in ordering_service.list_projects()])


@testing_bp.route("/projects", methods=["POST"])
def create_project():
    data = _json_body()
    project = ordering_service.create_project(data, actor=_actor_from_request(data))
    return jsonify(project.to_dict()), 201


@testing_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project = ordering_service.get_project(project_id)
    return jsonify(project.to_dict(include_counts=True))


# ═════════════════════════════════════════════════════════════════════════
# TEST CASES
# ═════════════════════════════════════════════════════════════════════════


@testing_bp.route("/projects/<int:project_id>/test-cases", methods=["GET"])
def list_test_cases(project_id):
    """List test cases of a project in ascending order."""
    cases = ordering_service.list_test_cases(project_id)
    return jsonify([tc.to_dict() for tc in cases])


@testing_bp.route("/projects/<int:project_id>/test-cases", methods=["POST"])
def create_test_case(project_id):
    """Create a test case at the end of the project."""
    data = _json_body()
    tc = ordering_service.create_test_case(project_id, data, actor=_actor_from_request(data))
    return jsonify(tc.to_dict()), 201


@testing_bp.route("/projects/<int:project_id>/test-cases/reorder", methods=["PUT"])
def reorder_test_cases(project_id):
    data = _json_body()
    count = ordering_service.reorder_test_cases(
        project_id,
        data.get("testCases"),
        actor=_actor_from_request(data),
        strict=_strict_requested(),
    )
    return jsonify({"success": True, "reordered": count})


@testing_bp.route("/projects/<int:project_id>/test-cases/bulk-delete", methods=["DELETE"])
def bulk_delete_test_cases(project_id):
    data = _json_body()
    deleted = ordering_service.bulk_delete_test_cases(
        project_id, data.get("testCaseIds"), actor=_actor_from_request(data),
    )
    return jsonify({"deleted": deleted})


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:test_case_id>", methods=["GET"])
def get_test_case(project_id, test_case_id):
    """Test case detail, steps included unless ?include_steps=false."""
    tc = ordering_service.get_test_case(project_id, test_case_id)
    include_steps = request.args.get("include_steps", "true").lower() in ("true", "1")
    return jsonify(tc.to_dict(include_steps=include_steps))


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:test_case_id>", methods=["PUT"])
def update_test_case(project_id, test_case_id):
    data = _json_body()
    tc = ordering_service.update_test_case(
        project_id, test_case_id, data, actor=_actor_from_request(data),
    )
    return jsonify(tc.to_dict())


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:test_case_id>", methods=["DELETE"])
def delete_test_case(project_id, test_case_id):
    data = _json_body()
    ordering_service.delete_test_case(project_id, test_case_id, actor=_actor_from_request(data))
    return jsonify({"message": "Test case deleted"}), 200


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:test_case_id>/clone", methods=["POST"])
def clone_test_case(project_id, test_case_id):
    data = _json_body()
    clone = ordering_service.clone_test_case(
        project_id, test_case_id, actor=_actor_from_request(data),
    )
    return jsonify(clone.to_dict(include_steps=True)), 201


# ═════════════════════════════════════════════════════════════════════════
# TEST STEPS
# ═════════════════════════════════════════════════════════════════════════


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:test_case_id>/steps", methods=["GET"])
def list_steps(project_id, test_case_id):
    steps = ordering_service.list_steps(project_id, test_case_id)
    return jsonify([s.to_dict() for s in steps])


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:test_case_id>/steps", methods=["POST"])
def create_step(project_id, test_case_id):
    """Create a step at the end of the test case."""
    data = _json_body()
    step = ordering_service.create_step(
        project_id, test_case_id, data, actor=_actor_from_request(data),
    )
    return jsonify(step.to_dict()), 201


@testing_bp.route(
    "/projects/<int:project_id>/test-cases/<int:test_case_id>/steps/reorder", methods=["PUT"],
)
def reorder_steps(project_id, test_case_id):
    """Apply new positions to steps of one test case in a single transaction."""
    data = _json_body()
    count = ordering_service.reorder_steps(
        project_id,
        test_case_id,
        data.get("steps"),
        actor=_actor_from_request(data),
        strict=_strict_requested(),
    )
    return jsonify({"success": True, "reordered": count})


@testing_bp.route(
    "/projects/<int:project_id>/test-cases/<int:test_case_id>/steps/bulk-delete",
    methods=["DELETE"],
)
def bulk_delete_steps(project_id, test_case_id):
    data = _json_body()
    deleted = ordering_service.bulk_delete_steps(
        project_id, test_case_id, data.get("stepIds"), actor=_actor_from_request(data),
    )
    return jsonify({"deleted": deleted})


@testing_bp.route(
    "/projects/<int:project_id>/test-cases/<int:test_case_id>/steps/clone", methods=["POST"],
)
def clone_step(project_id, test_case_id):
    data = _json_body()
    step = ordering_service.clone_step(
        project_id, test_case_id, data.get("sourceStepId"), actor=_actor_from_request(data),
    )
    return jsonify(step.to_dict()), 201


@testing_bp.route(
    "/projects/<int:project_id>/test-cases/<int:test_case_id>/steps/<int:step_id>",
    methods=["PUT", "PATCH"],
)
def update_step(project_id, test_case_id, step_id):
    """Update the content fields present in the body (e.g. only ``disabled``)."""
    data = _json_body()
    step = ordering_service.update_step(
        project_id, test_case_id, step_id, data, actor=_actor_from_request(data),
    )
    return jsonify(step.to_dict())


@testing_bp.route(
    "/projects/<int:project_id>/test-cases/<int:test_case_id>/steps/<int:step_id>",
    methods=["DELETE"],
)
def delete_step(project_id, test_case_id, step_id):
    data = _json_body()
    ordering_service.delete_step(
        project_id, test_case_id, step_id, actor=_actor_from_request(data),
    )
    return jsonify({"message": "Step deleted"}), 200


@testing_bp.route(
    "/projects/<int:project_id>/test-cases/<int:test_case_id>/steps/<int:step_id>/position",
    methods=["PUT"],
)
def update_step_position(project_id, test_case_id, step_id):
    data = _json_body()
    step = ordering_service.update_step_position(
        project_id, test_case_id, step_id, data.get("order"), actor=_actor_from_request(data),
    )
    return jsonify(step.to_dict())


@testing_bp.route("/projects/<int:project_id>/test-steps/search", methods=["GET"])
def search_steps(project_id):
    """Search steps of the whole project. Filters: q, testCaseId, actionType."""
    raw_case_id = request.args.get("testCaseId")
    test_case_id = None
    if raw_case_id:
        try:
            test_case_id = int(raw_case_id)
        except ValueError:
            raise ValidationError(
                "testCaseId must be an integer", details={"testCaseId": raw_case_id},
            )

    steps = ordering_service.search_steps(
        project_id,
        query=request.args.get("q", "").strip() or None,
        test_case_id=test_case_id,
        action_type=request.args.get("actionType", "").strip() or None,
    )
    return jsonify([
        {**s.to_dict(), "test_case": {"id": s.test_case.id, "name": s.test_case.name}}
        for s in steps
    ])


# ═════════════════════════════════════════════════════════════════════════
# VERSIONS
# ═════════════════════════════════════════════════════════════════════════


@testing_bp.route(
    "/projects/<int:project_id>/test-cases/<int:test_case_id>/versions", methods=["GET"],
)
def list_test_case_versions(project_id, test_case_id):
    """List all versions for a test case (latest first)."""
    versions = version_service.list_versions(project_id, test_case_id)
    return jsonify([v.to_dict() for v in versions])


@testing_bp.route(
    "/projects/<int:project_id>/test-cases/<int:test_case_id>/versions", methods=["POST"],
)
def create_test_case_version(project_id, test_case_id):
    """Create an explicit version snapshot for a test case."""
    data = _json_body()
    version = version_service.create_version(
        project_id,
        test_case_id,
        actor=_actor_from_request(data),
        change_summary=data.get("change_summary"),
        version_label=data.get("version_label"),
    )
    return jsonify(version.to_dict(include_steps=True)), 201


@testing_bp.route(
    "/projects/<int:project_id>/test-cases/<int:test_case_id>/versions/diff", methods=["GET"],
)
def diff_test_case_versions(project_id, test_case_id):
    """Return field/step-level diff between two versions."""
    try:
        from_no = int(request.args.get("from", ""))
        to_no = int(request.args.get("to", ""))
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_REQUIRED, "from and to query params are required integers")

    return jsonify(version_service.diff_versions(project_id, test_case_id, from_no, to_no))


@testing_bp.route(
    "/projects/<int:project_id>/test-cases/<int:test_case_id>/versions/<int:version_id>",
    methods=["GET"],
)
def get_test_case_version(project_id, test_case_id, version_id):
    """One version with its frozen steps, ordered by their snapshot position."""
    version, steps = version_service.get_version(
        test_case_id, version_id, project_id=project_id,
    )
    return jsonify({
        "version": version.to_dict(),
        "steps": [s.to_dict() for s in steps],
    })


@testing_bp.route(
    "/projects/<int:project_id>/test-cases/<int:test_case_id>/versions/<int:version_id>/restore",
    methods=["POST"],
)
def restore_test_case_version(project_id, test_case_id, version_id):
    """Restore a test case to a previous version, then snapshot the result."""
    data = _json_body()
    tc, new_version = version_service.restore_version(
        project_id,
        test_case_id,
        version_id,
        actor=_actor_from_request(data),
        change_summary=data.get("change_summary"),
    )
    return jsonify({
        "test_case": tc.to_dict(include_steps=True),
        "version": new_version.to_dict(),
    })
