"""JSON error envelope shared by every API route: ``{"error", "code", "details"?}``."""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes returned in the ``code`` field of the envelope."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    NOT_FOUND = "ERR_NOT_FOUND"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    RATE_LIMITED = "ERR_RATE_LIMITED"
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.CONFLICT_STATE: 409,
    E.PAYLOAD_TOO_LARGE: 413,
    E.RATE_LIMITED: 429,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Build the ``(response, status)`` pair for an error.

    The status comes from ``status`` when given, otherwise from the code
    (unknown codes map to 400). ``details`` is omitted from the body when empty.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)
