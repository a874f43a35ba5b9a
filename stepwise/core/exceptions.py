"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from stepwise.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="TestCase", resource_id=42)
    raise ValidationError("stepIds must be a non-empty list", details={"stepIds": "..."})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-scope access attempts
    (a step requested through the wrong test case, a version requested
    through the wrong test case). A 403 would confirm the resource exists;
    a 404 does not.

    Args:
        resource: Human-readable model/entity name (e.g. "TestStep").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        scope: Optional description of the enforced scope. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        scope: dict | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.scope = scope or {}
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if self.scope:
            msg += f" (scope={self.scope})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or violates an ordering rule.

    Raised before any store access, so a request that fails validation
    never leaves partial writes.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation conflicts with the current state of a resource.

    Reserved for optimistic-concurrency checks on sibling-set reordering;
    nothing raises it yet. Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} conflict on {field}={value!r}"
        super().__init__(msg)


class StoreError(Exception):
    """Raised when the underlying store transaction fails.

    The transaction has already been rolled back when this is raised.
    Maps to HTTP 500.

    Args:
        operation: Name of the unit of work that failed (for logs).
    """

    def __init__(self, operation: str, message: str = "Database error") -> None:
        self.operation = operation
        super().__init__(message)
