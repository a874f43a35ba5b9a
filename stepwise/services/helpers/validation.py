"""Input coercion helpers shared by the services.

Every helper raises ValidationError on a bad value, so callers can run them
before opening a transaction.
"""

from __future__ import annotations

from stepwise.core.exceptions import ValidationError


def clean_str(data: dict, field: str, *, required: bool = False, max_len: int | None = None):
    """Return a string field, None when absent and optional.

    Required values are stripped and must be non-empty.
    """
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", details={field: "required"})
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: repr(value)})
    value = value.strip() if required else value
    if required and not value:
        raise ValidationError(f"{field} is required", details={field: "required"})
    if max_len and len(value) > max_len:
        raise ValidationError(
            f"{field} must be at most {max_len} characters", details={field: "too long"},
        )
    return value


def clean_bool(data: dict, field: str):
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean", details={field: repr(value)})
    return value
