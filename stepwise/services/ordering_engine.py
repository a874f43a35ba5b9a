"""Ordering engine — pure order arithmetic for sibling sets.

A sibling set is the collection of rows sharing one parent: the steps of a
test case, or the test cases of a project. Nothing in this module touches
the database; the ordering service loads siblings, calls in here, and
persists the result.

Functions:
- parse_reorder_payload / parse_id_list: loose JSON → validated input structs
- compute_reorder: apply caller-supplied absolute positions verbatim
- compute_reindex_after_removal: dense renumbering after a delete
- compute_append_order: next position at the end of a set
- validate_strict_order: optional uniqueness + contiguity check
"""

from __future__ import annotations

from dataclasses import dataclass

from stepwise.core.exceptions import NotFoundError, ValidationError

BASE_ORDER = 1


@dataclass(frozen=True)
class SiblingOrder:
    """Current (or resulting) position of one sibling."""

    id: int
    order: int


@dataclass(frozen=True)
class ReorderItem:
    """One entry of a reorder request."""

    id: int
    new_order: int


def _is_int(value) -> bool:
    # bool is an int subclass; True/False are never valid ids or positions
    return isinstance(value, int) and not isinstance(value, bool)


# ── Input parsing ────────────────────────────────────────────────────────────


def parse_reorder_payload(raw, field: str = "items") -> list[ReorderItem]:
    """Validate a list of ``{"id": int, "order": int}`` dicts.

    Raises:
        ValidationError: non-list or empty input, missing/non-integer id or
            order, negative order, or the same id listed twice.
    """
    if not isinstance(raw, list) or not raw:
        raise ValidationError(
            f"{field} must be a non-empty list",
            details={field: "expected a non-empty list of {id, order} objects"},
        )

    items: list[ReorderItem] = []
    seen: set[int] = set()
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(
                f"{field}[{idx}] must be an object",
                details={f"{field}[{idx}]": "expected {id, order}"},
            )
        item_id = entry.get("id")
        new_order = entry.get("order")
        if not _is_int(item_id):
            raise ValidationError(
                f"{field}[{idx}].id must be an integer",
                details={f"{field}[{idx}].id": repr(item_id)},
            )
        if not _is_int(new_order) or new_order < 0:
            raise ValidationError(
                f"{field}[{idx}].order must be a non-negative integer",
                details={f"{field}[{idx}].order": repr(new_order)},
            )
        if item_id in seen:
            raise ValidationError(
                f"{field} lists id {item_id} more than once",
                details={f"{field}[{idx}].id": "duplicate"},
            )
        seen.add(item_id)
        items.append(ReorderItem(id=item_id, new_order=new_order))
    return items


def parse_id_list(raw, field: str = "ids") -> list[int]:
    """Validate a non-empty list of integer ids. Duplicates are collapsed."""
    if not isinstance(raw, list) or not raw:
        raise ValidationError(
            f"{field} must be a non-empty list",
            details={field: "expected a non-empty list of ids"},
        )
    bad = [value for value in raw if not _is_int(value)]
    if bad:
        raise ValidationError(
            f"{field} must contain only integer ids",
            details={field: f"invalid values: {bad[:5]!r}"},
        )
    # Preserve order while deduplicating
    return list(dict.fromkeys(raw))


def parse_id(raw, field: str = "id") -> int:
    """Validate a single integer id."""
    if not _is_int(raw):
        raise ValidationError(f"{field} must be an integer id", details={field: repr(raw)})
    return raw


def parse_position(raw, field: str = "order") -> int:
    """Validate a single non-negative integer position."""
    if not _is_int(raw) or raw < 0:
        raise ValidationError(
            f"{field} must be a non-negative integer",
            details={field: repr(raw)},
        )
    return raw


# ── Order computation ────────────────────────────────────────────────────────


def compute_reorder(
    current_siblings: list[SiblingOrder],
    requested_order: list[ReorderItem],
    resource: str = "Sibling",
) -> list[SiblingOrder]:
    """Return the assignment for every requested item, positions taken verbatim.

    The caller's absolute positions are trusted: no renumbering happens here,
    so gaps or collisions in ``requested_order`` pass through unchanged.
    Siblings not mentioned in the request keep their position and are not
    part of the result.

    Raises:
        NotFoundError: a requested id is not a member of ``current_siblings``.
    """
    known = {s.id for s in current_siblings}
    for item in requested_order:
        if item.id not in known:
            raise NotFoundError(resource=resource, resource_id=item.id)
    return [SiblingOrder(id=item.id, order=item.new_order) for item in requested_order]


def compute_reindex_after_removal(
    remaining_siblings_in_order: list[int],
    base: int = BASE_ORDER,
) -> list[SiblingOrder]:
    """Assign dense positions ``base, base+1, ...`` keeping the input sequence."""
    return [
        SiblingOrder(id=sibling_id, order=base + offset)
        for offset, sibling_id in enumerate(remaining_siblings_in_order)
    ]


def compute_append_order(current_max_order: int | None) -> int:
    """Position for a new sibling at the end of the set (``1`` when empty)."""
    if current_max_order is None:
        return BASE_ORDER
    return current_max_order + 1


def validate_strict_order(
    assignment: list[SiblingOrder],
    base: int = BASE_ORDER,
) -> None:
    """Require the resulting positions to be unique and contiguous from ``base``.

    Only applied when strict reordering is requested; the default reorder
    path accepts caller positions as given.
    """
    orders = sorted(s.order for s in assignment)
    expected = list(range(base, base + len(assignment)))
    if orders != expected:
        duplicates = sorted({o for o in orders if orders.count(o) > 1})
        raise ValidationError(
            f"Strict reorder requires positions {base}..{base + len(assignment) - 1} "
            "with no gaps or duplicates",
            details={"orders": orders, "duplicates": duplicates},
        )
