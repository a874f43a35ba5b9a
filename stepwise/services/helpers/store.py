"""Persistent-store adapter for sibling sets.

Thin layer over the Flask-SQLAlchemy session used by the ordering and
version services:

- atomic():           one transaction per unit of work; commit or roll back
- SiblingSet:         (model, parent column, parent id) triple naming one set
- load_siblings():    rows of a set, ascending by order
- max_order():        current maximum order of a set (None when empty)
- apply_orders():     write an order assignment row by row
- delete_many():      delete rows of a set by id (ORM cascades apply)

Transaction policy: callers never call db.session.commit() directly for
ordering changes; every structural change goes through atomic().
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from stepwise.core.exceptions import StoreError
from stepwise.models import db
from stepwise.services.ordering_engine import SiblingOrder

logger = logging.getLogger(__name__)


@contextmanager
def atomic(operation: str):
    """Run the enclosed block as one transaction.

    On success the session is committed. On any exception the session is
    rolled back; SQLAlchemy failures are re-raised as StoreError, domain
    errors (NotFoundError, ValidationError, ...) propagate unchanged.

    Usage::

        with atomic("reorder_steps"):
            ...writes...
    """
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Store transaction failed operation=%s", operation)
        raise StoreError(operation) from exc
    except Exception:
        db.session.rollback()
        raise


@dataclass(frozen=True)
class SiblingSet:
    """Rows of ``model`` whose ``parent_field`` equals ``parent_id``."""

    model: type
    parent_field: str
    parent_id: int

    @property
    def parent_column(self):
        return getattr(self.model, self.parent_field)

    def select(self):
        return select(self.model).where(self.parent_column == self.parent_id)


def load_siblings(sibling_set: SiblingSet) -> list:
    """Return all rows of the set, ascending by order (ties broken by id)."""
    stmt = sibling_set.select().order_by(sibling_set.model.order.asc(), sibling_set.model.id.asc())
    return list(db.session.execute(stmt).scalars().all())


def sibling_orders(rows) -> list[SiblingOrder]:
    return [SiblingOrder(id=row.id, order=row.order) for row in rows]


def max_order(sibling_set: SiblingSet) -> int | None:
    """Current maximum order in the set, or None for an empty set."""
    stmt = select(func.max(sibling_set.model.order)).where(
        sibling_set.parent_column == sibling_set.parent_id
    )
    return db.session.execute(stmt).scalar()


def apply_orders(rows, assignment: list[SiblingOrder], actor: str | None = None) -> int:
    """Write each assigned order onto its row. Returns the number of rows changed.

    ``rows`` must contain every id in ``assignment``; the ordering engine
    guarantees this before anything is written.
    """
    by_id = {row.id: row for row in rows}
    changed = 0
    for item in assignment:
        row = by_id[item.id]
        if row.order == item.order:
            continue
        row.order = item.order
        if actor is not None and hasattr(row, "updated_by"):
            row.updated_by = actor
        changed += 1
    db.session.flush()
    return changed


def delete_many(sibling_set: SiblingSet, ids: list[int]) -> int:
    """Delete the rows of the set whose id is in ``ids``. Returns the count.

    Ids outside the set are ignored. Rows are deleted through the session so
    relationship cascades (steps, versions) run on every backend.
    """
    stmt = sibling_set.select().where(sibling_set.model.id.in_(ids))
    rows = db.session.execute(stmt).scalars().all()
    for row in rows:
        db.session.delete(row)
    db.session.flush()
    return len(rows)
