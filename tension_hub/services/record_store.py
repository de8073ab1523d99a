"""
Record Store Adapter over the SQLAlchemy session.

The hierarchy and analytics services only talk to the database through
this class, using a handful of filtered reads and single-record writes:

    store = RecordStore()
    store.find_by_id(Chart, chart_id)
    store.find_many(Action, chart_id__in=frontier, child_chart_id__is_null=False)
    store.find_many_by_ids(Action, blocked_ids)
    store.update(Action, action_id, child_chart_id=None)

Filter keywords are ``<column>`` (equality) or ``<column>__<op>`` with op one
of: in, not_in, is_null, ne, lt, lte, gt, gte.

Any SQLAlchemy failure is re-raised as StoreUnavailableError; this layer
does not retry.
"""

import logging
from contextlib import contextmanager

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from tension_hub.core.exceptions import NotFoundError, StoreUnavailableError
from tension_hub.models import db

logger = logging.getLogger(__name__)

# Keeps IN-lists below the bind-parameter ceiling of older SQLite builds.
_BATCH_SIZE = 500

_OPERATORS = {
    "in": lambda col, v: col.in_(list(v)),
    "not_in": lambda col, v: col.notin_(list(v)),
    "is_null": lambda col, v: col.is_(None) if v else col.isnot(None),
    "ne": lambda col, v: col != v,
    "lt": lambda col, v: col < v,
    "lte": lambda col, v: col <= v,
    "gt": lambda col, v: col > v,
    "gte": lambda col, v: col >= v,
}


def _chunks(values, size=_BATCH_SIZE):
    values = list(values)
    for i in range(0, len(values), size):
        yield values[i:i + size]


class RecordStore:
    """Filtered read / single-record write access to the persistent models."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    # ── Filters ──────────────────────────────────────────────────────────

    @staticmethod
    def _conditions(kind, filters: dict) -> list:
        conditions = []
        for key, value in filters.items():
            field, _, op = key.partition("__")
            column = getattr(kind, field, None)
            if column is None:
                raise ValueError(f"{kind.__name__} has no column {field!r}")
            if not op:
                conditions.append(column.is_(None) if value is None else column == value)
                continue
            if op not in _OPERATORS:
                raise ValueError(f"Unsupported filter operator {op!r} in {key!r}")
            conditions.append(_OPERATORS[op](column, value))
        return conditions

    @staticmethod
    def _has_empty_in(filters: dict) -> bool:
        return any(k.endswith("__in") and not list(v) for k, v in filters.items())

    @staticmethod
    def _ordering(kind, order_by):
        if not order_by:
            return []
        if isinstance(order_by, str):
            order_by = [order_by]
        clauses = []
        for name in order_by:
            desc = name.startswith("-")
            column = getattr(kind, name.lstrip("-"))
            clauses.append(column.desc() if desc else column.asc())
        return clauses

    # ── Reads ────────────────────────────────────────────────────────────

    def find_by_id(self, kind, record_id):
        """Return the record or None."""
        if record_id is None:
            return None
        try:
            return self.session.get(kind, record_id)
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"find_by_id({kind.__name__}) failed", cause=exc) from exc

    def get(self, kind, record_id):
        """Return the record or raise NotFoundError."""
        obj = self.find_by_id(kind, record_id)
        if obj is None:
            raise NotFoundError(resource=kind.__name__, resource_id=record_id)
        return obj

    def find_many(self, kind, *, order_by=None, limit=None, **filters) -> list:
        """Return every record of ``kind`` matching all filters."""
        if self._has_empty_in(filters):
            return []
        stmt = select(kind).where(*self._conditions(kind, filters))
        ordering = self._ordering(kind, order_by)
        if ordering:
            stmt = stmt.order_by(*ordering)
        if limit:
            stmt = stmt.limit(limit)
        try:
            return list(self.session.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"find_many({kind.__name__}) failed", cause=exc) from exc

    def find_many_by_ids(self, kind, ids, *, field: str = "id", **filters) -> list:
        """Batched ``field IN ids`` lookup; one query per chunk, never per id."""
        ids = [i for i in dict.fromkeys(ids) if i is not None]
        results = []
        for chunk in _chunks(ids):
            results.extend(self.find_many(kind, **{f"{field}__in": chunk}, **filters))
        return results

    # ── Writes ───────────────────────────────────────────────────────────

    def insert(self, kind, **fields):
        obj = kind(**fields)
        try:
            self.session.add(obj)
            self.session.flush()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"insert({kind.__name__}) failed", cause=exc) from exc
        return obj

    def update(self, kind, record_id, **fields):
        obj = self.get(kind, record_id)
        for name, value in fields.items():
            setattr(obj, name, value)
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"update({kind.__name__}) failed", cause=exc) from exc
        return obj

    def delete(self, kind, record_id) -> None:
        obj = self.get(kind, record_id)
        try:
            self.session.delete(obj)
            self.session.flush()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"delete({kind.__name__}) failed", cause=exc) from exc

    # ── Transactions ─────────────────────────────────────────────────────

    @contextmanager
    def transaction(self):
        """Commit everything done inside the block, or roll all of it back."""
        try:
            yield self
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
