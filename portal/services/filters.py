"""Declarative filter / sort / page descriptions compiled into store queries.

A filter description maps field names to one of:

* a scalar            -> equality                ``{"status": "active"}``
* a list              -> set membership          ``{"id": ["a", "b"]}``
* an operator mapping -> one predicate per key   ``{"age": {"gte": 18, "lt": 65}}``

Predicates are ANDed. The description is parsed once into tagged predicate
values, then applied to a SQLAlchemy ``Select`` for a concrete model.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Select, Uuid
from sqlmodel import SQLModel

from portal.core.errors import FilterValidationError
from portal.models.base import as_utc_naive

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 100

COMPARISON_OPERATORS = frozenset({"eq", "neq", "gt", "gte", "lt", "lte", "like", "ilike", "is"})
OPERATORS = COMPARISON_OPERATORS | {"in"}

SORT_DIRECTIONS = {"asc": False, "desc": True}


# ── Tagged predicates ─────────────────────────────────────────


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any


@dataclass(frozen=True)
class In:
    field: str
    values: tuple


@dataclass(frozen=True)
class Compare:
    field: str
    op: str
    value: Any


Predicate = Equals | In | Compare


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class PageWindow:
    limit: int | None = None
    offset: int | None = None


@dataclass(frozen=True)
class QueryDescriptor:
    predicates: tuple[Predicate, ...] = ()
    order_by: tuple[SortKey, ...] = ()
    limit: int | None = None
    offset: int | None = None

    @property
    def window(self) -> tuple[int, int] | None:
        """Inclusive ``(first, last)`` row positions when an offset is set."""
        if self.offset is None or self.limit is None:
            return None
        return self.offset, self.offset + self.limit - 1

    def fields(self) -> set[str]:
        return {p.field for p in self.predicates} | {s.field for s in self.order_by}


# ── Parsing ───────────────────────────────────────────────────


def _parse_operators(name: str, ops: Mapping[str, Any], strict: bool) -> list[Predicate]:
    predicates: list[Predicate] = []
    for op, value in ops.items():
        if op not in OPERATORS:
            if strict:
                raise FilterValidationError(
                    f"Unknown operator '{op}' for field '{name}'. Valid: {sorted(OPERATORS)}"
                )
            logger.warning("Ignoring unknown filter operator %r on field %r", op, name)
            continue
        if op == "in":
            if not isinstance(value, (list, tuple)):
                raise FilterValidationError(f"Operator 'in' on '{name}' expects a list")
            predicates.append(In(name, tuple(value)))
        elif op == "is":
            if value not in (None, True, False):
                raise FilterValidationError(f"Operator 'is' on '{name}' expects null, true or false")
            predicates.append(Compare(name, op, value))
        else:
            predicates.append(Compare(name, op, value))
    return predicates


def parse_filter(spec: Mapping[str, Any] | None, *, strict: bool = True) -> list[Predicate]:
    """Turn a filter description into predicates, in the description's key order."""
    if not spec:
        return []
    if not isinstance(spec, Mapping):
        raise FilterValidationError("Filter must be a JSON object")

    predicates: list[Predicate] = []
    for name, value in spec.items():
        if isinstance(value, (list, tuple)):
            predicates.append(In(name, tuple(value)))
        elif isinstance(value, Mapping):
            predicates.extend(_parse_operators(name, value, strict))
        else:
            predicates.append(Equals(name, value))
    return predicates


def parse_sort(spec: Mapping[str, Any] | None, *, strict: bool = True) -> list[SortKey]:
    if not spec:
        return []
    if not isinstance(spec, Mapping):
        raise FilterValidationError("Sort must be a JSON object")

    keys: list[SortKey] = []
    for name, direction in spec.items():
        normalized = str(direction).lower()
        if normalized not in SORT_DIRECTIONS:
            if strict:
                raise FilterValidationError(
                    f"Invalid sort direction '{direction}' for '{name}'. Use 'asc' or 'desc'"
                )
            normalized = "desc"
        keys.append(SortKey(name, SORT_DIRECTIONS[normalized]))
    return keys


def _non_negative_int(name: str, value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise FilterValidationError(f"'{name}' must be an integer") from exc
    if number < 0:
        raise FilterValidationError(f"'{name}' must not be negative")
    return number


def compile_query(
    filter_spec: Mapping[str, Any] | None = None,
    sort_spec: Mapping[str, Any] | None = None,
    page: PageWindow | None = None,
    *,
    strict: bool = True,
    default_window: int = DEFAULT_WINDOW,
) -> QueryDescriptor:
    """Compile filter / sort / page descriptions into a :class:`QueryDescriptor`.

    An offset without a limit reads a window of ``default_window`` rows.
    """
    page = page or PageWindow()
    limit = _non_negative_int("limit", page.limit)
    offset = _non_negative_int("offset", page.offset)
    if offset is not None and limit is None:
        limit = default_window

    return QueryDescriptor(
        predicates=tuple(parse_filter(filter_spec, strict=strict)),
        order_by=tuple(parse_sort(sort_spec, strict=strict)),
        limit=limit,
        offset=offset,
    )


def _load_json(name: str, raw: str | None) -> Any:
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise FilterValidationError(f"'{name}' is not valid JSON") from exc


def parse_query_params(
    filter: str | None = None,
    sort: str | None = None,
    limit: str | int | None = None,
    offset: str | int | None = None,
    *,
    strict: bool = True,
    default_window: int = DEFAULT_WINDOW,
) -> QueryDescriptor:
    """Compile JSON-encoded ``filter`` / ``sort`` query-string values."""
    return compile_query(
        _load_json("filter", filter),
        _load_json("sort", sort),
        PageWindow(limit=limit, offset=offset),  # type: ignore[arg-type]
        strict=strict,
        default_window=default_window,
    )


# ── SQL rendering ─────────────────────────────────────────────


def _column(model: type[SQLModel], name: str):
    columns = model.__table__.columns  # type: ignore[attr-defined]
    if name not in columns:
        raise FilterValidationError(f"Unknown field '{name}' for {model.__name__}")
    return getattr(model, name)


def _coerce(column, value: Any) -> Any:
    """Convert JSON scalars to the Python type the column binds."""
    if value is None:
        return None
    try:
        if isinstance(column.type, Uuid) and not isinstance(value, uuid.UUID):
            return uuid.UUID(str(value))
        if isinstance(column.type, DateTime) and isinstance(value, str):
            return as_utc_naive(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError as exc:
        raise FilterValidationError(f"Invalid value {value!r} for field '{column.key}'") from exc
    return value


def _clause(model: type[SQLModel], predicate: Predicate):
    column = _column(model, predicate.field)
    if isinstance(predicate, Equals):
        return column == _coerce(column, predicate.value)
    if isinstance(predicate, In):
        return column.in_([_coerce(column, v) for v in predicate.values])
    op = predicate.op
    value = predicate.value if op in ("like", "ilike", "is") else _coerce(column, predicate.value)
    if op == "eq":
        return column == value
    if op == "neq":
        return column != value
    if op == "gt":
        return column > value
    if op == "gte":
        return column >= value
    if op == "lt":
        return column < value
    if op == "lte":
        return column <= value
    if op == "like":
        return column.like(value)
    if op == "ilike":
        return column.ilike(value)
    return column.is_(value)


def apply_to_select(stmt: Select, model: type[SQLModel], descriptor: QueryDescriptor) -> Select:
    """Render a descriptor onto ``stmt``; unknown columns raise ``FilterValidationError``."""
    for predicate in descriptor.predicates:
        stmt = stmt.where(_clause(model, predicate))
    for key in descriptor.order_by:
        column = _column(model, key.field)
        stmt = stmt.order_by(column.desc() if key.descending else column.asc())
    if descriptor.offset is not None:
        stmt = stmt.offset(descriptor.offset)
    if descriptor.limit is not None:
        stmt = stmt.limit(descriptor.limit)
    return stmt
