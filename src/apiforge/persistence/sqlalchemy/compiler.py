"""
Compile predicate instructions into SQLAlchemy expressions.

Uses the strategy pattern: each operator is an isolated class in
``operators/``, registered in a ``SQLAlchemyOperatorRegistry``.
Relationship-qualified columns (``user.name``) compile to ``.has()`` /
``.any()`` sub-clauses on the related model.

Statement helpers
-----------------
``apply_search``, ``apply_order_by``, ``apply_preload`` and
``apply_projection`` decorate a ``Select`` with the remaining parts of a
request: free-text search, database ordering, eager loading of
virtual-field dependencies and column projection. Ordering by a
relationship-qualified column uses a correlated scalar subquery, so the
row count is never multiplied by a join.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import (
    ColumnElement,
    Select,
    and_,
    asc,
    desc,
    func,
    inspect,
    or_,
    select,
)
from sqlalchemy.orm import RelationshipProperty, load_only, selectinload

from .operators.string import escape_like
from .strategy import build_default_registry

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from ...filtering.clauses import PredicateInstruction
    from .strategy import SQLAlchemyOperatorRegistry

DEFAULT_SQLA_REGISTRY = build_default_registry()

# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def build_predicate(
    model: type[Any],
    instructions: Sequence[PredicateInstruction],
    *,
    registry: SQLAlchemyOperatorRegistry | None = None,
) -> ColumnElement[bool] | None:
    """
    AND together every instruction, or return ``None`` when there are none.

    Args:
        model: The SQLAlchemy model class.
        instructions: Predicate instructions produced by the translator.
        registry: Optional custom operator registry. Falls back to
            ``DEFAULT_SQLA_REGISTRY``.
    """
    reg = registry or DEFAULT_SQLA_REGISTRY
    clauses = [
        compile_instruction(model, i.column, i.operator, i.value, reg)
        for i in instructions
    ]
    if not clauses:
        return None
    return clauses[0] if len(clauses) == 1 else cast("ColumnElement[bool]", and_(*clauses))


def compile_instruction(
    model: type[Any],
    path: str,
    operator: Any,
    value: Any,
    registry: SQLAlchemyOperatorRegistry,
) -> ColumnElement[bool]:
    """Compile one comparison, traversing relationships in ``path``."""
    if "." in path:
        rel_name, nested = path.split(".", 1)
        rel_attr = getattr(model, rel_name, None)
        if rel_attr is None or not hasattr(rel_attr, "property"):
            raise AttributeError(f"Model {model.__name__} has no relationship {rel_name}")
        target_model = rel_attr.property.mapper.class_
        inner = compile_instruction(target_model, nested, operator, value, registry)
        if rel_attr.property.uselist:
            return cast("ColumnElement[bool]", rel_attr.any(inner))
        return cast("ColumnElement[bool]", rel_attr.has(inner))

    column = getattr(model, path, None)
    if column is None:
        raise AttributeError(f"Model {model.__name__} has no attribute {path}")
    return registry.apply(operator, column, value)


def search_predicate(
    model: type[Any], paths: Iterable[str], term: str
) -> ColumnElement[bool] | None:
    """OR of ``LIKE %term%`` over the given column paths."""
    pattern = f"%{escape_like(term)}%"
    clauses: list[ColumnElement[bool]] = []
    for path in sorted(paths):
        if "." in path:
            rel_name, nested = path.split(".", 1)
            rel_attr = getattr(model, rel_name)
            target = rel_attr.property.mapper.class_
            inner = getattr(target, nested).like(pattern, escape="\\")
            clauses.append(
                rel_attr.any(inner) if rel_attr.property.uselist else rel_attr.has(inner)
            )
        else:
            clauses.append(getattr(model, path).like(pattern, escape="\\"))
    if not clauses:
        return None
    return cast("ColumnElement[bool]", or_(*clauses))


# ---------------------------------------------------------------------------
# Statement helpers
# ---------------------------------------------------------------------------


def primary_key_columns(model: type[Any]) -> list[Any]:
    mapper = inspect(model)
    return [getattr(model, mapper.get_property_by_column(c).key) for c in mapper.primary_key]


def column_names(model: type[Any]) -> list[str]:
    return [attr.key for attr in inspect(model).column_attrs]


def relationship_names(model: type[Any]) -> list[str]:
    return [rel.key for rel in inspect(model).relationships]


def apply_filters(
    stmt: Select[Any],
    model: type[Any],
    instructions: Sequence[PredicateInstruction],
    *,
    registry: SQLAlchemyOperatorRegistry | None = None,
) -> Select[Any]:
    predicate = build_predicate(model, instructions, registry=registry)
    return stmt if predicate is None else stmt.where(predicate)


def apply_search(
    stmt: Select[Any], model: type[Any], paths: Iterable[str], term: str | None
) -> Select[Any]:
    if not term:
        return stmt
    predicate = search_predicate(model, paths, term)
    return stmt if predicate is None else stmt.where(predicate)


def order_expression(
    model: type[Any], path: str, *, descending: bool = False
) -> Any | None:
    """
    Sort key for ``path``, or ``None`` when the model cannot resolve it.

    A relationship-qualified path becomes a correlated scalar subquery on the
    related model. To-many relationships sort by their smallest value when
    ascending and their largest when descending.
    """
    if "." not in path:
        return getattr(model, path, None)
    rel_name, nested = path.split(".", 1)
    prop = getattr(getattr(model, rel_name, None), "property", None)
    if not isinstance(prop, RelationshipProperty):
        return None
    inner = order_expression(prop.mapper.class_, nested, descending=descending)
    if inner is None:
        return None
    if prop.uselist:
        inner = func.max(inner) if descending else func.min(inner)
    subquery = select(inner).where(prop.primaryjoin)
    if prop.secondaryjoin is not None:
        subquery = subquery.where(prop.secondaryjoin)
    return subquery.scalar_subquery()


def apply_order_by(
    stmt: Select[Any],
    model: type[Any],
    path: str | None,
    *,
    descending: bool = False,
) -> Select[Any]:
    """
    Order by ``path`` (when given) with the primary key as tie-breaker.

    The tie-breaker makes offset pagination deterministic. Paths the model
    cannot resolve are left out of the ordering.
    """
    order_clauses: list[Any] = []
    if path:
        key = order_expression(model, path, descending=descending)
        if key is not None:
            order_clauses.append(desc(key) if descending else asc(key))
    order_clauses.extend(asc(pk) for pk in primary_key_columns(model))
    return stmt.order_by(*order_clauses)


def apply_preload(
    stmt: Select[Any], model: type[Any], relationships: Iterable[str]
) -> Select[Any]:
    """Eager-load relationships with ``selectinload`` (safe under asyncio)."""
    known = set(relationship_names(model))
    options = [selectinload(getattr(model, rel)) for rel in sorted(relationships) if rel in known]
    return stmt.options(*options) if options else stmt


def apply_projection(
    stmt: Select[Any], model: type[Any], columns: Iterable[str]
) -> Select[Any]:
    """
    Restrict loaded columns to ``columns`` plus the primary key.

    Unknown names are ignored; callers validate the selection first.
    """
    known = set(column_names(model))
    wanted = sorted({c for c in columns if c in known})
    if not wanted:
        return stmt
    attrs = [getattr(model, c) for c in wanted]
    return stmt.options(load_only(*attrs, raiseload=False))
