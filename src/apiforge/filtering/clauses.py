"""Request-scoped filter clauses and the translator's output."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, NamedTuple

if TYPE_CHECKING:
    from ..core.exceptions import RejectedFilter
    from ..core.operators import FieldType, FilterOperator


@dataclass(frozen=True)
class FilterClause:
    """
    One parsed and coerced request filter.

    ``value`` is ``None`` for null checks, a list for ``in``/``not_in``,
    a ``(low, high)`` tuple for range operators and a ``*``-wildcard
    pattern string for ``like``/``not_like``.
    """

    field: str
    operator: FilterOperator
    value: Any
    raw: Any
    field_type: FieldType
    virtual: bool = False
    column: str | None = None
    index_friendly: bool = True

    def to_instruction(self) -> PredicateInstruction:
        return PredicateInstruction(
            field=self.field,
            column=self.column or self.field,
            operator=self.operator,
            value=self.value,
        )

    def to_dict(self) -> dict[str, Any]:
        value = self.value
        if isinstance(value, tuple):
            value = list(value)
        return {
            "field": self.field,
            "operator": self.operator.value,
            "value": value,
            "virtual": self.virtual,
        }


@dataclass(frozen=True)
class PredicateInstruction:
    """Store-agnostic comparison to be pushed into the query builder."""

    field: str
    column: str
    operator: FilterOperator
    value: Any


@dataclass(frozen=True)
class Preload:
    """Columns and relationships to load before virtual fields are computed."""

    columns: frozenset[str] = field(default_factory=frozenset)
    relationships: frozenset[str] = field(default_factory=frozenset)

    def merge(self, other: Preload) -> Preload:
        return Preload(
            self.columns | other.columns,
            self.relationships | other.relationships,
        )

    def __bool__(self) -> bool:
        return bool(self.columns or self.relationships)


class TranslationResult(NamedTuple):
    predicates: list[PredicateInstruction]
    virtual_clauses: list[FilterClause]
    rejected: list[RejectedFilter]
    preload: Preload
    clauses: list[FilterClause]

    @property
    def active(self) -> list[dict[str, Any]]:
        return [c.to_dict() for c in self.clauses]
