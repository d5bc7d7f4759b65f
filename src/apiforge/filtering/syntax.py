"""
Query-parameter grammar.

Two equivalent spellings are accepted for every clause:

* value prefixes: ``age=>=18``, ``name=Jo*``, ``status=a,b``,
  ``price=10|20``, ``deleted_at=null``, ``status=!=draft``;
* an explicit operator in the key: ``age[gte]=18``,
  ``name[starts_with]=Jo``.

A ``!=`` prefix negates the shape that follows it: ``!=a,b`` is
``not_in``, ``!=10|20`` is ``not_between`` and ``!=*x*`` is ``not_like``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from ..core.exceptions import FilterValidationError
from ..core.operators import (
    MULTI_VALUE_OPERATORS,
    NULL_OPERATORS,
    PATTERN_OPERATORS,
    RANGE_OPERATORS,
    FilterOperator,
)

_KEY_RE = re.compile(r"^(?P<field>[^\[\]]+)\[(?P<op>[^\[\]]+)\]$")

# Map common names to FilterOperator values
_OP_ALIASES: dict[str, FilterOperator] = {
    "eq": FilterOperator.EQ,
    "=": FilterOperator.EQ,
    "ne": FilterOperator.NE,
    "!=": FilterOperator.NE,
    "gt": FilterOperator.GT,
    ">": FilterOperator.GT,
    "gte": FilterOperator.GTE,
    ">=": FilterOperator.GTE,
    "lt": FilterOperator.LT,
    "<": FilterOperator.LT,
    "lte": FilterOperator.LTE,
    "<=": FilterOperator.LTE,
    "like": FilterOperator.LIKE,
    "not_like": FilterOperator.NOT_LIKE,
    "starts_with": FilterOperator.STARTS_WITH,
    "startswith": FilterOperator.STARTS_WITH,
    "ends_with": FilterOperator.ENDS_WITH,
    "endswith": FilterOperator.ENDS_WITH,
    "in": FilterOperator.IN,
    "not_in": FilterOperator.NOT_IN,
    "between": FilterOperator.BETWEEN,
    "not_between": FilterOperator.NOT_BETWEEN,
    "null": FilterOperator.NULL,
    "is_null": FilterOperator.NULL,
    "not_null": FilterOperator.NOT_NULL,
    "is_not_null": FilterOperator.NOT_NULL,
}

# Order matters: two-character prefixes first.
_PREFIXES: tuple[tuple[str, FilterOperator], ...] = (
    (">=", FilterOperator.GTE),
    ("<=", FilterOperator.LTE),
    ("!=", FilterOperator.NE),
    (">", FilterOperator.GT),
    ("<", FilterOperator.LT),
    ("=", FilterOperator.EQ),
)


@dataclass(frozen=True)
class ParsedParam:
    """Operator and still-uncoerced operand(s) of one request parameter."""

    field: str
    operator: FilterOperator
    operand: Any
    raw: Any

    @property
    def index_friendly(self) -> bool:
        return not (
            self.operator in PATTERN_OPERATORS and str(self.operand).startswith("*")
        )


def split_key(key: str) -> tuple[str, FilterOperator | None]:
    """Split ``field[op]`` into its parts; plain keys carry no operator."""
    match = _KEY_RE.match(key)
    if not match:
        return key.strip(), None
    field = match.group("field").strip()
    op_name = match.group("op").strip().lower()
    operator = _OP_ALIASES.get(op_name)
    if operator is None:
        raise FilterValidationError.operator_not_allowed(
            field,
            f"Unknown operator '{op_name}'. Valid operators: "
            f"{', '.join(op.value for op in FilterOperator)}",
        )
    return field, operator


class QueryParamSyntax:
    """Parse a ``(key, value)`` request parameter into a :class:`ParsedParam`."""

    def parse(self, key: str, raw: Any) -> ParsedParam:
        field, explicit = split_key(key)
        if isinstance(raw, list | tuple):
            values = [str(v).strip() for v in raw if str(v).strip()]
            operator = explicit or FilterOperator.IN
            return ParsedParam(field, operator, self._operand(field, operator, values), raw)

        text = "" if raw is None else str(raw).strip()
        if explicit is not None:
            return ParsedParam(field, explicit, self._explicit(field, explicit, text), raw)
        operator, operand = self._detect(field, text)
        return ParsedParam(field, operator, operand, raw)

    # -- explicit operator ---------------------------------------------------

    def _explicit(self, field: str, operator: FilterOperator, text: str) -> Any:
        if operator in NULL_OPERATORS:
            return None
        if operator in MULTI_VALUE_OPERATORS:
            return self._operand(field, operator, text.split(","))
        if operator in RANGE_OPERATORS:
            sep = "|" if "|" in text else ","
            return self._operand(field, operator, text.split(sep))
        if operator in PATTERN_OPERATORS and "*" not in text:
            return f"*{text}*"
        if not text:
            raise FilterValidationError.malformed_value(field, text, "value is empty")
        return text

    # -- prefix detection ----------------------------------------------------

    def _detect(self, field: str, text: str) -> tuple[FilterOperator, Any]:
        lowered = text.lower()
        if lowered == "null":
            return FilterOperator.NULL, None
        if lowered == "!null":
            return FilterOperator.NOT_NULL, None

        for prefix, operator in _PREFIXES:
            if text.startswith(prefix):
                body = text[len(prefix) :]
                if operator in (FilterOperator.EQ, FilterOperator.NE):
                    return self._shape(field, body, negated=operator is FilterOperator.NE)
                if not body:
                    raise FilterValidationError.malformed_value(
                        field, text, f"missing value after '{prefix}'"
                    )
                return operator, body
        return self._shape(field, text, negated=False)

    def _shape(self, field: str, body: str, *, negated: bool) -> tuple[FilterOperator, Any]:
        if "*" in body:
            operator = FilterOperator.NOT_LIKE if negated else FilterOperator.LIKE
            return operator, body
        if "," in body:
            operator = FilterOperator.NOT_IN if negated else FilterOperator.IN
            return operator, self._operand(field, operator, body.split(","))
        if "|" in body:
            operator = FilterOperator.NOT_BETWEEN if negated else FilterOperator.BETWEEN
            return operator, self._operand(field, operator, body.split("|"))
        return (FilterOperator.NE if negated else FilterOperator.EQ), body

    @staticmethod
    def _operand(field: str, operator: FilterOperator, parts: list[str]) -> Any:
        if operator in RANGE_OPERATORS:
            bounds = [p.strip() for p in parts]
            if len(bounds) != 2 or not all(bounds):
                raise FilterValidationError.malformed_value(
                    field,
                    "|".join(parts),
                    "exactly two bounds are required for a range",
                )
            return tuple(bounds)
        values = [p.strip() for p in parts if p.strip()]
        if not values:
            raise FilterValidationError.malformed_value(
                field, ",".join(parts), "at least one value is required"
            )
        return values
