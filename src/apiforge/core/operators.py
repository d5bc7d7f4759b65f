"""Field types, filter operators and their compatibility table."""

from __future__ import annotations

from enum import Enum


class FieldType(str, Enum):
    """Semantic type of a filterable or virtual field."""

    STRING = "string"
    TEXT = "text"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    ENUM = "enum"


class FilterOperator(str, Enum):
    """
    Operators accepted by the query grammar.

    Values double as the names used in the bracket form
    (``age[gte]=18``) and in definition configs.
    """

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    NOT_LIKE = "not_like"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IN = "in"
    NOT_IN = "not_in"
    BETWEEN = "between"
    NOT_BETWEEN = "not_between"
    NULL = "null"
    NOT_NULL = "not_null"


class FailurePolicy(str, Enum):
    """What happens to an entity whose virtual field cannot be computed."""

    THROW = "throw"
    DEFAULT = "default"
    EXCLUDE = "exclude"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


_ALL_TYPES = frozenset(FieldType)
_ORDERED_TYPES = frozenset({FieldType.INTEGER, FieldType.DECIMAL, FieldType.DATETIME})
_STRING_TYPES = frozenset({FieldType.STRING, FieldType.TEXT})
_SET_TYPES = frozenset(
    {
        FieldType.STRING,
        FieldType.TEXT,
        FieldType.INTEGER,
        FieldType.DECIMAL,
        FieldType.ENUM,
    }
)

# operator -> field types it is legal for
OPERATOR_TYPES: dict[FilterOperator, frozenset[FieldType]] = {
    FilterOperator.EQ: _ALL_TYPES,
    FilterOperator.NE: _ALL_TYPES,
    FilterOperator.GT: _ORDERED_TYPES,
    FilterOperator.GTE: _ORDERED_TYPES,
    FilterOperator.LT: _ORDERED_TYPES,
    FilterOperator.LTE: _ORDERED_TYPES,
    FilterOperator.BETWEEN: _ORDERED_TYPES,
    FilterOperator.NOT_BETWEEN: _ORDERED_TYPES,
    FilterOperator.LIKE: _STRING_TYPES,
    FilterOperator.NOT_LIKE: _STRING_TYPES,
    FilterOperator.STARTS_WITH: _STRING_TYPES,
    FilterOperator.ENDS_WITH: _STRING_TYPES,
    FilterOperator.IN: _SET_TYPES,
    FilterOperator.NOT_IN: _SET_TYPES,
    FilterOperator.NULL: _ALL_TYPES,
    FilterOperator.NOT_NULL: _ALL_TYPES,
}

MULTI_VALUE_OPERATORS = frozenset({FilterOperator.IN, FilterOperator.NOT_IN})
RANGE_OPERATORS = frozenset({FilterOperator.BETWEEN, FilterOperator.NOT_BETWEEN})
NULL_OPERATORS = frozenset({FilterOperator.NULL, FilterOperator.NOT_NULL})
PATTERN_OPERATORS = frozenset({FilterOperator.LIKE, FilterOperator.NOT_LIKE})


def operators_for(field_type: FieldType) -> tuple[FilterOperator, ...]:
    """Return every operator legal for ``field_type``, in declaration order."""
    return tuple(op for op in FilterOperator if field_type in OPERATOR_TYPES[op])


def is_operator_supported(operator: FilterOperator, field_type: FieldType) -> bool:
    return field_type in OPERATOR_TYPES[operator]


def unsupported_operator_message(
    operator: FilterOperator, field_type: FieldType
) -> str:
    """
    Shared wording for an operator/type mismatch.

    Used both when a definition is registered and when a request clause is
    parsed, so the two rejections read identically.
    """
    return (
        f"Operator '{operator.value}' is not supported for field type "
        f"'{field_type.value}'"
    )
