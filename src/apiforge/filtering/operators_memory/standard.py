"""Standard comparison operators: eq, ne, gt, gte, lt, lte."""

from __future__ import annotations

import operator as op_module
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from ...core.operators import FilterOperator
from ..evaluator import MemoryOperator


def align(field_value: Any, condition_value: Any) -> tuple[Any, Any]:
    """Make Decimal operands comparable with float computed values."""
    if isinstance(condition_value, Decimal) and isinstance(field_value, float):
        return field_value, float(condition_value)
    if isinstance(field_value, Decimal) and isinstance(condition_value, float):
        return float(field_value), condition_value
    return field_value, condition_value


def compare(
    fn: Callable[[Any, Any], Any], field_value: Any, condition_value: Any
) -> bool:
    if field_value is None:
        return False
    left, right = align(field_value, condition_value)
    try:
        return bool(fn(left, right))
    except TypeError:
        return False


class EqualOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.EQ

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        left, right = align(field_value, condition_value)
        return bool(left == right)


class NotEqualOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NE

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if field_value is None:
            return False
        left, right = align(field_value, condition_value)
        return bool(left != right)


class GreaterThanOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.GT

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        return compare(op_module.gt, field_value, condition_value)


class GreaterEqualOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.GTE

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        return compare(op_module.ge, field_value, condition_value)


class LessThanOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.LT

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        return compare(op_module.lt, field_value, condition_value)


class LessEqualOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.LTE

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        return compare(op_module.le, field_value, condition_value)
