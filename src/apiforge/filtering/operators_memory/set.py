"""Set and range operators: in, not_in, between, not_between."""

from __future__ import annotations

import operator as op_module
from typing import Any

from ...core.operators import FilterOperator
from ..evaluator import MemoryOperator
from .standard import align, compare


class InOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.IN

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if field_value is None:
            return False
        for candidate in condition_value:
            left, right = align(field_value, candidate)
            if left == right:
                return True
        return False


class NotInOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NOT_IN

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if field_value is None:
            return False
        return not InOperator().evaluate(field_value, condition_value)


class BetweenOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.BETWEEN

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        low, high = condition_value
        return compare(op_module.ge, field_value, low) and compare(
            op_module.le, field_value, high
        )


class NotBetweenOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NOT_BETWEEN

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        low, high = condition_value
        return compare(op_module.lt, field_value, low) or compare(
            op_module.gt, field_value, high
        )
