"""Null checks: null, not_null."""

from __future__ import annotations

from typing import Any

from ...core.operators import FilterOperator
from ..evaluator import MemoryOperator


class IsNullOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NULL

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        return field_value is None


class IsNotNullOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NOT_NULL

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        return field_value is not None
