"""String operators: like, not_like, starts_with, ends_with."""

from __future__ import annotations

import re
from typing import Any

from ...core.operators import FilterOperator
from ..evaluator import MemoryOperator


def wildcard_to_regex(pattern: str) -> str:
    """Convert a ``*`` wildcard pattern to an anchored Python regex."""
    return "^" + ".*".join(re.escape(part) for part in pattern.split("*")) + "$"


class LikeOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.LIKE

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if field_value is None:
            return False
        regex = wildcard_to_regex(str(condition_value))
        return bool(re.match(regex, str(field_value), re.DOTALL))


class NotLikeOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NOT_LIKE

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if field_value is None:
            return False
        regex = wildcard_to_regex(str(condition_value))
        return not re.match(regex, str(field_value), re.DOTALL)


class StartsWithOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.STARTS_WITH

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if field_value is None:
            return False
        return str(field_value).startswith(str(condition_value))


class EndsWithOperator(MemoryOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.ENDS_WITH

    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        if field_value is None:
            return False
        return str(field_value).endswith(str(condition_value))
