"""
In-memory operator evaluation strategy.

Virtual-field clauses cannot be pushed into the store, so they are
evaluated against computed values with the same operator semantics the
SQL compiler uses. New operators are added by subclassing
``MemoryOperator`` and registering via ``register()``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..core.operators import FilterOperator
    from .clauses import FilterClause


class MemoryOperator(ABC):
    """
    Strategy interface for in-memory operator evaluation.

    Each operator is an isolated class with a single ``evaluate`` method.
    """

    @property
    @abstractmethod
    def name(self) -> FilterOperator:
        """The operator this strategy handles."""
        ...

    @abstractmethod
    def evaluate(self, field_value: Any, condition_value: Any) -> bool:
        """
        Evaluate the operator against concrete values.

        Args:
            field_value: The computed value of the virtual field.
            condition_value: The coerced operand of the clause.

        Returns:
            True if the condition is satisfied.
        """
        ...


class MemoryOperatorRegistry:
    """
    Registry of MemoryOperator instances keyed by FilterOperator.

    Usage::

        registry = MemoryOperatorRegistry()
        registry.register(EqualOperator())

        result = registry.evaluate(FilterOperator.EQ, actual, expected)
    """

    def __init__(self) -> None:
        self._operators: dict[FilterOperator, MemoryOperator] = {}

    def register(self, operator: MemoryOperator) -> None:
        self._operators[operator.name] = operator

    def register_all(self, *operators: MemoryOperator) -> None:
        for op in operators:
            self.register(op)

    def get(self, name: FilterOperator) -> MemoryOperator | None:
        return self._operators.get(name)

    @property
    def supported_operators(self) -> set[FilterOperator]:
        return set(self._operators.keys())

    def evaluate(
        self, name: FilterOperator, field_value: Any, condition_value: Any
    ) -> bool:
        """
        Look up the operator and evaluate.

        Raises:
            ValueError: If the operator is not registered.
        """
        op = self.get(name)
        if op is None:
            raise ValueError(f"Unsupported operator for in-memory evaluation: {name}")
        return op.evaluate(field_value, condition_value)

    def matches(self, clause: FilterClause, field_value: Any) -> bool:
        return self.evaluate(clause.operator, field_value, clause.value)


def build_default_registry() -> MemoryOperatorRegistry:
    """Registry with every operator of the query grammar."""
    from .operators_memory import ALL_OPERATORS

    registry = MemoryOperatorRegistry()
    registry.register_all(*(cls() for cls in ALL_OPERATORS))
    return registry
