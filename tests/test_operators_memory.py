"""Tests for the in-memory operators used on virtual-field clauses."""

from __future__ import annotations

from decimal import Decimal

import pytest

from apiforge import FilterOperator
from apiforge.filtering import MemoryOperatorRegistry, build_default_registry
from apiforge.filtering.operators_memory.null import IsNotNullOperator, IsNullOperator
from apiforge.filtering.operators_memory.set import (
    BetweenOperator,
    InOperator,
    NotBetweenOperator,
    NotInOperator,
)
from apiforge.filtering.operators_memory.standard import (
    EqualOperator,
    GreaterEqualOperator,
    GreaterThanOperator,
    LessEqualOperator,
    LessThanOperator,
    NotEqualOperator,
)
from apiforge.filtering.operators_memory.string import (
    EndsWithOperator,
    LikeOperator,
    NotLikeOperator,
    StartsWithOperator,
    wildcard_to_regex,
)


class TestStandard:
    def test_equality(self) -> None:
        assert EqualOperator().evaluate(5, 5)
        assert not EqualOperator().evaluate(5, 6)
        assert EqualOperator().evaluate(10.5, Decimal("10.5"))

    def test_not_equal_excludes_null(self) -> None:
        assert NotEqualOperator().evaluate("a", "b")
        assert not NotEqualOperator().evaluate(None, "b")

    def test_ordering(self) -> None:
        assert GreaterThanOperator().evaluate(10, 5)
        assert GreaterEqualOperator().evaluate(5, 5)
        assert LessThanOperator().evaluate(Decimal("1.5"), 2)
        assert LessEqualOperator().evaluate(2.0, Decimal("2"))

    def test_ordering_with_null_or_mismatched_types_is_false(self) -> None:
        assert not GreaterThanOperator().evaluate(None, 5)
        assert not LessThanOperator().evaluate("abc", 5)


class TestString:
    def test_wildcard_to_regex_escapes(self) -> None:
        assert wildcard_to_regex("a.b*") == r"^a\.b.*$"

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("John Doe", True),
            ("Joan Smith", True),
            ("Joe King", True),
            ("Amy Li", False),
            ("Bob Jo", False),
            ("john doe", False),
        ],
    )
    def test_like_is_anchored_and_case_sensitive(self, value, expected) -> None:
        assert LikeOperator().evaluate(value, "Jo*") is expected

    def test_not_like(self) -> None:
        assert NotLikeOperator().evaluate("Amy Li", "Jo*")
        assert not NotLikeOperator().evaluate(None, "Jo*")

    def test_starts_and_ends_with(self) -> None:
        assert StartsWithOperator().evaluate("Joan", "Jo")
        assert EndsWithOperator().evaluate("Joan", "an")
        assert not StartsWithOperator().evaluate(None, "Jo")


class TestSetAndNull:
    def test_in(self) -> None:
        assert InOperator().evaluate(2, [1, 2])
        assert InOperator().evaluate(2.0, [Decimal("2")])
        assert not InOperator().evaluate(None, [None])

    def test_not_in(self) -> None:
        assert NotInOperator().evaluate(3, [1, 2])
        assert not NotInOperator().evaluate(None, [1, 2])

    def test_between_is_inclusive(self) -> None:
        assert BetweenOperator().evaluate(1, (1, 5))
        assert BetweenOperator().evaluate(5, (1, 5))
        assert not BetweenOperator().evaluate(6, (1, 5))

    def test_not_between(self) -> None:
        assert NotBetweenOperator().evaluate(0, (1, 5))
        assert not NotBetweenOperator().evaluate(3, (1, 5))
        assert not NotBetweenOperator().evaluate(None, (1, 5))

    def test_null(self) -> None:
        assert IsNullOperator().evaluate(None, None)
        assert IsNotNullOperator().evaluate(0, None)


class TestRegistry:
    def test_default_registry_covers_grammar(self) -> None:
        registry = build_default_registry()
        assert registry.supported_operators == set(FilterOperator)

    def test_unknown_operator(self) -> None:
        with pytest.raises(ValueError, match="Unsupported operator"):
            MemoryOperatorRegistry().evaluate(FilterOperator.EQ, 1, 1)
