"""String operators for SQLAlchemy: like, not_like, starts_with, ends_with."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from ....core.operators import FilterOperator
from ..strategy import SQLAlchemyOperator

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement


def escape_like(text: str) -> str:
    """Escape LIKE metacharacters using a backslash."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def wildcard_to_like(pattern: str) -> str:
    """Convert a ``*`` wildcard pattern to an escaped SQL LIKE pattern."""
    return "%".join(escape_like(part) for part in str(pattern).split("*"))


class LikeOperator(SQLAlchemyOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.LIKE

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast(
            "ColumnElement[bool]", column.like(wildcard_to_like(value), escape="\\")
        )


class NotLikeOperator(SQLAlchemyOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NOT_LIKE

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast(
            "ColumnElement[bool]",
            column.not_like(wildcard_to_like(value), escape="\\"),
        )


class StartsWithOperator(SQLAlchemyOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.STARTS_WITH

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.startswith(value, autoescape=True))


class EndsWithOperator(SQLAlchemyOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.ENDS_WITH

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.endswith(value, autoescape=True))
