"""Set and range operators for SQLAlchemy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import not_

from ....core.operators import FilterOperator
from ..strategy import SQLAlchemyOperator

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement


class InOperator(SQLAlchemyOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.IN

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.in_(list(value)))


class NotInOperator(SQLAlchemyOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NOT_IN

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.not_in(list(value)))


class BetweenOperator(SQLAlchemyOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.BETWEEN

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        low, high = value
        return cast("ColumnElement[bool]", column.between(low, high))


class NotBetweenOperator(SQLAlchemyOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NOT_BETWEEN

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        low, high = value
        return cast("ColumnElement[bool]", not_(column.between(low, high)))
