"""Null operators for SQLAlchemy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from ....core.operators import FilterOperator
from ..strategy import SQLAlchemyOperator

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement


class IsNullOperator(SQLAlchemyOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NULL

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.is_(None))


class IsNotNullOperator(SQLAlchemyOperator):
    @property
    def name(self) -> FilterOperator:
        return FilterOperator.NOT_NULL

    def apply(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.is_not(None))
