"""Tests for the SQLAlchemy compiler and statement helpers."""

from __future__ import annotations

import pytest
from sqlalchemy import inspect, select

from apiforge.core.operators import FilterOperator
from apiforge.filtering.clauses import PredicateInstruction
from apiforge.persistence.sqlalchemy import (
    SQLAlchemyOperatorRegistry,
    apply_filters,
    apply_order_by,
    apply_preload,
    apply_projection,
    apply_search,
    build_predicate,
    column_names,
    primary_key_columns,
    relationship_names,
    search_predicate,
)

from .conftest import OrderRecord, UserRecord


def _instr(column: str, operator: FilterOperator, value) -> PredicateInstruction:
    return PredicateInstruction(
        field=column, column=column, operator=operator, value=value
    )


class TestBuildPredicate:
    def test_no_instructions(self):
        assert build_predicate(UserRecord, []) is None

    def test_comparison(self):
        compiled = build_predicate(
            UserRecord, [_instr("age", FilterOperator.GTE, 18)]
        ).compile()
        assert str(compiled) == "users.age >= :age_1"
        assert compiled.params == {"age_1": 18}

    def test_instructions_are_anded(self):
        sql = str(
            build_predicate(
                UserRecord,
                [
                    _instr("age", FilterOperator.GT, 18),
                    _instr("status", FilterOperator.EQ, "active"),
                ],
            ).compile()
        )
        assert sql == "users.age > :age_1 AND users.status = :status_1"

    def test_like_translates_wildcards(self):
        compiled = build_predicate(
            UserRecord, [_instr("first_name", FilterOperator.LIKE, "Jo*")]
        ).compile()
        assert "LIKE" in str(compiled)
        assert compiled.params["first_name_1"] == "Jo%"

    def test_like_escapes_metacharacters(self):
        compiled = build_predicate(
            UserRecord, [_instr("email", FilterOperator.LIKE, "*100%_off*")]
        ).compile()
        assert compiled.params["email_1"] == "%100\\%\\_off%"

    def test_in_and_between(self):
        compiled = build_predicate(
            UserRecord,
            [
                _instr("status", FilterOperator.IN, ("active", "banned")),
                _instr("age", FilterOperator.BETWEEN, (18, 30)),
            ],
        ).compile()
        sql = str(compiled)
        assert "users.status IN" in sql
        assert "users.age BETWEEN :age_1 AND :age_2" in sql
        assert compiled.params["status_1"] == ["active", "banned"]

    def test_null_operators(self):
        assert (
            str(build_predicate(UserRecord, [_instr("email", FilterOperator.NULL, None)]).compile())
            == "users.email IS NULL"
        )
        assert (
            str(
                build_predicate(
                    UserRecord, [_instr("email", FilterOperator.NOT_NULL, None)]
                ).compile()
            )
            == "users.email IS NOT NULL"
        )

    def test_collection_relationship_uses_exists(self):
        sql = str(
            build_predicate(
                UserRecord, [_instr("orders.total", FilterOperator.GT, 100)]
            ).compile()
        )
        assert sql.startswith("EXISTS (SELECT 1")
        assert "orders.total > :total_1" in sql

    def test_scalar_relationship_uses_exists(self):
        sql = str(
            build_predicate(
                OrderRecord, [_instr("user.first_name", FilterOperator.EQ, "John")]
            ).compile()
        )
        assert sql.startswith("EXISTS (SELECT 1")
        assert "users.first_name = :first_name_1" in sql

    def test_unknown_column(self):
        with pytest.raises(AttributeError, match="no attribute nickname"):
            build_predicate(UserRecord, [_instr("nickname", FilterOperator.EQ, "x")])

    def test_unknown_relationship(self):
        with pytest.raises(AttributeError, match="no relationship friends"):
            build_predicate(
                UserRecord, [_instr("friends.name", FilterOperator.EQ, "x")]
            )

    def test_unregistered_operator(self):
        with pytest.raises(ValueError, match="Unsupported operator"):
            build_predicate(
                UserRecord,
                [_instr("age", FilterOperator.EQ, 1)],
                registry=SQLAlchemyOperatorRegistry(),
            )


class TestSearch:
    def test_or_over_paths(self):
        compiled = search_predicate(UserRecord, {"last_name", "first_name"}, "50%").compile()
        sql = str(compiled)
        assert " OR " in sql
        assert sql.index("first_name") < sql.index("last_name")
        assert set(compiled.params.values()) == {"%50\\%%"}

    def test_no_paths(self):
        assert search_predicate(UserRecord, [], "x") is None

    def test_blank_term_leaves_statement(self):
        stmt = select(UserRecord)
        assert apply_search(stmt, UserRecord, ["first_name"], "") is stmt
        assert apply_search(stmt, UserRecord, ["first_name"], None) is stmt


class TestStatementHelpers:
    def test_model_introspection(self):
        assert [c.key for c in primary_key_columns(UserRecord)] == ["id"]
        assert set(column_names(UserRecord)) == {
            "id",
            "first_name",
            "last_name",
            "email",
            "age",
            "status",
        }
        assert relationship_names(UserRecord) == ["orders"]

    def test_order_by_with_tie_breaker(self):
        stmt = apply_order_by(select(UserRecord), UserRecord, "age", descending=True)
        assert str(stmt).endswith("ORDER BY users.age DESC, users.id ASC")

    def test_order_by_primary_key_only(self):
        assert str(apply_order_by(select(UserRecord), UserRecord, None)).endswith(
            "ORDER BY users.id ASC"
        )
        assert str(apply_order_by(select(UserRecord), UserRecord, "nope")).endswith(
            "ORDER BY users.id ASC"
        )

    def test_order_by_relationship_column_uses_correlated_subquery(self):
        stmt = apply_order_by(select(OrderRecord), OrderRecord, "user.first_name")
        sql = " ".join(str(stmt).split())
        assert "ORDER BY (SELECT users.first_name FROM users WHERE" in sql
        assert sql.endswith(") ASC, orders.id ASC")

    def test_order_by_to_many_relationship_aggregates(self):
        ascending = " ".join(
            str(apply_order_by(select(UserRecord), UserRecord, "orders.total")).split()
        )
        descending = " ".join(
            str(
                apply_order_by(
                    select(UserRecord), UserRecord, "orders.total", descending=True
                )
            ).split()
        )
        assert "ORDER BY (SELECT min(orders.total)" in ascending
        assert "ORDER BY (SELECT max(orders.total)" in descending
        assert descending.endswith(") DESC, users.id ASC")

    @pytest.mark.parametrize("path", ["user.nope", "total.value", "nope.first_name"])
    def test_order_by_unresolvable_relationship_path(self, path):
        assert str(apply_order_by(select(OrderRecord), OrderRecord, path)).endswith(
            "ORDER BY orders.id ASC"
        )

    def test_filters_without_instructions(self):
        stmt = select(UserRecord)
        assert apply_filters(stmt, UserRecord, []) is stmt

    def test_projection_of_unknown_columns_is_a_noop(self):
        stmt = select(UserRecord)
        assert apply_projection(stmt, UserRecord, ["nope"]) is stmt

    def test_preload_of_unknown_relationships_is_a_noop(self):
        stmt = select(UserRecord)
        assert apply_preload(stmt, UserRecord, ["friends"]) is stmt


@pytest.mark.asyncio
class TestAgainstDatabase:
    async def test_filters_execute(self, session):
        stmt = apply_filters(
            select(UserRecord),
            UserRecord,
            [
                _instr("orders.total", FilterOperator.GTE, 250),
                _instr("status", FilterOperator.NE, "banned"),
            ],
        )
        rows = (await session.scalars(apply_order_by(stmt, UserRecord, None))).all()
        assert [u.id for u in rows] == [5, 8]

    async def test_search_executes(self, session):
        stmt = apply_search(
            select(UserRecord), UserRecord, ["first_name", "last_name"], "jo"
        )
        rows = (await session.scalars(apply_order_by(stmt, UserRecord, None))).all()
        # SQLite LIKE is case-insensitive for ASCII
        assert [u.id for u in rows] == [1, 3, 6]

    async def test_preload_loads_relationship(self, session):
        stmt = apply_preload(select(UserRecord), UserRecord, ["orders"])
        user = (await session.scalars(stmt.where(UserRecord.id == 2))).one()
        assert "orders" not in inspect(user).unloaded
        assert sorted(o.total for o in user.orders) == [100.0, 200.0]

    async def test_projection_defers_other_columns(self, session):
        stmt = apply_projection(select(UserRecord), UserRecord, ["first_name"])
        user = (await session.scalars(stmt.where(UserRecord.id == 1))).one()
        unloaded = inspect(user).unloaded
        assert "first_name" not in unloaded
        assert "id" not in unloaded
        assert "email" in unloaded

    async def test_order_by_related_column(self, session):
        stmt = apply_order_by(select(OrderRecord), OrderRecord, "user.first_name")
        rows = (await session.scalars(stmt)).all()
        # Alice, Bob, Carol, Dave, Eve, Grace, Joan, Joe, John
        assert [o.id for o in rows] == [
            3, 4, 6, 7, 8, 9, 11, 12, 13, 14, 15, 5, 10, 1, 2,
        ]

    async def test_order_by_to_many_related_column(self, session):
        ascending = apply_order_by(select(UserRecord), UserRecord, "orders.total")
        descending = apply_order_by(
            select(UserRecord), UserRecord, "orders.total", descending=True
        )
        # SQLite sorts NULL (user 9 has no orders) first ascending, last descending
        assert [u.id for u in (await session.scalars(ascending)).all()] == [
            9, 6, 8, 1, 4, 10, 2, 3, 7, 5,
        ]
        assert [u.id for u in (await session.scalars(descending)).all()] == [
            8, 5, 7, 2, 3, 10, 4, 1, 6, 9,
        ]
