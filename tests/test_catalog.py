"""Tests for FieldCatalog registration, validation and the dependency graph."""

from __future__ import annotations

import pytest

from apiforge import (
    ConfigurationError,
    FieldCatalog,
    FieldDefinition,
    FieldSelectionConfig,
    FieldType,
    FilterOperator,
    FilterValidationError,
    VirtualFieldDefinition,
)
from apiforge.catalog import evaluation_order, find_cycle
from apiforge.core.operators import unsupported_operator_message
from apiforge.filtering import FilterTranslator


def _noop(entity, deps):
    return None


class TestRegistration:
    def test_register_field_from_mapping(self) -> None:
        catalog = FieldCatalog()
        definition = catalog.register_field(
            "name", {"type": "string", "searchable": True}
        )

        assert isinstance(definition, FieldDefinition)
        assert catalog.get("name") is definition
        assert "name" in catalog
        assert len(catalog) == 1
        assert not catalog.is_virtual_field("name")

    def test_register_virtual_field_defaults(self) -> None:
        catalog = FieldCatalog()
        definition = catalog.register_virtual_field(
            "score", {"type": "integer", "compute": _noop}
        )

        assert catalog.is_virtual_field("score")
        assert definition.cacheable is False
        assert definition.cache_ttl == 3600
        assert definition.nullable is True
        assert definition.sortable is True
        assert definition.default_value is None

    def test_omitted_operators_default_to_type_legal_set(self) -> None:
        definition = FieldDefinition(name="age", type=FieldType.INTEGER)
        assert FilterOperator.GTE in definition.allowed_operators
        assert FilterOperator.LIKE not in definition.allowed_operators

    def test_register_all_accepts_definitions(self) -> None:
        catalog = FieldCatalog()
        catalog.register_all(
            FieldDefinition(name="a", type=FieldType.STRING),
            VirtualFieldDefinition(name="b", type=FieldType.STRING, compute=_noop),
        )
        assert catalog.field_names() == ["a"]
        assert catalog.virtual_field_names() == ["b"]
        assert catalog.all_names() == ["a", "b"]

    def test_unknown_config_key_fails_closed(self) -> None:
        catalog = FieldCatalog()
        with pytest.raises(ConfigurationError) as exc_info:
            catalog.register_field("name", {"type": "string", "filterable": True})
        assert exc_info.value.reason == "missing_required_config"
        assert "filterable" in exc_info.value.message

    def test_invalid_type(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            FieldCatalog().register_field("name", {"type": "blob"})
        assert exc_info.value.reason == "invalid_field_type"

    def test_duplicate_name_rejected(self) -> None:
        catalog = FieldCatalog()
        catalog.register_field("name", {"type": "string"})
        with pytest.raises(ConfigurationError) as exc_info:
            catalog.register_virtual_field(
                "name", {"type": "string", "compute": _noop}
            )
        assert exc_info.value.reason == "duplicate_field"

    def test_non_callable_compute_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            FieldCatalog().register_virtual_field(
                "score", {"type": "integer", "compute": "not callable"}
            )
        assert exc_info.value.reason == "invalid_callback"

    @pytest.mark.parametrize("name", ["id", "created_at", "updated_at", "deleted_at"])
    def test_reserved_virtual_names(self, name: str) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            FieldCatalog().register_virtual_field(
                name, {"type": "string", "compute": _noop}
            )
        assert exc_info.value.reason == "reserved_field_name"

    def test_invalid_virtual_name(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            FieldCatalog().register_virtual_field(
                "9lives", {"type": "string", "compute": _noop}
            )
        assert exc_info.value.reason == "invalid_field_name"

    def test_empty_dependency_name_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            FieldCatalog().register_virtual_field(
                "score",
                {"type": "integer", "compute": _noop, "dependencies": ["a", " "]},
            )
        assert exc_info.value.reason == "invalid_dependency"

    def test_empty_relationship_name_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            FieldCatalog().register_virtual_field(
                "score",
                {"type": "integer", "compute": _noop, "relationships": [""]},
            )
        assert exc_info.value.reason == "invalid_relationship"

    def test_negative_cache_ttl_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            FieldCatalog().register_virtual_field(
                "score", {"type": "integer", "compute": _noop, "cache_ttl": -1}
            )
        assert exc_info.value.reason == "invalid_cache_ttl"

    def test_enum_without_values_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            FieldCatalog().register_field("status", {"type": "enum"})
        assert exc_info.value.reason == "invalid_enum_values"

    def test_frozen_catalog_rejects_registration(self) -> None:
        catalog = FieldCatalog()
        catalog.freeze()
        assert catalog.frozen
        with pytest.raises(ConfigurationError) as exc_info:
            catalog.register_field("name", {"type": "string"})
        assert exc_info.value.reason == "catalog_frozen"

    def test_error_to_dict(self) -> None:
        catalog = FieldCatalog()
        catalog.register_field("name", {"type": "string"})
        with pytest.raises(ConfigurationError) as exc_info:
            catalog.register_field("name", {"type": "string"})
        data = exc_info.value.to_dict()
        assert data["error"] == "FIELD_CONFIGURATION_ERROR"
        assert data["context"] == {"reason": "duplicate_field", "field": "name"}

    def test_persisted_field_config_errors_use_field_code(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            FieldCatalog().register_field("age", {"type": "integer", "bogus": 1})
        assert exc_info.value.code == "FIELD_CONFIGURATION_ERROR"

        with pytest.raises(ConfigurationError) as exc_info:
            FieldCatalog().register_field("age", {"type": "integer", "operators": ["like"]})
        assert exc_info.value.code == "FIELD_CONFIGURATION_ERROR"
        assert exc_info.value.reason == "invalid_operators"

    def test_virtual_field_errors_use_virtual_code(self) -> None:
        catalog = FieldCatalog()
        with pytest.raises(ConfigurationError) as exc_info:
            catalog.register_virtual_field("id", {"type": "integer", "compute": _noop})
        assert exc_info.value.code == "VIRTUAL_FIELD_CONFIGURATION_ERROR"
        assert exc_info.value.reason == "reserved_field_name"


class TestOperatorTypeCompatibility:
    def test_like_on_integer_rejected_identically_at_registration_and_parse(
        self,
    ) -> None:
        expected = unsupported_operator_message(FilterOperator.LIKE, FieldType.INTEGER)

        with pytest.raises(ConfigurationError) as registration:
            FieldCatalog().register_field(
                "age", {"type": "integer", "operators": ["like"]}
            )
        assert registration.value.reason == "invalid_operators"
        assert expected in registration.value.message

        catalog = FieldCatalog()
        catalog.register_field("age", {"type": "integer"})
        with pytest.raises(FilterValidationError) as parse:
            FilterTranslator(catalog).translate_param("age[like]", "1")
        rejection = parse.value.rejected[0]
        assert rejection.reason == "operator_not_allowed"
        assert rejection.message == expected

    def test_like_on_virtual_integer_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            FieldCatalog().register_virtual_field(
                "score",
                {"type": "integer", "compute": _noop, "operators": ["like", "eq"]},
            )
        assert exc_info.value.context["operators"] == ["like"]

    def test_operators_for(self) -> None:
        ops = FieldCatalog.operators_for(FieldType.BOOLEAN)
        assert ops == (
            FilterOperator.EQ,
            FilterOperator.NE,
            FilterOperator.NULL,
            FilterOperator.NOT_NULL,
        )


class TestDependencyGraph:
    def test_two_field_cycle_rejected_with_chain(self) -> None:
        catalog = FieldCatalog()
        catalog.register_virtual_field(
            "a", {"type": "integer", "compute": _noop, "dependencies": ["b"]}
        )
        with pytest.raises(ConfigurationError) as exc_info:
            catalog.register_virtual_field(
                "b", {"type": "integer", "compute": _noop, "dependencies": ["a"]}
            )
        err = exc_info.value
        assert err.reason == "circular_dependency"
        assert err.context["dependency_chain"] == ["a", "b", "a"]
        assert "a -> b -> a" in err.message
        assert "b" not in catalog

    def test_self_dependency_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            FieldCatalog().register_virtual_field(
                "a", {"type": "integer", "compute": _noop, "dependencies": ["a"]}
            )
        assert exc_info.value.reason == "circular_dependency"

    def test_three_field_cycle(self) -> None:
        graph = {"a": ("b",), "b": ("c",), "c": ("a",)}
        assert find_cycle(graph) == ["a", "b", "c", "a"]

    def test_columns_are_not_graph_nodes(self) -> None:
        assert find_cycle({"a": ("first_name", "b"), "b": ("last_name",)}) is None

    def test_evaluation_order_puts_prerequisites_first(self) -> None:
        graph = {"c": ("b", "x"), "b": ("a",), "a": ("x",)}
        assert evaluation_order(graph, ["c"]) == ["a", "b", "c"]

    def test_transitive_column_and_relationship_dependencies(self) -> None:
        catalog = FieldCatalog()
        catalog.register_virtual_field(
            "base",
            {
                "type": "decimal",
                "compute": _noop,
                "dependencies": ["price"],
                "relationships": ["items"],
            },
        )
        catalog.register_virtual_field(
            "total",
            {"type": "decimal", "compute": _noop, "dependencies": ["base", "tax"]},
        )

        assert catalog.evaluation_order(["total"]) == ["base", "total"]
        assert catalog.column_dependencies(["total"]) == {"price", "tax"}
        assert catalog.relationship_dependencies(["total"]) == {"items"}


class TestLookups:
    def test_sortable_and_searchable(self, catalog: FieldCatalog) -> None:
        assert {"age", "full_name", "total_orders_value"} <= catalog.sortable()
        assert catalog.searchable() == frozenset({"first_name", "last_name"})

    def test_required_fields(self) -> None:
        catalog = FieldCatalog()
        catalog.register_field("tenant", {"type": "integer", "required": True})
        catalog.register_field("name", {"type": "string"})
        assert [d.name for d in catalog.required_fields()] == ["tenant"]

    def test_aliases_and_blocked_fields(self) -> None:
        catalog = FieldCatalog(
            FieldSelectionConfig(
                field_aliases={"surname": "last_name"},
                blocked_fields=frozenset({"password"}),
            )
        )
        assert catalog.resolve_alias("surname") == "last_name"
        assert catalog.resolve_alias("other") == "other"
        assert catalog.is_blocked("password")

    def test_relationship_qualified_field(self) -> None:
        definition = FieldCatalog().register_field(
            "user.name", {"type": "string"}
        )
        assert definition.column_path == "user.name"
        assert definition.relationship == "user"
