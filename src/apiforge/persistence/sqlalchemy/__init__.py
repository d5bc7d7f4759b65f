"""SQLAlchemy compilation of predicate instructions and request options."""

from .compiler import (
    DEFAULT_SQLA_REGISTRY,
    apply_filters,
    apply_order_by,
    apply_preload,
    apply_projection,
    apply_search,
    build_predicate,
    column_names,
    compile_instruction,
    order_expression,
    primary_key_columns,
    relationship_names,
    search_predicate,
)
from .strategy import SQLAlchemyOperator, SQLAlchemyOperatorRegistry, build_default_registry

__all__ = [
    "DEFAULT_SQLA_REGISTRY",
    "SQLAlchemyOperator",
    "SQLAlchemyOperatorRegistry",
    "apply_filters",
    "apply_order_by",
    "apply_preload",
    "apply_projection",
    "apply_search",
    "build_default_registry",
    "build_predicate",
    "column_names",
    "compile_instruction",
    "order_expression",
    "primary_key_columns",
    "relationship_names",
    "search_predicate",
]
