from pytest_archon import archrule


def test_core_independence() -> None:
    """
    Core holds configuration, enums, exceptions and ports.
    Every other layer builds on it, so it must not import any of them.
    """
    (
        archrule("core_is_independent")
        .match("apiforge.core*")
        .should_not_import("apiforge.catalog*")
        .should_not_import("apiforge.filtering*")
        .should_not_import("apiforge.virtual*")
        .should_not_import("apiforge.assembler*")
        .should_not_import("apiforge.persistence*")
        .should_not_import("apiforge.cache*")
        .check("apiforge")
    )


def test_catalog_layering() -> None:
    """The catalog only knows about core types."""
    (
        archrule("catalog_layering")
        .match("apiforge.catalog*")
        .should_not_import("apiforge.filtering*")
        .should_not_import("apiforge.virtual*")
        .should_not_import("apiforge.assembler*")
        .should_not_import("apiforge.persistence*")
        .check("apiforge")
    )


def test_filtering_is_store_agnostic() -> None:
    """
    Request parsing produces store-agnostic clauses.
    It must not depend on a persistence backend, a cache or the engine.
    """
    (
        archrule("filtering_is_store_agnostic")
        .match("apiforge.filtering*")
        .should_not_import("apiforge.virtual*")
        .should_not_import("apiforge.assembler*")
        .should_not_import("apiforge.persistence*")
        .should_not_import("apiforge.cache*")
        .check("apiforge")
    )


def test_persistence_layering() -> None:
    """SQL compilation does not know about virtual fields or caching."""
    (
        archrule("persistence_layering")
        .match("apiforge.persistence*")
        .should_not_import("apiforge.virtual*")
        .should_not_import("apiforge.assembler*")
        .should_not_import("apiforge.cache*")
        .check("apiforge")
    )


def test_virtual_engine_layering() -> None:
    """
    The engine talks to caches through the core port only and never
    reaches up into the assembler or down into SQL compilation.
    """
    (
        archrule("virtual_engine_layering")
        .match("apiforge.virtual*")
        .should_not_import("apiforge.assembler*")
        .should_not_import("apiforge.persistence*")
        .should_not_import("apiforge.cache*")
        .check("apiforge")
    )


def test_cache_backends_layering() -> None:
    """Cache backends implement the core port and nothing else."""
    (
        archrule("cache_backends_layering")
        .match("apiforge.cache*")
        .should_not_import("apiforge.catalog*")
        .should_not_import("apiforge.filtering*")
        .should_not_import("apiforge.virtual*")
        .should_not_import("apiforge.assembler*")
        .check("apiforge")
    )
