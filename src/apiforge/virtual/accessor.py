"""
Entity accessors.

The engine never reaches into entities through ``getattr``. It goes
through an accessor that knows the entity's explicit field table, so it
can tell "not loaded" apart from "loaded and None".
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import inspect


@runtime_checkable
class EntityAccessor(Protocol):
    """Read-only view of an entity as needed by virtual-field computation."""

    def identity(self, entity: Any) -> Any:
        """Stable identifier of ``entity`` within its type."""
        ...

    def entity_type(self, entity: Any) -> str:
        ...

    def has_value(self, entity: Any, name: str) -> bool:
        """True if column ``name`` is loaded on ``entity``."""
        ...

    def get_value(self, entity: Any, name: str) -> Any:
        ...

    def is_relationship_loaded(self, entity: Any, name: str) -> bool:
        ...


class MappingAccessor:
    """Accessor for plain mapping entities (dicts, rows as mappings)."""

    def __init__(self, *, id_key: str = "id", entity_type: str = "record") -> None:
        self._id_key = id_key
        self._entity_type = entity_type

    def identity(self, entity: Mapping[str, Any]) -> Any:
        return entity[self._id_key]

    def entity_type(self, entity: Mapping[str, Any]) -> str:
        return self._entity_type

    def has_value(self, entity: Mapping[str, Any], name: str) -> bool:
        return name in entity

    def get_value(self, entity: Mapping[str, Any], name: str) -> Any:
        return entity.get(name)

    def is_relationship_loaded(self, entity: Mapping[str, Any], name: str) -> bool:
        return name in entity


class SQLAlchemyAccessor:
    """
    Accessor for SQLAlchemy ORM instances.

    Reads loaded state only (``InstanceState.dict``), so it never triggers a
    lazy load, which would fail under ``AsyncSession`` anyway.
    """

    def identity(self, entity: Any) -> Any:
        identity = inspect(entity).identity
        if identity is None:
            return None
        return identity[0] if len(identity) == 1 else identity

    def entity_type(self, entity: Any) -> str:
        return str(inspect(entity).mapper.class_.__name__)

    def has_value(self, entity: Any, name: str) -> bool:
        state = inspect(entity)
        return name in state.mapper.column_attrs and name not in state.unloaded

    def get_value(self, entity: Any, name: str) -> Any:
        return inspect(entity).dict.get(name)

    def is_relationship_loaded(self, entity: Any, name: str) -> bool:
        state = inspect(entity)
        return name in state.mapper.relationships and name not in state.unloaded


class AttributeAccessor:
    """
    Accessor for plain objects with an instance ``__dict__``.

    Only instance attributes count as loaded; class-level defaults and
    properties are not consulted.
    """

    def __init__(self, *, id_attr: str = "id") -> None:
        self._id_attr = id_attr

    def identity(self, entity: Any) -> Any:
        return vars(entity).get(self._id_attr)

    def entity_type(self, entity: Any) -> str:
        return type(entity).__name__

    def has_value(self, entity: Any, name: str) -> bool:
        return name in vars(entity)

    def get_value(self, entity: Any, name: str) -> Any:
        return vars(entity).get(name)

    def is_relationship_loaded(self, entity: Any, name: str) -> bool:
        return name in vars(entity)
