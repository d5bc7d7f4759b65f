"""FieldCatalog — registry of filterable fields and virtual fields."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Union

from ..core.exceptions import ConfigurationError
from ..core.operators import FieldType, FilterOperator, operators_for
from .definitions import FieldDefinition, VirtualFieldDefinition
from .graph import evaluation_order, find_cycle

if TYPE_CHECKING:
    from ..core.config import FieldSelectionConfig

logger = logging.getLogger("apiforge.catalog")

AnyDefinition = Union[FieldDefinition, VirtualFieldDefinition]


class FieldCatalog:
    """
    Canonical store of field definitions, read-only after startup.

    Usage::

        catalog = FieldCatalog()
        catalog.register_field("name", {"type": "string", "searchable": True})
        catalog.register_virtual_field(
            "full_name",
            {
                "type": "string",
                "compute": lambda user, deps: f"{deps['first_name']} {deps['last_name']}",
                "dependencies": ["first_name", "last_name"],
            },
        )
        catalog.freeze()
    """

    def __init__(self, selection: FieldSelectionConfig | None = None) -> None:
        self._fields: dict[str, FieldDefinition] = {}
        self._virtual: dict[str, VirtualFieldDefinition] = {}
        self._aliases: dict[str, str] = dict(selection.field_aliases) if selection else {}
        self._blocked: frozenset[str] = (
            frozenset(selection.blocked_fields) if selection else frozenset()
        )
        self._frozen = False

    # -- registration --------------------------------------------------------

    def register(self, definition: AnyDefinition) -> AnyDefinition:
        """Validate ``definition`` and insert it."""
        try:
            if self._frozen:
                raise ConfigurationError.catalog_frozen(definition.name)
            definition.validate_definition()
            if definition.name in self._fields or definition.name in self._virtual:
                raise ConfigurationError.duplicate_field(definition.name)
            if isinstance(definition, VirtualFieldDefinition):
                self._check_acyclic(definition)
        except ConfigurationError as e:
            if not definition.is_virtual:
                e.for_persisted_field()
            logger.warning("Rejected definition %r: %s", definition.name, e)
            raise

        if isinstance(definition, VirtualFieldDefinition):
            self._virtual[definition.name] = definition
        else:
            self._fields[definition.name] = definition
        logger.debug(
            "Registered %s field %r (%s)",
            "virtual" if isinstance(definition, VirtualFieldDefinition) else "persisted",
            definition.name,
            definition.type.value,
        )
        return definition

    def register_field(
        self, name: str, config: Mapping[str, Any] | FieldDefinition
    ) -> FieldDefinition:
        if not isinstance(config, FieldDefinition):
            config = FieldDefinition.from_config(name, config)
        self.register(config)
        return config

    def register_virtual_field(
        self, name: str, config: Mapping[str, Any] | VirtualFieldDefinition
    ) -> VirtualFieldDefinition:
        if not isinstance(config, VirtualFieldDefinition):
            config = VirtualFieldDefinition.from_config(name, config)
        self.register(config)
        return config

    def register_all(self, *definitions: AnyDefinition) -> None:
        for definition in definitions:
            self.register(definition)

    def freeze(self) -> None:
        """Reject further registrations."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_acyclic(self, candidate: VirtualFieldDefinition) -> None:
        graph = self.dependency_graph()
        graph[candidate.name] = tuple(candidate.dependencies)
        cycle = find_cycle(graph)
        if cycle:
            raise ConfigurationError.circular_dependency(candidate.name, cycle)

    # -- look-up -------------------------------------------------------------

    def __contains__(self, name: object) -> bool:
        return name in self._fields or name in self._virtual

    def __len__(self) -> int:
        return len(self._fields) + len(self._virtual)

    def get(self, name: str) -> AnyDefinition | None:
        """Return the definition registered under ``name`` or ``None``."""
        return self._fields.get(name) or self._virtual.get(name)

    def get_field(self, name: str) -> FieldDefinition | None:
        return self._fields.get(name)

    def get_virtual(self, name: str) -> VirtualFieldDefinition | None:
        return self._virtual.get(name)

    def is_virtual_field(self, name: str) -> bool:
        return name in self._virtual

    def is_blocked(self, name: str) -> bool:
        return name in self._blocked

    def resolve_alias(self, name: str) -> str:
        return self._aliases.get(name, name)

    @staticmethod
    def operators_for(field_type: FieldType) -> tuple[FilterOperator, ...]:
        return operators_for(field_type)

    def field_names(self) -> list[str]:
        return list(self._fields)

    def virtual_field_names(self) -> list[str]:
        return list(self._virtual)

    def all_names(self) -> list[str]:
        return [*self._fields, *self._virtual]

    def sortable(self) -> frozenset[str]:
        return frozenset(
            d.name for d in (*self._fields.values(), *self._virtual.values()) if d.sortable
        )

    def searchable(self) -> frozenset[str]:
        return frozenset(d.name for d in self._fields.values() if d.searchable)

    def required_fields(self) -> list[FieldDefinition]:
        return [d for d in self._fields.values() if d.required]

    # -- dependency graph ----------------------------------------------------

    def dependency_graph(self) -> dict[str, tuple[str, ...]]:
        """Virtual field -> declared dependencies (columns and virtual fields)."""
        return {name: d.dependencies for name, d in self._virtual.items()}

    def evaluation_order(self, names: Iterable[str]) -> list[str]:
        """Virtual fields needed to compute ``names``, prerequisites first."""
        return evaluation_order(self.dependency_graph(), names)

    def column_dependencies(self, names: Iterable[str]) -> set[str]:
        """Persisted columns the given virtual fields need, transitively."""
        columns: set[str] = set()
        for name in self.evaluation_order(names):
            columns.update(
                d for d in self._virtual[name].dependencies if d not in self._virtual
            )
        return columns

    def relationship_dependencies(self, names: Iterable[str]) -> set[str]:
        """Relationships the given virtual fields need, transitively."""
        relationships: set[str] = set()
        for name in self.evaluation_order(names):
            relationships.update(self._virtual[name].relationships)
        return relationships
