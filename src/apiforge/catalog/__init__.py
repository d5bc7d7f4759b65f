"""Field catalog: definitions, registration and dependency graph."""

from .catalog import FieldCatalog
from .definitions import (
    RESERVED_VIRTUAL_NAMES,
    ComputeFn,
    FieldDefinition,
    VirtualFieldDefinition,
)
from .graph import evaluation_order, find_cycle

__all__ = [
    "RESERVED_VIRTUAL_NAMES",
    "ComputeFn",
    "FieldCatalog",
    "FieldDefinition",
    "VirtualFieldDefinition",
    "evaluation_order",
    "find_cycle",
]
