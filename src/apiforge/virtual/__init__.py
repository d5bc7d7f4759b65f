"""Virtual-field computation: accessors, budgets, caching and the engine."""

from .accessor import (
    AttributeAccessor,
    EntityAccessor,
    MappingAccessor,
    SQLAlchemyAccessor,
)
from .budget import ComputationBudget, current_memory_usage
from .engine import DependencyBag, Outcome, VirtualFieldEngine
from .metrics import VirtualFieldMetrics, default_metrics
from .value_cache import VirtualFieldCache, dependency_hash

__all__ = [
    "AttributeAccessor",
    "ComputationBudget",
    "DependencyBag",
    "EntityAccessor",
    "MappingAccessor",
    "Outcome",
    "SQLAlchemyAccessor",
    "VirtualFieldCache",
    "VirtualFieldEngine",
    "VirtualFieldMetrics",
    "current_memory_usage",
    "default_metrics",
    "dependency_hash",
]
