"""Shared primitives: errors, operators, configuration and ports."""

from .config import (
    ApiForgeConfig,
    FieldSelectionConfig,
    FilterConfig,
    PaginationConfig,
    VirtualFieldConfig,
)
from .exceptions import (
    ApiForgeError,
    CacheError,
    ComputationError,
    ConfigurationError,
    FilterValidationError,
    RejectedFilter,
)
from .operators import (
    FailurePolicy,
    FieldType,
    FilterOperator,
    SortDirection,
    operators_for,
)
from .ports import ICacheService

__all__ = [
    "ApiForgeConfig",
    "ApiForgeError",
    "CacheError",
    "ComputationError",
    "ConfigurationError",
    "FailurePolicy",
    "FieldSelectionConfig",
    "FieldType",
    "FilterConfig",
    "FilterOperator",
    "FilterValidationError",
    "ICacheService",
    "PaginationConfig",
    "RejectedFilter",
    "SortDirection",
    "VirtualFieldConfig",
    "operators_for",
]
