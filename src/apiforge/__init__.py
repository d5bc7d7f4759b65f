"""
apiforge — declarative list endpoints over SQLAlchemy models.

Register persisted and virtual (computed) fields in a :class:`FieldCatalog`,
then let the :class:`ResultAssembler` turn raw request parameters into a
filtered, sorted and paginated response.
"""

from .assembler import AssembledResult, Page, ResultAssembler
from .cache import InMemoryCacheService, RedisCacheService
from .catalog import FieldCatalog, FieldDefinition, VirtualFieldDefinition
from .core import (
    ApiForgeConfig,
    ApiForgeError,
    CacheError,
    ComputationError,
    ConfigurationError,
    FailurePolicy,
    FieldSelectionConfig,
    FieldType,
    FilterConfig,
    FilterOperator,
    FilterValidationError,
    ICacheService,
    PaginationConfig,
    RejectedFilter,
    SortDirection,
    VirtualFieldConfig,
)
from .filtering import (
    FilterClause,
    FilterTranslator,
    QueryStringBuilder,
    RequestOptions,
    RequestOptionsParser,
)
from .virtual import (
    ComputationBudget,
    MappingAccessor,
    SQLAlchemyAccessor,
    VirtualFieldCache,
    VirtualFieldEngine,
)

__version__ = "0.1.0"

__all__ = [
    # Catalog
    "FieldCatalog",
    "FieldDefinition",
    "VirtualFieldDefinition",
    # Request parsing
    "FilterClause",
    "FilterTranslator",
    "QueryStringBuilder",
    "RequestOptions",
    "RequestOptionsParser",
    # Virtual fields
    "ComputationBudget",
    "MappingAccessor",
    "SQLAlchemyAccessor",
    "VirtualFieldCache",
    "VirtualFieldEngine",
    # Assembly
    "AssembledResult",
    "Page",
    "ResultAssembler",
    # Cache backends
    "ICacheService",
    "InMemoryCacheService",
    "RedisCacheService",
    # Configuration
    "ApiForgeConfig",
    "FieldSelectionConfig",
    "FilterConfig",
    "PaginationConfig",
    "VirtualFieldConfig",
    # Enums
    "FailurePolicy",
    "FieldType",
    "FilterOperator",
    "SortDirection",
    # Exceptions
    "ApiForgeError",
    "CacheError",
    "ComputationError",
    "ConfigurationError",
    "FilterValidationError",
    "RejectedFilter",
]
