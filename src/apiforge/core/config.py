"""
Configuration models.

All settings are frozen pydantic models constructed by the hosting
application and passed explicitly to the catalog, translator, engine and
assembler. Unknown keys are rejected.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .exceptions import ConfigurationError
from .operators import FailurePolicy

DEFAULT_DATETIME_FORMATS: tuple[str, ...] = (
    "iso",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%d/%m/%Y",
)

DEFAULT_RESERVED_KEYS: frozenset[str] = frozenset(
    {
        "page",
        "per_page",
        "sort_by",
        "sort_direction",
        "search",
        "fields",
        "filters",
        "with_filters",
    }
)


class _Settings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class PaginationConfig(_Settings):
    """Page-size bounds applied to ``per_page``."""

    default_per_page: int = Field(default=15, ge=1)
    max_per_page: int = Field(default=100, ge=1)
    min_per_page: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _check_bounds(self) -> PaginationConfig:
        if not self.min_per_page <= self.default_per_page <= self.max_per_page:
            raise ValueError(
                "expected min_per_page <= default_per_page <= max_per_page"
            )
        return self


class FieldSelectionConfig(_Settings):
    """Rules for the ``fields`` parameter and for field-name aliasing."""

    max_fields: int = Field(default=50, ge=1)
    required_fields: tuple[str, ...] = ("id",)
    blocked_fields: frozenset[str] = frozenset()
    field_aliases: dict[str, str] = Field(default_factory=dict)
    allow_all_fields: bool = True


class VirtualFieldConfig(_Settings):
    """
    Engine and virtual-sort settings.

    ``failure_policy`` decides what happens to an entity whose computation
    fails. ``sort_fallback_enabled`` decides what happens when a virtual
    sort is infeasible. The two are independent.
    """

    cache_enabled: bool = True
    default_cache_ttl: int = Field(default=3600, ge=0)
    memory_limit_mb: int = Field(default=128, ge=0)
    time_limit_seconds: float = Field(default=30.0, ge=0)
    max_sort_records: int = Field(default=10000, ge=1)
    batch_size: int = Field(default=100, ge=1)
    failure_policy: FailurePolicy = FailurePolicy.THROW
    # Only consulted under FailurePolicy.THROW.
    skip_failed_entities: bool = False
    sort_fallback_enabled: bool = True
    sort_cache_enabled: bool = True
    sort_cache_ttl: int = Field(default=1800, ge=0)
    validate_return_types: bool = False
    # A single compute call or a whole batch slower than this is logged.
    slow_computation_threshold_ms: float = Field(default=1000.0, ge=0)
    log_slow_computations: bool = True

    @property
    def memory_limit_bytes(self) -> int | None:
        return self.memory_limit_mb * 1024 * 1024 if self.memory_limit_mb else None

    @property
    def time_limit(self) -> float | None:
        return self.time_limit_seconds or None


class FilterConfig(_Settings):
    """Request-parameter parsing settings."""

    strict_mode: bool = False
    datetime_formats: tuple[str, ...] = DEFAULT_DATETIME_FORMATS
    true_values: frozenset[str] = frozenset({"true", "1", "yes", "on"})
    false_values: frozenset[str] = frozenset({"false", "0", "no", "off"})
    reserved_keys: frozenset[str] = DEFAULT_RESERVED_KEYS

    @model_validator(mode="after")
    def _check_tokens(self) -> FilterConfig:
        if self.true_values & self.false_values:
            raise ValueError("true_values and false_values must not overlap")
        return self


class ApiForgeConfig(_Settings):
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)
    field_selection: FieldSelectionConfig = Field(default_factory=FieldSelectionConfig)
    virtual_fields: VirtualFieldConfig = Field(default_factory=VirtualFieldConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ApiForgeConfig:
        """Build a config from a plain mapping, failing closed on bad keys."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigurationError.missing_required_config(
                "apiforge", problems
            ) from e
