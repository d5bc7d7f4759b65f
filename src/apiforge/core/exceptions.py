"""
Exception taxonomy for apiforge.

Every error carries a machine-readable ``code``, an HTTP-like
``status_code`` and a structured ``context`` map, and renders itself via
``to_dict()`` for API-friendly error responses.

Factories are provided as classmethods so call sites read as intent::

    raise ConfigurationError.duplicate_field("full_name")
    raise ComputationError.callback_failed("full_name", "user", 7, exc)
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass
from difflib import get_close_matches
from typing import Any


class ApiForgeError(Exception):
    """Root exception for the entire apiforge package."""

    code: str = "APIFORGE_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.context: dict[str, Any] = dict(context or {})
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "context": self.context,
        }


# ---------------------------------------------------------------------------
# Configuration (startup)
# ---------------------------------------------------------------------------


class ConfigurationError(ApiForgeError):
    """Invalid field or virtual-field definition. Fatal to startup."""

    code = "VIRTUAL_FIELD_CONFIGURATION_ERROR"
    persisted_code = "FIELD_CONFIGURATION_ERROR"
    status_code = 400

    @property
    def reason(self) -> str | None:
        return self.context.get("reason")

    @classmethod
    def _build(cls, reason: str, message: str, **context: Any) -> ConfigurationError:
        return cls(message, context={"reason": reason, **context})

    def for_persisted_field(self) -> ConfigurationError:
        """Relabel an error raised while defining a persisted field."""
        self.code = self.persisted_code
        return self

    @classmethod
    def invalid_field_name(cls, name: str, detail: str) -> ConfigurationError:
        return cls._build(
            "invalid_field_name",
            f"Invalid field name '{name}': {detail}",
            field=name,
        )

    @classmethod
    def reserved_field_name(cls, name: str) -> ConfigurationError:
        return cls._build(
            "reserved_field_name",
            f"Field name '{name}' is reserved and cannot be used for a "
            "virtual field",
            field=name,
        )

    @classmethod
    def invalid_field_type(cls, name: str, field_type: Any) -> ConfigurationError:
        return cls._build(
            "invalid_field_type",
            f"Invalid type '{field_type}' for field '{name}'",
            field=name,
            type=str(field_type),
        )

    @classmethod
    def invalid_callback(cls, name: str) -> ConfigurationError:
        return cls._build(
            "invalid_callback",
            f"Compute callback for virtual field '{name}' is not callable",
            field=name,
        )

    @classmethod
    def invalid_operators(
        cls, name: str, operators: list[str], detail: str
    ) -> ConfigurationError:
        return cls._build(
            "invalid_operators",
            f"Invalid operators for field '{name}': {detail}",
            field=name,
            operators=operators,
        )

    @classmethod
    def invalid_dependency(
        cls, name: str, dependency: str, detail: str
    ) -> ConfigurationError:
        return cls._build(
            "invalid_dependency",
            f"Invalid dependency '{dependency}' for virtual field '{name}': {detail}",
            field=name,
            dependency=dependency,
        )

    @classmethod
    def invalid_relationship(
        cls, name: str, relationship: str, detail: str
    ) -> ConfigurationError:
        return cls._build(
            "invalid_relationship",
            f"Invalid relationship '{relationship}' for virtual field "
            f"'{name}': {detail}",
            field=name,
            relationship=relationship,
        )

    @classmethod
    def invalid_cache_ttl(cls, name: str, ttl: Any) -> ConfigurationError:
        return cls._build(
            "invalid_cache_ttl",
            f"Cache TTL for virtual field '{name}' must be a non-negative "
            f"integer, got {ttl!r}",
            field=name,
            cache_ttl=ttl,
        )

    @classmethod
    def invalid_enum_values(cls, name: str, detail: str) -> ConfigurationError:
        return cls._build(
            "invalid_enum_values",
            f"Invalid enum values for field '{name}': {detail}",
            field=name,
        )

    @classmethod
    def duplicate_field(cls, name: str) -> ConfigurationError:
        return cls._build(
            "duplicate_field",
            f"Field '{name}' is already registered",
            field=name,
        )

    @classmethod
    def circular_dependency(cls, name: str, chain: list[str]) -> ConfigurationError:
        return cls._build(
            "circular_dependency",
            f"Circular dependency detected for virtual field '{name}'. "
            f"Dependency chain: {' -> '.join(chain)}",
            field=name,
            dependency_chain=chain,
        )

    @classmethod
    def missing_required_config(cls, name: str, detail: str) -> ConfigurationError:
        return cls._build(
            "missing_required_config",
            f"Invalid configuration for '{name}': {detail}",
            field=name,
        )

    @classmethod
    def catalog_frozen(cls, name: str) -> ConfigurationError:
        return cls._build(
            "catalog_frozen",
            f"Cannot register '{name}': the field catalog is frozen",
            field=name,
        )


# ---------------------------------------------------------------------------
# Filter validation (per request)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RejectedFilter:
    """A single request parameter that could not be turned into a clause."""

    field: str
    reason: str
    message: str
    value: Any = None
    suggestions: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "field": self.field,
            "reason": self.reason,
            "message": self.message,
        }
        if self.value is not None:
            data["value"] = self.value
        if self.suggestions:
            data["suggestions"] = list(self.suggestions)
        return data


class FilterValidationError(ApiForgeError):
    """
    One or more request filters are invalid.

    Aggregates :class:`RejectedFilter` entries so a strict-mode response can
    enumerate every offending field at once.
    """

    code = "FILTER_VALIDATION_ERROR"
    status_code = 422

    def __init__(
        self,
        message: str,
        rejected: list[RejectedFilter] | None = None,
        *,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.rejected: list[RejectedFilter] = list(rejected or [])
        ctx = dict(context or {})
        ctx.setdefault("fields", [r.field for r in self.rejected])
        super().__init__(message, context=ctx)

    @classmethod
    def from_rejections(cls, rejected: list[RejectedFilter]) -> FilterValidationError:
        fields = ", ".join(r.field for r in rejected)
        return cls(f"Invalid filters: {fields}", rejected)

    @classmethod
    def _single(cls, rejection: RejectedFilter) -> FilterValidationError:
        return cls(rejection.message, [rejection])

    # -- rejection builders (also used by lenient mode) ----------------------

    @staticmethod
    def unknown_field_rejection(
        field: str, available: list[str], value: Any = None
    ) -> RejectedFilter:
        suggestions = tuple(get_close_matches(field, available, n=3, cutoff=0.6))
        message = f"Field '{field}' is not filterable"
        if suggestions:
            message += f". Did you mean: {', '.join(suggestions)}?"
        return RejectedFilter(field, "unknown_field", message, value, suggestions)

    @classmethod
    def unknown_field(cls, field: str, available: list[str]) -> FilterValidationError:
        return cls._single(cls.unknown_field_rejection(field, available))

    @classmethod
    def operator_not_allowed(
        cls, field: str, message: str, value: Any = None
    ) -> FilterValidationError:
        return cls._single(
            RejectedFilter(field, "operator_not_allowed", message, value)
        )

    @classmethod
    def malformed_value(
        cls, field: str, value: Any, detail: str
    ) -> FilterValidationError:
        return cls._single(
            RejectedFilter(
                field,
                "malformed_value",
                f"Invalid value {value!r} for field '{field}': {detail}",
                value,
            )
        )

    @classmethod
    def missing_required_filter(cls, field: str) -> FilterValidationError:
        return cls._single(
            RejectedFilter(
                field,
                "missing_required_filter",
                f"Filter on field '{field}' is required",
            )
        )

    @classmethod
    def field_not_sortable(cls, field: str) -> FilterValidationError:
        return cls._single(
            RejectedFilter(
                field, "field_not_sortable", f"Field '{field}' is not sortable"
            )
        )

    @classmethod
    def too_many_fields(cls, requested: int, limit: int) -> FilterValidationError:
        return cls._single(
            RejectedFilter(
                "fields",
                "too_many_fields",
                f"Too many fields requested ({requested}); the limit is {limit}",
            )
        )

    @classmethod
    def too_many_records(
        cls, field: str, count: int, limit: int
    ) -> FilterValidationError:
        return cls._single(
            RejectedFilter(
                field,
                "too_many_records",
                f"Cannot evaluate virtual field '{field}' over {count} records; "
                f"the limit is {limit}",
            )
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["invalid_filters"] = [r.to_dict() for r in self.rejected]
        return data


# ---------------------------------------------------------------------------
# Computation (per entity / per batch)
# ---------------------------------------------------------------------------


class ComputationError(ApiForgeError):
    """A virtual field could not be computed for an entity or a batch."""

    code = "VIRTUAL_FIELD_COMPUTATION_ERROR"
    status_code = 500

    @property
    def reason(self) -> str | None:
        return self.context.get("reason")

    @property
    def field(self) -> str | None:
        return self.context.get("field")

    @property
    def entity_id(self) -> Any:
        return self.context.get("entity_id")

    @classmethod
    def _build(
        cls,
        reason: str,
        message: str,
        field: str,
        entity_type: str | None = None,
        entity_id: Any = None,
        **extra: Any,
    ) -> ComputationError:
        context: dict[str, Any] = {"reason": reason, "field": field}
        if entity_type is not None:
            context["entity_type"] = entity_type
        if entity_id is not None:
            context["entity_id"] = entity_id
        context.update(extra)
        return cls(message, context=context)

    @classmethod
    def callback_failed(
        cls, field: str, entity_type: str, entity_id: Any, cause: BaseException
    ) -> ComputationError:
        err = cls._build(
            "callback_failed",
            f"Computation of virtual field '{field}' failed for "
            f"{entity_type} {entity_id!r}: {cause}",
            field,
            entity_type,
            entity_id,
            cause=type(cause).__name__,
        )
        err.__cause__ = cause
        return err

    @classmethod
    def missing_dependency(
        cls, field: str, dependency: str, entity_type: str, entity_id: Any
    ) -> ComputationError:
        return cls._build(
            "missing_dependency",
            f"Virtual field '{field}' requires '{dependency}' which is not "
            f"loaded on {entity_type} {entity_id!r}",
            field,
            entity_type,
            entity_id,
            dependency=dependency,
        )

    @classmethod
    def missing_relationship(
        cls, field: str, relationship: str, entity_type: str, entity_id: Any
    ) -> ComputationError:
        return cls._build(
            "missing_relationship",
            f"Virtual field '{field}' requires relationship '{relationship}' "
            f"which is not loaded on {entity_type} {entity_id!r}",
            field,
            entity_type,
            entity_id,
            relationship=relationship,
        )

    @classmethod
    def invalid_return_type(
        cls,
        field: str,
        expected: str,
        value: Any,
        entity_type: str,
        entity_id: Any,
    ) -> ComputationError:
        return cls._build(
            "invalid_return_type",
            f"Virtual field '{field}' returned {type(value).__name__}, "
            f"expected {expected}",
            field,
            entity_type,
            entity_id,
            expected=expected,
            actual=type(value).__name__,
        )

    @classmethod
    def timeout_exceeded(
        cls, field: str, limit: float, elapsed: float
    ) -> ComputationError:
        return cls._build(
            "timeout_exceeded",
            f"Computation of virtual field '{field}' exceeded the time limit "
            f"of {limit:.2f}s (elapsed {elapsed:.2f}s)",
            field,
            time_limit=limit,
            elapsed=round(elapsed, 4),
        )

    @classmethod
    def memory_limit_exceeded(cls, field: str, limit: int, used: int) -> ComputationError:
        return cls._build(
            "memory_limit_exceeded",
            f"Computation of virtual field '{field}' exceeded the memory limit "
            f"of {limit} bytes (used {used} bytes)",
            field,
            memory_limit=limit,
            memory_used=used,
        )

    @classmethod
    def batch_processing_failed(
        cls, field: str, batch_size: int, cause: BaseException
    ) -> ComputationError:
        err = cls._build(
            "batch_processing_failed",
            f"Batch computation of virtual field '{field}' failed "
            f"({batch_size} entities): {cause}",
            field,
            batch_size=batch_size,
        )
        err.__cause__ = cause
        return err

    @classmethod
    def cancelled(cls, field: str) -> ComputationError:
        return cls._build(
            "cancelled",
            f"Computation of virtual field '{field}' was cancelled",
            field,
        )

    def to_dict(self, include_trace: bool = False) -> dict[str, Any]:
        data = super().to_dict()
        if include_trace and self.__cause__ is not None:
            data["trace"] = traceback.format_exception(self.__cause__)
        return data


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class CacheError(ApiForgeError):
    """Cache store/retrieve failure. Never fatal: callers treat it as a miss."""

    code = "CACHE_ERROR"
    status_code = 500

    @classmethod
    def operation_failed(
        cls, operation: str, key: str | None, cause: BaseException
    ) -> CacheError:
        err = cls(
            f"Cache {operation} failed"
            + (f" for key {key}" if key else "")
            + f": {cause}",
            context={"operation": operation, "key": key},
        )
        err.__cause__ = cause
        return err
