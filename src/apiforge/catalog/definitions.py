"""
Field and virtual-field definitions.

Definitions are frozen pydantic models that enumerate every accepted key
and reject unknown ones. ``from_config`` turns a plain mapping into a
definition and converts pydantic's validation errors into the matching
:class:`ConfigurationError` kind. Semantic checks that span the whole
catalog (duplicates, cycles) live in :mod:`apiforge.catalog.catalog`.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any, ClassVar, TypeVar, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from ..core.exceptions import ConfigurationError
from ..core.operators import (
    FieldType,
    FilterOperator,
    is_operator_supported,
    operators_for,
    unsupported_operator_message,
)

_VIRTUAL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
# Persisted fields may be relationship-qualified, e.g. ``user.name``.
_FIELD_PATH_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*(\.[a-zA-Z_][a-zA-Z0-9_]*)*$")

RESERVED_VIRTUAL_NAMES = frozenset({"id", "created_at", "updated_at", "deleted_at"})

ScalarValue = Union[str, int, float, bool]

# (entity, dependencies) -> value
ComputeFn = Callable[[Any, Any], Any]

_D = TypeVar("_D", bound="_Definition")


def _config_error(name: str, error: ValidationError) -> ConfigurationError:
    """Map the first pydantic error onto a ConfigurationError kind."""
    err = error.errors()[0]
    loc = err["loc"][0] if err["loc"] else ""
    detail = err["msg"]
    if err["type"] == "extra_forbidden":
        return ConfigurationError.missing_required_config(
            name, f"unknown key '{loc}'"
        )
    if err["type"] == "missing":
        return ConfigurationError.missing_required_config(
            name, f"missing required key '{loc}'"
        )
    if loc == "type":
        return ConfigurationError.invalid_field_type(name, err.get("input"))
    if loc == "compute":
        return ConfigurationError.invalid_callback(name)
    if loc == "operators":
        return ConfigurationError.invalid_operators(
            name, [str(err.get("input"))], detail
        )
    if loc == "cache_ttl":
        return ConfigurationError.invalid_cache_ttl(name, err.get("input"))
    if loc == "dependencies":
        return ConfigurationError.invalid_dependency(
            name, str(err.get("input")), detail
        )
    if loc == "relationships":
        return ConfigurationError.invalid_relationship(
            name, str(err.get("input")), detail
        )
    if loc == "enum_values":
        return ConfigurationError.invalid_enum_values(name, detail)
    return ConfigurationError.missing_required_config(name, f"{loc}: {detail}")


class _Definition(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    is_virtual: ClassVar[bool] = False

    name: str
    type: FieldType
    operators: tuple[FilterOperator, ...] = ()
    sortable: bool = True
    searchable: bool = False
    enum_values: tuple[ScalarValue, ...] | None = None
    description: str = ""

    @classmethod
    def from_config(cls: type[_D], name: str, config: Mapping[str, Any]) -> _D:
        data = dict(config)
        data.setdefault("name", name)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            error = _config_error(name, e)
            raise (error if cls.is_virtual else error.for_persisted_field()) from e

    @property
    def allowed_operators(self) -> tuple[FilterOperator, ...]:
        """Configured operators, or every operator legal for the type."""
        return self.operators or operators_for(self.type)

    def supports(self, operator: FilterOperator) -> bool:
        return operator in self.allowed_operators

    def validate_definition(self) -> None:
        """Raise ConfigurationError if the definition is internally invalid."""
        bad = [op for op in self.operators if not is_operator_supported(op, self.type)]
        if bad:
            raise ConfigurationError.invalid_operators(
                self.name,
                [op.value for op in bad],
                "; ".join(unsupported_operator_message(op, self.type) for op in bad),
            )
        if self.type is FieldType.ENUM:
            if not self.enum_values:
                raise ConfigurationError.invalid_enum_values(
                    self.name, "enum fields need at least one value"
                )
            if any(v == "" for v in self.enum_values):
                raise ConfigurationError.invalid_enum_values(
                    self.name, "enum values must be non-empty"
                )


class FieldDefinition(_Definition):
    """
    A persisted, filterable field.

    ``column`` names the model attribute when it differs from the public
    name. Dotted names (``user.name``) address a column on a related model.
    """

    required: bool = False
    column: str | None = None

    @property
    def column_path(self) -> str:
        return self.column or self.name

    @property
    def relationship(self) -> str | None:
        """The relationship prefix of a dotted column path, if any."""
        path = self.column_path
        return path.rsplit(".", 1)[0] if "." in path else None

    def validate_definition(self) -> None:
        if not _FIELD_PATH_RE.match(self.name):
            raise ConfigurationError.invalid_field_name(
                self.name, "must be an identifier or a dotted identifier path"
            )
        super().validate_definition()


class VirtualFieldDefinition(_Definition):
    """
    A computed field.

    ``compute`` is called as ``compute(entity, deps)`` where ``deps`` is a
    read-only mapping of the resolved ``dependencies`` and ``relationships``
    that also exposes the active computation budget as ``deps.budget``.
    ``dependencies`` may name persisted columns or other virtual fields.
    """

    is_virtual: ClassVar[bool] = True

    compute: ComputeFn
    dependencies: tuple[str, ...] = ()
    relationships: tuple[str, ...] = ()
    cacheable: bool = False
    cache_ttl: int = 3600
    default_value: Any = None
    nullable: bool = True

    def validate_definition(self) -> None:
        if not _VIRTUAL_NAME_RE.match(self.name):
            raise ConfigurationError.invalid_field_name(
                self.name,
                "must start with a letter or underscore and contain only "
                "letters, digits and underscores",
            )
        if self.name in RESERVED_VIRTUAL_NAMES:
            raise ConfigurationError.reserved_field_name(self.name)
        if not callable(self.compute):
            raise ConfigurationError.invalid_callback(self.name)
        if isinstance(self.cache_ttl, bool) or self.cache_ttl < 0:
            raise ConfigurationError.invalid_cache_ttl(self.name, self.cache_ttl)
        self._validate_names(self.dependencies, ConfigurationError.invalid_dependency)
        self._validate_names(
            self.relationships, ConfigurationError.invalid_relationship
        )
        if self.name in self.dependencies:
            raise ConfigurationError.circular_dependency(
                self.name, [self.name, self.name]
            )
        super().validate_definition()

    def _validate_names(
        self,
        names: tuple[str, ...],
        factory: Callable[[str, str, str], ConfigurationError],
    ) -> None:
        seen: set[str] = set()
        for raw in names:
            name = raw.strip()
            if not name:
                raise factory(self.name, raw, "name must not be empty")
            if name in seen:
                raise factory(self.name, raw, "declared more than once")
            seen.add(name)
