"""FilterTranslator — request parameters to predicates and virtual clauses."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ..core.config import FilterConfig
from ..core.exceptions import FilterValidationError, RejectedFilter
from ..core.operators import is_operator_supported, unsupported_operator_message
from ..catalog.definitions import VirtualFieldDefinition
from .clauses import FilterClause, PredicateInstruction, Preload, TranslationResult
from .coercion import ValueCoercer
from .syntax import QueryParamSyntax, split_key

if TYPE_CHECKING:
    from ..catalog.catalog import AnyDefinition, FieldCatalog
    from .syntax import ParsedParam

logger = logging.getLogger("apiforge.filtering")


class FilterTranslator:
    """
    Turn a raw ``{key: value}`` request map into typed filter clauses.

    Clauses on persisted fields become :class:`PredicateInstruction` objects
    for the store; clauses on virtual fields are returned separately for the
    virtual-field engine, together with the columns and relationships that
    must be loaded before they can be evaluated.

    In lenient mode an invalid parameter is dropped and reported in
    ``rejected``. In strict mode every rejection is collected and raised as
    a single :class:`FilterValidationError`.
    """

    def __init__(
        self,
        catalog: FieldCatalog,
        config: FilterConfig | None = None,
        *,
        syntax: QueryParamSyntax | None = None,
        coercer: ValueCoercer | None = None,
    ) -> None:
        self._catalog = catalog
        self._config = config or FilterConfig()
        self._syntax = syntax or QueryParamSyntax()
        self._coercer = coercer or ValueCoercer(self._config)

    @property
    def config(self) -> FilterConfig:
        return self._config

    def is_reserved(self, key: str) -> bool:
        if key in self._config.reserved_keys:
            return True
        try:
            field, _ = split_key(key)
        except FilterValidationError:
            return False
        return field in self._config.reserved_keys

    def translate(
        self, raw_params: Mapping[str, Any], *, strict: bool | None = None
    ) -> TranslationResult:
        strict = self._config.strict_mode if strict is None else strict
        predicates: list[PredicateInstruction] = []
        virtual_clauses: list[FilterClause] = []
        clauses: list[FilterClause] = []
        rejected: list[RejectedFilter] = []
        preload = Preload()

        for key, raw in raw_params.items():
            if self.is_reserved(key):
                continue
            try:
                clause = self.translate_param(key, raw)
            except FilterValidationError as e:
                rejected.extend(e.rejected)
                continue

            clauses.append(clause)
            if clause.virtual:
                virtual_clauses.append(clause)
                preload = preload.merge(self.preload_for([clause.field]))
            else:
                predicates.append(clause.to_instruction())

        self._check_required(clauses)

        if rejected:
            if strict:
                raise FilterValidationError.from_rejections(rejected)
            for rejection in rejected:
                logger.warning(
                    "Ignoring filter %r (%s): %s",
                    rejection.field,
                    rejection.reason,
                    rejection.message,
                )

        return TranslationResult(predicates, virtual_clauses, rejected, preload, clauses)

    def translate_param(self, key: str, raw: Any) -> FilterClause:
        """Translate a single parameter or raise FilterValidationError."""
        parsed = self._syntax.parse(key, raw)
        field = self._catalog.resolve_alias(parsed.field)
        definition = self._resolve(field, raw)
        self._check_operator(definition, parsed)

        try:
            value = self._coercer.coerce_operand(
                parsed.operator, parsed.operand, definition.type, definition.enum_values
            )
        except (TypeError, ValueError) as e:
            raise FilterValidationError.malformed_value(field, raw, str(e)) from e

        is_virtual = isinstance(definition, VirtualFieldDefinition)
        clause = FilterClause(
            field=field,
            operator=parsed.operator,
            value=value,
            raw=raw,
            field_type=definition.type,
            virtual=is_virtual,
            column=None if is_virtual else definition.column_path,
            index_friendly=parsed.index_friendly,
        )
        if not clause.index_friendly:
            logger.info(
                "Filter on %r uses a leading wildcard and cannot use an index",
                field,
            )
        return clause

    def preload_for(self, virtual_fields: list[str]) -> Preload:
        """Columns and relationships needed before computing ``virtual_fields``."""
        return Preload(
            frozenset(self._catalog.column_dependencies(virtual_fields)),
            frozenset(self._catalog.relationship_dependencies(virtual_fields)),
        )

    # -- helpers -------------------------------------------------------------

    def _resolve(self, field: str, raw: Any) -> AnyDefinition:
        definition = self._catalog.get(field)
        if definition is None or self._catalog.is_blocked(field):
            available = [
                n for n in self._catalog.all_names() if not self._catalog.is_blocked(n)
            ]
            raise FilterValidationError(
                f"Field '{field}' is not filterable",
                [FilterValidationError.unknown_field_rejection(field, available, raw)],
            )
        return definition

    @staticmethod
    def _check_operator(definition: AnyDefinition, parsed: ParsedParam) -> None:
        operator = parsed.operator
        if not is_operator_supported(operator, definition.type):
            raise FilterValidationError.operator_not_allowed(
                definition.name,
                unsupported_operator_message(operator, definition.type),
                parsed.raw,
            )
        if not definition.supports(operator):
            raise FilterValidationError.operator_not_allowed(
                definition.name,
                f"Operator '{operator.value}' is not enabled for field "
                f"'{definition.name}'",
                parsed.raw,
            )

    def _check_required(self, clauses: list[FilterClause]) -> None:
        present = {c.field for c in clauses}
        for definition in self._catalog.required_fields():
            if definition.name not in present:
                raise FilterValidationError.missing_required_filter(definition.name)
