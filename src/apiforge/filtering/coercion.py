"""Type coercion of raw request operands."""

from __future__ import annotations

import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from ..core.operators import (
    MULTI_VALUE_OPERATORS,
    NULL_OPERATORS,
    PATTERN_OPERATORS,
    RANGE_OPERATORS,
    FieldType,
    FilterOperator,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..core.config import FilterConfig


class ValueCoercer:
    """
    Convert string operands to the Python type of the target field.

    Raises ``ValueError`` with a human-readable reason when a value cannot
    be coerced; the translator turns it into a ``FilterValidationError``.
    """

    def __init__(self, config: FilterConfig) -> None:
        self._config = config

    def coerce_operand(
        self,
        operator: FilterOperator,
        operand: Any,
        field_type: FieldType,
        enum_values: Sequence[Any] | None = None,
    ) -> Any:
        if operator in NULL_OPERATORS:
            return None
        if operator in PATTERN_OPERATORS:
            return str(operand)
        if operator in MULTI_VALUE_OPERATORS:
            return [self.coerce(v, field_type, enum_values) for v in operand]
        if operator in RANGE_OPERATORS:
            low, high = (self.coerce(v, field_type, enum_values) for v in operand)
            if low > high:
                raise ValueError(f"lower bound {low!r} is greater than {high!r}")
            return (low, high)
        return self.coerce(operand, field_type, enum_values)

    def coerce(
        self,
        value: Any,
        field_type: FieldType,
        enum_values: Sequence[Any] | None = None,
    ) -> Any:
        text = str(value).strip()
        if field_type in (FieldType.STRING, FieldType.TEXT):
            return str(value)
        if field_type is FieldType.INTEGER:
            try:
                return int(text)
            except ValueError:
                raise ValueError("expected an integer") from None
        if field_type is FieldType.DECIMAL:
            return self._decimal(text)
        if field_type is FieldType.BOOLEAN:
            return self._boolean(text)
        if field_type is FieldType.DATETIME:
            return self._datetime(text)
        if field_type is FieldType.ENUM:
            return self._enum(text, enum_values)
        raise ValueError(f"unsupported field type {field_type!r}")

    @staticmethod
    def _decimal(text: str) -> Decimal:
        try:
            number = Decimal(text)
        except InvalidOperation:
            raise ValueError("expected a decimal number") from None
        if not number.is_finite():
            raise ValueError("expected a finite decimal number")
        return number

    def _boolean(self, text: str) -> bool:
        lowered = text.lower()
        if lowered in self._config.true_values:
            return True
        if lowered in self._config.false_values:
            return False
        accepted = sorted(self._config.true_values | self._config.false_values)
        raise ValueError(f"expected one of {', '.join(accepted)}")

    def _datetime(self, text: str) -> datetime.datetime:
        for fmt in self._config.datetime_formats:
            try:
                if fmt == "iso":
                    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
                    return datetime.datetime.fromisoformat(iso)
                return datetime.datetime.strptime(text, fmt)
            except ValueError:
                continue
        raise ValueError(
            f"expected a datetime in one of the formats: "
            f"{', '.join(self._config.datetime_formats)}"
        )

    @staticmethod
    def _enum(text: str, enum_values: Sequence[Any] | None) -> Any:
        if not enum_values:
            return text
        for candidate in enum_values:
            if str(candidate) == text:
                return candidate
        raise ValueError(
            f"expected one of {', '.join(str(v) for v in enum_values)}"
        )
