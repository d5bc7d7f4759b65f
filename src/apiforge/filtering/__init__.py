"""Request parsing: filter grammar, coercion, translation and options."""

from .clauses import FilterClause, PredicateInstruction, Preload, TranslationResult
from .coercion import ValueCoercer
from .evaluator import MemoryOperator, MemoryOperatorRegistry, build_default_registry
from .options import RequestOptions, RequestOptionsParser
from .query_string import QueryStringBuilder
from .syntax import ParsedParam, QueryParamSyntax
from .translator import FilterTranslator

__all__ = [
    "FilterClause",
    "FilterTranslator",
    "MemoryOperator",
    "MemoryOperatorRegistry",
    "ParsedParam",
    "PredicateInstruction",
    "Preload",
    "QueryParamSyntax",
    "QueryStringBuilder",
    "RequestOptions",
    "RequestOptionsParser",
    "TranslationResult",
    "ValueCoercer",
    "build_default_registry",
]
