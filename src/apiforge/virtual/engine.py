"""
VirtualFieldEngine — batch computation of virtual fields.

For each chunk of entities and each virtual field (prerequisites first):

1. resolve declared dependencies through the :class:`EntityAccessor`,
2. consult the cache for cacheable fields,
3. invoke the compute callback for the misses,
4. store fresh values in the cache.

Per-entity failures are handled by the configured
:class:`~apiforge.core.operators.FailurePolicy`. Budget exhaustion and
cancellation are batch-level and always propagate. Callback timings are
kept per field and exported to Prometheus; calls and batches slower than
``slow_computation_threshold_ms`` are logged as warnings.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from ..core.config import VirtualFieldConfig
from ..core.exceptions import ComputationError
from ..core.operators import FailurePolicy, FieldType
from ..filtering.evaluator import build_default_registry
from .budget import ComputationBudget, current_memory_usage
from .metrics import default_metrics
from .value_cache import MISS

if TYPE_CHECKING:
    from ..catalog.catalog import FieldCatalog
    from ..catalog.definitions import VirtualFieldDefinition
    from ..filtering.clauses import FilterClause
    from ..filtering.evaluator import MemoryOperatorRegistry
    from .accessor import EntityAccessor
    from .metrics import VirtualFieldMetrics
    from .value_cache import VirtualFieldCache

logger = logging.getLogger("apiforge.virtual")

_BATCH_LEVEL_REASONS = frozenset(
    {"timeout_exceeded", "memory_limit_exceeded", "cancelled"}
)


@dataclass(frozen=True)
class Outcome:
    """Result of computing one virtual field for one entity."""

    value: Any = None
    error: ComputationError | None = None
    excluded: bool = False
    cached: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class DependencyBag(Mapping[str, Any]):
    """
    Read-only dependency values handed to compute callbacks.

    Column and virtual-field dependencies and loaded relationships are
    available by name. ``budget`` is the active :class:`ComputationBudget`.
    """

    def __init__(
        self,
        values: dict[str, Any],
        relationships: dict[str, Any],
        *,
        budget: ComputationBudget,
        entity_id: Any,
    ) -> None:
        self._values = values
        self._relationships = relationships
        self.budget = budget
        self.entity_id = entity_id

    def __getitem__(self, key: str) -> Any:
        if key in self._values:
            return self._values[key]
        return self._relationships[key]

    def __iter__(self) -> Iterator[str]:
        yield from self._values
        yield from self._relationships

    def __len__(self) -> int:
        return len(self._values) + len(self._relationships)

    @property
    def values_for_key(self) -> dict[str, Any]:
        """Dependency values that identify a cache entry."""
        return self._values


@dataclass
class EngineStatistics:
    computations: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    failures: int = 0
    skipped: int = 0
    batches: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "computations": self.computations,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "failures": self.failures,
            "skipped": self.skipped,
            "batches": self.batches,
        }


@dataclass
class FieldMetrics:
    """Per-field counters; durations cover compute callbacks only."""

    computations: int = 0
    failures: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    slow_computations: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0

    @property
    def average_ms(self) -> float:
        return self.total_ms / self.computations if self.computations else 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "computations": self.computations,
            "failures": self.failures,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "slow_computations": self.slow_computations,
            "total_ms": self.total_ms,
            "average_ms": self.average_ms,
            "max_ms": self.max_ms,
        }


def chunked(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _matches_type(value: Any, definition: VirtualFieldDefinition) -> bool:
    field_type = definition.type
    if field_type in (FieldType.STRING, FieldType.TEXT):
        return isinstance(value, str)
    if field_type is FieldType.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    if field_type is FieldType.DECIMAL:
        return isinstance(value, int | float | Decimal) and not isinstance(value, bool)
    if field_type is FieldType.BOOLEAN:
        return isinstance(value, bool)
    if field_type is FieldType.DATETIME:
        return isinstance(value, datetime.date)
    if field_type is FieldType.ENUM:
        return value in (definition.enum_values or ())
    return True


class VirtualFieldEngine:
    """
    Computes virtual fields for batches of entities.

    Collaborators are injected explicitly::

        engine = VirtualFieldEngine(
            catalog,
            accessor=SQLAlchemyAccessor(),
            cache=VirtualFieldCache(RedisCacheService(redis)),
            config=VirtualFieldConfig(failure_policy=FailurePolicy.DEFAULT),
        )
        outcomes = await engine.compute_batch("full_name", users)
    """

    def __init__(
        self,
        catalog: FieldCatalog,
        *,
        accessor: EntityAccessor,
        cache: VirtualFieldCache | None = None,
        config: VirtualFieldConfig | None = None,
        operators: MemoryOperatorRegistry | None = None,
        clock: Callable[[], float] = time.monotonic,
        memory_reader: Callable[[], int] = current_memory_usage,
        metrics: VirtualFieldMetrics | None = None,
    ) -> None:
        self._catalog = catalog
        self._accessor = accessor
        self._config = config or VirtualFieldConfig()
        self._cache = cache if self._config.cache_enabled else None
        self._operators = operators or build_default_registry()
        self._clock = clock
        self._memory_reader = memory_reader
        self._stats = EngineStatistics()
        self._field_metrics: dict[str, FieldMetrics] = {}
        self._metrics = metrics or default_metrics()

    @property
    def config(self) -> VirtualFieldConfig:
        return self._config

    @property
    def accessor(self) -> EntityAccessor:
        return self._accessor

    @property
    def cache(self) -> VirtualFieldCache | None:
        return self._cache

    def new_budget(self) -> ComputationBudget:
        return ComputationBudget(
            time_limit=self._config.time_limit,
            memory_limit=self._config.memory_limit_bytes,
            clock=self._clock,
            memory_reader=self._memory_reader,
        )

    def _require(self, name: str) -> VirtualFieldDefinition:
        definition = self._catalog.get_virtual(name)
        if definition is None:
            raise ValueError(f"Unknown virtual field: {name!r}")
        return definition

    # -- computation ---------------------------------------------------------

    async def compute_batch(
        self,
        field: str,
        entities: Sequence[Any],
        *,
        budget: ComputationBudget | None = None,
    ) -> dict[Any, Outcome]:
        """Compute ``field`` for every entity, keyed by entity identity."""
        results = await self.compute_fields([field], entities, budget=budget)
        return results[field]

    async def compute(
        self, field: str, entity: Any, *, budget: ComputationBudget | None = None
    ) -> Outcome:
        outcomes = await self.compute_batch(field, [entity], budget=budget)
        return outcomes[self._accessor.identity(entity)]

    async def compute_fields(
        self,
        fields: Sequence[str],
        entities: Sequence[Any],
        *,
        budget: ComputationBudget | None = None,
    ) -> dict[str, dict[Any, Outcome]]:
        """
        Compute several virtual fields over the same entities.

        Virtual prerequisites are computed once and shared. Chunks of
        ``batch_size`` entities are processed one after another; the budget
        is checked before each chunk and before each entity.
        """
        targets = [self._require(name) for name in fields]
        budget = budget or self.new_budget()
        order = [self._require(n) for n in self._catalog.evaluation_order(fields)]
        label = ",".join(d.name for d in targets)
        results: dict[str, dict[Any, Outcome]] = {d.name: {} for d in order}

        started = self._clock()
        for chunk in chunked(list(entities), self._config.batch_size):
            budget.check(label)
            # Yield so that task cancellation lands between chunks.
            await asyncio.sleep(0)
            self._stats.batches += 1
            for definition in order:
                await self._compute_chunk(definition, chunk, budget, results)

        elapsed_ms = (self._clock() - started) * 1000
        logger.debug(
            "Computed %s for %d entities in %.2fms", label, len(entities), elapsed_ms
        )
        if self._is_slow(elapsed_ms):
            logger.warning(
                "Slow batch computation of %s for %d entities: %.2fms (threshold %.2fms)",
                label,
                len(entities),
                elapsed_ms,
                self._config.slow_computation_threshold_ms,
            )
        return {name: results[name] for name in fields}

    async def _compute_chunk(
        self,
        definition: VirtualFieldDefinition,
        chunk: Sequence[Any],
        budget: ComputationBudget,
        results: dict[str, dict[Any, Outcome]],
    ) -> None:
        name = definition.name
        out = results[name]
        metrics = self._metrics_for(name)
        pending: list[tuple[Any, Any, DependencyBag]] = []
        for entity in chunk:
            entity_id = self._accessor.identity(entity)
            try:
                bag = self._resolve_dependencies(definition, entity, entity_id, results, budget)
            except ComputationError as e:
                out[entity_id] = self._handle_failure(definition, e)
                continue
            pending.append((entity, entity_id, bag))

        keys: list[str | None] = [None] * len(pending)
        cached: list[Any] = [MISS] * len(pending)
        if definition.cacheable and self._cache is not None:
            cache_keys = [
                self._cache.key(
                    name,
                    self._accessor.entity_type(entity),
                    entity_id,
                    bag.values_for_key,
                )
                for entity, entity_id, bag in pending
            ]
            cached = await self._cache.get_many(cache_keys)
            keys = list(cache_keys)

        fresh: list[tuple[str, Any]] = []
        for (entity, entity_id, bag), key, hit in zip(pending, keys, cached):
            budget.check(name)
            if hit is not MISS:
                self._stats.cache_hits += 1
                metrics.cache_hits += 1
                self._metrics.observe_cache_lookup(name, hit=True)
                out[entity_id] = Outcome(value=hit, cached=True)
                continue
            if key is not None:
                self._stats.cache_misses += 1
                metrics.cache_misses += 1
                self._metrics.observe_cache_lookup(name, hit=False)
            try:
                value = self._invoke(definition, entity, entity_id, bag)
            except ComputationError as e:
                if e.reason in _BATCH_LEVEL_REASONS:
                    raise
                out[entity_id] = self._handle_failure(definition, e)
                continue
            out[entity_id] = Outcome(value=value)
            if key is not None:
                fresh.append((key, value))

        if fresh and self._cache is not None:
            await self._cache.put_many(fresh, ttl=definition.cache_ttl)

    def _resolve_dependencies(
        self,
        definition: VirtualFieldDefinition,
        entity: Any,
        entity_id: Any,
        results: dict[str, dict[Any, Outcome]],
        budget: ComputationBudget,
    ) -> DependencyBag:
        entity_type = self._accessor.entity_type(entity)
        values: dict[str, Any] = {}
        for dep in definition.dependencies:
            if self._catalog.is_virtual_field(dep):
                outcome = results[dep].get(entity_id)
                if outcome is None or outcome.excluded:
                    raise ComputationError.missing_dependency(
                        definition.name, dep, entity_type, entity_id
                    )
                values[dep] = outcome.value
            elif self._accessor.has_value(entity, dep):
                values[dep] = self._accessor.get_value(entity, dep)
            else:
                raise ComputationError.missing_dependency(
                    definition.name, dep, entity_type, entity_id
                )

        relationships: dict[str, Any] = {}
        for rel in definition.relationships:
            if not self._accessor.is_relationship_loaded(entity, rel):
                raise ComputationError.missing_relationship(
                    definition.name, rel, entity_type, entity_id
                )
            relationships[rel] = self._accessor.get_value(entity, rel)

        return DependencyBag(values, relationships, budget=budget, entity_id=entity_id)

    def _invoke(
        self,
        definition: VirtualFieldDefinition,
        entity: Any,
        entity_id: Any,
        bag: DependencyBag,
    ) -> Any:
        self._stats.computations += 1
        started = self._clock()
        outcome = "failure"
        try:
            value = definition.compute(entity, bag)
            outcome = "success"
        except ComputationError:
            raise
        except Exception as e:
            raise ComputationError.callback_failed(
                definition.name, self._accessor.entity_type(entity), entity_id, e
            ) from e
        finally:
            self._record_duration(
                definition.name, entity_id, self._clock() - started, outcome
            )

        if value is None:
            if not definition.nullable:
                raise ComputationError.invalid_return_type(
                    definition.name,
                    definition.type.value,
                    value,
                    self._accessor.entity_type(entity),
                    entity_id,
                )
        elif self._config.validate_return_types and not _matches_type(value, definition):
            raise ComputationError.invalid_return_type(
                definition.name,
                definition.type.value,
                value,
                self._accessor.entity_type(entity),
                entity_id,
            )
        return value

    def _handle_failure(
        self, definition: VirtualFieldDefinition, error: ComputationError
    ) -> Outcome:
        self._stats.failures += 1
        self._metrics_for(definition.name).failures += 1
        policy = self._config.failure_policy
        if policy is FailurePolicy.THROW and not self._config.skip_failed_entities:
            logger.error("Virtual field computation failed: %s", error)
            raise error
        if policy is FailurePolicy.DEFAULT:
            logger.warning(
                "Using default value for %r after failure: %s", definition.name, error
            )
            return Outcome(value=definition.default_value, error=error)
        self._stats.skipped += 1
        logger.warning("Excluding entity from %r: %s", definition.name, error)
        return Outcome(error=error, excluded=True)

    # -- in-memory filtering -------------------------------------------------

    async def filter_entities(
        self,
        entities: Sequence[Any],
        clauses: Sequence[FilterClause],
        *,
        budget: ComputationBudget | None = None,
    ) -> list[Any]:
        """Keep entities whose computed values satisfy every clause, in order."""
        if not clauses:
            return list(entities)
        fields = list(dict.fromkeys(c.field for c in clauses))
        results = await self.compute_fields(fields, entities, budget=budget)
        kept: list[Any] = []
        for entity in entities:
            entity_id = self._accessor.identity(entity)
            if all(
                self._clause_holds(clause, results[clause.field].get(entity_id))
                for clause in clauses
            ):
                kept.append(entity)
        return kept

    def _clause_holds(self, clause: FilterClause, outcome: Outcome | None) -> bool:
        if outcome is None or outcome.excluded:
            return False
        return self._operators.matches(clause, outcome.value)

    # -- cache maintenance ---------------------------------------------------

    async def warm_cache(self, fields: Sequence[str], entities: Sequence[Any]) -> int:
        """Compute cacheable ``fields`` for ``entities``; returns values produced."""
        cacheable = [
            f
            for f in fields
            if (d := self._catalog.get_virtual(f)) is not None and d.cacheable
        ]
        if not cacheable or self._cache is None:
            logger.debug("Nothing to warm for %s", ",".join(fields))
            return 0
        results = await self.compute_fields(cacheable, entities)
        return sum(1 for per_field in results.values() for o in per_field.values() if o.ok)

    async def invalidate_cache(
        self, entity: Any, fields: Sequence[str] | None = None
    ) -> None:
        """Drop every cached value of ``entity`` for the given (or all) fields."""
        if self._cache is None:
            return
        names = fields or self._catalog.virtual_field_names()
        entity_type = self._accessor.entity_type(entity)
        entity_id = self._accessor.identity(entity)
        for name in names:
            await self._cache.clear_prefix(
                self._cache.entity_prefix(name, entity_type, entity_id)
            )

    async def clear_cache(self, field: str | None = None) -> None:
        if self._cache is None:
            return
        names = [field] if field else self._catalog.virtual_field_names()
        for name in names:
            await self._cache.clear_prefix(self._cache.field_prefix(name))

    # -- monitoring ----------------------------------------------------------

    def _metrics_for(self, name: str) -> FieldMetrics:
        return self._field_metrics.setdefault(name, FieldMetrics())

    def _is_slow(self, elapsed_ms: float) -> bool:
        return elapsed_ms > self._config.slow_computation_threshold_ms

    def _record_duration(
        self, name: str, entity_id: Any, seconds: float, outcome: str
    ) -> None:
        self._metrics.observe_computation(name, seconds, outcome=outcome)
        elapsed_ms = seconds * 1000
        metrics = self._metrics_for(name)
        metrics.computations += 1
        metrics.total_ms += elapsed_ms
        metrics.max_ms = max(metrics.max_ms, elapsed_ms)
        if not self._is_slow(elapsed_ms):
            return
        metrics.slow_computations += 1
        self._metrics.observe_slow_computation(name)
        if self._config.log_slow_computations:
            logger.warning(
                "Slow computation of %r for entity %r: %.2fms (threshold %.2fms)",
                name,
                entity_id,
                elapsed_ms,
                self._config.slow_computation_threshold_ms,
            )

    def field_metrics(self, name: str) -> dict[str, Any]:
        """Counters and callback timings for one virtual field."""
        self._require(name)
        return self._metrics_for(name).as_dict()

    def statistics(self) -> dict[str, Any]:
        return {
            **self._stats.as_dict(),
            "virtual_fields": len(self._catalog.virtual_field_names()),
            "cache_enabled": self._cache is not None,
            "fields": {
                name: metrics.as_dict() for name, metrics in self._field_metrics.items()
            },
        }

    def reset_statistics(self) -> None:
        self._stats = EngineStatistics()
        self._field_metrics.clear()
