"""
ResultAssembler — one list request from raw parameters to a response envelope.

Pipeline::

    params --FilterTranslator--> predicates + virtual clauses
           --RequestOptionsParser--> page / sort / search / fields
           --compiler--> Select (filters, search, preload, projection)
           --> database ordering, or materialised virtual sort
           --> paginate --> compute selected virtual fields for the page
           --> serialise items --> envelope

A virtual sort or a virtual filter needs every matching row in memory.
Above ``max_sort_records`` a virtual sort falls back to database order
(when ``sort_fallback_enabled``) without computing anything; a virtual
filter cannot fall back and is rejected instead.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, inspect, select

from ..core.config import ApiForgeConfig
from ..core.exceptions import ComputationError, FilterValidationError
from ..filtering.options import RequestOptionsParser
from ..filtering.translator import FilterTranslator
from ..persistence.sqlalchemy.compiler import (
    apply_filters,
    apply_order_by,
    apply_preload,
    apply_projection,
    apply_search,
    column_names,
    primary_key_columns,
    relationship_names,
)
from .fingerprint import query_fingerprint
from .paginator import Page

if TYPE_CHECKING:
    from sqlalchemy import Select
    from sqlalchemy.ext.asyncio import AsyncSession

    from ..catalog.catalog import FieldCatalog
    from ..filtering.clauses import TranslationResult
    from ..filtering.options import RequestOptions
    from ..filtering.query_string import QueryStringBuilder
    from ..persistence.sqlalchemy.strategy import SQLAlchemyOperatorRegistry
    from ..virtual.budget import ComputationBudget
    from ..virtual.engine import Outcome, VirtualFieldEngine

logger = logging.getLogger("apiforge.assembler")


@dataclass
class VirtualSortState:
    applied: bool = False
    fallback: bool = False
    cached: bool = False

    def as_dict(self) -> dict[str, bool]:
        return {"applied": self.applied, "fallback": self.fallback, "cached": self.cached}


@dataclass
class AssembledResult:
    """
    The response of one list request.

    ``items`` keeps the ORM instances of the page for callers that want to
    serialise them differently; ``data`` is the default dict rendering.
    """

    data: list[dict[str, Any]]
    meta: dict[str, Any]
    warnings: dict[str, Any] | None = None
    items: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"data": self.data, "meta": self.meta}
        if self.warnings:
            body["warnings"] = self.warnings
        return body


@dataclass(frozen=True)
class _Selection:
    columns: tuple[str, ...]
    nested: dict[str, tuple[str, ...]]
    virtual: tuple[str, ...]


class ResultAssembler:
    """
    Orchestrates filtering, sorting, pagination and virtual fields.

    Usage::

        assembler = ResultAssembler.from_config(catalog, engine, config)
        result = await assembler.assemble(session, User, request.query_params)
        return result.to_dict()
    """

    def __init__(
        self,
        catalog: FieldCatalog,
        engine: VirtualFieldEngine,
        *,
        translator: FilterTranslator,
        options_parser: RequestOptionsParser,
        registry: SQLAlchemyOperatorRegistry | None = None,
        links: QueryStringBuilder | None = None,
    ) -> None:
        self._catalog = catalog
        self._engine = engine
        self._translator = translator
        self._options = options_parser
        self._registry = registry
        self._links = links

    @classmethod
    def from_config(
        cls,
        catalog: FieldCatalog,
        engine: VirtualFieldEngine,
        config: ApiForgeConfig | None = None,
        *,
        links: QueryStringBuilder | None = None,
    ) -> ResultAssembler:
        config = config or ApiForgeConfig()
        return cls(
            catalog,
            engine,
            translator=FilterTranslator(catalog, config.filters),
            options_parser=RequestOptionsParser(
                catalog,
                pagination=config.pagination,
                selection=config.field_selection,
                filters=config.filters,
            ),
            links=links,
        )

    async def assemble(
        self,
        session: AsyncSession,
        model: type[Any],
        params: Mapping[str, Any],
        *,
        base_stmt: Select[Any] | None = None,
        strict: bool | None = None,
        budget: ComputationBudget | None = None,
    ) -> AssembledResult:
        """
        Answer one list request.

        Args:
            session: Active async session; only reads are issued.
            model: Mapped class being listed.
            params: Raw request parameters.
            base_stmt: Optional pre-scoped ``select(model)`` (tenancy, soft
                deletes) to build on.
            strict: Override ``FilterConfig.strict_mode`` for this call.
            budget: Budget shared by every computation of this request;
                cancel it to abort the request at the next check.
        """
        started = time.perf_counter()
        translation = self._translator.translate(params, strict=strict)
        options = self._options.parse(params, strict=strict)
        budget = budget or self._engine.new_budget()
        selection = self._split_selection(model, options.fields)

        filtered = base_stmt if base_stmt is not None else select(model)
        filtered = apply_filters(
            filtered, model, translation.predicates, registry=self._registry
        )
        filtered = apply_search(
            filtered, model, self._search_paths(), options.search
        )

        virtual_sort = (
            options.sort_by if self._catalog.is_virtual_field(options.sort_by or "") else None
        )
        loaded = self._loading_options(
            filtered, model, translation, selection, virtual_sort, options
        )

        state = VirtualSortState()
        if virtual_sort or translation.virtual_clauses:
            page = await self._materialised_page(
                session, model, filtered, loaded, translation, options, virtual_sort,
                budget, state,
            )
        else:
            page = None
        if page is None:
            page = await self._database_page(session, model, filtered, loaded, options)

        values = await self._page_virtual_values(selection.virtual, page.items, budget)
        items, data = self._serialise(page.items, selection, values)
        page = Page(items, page.total, page.page, page.per_page)

        logger.debug(
            "Assembled %s page %d (%d of %d) in %.2fms",
            model.__name__,
            page.page,
            len(items),
            page.total,
            (time.perf_counter() - started) * 1000,
        )
        return AssembledResult(
            data=data,
            meta=self._meta(page, params, translation, options, state),
            warnings=self._warnings(translation, options),
            items=items,
        )

    # -- statement building --------------------------------------------------

    def _search_paths(self) -> list[str]:
        paths = []
        for name in sorted(self._catalog.searchable()):
            definition = self._catalog.get_field(name)
            if definition is not None:
                paths.append(definition.column_path)
        return paths

    def _split_selection(self, model: type[Any], fields: Sequence[str]) -> _Selection:
        if not fields:
            return _Selection(tuple(column_names(model)), {}, ())
        known_columns = set(column_names(model))
        known_relationships = set(relationship_names(model))
        columns: list[str] = []
        nested: dict[str, list[str]] = {}
        virtual: list[str] = []
        for name in fields:
            if self._catalog.is_virtual_field(name):
                virtual.append(name)
                continue
            definition = self._catalog.get_field(name)
            path = definition.column_path if definition is not None else name
            if "." in path:
                rel, column = path.split(".", 1)
                if rel in known_relationships:
                    nested.setdefault(rel, []).append(column)
            elif path in known_columns:
                columns.append(path)
            else:
                logger.debug("Ignoring unmapped selected field %r", name)
        return _Selection(
            tuple(columns), {k: tuple(v) for k, v in nested.items()}, tuple(virtual)
        )

    def _loading_options(
        self,
        stmt: Select[Any],
        model: type[Any],
        translation: TranslationResult,
        selection: _Selection,
        virtual_sort: str | None,
        options: RequestOptions,
    ) -> Select[Any]:
        """Add eager loads and, for explicit selections, a column projection."""
        needed = [*selection.virtual]
        if virtual_sort:
            needed.append(virtual_sort)
        preload = translation.preload.merge(self._translator.preload_for(needed))
        stmt = apply_preload(
            stmt, model, {*preload.relationships, *selection.nested}
        )
        if not options.fields:
            return stmt
        columns = {*selection.columns, *preload.columns}
        if sort_path := self._sort_path(options):
            columns.add(sort_path)
        return apply_projection(stmt, model, columns)

    # -- database path -------------------------------------------------------

    def _sort_path(self, options: RequestOptions) -> str | None:
        """Column path of a persisted sort field, or None."""
        if not options.sort_by:
            return None
        definition = self._catalog.get_field(options.sort_by)
        return definition.column_path if definition is not None else None

    async def _count(self, session: AsyncSession, filtered: Select[Any]) -> int:
        count_stmt = select(func.count()).select_from(filtered.order_by(None).subquery())
        return int(await session.scalar(count_stmt) or 0)

    async def _database_page(
        self,
        session: AsyncSession,
        model: type[Any],
        filtered: Select[Any],
        loaded: Select[Any],
        options: RequestOptions,
    ) -> Page:
        total = await self._count(session, filtered)
        stmt = apply_order_by(
            loaded, model, self._sort_path(options), descending=options.descending
        )
        stmt = stmt.offset(options.offset).limit(options.per_page)
        items = list((await session.scalars(stmt)).all())
        return Page(items, total, options.page, options.per_page)

    # -- materialised path ---------------------------------------------------

    async def _materialised_page(
        self,
        session: AsyncSession,
        model: type[Any],
        filtered: Select[Any],
        loaded: Select[Any],
        translation: TranslationResult,
        options: RequestOptions,
        virtual_sort: str | None,
        budget: ComputationBudget,
        state: VirtualSortState,
    ) -> Page | None:
        """
        Filter and/or sort every matching row in memory.

        Returns ``None`` when the request should be answered by the database
        path instead (virtual sort fallback).
        """
        cfg = self._engine.config
        virtual_clauses = translation.virtual_clauses
        label = virtual_sort or ",".join(c.field for c in virtual_clauses)

        total = await self._count(session, filtered)
        if total > cfg.max_sort_records:
            if virtual_clauses or not cfg.sort_fallback_enabled:
                raise FilterValidationError.too_many_records(
                    label, total, cfg.max_sort_records
                )
            logger.warning(
                "Virtual sort on %r skipped: %d records exceed the limit of %d",
                virtual_sort,
                total,
                cfg.max_sort_records,
            )
            state.fallback = True
            return None

        fingerprint = None
        if virtual_sort and self._sort_cache_usable(model):
            fingerprint = query_fingerprint(
                filtered, virtual_sort, options.sort_direction.value, virtual_clauses
            )
            page = await self._cached_sort_page(
                session, model, loaded, fingerprint, options
            )
            if page is not None:
                state.applied = state.cached = True
                return page

        try:
            rows = await self._fetch_all(
                session, model, loaded, options, budget, label
            )
            if virtual_clauses:
                rows = await self._engine.filter_entities(
                    rows, virtual_clauses, budget=budget
                )
            if virtual_sort:
                rows = await self._sort_rows(
                    virtual_sort, rows, options.descending, budget
                )
        except ComputationError as e:
            if (
                virtual_clauses
                or not cfg.sort_fallback_enabled
                or e.reason == "cancelled"
            ):
                raise
            logger.warning(
                "Virtual sort on %r failed, using database order: %s", virtual_sort, e
            )
            state.fallback = True
            return None

        if virtual_sort:
            state.applied = True
            if fingerprint is not None:
                await self._store_sort_order(fingerprint, rows)
        return Page.from_sequence(rows, options.page, options.per_page)

    async def _fetch_all(
        self,
        session: AsyncSession,
        model: type[Any],
        loaded: Select[Any],
        options: RequestOptions,
        budget: ComputationBudget,
        label: str,
    ) -> list[Any]:
        """Load every matching row in chunks of ``batch_size``."""
        batch_size = self._engine.config.batch_size
        stmt = apply_order_by(
            loaded, model, self._sort_path(options), descending=options.descending
        )
        result = await session.stream_scalars(
            stmt.execution_options(yield_per=batch_size)
        )
        rows: list[Any] = []
        async for partition in result.partitions(batch_size):
            budget.check(label)
            rows.extend(partition)
        return rows

    async def _sort_rows(
        self,
        field: str,
        rows: list[Any],
        descending: bool,
        budget: ComputationBudget,
    ) -> list[Any]:
        """Stable sort by computed value; nulls last, excluded entities dropped."""
        outcomes = await self._engine.compute_batch(field, rows, budget=budget)
        accessor = self._engine.accessor
        present: list[tuple[Any, Any]] = []
        nulls: list[Any] = []
        for row in rows:
            outcome = outcomes.get(accessor.identity(row))
            if outcome is None or outcome.excluded:
                continue
            if outcome.value is None:
                nulls.append(row)
            else:
                present.append((outcome.value, row))
        try:
            present.sort(key=lambda pair: pair[0], reverse=descending)
        except TypeError as e:
            raise ComputationError.batch_processing_failed(field, len(rows), e) from e
        return [row for _, row in present] + nulls

    # -- sort-order cache ----------------------------------------------------

    def _sort_cache_usable(self, model: type[Any]) -> bool:
        cache = self._engine.cache
        return (
            self._engine.config.sort_cache_enabled
            and cache is not None
            and len(primary_key_columns(model)) == 1
        )

    async def _cached_sort_page(
        self,
        session: AsyncSession,
        model: type[Any],
        loaded: Select[Any],
        fingerprint: str,
        options: RequestOptions,
    ) -> Page | None:
        cache = self._engine.cache
        if cache is None:
            return None
        order = await cache.get_sort_order(fingerprint)
        if order is None:
            return None
        page_ids = order[options.offset : options.offset + options.per_page]
        rows: list[Any] = []
        if page_ids:
            pk = primary_key_columns(model)[0]
            fetched = (await session.scalars(loaded.where(pk.in_(page_ids)))).all()
            by_id = {str(self._engine.accessor.identity(r)): r for r in fetched}
            rows = [by_id[str(i)] for i in page_ids if str(i) in by_id]
        logger.debug("Sort order %s served from cache", fingerprint[:12])
        return Page(rows, len(order), options.page, options.per_page)

    async def _store_sort_order(self, fingerprint: str, rows: list[Any]) -> None:
        cache = self._engine.cache
        if cache is None:
            return
        identities = [self._engine.accessor.identity(r) for r in rows]
        await cache.put_sort_order(
            fingerprint, identities, ttl=self._engine.config.sort_cache_ttl
        )

    # -- virtual values and serialisation -----------------------------------

    async def _page_virtual_values(
        self,
        fields: Sequence[str],
        items: list[Any],
        budget: ComputationBudget,
    ) -> dict[str, dict[Any, Outcome]]:
        if not fields or not items:
            return {}
        return await self._engine.compute_fields(fields, items, budget=budget)

    def _serialise(
        self,
        items: list[Any],
        selection: _Selection,
        values: dict[str, dict[Any, Outcome]],
    ) -> tuple[list[Any], list[dict[str, Any]]]:
        accessor = self._engine.accessor
        kept: list[Any] = []
        data: list[dict[str, Any]] = []
        for item in items:
            identity = accessor.identity(item)
            outcomes = {name: values[name].get(identity) for name in selection.virtual}
            if any(o is not None and o.excluded for o in outcomes.values()):
                continue
            row = _columns_of(item, selection.columns)
            for rel, columns in selection.nested.items():
                row[rel] = _related_of(item, rel, columns)
            for name, outcome in outcomes.items():
                row[name] = outcome.value if outcome is not None else None
            kept.append(item)
            data.append(row)
        return kept, data

    # -- envelope ------------------------------------------------------------

    def _meta(
        self,
        page: Page,
        params: Mapping[str, Any],
        translation: TranslationResult,
        options: RequestOptions,
        state: VirtualSortState,
    ) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "pagination": page.to_meta(self._links, params),
            "filters": {"active": translation.active, "search": options.search},
            "sorting": {
                "sort_by": options.sort_by,
                "sort_direction": options.sort_direction.value,
            },
        }
        if options.sort_by and self._catalog.is_virtual_field(options.sort_by):
            meta["virtual_sort"] = state.as_dict()
        return meta

    @staticmethod
    def _warnings(
        translation: TranslationResult, options: RequestOptions
    ) -> dict[str, Any] | None:
        rejected = [*translation.rejected, *options.rejected]
        if not rejected:
            return None
        return {
            "invalid_filters": [r.to_dict() for r in rejected],
            "message": f"{len(rejected)} parameter(s) were ignored",
        }


def _columns_of(instance: Any, columns: Sequence[str]) -> dict[str, Any]:
    loaded = inspect(instance).dict
    return {name: loaded.get(name) for name in columns}


def _related_of(instance: Any, relationship: str, columns: Sequence[str]) -> Any:
    related = inspect(instance).dict.get(relationship)
    if related is None:
        return None
    if isinstance(related, list | tuple | set):
        return [_columns_of(r, columns) for r in related]
    return _columns_of(related, columns)

