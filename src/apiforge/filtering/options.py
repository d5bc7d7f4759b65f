"""RequestOptionsParser — pagination, sort, search and field selection."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..core.config import FieldSelectionConfig, FilterConfig, PaginationConfig
from ..core.exceptions import FilterValidationError, RejectedFilter
from ..core.operators import SortDirection

if TYPE_CHECKING:
    from ..catalog.catalog import FieldCatalog

logger = logging.getLogger("apiforge.filtering")

_FIELD_PATH_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*(\.[a-zA-Z_][a-zA-Z0-9_]*)*$")


@dataclass(frozen=True)
class RequestOptions:
    page: int = 1
    per_page: int = 15
    sort_by: str | None = None
    sort_direction: SortDirection = SortDirection.ASC
    search: str | None = None
    fields: tuple[str, ...] = ()
    rejected: tuple[RejectedFilter, ...] = field(default_factory=tuple)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def descending(self) -> bool:
        return self.sort_direction is SortDirection.DESC


class RequestOptionsParser:
    """Parse the reserved request keys into :class:`RequestOptions`."""

    def __init__(
        self,
        catalog: FieldCatalog,
        *,
        pagination: PaginationConfig | None = None,
        selection: FieldSelectionConfig | None = None,
        filters: FilterConfig | None = None,
    ) -> None:
        self._catalog = catalog
        self._pagination = pagination or PaginationConfig()
        self._selection = selection or FieldSelectionConfig()
        self._filters = filters or FilterConfig()

    def parse(
        self, params: Mapping[str, Any], *, strict: bool | None = None
    ) -> RequestOptions:
        strict = self._filters.strict_mode if strict is None else strict
        rejected: list[RejectedFilter] = []

        sort_by, direction = self._parse_sort(params, rejected)
        fields = self._parse_fields(params.get("fields"), rejected)

        if rejected and strict:
            raise FilterValidationError.from_rejections(rejected)
        for rejection in rejected:
            logger.warning("Ignoring %r: %s", rejection.field, rejection.message)

        raw_search = params.get("search")
        search = str(raw_search).strip() if raw_search is not None else ""
        return RequestOptions(
            page=self._parse_page(params.get("page")),
            per_page=self._parse_per_page(params.get("per_page")),
            sort_by=sort_by,
            sort_direction=direction,
            search=search or None,
            fields=fields,
            rejected=tuple(rejected),
        )

    # -- pagination ----------------------------------------------------------

    @staticmethod
    def _parse_page(raw: Any) -> int:
        try:
            return max(1, int(raw))
        except (TypeError, ValueError):
            return 1

    def _parse_per_page(self, raw: Any) -> int:
        cfg = self._pagination
        if raw is None:
            return cfg.default_per_page
        try:
            return min(cfg.max_per_page, max(cfg.min_per_page, int(raw)))
        except (TypeError, ValueError):
            return cfg.default_per_page

    # -- sorting -------------------------------------------------------------

    def _parse_sort(
        self, params: Mapping[str, Any], rejected: list[RejectedFilter]
    ) -> tuple[str | None, SortDirection]:
        raw_direction = str(params.get("sort_direction") or "asc").strip().lower()
        direction = (
            SortDirection.DESC if raw_direction == "desc" else SortDirection.ASC
        )
        raw = params.get("sort_by")
        if raw is None or not str(raw).strip():
            return None, direction

        name = str(raw).strip()
        if name.startswith("-"):
            name, direction = name[1:], SortDirection.DESC
        name = self._catalog.resolve_alias(name)

        if name not in self._catalog.sortable() or self._catalog.is_blocked(name):
            rejected.extend(FilterValidationError.field_not_sortable(name).rejected)
            return None, direction
        return name, direction

    # -- field selection -----------------------------------------------------

    def _parse_fields(
        self, raw: Any, rejected: list[RejectedFilter]
    ) -> tuple[str, ...]:
        if raw is None:
            return ()
        parts = raw if isinstance(raw, list | tuple) else str(raw).split(",")
        requested: list[str] = []
        for part in parts:
            name = self._catalog.resolve_alias(str(part).strip())
            if name and name not in requested:
                requested.append(name)
        if not requested:
            return ()

        cfg = self._selection
        if len(requested) > cfg.max_fields:
            raise FilterValidationError.too_many_fields(len(requested), cfg.max_fields)

        selected: list[str] = list(cfg.required_fields)
        for name in requested:
            if not _FIELD_PATH_RE.match(name):
                rejected.append(
                    RejectedFilter(
                        name, "invalid_field", f"Invalid field name '{name}'"
                    )
                )
            elif name in cfg.blocked_fields:
                rejected.append(
                    RejectedFilter(
                        name, "blocked_field", f"Field '{name}' cannot be selected"
                    )
                )
            elif not cfg.allow_all_fields and name not in self._catalog:
                rejected.append(
                    RejectedFilter(
                        name, "unknown_field", f"Field '{name}' cannot be selected"
                    )
                )
            elif name not in selected:
                selected.append(name)
        return tuple(selected)
