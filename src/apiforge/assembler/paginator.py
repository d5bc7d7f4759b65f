"""Length-aware paginator shared by database and in-memory pagination."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..filtering.query_string import QueryStringBuilder


@dataclass(frozen=True)
class Page:
    """
    One page of results plus the numbers needed to describe it.

    Attributes:
        items: The entities on this page.
        total: Number of matching entities across all pages.
        page: 1-based page number.
        per_page: Page size.
    """

    items: list[Any]
    total: int
    page: int
    per_page: int

    @classmethod
    def from_sequence(cls, ordered: list[Any], page: int, per_page: int) -> Page:
        """Slice ``page`` out of an already ordered in-memory collection."""
        start = (page - 1) * per_page
        return cls(ordered[start : start + per_page], len(ordered), page, per_page)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))

    @property
    def from_item(self) -> int | None:
        return self.offset + 1 if self.items else None

    @property
    def to_item(self) -> int | None:
        return self.offset + len(self.items) if self.items else None

    @property
    def has_more_pages(self) -> bool:
        return self.page < self.last_page

    def to_meta(
        self,
        links: QueryStringBuilder | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "current_page": self.page,
            "per_page": self.per_page,
            "total": self.total,
            "last_page": self.last_page,
            "from": self.from_item,
            "to": self.to_item,
            "has_more_pages": self.has_more_pages,
        }
        if links is not None:
            query = dict(params or {})
            meta["links"] = {
                "first": links.build(query, page=1),
                "last": links.build(query, page=self.last_page),
                "prev": links.build(query, page=self.page - 1) if self.page > 1 else None,
                "next": (
                    links.build(query, page=self.page + 1)
                    if self.has_more_pages
                    else None
                ),
            }
        return meta
