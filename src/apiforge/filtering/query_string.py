"""QueryStringBuilder — request params -> query string (pagination links)."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode


class QueryStringBuilder:
    """Rebuild a request's query string with a different page number."""

    def __init__(self, base_url: str = "") -> None:
        self.base_url = base_url

    def build(
        self,
        params: Mapping[str, Any],
        *,
        page: int | None = None,
        page_key: str = "page",
    ) -> str:
        """Produce a link for ``page`` preserving every other parameter."""
        query: dict[str, Any] = {k: v for k, v in params.items() if v is not None}
        if page is not None:
            query[page_key] = page
        encoded = urlencode(query, doseq=True) if query else ""
        if not self.base_url:
            return f"?{encoded}" if encoded else ""
        separator = "&" if "?" in self.base_url else "?"
        return f"{self.base_url}{separator}{encoded}" if encoded else self.base_url
