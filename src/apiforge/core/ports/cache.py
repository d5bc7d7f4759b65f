"""ICacheService - Protocol for the shared key/value store behind virtual fields."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ICacheService(Protocol):
    """
    Abstract interface for caching services.

    Implementations are shared across requests, accessed without locking and
    are last-write-wins. Failures should be logged and reported as misses.
    """

    async def get(self, key: str) -> Any | None:
        """Retrieve a value by key. Returns None if missing or expired."""
        ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set a JSON-serialisable value with optional TTL (in seconds)."""
        ...

    async def delete(self, key: str) -> None:
        """Delete a value by key."""
        ...

    async def get_batch(self, keys: list[str]) -> list[Any | None]:
        """
        Retrieve multiple values.
        Returns list of values in same order as keys (None for missing).
        """
        ...

    async def set_batch(
        self, items: list[dict[str, Any]], ttl: int | None = None
    ) -> None:
        """
        Set multiple values.
        Items should be list of dicts: {"cache_key": str, "value": Any}
        """
        ...

    async def delete_batch(self, keys: list[str]) -> None:
        """Delete multiple keys."""
        ...

    async def clear_namespace(self, prefix: str) -> None:
        """Clear all keys starting with prefix."""
        ...
