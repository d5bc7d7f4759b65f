"""InMemoryCacheService — single-process implementation of ICacheService."""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable
from typing import Any

from ..core.ports.cache import ICacheService

logger = logging.getLogger("apiforge.cache")


class InMemoryCacheService(ICacheService):
    """
    Dict-backed cache with TTL expiry.

    Intended for tests and single-process deployments. Stored values are
    deep-copied on the way in and out so callers cannot mutate cached state.
    Expired entries are dropped when read and swept on every batch write,
    so keys that are written but never read again do not accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._store: dict[str, tuple[Any, float | None]] = {}

    def __len__(self) -> int:
        return len(self._store)

    def _expires_at(self, ttl: int | None) -> float | None:
        return self._clock() + ttl if ttl else None

    def _read(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._store[key]
            logger.debug("Cache entry %s expired", key)
            return None
        return copy.deepcopy(value)

    async def get(self, key: str) -> Any | None:
        return self._read(key)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        self._store[key] = (copy.deepcopy(value), self._expires_at(ttl))

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def get_batch(self, keys: list[str]) -> list[Any | None]:
        return [self._read(k) for k in keys]

    async def set_batch(
        self, items: list[dict[str, Any]], ttl: int | None = None
    ) -> None:
        self.prune_expired()
        expires_at = self._expires_at(ttl)
        for item in items:
            self._store[item["cache_key"]] = (copy.deepcopy(item["value"]), expires_at)

    async def delete_batch(self, keys: list[str]) -> None:
        for key in keys:
            self._store.pop(key, None)

    async def clear_namespace(self, prefix: str) -> None:
        for key in [k for k in self._store if k.startswith(prefix)]:
            del self._store[key]

    def prune_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        expired = [
            key
            for key, (_, expires_at) in self._store.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._store[key]
        if expired:
            logger.debug("Pruned %d expired cache entries", len(expired))
        return len(expired)
