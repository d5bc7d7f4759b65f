"""Redis implementation of the cache port."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from ..core.exceptions import CacheError
from ..core.ports.cache import ICacheService

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger("apiforge.cache")


class RedisCacheService(ICacheService):
    """
    Redis-backed cache shared by every worker process.

    Values are stored as JSON, so anything ``json`` cannot encode natively
    (datetimes, decimals) comes back as its ``str()`` form. ``key_prefix`` is
    prepended to every key, which lets several applications share one Redis
    database. ``default_ttl`` applies when a write passes no TTL.

    Backend failures never propagate: they are logged as
    :class:`~apiforge.core.exceptions.CacheError` and reads report a miss.
    """

    def __init__(
        self,
        redis_client: Redis[bytes],
        *,
        key_prefix: str = "",
        default_ttl: int | None = None,
        scan_count: int = 500,
    ) -> None:
        self._redis = redis_client
        self._prefix = key_prefix
        self._default_ttl = default_ttl
        self._scan_count = scan_count

    def _k(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _ttl(self, ttl: int | None) -> int | None:
        return ttl if ttl else self._default_ttl

    @staticmethod
    def _dumps(value: Any) -> str:
        return json.dumps(value, default=str)

    @staticmethod
    def _loads(raw: Any) -> Any | None:
        return json.loads(raw) if raw else None

    @staticmethod
    def _report(operation: str, key: str | None, error: Exception) -> None:
        logger.warning("%s", CacheError.operation_failed(operation, key, error))

    # -- single keys ---------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        try:
            return self._loads(await self._redis.get(self._k(key)))
        except Exception as e:  # noqa: BLE001
            self._report("get", key, e)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        payload = self._dumps(value)
        expiry = self._ttl(ttl)
        try:
            if expiry:
                await self._redis.setex(self._k(key), expiry, payload)
            else:
                await self._redis.set(self._k(key), payload)
        except Exception as e:  # noqa: BLE001
            self._report("set", key, e)

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(self._k(key))
        except Exception as e:  # noqa: BLE001
            self._report("delete", key, e)

    # -- batches -------------------------------------------------------------

    async def get_batch(self, keys: list[str]) -> list[Any | None]:
        if not keys:
            return []
        try:
            raw = await self._redis.mget([self._k(k) for k in keys])
        except Exception as e:  # noqa: BLE001
            self._report("get_batch", None, e)
            return [None] * len(keys)
        return [self._loads(v) for v in raw]

    async def set_batch(
        self, items: list[dict[str, Any]], ttl: int | None = None
    ) -> None:
        """Write every item in one pipeline round trip."""
        if not items:
            return
        expiry = self._ttl(ttl)
        try:
            async with self._redis.pipeline() as pipe:
                for item in items:
                    key = self._k(item["cache_key"])
                    payload = self._dumps(item["value"])
                    if expiry:
                        pipe.setex(key, expiry, payload)
                    else:
                        pipe.set(key, payload)
                await pipe.execute()
        except Exception as e:  # noqa: BLE001
            self._report("set_batch", None, e)

    async def delete_batch(self, keys: list[str]) -> None:
        if not keys:
            return
        try:
            await self._redis.delete(*(self._k(k) for k in keys))
        except Exception as e:  # noqa: BLE001
            self._report("delete_batch", None, e)

    async def clear_namespace(self, prefix: str) -> None:
        """
        Delete every key starting with ``prefix``.

        Walks the keyspace with ``SCAN`` and deletes page by page; this is
        O(keyspace) and meant for maintenance, not the request path.
        """
        pattern = f"{self._k(prefix)}*"
        removed = 0
        try:
            cursor: int = 0
            while True:
                cursor, keys = await self._redis.scan(
                    cursor, match=pattern, count=self._scan_count
                )
                if keys:
                    await self._redis.delete(*keys)
                    removed += len(keys)
                if cursor == 0:
                    break
        except Exception as e:  # noqa: BLE001
            self._report("clear_namespace", prefix, e)
            return
        logger.debug("Cleared %d cache keys matching %s", removed, pattern)
