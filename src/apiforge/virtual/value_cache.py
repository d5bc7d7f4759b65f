"""VirtualFieldCache — keys and fault-tolerant access for computed values."""

from __future__ import annotations

import datetime
import hashlib
import json
import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from ..core.exceptions import CacheError

if TYPE_CHECKING:
    from ..core.ports.cache import ICacheService

logger = logging.getLogger("apiforge.cache")

MISS = object()
SORT_ORDER_NAMESPACE = "__sort__"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime.datetime | datetime.date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return repr(value)


def dependency_hash(values: Mapping[str, Any]) -> str:
    """Stable short hash of dependency values."""
    payload = json.dumps(values, sort_keys=True, default=_encode)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def pack(value: Any) -> dict[str, Any]:
    """
    Wrap a computed value in a cache envelope.

    JSON backends turn decimals and datetimes into strings, so those carry a
    ``"t"`` tag that :func:`unpack` uses to restore the original type.
    """
    if isinstance(value, datetime.datetime):
        return {"v": value.isoformat(), "t": "datetime"}
    if isinstance(value, datetime.date):
        return {"v": value.isoformat(), "t": "date"}
    if isinstance(value, Decimal):
        return {"v": str(value), "t": "decimal"}
    return {"v": value}


def unpack(entry: Any) -> Any:
    """Inverse of :func:`pack`; anything that is not an envelope is a miss."""
    if not isinstance(entry, dict) or "v" not in entry:
        return MISS
    value, tag = entry["v"], entry.get("t")
    if value is None or tag is None:
        return value
    if tag == "datetime":
        return datetime.datetime.fromisoformat(value)
    if tag == "date":
        return datetime.date.fromisoformat(value)
    if tag == "decimal":
        return Decimal(value)
    return MISS


class VirtualFieldCache:
    """
    Cache of virtual-field values, keyed ``field:entityType:entityId:depHash``.

    A change in any dependency value changes the key, so stale entries are
    never read; they simply expire. Every backend failure is logged as a
    :class:`CacheError` and treated as a miss.
    """

    def __init__(
        self,
        backend: ICacheService,
        *,
        enabled: bool = True,
        namespace: str = "",
    ) -> None:
        self._backend = backend
        self.enabled = enabled
        self._namespace = f"{namespace}:" if namespace else ""

    def key(
        self,
        field: str,
        entity_type: str,
        entity_id: Any,
        dependency_values: Mapping[str, Any],
    ) -> str:
        return (
            f"{self._namespace}{field}:{entity_type}:{entity_id}:"
            f"{dependency_hash(dependency_values)}"
        )

    def entity_prefix(self, field: str, entity_type: str, entity_id: Any) -> str:
        return f"{self._namespace}{field}:{entity_type}:{entity_id}:"

    def field_prefix(self, field: str) -> str:
        return f"{self._namespace}{field}:"

    # -- values --------------------------------------------------------------

    async def get_many(self, keys: list[str]) -> list[Any]:
        """Return cached values, or the ``MISS`` sentinel, aligned with keys."""
        if not self.enabled or not keys:
            return [MISS] * len(keys)
        try:
            raw = await self._backend.get_batch(keys)
        except Exception as e:  # noqa: BLE001
            logger.warning("%s", CacheError.operation_failed("get_batch", None, e))
            return [MISS] * len(keys)
        return [unpack(r) for r in raw]

    async def put_many(self, entries: Iterable[tuple[str, Any]], ttl: int) -> None:
        if not self.enabled:
            return
        items = [{"cache_key": key, "value": pack(value)} for key, value in entries]
        if not items:
            return
        try:
            await self._backend.set_batch(items, ttl=ttl or None)
        except Exception as e:  # noqa: BLE001
            logger.warning("%s", CacheError.operation_failed("set_batch", None, e))

    async def clear_prefix(self, prefix: str) -> None:
        try:
            await self._backend.clear_namespace(prefix)
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "%s", CacheError.operation_failed("clear_namespace", prefix, e)
            )

    # -- materialised sort orders --------------------------------------------

    def sort_key(self, fingerprint: str) -> str:
        return f"{self._namespace}{SORT_ORDER_NAMESPACE}:{fingerprint}"

    async def get_sort_order(self, fingerprint: str) -> list[Any] | None:
        if not self.enabled:
            return None
        key = self.sort_key(fingerprint)
        try:
            cached = await self._backend.get(key)
        except Exception as e:  # noqa: BLE001
            logger.warning("%s", CacheError.operation_failed("get", key, e))
            return None
        return cached if isinstance(cached, list) else None

    async def put_sort_order(
        self, fingerprint: str, identities: list[Any], ttl: int
    ) -> None:
        if not self.enabled:
            return
        key = self.sort_key(fingerprint)
        try:
            await self._backend.set(key, identities, ttl=ttl or None)
        except Exception as e:  # noqa: BLE001
            logger.warning("%s", CacheError.operation_failed("set", key, e))


