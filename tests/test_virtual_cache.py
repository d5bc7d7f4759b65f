"""Tests for VirtualFieldCache keys and fault tolerance."""

import datetime
import logging
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from apiforge.cache import InMemoryCacheService, RedisCacheService
from apiforge.virtual import VirtualFieldCache, dependency_hash
from apiforge.virtual.value_cache import MISS

from .conftest import DictRedis


class TestKeys:
    def test_key_layout(self):
        cache = VirtualFieldCache(InMemoryCacheService())
        key = cache.key("full_name", "User", 7, {"first_name": "John"})

        field, entity_type, entity_id, digest = key.split(":")
        assert (field, entity_type, entity_id) == ("full_name", "User", "7")
        assert digest == dependency_hash({"first_name": "John"})

    def test_namespace_prefix(self):
        cache = VirtualFieldCache(InMemoryCacheService(), namespace="tenant1")
        assert cache.key("f", "User", 1, {}).startswith("tenant1:f:User:1:")
        assert cache.field_prefix("f") == "tenant1:f:"
        assert cache.sort_key("abc") == "tenant1:__sort__:abc"

    def test_dependency_hash_is_order_independent(self):
        assert dependency_hash({"a": 1, "b": 2}) == dependency_hash({"b": 2, "a": 1})

    def test_dependency_hash_changes_with_values(self):
        assert dependency_hash({"a": 1}) != dependency_hash({"a": 2})

    def test_dependency_hash_handles_rich_types(self):
        values = {
            "total": Decimal("1.50"),
            "created": datetime.datetime(2024, 1, 1, 12, 0),
        }
        assert len(dependency_hash(values)) == 16


@pytest.mark.asyncio
class TestValues:
    async def test_round_trip_preserves_none(self):
        cache = VirtualFieldCache(InMemoryCacheService())
        await cache.put_many([("k1", None), ("k2", "x")], ttl=60)

        assert await cache.get_many(["k1", "k2", "k3"]) == [None, "x", MISS]

    async def test_disabled_cache_is_always_a_miss(self):
        backend = InMemoryCacheService()
        cache = VirtualFieldCache(backend, enabled=False)
        await cache.put_many([("k1", "x")], ttl=60)

        assert await cache.get_many(["k1"]) == [MISS]
        assert len(backend) == 0

    async def test_zero_ttl_means_no_expiry(self):
        backend = AsyncMock()
        cache = VirtualFieldCache(backend)
        await cache.put_many([("k", 1)], ttl=0)

        backend.set_batch.assert_awaited_once_with(
            [{"cache_key": "k", "value": {"v": 1}}], ttl=None
        )

    async def test_json_backend_keeps_value_types(self):
        cache = VirtualFieldCache(RedisCacheService(DictRedis()))
        values = [
            Decimal("120.0"),
            datetime.datetime(2024, 1, 2, 3, 4, 5),
            datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc),
            datetime.date(2024, 1, 2),
            None,
            3,
            1.5,
            True,
            "x",
        ]
        keys = [f"k{i}" for i in range(len(values))]
        await cache.put_many(zip(keys, values), ttl=60)

        cached = await cache.get_many(keys)

        assert cached == values
        assert [type(v) for v in cached] == [type(v) for v in values]

    async def test_unknown_type_tag_is_a_miss(self):
        backend = InMemoryCacheService()
        await backend.set("k", {"v": "x", "t": "blob"})
        assert await VirtualFieldCache(backend).get_many(["k"]) == [MISS]

    async def test_backend_failures_are_logged_misses(self, caplog):
        backend = AsyncMock()
        backend.get_batch.side_effect = RuntimeError("boom")
        backend.set_batch.side_effect = RuntimeError("boom")
        backend.get.side_effect = RuntimeError("boom")
        cache = VirtualFieldCache(backend)

        with caplog.at_level(logging.WARNING, logger="apiforge.cache"):
            assert await cache.get_many(["a", "b"]) == [MISS, MISS]
            await cache.put_many([("a", 1)], ttl=10)
            assert await cache.get_sort_order("fp") is None

        assert caplog.text.count("boom") == 3

    async def test_clear_prefix_failure_does_not_raise(self):
        backend = AsyncMock()
        backend.clear_namespace.side_effect = RuntimeError("boom")
        await VirtualFieldCache(backend).clear_prefix("full_name:")


@pytest.mark.asyncio
class TestSortOrders:
    async def test_store_and_fetch(self):
        backend = InMemoryCacheService()
        cache = VirtualFieldCache(backend)
        await cache.put_sort_order("fp", [5, 8, 2], ttl=60)

        assert await cache.get_sort_order("fp") == [5, 8, 2]
        assert await backend.get("__sort__:fp") == [5, 8, 2]

    async def test_non_list_payload_is_ignored(self):
        backend = InMemoryCacheService()
        await backend.set("__sort__:fp", {"unexpected": True})

        assert await VirtualFieldCache(backend).get_sort_order("fp") is None
