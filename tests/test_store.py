"""
Tests for the store backends: MemoryStore semantics and RedisStore
command mapping against a mocked redis.asyncio client.
"""

from unittest.mock import AsyncMock

import pytest

from keyrel.faults import FaultDomain, StoreTypeFault
from keyrel.store import KVStore, MemoryStore, RedisStore, StoreStats


# ============================================================================
# StoreStats
# ============================================================================


class TestStoreStats:
    def test_total_operations(self):
        s = StoreStats(reads=1, writes=2, deletes=3, counter_ops=4, set_ops=5)
        assert s.total_operations == 15

    def test_to_dict(self):
        d = StoreStats(backend="memory", reads=2).to_dict()
        assert d["backend"] == "memory"
        assert d["reads"] == 2
        assert d["total_operations"] == 2


# ============================================================================
# MemoryStore
# ============================================================================


class TestMemoryStore:
    def test_is_a_kv_store(self, store):
        assert isinstance(store, KVStore)
        assert store.name == "memory"
        assert not store.is_distributed

    @pytest.mark.asyncio
    async def test_scalars(self, store):
        assert await store.get("k") is None
        await store.put("k", 42)
        assert await store.get("k") == "42"
        assert await store.delete("k") is True
        assert await store.delete("k") is False

    @pytest.mark.asyncio
    async def test_counters(self, store):
        assert await store.counter_get("c") == 0
        assert await store.counter_increment("c") == 1
        assert await store.counter_increment("c", 10) == 11
        await store.counter_set("c", 3)
        assert await store.counter_get("c") == 3
        assert await store.counter_delete("c") is True
        assert await store.counter_get("c") == 0

    @pytest.mark.asyncio
    async def test_sets(self, store):
        assert await store.set_add("s", 1, 2, 2) == 2
        assert sorted(await store.set_members("s")) == ["1", "2"]
        assert await store.set_is_member("s", 1)
        assert not await store.set_is_member("s", 3)
        assert await store.set_remove("s", 1, 3) == 1
        assert await store.set_remove("s", 2) == 1
        # Empty sets do not exist
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_set_add_without_members(self, store):
        assert await store.set_add("s") == 0
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_type_clash(self, store):
        await store.put("k", "v")
        with pytest.raises(StoreTypeFault) as exc:
            await store.set_add("k", 1)
        assert exc.value.domain == FaultDomain.STORE
        await store.set_add("s", 1)
        with pytest.raises(StoreTypeFault):
            await store.get("s")

    @pytest.mark.asyncio
    async def test_key_prefix(self):
        store = MemoryStore(key_prefix="app:")
        await store.put("Post#1:title", "x")
        assert "app:Post#1:title" in store._data
        assert store.keys() == ["Post#1:title"]

    @pytest.mark.asyncio
    async def test_lifecycle(self, store):
        await store.initialize()
        await store.put("a", 1)
        assert await store.health_check()
        await store.shutdown()
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_flush_and_stats(self, store):
        await store.put("a", 1)
        await store.set_add("b", 1)
        stats = await store.stats()
        assert stats.size == 2
        assert stats.writes == 1
        assert await store.flush() == 2
        assert store.keys() == []


# ============================================================================
# RedisStore
# ============================================================================


@pytest.fixture
def redis_client():
    return AsyncMock()


@pytest.fixture
def redis_store(redis_client):
    return RedisStore(client=redis_client, key_prefix="p:")


class TestRedisStore:
    def test_identity(self, redis_store):
        assert redis_store.name == "redis"
        assert redis_store.is_distributed

    @pytest.mark.asyncio
    async def test_initialize_pings(self, redis_store, redis_client):
        await redis_store.initialize()
        redis_client.ping.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_initialize_failure(self, redis_store, redis_client):
        redis_client.ping.side_effect = ConnectionError("refused")
        with pytest.raises(ConnectionError):
            await redis_store.initialize()
        assert (await redis_store.stats()).errors == 1

    @pytest.mark.asyncio
    async def test_scalars(self, redis_store, redis_client):
        redis_client.get.return_value = "v"
        await redis_store.put("k", 7)
        redis_client.set.assert_awaited_with("p:k", "7")
        assert await redis_store.get("k") == "v"
        redis_client.get.assert_awaited_with("p:k")

        redis_client.delete.return_value = 1
        assert await redis_store.delete("k") is True

    @pytest.mark.asyncio
    async def test_counters(self, redis_store, redis_client):
        redis_client.incrby.return_value = 5
        assert await redis_store.counter_increment("Post:last_id") == 5
        redis_client.incrby.assert_awaited_with("p:Post:last_id", 1)

        redis_client.get.return_value = None
        assert await redis_store.counter_get("Post:last_id") == 0
        await redis_store.counter_set("Post:last_id", 9)
        redis_client.set.assert_awaited_with("p:Post:last_id", 9)

    @pytest.mark.asyncio
    async def test_sets(self, redis_store, redis_client):
        redis_client.sadd.return_value = 2
        assert await redis_store.set_add("s", 1, 2) == 2
        redis_client.sadd.assert_awaited_with("p:s", "1", "2")

        redis_client.smembers.return_value = {"1", "2"}
        assert sorted(await redis_store.set_members("s")) == ["1", "2"]

        redis_client.srem.return_value = 1
        assert await redis_store.set_remove("s", 1) == 1
        redis_client.srem.assert_awaited_with("p:s", "1")

        redis_client.sismember.return_value = 1
        assert await redis_store.set_is_member("s", 2) is True

    @pytest.mark.asyncio
    async def test_empty_member_lists_skip_the_server(self, redis_store, redis_client):
        assert await redis_store.set_add("s") == 0
        assert await redis_store.set_remove("s") == 0
        redis_client.sadd.assert_not_awaited()
        redis_client.srem.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_client_errors_propagate(self, redis_store, redis_client):
        redis_client.get.side_effect = TimeoutError("slow")
        with pytest.raises(TimeoutError):
            await redis_store.get("k")
        assert (await redis_store.stats()).errors == 1

    @pytest.mark.asyncio
    async def test_flush_scans_prefix(self, redis_store, redis_client):
        redis_client.scan.side_effect = [(7, ["p:a"]), (0, ["p:b", "p:c"])]
        assert await redis_store.flush() == 3
        redis_client.scan.assert_any_await(0, "p:*", 1000)
        redis_client.scan.assert_any_await(7, "p:*", 1000)

    @pytest.mark.asyncio
    async def test_shutdown(self, redis_store, redis_client):
        await redis_store.shutdown()
        redis_client.aclose.assert_awaited_once()
        assert await redis_store.health_check() is False

    @pytest.mark.asyncio
    async def test_models_on_redis(self, redis_client):
        from keyrel.models import Model, Registry

        class Note(Model):
            schema = {"text": "String"}

        registry = Registry(RedisStore(client=redis_client))
        registry.register(Note)
        registry.finalize()

        redis_client.incrby.return_value = 1
        note = await Note(text="hi").save()
        assert note.id == 1
        redis_client.incrby.assert_awaited_with("Note:last_id", 1)
        redis_client.set.assert_awaited_with("Note#1:text", "hi")
