"""
Unit tests for storage backends.
"""

import base64
import zlib
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.errors import BackendError, NotFoundError
from service_cache.app.stores import (
    ErrorStore,
    LRUMemoryStore,
    NoopStore,
    RedisStore,
    SimpleMemoryStore,
    StorageBackend,
    backend_name,
)


class FakeRedis:
    """Dict-backed stand-in for the redis.asyncio client."""

    def __init__(self):
        self.data = {}
        self.expiries = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiries[key] = ex
        return True


class TestSimpleMemoryStore:
    """Test cases for SimpleMemoryStore."""

    @pytest.mark.asyncio
    async def test_get_missing_key(self):
        store = SimpleMemoryStore()
        with pytest.raises(NotFoundError) as exc_info:
            await store.get("missing")
        assert exc_info.value.key == "missing"

    @pytest.mark.asyncio
    async def test_set_then_get(self):
        store = SimpleMemoryStore()
        assert await store.set("k", "v") == "v"
        assert await store.get("k") == "v"

    @pytest.mark.asyncio
    async def test_seeded_data(self):
        store = SimpleMemoryStore({"k": "seed"})
        assert await store.get("k") == "seed"
        assert len(store) == 1


class TestLRUMemoryStore:
    """Test cases for LRUMemoryStore."""

    @pytest.mark.asyncio
    async def test_evicts_least_recently_used(self):
        store = LRUMemoryStore(max_size=2)
        await store.set("a", 1)
        await store.set("b", 2)

        # Reading "a" makes "b" the eviction candidate
        assert await store.get("a") == 1
        await store.set("c", 3)

        with pytest.raises(NotFoundError):
            await store.get("b")
        assert await store.get("a") == 1
        assert await store.get("c") == 3
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_overwrite_does_not_grow(self):
        store = LRUMemoryStore(max_size=2)
        await store.set("a", 1)
        await store.set("a", 2)
        assert len(store) == 1
        assert await store.get("a") == 2

    def test_rejects_zero_size(self):
        with pytest.raises(ValueError):
            LRUMemoryStore(max_size=0)


class TestDegenerateStores:
    """Test cases for NoopStore and ErrorStore."""

    @pytest.mark.asyncio
    async def test_noop_store_always_misses(self):
        store = NoopStore()
        assert await store.set("k", "v") == "v"
        with pytest.raises(NotFoundError):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_error_store_always_fails(self):
        store = ErrorStore()
        with pytest.raises(BackendError):
            await store.get("k")
        with pytest.raises(BackendError) as exc_info:
            await store.set("k", "v")
        assert exc_info.value.code == "BACKEND_ERROR"
        assert exc_info.value.backend == "ErrorStore"


class TestRedisStore:
    """Test cases for RedisStore."""

    @pytest.fixture
    def client(self):
        return FakeRedis()

    @pytest.mark.asyncio
    async def test_compressed_round_trip(self, client):
        store = RedisStore(client)
        await store.set("k", '{"value": "hello"}')

        assert "k" not in client.data
        stored = client.data["k-z"]
        assert zlib.decompress(base64.b64decode(stored)) == b'{"value": "hello"}'
        assert await store.get("k") == '{"value": "hello"}'

    @pytest.mark.asyncio
    async def test_plain_round_trip(self, client):
        store = RedisStore(client, compress=False)
        await store.set("k", "plain")

        assert client.data == {"k": "plain"}
        assert await store.get("k") == "plain"

    @pytest.mark.asyncio
    async def test_ttl_passed_to_redis(self, client):
        store = RedisStore(client, compress=False, ttl=30)
        await store.set("k", "v")
        assert client.expiries["k"] == 30

    @pytest.mark.asyncio
    async def test_missing_key(self, client):
        store = RedisStore(client)
        with pytest.raises(NotFoundError):
            await store.get("missing")

    @pytest.mark.asyncio
    async def test_bytes_reply_is_decoded(self):
        client = AsyncMock()
        client.get.return_value = b"raw"
        store = RedisStore(client, compress=False)
        assert await store.get("k") == "raw"

    @pytest.mark.asyncio
    async def test_corrupt_compressed_value(self, client):
        client.data["k-z"] = "not-base64-zlib!"
        store = RedisStore(client)
        with pytest.raises(BackendError):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_none_value_rejected(self, client):
        store = RedisStore(client)
        with pytest.raises(BackendError):
            await store.set("k", None)

    @pytest.mark.asyncio
    async def test_connection_errors_become_backend_errors(self):
        client = AsyncMock()
        client.get.side_effect = RedisConnectionError("down")
        client.set.side_effect = RedisConnectionError("down")
        store = RedisStore(client)

        with pytest.raises(BackendError):
            await store.get("k")
        with pytest.raises(BackendError):
            await store.set("k", "v")

    @pytest.mark.asyncio
    async def test_health_check(self):
        client = AsyncMock()
        store = RedisStore(client)
        assert await store.health_check() is True

        client.ping.side_effect = RedisConnectionError("down")
        assert await store.health_check() is False

    @pytest.mark.asyncio
    async def test_close(self):
        client = AsyncMock()
        store = RedisStore(client)
        await store.close()
        client.aclose.assert_awaited_once()


def test_backends_satisfy_protocol():
    for store in (SimpleMemoryStore(), LRUMemoryStore(), NoopStore(), ErrorStore(), RedisStore(FakeRedis())):
        assert isinstance(store, StorageBackend)


def test_backend_names():
    assert backend_name(SimpleMemoryStore()) == "SimpleMemoryStore"
    assert backend_name(LRUMemoryStore()) == "LRUMemoryStore"
    assert backend_name(NoopStore()) == "NoopStore"
    assert backend_name(ErrorStore()) == "ErrorStore"
    assert backend_name(RedisStore(FakeRedis())) == "RedisStore"
    assert backend_name(object()) == "object"
