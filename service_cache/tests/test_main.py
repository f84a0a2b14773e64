"""
Unit tests for the stale cache demo service.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from shared.test_helpers import FrozenClock
from service_cache.app.main import CacheService, create_app
from service_cache.app.stores import LRUMemoryStore, RedisStore, SimpleMemoryStore


class TestCacheService:
    """Test cases for CacheService."""

    @pytest.fixture
    def clock(self):
        return FrozenClock()

    @pytest.fixture
    def service(self, clock):
        return CacheService(clock=clock)

    @pytest.fixture
    def client(self, service):
        with TestClient(service.app) as client:
            yield client

    def drain(self, client, service):
        client.portal.call(service.cache.wait_background)

    def test_create_app(self):
        app = create_app(stores=[SimpleMemoryStore()])
        assert isinstance(app.state.cache_service, CacheService)

    def test_default_stores(self, service):
        assert [type(store) for store in service.stores] == [LRUMemoryStore]

    def test_redis_store_from_config(self):
        service = CacheService(redis_url="redis://localhost:6379/0")
        assert [type(store) for store in service.stores] == [LRUMemoryStore, RedisStore]
        assert service.stores[1].compress is True

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "cache"
        assert data["status"] == "ok"
        assert data["dependencies"] == {}

    def test_request_id_is_echoed(self, client):
        assert client.get("/health", headers={"x-request-id": "req-1"}).headers["x-request-id"] == "req-1"
        assert client.get("/health").headers["x-request-id"]

    def test_health_reports_redis(self, clock):
        redis_client = AsyncMock()
        service = CacheService([SimpleMemoryStore(), RedisStore(redis_client)], clock=clock)
        with TestClient(service.app) as client:
            assert client.get("/health").json()["dependencies"] == {"redis": "ok"}

            redis_client.ping.side_effect = RedisConnectionError("down")
            data = client.get("/health").json()
            assert data["status"] == "degraded"
            assert data["dependencies"] == {"redis": "error"}

    def test_stale_route(self, client, service, clock):
        assert client.get("/stale").json() == {"type": "stale", "value": 1}
        assert client.get("/stale").json()["value"] == 1

        clock.advance(5)
        assert client.get("/stale").json()["value"] == 1
        self.drain(client, service)

        assert client.get("/stale").json()["value"] == 2
        assert service.counters["stale"] == 2

    def test_expire_route(self, client, service, clock):
        assert client.get("/expire").json() == {"type": "expire", "value": 1}

        clock.advance(4)
        assert client.get("/expire").json()["value"] == 1

        clock.advance(1)
        assert client.get("/expire").json()["value"] == 2
        assert service.cache.pending_background == 0

    def test_both_route(self, client, service, clock):
        assert client.get("/both").json()["value"] == 1

        clock.advance(6)
        assert client.get("/both").json()["value"] == 1
        self.drain(client, service)

        clock.advance(10)
        assert client.get("/both").json()["value"] == 3

    def test_lookup_metrics(self, client, service, clock):
        client.get("/stale")
        client.get("/stale")
        clock.advance(5)
        client.get("/stale")
        self.drain(client, service)

        assert service.metrics.sample("cache_lookups_total", cache="default", outcome="miss") == 1
        assert service.metrics.sample("cache_lookups_total", cache="default", outcome="fresh") == 1
        assert service.metrics.sample("cache_lookups_total", cache="default", outcome="stale") == 1
        assert service.metrics.sample(
            "cache_refresh_total", cache="default", mode="background", result="ok"
        ) == 1

        response = client.get("/metrics")
        assert response.status_code == 200
        assert "cache_lookups_total" in response.text

    def test_cached_counter(self, client):
        first = client.get("/cached/counter")
        assert first.status_code == 200
        assert first.text == "count=1"
        assert first.headers["cache-status"] == "miss"

        second = client.get("/cached/counter")
        assert second.text == "count=1"
        assert second.headers["x-counter"] == "1"
        assert second.headers["cache-status"] == "cached"

    def test_cached_counter_bypass(self, client):
        client.get("/cached/counter")
        response = client.get("/cached/counter", headers={"cache-bypass": "1"})
        assert response.text == "count=2"
        assert response.headers["cache-status"] == "bypass"

    def test_cached_items_skip_post(self, client):
        posted = client.post("/cached/items/a")
        assert posted.headers["cache-status"] == "skipMethod"
        assert posted.json() == {"name": "a", "version": 1}

        assert client.get("/cached/items/a").json()["version"] == 2
        client.post("/cached/items/a")

        cached = client.get("/cached/items/a")
        assert cached.headers["cache-status"] == "cached"
        assert cached.json() == {"name": "a", "version": 2}

    def test_cached_counter_stale_refresh(self, clock):
        service = CacheService(clock=clock, stale_ttl=1, expire_ttl=10)
        with TestClient(service.app) as client:
            assert client.get("/cached/counter").headers["cache-control"] == "public, max-age=1"

            clock.advance(1)
            stale = client.get("/cached/counter")
            assert stale.text == "count=1"
            assert stale.headers["cache-status"] == "cached"
            client.portal.call(service.cache.wait_background)

            assert client.get("/cached/counter").text == "count=2"

    def test_cache_stats(self, client, service):
        client.get("/stale")
        response = client.get("/cache/stats")
        assert response.status_code == 200
        assert response.json() == {
            "name": "default",
            "stores": ["LRUMemoryStore"],
            "pending_background": 0,
            "counters": {"stale": 1},
        }
