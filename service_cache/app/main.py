"""
Stale cache demo service.

Exposes routes whose results are produced through ``CacheOrchestrator.wrap``
and a mounted sub-application whose whole responses are cached by
``ResponseCacheMiddleware``.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from shared.base_service import BaseService
from .caching.clock import Clock, utc_now
from .caching.options import CacheOptions
from .caching.orchestrator import CacheOrchestrator
from .caching.response_capture import ResponseCacheMiddleware
from .stores import LRUMemoryStore, RedisStore, StorageBackend, backend_name


class CacheService(BaseService):
    """Stale cache demo service implementation."""

    def __init__(
        self,
        stores: Optional[Sequence[StorageBackend]] = None,
        *,
        clock: Clock = utc_now,
        producer_delay: float = 0.0,
        **config_overrides: Any,
    ):
        super().__init__("cache", 8020, **config_overrides)
        self.options = CacheOptions.from_config(self.config)
        self.stores: List[StorageBackend] = list(stores) if stores is not None else self._build_stores()
        self.cache = CacheOrchestrator(self.stores, self.options, clock=clock, metrics=self.metrics)
        self.producer_delay = producer_delay
        self.counters: Dict[str, int] = {}

        self._setup_cache_routes()
        self._mount_cached_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.cache_service = self

    def _build_stores(self) -> List[StorageBackend]:
        stores: List[StorageBackend] = [LRUMemoryStore(self.config.lru_max_size)]
        if self.config.redis_url:
            stores.append(RedisStore.from_url(self.config.redis_url, compress=self.config.redis_compress))
        return stores

    async def shutdown(self) -> None:
        await self.cache.close()

    async def _check_dependencies(self) -> Dict[str, str]:
        dependencies = {}
        for store in self.stores:
            if isinstance(store, RedisStore):
                dependencies["redis"] = "ok" if await store.health_check() else "error"
        return dependencies

    def counter(self, name: str):
        """Producer returning the next value of a named counter."""
        async def produce() -> int:
            value = self.counters.get(name, 0) + 1
            self.counters[name] = value
            if self.producer_delay:
                await asyncio.sleep(self.producer_delay)
            return value

        return produce

    def _setup_cache_routes(self):
        """Routes whose payloads are produced through the cache."""

        @self.app.get("/stale")
        async def stale_value():
            value = await self.cache.wrap("stale", self.counter("stale"), stale_ttl=5, expire_ttl=None)
            return {"type": "stale", "value": value}

        @self.app.get("/expire")
        async def expire_value():
            value = await self.cache.wrap("expire", self.counter("expire"), stale_ttl=None, expire_ttl=5)
            return {"type": "expire", "value": value}

        @self.app.get("/both")
        async def both_value():
            value = await self.cache.wrap("both", self.counter("both"), stale_ttl=5, expire_ttl=10)
            return {"type": "both", "value": value}

        @self.app.get("/cache/stats")
        async def cache_stats():
            return {
                "name": self.options.name,
                "stores": [backend_name(store) for store in self.stores],
                "pending_background": self.cache.pending_background,
                "counters": dict(self.counters),
            }

    def _mount_cached_routes(self):
        """Sub-application whose responses are cached whole."""
        cached = FastAPI()

        @cached.get("/counter")
        async def cached_counter():
            value = await self.counter("http")()
            return PlainTextResponse(f"count={value}", headers={"x-counter": str(value)})

        @cached.get("/items/{name}")
        async def cached_item(name: str):
            value = await self.counter(f"item:{name}")()
            return {"name": name, "version": value}

        @cached.post("/items/{name}")
        async def touch_item(name: str):
            value = await self.counter(f"item:{name}")()
            return {"name": name, "version": value}

        self.app.mount("/cached", ResponseCacheMiddleware(cached, cache=self.cache))


def create_app(**kwargs: Any) -> FastAPI:
    """Create FastAPI application."""
    service = CacheService(**kwargs)
    return service.app


if __name__ == "__main__":
    service = CacheService()
    service.run()
