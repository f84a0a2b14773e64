"""
Redis-backed store.

Values are strings (serialized envelopes). With compression enabled the
value is zlib-compressed, base64 encoded and written under ``<key>-z`` so
compressed and plain entries never collide in a shared keyspace.
"""

import base64
import binascii
import zlib
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import BackendError, NotFoundError
from shared.logging import get_logger


class RedisStore:
    """Store backed by a ``redis.asyncio`` client."""

    COMPRESS_KEY_SUFFIX = "z"

    def __init__(self, client: redis.Redis, *, compress: bool = True, ttl: Optional[int] = None):
        self.client = client
        self.compress = compress
        self.ttl = ttl
        self.logger = get_logger("cache.stores.redis")

    @classmethod
    def class_name(cls) -> str:
        return "RedisStore"

    @classmethod
    def from_url(cls, redis_url: str, **kwargs) -> "RedisStore":
        """Create a store with its own connection pool."""
        client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30
        )
        return cls(client, **kwargs)

    def _storage_key(self, key: str) -> str:
        if self.compress:
            return f"{key}-{self.COMPRESS_KEY_SUFFIX}"
        return key

    async def get(self, key: str) -> Any:
        try:
            raw = await self.client.get(self._storage_key(key))
        except RedisError as exc:
            raise BackendError(self.class_name(), str(exc)) from exc

        if raw is None:
            raise NotFoundError(key)

        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")

        if not self.compress:
            return raw

        try:
            return zlib.decompress(base64.b64decode(raw)).decode("utf-8")
        except (binascii.Error, zlib.error, UnicodeDecodeError) as exc:
            raise BackendError(self.class_name(), f"corrupt compressed value for {key}: {exc}") from exc

    async def set(self, key: str, value: Any) -> Any:
        if value is None:
            raise BackendError(self.class_name(), f"value for key '{key}' is None")

        stored = value
        if self.compress:
            data = value.encode("utf-8") if isinstance(value, str) else bytes(value)
            stored = base64.b64encode(zlib.compress(data, level=6)).decode("ascii")

        try:
            await self.client.set(self._storage_key(key), stored, ex=self.ttl)
        except RedisError as exc:
            raise BackendError(self.class_name(), str(exc)) from exc

        self.logger.debug("Stored value", key=key, compressed=self.compress)
        return value

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.client.ping()
            return True
        except RedisError:
            return False

    async def close(self):
        await self.client.aclose()
        self.logger.info("Redis store closed")
