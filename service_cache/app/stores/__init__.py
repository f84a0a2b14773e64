"""
Storage backends for the cache orchestrator.

Every backend exposes async ``get``/``set``; eviction and persistence are
each backend's own business.
"""

from .base import StorageBackend, backend_name
from .degenerate import ErrorStore, NoopStore
from .memory import LRUMemoryStore, SimpleMemoryStore
from .redis_store import RedisStore

__all__ = [
    "StorageBackend",
    "backend_name",
    "ErrorStore",
    "NoopStore",
    "LRUMemoryStore",
    "SimpleMemoryStore",
    "RedisStore",
]
