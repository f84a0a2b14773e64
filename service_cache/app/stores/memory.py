"""
In-process memory stores.

- SimpleMemoryStore: unbounded dict, useful for tests and single workers.
- LRUMemoryStore: bounded store evicting the least recently used entry.
"""

from collections import OrderedDict
from typing import Any, Dict, Optional

from shared.errors import NotFoundError
from shared.logging import get_logger


class SimpleMemoryStore:
    """Dict-backed store."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = data if data is not None else {}

    @classmethod
    def class_name(cls) -> str:
        return "SimpleMemoryStore"

    async def get(self, key: str) -> Any:
        if key in self.data:
            return self.data[key]
        raise NotFoundError(key)

    async def set(self, key: str, value: Any) -> Any:
        self.data[key] = value
        return value

    def __len__(self) -> int:
        return len(self.data)


class LRUMemoryStore:
    """Bounded memory store with least recently used eviction.

    Entries live in an OrderedDict; a read moves the entry to the end and a
    write past ``max_size`` pops from the front.
    """

    def __init__(self, max_size: int = 1024):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._cache: "OrderedDict[str, Any]" = OrderedDict()
        self.logger = get_logger("cache.stores.lru")

    @classmethod
    def class_name(cls) -> str:
        return "LRUMemoryStore"

    async def get(self, key: str) -> Any:
        if key not in self._cache:
            raise NotFoundError(key)
        self._cache.move_to_end(key)
        return self._cache[key]

    async def set(self, key: str, value: Any) -> Any:
        if key in self._cache:
            self._cache.move_to_end(key)
        self._cache[key] = value

        while len(self._cache) > self.max_size:
            evicted, _ = self._cache.popitem(last=False)
            self.logger.debug("Evicted LRU entry", key=evicted, max_size=self.max_size)

        return value

    def keys(self):
        return list(self._cache.keys())

    def __len__(self) -> int:
        return len(self._cache)
