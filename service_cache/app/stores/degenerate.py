"""
Degenerate stores: one that never holds anything, one that always fails.
"""

from typing import Any

from shared.errors import BackendError, NotFoundError


class NoopStore:
    """Accepts writes and forgets them; every read is a miss."""

    @classmethod
    def class_name(cls) -> str:
        return "NoopStore"

    async def get(self, key: str) -> Any:
        raise NotFoundError(key)

    async def set(self, key: str, value: Any) -> Any:
        return value


class ErrorStore:
    """Fails every call. Used to exercise backend failure handling."""

    @classmethod
    def class_name(cls) -> str:
        return "ErrorStore"

    async def get(self, key: str) -> Any:
        raise BackendError(self.class_name(), f"get failed for {key}")

    async def set(self, key: str, value: Any) -> Any:
        raise BackendError(self.class_name(), f"set failed for {key}")
