"""
Storage backend contract consumed by the cache orchestrator.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class StorageBackend(Protocol):
    """Narrow get/set capability every backend provides.

    ``get`` raises :class:`shared.errors.NotFoundError` when the key is
    absent. Any other exception is treated by the orchestrator as a backend
    failure for that backend only. ``set`` returns the stored value.
    Implementations must tolerate concurrent calls from in-flight requests.
    """

    async def get(self, key: str) -> Any:
        ...

    async def set(self, key: str, value: Any) -> Any:
        ...


def backend_name(backend: Any) -> str:
    """Readable backend name for logs and metrics labels."""
    class_name = getattr(backend, "class_name", None)
    if callable(class_name):
        return class_name()
    return type(backend).__name__
