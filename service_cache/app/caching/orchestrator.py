"""
Multi-backend cache orchestrator with stale-while-revalidate semantics.
"""

import asyncio
import inspect
from contextlib import nullcontext
from typing import Any, Awaitable, Callable, Coroutine, Iterable, List, Optional, Sequence, Set, TYPE_CHECKING, Union

from shared.errors import MalformedEnvelopeError, NotFoundError
from shared.logging import get_logger
from ..stores.base import StorageBackend, backend_name
from .clock import Clock, utc_now
from .keys import make_key
from .options import CacheOptions
from .timed_value import TimedValue

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector

Producer = Callable[[], Union[Any, Awaitable[Any]]]


class CacheOrchestrator:
    """Read-through/write-through cache over an ordered list of backends.

    Lookups walk the backends in order and stop at the first hit; backends
    that missed before the hit are backfilled in the background. Writes fan
    out to every backend in parallel and are strictly best-effort.

    ``wrap`` decides from the stored envelope whether to return the cached
    payload, return it while refreshing in the background (stale), or
    refresh synchronously (missing or expired). There is no single-flight:
    concurrent misses for one key each run the producer.
    """

    def __init__(
        self,
        stores: Union[StorageBackend, Sequence[StorageBackend], None] = None,
        options: Optional[CacheOptions] = None,
        *,
        clock: Clock = utc_now,
        metrics: Optional["MetricsCollector"] = None,
        **option_overrides: Any,
    ):
        if stores is None:
            stores = []
        elif not isinstance(stores, (list, tuple)):
            stores = [stores]

        self._stores = tuple(stores)
        self.options = (options or CacheOptions()).merged(**option_overrides)
        self.clock = clock
        self.metrics = metrics
        self.logger = get_logger("cache.orchestrator")

        self._background: Set[asyncio.Task] = set()
        self.last_background: Optional[asyncio.Task] = None

    @property
    def stores(self) -> List[StorageBackend]:
        return list(self._stores)

    @property
    def pending_background(self) -> int:
        return len(self._background)

    def derive_key(self, obj: Any = None) -> str:
        """Namespaced key for an arbitrary structure; mapping order is irrelevant."""
        return make_key(self.options.name, {} if obj is None else obj)

    def run_in_background(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Schedule work to start after the current turn of the event loop."""
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        self.last_background = task
        return task

    async def wait_background(self) -> None:
        """Wait until every scheduled background task has settled."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        """Drain background work and close backends that hold connections."""
        await self.wait_background()
        for store in self._stores:
            close = getattr(store, "close", None)
            if close is not None:
                await close()

    def _record_lookup(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_lookup(self.options.name, outcome)

    def _backend_failed(self, store: StorageBackend, operation: str, key: str, exc: BaseException) -> None:
        name = backend_name(store)
        self.logger.error(
            "Cache backend error",
            backend=name,
            operation=operation,
            key=key,
            error=str(exc),
        )
        if self.metrics:
            self.metrics.record_backend_error(self.options.name, name, operation)

    async def _multi_set(self, stores: Iterable[StorageBackend], key: str, value: Any) -> Any:
        stores = list(stores)
        results = await asyncio.gather(
            *(store.set(key, value) for store in stores),
            return_exceptions=True,
        )
        for store, result in zip(stores, results):
            if isinstance(result, Exception):
                self._backend_failed(store, "set", key, result)
        return value

    async def set(self, key: str, value: Any) -> Any:
        """Write ``value`` to every backend; always resolves to ``value``."""
        return await self._multi_set(self._stores, key, value)

    async def get(self, key: str) -> Any:
        """Return the raw value from the first backend holding ``key``.

        Raises NotFoundError when every backend misses or fails.
        """
        missed: List[StorageBackend] = []

        for store in self._stores:
            try:
                value = await store.get(key)
            except NotFoundError:
                missed.append(store)
                continue
            except Exception as exc:
                self._backend_failed(store, "get", key, exc)
                missed.append(store)
                continue

            if missed:
                self.run_in_background(self._multi_set(missed, key, value))
            return value

        raise NotFoundError(key)

    async def lookup(self, key: str) -> TimedValue:
        """Fetch and decode the envelope stored under ``key``."""
        raw = await self.get(key)
        return TimedValue.deserialize(raw, clock=self.clock)

    async def build_and_set(self, key: str, payload: Any, **options: Any) -> TimedValue:
        """Wrap ``payload`` in a fresh envelope and write it everywhere."""
        opts = self.options.merged(**options)
        timed = TimedValue.build(
            payload,
            stale_ttl=opts.stale_ttl,
            expire_ttl=opts.expire_ttl,
            clock=self.clock,
        )
        await self.set(key, timed.serialize())
        return timed

    async def _refresh(self, key: str, producer: Producer, mode: str, options: dict) -> Any:
        timer = self.metrics.time_refresh(self.options.name, mode) if self.metrics else nullcontext()
        with timer:
            data = producer()
            if inspect.isawaitable(data):
                data = await data
            timed = await self.build_and_set(key, data, **options)
        return timed.get()

    async def refresh(self, key: str, producer: Producer, **options: Any) -> Any:
        """Run the producer, store its result and return it. Producer errors propagate."""
        return await self._refresh(key, producer, "sync", options)

    async def _background_refresh(self, key: str, producer: Producer, options: dict) -> None:
        try:
            await self._refresh(key, producer, "background", options)
        except Exception as exc:
            # The previous value stays as the last known good state
            self.logger.warning("Background refresh failed", key=key, error=str(exc))

    def _annotate(self, key: str, timed: TimedValue) -> Any:
        payload = timed.get()
        if isinstance(payload, dict):
            return {"_cache": {"key": key, **timed.describe()}, **payload}
        self.logger.debug("Cache hit", key=key, **timed.describe())
        return payload

    async def wrap(self, key: Any, producer: Producer, **options: Any) -> Any:
        """Return the cached result of ``producer`` for ``key``, refreshing as needed."""
        storage_key = self.derive_key(key)

        try:
            timed = await self.lookup(storage_key)
        except NotFoundError:
            self._record_lookup("miss")
            return await self.refresh(storage_key, producer, **options)
        except MalformedEnvelopeError as exc:
            self.logger.warning("Discarding malformed cache entry", key=storage_key, error=exc.message)
            self._record_lookup("miss")
            return await self.refresh(storage_key, producer, **options)

        if timed.expired():
            self._record_lookup("expired")
            return await self.refresh(storage_key, producer, **options)

        if timed.stale():
            self._record_lookup("stale")
            self.run_in_background(self._background_refresh(storage_key, producer, options))
        else:
            self._record_lookup("fresh")

        if self.options.merged(**options).debug:
            return self._annotate(storage_key, timed)
        return timed.get()
