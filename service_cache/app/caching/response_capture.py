"""
HTTP response caching for ASGI applications.

``ResponseCacheMiddleware`` stores complete responses (status, headers,
body) in a :class:`CacheOrchestrator` and replays them on later requests.
On a miss the downstream app sends into a :class:`CapturingResponse` sink
instead of the real transport; the captured snapshot is stored first and
then written to the client exactly once.
"""

import asyncio
import base64
import binascii
import codecs
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from shared.errors import CaptureError, MalformedEnvelopeError, NotFoundError
from shared.logging import bind_cache_name, get_logger
from .orchestrator import CacheOrchestrator
from .timed_value import TimedValue

STATUS_MISS = "miss"
STATUS_CACHED = "cached"
STATUS_EXPIRED = "expired"
STATUS_BYPASS = "bypass"
STATUS_SKIP_METHOD = "skipMethod"


class HeaderTable:
    """Ordered header list with case-insensitive, last-write-wins assignment."""

    def __init__(self, headers: Iterable[Tuple[str, str]] = ()):
        self._items: List[Tuple[str, str]] = [(name, value) for name, value in headers]

    def get(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self._items:
            if key.lower() == lowered:
                return value
        return None

    def remove(self, name: str) -> None:
        lowered = name.lower()
        self._items = [(key, value) for key, value in self._items if key.lower() != lowered]

    def set(self, name: str, value: str) -> None:
        self.remove(name)
        self._items.append((name, value))

    def add(self, name: str, value: str) -> None:
        """Append without replacing, for repeatable headers such as set-cookie."""
        self._items.append((name, value))

    def items(self) -> List[Tuple[str, str]]:
        return list(self._items)

    def raw(self) -> List[Tuple[bytes, bytes]]:
        return [(name.lower().encode("latin-1"), value.encode("latin-1")) for name, value in self._items]

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self._items)


@dataclass
class ResponseSnapshot:
    """Replayable copy of a finished response."""

    status: int
    headers: List[Tuple[str, str]] = field(default_factory=list)
    content: Union[str, bytes] = ""
    encoding: Optional[str] = None

    @property
    def body(self) -> bytes:
        if isinstance(self.content, bytes):
            return self.content
        return self.content.encode(self.encoding or "utf-8")

    def to_payload(self) -> Dict[str, Any]:
        """JSON-safe form; binary content is base64 encoded."""
        binary = isinstance(self.content, bytes)
        return {
            "status": self.status,
            "headers": [[name, value] for name, value in self.headers],
            "content": base64.b64encode(self.content).decode("ascii") if binary else self.content,
            "binary": binary,
            "encoding": self.encoding,
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "ResponseSnapshot":
        if not isinstance(payload, dict) or not isinstance(payload.get("status"), int):
            raise MalformedEnvelopeError("cached response has no status")

        content = payload.get("content") or ""
        if not isinstance(content, str):
            raise MalformedEnvelopeError("cached response content must be a string")
        encoding = payload.get("encoding")
        if not isinstance(encoding, (str, type(None))):
            raise MalformedEnvelopeError("cached response encoding must be a string")

        try:
            if encoding:
                codecs.lookup(encoding)
            if payload.get("binary"):
                content = base64.b64decode(content)
            headers = [(str(name), str(value)) for name, value in payload.get("headers") or []]
        except (binascii.Error, LookupError, TypeError, ValueError) as exc:
            raise MalformedEnvelopeError(f"cached response is corrupt: {exc}") from exc

        return cls(
            status=payload["status"],
            headers=headers,
            content=content,
            encoding=encoding,
        )


class CapturingResponse:
    """Response sink that buffers everything instead of touching the transport.

    Header mutations land in an in-memory :class:`HeaderTable`. Body chunks
    accumulate as text or as bytes; a response must stay one or the other.
    ``send`` accepts ASGI messages so the sink can stand in for the real
    ``send`` callable.
    """

    def __init__(self):
        self.status = 200
        self.headers = HeaderTable()
        self.encoding: Optional[str] = None
        self.started = False
        self.finished = False
        self._chunks: List[Union[str, bytes]] = []
        self._binary: Optional[bool] = None

    def set_status(self, status: int) -> None:
        self.status = status

    def get_header(self, name: str) -> Optional[str]:
        return self.headers.get(name)

    def set_header(self, name: str, value: str) -> None:
        self.headers.set(name, value)

    def remove_header(self, name: str) -> None:
        self.headers.remove(name)

    def write(self, chunk: Union[str, bytes, None], encoding: Optional[str] = None) -> None:
        if self.finished:
            raise CaptureError("write after the response was finalized")
        if chunk is None:
            return

        binary = isinstance(chunk, (bytes, bytearray))
        if not binary and not isinstance(chunk, str):
            raise CaptureError(f"unsupported body chunk type {type(chunk).__name__}")
        if self._binary is not None and self._binary != binary:
            raise CaptureError("response body mixes text and binary chunks")

        self._binary = binary
        self._chunks.append(bytes(chunk) if binary else chunk)
        self.encoding = encoding or self.encoding

    def end(self, chunk: Union[str, bytes, None] = None, encoding: Optional[str] = None) -> "ResponseSnapshot":
        self.write(chunk, encoding)
        self.finished = True
        return self.snapshot()

    def snapshot(self) -> ResponseSnapshot:
        if not self.finished:
            raise CaptureError("response was never finalized")

        if self._binary:
            content: Union[str, bytes] = b"".join(self._chunks)
        else:
            content = "".join(self._chunks)

        return ResponseSnapshot(
            status=self.status,
            headers=self.headers.items(),
            content=content,
            encoding=self.encoding,
        )

    async def send(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.started = True
            self.set_status(message["status"])
            for name, value in message.get("headers", []):
                self.headers.add(name.decode("latin-1"), value.decode("latin-1"))
        elif message["type"] == "http.response.body":
            self.write(message.get("body", b""))
            if not message.get("more_body", False):
                self.finished = True


def _detached_receive():
    """Receive channel for a replay run that no client is listening to."""
    done = asyncio.Event()
    delivered = False

    async def receive() -> Message:
        nonlocal delivered
        if not delivered:
            delivered = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await done.wait()
        return {"type": "http.disconnect"}

    return receive, done


class ResponseCacheMiddleware:
    """ASGI middleware caching whole responses with stale-while-revalidate."""

    def __init__(self, app: ASGIApp, cache: CacheOrchestrator, **options: Any):
        self.app = app
        self.cache = cache
        self.options = cache.options.merged(**options)
        self.logger = get_logger("cache.response_capture")

    def request_key(self, scope: Scope) -> str:
        root_path = scope.get("root_path", "")
        url = scope["path"]
        # Mounted apps may see the mount prefix in root_path only
        if not url.startswith(root_path):
            url = root_path + url
        query = scope.get("query_string", b"")
        if query:
            url = f"{url}?{query.decode('latin-1')}"
        return self.cache.derive_key({"url": url})

    def _ttl_options(self) -> Dict[str, Any]:
        return {"stale_ttl": self.options.stale_ttl, "expire_ttl": self.options.expire_ttl}

    def _with_status(self, send: Send, status: str) -> Send:
        status_header = self.options.status_header

        async def send_with_status(message: Message) -> None:
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                headers = MutableHeaders(scope=message)
                headers[status_header] = status
            await send(message)

        return send_with_status

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        bind_cache_name(self.options.name)
        request_headers = Headers(scope=scope)

        if request_headers.get(self.options.bypass_header):
            await self.app(scope, receive, self._with_status(send, STATUS_BYPASS))
            return

        if scope["method"].upper() not in self.options.include_methods:
            await self.app(scope, receive, self._with_status(send, STATUS_SKIP_METHOD))
            return

        key = self.request_key(scope)
        timed, snapshot = await self._lookup(key)

        if timed is not None and timed.expired():
            await self._capture_and_respond(scope, receive, send, key, STATUS_EXPIRED)
            return

        if snapshot is None:
            await self._capture_and_respond(scope, receive, send, key, STATUS_MISS)
            return

        await self._respond(send, snapshot, timed, STATUS_CACHED)

        if timed.stale():
            self.cache.run_in_background(self._background_capture(dict(scope), key))

    async def _lookup(self, key: str) -> Tuple[Optional[TimedValue], Optional[ResponseSnapshot]]:
        try:
            timed = await self.cache.lookup(key)
        except NotFoundError:
            return None, None
        except MalformedEnvelopeError as exc:
            self.logger.warning("Discarding unreadable cache envelope", key=key, error=exc.message)
            return None, None

        try:
            snapshot = ResponseSnapshot.from_payload(timed.get())
        except MalformedEnvelopeError as exc:
            self.logger.warning("Discarding malformed cached response", key=key, error=exc.message)
            return None, None

        return timed, snapshot

    async def _capture(self, scope: Scope, receive: Receive) -> ResponseSnapshot:
        sink = CapturingResponse()
        await self.app(scope, receive, sink.send)
        return sink.snapshot()

    async def _respond(self, send: Send, snapshot: ResponseSnapshot, timed: TimedValue, status: str) -> None:
        headers = HeaderTable(snapshot.headers)
        headers.set("cache-control", timed.cache_control())
        headers.set(self.options.status_header, status)

        await send({
            "type": "http.response.start",
            "status": snapshot.status,
            "headers": headers.raw(),
        })
        await send({
            "type": "http.response.body",
            "body": snapshot.body,
            "more_body": False,
        })

    async def _capture_and_respond(self, scope: Scope, receive: Receive, send: Send, key: str, status: str) -> None:
        # Nothing is stored unless the downstream app finishes the response
        snapshot = await self._capture(scope, receive)
        timed = await self.cache.build_and_set(key, snapshot.to_payload(), **self._ttl_options())
        self.logger.debug("Captured response", key=key, status=status, http_status=snapshot.status)
        await self._respond(send, snapshot, timed, status)

    async def _background_capture(self, scope: Scope, key: str) -> None:
        receive, done = _detached_receive()
        try:
            snapshot = await self._capture(scope, receive)
            await self.cache.build_and_set(key, snapshot.to_payload(), **self._ttl_options())
            self.logger.debug("Refreshed cached response", key=key, http_status=snapshot.status)
        except Exception as exc:
            self.logger.warning("Background response refresh failed", key=key, error=str(exc))
        finally:
            done.set()
