"""
Timed envelope stored in cache backends.

A TimedValue wraps an opaque payload together with the instant it was
created and two optional TTLs. The absolute ``stale_at``/``expire_at``
instants are always derived from ``created`` and are never persisted, so an
envelope read back from a backend cannot drift from its creation time.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from shared.errors import MalformedEnvelopeError
from .clock import Clock, utc_now

NO_CACHE_DIRECTIVE = "no-cache, no-store, must-revalidate"

Seconds = Union[int, float]


def _check_ttl(ttl: Optional[Seconds]) -> Optional[Seconds]:
    if ttl is None:
        return None
    if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
        raise ValueError(f"TTL must be a number of seconds, got {ttl!r}")
    if ttl < 0:
        raise ValueError(f"TTL must be non-negative, got {ttl!r}")
    return ttl


def _parse_created(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError("created must be an ISO-8601 string")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class TimedValue:
    """Cached payload with stale and expire TTLs."""

    def __init__(self, value: Any, created: Optional[datetime] = None, *, clock: Clock = utc_now):
        self._clock = clock
        self.value = value
        self.created = created or clock()
        self.stale_ttl: Optional[Seconds] = None
        self.stale_at: Optional[datetime] = None
        self.expire_ttl: Optional[Seconds] = None
        self.expire_at: Optional[datetime] = None

    @classmethod
    def build(
        cls,
        value: Any,
        *,
        stale_ttl: Optional[Seconds] = None,
        expire_ttl: Optional[Seconds] = None,
        created: Optional[datetime] = None,
        clock: Clock = utc_now,
    ) -> "TimedValue":
        timed = cls(value, created, clock=clock)
        timed.set_stale_ttl(stale_ttl)
        timed.set_expire_ttl(expire_ttl)
        return timed

    def get(self) -> Any:
        return self.value

    def set(self, value: Any) -> None:
        self.value = value

    def set_stale_ttl(self, ttl: Optional[Seconds]) -> None:
        self.stale_ttl = _check_ttl(ttl)
        self.stale_at = None if ttl is None else self.created + timedelta(seconds=ttl)

    def set_expire_ttl(self, ttl: Optional[Seconds]) -> None:
        self.expire_ttl = _check_ttl(ttl)
        self.expire_at = None if ttl is None else self.created + timedelta(seconds=ttl)

    def expired(self) -> bool:
        """True once the expire instant is reached; never when no expire TTL is set."""
        if self.expire_at is None:
            return False
        return self._clock() >= self.expire_at

    def stale(self) -> bool:
        """True once the stale instant is reached; never when no stale TTL is set."""
        if self.stale_at is None:
            return False
        return self._clock() >= self.stale_at

    def max_age(self) -> int:
        """Whole seconds until the value turns stale (or expires), floored at zero."""
        end = self.stale_at if self.stale_at is not None else self.expire_at
        if end is None:
            return 0
        return max(0, int((end - self._clock()).total_seconds()))

    def cache_control(self) -> str:
        """Cache-Control directive matching the remaining freshness."""
        max_age = self.max_age()
        if max_age > 0:
            return f"public, max-age={max_age}"
        return NO_CACHE_DIRECTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "created": self.created.isoformat(),
            "staleTTL": self.stale_ttl,
            "expireTTL": self.expire_ttl,
        }

    def describe(self) -> Dict[str, Any]:
        """Envelope metadata, including the derived instants."""
        return {
            "createdAt": self.created.isoformat(),
            "staleTTL": self.stale_ttl,
            "staleAt": self.stale_at.isoformat() if self.stale_at else None,
            "expireTTL": self.expire_ttl,
            "expireAt": self.expire_at.isoformat() if self.expire_at else None,
        }

    def serialize(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def deserialize(cls, blob: Union[str, bytes], *, clock: Clock = utc_now) -> "TimedValue":
        """Decode a serialized envelope, raising MalformedEnvelopeError on bad input."""
        try:
            data = json.loads(blob)
        except (TypeError, ValueError) as exc:
            raise MalformedEnvelopeError(f"unable to parse envelope: {exc}") from exc

        if not isinstance(data, dict) or "created" not in data:
            raise MalformedEnvelopeError("envelope must be an object with a created timestamp")

        try:
            created = _parse_created(data["created"])
            timed = cls(data.get("value"), created, clock=clock)
            timed.set_stale_ttl(data.get("staleTTL"))
            timed.set_expire_ttl(data.get("expireTTL"))
        except (TypeError, ValueError, OverflowError) as exc:
            raise MalformedEnvelopeError(f"invalid envelope field: {exc}") from exc

        return timed

    def __repr__(self) -> str:
        return (
            f"TimedValue(created={self.created.isoformat()}, "
            f"stale_ttl={self.stale_ttl}, expire_ttl={self.expire_ttl})"
        )
