"""
Caching package.

Provides the timed envelope stored in backends, the multi-backend
orchestrator implementing stale-while-revalidate for wrapped producers, and
the ASGI middleware that caches whole HTTP responses on top of it.
"""

from .options import CacheOptions
from .orchestrator import CacheOrchestrator
from .response_capture import CapturingResponse, HeaderTable, ResponseCacheMiddleware, ResponseSnapshot
from .timed_value import TimedValue

__all__ = [
    "CacheOptions",
    "CacheOrchestrator",
    "CapturingResponse",
    "HeaderTable",
    "ResponseCacheMiddleware",
    "ResponseSnapshot",
    "TimedValue",
]
