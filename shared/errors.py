"""
Shared error handling for the stale cache service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class CacheLayerException(Exception):
    """Base exception for the cache layer."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class NotFoundError(CacheLayerException):
    """Key absent from a backend, or from every backend."""

    def __init__(self, key: str, details: Optional[Dict[str, Any]] = None):
        self.key = key
        super().__init__("NOT_FOUND", f"{key} not found in cache", details)


class MalformedEnvelopeError(CacheLayerException):
    """A stored value could not be decoded into a timed envelope."""

    def __init__(self, message: str = "Malformed cache envelope", details: Optional[Dict[str, Any]] = None):
        super().__init__("MALFORMED_ENVELOPE", message, details)


class BackendError(CacheLayerException):
    """Storage backend failures other than a plain miss."""

    def __init__(self, backend: str, message: str = "Backend error", details: Optional[Dict[str, Any]] = None):
        self.backend = backend
        super().__init__("BACKEND_ERROR", f"{backend}: {message}", details)


class CaptureError(CacheLayerException):
    """A response could not be captured for caching."""

    def __init__(self, message: str = "Response capture failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("CAPTURE_ERROR", message, details)
