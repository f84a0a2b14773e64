"""
Structured logging for the stale cache service.

Loggers are named ``<service>.<component>``. Correlation fields (request id,
cache namespace) are kept in structlog's context variables; asyncio copies
the context when a task is created, so background refreshes log with the
request id of the request that scheduled them.
"""

import logging
import sys
import uuid
from typing import Any, Dict, Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars


def _service_name(default: str):
    def add_service(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        name = event_dict.get("logger", "")
        event_dict.setdefault("service", name.split(".")[0] if "." in name else default)
        return event_dict

    return add_service


def configure_logging(service_name: str, log_level: str = "info", json_logs: bool = True) -> None:
    """Configure structlog and the stdlib root logger for a service.

    ``json_logs=False`` switches to the console renderer for local runs.
    """
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _service_name(service_name),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def bind_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id (generated when absent) to the current context."""
    request_id = request_id or str(uuid.uuid4())
    bind_contextvars(request_id=request_id)
    return request_id


def bind_cache_name(cache_name: str) -> None:
    bind_contextvars(cache_name=cache_name)


def clear_context() -> None:
    clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
