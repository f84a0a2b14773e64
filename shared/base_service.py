"""
Service chassis shared by the cache service.

``BaseService`` owns configuration, logging, metrics and the FastAPI app.
Subclasses add routes, report dependency health through
``_check_dependencies`` and release resources in ``shutdown``.
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from shared.config import get_config
from shared.errors import CacheLayerException
from shared.logging import bind_request_id, clear_context, configure_logging, get_logger
from shared.metrics import CONTENT_TYPE_LATEST, get_metrics_collector

VERSION = "1.0.0"

# HTTP status for cache layer error codes reaching a handler
ERROR_STATUS = {
    "NOT_FOUND": 404,
    "BACKEND_ERROR": 503,
}


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, port: int, **config_overrides):
        self.service_name = service_name
        self.port = port
        self.config = get_config(service_name, port, **config_overrides)

        configure_logging(service_name, self.config.log_level, json_logs=self.config.env != "local")
        self.logger = get_logger(f"{service_name}.service")
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        self.app = FastAPI(
            title=f"{service_name.title()} Service",
            description=f"Stale cache - {service_name.title()} Service",
            version=VERSION,
            docs_url="/docs" if self.config.env == "local" else None,
            redoc_url="/redoc" if self.config.env == "local" else None,
            lifespan=self._lifespan,
        )
        self._setup_middleware()
        self._setup_routes()
        self._setup_exception_handlers()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.startup()
        self.logger.info("Service started", port=self.port, env=self.config.env)
        try:
            yield
        finally:
            await self.shutdown()
            self.logger.info("Service stopped")

    async def startup(self) -> None:
        """Hook run before the app serves requests."""

    async def shutdown(self) -> None:
        """Hook run after the app stopped serving requests."""

    def _setup_middleware(self):
        @self.app.middleware("http")
        async def request_context(request: Request, call_next):
            request_id = bind_request_id(request.headers.get("x-request-id"))
            started = time.perf_counter()
            try:
                response = await call_next(request)
            finally:
                duration = time.perf_counter() - started
                clear_context()

            response.headers["x-request-id"] = request_id
            self.metrics.record_http_request(request.method, request.url.path, response.status_code, duration)
            self.logger.info(
                "HTTP request",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response

    def _setup_routes(self):
        @self.app.get("/health")
        async def health_check():
            """Liveness plus the state of optional backends.

            A failing backend degrades the service without taking it down,
            because the cache keeps answering from the remaining backends.
            """
            try:
                dependencies = await self._check_dependencies()
            except Exception as exc:
                self.logger.error("Health check failed", error=str(exc))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(exc)},
                )

            status = "ok" if all(state == "ok" for state in dependencies.values()) else "degraded"
            self.metrics.record_health_check(status)
            return {
                "service": self.service_name,
                "status": status,
                "uptime_seconds": round(time.time() - self._start_time, 3),
                "dependencies": dependencies,
                "version": VERSION,
                "commit": os.getenv("GIT_COMMIT", "unknown"),
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            return Response(content=self.metrics.render(), media_type=CONTENT_TYPE_LATEST)

    def _setup_exception_handlers(self):
        @self.app.exception_handler(CacheLayerException)
        async def cache_layer_exception_handler(request: Request, exc: CacheLayerException):
            status_code = ERROR_STATUS.get(exc.code, 500)
            self.logger.error("Cache layer error", code=exc.code, message=exc.message, status_code=status_code)
            return JSONResponse(status_code=status_code, content=exc.to_response().model_dump())

        @self.app.exception_handler(Exception)
        async def unhandled_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}},
            )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Map of dependency name to "ok" or "error". Override in subclasses."""
        return {}

    def run(self):
        """Run the service with uvicorn."""
        import uvicorn

        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
        )
