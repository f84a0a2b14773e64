"""
Shared utilities for the stale cache service.

This package aggregates common building blocks:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI service scaffolding
- test_helpers: Deterministic clock and recording stores for tests

Do not import from service_* packages into shared/.
"""
