"""
Unit tests for configuration and error responses.
"""

import pytest
from pydantic import ValidationError

from shared.config import get_config
from shared.errors import BackendError, NotFoundError
from service_cache.app.caching.options import CacheOptions


class TestCacheOptions:
    """Test cases for CacheOptions."""

    def test_defaults(self):
        options = CacheOptions()
        assert options.name == "default"
        assert options.stale_ttl is None
        assert options.expire_ttl is None
        assert options.bypass_header == "cache-bypass"
        assert options.status_header == "cache-status"
        assert options.include_methods == ["GET"]

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("CACHE_CACHE_NAME", "pages")
        monkeypatch.setenv("CACHE_STALE_TTL", "30")
        monkeypatch.setenv("CACHE_INCLUDE_METHODS", '["get", "head"]')

        options = CacheOptions.from_config(get_config("cache", 8020))

        assert options.name == "pages"
        assert options.stale_ttl == 30
        assert options.include_methods == ["GET", "HEAD"]

    def test_merged_overrides(self):
        base = CacheOptions(name="pages", stale_ttl=10)
        merged = base.merged(expire_ttl=60, status_header="X-Cache")

        assert merged.name == "pages"
        assert merged.stale_ttl == 10
        assert merged.expire_ttl == 60
        assert merged.status_header == "x-cache"
        assert base.expire_ttl is None
        assert base.merged() is base

    def test_rejects_negative_ttl(self):
        with pytest.raises(ValidationError):
            CacheOptions(stale_ttl=-1)

    def test_rejects_unknown_option(self):
        with pytest.raises(ValidationError):
            CacheOptions().merged(stale=5)


class TestErrors:
    """Test cases for cache layer errors."""

    def test_not_found_response(self):
        error = NotFoundError("k")
        response = error.to_response()
        assert response.code == "NOT_FOUND"
        assert "k" in response.message
        assert response.details == {}

    def test_backend_error_names_backend(self):
        error = BackendError("RedisStore", "connection refused", {"host": "localhost"})
        assert error.backend == "RedisStore"
        assert error.message == "RedisStore: connection refused"
        assert error.to_response().model_dump()["details"] == {"host": "localhost"}
