"""
Shared configuration management for the stale cache service.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Cache namespace and TTL defaults (seconds, unset means never)
    cache_name: str = Field(default="default")
    stale_ttl: Optional[float] = Field(default=None, ge=0)
    expire_ttl: Optional[float] = Field(default=None, ge=0)
    debug: bool = Field(default=False)

    # HTTP response caching
    bypass_header: str = Field(default="cache-bypass")
    status_header: str = Field(default="cache-status")
    include_methods: List[str] = Field(default_factory=lambda: ["GET"])

    # Backends
    redis_url: Optional[str] = Field(default=None)
    redis_compress: bool = Field(default=True)
    lru_max_size: int = Field(default=1024, ge=1)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
