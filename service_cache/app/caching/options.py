"""
Cache configuration options.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.config import BaseConfig


class CacheOptions(BaseModel):
    """Options shared by value wrapping and HTTP response caching."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = "default"
    stale_ttl: Optional[float] = Field(default=None, ge=0)
    expire_ttl: Optional[float] = Field(default=None, ge=0)
    debug: bool = False
    bypass_header: str = "cache-bypass"
    status_header: str = "cache-status"
    include_methods: List[str] = Field(default_factory=lambda: ["GET"])

    @field_validator("bypass_header", "status_header")
    @classmethod
    def _lower_header(cls, value: str) -> str:
        return value.lower()

    @field_validator("include_methods")
    @classmethod
    def _upper_methods(cls, value: List[str]) -> List[str]:
        return [method.upper() for method in value]

    def merged(self, **overrides: Any) -> "CacheOptions":
        """Return a copy with per-call overrides applied over these defaults."""
        if not overrides:
            return self
        return type(self).model_validate({**self.model_dump(), **overrides})

    @classmethod
    def from_config(cls, config: BaseConfig) -> "CacheOptions":
        return cls(
            name=config.cache_name,
            stale_ttl=config.stale_ttl,
            expire_ttl=config.expire_ttl,
            debug=config.debug,
            bypass_header=config.bypass_header,
            status_header=config.status_header,
            include_methods=config.include_methods,
        )
