"""Cache configuration and statistics models."""

from typing import Any

from pydantic import BaseModel, Field


class CacheConfig(BaseModel):
    """Configuration for the Redis message cache.

    Attributes:
        enabled: Whether caching is enabled
        redis_url: Redis connection URL
        ttl: Standard lifetime of a cached message list in seconds
        max_messages: Most recent messages kept per user
        timeout: Per-operation deadline in seconds
        max_connections: Redis connection pool size
        key_prefix: Prefix of per-user message list keys
        circuit_breaker_threshold: Failures before opening circuit
        circuit_breaker_timeout: Seconds before attempting recovery
    """

    enabled: bool = Field(default=True, description="Enable/disable caching")
    redis_url: str = Field(
        default="redis://localhost:6379", description="Redis connection URL"
    )
    ttl: int = Field(default=1200, description="Cache TTL in seconds (20 minutes)", ge=1)
    max_messages: int = Field(
        default=100, description="Most recent messages cached per user", ge=1
    )
    timeout: float = Field(
        default=1.0, description="Redis operation timeout (seconds)", gt=0
    )
    max_connections: int = Field(default=20, description="Redis pool size", ge=1)
    key_prefix: str = Field(
        default="messages:user:", description="Per-user message list key prefix"
    )
    circuit_breaker_threshold: int = Field(
        default=5, description="Failures before opening circuit"
    )
    circuit_breaker_timeout: int = Field(
        default=30, description="Circuit breaker timeout (seconds)"
    )

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> "CacheConfig":
        """Build from the nested dict returned by ``load_cache_config``."""
        data = {k: v for k, v in raw.items() if k != "circuit_breaker"}
        breaker = raw.get("circuit_breaker") or {}
        if "threshold" in breaker:
            data["circuit_breaker_threshold"] = breaker["threshold"]
        if "timeout" in breaker:
            data["circuit_breaker_timeout"] = breaker["timeout"]
        return cls(**data)


class CacheStats(BaseModel):
    """Cache performance statistics.

    Attributes:
        hits: Number of successful cache hits
        misses: Number of cache misses
        errors: Number of cache operation errors
        hit_rate: Cache hit rate (hits / total requests)
        circuit_state: Current circuit breaker state
    """

    hits: int = Field(default=0, description="Cache hits")
    misses: int = Field(default=0, description="Cache misses")
    errors: int = Field(default=0, description="Cache errors")
    hit_rate: float = Field(default=0.0, description="Hit rate percentage")
    circuit_state: str = Field(
        default="closed", description="Circuit breaker state (closed/open/half_open)"
    )

    def update_hit_rate(self) -> None:
        """Recalculate hit rate based on current stats."""
        total = self.hits + self.misses
        self.hit_rate = (self.hits / total * 100) if total > 0 else 0.0
