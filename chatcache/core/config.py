"""Configuration management for chatcache.

This module provides centralized configuration loading from environment
variables with validation and type safety. Cache tuning can additionally be
overridden from the ``cache`` section of ``chatcache.yaml``.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Durable store (PostgreSQL)
    database_url: str = Field(default="", description="PostgreSQL connection string")
    database_pool_min_size: int = Field(
        default=5, description="Minimum pool connections", ge=1, le=100
    )
    database_pool_max_size: int = Field(
        default=20, description="Maximum pool connections", ge=1, le=100
    )

    # Redis Cache
    redis_url: str = Field(default="redis://localhost:6379", description="Redis URL")
    redis_cache_enabled: bool = Field(
        default=True, description="Enable the message cache"
    )
    redis_timeout: float = Field(
        default=1.0, description="Per-operation cache deadline (seconds)", gt=0, le=30
    )
    redis_startup_timeout: float = Field(
        default=2.0, description="Startup ping deadline (seconds)", gt=0, le=30
    )
    redis_max_connections: int = Field(
        default=20, description="Redis connection pool size", ge=1, le=500
    )
    redis_circuit_breaker_threshold: int = Field(
        default=5, description="Failures before opening circuit", ge=1, le=20
    )
    redis_circuit_breaker_timeout: int = Field(
        default=30,
        description="Seconds before probing a tripped cache again",
        ge=1,
        le=3600,
    )

    # Message cache policy
    message_cache_ttl: int = Field(
        default=1200, description="Cached list TTL in seconds (20 min)", ge=60
    )
    message_cache_max_messages: int = Field(
        default=100, description="Most recent messages kept per user", ge=1, le=10_000
    )
    warm_up_window: int = Field(
        default=100, description="Messages loaded into cache on login", ge=1, le=10_000
    )

    # Reconciliation job
    reconciliation_enabled: bool = Field(
        default=True, description="Run the cache -> store reconciliation job"
    )
    reconciliation_interval: int = Field(
        default=300, description="Seconds between reconciliation ticks", ge=1
    )
    reconciliation_ttl_threshold: int = Field(
        default=300,
        description="Sync users whose cached list expires within this many seconds",
        ge=1,
    )

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port", ge=1, le=65535)
    shutdown_timeout: float = Field(
        default=30.0, description="Seconds to drain requests on shutdown", ge=0.0
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str | None = Field(
        default=None, description="Log format (json, console); default by environment"
    )
    environment: str = Field(
        default="development", description="Environment (development, production)"
    )

    # OpenTelemetry Configuration
    otel_enabled: bool = Field(
        default=False, description="Enable OpenTelemetry instrumentation"
    )
    otel_service_name: str = Field(
        default="chatcache", description="Service name for telemetry"
    )
    otel_metrics_enabled: bool = Field(
        default=True, description="Enable metrics collection"
    )

    @model_validator(mode="after")
    def validate_cache_windows(self) -> "Settings":
        """Reject cache policies that could never reconcile or never fit."""
        if self.reconciliation_ttl_threshold >= self.message_cache_ttl:
            raise ValueError(
                f"reconciliation_ttl_threshold ({self.reconciliation_ttl_threshold}s) "
                f"must be below message_cache_ttl ({self.message_cache_ttl}s)"
            )
        if self.warm_up_window > self.message_cache_max_messages:
            raise ValueError(
                f"warm_up_window ({self.warm_up_window}) cannot exceed "
                f"message_cache_max_messages ({self.message_cache_max_messages})"
            )
        if self.database_pool_min_size > self.database_pool_max_size:
            raise ValueError("database_pool_min_size cannot exceed database_pool_max_size")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"


def load_cache_config(
    config: Settings | None = None, config_path: Path | None = None
) -> dict[str, Any]:
    """Load cache configuration from chatcache.yaml.

    3-tier fallback chain:
        1. YAML config (chatcache.yaml cache section)
        2. Environment variables (via Settings class - redis_timeout, etc.)
        3. Hardcoded defaults

    Args:
        config: Settings to take env-derived values from (default: global settings)
        config_path: YAML file to read (default: ./chatcache.yaml)

    Returns:
        Dict with cache configuration

    Example:
        >>> config = load_cache_config()
        >>> config["ttl"]
        1200
        >>> config["circuit_breaker"]["threshold"]
        5
    """
    config = config or settings
    defaults: dict[str, Any] = {
        "enabled": config.redis_cache_enabled,
        "redis_url": config.redis_url,
        "ttl": config.message_cache_ttl,
        "max_messages": config.message_cache_max_messages,
        "timeout": config.redis_timeout,
        "max_connections": config.redis_max_connections,
        "circuit_breaker": {
            "threshold": config.redis_circuit_breaker_threshold,
            "timeout": config.redis_circuit_breaker_timeout,
        },
    }

    config_path = config_path or Path("chatcache.yaml")

    # Try YAML (overrides Settings class values)
    if config_path.exists():
        try:
            with open(config_path) as f:
                raw = yaml.safe_load(f)
                if isinstance(raw, dict):
                    cache_config = raw.get("cache", {})
                    if isinstance(cache_config, dict) and cache_config:
                        result = defaults.copy()
                        for key, value in cache_config.items():
                            existing = result.get(key)
                            if isinstance(value, dict) and isinstance(existing, dict):
                                result[key] = {**existing, **value}
                            else:
                                result[key] = value
                        return result
        except (OSError, yaml.YAMLError):
            pass

    return defaults


# Global settings instance
settings = Settings()
