"""Tests for settings validation and cache config loading."""

import pytest
from pydantic import ValidationError

from chatcache.cache.models import CacheConfig
from chatcache.core.config import Settings, load_cache_config


class TestSettings:
    """Test suite for Settings."""

    def test_defaults(self):
        """Test the documented cache policy defaults."""
        config = Settings(_env_file=None)

        assert config.message_cache_ttl == 1200
        assert config.message_cache_max_messages == 100
        assert config.warm_up_window == 100
        assert config.reconciliation_interval == 300
        assert config.reconciliation_ttl_threshold == 300
        assert config.redis_startup_timeout == 2.0

    def test_env_override(self, monkeypatch):
        """Test values are read from the environment."""
        monkeypatch.setenv("MESSAGE_CACHE_TTL", "1800")
        monkeypatch.setenv("REDIS_CACHE_ENABLED", "false")

        config = Settings(_env_file=None)

        assert config.message_cache_ttl == 1800
        assert config.redis_cache_enabled is False

    def test_threshold_must_be_below_ttl(self):
        """Test a threshold at or above the TTL window is rejected."""
        with pytest.raises(ValidationError, match="reconciliation_ttl_threshold"):
            Settings(_env_file=None, message_cache_ttl=300, reconciliation_ttl_threshold=300)

    def test_warm_up_window_fits_cache(self):
        """Test the warm-up window cannot exceed the cached list bound."""
        with pytest.raises(ValidationError, match="warm_up_window"):
            Settings(_env_file=None, warm_up_window=150, message_cache_max_messages=100)

    def test_is_production(self):
        assert Settings(_env_file=None, environment="Production").is_production
        assert not Settings(_env_file=None).is_production


class TestLoadCacheConfig:
    """Test suite for load_cache_config."""

    def test_without_yaml_uses_settings(self, tmp_path):
        """Test env-derived values are used when no YAML file exists."""
        config = Settings(_env_file=None, message_cache_ttl=900, redis_timeout=0.5)

        result = load_cache_config(config, tmp_path / "missing.yaml")

        assert result["ttl"] == 900
        assert result["timeout"] == 0.5
        assert result["circuit_breaker"] == {"threshold": 5, "timeout": 30}

    def test_yaml_overrides_settings(self, tmp_path):
        """Test the YAML cache section wins, nested dicts merged."""
        path = tmp_path / "chatcache.yaml"
        path.write_text(
            "cache:\n"
            "  ttl: 600\n"
            "  redis_url: redis://cache:6379/2\n"
            "  circuit_breaker:\n"
            "    threshold: 10\n"
        )

        result = load_cache_config(Settings(_env_file=None), path)

        assert result["ttl"] == 600
        assert result["redis_url"] == "redis://cache:6379/2"
        assert result["circuit_breaker"] == {"threshold": 10, "timeout": 30}
        assert result["max_messages"] == 100

    def test_invalid_yaml_falls_back(self, tmp_path):
        """Test an unreadable YAML file is ignored."""
        path = tmp_path / "chatcache.yaml"
        path.write_text("cache: [unclosed\n")

        result = load_cache_config(Settings(_env_file=None), path)

        assert result["ttl"] == 1200

    def test_cache_config_from_mapping(self, tmp_path):
        """Test the loaded mapping builds a flat CacheConfig."""
        result = load_cache_config(Settings(_env_file=None), tmp_path / "missing.yaml")
        result["circuit_breaker"] = {"threshold": 7, "timeout": 60}

        cache_config = CacheConfig.from_mapping(result)

        assert cache_config.circuit_breaker_threshold == 7
        assert cache_config.circuit_breaker_timeout == 60
        assert cache_config.key_prefix == "messages:user:"
