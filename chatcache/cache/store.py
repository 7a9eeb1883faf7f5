"""Redis cache store adapter with circuit breaker and bounded operations.

Pure storage primitive: set-with-expiry, get, delete, TTL inspection and
refresh, prefix enumeration. No message semantics live here.

Every call is raced against ``CacheConfig.timeout``. Failures surface as
``CacheError`` subclasses so callers can fall back to the durable store
instead of failing the request.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from redis.asyncio import Redis
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from chatcache.cache.models import CacheConfig, CacheStats
from chatcache.core.exceptions import (
    CacheConnectionError,
    CacheError,
    CacheTimeoutError,
    CacheUnavailableError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCAN_BATCH_SIZE = 100


class CacheCircuitBreaker:
    """Circuit breaker for cache failures with automatic recovery.

    States:
        closed: Normal operation, cache requests allowed
        open: Circuit tripped, cache bypassed entirely
        half_open: Testing recovery, single request allowed

    Pattern:
        closed -> (failures >= threshold) -> open
        open -> (timeout expired) -> half_open
        half_open -> (success) -> closed
        half_open -> (failure) -> open
    """

    def __init__(self, failure_threshold: int = 5, timeout: int = 30):
        """Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures before opening circuit
            timeout: Seconds before attempting recovery from open state
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.failure_count = 0
        self.state = "closed"  # closed, open, half_open
        self.last_failure_time: float | None = None

    def on_success(self) -> None:
        """Record successful operation."""
        if self.state == "half_open":
            logger.info("Circuit breaker recovered, closing circuit")
            self.state = "closed"
        self.failure_count = 0

    def on_failure(self) -> None:
        """Record failed operation and potentially open circuit."""
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == "half_open" or self.failure_count >= self.failure_threshold:
            if self.state != "open":
                logger.warning(
                    f"Circuit breaker opened after {self.failure_count} failures"
                )
            self.state = "open"

    def can_attempt(self) -> bool:
        """Check if cache operation should be attempted.

        Returns:
            True if operation should proceed, False if circuit open
        """
        if self.state == "closed":
            return True

        if self.state == "open":
            if (
                self.last_failure_time
                and time.time() - self.last_failure_time > self.timeout
            ):
                logger.info("Circuit breaker timeout expired, entering half-open state")
                self.state = "half_open"
                return True
            return False

        # half_open state: allow single attempt
        return True


class CacheStore:
    """Redis-backed key/value store with per-key expiry.

    One instance is created by the composition root and shared by every
    request and the reconciliation job. The underlying redis client pools
    connections and is safe for concurrent use without external locking.

    Error kinds:
        CacheTimeoutError: operation exceeded ``config.timeout``
        CacheConnectionError: redis unreachable or protocol error
        CacheUnavailableError: circuit breaker open, call skipped
    """

    def __init__(self, config: CacheConfig, client: "Redis | None" = None):
        """Initialize cache store.

        Args:
            config: Cache configuration
            client: Pre-built redis client (default: built from config.redis_url)
        """
        self.config = config
        self.redis: Redis = client or Redis.from_url(
            config.redis_url,
            socket_timeout=config.timeout,
            socket_connect_timeout=config.timeout,
            max_connections=config.max_connections,
            decode_responses=False,  # payloads are msgpack bytes
        )
        self.circuit_breaker = CacheCircuitBreaker(
            failure_threshold=config.circuit_breaker_threshold,
            timeout=config.circuit_breaker_timeout,
        )
        self.stats = CacheStats()
        logger.info(f"Cache store initialized with Redis at {config.redis_url}")

    async def _call(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run one redis call under the circuit breaker and deadline."""
        if not self.circuit_breaker.can_attempt():
            raise CacheUnavailableError(
                f"Cache {operation} skipped: circuit breaker open",
                details={"operation": operation},
            )

        try:
            result = await asyncio.wait_for(call(), timeout=self.config.timeout)
        except (asyncio.TimeoutError, RedisTimeoutError) as e:
            self.stats.errors += 1
            self.circuit_breaker.on_failure()
            raise CacheTimeoutError(
                f"Cache {operation} timed out after {self.config.timeout}s",
                details={"operation": operation},
            ) from e
        except (RedisError, OSError) as e:
            self.stats.errors += 1
            self.circuit_breaker.on_failure()
            raise CacheConnectionError(
                f"Cache {operation} failed: {e}", details={"operation": operation}
            ) from e

        self.circuit_breaker.on_success()
        return result

    async def set_with_expiry(self, key: str, value: bytes, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` expiring after ``ttl_seconds``."""
        await self._call("set", lambda: self.redis.set(key, value, ex=ttl_seconds))

    async def get(self, key: str) -> bytes | None:
        """Return the stored value, or None when the key is absent."""
        data = await self._call("get", lambda: self.redis.get(key))
        if data is None:
            self.stats.misses += 1
        else:
            self.stats.hits += 1
        self.stats.update_hit_rate()
        return data

    async def delete(self, key: str) -> bool:
        """Delete ``key``. Returns True if it existed."""
        removed = await self._call("delete", lambda: self.redis.delete(key))
        return bool(removed)

    async def remaining_ttl(self, key: str) -> int | None:
        """Seconds until ``key`` expires.

        Returns:
            Remaining seconds, or None if the key is absent or never expires
        """
        ttl: int = await self._call("ttl", lambda: self.redis.ttl(key))
        # -2: key absent, -1: key has no expiry
        if ttl is None or ttl < 0:
            return None
        return int(ttl)

    async def refresh_ttl(self, key: str, ttl_seconds: int) -> bool:
        """Reset the expiry of ``key``. Returns False if the key is absent."""
        result = await self._call("expire", lambda: self.redis.expire(key, ttl_seconds))
        return bool(result)

    async def keys_by_prefix(self, prefix: str) -> list[str]:
        """Enumerate keys starting with ``prefix``.

        Uses incremental SCAN so a large keyspace never blocks redis. Each
        SCAN round trip is individually bounded by the operation timeout.
        """
        keys: list[str] = []
        cursor: Any = 0
        pattern = f"{prefix}*"
        while True:
            cursor, batch = await self._call(
                "scan",
                lambda c=cursor: self.redis.scan(
                    cursor=c, match=pattern, count=SCAN_BATCH_SIZE
                ),
            )
            for key in batch:
                keys.append(key.decode() if isinstance(key, bytes) else key)
            if int(cursor) == 0:
                break
        # SCAN may return a key more than once
        return list(dict.fromkeys(keys))

    async def ping(self) -> bool:
        """Health probe. Never raises."""
        try:
            return bool(await self._call("ping", lambda: self.redis.ping()))
        except CacheError as e:
            logger.warning(f"Cache ping failed: {e}")
            return False

    async def close(self) -> None:
        """Close Redis connection gracefully."""
        await self.redis.aclose()
        logger.info("Cache store closed")

    def get_stats(self) -> CacheStats:
        """Get current cache statistics.

        Returns:
            CacheStats with hit/miss/error counts and circuit state
        """
        self.stats.circuit_state = self.circuit_breaker.state
        return self.stats
