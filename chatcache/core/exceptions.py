"""Exception hierarchy for the chatcache message layer.

Durable store failures always propagate to callers. Cache failures are a
separate branch so callers can catch them and degrade to the durable path.
"""

from typing import Any


class ChatCacheError(Exception):
    """Base exception for all chatcache errors."""

    code: str = "CHATCACHE_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DurableStoreError(ChatCacheError):
    """Store of record operation failed (connection, query, transaction)."""

    code: str = "DATABASE_ERROR"


class DuplicateMessageError(DurableStoreError):
    """A message with the supplied id already exists in the store of record."""

    code: str = "DUPLICATE_MESSAGE"


class MessageNotFoundError(ChatCacheError):
    """Requested message does not exist in the store of record."""

    code: str = "NOT_FOUND"


class CacheError(ChatCacheError):
    """Cache store operation failed. Never surfaced as a request failure."""

    code: str = "CACHE_ERROR"


class CacheTimeoutError(CacheError):
    """Cache operation exceeded its deadline."""

    code: str = "CACHE_TIMEOUT"


class CacheConnectionError(CacheError):
    """Cache store unreachable or returned a protocol error."""

    code: str = "CACHE_CONNECTION_ERROR"


class CacheUnavailableError(CacheError):
    """Circuit breaker is open, cache calls are being skipped."""

    code: str = "CACHE_UNAVAILABLE"


class CacheDecodeError(CacheError):
    """Cached payload could not be decoded into messages."""

    code: str = "CACHE_DECODE_ERROR"


class ReconciliationError(ChatCacheError):
    """Syncing one user's cache-only messages into the durable store failed."""

    code: str = "RECONCILIATION_FAILED"


class ValidationError(ChatCacheError):
    """Input validation failed."""

    code: str = "VALIDATION_ERROR"


class ConfigurationError(ChatCacheError):
    """Configuration error (missing env vars, invalid settings)."""

    code: str = "CONFIGURATION_ERROR"
