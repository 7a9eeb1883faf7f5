"""Redis caching layer for per-user message history.

The cache is a performance layer over the durable message store. Every
operation can fail with a ``CacheError`` and callers are expected to fall
back to the durable path when it does.

Key Features:
    - MessagePack serialization for compact storage
    - Circuit breaker for automatic failure recovery
    - Per-operation deadlines so a slow cache never stalls requests
    - Sliding 20-minute TTL per user list

Usage:
    >>> from chatcache.cache import CacheConfig, CacheStore, MessageCache
    >>>
    >>> config = CacheConfig(redis_url="redis://localhost:6379")
    >>> cache = MessageCache(CacheStore(config), config)
    >>> messages = await cache.get_messages("user-123")
"""

from chatcache.cache.messages import MessageCache, decode_messages, encode_messages
from chatcache.cache.models import CacheConfig, CacheStats
from chatcache.cache.store import CacheCircuitBreaker, CacheStore

__all__ = [
    "CacheStore",
    "CacheConfig",
    "CacheStats",
    "CacheCircuitBreaker",
    "MessageCache",
    "encode_messages",
    "decode_messages",
]
