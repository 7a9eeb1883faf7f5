"""Core infrastructure for the chatcache message layer."""

from chatcache.core.config import Settings, load_cache_config, settings
from chatcache.core.database import Database
from chatcache.core.exceptions import (
    CacheConnectionError,
    CacheDecodeError,
    CacheError,
    CacheTimeoutError,
    CacheUnavailableError,
    ChatCacheError,
    ConfigurationError,
    DuplicateMessageError,
    DurableStoreError,
    MessageNotFoundError,
    ReconciliationError,
    ValidationError,
)
from chatcache.core.message_store import DurableMessageStore, PostgresMessageStore
from chatcache.core.models import Message, MessageCreate, MessageType, MessageUpdate
from chatcache.core.repository import (
    CacheAsideMessageRepository,
    DurableMessageRepository,
    MessageRepository,
)
from chatcache.core.tasks import BackgroundTasks, log_task_error
from chatcache.core.warmup import CacheWarmer

__all__ = [
    # Configuration
    "Settings",
    "settings",
    "load_cache_config",
    # Persistence
    "Database",
    "DurableMessageStore",
    "PostgresMessageStore",
    "MessageRepository",
    "DurableMessageRepository",
    "CacheAsideMessageRepository",
    # Background work
    "BackgroundTasks",
    "log_task_error",
    "CacheWarmer",
    # Models
    "Message",
    "MessageCreate",
    "MessageUpdate",
    "MessageType",
    # Exceptions
    "ChatCacheError",
    "DurableStoreError",
    "DuplicateMessageError",
    "MessageNotFoundError",
    "CacheError",
    "CacheTimeoutError",
    "CacheConnectionError",
    "CacheUnavailableError",
    "CacheDecodeError",
    "ReconciliationError",
    "ValidationError",
    "ConfigurationError",
]
