"""chatcache - cache-aside message layer for chat history.

A durable store of record (PostgreSQL) fronted by a per-user Redis cache of
recent messages, with a periodic job that copies cache-only messages back to
the durable store before their cached list expires.

Basic usage:
    >>> from chatcache import create_services, MessageCreate, MessageType
    >>> services = await create_services()
    >>> await services.repository.create(
    ...     MessageCreate(
    ...         conversation_id="c-1", user_id="u-1", type=MessageType.USER, content="hi"
    ...     )
    ... )
    >>> history = await services.repository.find_by_user("u-1", limit=20)
"""

from dotenv import load_dotenv

load_dotenv()

from chatcache.core import (  # noqa: E402
    CacheAsideMessageRepository,
    CacheError,
    ChatCacheError,
    ConfigurationError,
    DurableMessageRepository,
    DurableStoreError,
    Message,
    MessageCreate,
    MessageNotFoundError,
    MessageRepository,
    MessageType,
    MessageUpdate,
    Settings,
    settings,
)
from chatcache.jobs import ReconciliationJob, ReconciliationReport  # noqa: E402
from chatcache.utils.service_factory import Services, create_services  # noqa: E402

__version__ = "0.1.0"

__all__ = [
    # Composition
    "create_services",
    "Services",
    # Repositories
    "MessageRepository",
    "DurableMessageRepository",
    "CacheAsideMessageRepository",
    "ReconciliationJob",
    "ReconciliationReport",
    # Models
    "Message",
    "MessageCreate",
    "MessageUpdate",
    "MessageType",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "ChatCacheError",
    "DurableStoreError",
    "CacheError",
    "MessageNotFoundError",
    "ConfigurationError",
]
