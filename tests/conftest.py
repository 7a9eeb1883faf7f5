"""Pytest configuration and shared fixtures for chatcache tests.

The durable store and the cache store are replaced by in-memory doubles so
repository, job and warm-up behavior can be tested without PostgreSQL or
Redis. The real adapters are tested separately against mocked clients.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

import pytest

from chatcache.cache.messages import MessageCache
from chatcache.cache.models import CacheConfig
from chatcache.core.exceptions import (
    CacheConnectionError,
    DuplicateMessageError,
    DurableStoreError,
)
from chatcache.core.message_store import DurableMessageStore
from chatcache.core.models import Message, MessageCreate, MessageType, MessageUpdate
from chatcache.core.repository import CacheAsideMessageRepository
from chatcache.core.tasks import BackgroundTasks

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class InMemoryMessageStore(DurableMessageStore):
    """Durable store double. Each insert is one second after the previous one."""

    def __init__(self) -> None:
        self.messages: dict[str, Message] = {}
        self.failing = False
        self.inserted_if_absent: list[str] = []
        self._clock = BASE_TIME
        self._next_id = 0

    def _check(self) -> None:
        if self.failing:
            raise DurableStoreError("durable store unavailable")

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def insert(self, message: MessageCreate) -> Message:
        self._check()
        if message.id is None:
            self._next_id += 1
            message_id = f"msg-{self._next_id:04d}"
        else:
            message_id = message.id
        if message_id in self.messages:
            raise DuplicateMessageError(f"Message {message_id} already exists")
        stored = Message(
            id=message_id,
            conversation_id=message.conversation_id,
            user_id=message.user_id,
            type=message.type,
            content=message.content,
            created_at=self._tick(),
            metadata=message.metadata,
        )
        self.messages[message_id] = stored
        return stored

    async def insert_if_absent(self, message: Message) -> bool:
        self._check()
        if message.id in self.messages:
            return False
        self.messages[message.id] = message
        self.inserted_if_absent.append(message.id)
        return True

    async def find_by_id(self, message_id: str) -> Message | None:
        self._check()
        return self.messages.get(message_id)

    def _recent(self, matches: list[Message], limit: int) -> list[Message]:
        ordered = sorted(matches, key=lambda m: (m.created_at, m.id))
        return ordered[-limit:]

    async def find_by_conversation(
        self, conversation_id: str, limit: int = 100
    ) -> list[Message]:
        self._check()
        return self._recent(
            [m for m in self.messages.values() if m.conversation_id == conversation_id],
            limit,
        )

    async def find_by_user(self, user_id: str, limit: int = 100) -> list[Message]:
        self._check()
        return self._recent(
            [m for m in self.messages.values() if m.user_id == user_id], limit
        )

    async def find_existing_ids(self, message_ids: Iterable[str]) -> set[str]:
        self._check()
        return {i for i in message_ids if i in self.messages}

    async def update(self, message_id: str, changes: MessageUpdate) -> Message | None:
        self._check()
        existing = self.messages.get(message_id)
        if existing is None:
            return None
        updated = changes.apply_to(existing)
        self.messages[message_id] = updated
        return updated

    async def delete(self, message_id: str) -> bool:
        self._check()
        return self.messages.pop(message_id, None) is not None


class InMemoryCacheStore:
    """Cache store double with controllable TTLs and injectable failures.

    Implements the same coroutine surface as ``CacheStore``. TTLs do not
    tick down on their own; tests set ``ttls`` directly.
    """

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}
        self.failing_operations: set[str] = set()
        self.ping_result = True
        self.closed = False
        self.set_calls = 0

    def fail(self, *operations: str) -> None:
        """Make the named operations (or all, if none given) raise."""
        self.failing_operations.update(operations or {"*"})

    def _check(self, operation: str) -> None:
        if operation in self.failing_operations or "*" in self.failing_operations:
            raise CacheConnectionError(f"Cache {operation} failed: connection refused")

    async def set_with_expiry(self, key: str, value: bytes, ttl_seconds: int) -> None:
        self._check("set")
        self.set_calls += 1
        self.data[key] = value
        self.ttls[key] = ttl_seconds

    async def get(self, key: str) -> bytes | None:
        self._check("get")
        return self.data.get(key)

    async def delete(self, key: str) -> bool:
        self._check("delete")
        self.ttls.pop(key, None)
        return self.data.pop(key, None) is not None

    async def remaining_ttl(self, key: str) -> int | None:
        self._check("ttl")
        if key not in self.data:
            return None
        return self.ttls.get(key)

    async def refresh_ttl(self, key: str, ttl_seconds: int) -> bool:
        self._check("expire")
        if key not in self.data:
            return False
        self.ttls[key] = ttl_seconds
        return True

    async def keys_by_prefix(self, prefix: str) -> list[str]:
        self._check("scan")
        return [key for key in self.data if key.startswith(prefix)]

    async def ping(self) -> bool:
        return self.ping_result and not self.failing_operations

    async def close(self) -> None:
        self.closed = True


def make_message(
    message_id: str,
    user_id: str = "user-1",
    conversation_id: str = "conv-1",
    content: str | None = None,
    offset_seconds: int = 0,
) -> Message:
    """Build a complete message, e.g. one that exists only in the cache."""
    return Message(
        id=message_id,
        conversation_id=conversation_id,
        user_id=user_id,
        type=MessageType.USER,
        content=content or f"content of {message_id}",
        created_at=BASE_TIME + timedelta(seconds=offset_seconds),
    )


def new_message(
    content: str = "hello", user_id: str = "user-1", conversation_id: str = "conv-1"
) -> MessageCreate:
    return MessageCreate(
        conversation_id=conversation_id,
        user_id=user_id,
        type=MessageType.USER,
        content=content,
    )


@pytest.fixture
def message_store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture
def cache_store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(enabled=True, ttl=1200, max_messages=100)


@pytest.fixture
def message_cache(cache_store, cache_config) -> MessageCache:
    return MessageCache(cache_store, cache_config)


@pytest.fixture
def task_errors() -> list[tuple[str, Exception]]:
    """Errors routed to the background task sink."""
    return []


@pytest.fixture
def tasks(task_errors) -> BackgroundTasks:
    return BackgroundTasks(on_error=lambda name, error: task_errors.append((name, error)))


@pytest.fixture
def repository(message_store, message_cache, tasks) -> CacheAsideMessageRepository:
    return CacheAsideMessageRepository(
        message_store, message_cache, tasks, warm_up_window=100
    )
