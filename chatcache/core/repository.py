"""Message repositories: the single entry point for chat message persistence.

Two variants implement ``MessageRepository`` and one is chosen once at
startup by the service factory:

    DurableMessageRepository: store of record only (cache disabled or
        unreachable at startup)
    CacheAsideMessageRepository: store of record plus a per-user cached
        list of recent messages

Write rules of the cache-aside variant:
    - The durable write always happens first and its errors propagate.
    - Cache work after a successful durable write never fails the call.
    - Cache reads that fail fall back to the durable store.
"""

from abc import ABC, abstractmethod

from chatcache.cache.messages import MessageCache
from chatcache.core.exceptions import (
    CacheError,
    DurableStoreError,
    MessageNotFoundError,
    ReconciliationError,
    ValidationError,
)
from chatcache.core.message_store import DurableMessageStore
from chatcache.core.models import Message, MessageCreate, MessageUpdate
from chatcache.core.tasks import BackgroundTasks
from chatcache.observability.logging import LogEvents, get_logger
from chatcache.observability.metrics import (
    record_cache_error,
    record_cache_hit,
    record_cache_miss,
)

logger = get_logger(__name__)

DEFAULT_LIMIT = 100


def _check_limit(limit: int) -> None:
    if limit < 1:
        raise ValidationError(f"limit must be positive, got {limit}")


class MessageRepository(ABC):
    """Contract shared by both repository variants."""

    def __init__(self, store: DurableMessageStore):
        self.store = store

    @abstractmethod
    async def create(self, data: MessageCreate) -> Message:
        """Persist a new message and return it with id and timestamp."""

    async def find_by_id(self, message_id: str) -> Message | None:
        return await self.store.find_by_id(message_id)

    async def get_or_raise(self, message_id: str) -> Message:
        """Like ``find_by_id`` but raises MessageNotFoundError when absent."""
        message = await self.find_by_id(message_id)
        if message is None:
            raise MessageNotFoundError(
                f"Message {message_id} not found", details={"id": message_id}
            )
        return message

    async def find_by_conversation(
        self, conversation_id: str, limit: int = DEFAULT_LIMIT
    ) -> list[Message]:
        _check_limit(limit)
        return await self.store.find_by_conversation(conversation_id, limit)

    @abstractmethod
    async def find_by_user(
        self, user_id: str, limit: int = DEFAULT_LIMIT
    ) -> list[Message]:
        """Most recent ``limit`` messages of a user, oldest-first."""

    @abstractmethod
    async def update(self, message_id: str, changes: MessageUpdate) -> Message | None:
        """Apply a partial update. Returns None when the message is unknown."""

    @abstractmethod
    async def delete(self, message_id: str) -> bool:
        """Delete a message. Returns False when the message is unknown."""

    @abstractmethod
    async def warm_cache(self, user_id: str) -> int:
        """Preload the user's recent messages into the cache.

        Returns:
            Number of messages loaded
        """


class DurableMessageRepository(MessageRepository):
    """Repository backed only by the durable store."""

    async def create(self, data: MessageCreate) -> Message:
        return await self.store.insert(data)

    async def find_by_user(
        self, user_id: str, limit: int = DEFAULT_LIMIT
    ) -> list[Message]:
        _check_limit(limit)
        return await self.store.find_by_user(user_id, limit)

    async def update(self, message_id: str, changes: MessageUpdate) -> Message | None:
        return await self.store.update(message_id, changes)

    async def delete(self, message_id: str) -> bool:
        return await self.store.delete(message_id)

    async def warm_cache(self, user_id: str) -> int:
        # No cache to warm
        return 0


class CacheAsideMessageRepository(MessageRepository):
    """Durable store of record with a per-user cached list of recent messages.

    Attributes:
        store: Durable store of record
        cache: Per-user message list cache
        tasks: Runner for detached cache writes
        warm_up_window: Messages loaded into the cache by ``warm_cache``
    """

    def __init__(
        self,
        store: DurableMessageStore,
        cache: MessageCache,
        tasks: BackgroundTasks,
        warm_up_window: int = DEFAULT_LIMIT,
    ):
        super().__init__(store)
        self.cache = cache
        self.tasks = tasks
        self.warm_up_window = warm_up_window

    def _cache_failed(self, operation: str, user_id: str, error: Exception) -> None:
        record_cache_error(operation)
        logger.warning(
            LogEvents.CACHE_ERROR,
            operation=operation,
            user_id=user_id,
            error=str(error),
            error_code=getattr(error, "code", None),
        )

    async def create(self, data: MessageCreate) -> Message:
        message = await self.store.insert(data)
        self.tasks.spawn(
            self._append_to_cache(message),
            name=f"cache_append:{message.user_id}",
        )
        return message

    async def _append_to_cache(self, message: Message) -> None:
        try:
            await self.cache.append_message(message.user_id, message)
        except CacheError as e:
            self._cache_failed("append", message.user_id, e)
            return
        logger.debug(
            LogEvents.CACHE_APPENDED, user_id=message.user_id, message_id=message.id
        )

    async def find_by_user(
        self, user_id: str, limit: int = DEFAULT_LIMIT
    ) -> list[Message]:
        _check_limit(limit)
        try:
            cached = await self.cache.get_messages(user_id)
        except CacheError as e:
            self._cache_failed("find_by_user", user_id, e)
            return await self.store.find_by_user(user_id, limit)

        # An empty cached list is treated as a miss
        if cached:
            record_cache_hit()
            logger.debug(LogEvents.CACHE_HIT, user_id=user_id, count=len(cached))
            self.tasks.spawn(self._refresh_ttl(user_id), name=f"cache_refresh:{user_id}")
            return cached[-limit:]

        record_cache_miss()
        logger.debug(LogEvents.CACHE_MISS, user_id=user_id)
        messages = await self.store.find_by_user(user_id, limit)
        if messages:
            self.tasks.spawn(
                self._populate(user_id, messages), name=f"cache_populate:{user_id}"
            )
        return messages

    async def _refresh_ttl(self, user_id: str) -> None:
        try:
            await self.cache.refresh(user_id)
        except CacheError as e:
            self._cache_failed("refresh", user_id, e)

    async def _populate(self, user_id: str, messages: list[Message]) -> None:
        try:
            await self.cache.set_messages(user_id, messages)
        except CacheError as e:
            self._cache_failed("populate", user_id, e)
            return
        logger.debug(LogEvents.CACHE_POPULATED, user_id=user_id, count=len(messages))

    async def update(self, message_id: str, changes: MessageUpdate) -> Message | None:
        updated = await self.store.update(message_id, changes)
        if updated is None:
            return None
        try:
            await self.cache.replace_message(updated.user_id, updated)
        except CacheError as e:
            self._cache_failed("update", updated.user_id, e)
        return updated

    async def delete(self, message_id: str) -> bool:
        existing = await self.store.find_by_id(message_id)
        if existing is None:
            return False
        try:
            await self.cache.remove_message(existing.user_id, message_id)
        except CacheError as e:
            self._cache_failed("delete", existing.user_id, e)
        return await self.store.delete(message_id)

    async def warm_cache(self, user_id: str) -> int:
        """Overwrite the user's cached list with their recent durable messages.

        Durable errors propagate. A user without messages has their key
        removed so the next read goes to the durable store.

        Returns:
            Number of messages written to the cache

        Raises:
            DurableStoreError: Durable read failed
            CacheError: Cache write failed
        """
        messages = await self.store.find_by_user(user_id, self.warm_up_window)
        if messages:
            await self.cache.set_messages(user_id, messages)
        else:
            await self.cache.delete_messages(user_id)
        return len(messages)

    async def sync_user(self, user_id: str) -> int:
        """Copy cache-only messages of one user into the durable store.

        Messages keep their id and timestamp. Messages already present
        durably are left untouched.

        Returns:
            Number of messages inserted

        Raises:
            ReconciliationError: Reading the cached list or writing the
                durable store failed
        """
        try:
            cached = await self.cache.get_messages(user_id)
            if not cached:
                return 0

            existing = await self.store.find_existing_ids(m.id for m in cached)
            inserted = 0
            for message in cached:
                if message.id in existing:
                    continue
                if await self.store.insert_if_absent(message):
                    inserted += 1
        except (CacheError, DurableStoreError) as e:
            raise ReconciliationError(
                f"Failed to sync user {user_id}: {e}", details={"user_id": user_id}
            ) from e
        return inserted
