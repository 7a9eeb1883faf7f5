"""Per-user cached message lists on top of the cache store.

Each user's recent messages live under one key (``messages:user:{user_id}``)
as a single MessagePack-encoded list, oldest first, bounded to the most
recent ``CacheConfig.max_messages`` entries.

List updates are read-modify-write and not atomic: two concurrent writers
for the same user race and the last write wins. The durable store is never
subject to this race and reconciliation only diffs message ids.
"""

import logging

import msgpack

from chatcache.cache.models import CacheConfig
from chatcache.cache.store import CacheStore
from chatcache.core.exceptions import CacheDecodeError
from chatcache.core.models import Message

logger = logging.getLogger(__name__)


def encode_messages(messages: list[Message]) -> bytes:
    """Serialize messages to a compact MessagePack blob."""
    payload = [message.model_dump(mode="json") for message in messages]
    return msgpack.packb(payload, use_bin_type=True)


def decode_messages(data: bytes) -> list[Message]:
    """Deserialize a cached blob.

    Raises:
        CacheDecodeError: Payload is not a valid encoded message list
    """
    try:
        payload = msgpack.unpackb(data, raw=False)
        if not isinstance(payload, list):
            raise TypeError(f"expected list, got {type(payload).__name__}")
        return [Message.model_validate(item) for item in payload]
    except (ValueError, TypeError, msgpack.UnpackException) as e:
        raise CacheDecodeError(f"Malformed cached message list: {e}") from e


class MessageCache:
    """User-keyed message list operations.

    All methods raise ``CacheError`` subclasses on failure; deciding whether
    to degrade is left to the caller.
    """

    def __init__(self, store: CacheStore, config: CacheConfig):
        self.store = store
        self.config = config

    @property
    def ttl(self) -> int:
        return self.config.ttl

    def key_for(self, user_id: str) -> str:
        return f"{self.config.key_prefix}{user_id}"

    def user_id_from_key(self, key: str) -> str:
        return key.removeprefix(self.config.key_prefix)

    def _bounded(self, messages: list[Message]) -> list[Message]:
        return messages[-self.config.max_messages :]

    async def get_messages(self, user_id: str) -> list[Message] | None:
        """Return the cached list, or None on a miss."""
        data = await self.store.get(self.key_for(user_id))
        if data is None:
            return None
        return decode_messages(data)

    async def set_messages(self, user_id: str, messages: list[Message]) -> None:
        """Overwrite the cached list and reset its TTL to the standard window."""
        await self.store.set_with_expiry(
            self.key_for(user_id), encode_messages(self._bounded(messages)), self.ttl
        )

    async def append_message(self, user_id: str, message: Message) -> None:
        """Append one message, creating the list if absent.

        A message already present by id is replaced in place instead of being
        duplicated.
        """
        messages = await self.get_messages(user_id) or []
        messages = [m for m in messages if m.id != message.id]
        messages.append(message)
        await self.set_messages(user_id, messages)

    async def replace_message(self, user_id: str, message: Message) -> bool:
        """Rewrite the cached copy of ``message`` if the user's list exists.

        Returns:
            True if a cached list existed and was rewritten
        """
        messages = await self.get_messages(user_id)
        if messages is None:
            return False
        updated = [message if m.id == message.id else m for m in messages]
        await self.set_messages(user_id, updated)
        return True

    async def remove_message(self, user_id: str, message_id: str) -> bool:
        """Drop one message from the user's cached list if the list exists.

        Returns:
            True if a cached list existed and was rewritten
        """
        messages = await self.get_messages(user_id)
        if messages is None:
            return False
        remaining = [m for m in messages if m.id != message_id]
        await self.set_messages(user_id, remaining)
        return True

    async def delete_messages(self, user_id: str) -> bool:
        return await self.store.delete(self.key_for(user_id))

    async def refresh(self, user_id: str) -> bool:
        """Slide the expiry of the user's list back to the full window."""
        return await self.store.refresh_ttl(self.key_for(user_id), self.ttl)

    async def remaining_ttl(self, user_id: str) -> int | None:
        return await self.store.remaining_ttl(self.key_for(user_id))

    async def users_expiring_within(self, threshold_seconds: int) -> list[str]:
        """Find users whose cached list expires within ``threshold_seconds``.

        Full prefix scan plus one TTL lookup per key, so cost grows with the
        number of cached users. Keys that vanish mid-scan are skipped.
        """
        keys = await self.store.keys_by_prefix(self.config.key_prefix)
        expiring: list[str] = []
        for key in keys:
            ttl = await self.store.remaining_ttl(key)
            if ttl is not None and 0 < ttl <= threshold_seconds:
                expiring.append(self.user_id_from_key(key))
        logger.debug(
            f"Scanned {len(keys)} cached users, {len(expiring)} expire within "
            f"{threshold_seconds}s"
        )
        return expiring
