"""Durable message store: the store of record for every chat message.

Defines the ``DurableMessageStore`` interface consumed by the repositories
and its PostgreSQL implementation on an asyncpg pool.

Every failure is wrapped in ``DurableStoreError`` and propagated. Retry
policy, if any, belongs to the caller.

Table Schema (see migrations/):
    CREATE TABLE messages (
        id TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        type TEXT NOT NULL CHECK (type IN ('user', 'ai', 'system', 'plan_update')),
        content TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        metadata JSONB
    );
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any
from uuid import uuid4

import asyncpg

from chatcache.core.exceptions import DuplicateMessageError, DurableStoreError
from chatcache.core.models import Message, MessageCreate, MessageUpdate

logger = logging.getLogger(__name__)

_COLUMNS = "id, conversation_id, user_id, type, content, created_at, metadata"


class DurableMessageStore(ABC):
    """Interface of the store of record.

    Listing methods return the ``limit`` most recent messages ordered
    oldest-first, which is the order prompts and chat history consume.
    """

    @abstractmethod
    async def insert(self, message: MessageCreate) -> Message:
        """Insert a new message, assigning id (unless supplied) and timestamp.

        Raises:
            DuplicateMessageError: A message with the supplied id exists
            DurableStoreError: Insert failed
        """

    @abstractmethod
    async def insert_if_absent(self, message: Message) -> bool:
        """Insert a complete message (id and timestamp preserved) unless present.

        Returns:
            True if inserted, False if a message with that id already existed
        """

    @abstractmethod
    async def find_by_id(self, message_id: str) -> Message | None:
        """Load one message by id."""

    @abstractmethod
    async def find_by_conversation(
        self, conversation_id: str, limit: int = 100
    ) -> list[Message]:
        """Most recent messages of a conversation, oldest-first."""

    @abstractmethod
    async def find_by_user(self, user_id: str, limit: int = 100) -> list[Message]:
        """Most recent messages of a user, oldest-first."""

    @abstractmethod
    async def find_existing_ids(self, message_ids: Iterable[str]) -> set[str]:
        """Subset of ``message_ids`` that exist durably."""

    @abstractmethod
    async def update(self, message_id: str, changes: MessageUpdate) -> Message | None:
        """Apply a partial update. Returns None if the message does not exist."""

    @abstractmethod
    async def delete(self, message_id: str) -> bool:
        """Delete a message. Returns False if it did not exist."""


def _row_to_message(row: Any) -> Message:
    metadata = row["metadata"]
    if isinstance(metadata, str):
        metadata = json.loads(metadata)
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        user_id=row["user_id"],
        type=row["type"],
        content=row["content"],
        created_at=row["created_at"],
        metadata=metadata,
    )


def _dump_metadata(metadata: dict[str, Any] | None) -> str | None:
    return json.dumps(metadata) if metadata is not None else None


class PostgresMessageStore(DurableMessageStore):
    """PostgreSQL implementation of the durable message store.

    Attributes:
        pool: asyncpg connection pool (from Database class)
    """

    def __init__(self, pool: Any) -> None:
        """Initialize PostgreSQL message store.

        Args:
            pool: asyncpg connection pool (from Database class)
        """
        self.pool = pool

    async def insert(self, message: MessageCreate) -> Message:
        message_id = message.id or str(uuid4())
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO messages (id, conversation_id, user_id, type, content, metadata)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    RETURNING {_COLUMNS}
                    """,
                    message_id,
                    message.conversation_id,
                    message.user_id,
                    message.type.value,
                    message.content,
                    _dump_metadata(message.metadata),
                )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateMessageError(
                f"Message {message_id} already exists", details={"id": message_id}
            ) from e
        except Exception as e:
            logger.error(f"Failed to insert message: {e}")
            raise DurableStoreError(f"Failed to insert message: {e}") from e

        return _row_to_message(row)

    async def insert_if_absent(self, message: Message) -> bool:
        try:
            async with self.pool.acquire() as conn:
                inserted = await conn.fetchval(
                    """
                    INSERT INTO messages
                        (id, conversation_id, user_id, type, content, created_at, metadata)
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                    ON CONFLICT (id) DO NOTHING
                    RETURNING id
                    """,
                    message.id,
                    message.conversation_id,
                    message.user_id,
                    message.type.value,
                    message.content,
                    message.created_at,
                    _dump_metadata(message.metadata),
                )
        except Exception as e:
            logger.error(f"Failed to insert message {message.id}: {e}")
            raise DurableStoreError(f"Failed to insert message {message.id}: {e}") from e

        return inserted is not None

    async def find_by_id(self, message_id: str) -> Message | None:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_COLUMNS} FROM messages WHERE id = $1", message_id
                )
        except Exception as e:
            logger.error(f"Failed to find message {message_id}: {e}")
            raise DurableStoreError(f"Failed to find message: {e}") from e

        return _row_to_message(row) if row else None

    async def _find_recent(self, column: str, value: str, limit: int) -> list[Message]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {_COLUMNS} FROM messages
                    WHERE {column} = $1
                    ORDER BY created_at DESC, id DESC
                    LIMIT $2
                    """,
                    value,
                    limit,
                )
        except Exception as e:
            logger.error(f"Failed to find messages by {column}: {e}")
            raise DurableStoreError(f"Failed to find messages by {column}: {e}") from e

        return [_row_to_message(row) for row in reversed(rows)]

    async def find_by_conversation(
        self, conversation_id: str, limit: int = 100
    ) -> list[Message]:
        return await self._find_recent("conversation_id", conversation_id, limit)

    async def find_by_user(self, user_id: str, limit: int = 100) -> list[Message]:
        return await self._find_recent("user_id", user_id, limit)

    async def find_existing_ids(self, message_ids: Iterable[str]) -> set[str]:
        ids = list(message_ids)
        if not ids:
            return set()
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT id FROM messages WHERE id = ANY($1::text[])", ids
                )
        except Exception as e:
            logger.error(f"Failed to check message ids: {e}")
            raise DurableStoreError(f"Failed to check message ids: {e}") from e

        return {row["id"] for row in rows}

    async def update(self, message_id: str, changes: MessageUpdate) -> Message | None:
        fields = changes.model_dump(exclude_unset=True)
        values: list[Any] = [message_id]
        assignments: list[str] = []
        if "content" in fields:
            values.append(fields["content"])
            assignments.append(f"content = ${len(values)}")
        if "metadata" in fields:
            values.append(_dump_metadata(fields["metadata"]))
            assignments.append(f"metadata = ${len(values)}")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE messages SET {", ".join(assignments)}
                    WHERE id = $1
                    RETURNING {_COLUMNS}
                    """,
                    *values,
                )
        except Exception as e:
            logger.error(f"Failed to update message {message_id}: {e}")
            raise DurableStoreError(f"Failed to update message: {e}") from e

        return _row_to_message(row) if row else None

    async def delete(self, message_id: str) -> bool:
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute(
                    "DELETE FROM messages WHERE id = $1", message_id
                )
        except Exception as e:
            logger.error(f"Failed to delete message {message_id}: {e}")
            raise DurableStoreError(f"Failed to delete message: {e}") from e

        # asyncpg returns the command tag, e.g. "DELETE 1"
        return status.split()[-1] != "0"
