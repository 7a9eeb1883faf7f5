"""Tests for the PostgreSQL message store with a mocked asyncpg pool."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from chatcache.core.exceptions import DuplicateMessageError, DurableStoreError
from chatcache.core.message_store import PostgresMessageStore
from chatcache.core.models import MessageCreate, MessageType, MessageUpdate
from tests.conftest import make_message

CREATED_AT = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def _row(message_id: str = "m1", **overrides):
    row = {
        "id": message_id,
        "conversation_id": "conv-1",
        "user_id": "user-1",
        "type": "user",
        "content": f"content of {message_id}",
        "created_at": CREATED_AT,
        "metadata": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def mock_pool():
    """Create a mock database pool."""
    return MagicMock()


@pytest.fixture
def mock_conn(mock_pool):
    """Create a mock database connection handed out by the pool."""
    conn = AsyncMock()
    mock_pool.acquire.return_value.__aenter__.return_value = conn
    return conn


@pytest.fixture
def store(mock_pool):
    return PostgresMessageStore(mock_pool)


class TestInsert:
    """Test suite for message inserts."""

    async def test_insert_assigns_id(self, store, mock_conn):
        """Test a generated id is sent when the caller supplies none."""
        mock_conn.fetchrow.return_value = _row("generated")

        message = await store.insert(
            MessageCreate(
                conversation_id="conv-1",
                user_id="user-1",
                type=MessageType.USER,
                content="hello",
                metadata={"source": "web"},
            )
        )

        args = mock_conn.fetchrow.call_args[0]
        assert "INSERT INTO messages" in args[0]
        assert len(args[1]) == 36
        assert args[4] == "user"
        assert json.loads(args[6]) == {"source": "web"}
        assert message.id == "generated"
        assert message.created_at == CREATED_AT

    async def test_insert_keeps_preassigned_id(self, store, mock_conn):
        """Test a caller-supplied id is used as-is."""
        mock_conn.fetchrow.return_value = _row("stream-1")

        await store.insert(
            MessageCreate(
                id="stream-1",
                conversation_id="conv-1",
                user_id="user-1",
                type=MessageType.AI,
                content="streamed answer",
            )
        )

        assert mock_conn.fetchrow.call_args[0][1] == "stream-1"

    async def test_insert_duplicate_id(self, store, mock_conn):
        """Test a unique violation becomes DuplicateMessageError."""
        mock_conn.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")

        with pytest.raises(DuplicateMessageError):
            await store.insert(
                MessageCreate(
                    id="m1",
                    conversation_id="conv-1",
                    user_id="user-1",
                    type=MessageType.USER,
                    content="hello",
                )
            )

    async def test_insert_failure_propagates(self, store, mock_pool):
        """Test connection failures are wrapped in DurableStoreError."""
        mock_pool.acquire.return_value.__aenter__.side_effect = Exception(
            "connection refused"
        )

        with pytest.raises(DurableStoreError, match="connection refused"):
            await store.insert(
                MessageCreate(
                    conversation_id="conv-1",
                    user_id="user-1",
                    type=MessageType.USER,
                    content="hello",
                )
            )

    async def test_insert_if_absent_preserves_timestamp(self, store, mock_conn):
        """Test reconciliation inserts keep id and created_at."""
        mock_conn.fetchval.return_value = "m1"
        message = make_message("m1", offset_seconds=30)

        assert await store.insert_if_absent(message) is True

        args = mock_conn.fetchval.call_args[0]
        assert "ON CONFLICT (id) DO NOTHING" in args[0]
        assert args[1] == "m1"
        assert args[6] == message.created_at

    async def test_insert_if_absent_existing(self, store, mock_conn):
        """Test an existing id reports False."""
        mock_conn.fetchval.return_value = None

        assert await store.insert_if_absent(make_message("m1")) is False


class TestQueries:
    """Test suite for message lookups."""

    async def test_find_by_id(self, store, mock_conn):
        """Test a row is converted to a Message, metadata decoded."""
        mock_conn.fetchrow.return_value = _row("m1", metadata='{"k": 1}', type="plan_update")

        message = await store.find_by_id("m1")

        assert message.id == "m1"
        assert message.type == MessageType.PLAN_UPDATE
        assert message.metadata == {"k": 1}

    async def test_find_by_id_missing(self, store, mock_conn):
        """Test a missing row returns None."""
        mock_conn.fetchrow.return_value = None

        assert await store.find_by_id("nope") is None

    async def test_find_by_user_returns_oldest_first(self, store, mock_conn):
        """Test newest-first rows are reversed into chronological order."""
        mock_conn.fetch.return_value = [_row("m3"), _row("m2"), _row("m1")]

        messages = await store.find_by_user("user-1", limit=3)

        assert [m.id for m in messages] == ["m1", "m2", "m3"]
        query, user_id, limit = mock_conn.fetch.call_args[0]
        assert "WHERE user_id = $1" in query
        assert "ORDER BY created_at DESC" in query
        assert (user_id, limit) == ("user-1", 3)

    async def test_find_by_conversation(self, store, mock_conn):
        """Test conversation lookups filter on conversation_id."""
        mock_conn.fetch.return_value = [_row("m1")]

        await store.find_by_conversation("conv-1", limit=10)

        assert "WHERE conversation_id = $1" in mock_conn.fetch.call_args[0][0]

    async def test_find_existing_ids(self, store, mock_conn):
        """Test existing ids are checked in one query."""
        mock_conn.fetch.return_value = [{"id": "m1"}]

        existing = await store.find_existing_ids(["m1", "m2"])

        assert existing == {"m1"}
        assert mock_conn.fetch.call_args[0][1] == ["m1", "m2"]

    async def test_find_existing_ids_empty(self, store, mock_conn):
        """Test no query is issued for an empty id list."""
        assert await store.find_existing_ids([]) == set()
        mock_conn.fetch.assert_not_called()

    async def test_query_failure_propagates(self, store, mock_conn):
        """Test query errors are wrapped in DurableStoreError."""
        mock_conn.fetch.side_effect = Exception("relation does not exist")

        with pytest.raises(DurableStoreError):
            await store.find_by_user("user-1")


class TestMutations:
    """Test suite for message updates and deletes."""

    async def test_update_only_set_fields(self, store, mock_conn):
        """Test only provided fields appear in the SET clause."""
        mock_conn.fetchrow.return_value = _row("m1", content="edited")

        updated = await store.update("m1", MessageUpdate(content="edited"))

        query = mock_conn.fetchrow.call_args[0][0]
        assert "content = $2" in query
        assert "metadata" not in query.split("RETURNING")[0]
        assert updated.content == "edited"

    async def test_update_missing(self, store, mock_conn):
        """Test updating an unknown id returns None."""
        mock_conn.fetchrow.return_value = None

        assert await store.update("nope", MessageUpdate(metadata={"a": 1})) is None

    async def test_delete(self, store, mock_conn):
        """Test the command tag decides whether a row was deleted."""
        mock_conn.execute.side_effect = ["DELETE 1", "DELETE 0"]

        assert await store.delete("m1") is True
        assert await store.delete("m1") is False
