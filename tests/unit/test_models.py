"""Unit tests for message models."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from chatcache.core.models import Message, MessageCreate, MessageType, MessageUpdate
from tests.conftest import make_message


class TestMessage:
    """Test suite for Message."""

    def test_naive_timestamp_becomes_utc(self):
        """Test naive created_at values are interpreted as UTC."""
        message = Message(
            id="m1",
            conversation_id="c1",
            user_id="u1",
            type="ai",
            content="hi",
            created_at=datetime(2026, 1, 1, 12, 0),
        )

        assert message.created_at.tzinfo == timezone.utc
        assert message.type == MessageType.AI

    def test_unknown_type_rejected(self):
        """Test message type is a closed set."""
        with pytest.raises(ValidationError):
            Message(id="m1", conversation_id="c1", user_id="u1", type="tool", content="x")


class TestMessageCreate:
    """Test suite for MessageCreate."""

    @pytest.mark.parametrize("content", ["", "   ", "\n\t"])
    def test_blank_content_rejected(self, content):
        """Test empty or whitespace content is rejected."""
        with pytest.raises(ValidationError):
            MessageCreate(
                conversation_id="c1", user_id="u1", type=MessageType.USER, content=content
            )

    def test_user_id_required(self):
        """Test the owning user cannot be empty."""
        with pytest.raises(ValidationError):
            MessageCreate(conversation_id="c1", user_id="", type="user", content="hi")

    def test_id_is_optional(self):
        """Test the id is left for the durable store by default."""
        data = MessageCreate(conversation_id="c1", user_id="u1", type="system", content="hi")

        assert data.id is None


class TestMessageUpdate:
    """Test suite for MessageUpdate."""

    def test_requires_a_field(self):
        """Test an empty update is rejected."""
        with pytest.raises(ValidationError):
            MessageUpdate()

    def test_apply_changes_only_set_fields(self):
        """Test unset fields keep their value."""
        original = make_message("m1")
        original.metadata = {"keep": True}

        updated = MessageUpdate(content="edited").apply_to(original)

        assert updated.content == "edited"
        assert updated.metadata == {"keep": True}
        assert updated.created_at == original.created_at
        assert original.content == "content of m1"

    def test_explicit_null_metadata_clears(self):
        """Test metadata can be cleared explicitly."""
        original = make_message("m1")
        original.metadata = {"a": 1}

        assert MessageUpdate(metadata=None).apply_to(original).metadata is None

    def test_blank_content_rejected(self):
        """Test an update cannot blank out the content."""
        with pytest.raises(ValidationError):
            MessageUpdate(content="  ")

    def test_null_content_rejected(self):
        """Test an update cannot set the content to null."""
        with pytest.raises(ValidationError):
            MessageUpdate(content=None)

    def test_null_content_with_metadata_rejected(self):
        """Test null content is rejected even alongside a valid field."""
        with pytest.raises(ValidationError):
            MessageUpdate(content=None, metadata={"edited": True})
