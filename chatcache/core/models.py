"""Core data models for the chatcache message layer.

Messages are owned by the durable store. The cache only ever holds copies,
serialized per user as one list.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class MessageType(str, Enum):
    """Closed set of message kinds produced by the chat application."""

    USER = "user"
    AI = "ai"
    SYSTEM = "system"
    PLAN_UPDATE = "plan_update"


class Message(BaseModel):
    """A persisted chat message (or a cached snapshot of one)."""

    id: str = Field(..., description="Unique message ID")
    conversation_id: str = Field(..., description="Owning conversation ID")
    user_id: str = Field(..., description="Owning user ID")
    type: MessageType = Field(..., description="Message kind")
    content: str = Field(..., description="Message text")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (assigned by the durable store)",
    )
    metadata: dict[str, Any] | None = Field(
        None, description="Opaque caller metadata"
    )

    @field_validator("created_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class MessageCreate(BaseModel):
    """Input for creating a message.

    ``id`` is normally assigned by the durable store. Callers that stream a
    response before persisting it may pre-assign the id so both paths agree.
    """

    id: str | None = Field(None, description="Optional pre-assigned message ID")
    conversation_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    type: MessageType
    content: str
    metadata: dict[str, Any] | None = None

    @field_validator("content")
    @classmethod
    def content_not_blank(cls, v: str) -> str:
        """Validate content is not empty or whitespace."""
        if not v.strip():
            raise ValueError("Message content cannot be empty")
        return v


class MessageUpdate(BaseModel):
    """Partial update of a message. Unset fields are left unchanged."""

    content: str | None = None
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def at_least_one_field(self) -> "MessageUpdate":
        if not self.model_fields_set:
            raise ValueError("MessageUpdate requires content or metadata")
        if "content" in self.model_fields_set and (
            self.content is None or not self.content.strip()
        ):
            raise ValueError("Message content cannot be empty")
        return self

    def apply_to(self, message: Message) -> Message:
        """Return a copy of ``message`` with the provided fields replaced."""
        return message.model_copy(update=self.model_dump(exclude_unset=True))
