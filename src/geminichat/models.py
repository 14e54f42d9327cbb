"""Data models for chat sessions.

These models define the structure of messages, saved conversations and
settings, independent of the storage backend used. Persisted JSON uses
camelCase field names (``isUser``, ``darkMode``, ...).
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from uuid_extensions import uuid7

from .config import DEFAULT_TITLE, PREVIEW_MAX_LENGTH, TITLE_MAX_LENGTH


def new_id() -> str:
    """Generate a time-ordered unique id."""
    return str(uuid7())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def truncate(text: str, limit: int) -> str:
    """Cut text to ``limit`` characters, marking the cut with an ellipsis."""
    return text[:limit] + "..." if len(text) > limit else text


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(_CamelModel):
    """A rendered chat message.

    Messages are immutable; updates produce a copy with the same id.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    text: str = ""
    is_user: bool
    timestamp: datetime = Field(default_factory=utcnow)
    is_streaming: bool = False
    error: bool = False


class ChatSettings(_CamelModel):
    """Process-wide chat configuration."""

    dark_mode: bool = False
    streaming_enabled: bool = True
    conversation_history: bool = True
    auto_save: bool = True


class SavedConversation(_CamelModel):
    """A conversation saved explicitly by the user."""

    id: str = Field(default_factory=new_id)
    title: str
    messages: list[Message] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_messages(cls, messages: list[Message]) -> "SavedConversation":
        """Create a conversation titled after its first message."""
        first_text = messages[0].text if messages else ""
        title = truncate(first_text, TITLE_MAX_LENGTH) or DEFAULT_TITLE
        return cls(title=title, messages=list(messages))

    @property
    def preview(self) -> str:
        """Opening of the first user message."""
        first_user = next((m for m in self.messages if m.is_user), None)
        if first_user is None:
            return "No messages"
        return truncate(first_user.text, PREVIEW_MAX_LENGTH)


class StorageUsage(BaseModel):
    """Characters used by persisted records and estimated space left."""

    model_config = ConfigDict(frozen=True)

    used: int = 0
    available: int = 0
