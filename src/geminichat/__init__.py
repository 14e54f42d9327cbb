"""
geminichat: a Gemini chat client with streamed replies and local history.

Each module hides one design decision: the wire protocol (llm), the
persistence format (storage), and the conversation bookkeeping (chat).
"""

__version__ = "0.1.0"

from .chat import ChatContext, ChatState, ConversationOrchestrator, rebuild_history
from .errors import (
    ApiError,
    EmptyResponseError,
    GeminiChatError,
    StorageError,
    StreamUnavailableError,
    TransportError,
)
from .llm import GeminiClient, HistoryEntry, StreamingResponse
from .models import ChatSettings, Message, SavedConversation
from .storage import ChatStorage, KeyValueStore, create_key_value_store

__all__ = [
    "ApiError",
    "ChatContext",
    "ChatSettings",
    "ChatState",
    "ChatStorage",
    "ConversationOrchestrator",
    "EmptyResponseError",
    "GeminiChatError",
    "GeminiClient",
    "HistoryEntry",
    "KeyValueStore",
    "Message",
    "SavedConversation",
    "StorageError",
    "StreamUnavailableError",
    "StreamingResponse",
    "TransportError",
    "create_key_value_store",
    "rebuild_history",
]
