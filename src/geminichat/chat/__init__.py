"""Conversation orchestration for geminichat."""

from .context import ChatContext
from .history import rebuild_history
from .orchestrator import ChatState, ConversationOrchestrator

__all__ = [
    "ChatContext",
    "ChatState",
    "ConversationOrchestrator",
    "rebuild_history",
]
