"""Conversation orchestrator.

Mediates between the view layer, the inference client and persistence. Owns
the rendered message sequence and the per-send state machine:

    IDLE -> PENDING -> IDLE               (batched reply or error)
    IDLE -> PENDING -> STREAMING -> IDLE  (streamed reply or error)

Every message update is keyed by message id. Interleaved updates to
different messages never clobber each other.
"""

from collections.abc import Callable
from enum import Enum
from typing import Any

import structlog

from ..config import DEFAULT_ERROR_TEXT
from ..errors import ApiError
from ..llm.client import GeminiClient
from ..models import ChatSettings, Message, SavedConversation
from .context import ChatContext
from .history import rebuild_history

logger = structlog.get_logger(__name__)

MessageListener = Callable[[list[Message]], None]


class ChatState(str, Enum):
    """Phase of the message currently being sent."""

    IDLE = "idle"
    PENDING = "pending"
    STREAMING = "streaming"


class ConversationOrchestrator:
    """Runs one chat session.

    Usage:
        context = ChatContext(storage)
        await context.load()
        chat = ConversationOrchestrator(context)
        await chat.load()
        await chat.send_message("Hi")
    """

    def __init__(self, context: ChatContext, client: GeminiClient | None = None):
        """Initialize the orchestrator.

        Args:
            context: Loaded session context (credential, settings, storage)
            client: Inference client; built from the context's key if None
        """
        self._context = context
        self._client = client or GeminiClient(api_key=context.api_key or "")
        self._messages: list[Message] = []
        self._state = ChatState.IDLE
        self._in_flight = 0
        self._streaming_message_id: str | None = None
        self._listeners: list[MessageListener] = []

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def is_loading(self) -> bool:
        return self._state is not ChatState.IDLE

    @property
    def streaming_message_id(self) -> str | None:
        return self._streaming_message_id

    @property
    def settings(self) -> ChatSettings:
        return self._context.settings

    @property
    def client(self) -> GeminiClient:
        return self._client

    def add_listener(self, listener: MessageListener) -> None:
        """Register a callback receiving the messages after every change."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        snapshot = self.messages
        for listener in self._listeners:
            listener(snapshot)

    # Message list updates

    def _append(self, message: Message) -> Message:
        self._messages = [*self._messages, message]
        self._notify()
        return message

    def _update(self, message_id: str, **changes: Any) -> Message | None:
        updated = None
        new_messages = []
        for message in self._messages:
            if message.id == message_id:
                message = message.model_copy(update=changes)
                updated = message
            new_messages.append(message)
        self._messages = new_messages
        self._notify()
        return updated

    def _append_fragment(self, message_id: str, fragment: str) -> None:
        for message in self._messages:
            if message.id == message_id:
                if message.is_streaming:
                    self._update(message_id, text=message.text + fragment)
                return

    async def _autosave(self) -> None:
        if self.settings.auto_save and self._messages:
            await self._context.storage.save_current_conversation(self._messages)

    # Lifecycle

    async def load(self) -> None:
        """Restore the persisted snapshot when auto-save is enabled."""
        if not self.settings.auto_save:
            return
        saved = await self._context.storage.get_current_conversation()
        if not saved:
            return
        self._messages = saved
        self._client.clear_history()
        for entry in rebuild_history(saved):
            self._client.add_to_history(entry.role, entry.text)
        logger.info("chat.restored", messages=len(saved))
        self._notify()

    async def update_api_key(self, api_key: str) -> None:
        """Persist a new key and use it for subsequent requests."""
        api_key = await self._context.set_api_key(api_key)
        self._client.update_api_key(api_key)

    async def update_settings(self, **changes: Any) -> ChatSettings:
        return await self._context.update_settings(**changes)

    # Sending

    async def send_message(self, text: str) -> Message | None:
        """Send a user message and collect the model's reply.

        API failures are turned into an error-flagged message rather than
        raised.

        Args:
            text: Message text; surrounding whitespace is ignored

        Returns:
            The final model (or error) message, or None for blank input
        """
        text = text.strip()
        if not text:
            return None

        self._append(Message(text=text, is_user=True))
        await self._autosave()
        return await self._request_reply(text)

    async def _request_reply(self, text: str) -> Message:
        self._in_flight += 1
        self._state = ChatState.PENDING
        use_history = self.settings.conversation_history
        try:
            if self.settings.streaming_enabled:
                reply = await self._stream_reply(text, use_history)
            else:
                response = await self._client.generate_response(text, use_history)
                reply = self._append(Message(text=response, is_user=False))
        except ApiError as e:
            logger.error("chat.send_failed", error=str(e))
            reply = self._append(
                Message(text=str(e) or DEFAULT_ERROR_TEXT, is_user=False, error=True)
            )
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._state = ChatState.IDLE

        await self._autosave()
        return reply

    async def _stream_reply(self, text: str, use_history: bool) -> Message:
        placeholder = self._append(Message(text="", is_user=False, is_streaming=True))
        self._streaming_message_id = placeholder.id
        self._state = ChatState.STREAMING

        # Only this placeholder is closed, even when other sends overlap.
        try:
            stream = await self._client.generate_stream_response(text, use_history)
            async for fragment in stream:
                self._append_fragment(placeholder.id, fragment)
            logger.debug("chat.stream_finished", message_id=placeholder.id, usage=stream.usage)
        finally:
            if self._streaming_message_id == placeholder.id:
                self._streaming_message_id = None
            finished = self._update(placeholder.id, is_streaming=False)
        return finished or placeholder

    async def regenerate(self, message_id: str) -> Message | None:
        """Replace a model reply with a fresh one.

        Everything from the target message on is dropped, the client history
        is rebuilt from what remains, and the preceding user message is sent
        again.

        Returns:
            The new reply, or None if the message cannot be regenerated
        """
        index = next(
            (i for i, message in enumerate(self._messages) if message.id == message_id), -1
        )
        if index <= 0 or self._messages[index].is_user:
            return None
        previous = self._messages[index - 1]
        if not previous.is_user:
            return None

        truncated = self._messages[:index]
        self._messages = truncated
        self._notify()

        # The user turn is re-recorded when the request is issued.
        self._client.clear_history()
        for entry in rebuild_history(truncated[:-1]):
            self._client.add_to_history(entry.role, entry.text)

        logger.info("chat.regenerate", message_id=message_id, kept=len(truncated))
        return await self._request_reply(previous.text)

    # Session management

    async def save_conversation(self) -> SavedConversation | None:
        """Save the session as a new conversation; no-op when empty."""
        if not self._messages:
            return None
        conversation = SavedConversation.from_messages(self._messages)
        await self._context.storage.save_conversation(conversation)
        logger.info("chat.saved", conversation_id=conversation.id, title=conversation.title)
        return conversation

    async def clear(self) -> None:
        """Drop all messages, the request history and the persisted snapshot."""
        self._messages = []
        self._streaming_message_id = None
        self._client.clear_history()
        await self._context.storage.clear_current_conversation()
        self._notify()

    async def close(self) -> None:
        await self._client.close()
