"""Chat persistence service.

Maps the four persisted records (credential, settings, saved conversations,
current-session snapshot) onto JSON values under fixed keys of a
KeyValueStore.

Persistence is opportunistic: every failure is logged and the operation
degrades to a no-op or a default value. Errors never propagate to callers.
"""

import json
from typing import Any

import structlog
from pydantic import TypeAdapter, ValidationError

from ..config import STORAGE_QUOTA_CHARS, StorageKeys
from ..errors import ImportFormatError, StorageError
from ..models import ChatSettings, Message, SavedConversation, StorageUsage
from .base import KeyValueStore

logger = structlog.get_logger(__name__)

_conversations_adapter = TypeAdapter(list[SavedConversation])
_messages_adapter = TypeAdapter(list[Message])


class ChatStorage:
    """Typed access to persisted chat state."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # Raw access

    async def _read(self, key: str) -> str | None:
        try:
            return await self._store.get(key)
        except StorageError as e:
            logger.error("storage.read_failed", key=key, error=str(e))
            return None

    async def _write(self, key: str, value: str) -> bool:
        try:
            await self._store.set(key, value)
        except StorageError as e:
            logger.error("storage.write_failed", key=key, error=str(e))
            return False
        return True

    async def _delete(self, key: str) -> None:
        try:
            await self._store.delete(key)
        except StorageError as e:
            logger.error("storage.delete_failed", key=key, error=str(e))

    # API key

    async def save_api_key(self, api_key: str) -> None:
        await self._write(StorageKeys.API_KEY, json.dumps(api_key))

    async def get_api_key(self) -> str | None:
        raw = await self._read(StorageKeys.API_KEY)
        if raw is None:
            return None
        try:
            api_key = json.loads(raw)
        except ValueError as e:
            logger.error("storage.api_key_invalid", error=str(e))
            return None
        return api_key if isinstance(api_key, str) else None

    async def clear_api_key(self) -> None:
        await self._delete(StorageKeys.API_KEY)

    # Settings

    async def save_settings(self, settings: ChatSettings) -> None:
        await self._write(StorageKeys.SETTINGS, settings.model_dump_json(by_alias=True))

    async def get_settings(self) -> ChatSettings:
        """Load settings, falling back to defaults when absent or unreadable."""
        raw = await self._read(StorageKeys.SETTINGS)
        if raw:
            try:
                return ChatSettings.model_validate_json(raw)
            except ValidationError as e:
                logger.error("storage.settings_invalid", error=str(e))
        return ChatSettings()

    # Saved conversations

    async def _write_conversations(self, conversations: list[SavedConversation]) -> None:
        payload = _conversations_adapter.dump_json(conversations, by_alias=True).decode()
        await self._write(StorageKeys.CONVERSATIONS, payload)

    async def get_saved_conversations(self, newest_first: bool = False) -> list[SavedConversation]:
        """Load saved conversations with timestamps re-hydrated.

        Args:
            newest_first: Sort by timestamp, most recent first

        Returns:
            Saved conversations in stored order unless newest_first is set
        """
        raw = await self._read(StorageKeys.CONVERSATIONS)
        if not raw:
            return []
        try:
            conversations = _conversations_adapter.validate_json(raw)
        except ValidationError as e:
            logger.error("storage.conversations_invalid", error=str(e))
            return []
        if newest_first:
            conversations.sort(key=lambda c: c.timestamp, reverse=True)
        return conversations

    async def get_saved_conversation(self, conversation_id: str) -> SavedConversation | None:
        for conversation in await self.get_saved_conversations():
            if conversation.id == conversation_id:
                return conversation
        return None

    async def save_conversation(self, conversation: SavedConversation) -> None:
        """Insert a conversation, or replace the one with the same id."""
        conversations = await self.get_saved_conversations()
        for i, existing in enumerate(conversations):
            if existing.id == conversation.id:
                conversations[i] = conversation
                break
        else:
            conversations.append(conversation)
        await self._write_conversations(conversations)

    async def delete_conversation(self, conversation_id: str) -> None:
        conversations = await self.get_saved_conversations()
        await self._write_conversations([c for c in conversations if c.id != conversation_id])

    async def clear_all_conversations(self) -> None:
        await self._delete(StorageKeys.CONVERSATIONS)

    # Current conversation snapshot

    async def save_current_conversation(self, messages: list[Message], force: bool = False) -> None:
        """Persist the current session's messages.

        Args:
            messages: Messages to snapshot
            force: Write even when auto-save is disabled
        """
        if not force and not (await self.get_settings()).auto_save:
            return
        payload = _messages_adapter.dump_json(messages, by_alias=True).decode()
        await self._write(StorageKeys.CURRENT_CONVERSATION, payload)

    async def get_current_conversation(self) -> list[Message]:
        raw = await self._read(StorageKeys.CURRENT_CONVERSATION)
        if not raw:
            return []
        try:
            return _messages_adapter.validate_json(raw)
        except ValidationError as e:
            logger.error("storage.current_conversation_invalid", error=str(e))
            return []

    async def clear_current_conversation(self) -> None:
        await self._delete(StorageKeys.CURRENT_CONVERSATION)

    async def open_saved_conversation(self, conversation_id: str) -> bool:
        """Make a saved conversation the current snapshot.

        The running session is not touched; it picks the snapshot up on its
        next load.

        Returns:
            False if no conversation has that id
        """
        conversation = await self.get_saved_conversation(conversation_id)
        if conversation is None:
            return False
        await self.save_current_conversation(conversation.messages, force=True)
        return True

    # Import / export

    async def export_all_data(self) -> str:
        """Bundle settings, saved conversations and the snapshot as JSON."""
        data = {
            "settings": (await self.get_settings()).model_dump(mode="json", by_alias=True),
            "conversations": _conversations_adapter.dump_python(
                await self.get_saved_conversations(), mode="json", by_alias=True
            ),
            "currentConversation": _messages_adapter.dump_python(
                await self.get_current_conversation(), mode="json", by_alias=True
            ),
        }
        return json.dumps(data, indent=2)

    @staticmethod
    def _parse_import(json_data: str) -> dict[str, Any]:
        try:
            data = json.loads(json_data)
        except ValueError as e:
            raise ImportFormatError(f"Not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ImportFormatError("Import document must be a JSON object")

        sections: dict[str, Any] = {}
        try:
            if data.get("settings") is not None:
                sections["settings"] = ChatSettings.model_validate(data["settings"])
            if data.get("conversations") is not None:
                sections["conversations"] = _conversations_adapter.validate_python(
                    data["conversations"]
                )
            if data.get("currentConversation") is not None:
                sections["currentConversation"] = _messages_adapter.validate_python(
                    data["currentConversation"]
                )
        except ValidationError as e:
            raise ImportFormatError(f"Unrecognized section: {e}") from e
        return sections

    async def import_data(self, json_data: str) -> bool:
        """Apply an exported document.

        Each section present is applied independently; absent sections are
        left alone. Nothing is written unless every present section is valid.

        Returns:
            True if the document was applied
        """
        try:
            sections = self._parse_import(json_data)
        except ImportFormatError as e:
            logger.warning("storage.import_failed", error=str(e))
            return False

        if "settings" in sections:
            await self.save_settings(sections["settings"])
        if "conversations" in sections:
            await self._write_conversations(sections["conversations"])
        if "currentConversation" in sections:
            await self.save_current_conversation(sections["currentConversation"], force=True)
        logger.info("storage.imported", sections=sorted(sections))
        return True

    async def get_storage_usage(self) -> StorageUsage:
        """Estimate characters used and left in the store."""
        try:
            items = await self._store.items()
        except StorageError as e:
            logger.error("storage.usage_failed", error=str(e))
            return StorageUsage()
        used = sum(len(key) + len(value) for key, value in items)
        return StorageUsage(used=used, available=max(0, STORAGE_QUOTA_CHARS - used))
