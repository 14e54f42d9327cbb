"""Unit tests for the storage module."""
import json
from datetime import datetime, timedelta, timezone

import pytest

from geminichat.config import StorageKeys
from geminichat.errors import StorageError
from geminichat.models import ChatSettings, Message, SavedConversation
from geminichat.storage import (
    ChatStorage,
    InMemoryKeyValueStore,
    KeyValueStore,
    create_key_value_store,
)
from geminichat.storage.sqlite import SQLiteKeyValueStore


class BrokenStore(InMemoryKeyValueStore):
    """Store whose every operation fails."""

    async def get(self, key):
        raise StorageError("disk on fire")

    async def set(self, key, value):
        raise StorageError("disk on fire")

    async def delete(self, key):
        raise StorageError("disk on fire")

    async def items(self):
        raise StorageError("disk on fire")


def _conversation(title: str, minutes_ago: int = 0) -> SavedConversation:
    return SavedConversation(
        title=title,
        messages=[Message(text=title, is_user=True), Message(text="reply", is_user=False)],
        timestamp=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )


class TestKeyValueStore:
    """Tests for the KeyValueStore interface and backends."""

    def test_store_is_abstract(self):
        """Test that KeyValueStore cannot be instantiated directly."""
        with pytest.raises(TypeError):
            KeyValueStore()  # type: ignore

    def test_factory_backends(self, tmp_path):
        """Test creating stores via factory."""
        assert create_key_value_store("memory").backend_type == "memory"
        store = create_key_value_store("sqlite", path=tmp_path / "kv.db")
        assert isinstance(store, SQLiteKeyValueStore)

    def test_factory_unknown_backend(self):
        """Test that unknown backends raise ValueError."""
        with pytest.raises(ValueError, match="Unsupported storage backend"):
            create_key_value_store("redis")

    @pytest.mark.asyncio
    async def test_sqlite_persists_across_connections(self, tmp_path):
        """Test that values survive reconnecting to the same file."""
        path = tmp_path / "nested" / "kv.db"

        async with SQLiteKeyValueStore(path) as store:
            await store.set("a", "1")
            await store.set("a", "2")
            await store.set("b", "3")
            await store.delete("b")
            await store.delete("missing")

        async with SQLiteKeyValueStore(path) as store:
            assert await store.get("a") == "2"
            assert await store.get("b") is None
            assert await store.items() == [("a", "2")]

    @pytest.mark.asyncio
    async def test_sqlite_requires_connection(self, tmp_path):
        """Test that using a closed store raises StorageError."""
        store = SQLiteKeyValueStore(tmp_path / "kv.db")
        with pytest.raises(StorageError):
            await store.get("a")


class TestSettings:
    """Tests for settings persistence."""

    @pytest.mark.asyncio
    async def test_defaults_when_absent(self, storage):
        """Test the default settings on a fresh store."""
        settings = await storage.get_settings()

        assert settings.model_dump(by_alias=True) == {
            "darkMode": False,
            "streamingEnabled": True,
            "conversationHistory": True,
            "autoSave": True,
        }

    @pytest.mark.asyncio
    async def test_round_trip(self, storage, memory_store):
        """Test that settings are stored as camelCase JSON."""
        await storage.save_settings(ChatSettings(dark_mode=True, auto_save=False))

        raw = json.loads(await memory_store.get(StorageKeys.SETTINGS))
        assert raw["darkMode"] is True
        assert (await storage.get_settings()).auto_save is False

    @pytest.mark.asyncio
    async def test_corrupt_settings_fall_back_to_defaults(self, storage, memory_store):
        """Test that unreadable settings degrade to defaults."""
        await memory_store.set(StorageKeys.SETTINGS, "{not json")

        assert await storage.get_settings() == ChatSettings()


class TestApiKey:
    """Tests for credential persistence."""

    @pytest.mark.asyncio
    async def test_save_get_clear(self, storage):
        """Test the credential lifecycle."""
        assert await storage.get_api_key() is None

        await storage.save_api_key("secret")
        assert await storage.get_api_key() == "secret"

        await storage.clear_api_key()
        assert await storage.get_api_key() is None


class TestConversations:
    """Tests for saved conversations."""

    @pytest.mark.asyncio
    async def test_timestamps_rehydrated(self, storage):
        """Test that timestamps come back as datetimes."""
        await storage.save_conversation(_conversation("Hello"))

        [loaded] = await storage.get_saved_conversations()

        assert isinstance(loaded.timestamp, datetime)
        assert all(isinstance(m.timestamp, datetime) for m in loaded.messages)
        assert loaded.messages[0].is_user is True

    @pytest.mark.asyncio
    async def test_upsert_by_id(self, storage):
        """Test that saving an existing id replaces it."""
        conversation = _conversation("first")
        await storage.save_conversation(conversation)
        await storage.save_conversation(conversation.model_copy(update={"title": "renamed"}))

        conversations = await storage.get_saved_conversations()
        assert [c.title for c in conversations] == ["renamed"]

    @pytest.mark.asyncio
    async def test_newest_first(self, storage):
        """Test ordering by timestamp."""
        await storage.save_conversation(_conversation("old", minutes_ago=10))
        await storage.save_conversation(_conversation("new", minutes_ago=1))

        titles = [c.title for c in await storage.get_saved_conversations(newest_first=True)]
        assert titles == ["new", "old"]

    @pytest.mark.asyncio
    async def test_delete_and_clear_all(self, storage):
        """Test removing one and then all conversations."""
        keep, drop = _conversation("keep"), _conversation("drop")
        await storage.save_conversation(keep)
        await storage.save_conversation(drop)

        await storage.delete_conversation(drop.id)
        assert [c.id for c in await storage.get_saved_conversations()] == [keep.id]

        await storage.clear_all_conversations()
        assert await storage.get_saved_conversations() == []

    @pytest.mark.asyncio
    async def test_open_saved_conversation(self, storage):
        """Test that opening replaces the current snapshot, even without auto-save."""
        await storage.save_settings(ChatSettings(auto_save=False))
        conversation = _conversation("resume me")
        await storage.save_conversation(conversation)

        assert await storage.open_saved_conversation(conversation.id) is True
        current = await storage.get_current_conversation()
        assert [m.text for m in current] == ["resume me", "reply"]

        assert await storage.open_saved_conversation("missing") is False


class TestCurrentConversation:
    """Tests for the current-session snapshot."""

    @pytest.mark.asyncio
    async def test_snapshot_respects_auto_save(self, storage):
        """Test that snapshots are skipped while auto-save is off."""
        messages = [Message(text="Hi", is_user=True)]

        await storage.save_settings(ChatSettings(auto_save=False))
        await storage.save_current_conversation(messages)
        assert await storage.get_current_conversation() == []

        await storage.save_settings(ChatSettings(auto_save=True))
        await storage.save_current_conversation(messages)
        assert await storage.get_current_conversation() == messages

    @pytest.mark.asyncio
    async def test_clear_snapshot(self, storage):
        """Test erasing the snapshot."""
        await storage.save_current_conversation([Message(text="Hi", is_user=True)])
        await storage.clear_current_conversation()

        assert await storage.get_current_conversation() == []


class TestImportExport:
    """Tests for bulk import and export."""

    @pytest.mark.asyncio
    async def test_export_import_round_trip(self, storage):
        """Test that an export restores into a fresh store."""
        await storage.save_settings(ChatSettings(dark_mode=True))
        await storage.save_conversation(_conversation("saved"))
        await storage.save_current_conversation([Message(text="current", is_user=True)])

        exported = await storage.export_all_data()
        assert set(json.loads(exported)) == {"settings", "conversations", "currentConversation"}

        target = ChatStorage(InMemoryKeyValueStore())
        assert await target.import_data(exported) is True

        assert (await target.get_settings()).dark_mode is True
        assert [c.title for c in await target.get_saved_conversations()] == ["saved"]
        assert [m.text for m in await target.get_current_conversation()] == ["current"]

    @pytest.mark.asyncio
    async def test_partial_import(self, storage):
        """Test that absent sections are left alone."""
        await storage.save_conversation(_conversation("existing"))

        assert await storage.import_data(json.dumps({"settings": {"darkMode": True}})) is True

        assert (await storage.get_settings()).dark_mode is True
        assert [c.title for c in await storage.get_saved_conversations()] == ["existing"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        "not json",
        "[1, 2, 3]",
        json.dumps({"settings": {"darkMode": True}, "conversations": "oops"}),
        json.dumps({"currentConversation": [{"text": "no isUser"}]}),
    ])
    async def test_invalid_import_changes_nothing(self, storage, payload: str):
        """Test that unrecognized documents are rejected without mutation."""
        assert await storage.import_data(payload) is False

        assert await storage.get_settings() == ChatSettings()
        assert await storage.get_saved_conversations() == []


class TestStorageErrors:
    """Tests for degraded behavior when the backend fails."""

    @pytest.mark.asyncio
    async def test_reads_degrade_to_defaults(self):
        """Test that failing reads return defaults instead of raising."""
        storage = ChatStorage(BrokenStore())

        assert await storage.get_api_key() is None
        assert await storage.get_settings() == ChatSettings()
        assert await storage.get_saved_conversations() == []
        assert await storage.get_current_conversation() == []
        assert (await storage.get_storage_usage()).used == 0

    @pytest.mark.asyncio
    async def test_writes_are_no_ops(self):
        """Test that failing writes do not raise."""
        storage = ChatStorage(BrokenStore())

        await storage.save_api_key("k")
        await storage.save_settings(ChatSettings())
        await storage.save_conversation(_conversation("x"))
        await storage.delete_conversation("x")
        await storage.clear_current_conversation()


class TestStorageUsage:
    """Tests for the usage estimate."""

    @pytest.mark.asyncio
    async def test_usage_counts_keys_and_values(self, storage, memory_store):
        """Test that used counts key and value characters."""
        await memory_store.set("ab", "cde")

        usage = await storage.get_storage_usage()

        assert usage.used == 5
        assert usage.available == 5 * 1024 * 1024 - 5
