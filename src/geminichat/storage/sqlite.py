"""SQLite key-value backend.

Provides persistent per-profile storage in a single SQLite table.
Uses aiosqlite for async access.
"""

from datetime import datetime, timezone
from pathlib import Path

try:
    import aiosqlite
    AIOSQLITE_AVAILABLE = True
except ImportError:
    AIOSQLITE_AVAILABLE = False
    aiosqlite = None

from ..config import DEFAULT_DB_PATH
from ..errors import StorageError
from .base import KeyValueStore


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-backed key-value store.

    Stores values in a database file so they survive across sessions.
    There is no locking: concurrent writers overwrite each other.
    """

    def __init__(self, path: str | Path = DEFAULT_DB_PATH):
        if not AIOSQLITE_AVAILABLE:
            raise ImportError(
                "SQLite storage backend requires aiosqlite. "
                "Install with: pip install aiosqlite"
            )

        self._db_path = Path(path).expanduser()
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the database and create the schema."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self._db_path)
            await self._connection.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await self._connection.commit()
        except (OSError, aiosqlite.Error) as e:
            raise StorageError(f"Cannot open store at {self._db_path}: {e}") from e

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> "aiosqlite.Connection":
        if self._connection is None:
            raise StorageError("Store is not connected")
        return self._connection

    async def get(self, key: str) -> str | None:
        conn = self._require_connection()
        try:
            async with conn.execute("SELECT value FROM kv WHERE key = ?", (key,)) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to read {key}: {e}") from e
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        conn = self._require_connection()
        now = datetime.now(timezone.utc).isoformat()
        try:
            await conn.execute("""
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
            """, (key, value, now))
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    async def delete(self, key: str) -> None:
        conn = self._require_connection()
        try:
            await conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e

    async def items(self) -> list[tuple[str, str]]:
        conn = self._require_connection()
        try:
            async with conn.execute("SELECT key, value FROM kv ORDER BY key") as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to list keys: {e}") from e
        return [(key, value) for key, value in rows]

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
