"""Abstract base class for key-value storage backends.

This module defines the interface the chat storage service persists through.
The abstraction hides:
- Storage format (dict, SQLite table, ...)
- Persistence mechanism (file, in-memory)
- Connection management
"""

from abc import ABC, abstractmethod
from typing import Any


class KeyValueStore(ABC):
    """Abstract string key-value store.

    Values are opaque strings. Implementations raise StorageError when the
    underlying backend fails.

    Supports async context manager protocol:
        async with store:
            await store.set("key", "value")
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the backend."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the backend gracefully."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value stored under key, or None if absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store value under key, overwriting any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Missing keys are ignored."""

    @abstractmethod
    async def items(self) -> list[tuple[str, str]]:
        """Return all stored key/value pairs."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    async def __aenter__(self) -> "KeyValueStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()
