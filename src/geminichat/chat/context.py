"""Session context: the credential and settings of one running client."""

from typing import Any

import structlog

from ..models import ChatSettings
from ..storage.service import ChatStorage

logger = structlog.get_logger(__name__)


class ChatContext:
    """Holds the API key and settings, and persists every change.

    Call load() once at startup before reading either value.
    """

    def __init__(self, storage: ChatStorage):
        self._storage = storage
        self._settings = ChatSettings()
        self._api_key: str | None = None

    @property
    def storage(self) -> ChatStorage:
        return self._storage

    @property
    def settings(self) -> ChatSettings:
        return self._settings

    @property
    def api_key(self) -> str | None:
        return self._api_key

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    async def load(self) -> None:
        """Read the persisted credential and settings."""
        self._api_key = await self._storage.get_api_key()
        self._settings = await self._storage.get_settings()
        logger.debug("context.loaded", has_api_key=self.has_api_key)

    async def update_settings(self, **changes: Any) -> ChatSettings:
        """Apply and persist settings changes.

        Args:
            **changes: Field values by snake_case name

        Returns:
            The new settings

        Raises:
            pydantic.ValidationError: If a value has the wrong type
        """
        unknown = set(changes) - set(ChatSettings.model_fields)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        self._settings = ChatSettings.model_validate(
            {**self._settings.model_dump(), **changes}
        )
        await self._storage.save_settings(self._settings)
        return self._settings

    async def toggle_dark_mode(self) -> ChatSettings:
        return await self.update_settings(dark_mode=not self._settings.dark_mode)

    async def set_api_key(self, api_key: str) -> str:
        """Store a new API key.

        Raises:
            ValueError: If the key is blank
        """
        api_key = api_key.strip()
        if not api_key:
            raise ValueError("API key must not be empty")
        self._api_key = api_key
        await self._storage.save_api_key(api_key)
        return api_key

    async def reset_api_key(self) -> None:
        self._api_key = None
        await self._storage.clear_api_key()
