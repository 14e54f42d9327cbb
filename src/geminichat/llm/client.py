"""Gemini REST client with per-session conversation history.

Talks to the generateContent and streamGenerateContent endpoints directly
over httpx. The client owns the history sent as request context; it never
persists anything.

Hidden design decisions:
- Request body layout and endpoint URLs
- Incremental server-sent-event parsing
- Rolling back the user turn when an exchange produces no reply, so that
  history keeps alternating user/model
"""

import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from ..config import GEMINI_API_BASE, GEMINI_MODEL
from ..errors import ApiError, EmptyResponseError, StreamUnavailableError, TransportError
from .models import (
    DEFAULT_SAFETY_SETTINGS,
    GenerateContentResponse,
    GenerationConfig,
    HistoryEntry,
    Role,
    SafetySetting,
    StreamingResponse,
    build_request_body,
)
from .sse import iter_fragments

logger = structlog.get_logger(__name__)

_history_adapter = TypeAdapter(list[HistoryEntry])


class GeminiClient:
    """Request/response and streaming client for one chat session.

    Supports async context manager protocol for proper resource cleanup:
        async with GeminiClient(api_key) as client:
            text = await client.generate_response("Hi")
    """

    def __init__(
        self,
        api_key: str,
        model: str = GEMINI_MODEL,
        base_url: str = GEMINI_API_BASE,
        generation_config: GenerationConfig | None = None,
        safety_settings: list[SafetySetting] | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: Gemini API key sent as the ``key`` query parameter
            model: Model name used in the endpoint path
            base_url: Models collection URL
            generation_config: Sampling parameters (defaults if None)
            safety_settings: Safety thresholds (defaults if None)
            http_client: Client to send requests with; not closed by us
            timeout: Request timeout in seconds (None waits indefinitely)
        """
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._generation_config = generation_config or GenerationConfig()
        self._safety_settings = list(safety_settings or DEFAULT_SAFETY_SETTINGS)
        self._owns_http = http_client is None
        self._http = http_client
        self._timeout = timeout
        self._history: list[HistoryEntry] = []
        self._last_usage: dict[str, int] | None = None

    @property
    def model(self) -> str:
        """Get the model name."""
        return self._model

    @property
    def last_usage(self) -> dict[str, int] | None:
        """Token usage of the last non-streaming call."""
        return self._last_usage

    def update_api_key(self, api_key: str) -> None:
        """Swap the credential used by subsequent calls."""
        self._api_key = api_key

    # History

    def add_to_history(self, role: Role, text: str) -> None:
        self._history.append(HistoryEntry.from_text(role, text))

    def clear_history(self) -> None:
        self._history = []

    def get_history(self) -> list[HistoryEntry]:
        return list(self._history)

    def export_conversation(self) -> str:
        """Serialize the history as pretty-printed JSON."""
        return json.dumps(
            [entry.model_dump() for entry in self._history], indent=2
        )

    def import_conversation(self, data: str) -> bool:
        """Restore history from exported JSON.

        Returns:
            True on success; False, with history untouched, if the payload
            is not a list of history entries
        """
        try:
            history = _history_adapter.validate_json(data)
        except ValidationError as e:
            logger.warning("gemini.import_failed", error=str(e))
            return False
        self._history = history
        return True

    def _rollback_user_turn(self, entry: HistoryEntry) -> None:
        self._history = [turn for turn in self._history if turn is not entry]

    def _http_client(self) -> httpx.AsyncClient:
        # Owned clients are opened on first request.
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)
        return self._http

    def _contents(self, message: str, use_history: bool) -> list[HistoryEntry]:
        if use_history:
            return list(self._history)
        return [HistoryEntry.from_text("user", message)]

    def _request(self, action: str, contents: list[HistoryEntry], **params: str) -> httpx.Request:
        return self._http_client().build_request(
            "POST",
            f"{self._base_url}/{self._model}:{action}",
            params={**params, "key": self._api_key},
            json=build_request_body(contents, self._generation_config, self._safety_settings),
        )

    @staticmethod
    def _error_detail(response: httpx.Response) -> str | None:
        try:
            payload = response.json()
        except ValueError:
            return None
        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            return payload["error"].get("message")
        return None

    # Requests

    async def generate_response(self, message: str, use_history: bool = True) -> str:
        """Generate a complete reply to a message.

        Args:
            message: User message text
            use_history: Send the whole history as context, or just this message

        Returns:
            Text of the first candidate

        Raises:
            TransportError: On a non-success HTTP status
            EmptyResponseError: If the response holds no candidate text
            ApiError: If the request could not be sent
        """
        entry = HistoryEntry.from_text("user", message)
        self._history.append(entry)
        request = self._request("generateContent", self._contents(message, use_history))

        try:
            try:
                response = await self._http_client().send(request)
            except httpx.HTTPError as e:
                raise ApiError(f"Request failed: {e}") from e

            if not response.is_success:
                raise TransportError(response.status_code, self._error_detail(response))

            try:
                data = GenerateContentResponse.model_validate(response.json())
            except ValueError as e:
                raise EmptyResponseError() from e

            text = data.first_text()
            if text is None:
                raise EmptyResponseError()
        except ApiError as e:
            self._rollback_user_turn(entry)
            logger.error("gemini.request_failed", model=self._model, error=str(e))
            raise

        if data.usage_metadata is not None:
            self._last_usage = data.usage_metadata.to_usage()
        self.add_to_history("model", text)
        return text

    async def generate_stream_response(
        self, message: str, use_history: bool = True
    ) -> StreamingResponse:
        """Open a streamed reply to a message.

        The user turn is recorded before the connection is opened. The
        returned stream must be consumed exactly once, in order.

        Args:
            message: User message text
            use_history: Send the whole history as context, or just this message

        Returns:
            StreamingResponse yielding text fragments as they arrive

        Raises:
            StreamUnavailableError: If the connection could not be opened
            TransportError: On a non-success HTTP status
        """
        entry = HistoryEntry.from_text("user", message)
        self._history.append(entry)
        request = self._request(
            "streamGenerateContent", self._contents(message, use_history), alt="sse"
        )

        try:
            try:
                response = await self._http_client().send(request, stream=True)
            except httpx.HTTPError as e:
                raise StreamUnavailableError(f"No response stream available: {e}") from e

            if not response.is_success:
                await response.aread()
                await response.aclose()
                raise TransportError(response.status_code, self._error_detail(response))
        except ApiError as e:
            self._rollback_user_turn(entry)
            logger.error("gemini.stream_failed", model=self._model, error=str(e))
            raise

        logger.debug("gemini.stream_opened", model=self._model, status=response.status_code)
        stream = StreamingResponse(
            self._stream_fragments(response, entry, lambda usage: stream.set_usage(usage)),
            on_close=response.aclose,
        )
        return stream

    async def _stream_fragments(
        self,
        response: httpx.Response,
        entry: HistoryEntry,
        on_usage: Callable[[dict[str, int]], None],
    ) -> AsyncIterator[str]:
        """Yield fragments and record the assembled reply in history."""
        fragments: list[str] = []
        usage: dict[str, int] = {}

        try:
            async for fragment in iter_fragments(response.aiter_lines(), on_usage=usage.update):
                fragments.append(fragment)
                yield fragment
        except httpx.HTTPError as e:
            self._finish_stream(entry, fragments)
            logger.error("gemini.stream_interrupted", model=self._model, error=str(e))
            raise ApiError(f"Stream interrupted: {e}") from e
        finally:
            await response.aclose()

        self._finish_stream(entry, fragments)
        if usage:
            on_usage(dict(usage))

    def _finish_stream(self, entry: HistoryEntry, fragments: list[str]) -> None:
        full_text = "".join(fragments)
        if full_text:
            self.add_to_history("model", full_text)
        else:
            self._rollback_user_turn(entry)

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "GeminiClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
