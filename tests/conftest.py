"""Pytest configuration and shared fixtures."""
import json
from collections.abc import Callable

import httpx
import pytest

from geminichat.chat import ChatContext
from geminichat.llm import GeminiClient
from geminichat.storage import ChatStorage, InMemoryKeyValueStore

Handler = Callable[[httpx.Request], httpx.Response]


def gemini_body(text: str) -> dict:
    """Return a generateContent response carrying one candidate."""
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


def sse_body(*fragments: str) -> bytes:
    """Return an SSE stream emitting each fragment as one event."""
    lines = [f"data: {json.dumps(gemini_body(fragment))}\n\n" for fragment in fragments]
    return "".join(lines).encode()


class RecordingHandler:
    """Mock endpoint that records every request body it receives."""

    def __init__(self, respond: Handler):
        self._respond = respond
        self.requests: list[httpx.Request] = []

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request)


@pytest.fixture
def make_client():
    """Return a factory building a client against a mock endpoint."""
    def _make(respond: Handler, api_key: str = "test-key") -> tuple[GeminiClient, RecordingHandler]:
        handler = RecordingHandler(respond)
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return GeminiClient(api_key=api_key, http_client=http), handler
    return _make


@pytest.fixture
def memory_store():
    """Return an empty in-memory store."""
    return InMemoryKeyValueStore()


@pytest.fixture
def storage(memory_store):
    """Return a chat storage service over the in-memory store."""
    return ChatStorage(memory_store)


@pytest.fixture
def context(storage):
    """Return an unloaded session context (default settings)."""
    return ChatContext(storage)
