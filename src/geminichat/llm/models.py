from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..config import (
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_SAFETY_CATEGORIES,
    DEFAULT_SAFETY_THRESHOLD,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOP_K,
    DEFAULT_TOP_P,
)

Role = Literal["user", "model"]


class StreamingResponse:
    """One-pass iterator over the text fragments of a streamed response.

    Fragments are pulled in arrival order and never replayed. Token usage
    becomes available once the stream is exhausted.

    Usage:
        stream = await client.generate_stream_response("Hi")
        async for fragment in stream:
            print(fragment, end="")
        print(stream.usage)  # {"prompt_tokens": 3, "completion_tokens": 5, ...}
    """

    def __init__(
        self,
        async_iter: AsyncIterator[str],
        on_close: Callable[[], Awaitable[None]] | None = None,
    ):
        """Initialize with an async iterator of text fragments.

        Args:
            async_iter: Async iterator yielding text fragments
            on_close: Coroutine factory releasing the underlying connection
        """
        self._iter = async_iter
        self._on_close = on_close
        self._usage: dict[str, int] | None = None

    @property
    def usage(self) -> dict[str, int] | None:
        """Get token usage info (available after iteration completes)."""
        return self._usage

    def set_usage(self, usage: dict[str, int]) -> None:
        """Set token usage info (called by the client at end of stream)."""
        self._usage = usage

    async def aclose(self) -> None:
        """Release the connection without consuming the rest of the stream."""
        close_iter = getattr(self._iter, "aclose", None)
        if close_iter is not None:
            await close_iter()
        if self._on_close is not None:
            on_close, self._on_close = self._on_close, None
            await on_close()

    def __aiter__(self) -> "StreamingResponse":
        return self

    async def __anext__(self) -> str:
        return await self._iter.__anext__()


class Part(BaseModel):
    """A text part of a content block."""

    model_config = ConfigDict(frozen=True)

    text: str = ""


class HistoryEntry(BaseModel):
    """One role-tagged turn sent as request context."""

    model_config = ConfigDict(frozen=True)

    role: Role = Field(description="Author of the turn: 'user' or 'model'")
    parts: list[Part] = Field(description="Content parts of the turn")

    @classmethod
    def from_text(cls, role: Role, text: str) -> "HistoryEntry":
        return cls(role=role, parts=[Part(text=text)])

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts)


class GenerationConfig(BaseModel):
    """Sampling parameters sent with every request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    temperature: float = DEFAULT_TEMPERATURE
    top_k: int = DEFAULT_TOP_K
    top_p: float = DEFAULT_TOP_P
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS


class SafetySetting(BaseModel):
    """Blocking threshold for one harm category."""

    model_config = ConfigDict(frozen=True)

    category: str
    threshold: str = DEFAULT_SAFETY_THRESHOLD


DEFAULT_SAFETY_SETTINGS = [
    SafetySetting(category=category) for category in DEFAULT_SAFETY_CATEGORIES
]


class Content(BaseModel):
    """Content block of a candidate."""

    parts: list[Part] = Field(default_factory=list)


class Candidate(BaseModel):
    """A single generated candidate."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    content: Content | None = None
    finish_reason: str | None = None


class UsageMetadata(BaseModel):
    """Token counts reported by the endpoint."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    prompt_token_count: int = 0
    candidates_token_count: int = 0
    total_token_count: int = 0

    def to_usage(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_token_count,
            "completion_tokens": self.candidates_token_count,
            "total_tokens": self.total_token_count,
        }


class GenerateContentResponse(BaseModel):
    """Response body of generateContent, and of each streamed record.

    Parsing is lenient: unknown fields are ignored and every block is optional.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    candidates: list[Candidate] = Field(default_factory=list)
    usage_metadata: UsageMetadata | None = None

    def first_text(self) -> str | None:
        """Text of the first part of the first candidate, if any."""
        if not self.candidates:
            return None
        content = self.candidates[0].content
        if content is None or not content.parts:
            return None
        return content.parts[0].text or None


def build_request_body(
    contents: list[HistoryEntry],
    generation_config: GenerationConfig,
    safety_settings: list[SafetySetting],
) -> dict[str, Any]:
    """Serialize a generateContent request body."""
    return {
        "contents": [entry.model_dump() for entry in contents],
        "generationConfig": generation_config.model_dump(by_alias=True),
        "safetySettings": [setting.model_dump() for setting in safety_settings],
    }
