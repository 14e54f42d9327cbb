"""Exception hierarchy for geminichat.

API errors propagate to the conversation orchestrator, which turns them into
error-flagged messages. Storage and parse errors are handled where they occur.
"""


class GeminiChatError(Exception):
    """Base class for all geminichat errors."""


class ApiError(GeminiChatError):
    """Request to the inference endpoint failed."""


class TransportError(ApiError):
    """The endpoint answered with a non-success HTTP status."""

    def __init__(self, status_code: int, detail: str | None = None):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"API Error {status_code}: {detail or 'Unknown error'}")


class EmptyResponseError(ApiError):
    """Well-formed response carrying no candidates."""

    def __init__(self, message: str = "No response generated"):
        super().__init__(message)


class StreamUnavailableError(ApiError):
    """The streaming connection could not be opened."""

    def __init__(self, message: str = "No response stream available"):
        super().__init__(message)


class MalformedRecordError(GeminiChatError):
    """A single stream line could not be parsed."""


class StorageError(GeminiChatError):
    """A key-value backend failed to read or write."""


class ImportFormatError(GeminiChatError):
    """Import payload is not a recognized shape."""
