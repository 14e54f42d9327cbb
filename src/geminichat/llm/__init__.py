from .client import GeminiClient
from .models import (
    GenerateContentResponse,
    GenerationConfig,
    HistoryEntry,
    Part,
    SafetySetting,
    StreamingResponse,
)
from .sse import iter_fragments

__all__ = [
    "GeminiClient",
    "GenerateContentResponse",
    "GenerationConfig",
    "HistoryEntry",
    "Part",
    "SafetySetting",
    "StreamingResponse",
    "iter_fragments",
]
