"""Configuration constants.

Centralizes endpoint, generation and storage values used across modules.
"""

# Inference endpoint
GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1/models"
GEMINI_MODEL = "gemini-2.5-flash"

# Generation defaults
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_K = 40
DEFAULT_TOP_P = 0.95
DEFAULT_MAX_OUTPUT_TOKENS = 2048
DEFAULT_SAFETY_THRESHOLD = "BLOCK_MEDIUM_AND_ABOVE"
DEFAULT_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
)

# Server-sent events
SSE_DATA_PREFIX = "data:"
SSE_DONE_SENTINEL = "[DONE]"


class StorageKeys:
    """Fixed keys of the four persisted records."""

    API_KEY = "gemini_api_key"
    SETTINGS = "chat_settings"
    CONVERSATIONS = "saved_conversations"
    CURRENT_CONVERSATION = "current_conversation"


# Storage configuration
DEFAULT_DB_PATH = "~/.geminichat/store.db"
STORAGE_QUOTA_CHARS = 5 * 1024 * 1024  # Estimated per-profile quota

# Conversation display
TITLE_MAX_LENGTH = 50  # Characters of the first message used as title
PREVIEW_MAX_LENGTH = 100  # Characters of the first user message in previews
DEFAULT_TITLE = "New Conversation"
DEFAULT_ERROR_TEXT = "Sorry, I encountered an error. Please try again."
