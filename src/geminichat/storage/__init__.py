"""Local persistence for geminichat.

Provides key-value backends and the typed chat storage service on top.
"""

from .base import KeyValueStore
from .factory import create_key_value_store
from .in_memory import InMemoryKeyValueStore
from .service import ChatStorage

__all__ = [
    "ChatStorage",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "create_key_value_store",
]
