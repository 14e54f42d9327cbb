"""Factory functions for CLI.

Centralizes creation of the store, session context and inference client from
environment variables. Hides configuration details from command
implementations.
"""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import typer
from rich.console import Console

from ..chat import ChatContext
from ..config import DEFAULT_DB_PATH, GEMINI_MODEL
from ..errors import StorageError
from ..llm import GeminiClient
from ..storage import ChatStorage, KeyValueStore, create_key_value_store

# Default console for output
_console = Console()


def get_store() -> KeyValueStore:
    """Create the key-value store from environment variables.

    Environment variables:
        GEMINICHAT_STORE: Backend type (sqlite, memory; default: sqlite)
        GEMINICHAT_DB_PATH: SQLite file (default: ~/.geminichat/store.db)
    """
    backend = os.getenv("GEMINICHAT_STORE", "sqlite").lower()
    if backend == "sqlite":
        return create_key_value_store(
            "sqlite", path=os.getenv("GEMINICHAT_DB_PATH", DEFAULT_DB_PATH)
        )
    return create_key_value_store(backend)


@asynccontextmanager
async def open_context(console: Console | None = None) -> AsyncIterator[ChatContext]:
    """Connect the store and yield a loaded session context.

    Raises:
        SystemExit: If the store cannot be opened
    """
    con = console or _console
    store = get_store()
    try:
        await store.connect()
    except StorageError as e:
        con.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    try:
        context = ChatContext(ChatStorage(store))
        await context.load()
        yield context
    finally:
        await store.disconnect()


def resolve_api_key(context: ChatContext) -> str | None:
    """Persisted key first, then GEMINI_API_KEY."""
    return context.api_key or os.getenv("GEMINI_API_KEY")


def require_client(context: ChatContext, console: Console | None = None) -> GeminiClient:
    """Create the inference client, exiting if no key is configured.

    Environment variables:
        GEMINI_API_KEY: API key used when none is stored
        GEMINI_MODEL: Model name (default: gemini-2.5-flash)
    """
    con = console or _console
    api_key = resolve_api_key(context)
    if not api_key:
        con.print("[red]Error: no API key. Run 'geminichat key' or set GEMINI_API_KEY[/red]")
        raise typer.Exit(code=1)
    return GeminiClient(api_key=api_key, model=os.getenv("GEMINI_MODEL", GEMINI_MODEL))
