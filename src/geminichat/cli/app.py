"""Main CLI application using Typer."""
import asyncio
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from ..chat import ConversationOrchestrator
from ..log import configure_logging
from ..models import Message
from .providers import open_context, require_client

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="geminichat",
    help="Chat with Gemini from the terminal, with streamed replies and saved history",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()


@app.callback()
def main_options(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logs"
    )
):
    """Configure logging for every command."""
    configure_logging("debug" if verbose else "warning")


class _StreamPrinter:
    """Prints the growing text of a streaming reply as fragments arrive."""

    def __init__(self, con: Console):
        self._console = con
        self.message_id: str | None = None
        self._printed = 0

    def __call__(self, messages: list[Message]) -> None:
        last = messages[-1] if messages else None
        if last is None or last.is_user or not last.is_streaming:
            return
        if last.id != self.message_id:
            self.message_id = last.id
            self._printed = 0
            self._console.print("[bold green]Gemini:[/bold green] ", end="")
        self._console.print(last.text[self._printed:], end="", markup=False, highlight=False)
        self._printed = len(last.text)


def _print_reply(printer: _StreamPrinter, reply: Message | None) -> None:
    if reply is None:
        return
    if printer.message_id is not None:
        console.print()
    if reply.error:
        console.print(f"[red]{reply.text}[/red]")
    elif reply.id != printer.message_id:
        console.print(f"[bold green]Gemini:[/bold green] {reply.text}")
    printer.message_id = None
    console.print()


@app.command()
def chat():
    """Interactive chat session."""
    async def _chat():
        async with open_context(console) as context:
            client = require_client(context, console)
            orchestrator = ConversationOrchestrator(context, client)
            printer = _StreamPrinter(console)
            orchestrator.add_listener(printer)

            try:
                await orchestrator.load()
                if orchestrator.messages:
                    console.print(f"[dim]Restored {len(orchestrator.messages)} messages[/dim]")

                console.print("[bold cyan]Gemini Chat[/bold cyan]")
                console.print(
                    "[dim]Commands: /save, /clear, /regenerate, /quit[/dim]\n"
                )

                while True:
                    try:
                        user_input = console.input("[bold yellow]You:[/bold yellow] ")
                    except (KeyboardInterrupt, EOFError):
                        console.print("\n[dim]Goodbye![/dim]")
                        break

                    command = user_input.strip().lower()
                    if not command:
                        continue

                    if command in ("/quit", "/exit", "exit", "quit", "q"):
                        console.print("[dim]Goodbye![/dim]")
                        break

                    if command == "/save":
                        saved = await orchestrator.save_conversation()
                        if saved:
                            console.print(f"[green]Saved as '{saved.title}'[/green]\n")
                        else:
                            console.print("[dim]Nothing to save.[/dim]\n")
                        continue

                    if command == "/clear":
                        await orchestrator.clear()
                        console.print("[dim]Conversation cleared.[/dim]\n")
                        continue

                    if command == "/regenerate":
                        last = orchestrator.messages[-1] if orchestrator.messages else None
                        reply = await orchestrator.regenerate(last.id) if last else None
                        if reply is None:
                            console.print("[dim]Nothing to regenerate.[/dim]\n")
                        _print_reply(printer, reply)
                        continue

                    reply = await orchestrator.send_message(user_input)
                    _print_reply(printer, reply)
            finally:
                await orchestrator.close()

    asyncio.run(_chat())


@app.command()
def conversations():
    """List saved conversations, newest first."""
    async def _conversations():
        async with open_context(console) as context:
            saved = await context.storage.get_saved_conversations(newest_first=True)

        if not saved:
            console.print("[dim]No saved conversations.[/dim]")
            return

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("ID", style="dim")
        table.add_column("Title")
        table.add_column("Messages", justify="right")
        table.add_column("Saved")
        table.add_column("Preview", style="dim")

        for conversation in saved:
            table.add_row(
                conversation.id,
                conversation.title,
                str(len(conversation.messages)),
                conversation.timestamp.astimezone().strftime("%b %d %H:%M"),
                conversation.preview,
            )
        console.print(table)

    asyncio.run(_conversations())


@app.command(name="open")
def open_conversation(
    conversation_id: str = typer.Argument(..., help="ID of the saved conversation")
):
    """Make a saved conversation the current one for the next chat session."""
    async def _open():
        async with open_context(console) as context:
            if not await context.storage.open_saved_conversation(conversation_id):
                console.print(f"[red]Error: no conversation with id {conversation_id}[/red]")
                raise typer.Exit(code=1)
            auto_save = context.settings.auto_save
        if not auto_save:
            console.print(
                "[yellow]Auto-save is off, so 'geminichat chat' starts empty. "
                "Run 'geminichat settings --auto-save' to resume this conversation.[/yellow]"
            )
            return
        console.print("[green]Loaded. Run 'geminichat chat' to continue it.[/green]")

    asyncio.run(_open())


@app.command()
def delete(
    conversation_id: str = typer.Argument(..., help="ID of the saved conversation")
):
    """Delete a saved conversation."""
    async def _delete():
        async with open_context(console) as context:
            await context.storage.delete_conversation(conversation_id)
        console.print("[green]Deleted.[/green]")

    asyncio.run(_delete())


@app.command(name="clear-all")
def clear_all(
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip the confirmation prompt"
    )
):
    """Delete every saved conversation."""
    if not yes and not typer.confirm(
        "Delete all saved conversations? This action cannot be undone."
    ):
        console.print("[dim]Aborted.[/dim]")
        return

    async def _clear_all():
        async with open_context(console) as context:
            await context.storage.clear_all_conversations()
        console.print("[green]All conversations deleted.[/green]")

    asyncio.run(_clear_all())


@app.command()
def settings(
    dark_mode: bool | None = typer.Option(None, "--dark-mode/--light-mode", help="Color theme"),
    streaming: bool | None = typer.Option(None, "--streaming/--no-streaming", help="Stream replies"),
    history: bool | None = typer.Option(
        None, "--history/--no-history", help="Send earlier turns as context"
    ),
    auto_save: bool | None = typer.Option(
        None, "--auto-save/--no-auto-save", help="Keep the current conversation between runs"
    ),
):
    """Show settings, or update the ones given."""
    changes = {
        name: value
        for name, value in {
            "dark_mode": dark_mode,
            "streaming_enabled": streaming,
            "conversation_history": history,
            "auto_save": auto_save,
        }.items()
        if value is not None
    }

    async def _settings():
        async with open_context(console) as context:
            current = await context.update_settings(**changes) if changes else context.settings

        table = Table(show_header=False, box=None)
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        for name, value in current.model_dump().items():
            table.add_row(name, "[green]on[/green]" if value else "[dim]off[/dim]")
        console.print(table)

    asyncio.run(_settings())


@app.command()
def key(
    api_key: str = typer.Option(..., prompt=True, hide_input=True, help="Gemini API key")
):
    """Store the Gemini API key."""
    async def _key():
        async with open_context(console) as context:
            try:
                await context.set_api_key(api_key)
            except ValueError as e:
                console.print(f"[red]Error: {e}[/red]")
                raise typer.Exit(code=1)
        console.print("[green]API key saved.[/green]")

    asyncio.run(_key())


@app.command(name="reset-key")
def reset_key():
    """Forget the stored API key."""
    async def _reset_key():
        async with open_context(console) as context:
            await context.reset_api_key()
        console.print("[green]API key removed.[/green]")

    asyncio.run(_reset_key())


@app.command(name="export")
def export_data(
    path: Path = typer.Argument(..., dir_okay=False, help="File to write")
):
    """Export settings and conversations as JSON."""
    async def _export():
        async with open_context(console) as context:
            data = await context.storage.export_all_data()
        path.write_text(data)
        console.print(f"[green]Exported to {path}[/green]")

    asyncio.run(_export())


@app.command(name="import")
def import_data(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to read")
):
    """Import settings and conversations from an exported JSON file."""
    async def _import():
        async with open_context(console) as context:
            ok = await context.storage.import_data(path.read_text())
        if not ok:
            console.print("[red]Error: file is not a geminichat export[/red]")
            raise typer.Exit(code=1)
        console.print("[green]Import complete.[/green]")

    asyncio.run(_import())


@app.command()
def usage():
    """Show how much of the local store is used."""
    async def _usage():
        async with open_context(console) as context:
            result = await context.storage.get_storage_usage()
        console.print(f"[dim]Used:[/dim] {result.used:,} characters")
        console.print(f"[dim]Available:[/dim] {result.available:,} characters")

    asyncio.run(_usage())


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
