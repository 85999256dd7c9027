"""
livecode command-line interface.

`livecode serve` runs the relay; `livecode play` opens the game and a prompt that
rewrites it live.
"""
import asyncio
import logging

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from livecode.config import Settings, configure_logging, get_settings
from livecode.generation.client import GenerationClient
from livecode.host.bridge import ExecutionHostBridge
from livecode.modifier import PRESETS, GameModifier
from livecode.ui import HostUI, UIState


logger = logging.getLogger("livecode.cli")

app = typer.Typer(help="Rewrite a running game with natural-language prompts.")
console = Console()

HELP_TEXT = (
    "Type a change request and press enter to apply it.\n"
    "Commands: /undo, /restart, /presets, /preset N, /help, /quit"
)


def parse_command(line: str) -> tuple[str, str]:
    """Split a prompt line into (command, argument).

    Plain text is an apply request; ``/preset N`` resolves to the N-th preset.
    """
    text = line.strip()
    if not text:
        return "noop", ""
    if not text.startswith("/"):
        return "apply", text

    name, _, arg = text[1:].partition(" ")
    name = name.lower()
    arg = arg.strip()
    if name in {"quit", "exit", "q"}:
        return "quit", ""
    if name in {"undo", "restart", "presets", "help"}:
        return name, ""
    if name == "preset":
        try:
            index = int(arg) - 1
        except ValueError:
            return "error", f"/preset needs a number between 1 and {len(PRESETS)}"
        if not 0 <= index < len(PRESETS):
            return "error", f"/preset needs a number between 1 and {len(PRESETS)}"
        return "apply", PRESETS[index]
    return "error", f"Unknown command: /{name}"


def _print_presets() -> None:
    table = Table(title="Presets")
    table.add_column("#", justify="right")
    table.add_column("Request")
    for i, preset in enumerate(PRESETS, start=1):
        table.add_row(str(i), preset)
    console.print(table)


def _print_outcome(ok: bool, state: UIState, success: str) -> None:
    if ok:
        console.print(f"[green]{success}[/green]")
    elif state.error:
        console.print(f"[red]{state.error}[/red]")
    undo = "enabled" if state.undo_enabled else "disabled"
    console.print(f"[dim]undo {undo}[/dim]")


async def _apply_with_progress(modifier: GameModifier, ui: HostUI, request: str) -> bool:
    with Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(ui.state.apply_label, total=100)

        def on_change(state: UIState) -> None:
            if state.busy:
                progress.update(task, completed=min(state.progress, 100.0), description=state.apply_label)

        ui.subscribe(on_change)
        try:
            return await modifier.record_and_apply(request)
        finally:
            ui.unsubscribe(on_change)


async def _play(settings: Settings) -> None:
    ui = HostUI()
    bridge = ExecutionHostBridge(settings, ui)
    client = GenerationClient.from_settings(settings)
    modifier = GameModifier(bridge, client, ui=ui)

    with console.status("Starting game..."):
        await bridge.start()
    console.print(HELP_TEXT)

    try:
        while True:
            line = await asyncio.to_thread(console.input, "[bold cyan]livecode>[/bold cyan] ")
            command, arg = parse_command(line)
            if command == "quit":
                break
            if command == "noop":
                continue
            if command == "error":
                console.print(f"[yellow]{arg}[/yellow]")
            elif command == "help":
                console.print(HELP_TEXT)
            elif command == "presets":
                _print_presets()
            elif command == "undo":
                if not ui.state.can_undo:
                    console.print("[dim]Nothing to undo[/dim]")
                    continue
                with console.status(ui.state.undo_label):
                    ok = await modifier.undo()
                _print_outcome(ok, ui.state, "Undo applied")
            elif command == "restart":
                with console.status("Restarting game..."):
                    ok = await modifier.restart()
                _print_outcome(ok, ui.state, "Game restarted")
            elif command == "apply":
                ok = await _apply_with_progress(modifier, ui, arg)
                _print_outcome(ok, ui.state, ui.state.notice or "Changes applied")
    finally:
        await bridge.close()


@app.command()
def play(
    headless: bool = typer.Option(False, help="Use SDL's dummy video driver."),
    no_window: bool = typer.Option(False, "--no-window", help="Run the game without a window."),
) -> None:
    """Open the game and rewrite it live from the prompt."""
    settings = get_settings()
    if headless:
        settings = settings.model_copy(update={"headless": True})
    if no_window:
        settings = settings.model_copy(update={"window_enabled": False})
    configure_logging(settings.log_level)
    try:
        asyncio.run(_play(settings))
    except (KeyboardInterrupt, EOFError):
        console.print("Bye")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Interface to bind."),
    port: int | None = typer.Option(None, help="Port to listen on (defaults to $PORT or 3000)."),
) -> None:
    """Run the chat relay."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("server:app", host=host, port=port or settings.port)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
