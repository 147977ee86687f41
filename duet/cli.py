"""duet CLI: Typer + Rich terminal interface.

Commands: ask, models, config. With no command, starts the interactive
REPL.
"""

from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from duet import __version__
from duet.cli_display import TranscriptRenderer
from duet.errors import ConfigIncomplete, DuetError
from duet.providers.registry import DEFAULT_MODELS, fetch_models
from duet.schemas.settings import ProviderKind
from duet.session import StreamSession
from duet.settings import SECRET_KEYS, SettingsStore, check_settings, mask_secret

console = Console()
err_console = Console(stderr=True)

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="duet",
    help="Chat with OpenAI-compatible or Gemini models from the terminal.",
    no_args_is_help=False,
    rich_markup_mode="rich",
)

config_app = typer.Typer(
    name="config",
    help="Show and edit chat settings.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"duet {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )
    # httpx logs full request URLs, and Gemini URLs carry the API key
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


# ── App Callback ────────────────────────────────────────────────


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log debug output to stderr.",
    ),
) -> None:
    """duet: one chat client for two incompatible LLM APIs."""
    _configure_logging(verbose)
    if ctx.invoked_subcommand is None:
        from duet.repl import ChatREPL

        ChatREPL().run()


# ── Helpers ──────────────────────────────────────────────────────


def _store() -> SettingsStore:
    return SettingsStore()


def _load_settings(store: SettingsStore):
    """Load settings, exit on error."""
    try:
        return store.load()
    except ValueError as e:
        console.print(f"[red]Error loading settings:[/red] {e}")
        raise typer.Exit(1) from None


def _report_missing(missing: list[str]) -> None:
    console.print(f"[red]Settings incomplete.[/red] Missing: {', '.join(missing)}")
    console.print("[dim]Set them with [bold]duet config set[/bold].[/dim]")


# ── duet ask ─────────────────────────────────────────────────────


@app.command()
def ask(
    text: str = typer.Argument(..., help="Message to send"),
    system: str | None = typer.Option(
        None, "--system", "-s",
        help="System prompt for this call (overrides the stored one)",
    ),
) -> None:
    """Send one message and stream the reply."""
    store = _store()
    renderer = TranscriptRenderer(console)

    async def _ask():
        async with StreamSession(store, on_update=renderer.on_update) as session:
            task = session.start(text, system_prompt=system)
            renderer.begin_reply()
            return await task

    try:
        asyncio.run(_ask())
    except ConfigIncomplete as e:
        _report_missing(e.missing)
        raise typer.Exit(1) from None
    except DuetError:
        # Failure text was rendered from the session's failure update
        raise typer.Exit(1) from None
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[dim]Cancelled.[/dim]")
        raise typer.Exit(130) from None
    finally:
        renderer.end_reply()


# ── duet models ──────────────────────────────────────────────────


@app.command()
def models(
    save: bool = typer.Option(
        False, "--save",
        help="Store the first listed model when the configured one is not offered",
    ),
) -> None:
    """List the models the configured API offers."""
    store = _store()
    settings = _load_settings(store)

    try:
        available = asyncio.run(fetch_models(settings))
        source = "fetched"
    except ConfigIncomplete as e:
        _report_missing(e.missing)
        raise typer.Exit(1) from None
    except DuetError as e:
        console.print(f"[yellow]Could not fetch models:[/yellow] {e}")
        console.print("[dim]Falling back to the default list.[/dim]")
        available = DEFAULT_MODELS[settings.api_type]
        source = "default"

    table = Table(title=f"{settings.api_type.value} models ({source})")
    table.add_column("Model", style="bold cyan")
    table.add_column("Name")
    table.add_column("", justify="center")
    for model_id, name in available.items():
        table.add_row(model_id, name, "●" if model_id == settings.model else "")
    console.print(table)
    console.print(f"\n[dim]{len(available)} models[/dim]")

    if save and settings.model not in available:
        first = next(iter(available))
        store.save(model=first)
        console.print(f"Model set to [bold]{first}[/bold]")


# ── duet config ──────────────────────────────────────────────────


@config_app.command("show")
def config_show() -> None:
    """Show current settings (keys masked)."""
    store = _store()
    settings = _load_settings(store)
    raw = store.load_raw()

    table = Table(title="Chat Settings", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    for key, value in settings.dump().items():
        shown = mask_secret(str(value)) if key in SECRET_KEYS else str(value)
        if key not in raw:
            shown = f"{shown} [dim](default)[/dim]" if shown else "[dim](unset)[/dim]"
        table.add_row(key, shown)
    console.print(table)

    gate = check_settings(settings)
    if gate.ok:
        console.print("[green]✓[/green] Ready to chat")
    else:
        _report_missing(gate.missing)


@config_app.command("set")
def config_set(
    api_type: ProviderKind | None = typer.Option(
        None, "--api-type", "-t", help="Backend to use",
    ),
    model: str | None = typer.Option(None, "--model", "-m", help="Model id"),
    url: str | None = typer.Option(
        None, "--url", help="OpenAI-compatible base URL, e.g. https://example.com",
    ),
    key: str | None = typer.Option(
        None, "--key", "-k", help="API key for the selected backend",
    ),
    system_prompt: str | None = typer.Option(
        None, "--system", help="Default system prompt",
    ),
    gemini_sse: bool | None = typer.Option(
        None, "--gemini-sse/--no-gemini-sse", help="Ask Gemini for SSE framing",
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", min=1.0, help="HTTP timeout in seconds",
    ),
) -> None:
    """Update settings. Only the options given are changed."""
    store = _store()
    current = _load_settings(store)
    kind = api_type or current.api_type

    updates: dict[str, object] = {}
    if api_type is not None:
        updates["api_type"] = api_type
    if model is not None:
        updates["model"] = model.strip()
    if url is not None:
        updates["openai_api_url"] = url.strip()
    if key is not None:
        field = "gemini_api_key" if kind is ProviderKind.GEMINI else "openai_api_key"
        updates[field] = key.strip()
    if system_prompt is not None:
        updates["system_prompt"] = system_prompt
    if gemini_sse is not None:
        updates["gemini_sse"] = gemini_sse
    if timeout is not None:
        updates["timeout"] = timeout

    if not updates:
        console.print("[dim]Nothing to change.[/dim]")
        return

    saved = store.save(**updates)
    console.print(f"[green]✓[/green] Settings saved to {store.path}")

    gate = check_settings(saved)
    if not gate.ok:
        _report_missing(gate.missing)


@config_app.command("path")
def config_path() -> None:
    """Print the settings file location."""
    console.print(str(_store().path), soft_wrap=True, highlight=False)


@config_app.command("check")
def config_check() -> None:
    """Run the settings gate; exit 1 if anything is missing."""
    settings = _load_settings(_store())
    gate = check_settings(settings)
    if not gate.ok:
        _report_missing(gate.missing)
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] {settings.api_type.value} / {settings.model} ready")


@config_app.command("clear")
def config_clear() -> None:
    """Delete the settings file."""
    store = _store()
    if store.clear():
        console.print(f"[dim]Removed {store.path}[/dim]")
    else:
        console.print("[dim]No saved settings to clear.[/dim]")
