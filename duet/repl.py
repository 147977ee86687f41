"""Interactive REPL for duet.

Anything typed that is not a slash command is sent as a chat message. The
REPL keeps one StreamSession (and one event loop) for its whole lifetime so
the conversation history carries over between turns. Launch with ``duet``
(no subcommand).
"""

from __future__ import annotations

import asyncio
import logging

from rich.console import Console
from rich.table import Table
from rich.text import Text

from duet.cli_display import BRAND, NEW_CHAT_GREETING, TranscriptRenderer
from duet.errors import ConfigIncomplete, DuetError
from duet.providers.registry import DEFAULT_MODELS, fetch_models
from duet.session import StreamSession
from duet.settings import SettingsStore, check_settings, mask_secret

logger = logging.getLogger(__name__)

_COMMANDS = {"new", "system", "models", "settings", "help", "exit", "quit"}


class ChatREPL:
    """Interactive chat loop.

    Ctrl+C while a reply streams cancels that reply; Ctrl+C or Ctrl+D at
    the prompt exits.
    """

    def __init__(
        self,
        store: SettingsStore | None = None,
        console: Console | None = None,
    ) -> None:
        self.store = store or SettingsStore()
        self.console = console or Console()
        self.renderer = TranscriptRenderer(self.console)
        # None means "use the stored system prompt"
        self.system_prompt: str | None = None
        self._runner: asyncio.Runner | None = None
        self._session: StreamSession | None = None

    @property
    def session(self) -> StreamSession:
        if self._session is None:
            raise RuntimeError("REPL is not running")
        return self._session

    def run(self) -> None:
        """Main REPL loop."""
        with asyncio.Runner() as runner:
            self._runner = runner
            self._session = StreamSession(self.store, on_update=self.renderer.on_update)
            try:
                self._print_welcome()
                while True:
                    try:
                        prompt_text = Text()
                        prompt_text.append("\nyou", style=BRAND["user"])
                        prompt_text.append(" ▸ ", style=BRAND["dim"])
                        user_input = self.console.input(prompt_text).strip()
                    except (KeyboardInterrupt, EOFError):
                        self.console.print(f"\n[{BRAND['dim']}]Goodbye.[/{BRAND['dim']}]")
                        break

                    if not user_input:
                        continue
                    if not self.dispatch(user_input):
                        self.console.print(f"[{BRAND['dim']}]Goodbye.[/{BRAND['dim']}]")
                        break
            finally:
                runner.run(self._session.aclose())
                self._session = None
                self._runner = None

    def _run(self, coro):
        if self._runner is None:
            raise RuntimeError("REPL is not running")
        return self._runner.run(coro)

    # ── Dispatch ──────────────────────────────────────────────

    def dispatch(self, user_input: str) -> bool:
        """Handle one input line. Returns False when the REPL should exit."""
        if not user_input.startswith("/"):
            self.send(user_input)
            return True

        command, _, args = user_input[1:].partition(" ")
        command = command.lower()
        args = args.strip()

        if command in ("exit", "quit"):
            return False
        if command == "new":
            self.new_chat()
        elif command == "system":
            self.set_system_prompt(args)
        elif command == "models":
            self.show_models()
        elif command == "settings":
            self.show_settings()
        elif command == "help":
            self._show_help()
        else:
            r = BRAND["red"]
            self.console.print(
                f"  [{r}]Unknown command:[/{r}] /{command}. "
                f"Try one of: {', '.join('/' + c for c in sorted(_COMMANDS))}"
            )
        return True

    # ── Chat ──────────────────────────────────────────────────

    def send(self, text: str) -> None:
        """Send one message and stream the reply into the transcript."""
        try:
            gate = check_settings(self.store.load())
        except ValueError as e:
            self.renderer.error(str(e))
            return
        if not gate.ok:
            self._explain_missing(gate.missing)
            return

        self.renderer.begin_reply()
        try:
            self._run(self.session.submit(text, system_prompt=self.system_prompt))
        except KeyboardInterrupt:
            self.renderer.cancelled()
        except ConfigIncomplete as e:
            self._explain_missing(e.missing)
        except DuetError as e:
            # The failure panel was already drawn from the session update
            logger.debug("Turn failed: %s", e)
        except ValueError as e:
            self.renderer.error(str(e))
        finally:
            self.renderer.end_reply()

    def new_chat(self) -> None:
        self._run(self.session.new_chat())
        self.console.clear()
        self.renderer.assistant(NEW_CHAT_GREETING)

    def set_system_prompt(self, value: str) -> None:
        g = BRAND["assistant"]
        if not value:
            current = self.system_prompt
            if current is None:
                try:
                    current = self.store.load().system_prompt
                except ValueError as e:
                    self.renderer.error(str(e))
                    return
            self.console.print(f"  System prompt: [{g}]{current or '(none)'}[/{g}]")
            return
        if value.lower() in ("-", "clear", "none"):
            self.system_prompt = ""
            self.console.print("  System prompt cleared for this session")
            return
        self.system_prompt = value
        self.console.print(f"  System prompt set to [{g}]{value}[/{g}]")

    # ── Settings / models ─────────────────────────────────────

    def show_models(self) -> None:
        try:
            settings = self.store.load()
        except ValueError as e:
            self.renderer.error(str(e))
            return
        try:
            models = self._run(fetch_models(settings))
        except DuetError as e:
            a = BRAND["amber"]
            self.console.print(
                f"  [{a}]Could not fetch models:[/{a}] {e}. Showing defaults."
            )
            models = DEFAULT_MODELS[settings.api_type]

        table = Table(title=f"{settings.api_type.value} models", show_lines=False)
        table.add_column("Model", style="bold cyan")
        table.add_column("Name")
        for model_id, name in models.items():
            marker = " ◀" if model_id == settings.model else ""
            table.add_row(model_id + marker, name)
        self.console.print(table)

    def show_settings(self) -> None:
        try:
            settings = self.store.load()
        except ValueError as e:
            self.renderer.error(str(e))
            return
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column(style="bold")
        table.add_column()
        table.add_row("API type", settings.api_type.value)
        table.add_row("Model", settings.model or "(unset)")
        table.add_row("OpenAI URL", settings.openai_api_url or "(unset)")
        table.add_row("OpenAI key", mask_secret(settings.openai_api_key) or "(unset)")
        table.add_row("Gemini key", mask_secret(settings.gemini_api_key) or "(unset)")
        table.add_row("Settings file", str(self.store.path))
        self.console.print(table)

    def _explain_missing(self, missing: list[str]) -> None:
        self.renderer.error(
            "Settings incomplete, missing: " + ", ".join(missing)
        )
        self.console.print(
            f"  [{BRAND['dim']}]Fill them in with "
            f"`duet config set` and try again.[/{BRAND['dim']}]"
        )

    # ── Help / welcome ────────────────────────────────────────

    def _print_welcome(self) -> None:
        self.console.print(Text("duet", style=f"bold {BRAND['assistant']}"), end="")
        self.console.print(Text("  chat with OpenAI-compatible or Gemini models", style=BRAND["dim"]))
        try:
            gate = check_settings(self.store.load())
        except ValueError as e:
            self.renderer.error(str(e))
            return
        if not gate.ok:
            self._explain_missing(gate.missing)
        self.renderer.assistant(NEW_CHAT_GREETING)

    def _show_help(self) -> None:
        g = BRAND["assistant"]
        table = Table.grid(padding=(0, 4))
        table.add_column(style=g, width=18)
        table.add_column(style="dim")
        table.add_row("<message>", "Send a message")
        table.add_row("/new", "Start a new conversation")
        table.add_row("/system [text]", "Show or set the system prompt (/system clear)")
        table.add_row("/models", "List models offered by the configured API")
        table.add_row("/settings", "Show current settings")
        table.add_row("/help", "Show this help")
        table.add_row("/exit", "Exit")
        self.console.print(table)
