"""Terminal transcript rendering for duet.

The renderer is an append-only list of role-tagged blocks. While a reply
streams, a Rich Live panel is repainted from each StreamChunk snapshot;
once the exchange ends the panel is frozen in place and the next block
goes below it.
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.spinner import Spinner
from rich.text import Text

from duet.schemas.streaming import SessionState, StreamChunk

# ── Brand Colors ──────────────────────────────────────────────────

BRAND = {
    "user": "#5fafff",
    "assistant": "#00ff88",
    "system": "#D4A843",
    "dim": "#6a8a6a",
    "red": "#ff4444",
    "amber": "#ffaa00",
}

NEW_CHAT_GREETING = "Hi! A brand-new conversation has started."


def _block(role: str, body: Text | Spinner | Group, *, style: str | None = None) -> Panel:
    color = style or BRAND.get(role, "white")
    return Panel(
        body,
        title=f"[bold {color}]{role}[/bold {color}]",
        title_align="left",
        border_style=color,
    )


class TranscriptRenderer:
    """Rich-backed transcript that consumes StreamChunk updates.

    ``on_update`` is the callback handed to StreamSession. It never raises
    for any chunk the session can emit.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self._live: Live | None = None

    # ── Static blocks ─────────────────────────────────────────

    def user(self, text: str) -> None:
        self.console.print(_block("user", Text(text)))

    def assistant(self, text: str) -> None:
        self.console.print(_block("assistant", Text(text)))

    def notice(self, text: str) -> None:
        self.console.print(f"[{BRAND['dim']}]{text}[/{BRAND['dim']}]")

    def error(self, text: str) -> None:
        self.end_reply()
        self.console.print(f"[bold {BRAND['red']}]Error:[/bold {BRAND['red']}] {text}")

    # ── Streaming reply ───────────────────────────────────────

    def begin_reply(self) -> None:
        """Show a thinking indicator until the first delta arrives."""
        self.end_reply()
        self._live = Live(
            _block("assistant", Spinner("dots", text=Text("thinking…", style=BRAND["dim"]))),
            console=self.console,
            refresh_per_second=12,
            transient=False,
        )
        self._live.start()

    def on_update(self, chunk: StreamChunk) -> None:
        """Repaint from one session update."""
        if chunk.state is SessionState.FAILED:
            self._show_failure(chunk)
            return

        panel = _block("assistant", Text(chunk.accumulated))
        if self._live is None and chunk.is_complete:
            self.console.print(panel)
            return
        if self._live is None:
            self.begin_reply()
        self._live.update(panel, refresh=True)
        if chunk.is_complete:
            self.end_reply()

    def cancelled(self) -> None:
        """Close the live panel after the user abandoned a reply."""
        if self._live is not None:
            self._live.update(
                _block("assistant", Text("(reply cancelled)", style=BRAND["dim"])),
                refresh=True,
            )
        self.end_reply()

    def end_reply(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    def _show_failure(self, chunk: StreamChunk) -> None:
        body = Text()
        if chunk.accumulated:
            body.append(chunk.accumulated + "\n\n", style=BRAND["dim"])
        body.append(f"Request failed: {chunk.error}", style=f"bold {BRAND['red']}")
        panel = _block("assistant", body, style=BRAND["red"])
        if self._live is not None:
            self._live.update(panel, refresh=True)
            self.end_reply()
        else:
            self.console.print(panel)
