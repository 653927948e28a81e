"""Rich display for interactive chat sessions.

Renders assistant answers, tool listings and context statistics. Accepts
an optional :class:`~rich.console.Console` for dependency injection in
tests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rich.status import Status

    from toolrelay.providers.budget import BudgetStats
    from toolrelay.tools.base import ToolDescriptor

_TRUNCATE_LEN = 80

HELP_TEXT = (
    "/clear  forget the conversation\n"
    "/tools  list available tools\n"
    "/stats  show context usage\n"
    "/quit   leave the session"
)


def _truncate(text: str, limit: int = _TRUNCATE_LEN) -> str:
    """Truncate text to *limit* characters with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + " ..."


class ChatDisplay:
    """Rich rendering for the ``chat`` command."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    @property
    def console(self) -> Console:
        return self._console

    # ── Session ──────────────────────────────────────────────────

    def banner(self, provider: str, model: str, tool_count: int) -> None:
        """Print the session header."""
        self._console.rule(
            f"[bold]toolrelay[/bold] {escape(provider)}:{escape(model)}", style="cyan"
        )
        self._console.print(
            f"{tool_count} tools available. Type /help for commands.", style="dim"
        )

    def prompt(self) -> str:
        """Read one line from the user."""
        return self._console.input("[bold green]you>[/bold green] ")

    def thinking(self) -> Status:
        """Spinner shown while a message is in flight."""
        return self._console.status(
            "[bold cyan]thinking...[/bold cyan]", spinner="dots"
        )

    def show_answer(self, text: str) -> None:
        """Render the assistant's answer as markdown."""
        body = Markdown(text) if text.strip() else "[dim](empty response)[/dim]"
        self._console.print(
            Panel(body, title="[bold blue]assistant[/bold blue]", border_style="blue")
        )

    def show_help(self) -> None:
        self._console.print(HELP_TEXT)

    def info(self, msg: str) -> None:
        self._console.print(escape(msg), style="dim")

    def error(self, msg: str) -> None:
        self._console.print(f"[bold red]Error:[/bold red] {escape(msg)}")

    # ── Tools & stats ────────────────────────────────────────────

    def show_tools(self, tools: Sequence[ToolDescriptor]) -> None:
        """Print one row per tool with its parameter names."""
        if not tools:
            self._console.print("No tools available.")
            return
        table = Table(title="Tools", show_lines=False)
        table.add_column("Name", style="bold")
        table.add_column("Description")
        table.add_column("Parameters", style="dim")
        for tool in tools:
            params = []
            for name in tool.properties:
                params.append(f"{name}*" if name in tool.required else name)
            table.add_row(
                escape(tool.name),
                escape(_truncate(tool.description)),
                ", ".join(params) or "-",
            )
        self._console.print(table)

    def show_stats(self, stats: BudgetStats | None, turn_count: int) -> None:
        """Print context usage; adapters without a budget show turns only."""
        if stats is None:
            self._console.print(f"Turns: {turn_count} (no context budget tracked)")
            return
        self._console.print(
            Panel(
                f"Turns: {stats.message_count}\n"
                f"Conversation: ~{stats.estimated_tokens:,} tokens "
                f"({stats.usage_ratio:.0%} of {stats.available_tokens:,})\n"
                f"Tools: ~{stats.tool_tokens:,}  System: ~{stats.system_tokens:,}\n"
                f"Reserved output: {stats.reserved_output:,}  "
                f"Model limit: {stats.model_limit:,}",
                title="[bold magenta]Context[/bold magenta]",
                border_style="magenta",
            )
        )

    def show_providers(self, providers: dict[str, str]) -> None:
        table = Table(title="Providers")
        table.add_column("Provider", style="bold")
        table.add_column("Requires")
        for name, field in providers.items():
            table.add_row(name, field)
        self._console.print(table)
