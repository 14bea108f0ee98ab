"""Terminal output for install/uninstall progress.

A small facade over a rich Console so deployment units report progress
without knowing how it is rendered.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from rich.console import Console
from rich.table import Table


class UI:
    """User-facing messages for deployment units and the installer."""

    def __init__(self, console: Console | None = None, quiet: bool = False):
        """Initialize UI.

        Args:
            console: Console to write to (default: stdout).
            quiet: Suppress everything but problems.
        """
        self.console = console or Console()
        self.quiet = quiet

    def note(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"[cyan]{message}[/cyan]")

    def success(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"[green]✓[/green] {message}")

    def exclamation(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"[yellow]⚠[/yellow] {message}")

    def problem(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")

    def show_values(self, title: str, values: dict[str, Any]) -> None:
        """Print a two-column table of names and values."""
        if self.quiet:
            return
        table = Table(title=title, show_header=False)
        table.add_column("Name", style="cyan")
        table.add_column("Value")
        for name, value in values.items():
            table.add_row(name, str(value))
        self.console.print(table)

    @contextmanager
    def progress(self, message: str) -> Iterator[None]:
        """Show a spinner while the wrapped block runs."""
        if self.quiet:
            yield
            return
        with self.console.status(message):
            yield
