"""
Console output shared by the CLI and the listener
"""
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape


class Output:
    """Thin wrapper over rich consoles with a debug switch."""

    def __init__(
        self,
        debug: bool = False,
        console: Optional[Console] = None,
        error_console: Optional[Console] = None,
    ):
        self.debug_enabled = debug
        self.console = console or Console()
        self.error_console = error_console or Console(stderr=True)

    def log(self, message: str) -> None:
        self.console.print(message)

    def debug(self, message: str) -> None:
        if self.debug_enabled:
            self.console.print(f"[dim]> [debug] {escape(message)}[/dim]")

    def error(self, message: str) -> None:
        self.error_console.print(f"[red]❌ Error:[/red] {escape(message)}")

    def print(self, *objects: Any) -> None:
        """Print rich renderables or raw text as-is."""
        self.console.print(*objects)
