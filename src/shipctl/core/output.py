"""Output formatting utilities using Rich."""

import json
from enum import Enum
from typing import Any

import yaml
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from shipctl.core.logging import SessionLog

console = Console()
error_console = Console(stderr=True)


class OutputFormat(str, Enum):
    """Supported output formats."""

    TABLE = "table"
    JSON = "json"
    YAML = "yaml"


class OutputFormatter:
    """Handles operator-facing output for CLI commands.

    When a session log is attached, every labeled status line is mirrored to
    it as plain text, whatever the console settings are.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.TABLE,
        color: bool = True,
        quiet: bool = False,
        sink: SessionLog | None = None,
    ):
        self.format = format
        self.color = color
        self.quiet = quiet
        self.sink = sink
        self._console = Console(force_terminal=color, no_color=not color, highlight=False)
        self._error_console = error_console if color else Console(stderr=True, no_color=True)

    def attach(self, sink: SessionLog | None) -> None:
        """Mirror subsequent status lines to a session log."""
        self.sink = sink

    def _mirror(self, label: str, message: str) -> None:
        if self.sink is not None:
            self.sink.write(f"[{label}] {message}")

    def print(self, message: str, style: str | None = None) -> None:
        """Print a message to stdout."""
        if self.quiet:
            return
        self._console.print(message, style=style)

    def print_status(self, message: str) -> None:
        """Print a progress message."""
        self._mirror("INFO", message)
        if self.quiet:
            return
        self._console.print(f"[blue]\\[INFO][/blue]    {escape(message)}")

    def print_error(self, message: str) -> None:
        """Print an error message to stderr."""
        self._mirror("ERROR", message)
        self._error_console.print(f"[red]\\[ERROR][/red]   {escape(message)}")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self._mirror("WARNING", message)
        if self.quiet:
            return
        self._console.print(f"[yellow]\\[WARNING][/yellow] {escape(message)}")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self._mirror("SUCCESS", message)
        if self.quiet:
            return
        self._console.print(f"[green]\\[SUCCESS][/green] {escape(message)}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self._mirror("INFO", message)
        if self.quiet:
            return
        self._console.print(f"[blue]ℹ[/blue] {escape(message)}")

    def print_health(self, message: str) -> None:
        """Print a health message."""
        self._mirror("HEALTH", message)
        if self.quiet:
            return
        self._console.print(f"[cyan]\\[HEALTH][/cyan]  {escape(message)}")

    def print_data(
        self,
        data: list[dict[str, Any]] | dict[str, Any],
        headers: list[str] | None = None,
        title: str | None = None,
    ) -> None:
        """Print data in the configured format."""
        if self.format == OutputFormat.JSON:
            self._print_json(data)
        elif self.format == OutputFormat.YAML:
            self._print_yaml(data)
        else:
            self._print_table(data, headers, title)

    def print_table(self, table: Table) -> None:
        """Print a pre-built Rich table."""
        if self.quiet:
            return
        self._console.print(table)

    def _print_json(self, data: Any) -> None:
        json_str = json.dumps(data, indent=2, default=str)
        if self.color:
            self._console.print(Syntax(json_str, "json", theme="monokai"))
        else:
            print(json_str)

    def _print_yaml(self, data: Any) -> None:
        yaml_str = yaml.dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)
        if self.color:
            self._console.print(Syntax(yaml_str, "yaml", theme="monokai"))
        else:
            print(yaml_str)

    def _print_table(
        self,
        data: list[dict[str, Any]] | dict[str, Any],
        headers: list[str] | None = None,
        title: str | None = None,
    ) -> None:
        if isinstance(data, dict):
            # Single record - display as key-value pairs
            table = Table(title=title, show_header=True, header_style="bold cyan")
            table.add_column("Field", style="dim")
            table.add_column("Value")
            for key, value in data.items():
                table.add_row(str(key), str(value))
            self._console.print(table)
        elif isinstance(data, list) and len(data) > 0:
            if headers is None:
                headers = list(data[0].keys())

            table = Table(title=title, show_header=True, header_style="bold cyan")
            for header in headers:
                table.add_column(header)

            for row in data:
                table.add_row(*[str(row.get(h, "")) for h in headers])

            self._console.print(table)
        else:
            self._console.print("[dim]No data to display[/dim]")

    def print_panel(self, content: str, title: str | None = None, style: str = "blue") -> None:
        """Print content in a panel."""
        if self.sink is not None:
            if title:
                self.sink.write(title)
            self.sink.write(content)
        if self.quiet:
            return
        self._console.print(Panel(content, title=title, border_style=style))


def format_duration(seconds: float) -> str:
    """Format seconds to human-readable duration."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        return f"{seconds / 60:.1f}m"
    else:
        return f"{seconds / 3600:.1f}h"
