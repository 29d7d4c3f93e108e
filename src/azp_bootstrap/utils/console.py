"""Rich console helpers for user-facing output."""

from rich.console import Console
from rich.panel import Panel

_console: Console | None = None


def get_console() -> Console:
    """Get the shared console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def print_success(message: str) -> None:
    """Print a success message."""
    get_console().print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    get_console().print(f"[red]✗[/red] {message}", style="red")


def print_warning(message: str) -> None:
    """Print a warning message."""
    get_console().print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    """Print an informational message."""
    get_console().print(f"[cyan]ℹ[/cyan] {message}")


def print_header(message: str) -> None:
    """Print a section header (bold light cyan with surrounding blank lines)."""
    get_console().print(f"\n[bold bright_cyan]{message}[/bold bright_cyan]\n")


def print_panel(message: str, title: str | None = None, style: str = "cyan") -> None:
    """Print a message inside a bordered panel."""
    get_console().print(Panel(message, title=title, border_style=style))
