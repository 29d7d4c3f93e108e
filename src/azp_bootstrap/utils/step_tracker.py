"""Step tracker for displaying progress through the agent lifecycle."""

from azp_bootstrap.utils.console import get_console


class StepTracker:
    """Track and display progress through numbered lifecycle steps.

    Steps run external processes whose output is streamed to the terminal,
    so each step prints its own header line instead of rewriting one line.

    Example:
        >>> tracker = StepTracker(4)
        >>> tracker.start_step("Determining matching Azure Pipelines agent")
        >>> # ... do work ...
        >>> tracker.complete_step("Agent 4.248.0 for linux-x64")
    """

    def __init__(self, total_steps: int):
        """Initialize step tracker.

        Args:
            total_steps: Total number of steps to track
        """
        self.total_steps = total_steps
        self.current_step = 0
        self.console = get_console()
        self._current_message: str | None = None

    def _prefix(self) -> str:
        return f"[{self.current_step}/{self.total_steps}]"

    def start_step(self, message: str) -> None:
        """Start a new step.

        Args:
            message: Description of the step being started
        """
        self.current_step += 1
        self._current_message = message
        self.console.print(
            f"\n[bold bright_cyan]{self._prefix()} {message}...[/bold bright_cyan]\n"
        )

    def complete_step(self, message: str | None = None) -> None:
        """Mark current step as complete.

        Args:
            message: Optional completion message (uses start message if not provided)
        """
        if message is None:
            message = self._current_message or "Done"
        self.console.print(f"[green]✓[/green] [cyan bold]{self._prefix()}[/cyan bold] {message}")

    def fail_step(self, message: str | None = None, error: str | None = None) -> None:
        """Mark current step as failed.

        Args:
            message: Optional failure message
            error: Optional error details
        """
        if message is None:
            message = self._current_message or "Failed"
        self.console.print(f"[red]✗[/red] [cyan bold]{self._prefix()}[/cyan bold] {message}")
        if error:
            self.console.print(f"  [red]{error}[/red]")

    def skip_step(self, message: str | None = None) -> None:
        """Mark the next step as skipped.

        Args:
            message: Optional skip message
        """
        if message is None:
            message = "Skipped"
        self.current_step += 1
        self.console.print(f"[yellow]○[/yellow] [cyan bold]{self._prefix()}[/cyan bold] {message}")
