"""Console feedback for CLI operations.

Messages go to stderr so the updated file content can be piped from stdout.
"""

import sys
from contextlib import contextmanager
from typing import Iterator, Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TaskProgressColumn, TextColumn
from rich.prompt import Prompt

from codemorph.services.notifications import ProgressReporter

DISMISS = "Dismiss"


class ConsoleProgress:
    """Progress reporter driving a rich progress bar."""

    def __init__(self, progress: Progress, task_id: TaskID, title: str):
        self._progress = progress
        self._task_id = task_id
        self._title = title

    def report(self, percent: int, message: str) -> None:
        self._progress.update(
            self._task_id,
            completed=percent,
            description=f"[bold cyan]{escape(self._title)}[/bold cyan] {escape(message)}",
        )


class ConsoleNotifier:
    """
    Notifier that prints to the terminal with rich.

    Args:
        console: Console to print to (default: a stderr console)
        interactive: Whether error actions may prompt the user. Defaults to
            True when stdin is a terminal.
    """

    def __init__(self, console: Optional[Console] = None, interactive: Optional[bool] = None):
        self.console = console or Console(stderr=True)
        if interactive is None:
            interactive = sys.stdin.isatty()
        self.interactive = interactive

    def info(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠[/yellow] {escape(message)}")

    def error(self, message: str, *actions: str) -> Optional[str]:
        """Show an error; with actions and a terminal, ask which one to take.

        Returns:
            The chosen action, or None when dismissed or not interactive
        """
        self.console.print(f"[red]✗[/red] {escape(message)}")

        if not actions or not self.interactive:
            return None

        options = [*actions, DISMISS]
        for number, option in enumerate(options, 1):
            self.console.print(f"  [cyan]{number}[/cyan]. {escape(option)}")

        choice = Prompt.ask(
            "[bold cyan]Choice[/bold cyan]",
            choices=[str(n) for n in range(1, len(options) + 1)],
            default=str(len(options)),
            console=self.console,
        )
        selected = options[int(choice) - 1]
        return None if selected == DISMISS else selected

    @contextmanager
    def progress(self, title: str) -> Iterator[ProgressReporter]:
        """Show a transient progress bar while the block runs."""
        columns = (
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
        )
        with Progress(*columns, console=self.console, transient=True) as progress:
            task_id = progress.add_task(f"[bold cyan]{escape(title)}[/bold cyan]", total=100)
            yield ConsoleProgress(progress, task_id, title)
