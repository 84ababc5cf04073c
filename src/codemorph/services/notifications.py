"""User-facing notification interfaces used by the update command."""

from contextlib import AbstractContextManager
from typing import Optional, Protocol


class ProgressReporter(Protocol):
    """Receives milestone updates while an update runs."""

    def report(self, percent: int, message: str) -> None:
        """Show progress at `percent` (0-100) with a short status message."""
        ...


class Notifier(Protocol):
    """Contract for showing messages and progress to the user."""

    def info(self, message: str) -> None:
        ...

    def warning(self, message: str) -> None:
        ...

    def error(self, message: str, *actions: str) -> Optional[str]:
        """Show an error, optionally offering actions.

        Returns:
            The action the user picked, or None if dismissed
        """
        ...

    def progress(self, title: str) -> AbstractContextManager[ProgressReporter]:
        """Open a progress indicator for the duration of the `with` block."""
        ...
