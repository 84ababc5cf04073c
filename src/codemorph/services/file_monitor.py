"""Detect files changed on disk by someone else while an update runs."""

from pathlib import Path
from typing import Dict, Tuple

# (st_mtime_ns, st_size)
Signature = Tuple[int, int]


def _signature(path: Path) -> Signature:
    info = path.stat()
    return info.st_mtime_ns, info.st_size


class FileMonitor:
    """
    Remember what a file looked like when it was opened.

    An update can take many seconds while the model generates. The monitor
    records the target's mtime and size on open so a save can refuse to
    overwrite edits made in the meantime. Size is compared too, which catches
    a rewrite that lands within the filesystem's mtime granularity.

    Example:
        >>> monitor = FileMonitor()
        >>> monitor.record(Path("app.py"))
        >>> # Later, before writing:
        >>> if monitor.is_modified(Path("app.py")):
        ...     raise FileModifiedError("app.py")
    """

    def __init__(self) -> None:
        self._seen: Dict[Path, Signature] = {}

    def record(self, path: Path) -> None:
        """
        Start tracking path in its current state.

        Raises:
            FileNotFoundError: If file doesn't exist
        """
        self._seen[path] = _signature(path)

    def is_modified(self, path: Path) -> bool:
        """
        True if path differs from its recorded state.

        A file that was never recorded counts as modified, and so does a
        recorded file that has since been deleted.
        """
        recorded = self._seen.get(path)
        if recorded is None:
            return True
        try:
            return _signature(path) != recorded
        except FileNotFoundError:
            return True

    def refresh(self, path: Path) -> None:
        """Accept the current state, typically right after writing the file ourselves."""
        self._seen[path] = _signature(path)

    def forget(self, path: Path) -> None:
        self._seen.pop(path, None)
