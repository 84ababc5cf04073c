"""File operations: atomic writes and the in-memory document buffer.

A TextDocument plays the part of an editor buffer. The update command reads
it, replaces its whole content in one edit, and only touches the disk when
the buffer is saved.
"""

import asyncio
import os
import shutil
import tempfile
import structlog
from pathlib import Path
from typing import Optional

from codemorph.services.file_monitor import FileMonitor
from codemorph.services.exceptions import FileModifiedError

logger = structlog.get_logger()


def _check_unmodified(path: Path, file_monitor: Optional[FileMonitor], stage: str) -> None:
    if file_monitor and file_monitor.is_modified(path):
        raise FileModifiedError(str(path), f"File was modified on disk ({stage} check)")


def _read_text(path: Path) -> str:
    # Line endings are kept as-is; atomic_write writes them back untranslated
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def atomic_write(
    path: Path,
    content: str,
    file_monitor: Optional[FileMonitor] = None
) -> None:
    """
    Replace a file's content without ever leaving it half written.

    The content goes to a temporary file in the same directory, is fsynced,
    and is renamed over the target. With a FileMonitor the target is checked
    for external changes twice: before anything is written ("early") and
    right before the rename ("late"). The target's permission bits are copied
    to the new file.

    Args:
        path: Target file path
        content: Text to write (UTF-8)
        file_monitor: Optional monitor holding the mtime recorded on open

    Raises:
        FileModifiedError: If the target changed since it was recorded
        OSError: On file I/O errors
    """
    _check_unmodified(path, file_monitor, "early")

    fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    temp_path = Path(temp_name)

    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        if path.exists():
            shutil.copymode(path, temp_path)
        else:
            # mkstemp creates 0600, new files get the usual umask-based mode
            umask = os.umask(0)
            os.umask(umask)
            os.chmod(temp_path, 0o666 & ~umask)

        _check_unmodified(path, file_monitor, "late")

        os.replace(temp_path, path)
    except Exception as e:
        temp_path.unlink(missing_ok=True)
        if not isinstance(e, FileModifiedError):
            logger.error("atomic_write_failed", path=str(path), error=str(e))
        raise

    if file_monitor:
        file_monitor.refresh(path)

    logger.debug("atomic_write_success", path=str(path), size=len(content))


class TextDocument:
    """
    In-memory text buffer backed by a file.

    Edits change the buffer only; `save()` flushes it to disk through
    `atomic_write`. When a FileMonitor is supplied, the file's mtime is
    recorded on open and saving refuses to clobber external changes.

    Example:
        >>> document = await TextDocument.open(Path("app.py"))
        >>> text = document.get_text()
        >>> document.replace(0, len(text), "print('hi')\\n")
        >>> await document.save()
    """

    def __init__(self, path: Path, text: str, file_monitor: Optional[FileMonitor] = None):
        self.path = path
        self._text = text
        self._file_monitor = file_monitor
        self._dirty = False

    @classmethod
    async def open(cls, path: Path, file_monitor: Optional[FileMonitor] = None) -> "TextDocument":
        """
        Read a file into a new document.

        Args:
            path: File to open
            file_monitor: Optional monitor recording the file's mtime and size

        Raises:
            FileNotFoundError: If the file doesn't exist
            IsADirectoryError: If path is a directory
            UnicodeDecodeError: If the file is not valid UTF-8
            FileModifiedError: If the file changed while it was being read
        """
        if file_monitor:
            file_monitor.record(path)
        text = await asyncio.to_thread(_read_text, path)
        if file_monitor and file_monitor.is_modified(path):
            raise FileModifiedError(str(path), "File changed on disk while it was being read")

        logger.debug("document_opened", path=str(path), length=len(text))
        return cls(path, text, file_monitor)

    def get_text(self) -> str:
        return self._text

    @property
    def is_dirty(self) -> bool:
        """True when the buffer holds edits that were not saved."""
        return self._dirty

    def replace(self, start: int, end: int, new_text: str) -> None:
        """
        Replace the buffer range [start, end) with new_text in one edit.

        Offsets are in the coordinate space of the buffer before the edit.

        Raises:
            ValueError: If the range falls outside the buffer
        """
        if not 0 <= start <= end <= len(self._text):
            raise ValueError(
                f"Edit range {start}..{end} is outside the document (length {len(self._text)})"
            )

        self._text = self._text[:start] + new_text + self._text[end:]
        self._dirty = True

        logger.debug(
            "document_edited",
            path=str(self.path),
            start=start,
            end=end,
            new_length=len(self._text),
        )

    async def save(self) -> None:
        """
        Write the buffer to disk atomically.

        Raises:
            FileModifiedError: If the file changed on disk since it was opened
            OSError: On file I/O errors
        """
        await asyncio.to_thread(atomic_write, self.path, self._text, self._file_monitor)
        self._dirty = False
        logger.info("document_saved", path=str(self.path), size=len(self._text))
