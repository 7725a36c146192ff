"""
Temporary batch file writer.

The consumer appends one record per line to the currently open temp file.
rotate() closes it, opens a fresh one and reports the closed path, marking a
batch boundary for the outputs.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, TextIO

from utils.exceptions import WriterError

logger = logging.getLogger(__name__)


class TmpWriter:
    """Line-oriented writer over a rotating temp file."""

    def __init__(self, directory: Optional[str] = None, prefix: str = "audit_logs_") -> None:
        self.directory = Path(directory) if directory else Path(tempfile.gettempdir())
        self.prefix = prefix
        self.current_path: Optional[Path] = None
        self.last_file_path: Optional[Path] = None
        self._file: Optional[TextIO] = None

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriterError(f"Unable to create temp directory {self.directory}: {e}") from e

        self._open()

    def _open(self) -> None:
        try:
            fd, name = tempfile.mkstemp(prefix=self.prefix, suffix=".jsonl", dir=str(self.directory))
            self._file = os.fdopen(fd, "w", encoding="utf-8")
        except OSError as e:
            raise WriterError(f"Unable to open temp file in {self.directory}: {e}") from e
        self.current_path = Path(name)
        logger.debug("Opened temp file: %s", self.current_path)

    def write_log(self, message: str) -> None:
        """Append one record as a line."""
        if self._file is None:
            raise WriterError("Temp writer is closed")
        try:
            self._file.write(message)
            self._file.write("\n")
        except OSError as e:
            raise WriterError(f"Unable to write to temp file {self.current_path}: {e}") from e

    def rotate(self) -> Path:
        """Close the current file, start a new one, and return the closed path."""
        if self._file is None:
            raise WriterError("Temp writer is closed")
        try:
            self._file.close()
        except OSError as e:
            raise WriterError(f"Unable to close temp file {self.current_path}: {e}") from e

        self.last_file_path = self.current_path
        self._open()

        logger.debug("Rotated temp file: closed=%s, current=%s", self.last_file_path, self.current_path)
        return self.last_file_path

    def close(self) -> None:
        """Close and discard the open file and any rotated batch left behind.

        Records in them belong to a window that was never checkpointed, so they
        are fetched again on the next run.
        """
        if self._file is None:
            return
        self._file.close()
        self._file = None
        for path in (self.current_path, self.last_file_path):
            if path is not None:
                path.unlink(missing_ok=True)
