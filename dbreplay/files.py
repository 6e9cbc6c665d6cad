"""Output file naming and opening."""

from __future__ import annotations

import os
import threading
from typing import BinaryIO


class FileNameSequence:
    """Thread-safe counter used to build output file name suffixes."""

    def __init__(self, start: int = 1) -> None:
        self._value = start
        self._lock = threading.Lock()

    def current(self) -> int:
        """Return the current sequence number."""
        with self._lock:
            return self._value

    def next_suffix(self) -> str:
        """Advance the sequence and return the suffix for the new number."""
        with self._lock:
            self._value += 1
            return f"-{self._value}"


FILE_NAME_SEQUENCE = FileNameSequence()


def open_file(path: str, file_name: str) -> BinaryIO:
    """Create or truncate path/file_name and open it for reading and writing."""
    if not path or not file_name:
        raise ValueError("path or filename len is 0")
    full_name = path + "/" + file_name
    fd = os.open(full_name, os.O_RDWR | os.O_CREAT | os.O_TRUNC, 0o755)
    return os.fdopen(fd, "r+b")