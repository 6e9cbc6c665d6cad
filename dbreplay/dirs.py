"""Directory checks and listings."""

from __future__ import annotations

import logging
import os
import threading
import uuid
from typing import MutableMapping

log = logging.getLogger(__name__)


class DirPathLenError(ValueError):
    """The directory path is empty."""

    def __init__(self) -> None:
        super().__init__("dir path len is 0")


class DirPathNotDirError(ValueError):
    """The path exists but is not a directory."""

    def __init__(self) -> None:
        super().__init__("the path is not dir")


def check_dir_exist(path: str) -> bool:
    """Return True if path is a directory; raise if missing or not a directory."""
    try:
        st = os.stat(path)
    except OSError as exc:
        log.info("Check dir exist fail , %s", exc)
        raise
    if not os.path.isdir(path) and not _is_dir_mode(st.st_mode):
        log.info("Check dir exist fail , %s is not dir", path)
        raise DirPathNotDirError()
    return True


def _is_dir_mode(mode: int) -> bool:
    import stat

    return stat.S_ISDIR(mode)


def create_temp_file_name_by_uuid() -> str:
    """Return a time-based UUID string for temporary file names."""
    return str(uuid.uuid1())


def check_dir_privileges(path: str) -> bool:
    """Check that a file can be created and removed inside path."""
    file_name = os.path.join(path, f".{create_temp_file_name_by_uuid()}-temp")
    try:
        with open(file_name, "w"):
            pass
    except OSError as exc:
        log.error("create file for check dir privileges fail , %s", exc)
        raise
    try:
        os.remove(file_name)
    except OSError as exc:
        log.error("remove file for check dir privileges fail , %s", exc)
        raise
    return True


def check_dir_exist_and_privileges(path: str) -> bool:
    """Ensure path is a usable directory, creating it when missing."""
    if not path:
        log.error("dir path len is zero")
        raise DirPathLenError()
    try:
        check_dir_exist(path)
    except DirPathNotDirError:
        raise
    except OSError:
        try:
            os.makedirs(path, mode=0o744, exist_ok=True)
        except OSError as exc:
            log.error("make dir fail , %s", exc)
            raise
    try:
        return check_dir_privileges(path)
    except OSError as exc:
        log.error("check dir privileges fail , %s", exc)
        raise


def _regular_entries(path: str):
    with os.scandir(path) as entries:
        for entry in entries:
            if not entry.is_dir(follow_symlinks=False):
                yield entry


def get_file_num_from_path(path: str) -> int:
    """Count the non-directory entries of path; 0 for an empty path."""
    if not path:
        return 0
    return sum(1 for _ in _regular_entries(path))


def get_file_size_from_path(path: str) -> int:
    """Sum the sizes of the non-directory entries of path; 0 for an empty path."""
    if not path:
        return 0
    return sum(entry.stat(follow_symlinks=False).st_size for entry in _regular_entries(path))


def get_data_file(
    file_path: str, files: MutableMapping[str, int], lock: threading.Lock
) -> None:
    """Record the data files found in file_path."""
    get_files_from_path(file_path, files, lock)


def get_files_from_path(
    file_path: str, files: MutableMapping[str, int], lock: threading.Lock
) -> None:
    """Add every non-directory entry name of file_path to files with value 0."""
    for entry in _regular_entries(file_path):
        with lock:
            files[entry.name] = 0