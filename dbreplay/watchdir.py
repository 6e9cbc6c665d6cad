"""Watching a directory for newly created entries."""

from __future__ import annotations

import logging
import os
import threading
from typing import MutableMapping

log = logging.getLogger(__name__)


def watch_dir_create_file(
    file_path: str,
    files: MutableMapping[str, int],
    lock: threading.Lock,
    stop: threading.Event,
    interval: float = 0.1,
) -> None:
    """Poll file_path every interval seconds and record new entry names in files.

    Entries already present when watching starts are not recorded. Blocks until
    stop is set. Raises OSError if file_path cannot be listed at the start.
    """
    seen = set(os.listdir(file_path))
    while not stop.wait(interval):
        try:
            current = set(os.listdir(file_path))
        except OSError as exc:
            log.error("%s", exc)
            continue
        created = current - seen
        if created:
            with lock:
                for name in sorted(created):
                    files[name] = 0
        seen = current