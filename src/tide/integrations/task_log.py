"""Append-only task log file shared by all workers."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class TaskLogFile:
    """Thread-safe timestamped log of task execution traces.

    Each ``log_line`` / ``log_block`` call is written and flushed under one lock,
    so concurrent writers never interleave within an entry.
    """

    def __init__(self, path: Path, *, clock: Callable[[], datetime] = datetime.now) -> None:
        self.path = path
        self._clock = clock
        self._lock = threading.Lock()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(exist_ok=True)

    def log_line(self, text: str) -> None:
        self._append([text])

    def log_block(self, header: str, body: str) -> None:
        self._append([header, *(f"    {line}" for line in body.splitlines())])

    def _append(self, lines: list[str]) -> None:
        with self._lock:
            stamp = self._clock().strftime(TIMESTAMP_FORMAT)
            payload = "".join(f"[{stamp}] {line}\n" for line in lines)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(payload)
