"""Collaborator protocols consumed by the execution engine."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from tide.executor.models import ScheduledTask, TaskResult

logger = logging.getLogger(__name__)


class SecretStore(Protocol):
    """Opaque label -> secret lookup (keychain, credential vault, ...)."""

    def exists(self, label: str) -> bool:
        """Return True when a secret is stored under ``label``."""

    def get(self, label: str) -> str | None:
        """Return the stored secret or None when not found."""

    def put(self, label: str, secret: str) -> None:
        """Persist ``secret`` under ``label``; raise ``SecretStoreError`` on failure."""


class PromptSource(Protocol):
    """Interactive question capability; None means the user cancelled."""

    def ask_secret(self, question: str) -> str | None:
        """Read a hidden answer."""

    def confirm(self, question: str, *, default: bool = True) -> bool:
        """Ask a yes/no question."""


class ElevationBackend(Protocol):
    """Privilege escalation mechanism (sudo)."""

    command: str

    def probe(self) -> bool:
        """Non-interactive check: would escalation succeed without prompting?"""

    def authenticate(self, secret: str) -> bool:
        """Refresh the cached session with ``secret``; True when accepted."""


class Notifier(Protocol):
    """Fire-and-forget desktop alerts. Implementations must not raise."""

    def interactive_input_detected(self, task_name: str, group_name: str) -> None: ...

    def task_timed_out(self, task_name: str, group_name: str, seconds: float) -> None: ...

    def task_failed(self, task_name: str, group_name: str, reason: str) -> None: ...

    def elevation_required(self) -> None: ...

    def all_tasks_complete(self, success_count: int, total_seconds: float) -> None: ...


class TaskLog(Protocol):
    """Append-only, timestamp-prefixed log sink, safe for concurrent writers."""

    def log_line(self, text: str) -> None: ...

    def log_block(self, header: str, body: str) -> None: ...


class ProgressSink(Protocol):
    """Thread-safe progress output shared by all workers."""

    def task_started(self, scheduled: ScheduledTask) -> None: ...

    def task_finished(self, scheduled: ScheduledTask, result: TaskResult) -> None: ...

    def note(self, message: str) -> None: ...


class NullNotifier:
    """Notifier used when desktop notifications are disabled."""

    def interactive_input_detected(self, task_name: str, group_name: str) -> None:
        return None

    def task_timed_out(self, task_name: str, group_name: str, seconds: float) -> None:
        return None

    def task_failed(self, task_name: str, group_name: str, reason: str) -> None:
        return None

    def elevation_required(self) -> None:
        return None

    def all_tasks_complete(self, success_count: int, total_seconds: float) -> None:
        return None


class NullProgress:
    """Progress sink that discards everything."""

    def task_started(self, scheduled: ScheduledTask) -> None:
        return None

    def task_finished(self, scheduled: ScheduledTask, result: TaskResult) -> None:
        return None

    def note(self, message: str) -> None:
        return None


def deliver(callback: Callable[..., object], *args: object) -> None:
    """Invoke a notifier or progress callback; its failures never reach the caller."""

    try:
        callback(*args)
    except Exception:  # noqa: BLE001
        logger.debug(
            "%s failed",
            getattr(callback, "__qualname__", repr(callback)),
            exc_info=True,
        )
