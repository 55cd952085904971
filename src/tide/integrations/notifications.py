"""Desktop notifications through AppleScript ``display notification``."""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Callable

logger = logging.getLogger(__name__)

OSASCRIPT_EXECUTABLE = "osascript"
_ERROR_PREVIEW_CHARS = 100
_NOTIFY_TIMEOUT_SECONDS = 5.0

Sender = Callable[[str, str], None]


def osascript_sender(title: str, body: str) -> None:
    script = (
        f"display notification {_applescript_string(body)} "
        f"with title {_applescript_string(title)}"
    )
    subprocess.run(  # noqa: S603
        [OSASCRIPT_EXECUTABLE, "-e", script],
        check=True,
        stdin=subprocess.DEVNULL,
        capture_output=True,
        timeout=_NOTIFY_TIMEOUT_SECONDS,
    )


class DesktopNotifier:
    """Best-effort desktop alerts; delivery problems are logged and dropped."""

    def __init__(self, *, enabled: bool = True, sender: Sender | None = None) -> None:
        if sender is None and shutil.which(OSASCRIPT_EXECUTABLE) is None:
            enabled = False
        self.enabled = enabled
        self._sender = sender or osascript_sender

    def interactive_input_detected(self, task_name: str, group_name: str) -> None:
        self._send(
            "🌊 Tide - Interaction Required",
            f"Task '{task_name}' (group: {group_name}) appears to be waiting for interactive "
            "input.\nCheck your terminal or consider setting 'sudo = true' in config.",
        )

    def task_timed_out(self, task_name: str, group_name: str, seconds: float) -> None:
        self._send(
            "⚠️ Tide - Task Timeout",
            f"Task '{task_name}' (group: {group_name}) timed out after {seconds:g} seconds.\n"
            "It may be waiting for input or stuck.",
        )

    def task_failed(self, task_name: str, group_name: str, reason: str) -> None:
        preview = reason
        if len(preview) > _ERROR_PREVIEW_CHARS:
            preview = f"{preview[:_ERROR_PREVIEW_CHARS]}..."
        self._send(
            "❌ Tide - Task Failed",
            f"Task '{task_name}' (group: {group_name}) failed:\n{preview}",
        )

    def elevation_required(self) -> None:
        self._send(
            "🔐 Tide - Sudo Password Required",
            "Some tasks require sudo privileges.\n"
            "Please check your terminal to enter your password.",
        )

    def all_tasks_complete(self, success_count: int, total_seconds: float) -> None:
        self._send(
            "✅ Tide - All Tasks Complete",
            f"{success_count} tasks completed successfully in {int(total_seconds)} seconds.",
        )

    def _send(self, title: str, body: str) -> None:
        if not self.enabled:
            return
        try:
            self._sender(title, body)
        except (OSError, subprocess.SubprocessError) as error:
            logger.debug("Desktop notification failed: %s", error)


def _applescript_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
