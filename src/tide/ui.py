"""Terminal presentation: banner, live progress lines and the task listing."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable

import click

from tide import __version__
from tide.executor.models import ScheduledTask, TaskGroup, TaskResult, TaskStatus
from tide.executor.summary import format_duration

BANNER = rf"""
╔═══════════════════════════════════════════════════════════╗
║                                                           ║
║     ████████╗██╗██████╗ ███████╗                          ║
║     ╚══██╔══╝██║██╔══██╗██╔════╝                          ║
║        ██║   ██║██║  ██║█████╗                            ║
║        ██║   ██║██║  ██║██╔══╝                            ║
║        ██║   ██║██████╔╝███████╗                          ║
║        ╚═╝   ╚═╝╚═════╝ ╚══════╝                          ║
║                                                           ║
║        🌊  Refresh your system with the update wave       ║
║                         v{__version__:<34}║
╚═══════════════════════════════════════════════════════════╝"""

_STATUS_MARK = {
    TaskStatus.SUCCESS: ("✓", "green"),
    TaskStatus.FAILED: ("✗", "red"),
    TaskStatus.SKIPPED: ("○", "yellow"),
}


class ConsoleProgress:
    """Progress sink writing one line per event; a lock keeps worker lines whole."""

    def __init__(
        self,
        *,
        show_running: bool = True,
        color: bool = True,
        echo: Callable[[str], None] | None = None,
    ) -> None:
        self._show_running = show_running
        self._color = color
        self._echo = echo or (lambda line: click.echo(line, color=color))
        self._lock = threading.Lock()

    def task_started(self, scheduled: ScheduledTask) -> None:
        if not self._show_running:
            return
        self._emit(f"{self._bold(scheduled.progress_label)} Running…")

    def task_finished(self, scheduled: ScheduledTask, result: TaskResult) -> None:
        mark, colour = _STATUS_MARK[result.status]
        detail = f"({format_duration(result.duration)})"
        if result.status == TaskStatus.SKIPPED and result.output:
            detail = f"[skipped: {result.output.strip().splitlines()[0]}]"
        self._emit(
            f"{self._bold(scheduled.progress_label)} "
            f"{self._style(mark, fg=colour)} {self._style(detail, dim=True)}",
        )

    def note(self, message: str) -> None:
        self._emit(self._style(f"⚠️  {message}", fg="yellow"))

    def _emit(self, line: str) -> None:
        with self._lock:
            self._echo(line)

    def _bold(self, text: str) -> str:
        return self._style(text, bold=True)

    def _style(self, text: str, **styles: object) -> str:
        if not self._color:
            return text
        return click.style(text, **styles)


def render_task_list_lines(
    groups: Iterable[TaskGroup],
    *,
    include_groups: Iterable[str] | None = None,
    exclude_groups: Iterable[str] | None = None,
    verbose: bool = False,
) -> list[str]:
    """Render the ``--list`` table of groups and tasks."""

    included = set(include_groups) if include_groups is not None else None
    excluded = set(exclude_groups or ())
    lines = ["📋 Configured Tasks", "═" * 60]
    for group in groups:
        if included is not None and group.name not in included:
            continue
        if group.name in excluded:
            continue
        lines.append("")
        lines.append(f"{group.label} {'✓' if group.enabled else '✗'}")
        if group.description:
            lines.append(f"  {group.description}")
        for task in group.tasks:
            enabled = "✓" if task.enabled else "✗"
            required = "🔴" if task.required else "⚪"
            sudo = "🔐" if task.elevate else "  "
            lines.append(f"  {enabled} {required} {sudo} {task.label}")
            if verbose and task.description:
                lines.append(f"      {task.description}")
            if verbose:
                lines.append(f"      Command: {' '.join(task.command)}")

    lines.extend(
        [
            "",
            "Legend:",
            "  ✓/✗ Enabled/Disabled",
            "  🔴 Required task",
            "  ⚪ Optional task",
            "  🔐 Requires sudo",
        ],
    )
    return lines
