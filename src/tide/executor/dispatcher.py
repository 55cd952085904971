"""Task Dispatcher: select, partition and schedule tasks for one run."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace

from tide.executor.elevation import CredentialNegotiator
from tide.executor.environment import command_exists
from tide.executor.models import (
    ELEVATION_COMMAND,
    RunSettings,
    ScheduledTask,
    TaskGroup,
    TaskResult,
    TaskStatus,
)
from tide.executor.ports import (
    Notifier,
    NullNotifier,
    NullProgress,
    ProgressSink,
    TaskLog,
    deliver,
)
from tide.executor.runner import CommandRunner, lint_command
from tide.executor.summary import format_duration

logger = logging.getLogger(__name__)

_STATUS_PREFIX = {
    TaskStatus.SUCCESS: "✓ SUCCESS",
    TaskStatus.FAILED: "✗ FAILED",
    TaskStatus.SKIPPED: "○ SKIPPED",
}


def select_tasks(
    groups: Iterable[TaskGroup],
    *,
    include_groups: Iterable[str] | None = None,
    exclude_groups: Iterable[str] | None = None,
) -> list[ScheduledTask]:
    """Flatten enabled tasks of enabled groups that pass the include/exclude filters."""

    included = set(include_groups) if include_groups is not None else None
    excluded = set(exclude_groups or ())
    selected: list[ScheduledTask] = []
    for group in groups:
        if not group.enabled:
            continue
        if included is not None and group.name not in included:
            continue
        if group.name in excluded:
            continue
        selected.extend(
            ScheduledTask(
                task=task,
                group_name=group.name,
                group_icon=group.icon,
                group_parallel=group.parallel,
            )
            for task in group.tasks
            if task.enabled
        )
    return selected


def partition_tasks(
    scheduled: Iterable[ScheduledTask],
    *,
    parallel_execution: bool,
) -> tuple[list[ScheduledTask], list[ScheduledTask]]:
    """Split into (sequential, parallel) bins, preserving configuration order."""

    sequential: list[ScheduledTask] = []
    parallel: list[ScheduledTask] = []
    for item in scheduled:
        if item.group_parallel or (parallel_execution and not item.task.elevate):
            parallel.append(item)
        else:
            sequential.append(item)
    return sequential, parallel


class TaskDispatcher:
    """Runs the sequential bin on the calling thread, then the parallel bin behind a gate.

    Pre-authorization and every interactive prompt happen on the calling
    thread only. The dispatcher never raises for task problems: every selected
    task yields exactly one ``TaskResult``.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        runner: CommandRunner,
        settings: RunSettings,
        negotiator: CredentialNegotiator | None = None,
        notifier: Notifier | None = None,
        progress: ProgressSink | None = None,
        task_log: TaskLog | None = None,
        command_probe: Callable[[str, Mapping[str, str]], bool] = command_exists,
    ) -> None:
        self._runner = runner
        self._settings = settings
        self._negotiator = negotiator
        self._notifier = notifier or NullNotifier()
        self._progress = progress or NullProgress()
        self._task_log = task_log
        self._command_probe = command_probe

    def dispatch(self, groups: Iterable[TaskGroup]) -> list[TaskResult]:
        scheduled = select_tasks(
            groups,
            include_groups=self._settings.include_groups,
            exclude_groups=self._settings.exclude_groups,
        )
        return self.run(scheduled)

    def run(self, scheduled: list[ScheduledTask]) -> list[TaskResult]:
        if not scheduled:
            return []

        self.preauthorize_if_needed(scheduled)
        sequential, parallel = partition_tasks(
            scheduled,
            parallel_execution=self._settings.parallel_execution,
        )
        logger.info(
            "Dispatching %d tasks: sequential=%d parallel=%d gate=%d",
            len(scheduled),
            len(sequential),
            len(parallel),
            self._settings.gate_size,
        )
        results = self.run_sequential(sequential)
        results.extend(self.run_parallel(parallel))
        return results

    def preauthorize_if_needed(self, scheduled: list[ScheduledTask]) -> bool:
        """Front-load the sudo prompt once per run. Returns True when attempted."""

        if self._negotiator is None or self._settings.dry_run or not self._settings.preauthorize:
            return False
        if not any(_may_need_elevation(item) for item in scheduled):
            return False
        if not self._command_probe(self._negotiator.command, self._runner.environment):
            logger.debug("%s not found on PATH; skipping pre-authorization", ELEVATION_COMMAND)
            return False
        self._negotiator.preauthorize(self._settings.keychain_label)
        return True

    def run_sequential(self, tasks: list[ScheduledTask]) -> list[TaskResult]:
        results: list[TaskResult] = []
        for index, scheduled in enumerate(tasks):
            result = self.execute_task(scheduled, interactive=True)
            results.append(result)
            if result.status == TaskStatus.FAILED and self._settings.skip_optional_on_error:
                remaining = len(tasks) - index - 1
                if remaining:
                    deliver(
                        self._progress.note,
                        "Skipping remaining optional tasks due to failure",
                    )
                    logger.warning(
                        "Task %s failed; %d remaining sequential tasks not run",
                        scheduled.task.name,
                        remaining,
                    )
                break
        return results

    def run_parallel(self, tasks: list[ScheduledTask]) -> list[TaskResult]:
        if not tasks:
            return []

        gate = threading.BoundedSemaphore(self._settings.gate_size)
        results: list[TaskResult] = []
        with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="tide-task") as pool:
            futures = [pool.submit(self._run_gated, gate, scheduled) for scheduled in tasks]
            for future in as_completed(futures):
                results.append(future.result())
        return results

    def _run_gated(self, gate: threading.BoundedSemaphore, scheduled: ScheduledTask) -> TaskResult:
        gate.acquire()
        try:
            return self.execute_task(scheduled, interactive=False)
        finally:
            gate.release()

    def execute_task(self, scheduled: ScheduledTask, *, interactive: bool) -> TaskResult:
        """Run one task, apply the required/optional policy and report it."""

        task = scheduled.task
        deliver(self._progress.task_started, scheduled)
        self._log_line(
            f"▶ {scheduled.progress_label} :: "
            f"{' '.join(task.resolved_command()) or '<empty command>'}",
        )

        warning = lint_command(task)
        if warning is not None:
            logger.info(warning)
            if self._settings.verbose:
                deliver(self._progress.note, warning)

        start = time.monotonic()
        try:
            result = self._runner.run(scheduled, interactive=interactive)
        except Exception as error:  # noqa: BLE001
            logger.exception("Unexpected error while running task %s", task.name)
            result = TaskResult(
                name=task.name,
                group=scheduled.group_name,
                group_icon=scheduled.group_icon,
                status=TaskStatus.FAILED,
                duration=time.monotonic() - start,
                output=f"Internal error: {error}",
            )

        if result.status == TaskStatus.FAILED:
            if task.required:
                deliver(
                    self._notifier.task_failed,
                    task.name,
                    scheduled.group_name,
                    result.output or "",
                )
            else:
                result = replace(result, status=TaskStatus.SKIPPED)

        deliver(self._progress.task_finished, scheduled, result)
        self._log_completion(scheduled, result)
        return result

    def _log_completion(self, scheduled: ScheduledTask, result: TaskResult) -> None:
        if self._task_log is None:
            return
        self._log_line(
            f"{_STATUS_PREFIX[result.status]} {scheduled.progress_label} "
            f"({format_duration(result.duration)})",
        )
        output = (result.output or "").strip()
        if not output:
            return
        try:
            self._task_log.log_block(f"└ output {scheduled.progress_label}", output)
        except OSError as error:
            logger.warning("Failed to write log entry: %s", error)

    def _log_line(self, text: str) -> None:
        if self._task_log is None:
            return
        try:
            self._task_log.log_line(text)
        except OSError as error:
            logger.warning("Failed to write log entry: %s", error)


def _may_need_elevation(scheduled: ScheduledTask) -> bool:
    return scheduled.task.elevate or lint_command(scheduled.task) is not None
