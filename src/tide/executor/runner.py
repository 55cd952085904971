"""Command Runner: executes one task and reports success, failure or skip."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Mapping
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from tide.executor.environment import (
    command_exists,
    expand_user_path,
    resolve_environment,
    task_environment,
)
from tide.executor.models import (
    ELEVATION_COMMAND,
    ScheduledTask,
    TaskDefinition,
    TaskResult,
    TaskStatus,
)
from tide.executor.ports import Notifier, NullNotifier, deliver
from tide.executor.process import CommandError, ProcessOutcome, run_process

if TYPE_CHECKING:
    from tide.executor.elevation import CredentialNegotiator

__all__ = ["CommandError", "CommandRunner", "lint_command", "looks_like_prompt"]

logger = logging.getLogger(__name__)

DRY_RUN_REASON = "Dry run - command not executed"
DEFAULT_DRY_RUN_DELAY_SECONDS = 0.1

_INTERACTIVE_PROMPT_PATTERNS: tuple[str, ...] = (
    "password",
    "passphrase",
    "[y/n]",
    "(y/n)",
    "yes/no",
    "continue?",
    "press any key",
    "press return",
    "press enter",
)
_PROMPT_TAIL_CHARS = 400
_ELEVATION_WORD_RE = re.compile(rf"(?<![\w.-]){ELEVATION_COMMAND}(?![\w.-])")
ENV_COMMAND = "env"

Launcher = Callable[..., ProcessOutcome]


def lint_command(task: TaskDefinition) -> str | None:
    """Advisory check for commands that look like they call sudo without ``sudo = true``."""

    if task.elevate or not task.command:
        return None
    if any(_ELEVATION_WORD_RE.search(part) for part in task.command):
        return (
            f"Task '{task.name}' may call {ELEVATION_COMMAND} internally. "
            f"Consider setting '{ELEVATION_COMMAND} = true'"
        )
    return None


class CommandRunner:
    """Run a single task: dry run, preconditions, elevation, timeout and capture.

    The runner reports only what the process did. Reclassifying failures of
    optional tasks is left to the dispatcher.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        negotiator: CredentialNegotiator | None = None,
        environment: Mapping[str, str] | None = None,
        notifier: Notifier | None = None,
        keychain_label: str = "tide-sudo",
        dry_run: bool = False,
        verbose: bool = False,
        dry_run_delay_seconds: float = DEFAULT_DRY_RUN_DELAY_SECONDS,
        launcher: Launcher = run_process,
        command_probe: Callable[[str, Mapping[str, str]], bool] = command_exists,
    ) -> None:
        self._negotiator = negotiator
        self._environment = environment if environment is not None else resolve_environment()
        self._notifier = notifier or NullNotifier()
        self._keychain_label = keychain_label
        self._dry_run = dry_run
        self._verbose = verbose
        self._dry_run_delay = dry_run_delay_seconds
        self._launcher = launcher
        self._command_probe = command_probe

    @property
    def environment(self) -> Mapping[str, str]:
        return self._environment

    def run(self, scheduled: ScheduledTask, *, interactive: bool = True) -> TaskResult:
        """Execute ``scheduled`` and return its result. Never raises for task failures.

        ``interactive`` is False on parallel workers: elevation may then use a
        cached session or stored secret but never prompts.
        """

        start = time.monotonic()
        task = scheduled.task

        if self._dry_run:
            time.sleep(self._dry_run_delay)
            return self._result(scheduled, TaskStatus.SKIPPED, start, DRY_RUN_REASON)

        skip_reason = self._check_preconditions(task)
        if skip_reason is not None:
            return self._result(scheduled, TaskStatus.SKIPPED, start, skip_reason)

        try:
            output = self._execute(scheduled, interactive=interactive)
        except CommandError as error:
            return self._result(scheduled, TaskStatus.FAILED, start, str(error))
        return self._result(scheduled, TaskStatus.SUCCESS, start, output)

    def _check_preconditions(self, task: TaskDefinition) -> str | None:
        check_command = task.precondition.command
        if check_command and not self._command_probe(check_command, self._environment):
            return f"Command '{check_command}' not found"

        check_path = task.precondition.path
        if check_path and not expand_user_path(check_path, self._environment).exists():
            return f"Path '{check_path}' not found"
        return None

    def _execute(self, scheduled: ScheduledTask, *, interactive: bool) -> str:
        task = scheduled.task
        argv = task.resolved_command()
        if not argv:
            raise CommandError("Empty command")

        cwd: Path | None = None
        if task.working_dir:
            cwd = expand_user_path(task.working_dir, self._environment)
            if not cwd.is_dir():
                raise CommandError(f"Working directory '{task.working_dir}' not found")

        launch = partial(
            self._launch,
            timeout_seconds=task.timeout_seconds,
            env=task_environment(self._environment, task.env),
            cwd=cwd,
        )

        if argv[0] == ELEVATION_COMMAND:
            if self._negotiator is None:
                raise CommandError("Elevation is not available in this run")
            outcome = self._negotiator.run_elevated(
                _forward_env(argv[1:], task.env),
                label=self._keychain_label,
                launch=launch,
                interactive=interactive,
            )
        else:
            outcome = launch(argv)

        return self._interpret(outcome, scheduled)

    def _launch(
        self,
        argv: list[str],
        *,
        timeout_seconds: float,
        env: dict[str, str],
        cwd: Path | None,
    ) -> ProcessOutcome:
        try:
            return self._launcher(
                argv,
                timeout_seconds=timeout_seconds,
                env=env,
                cwd=cwd,
                capture_output=not self._verbose,
            )
        except FileNotFoundError as error:
            raise CommandError(f"Command not found: {argv[0]}") from error
        except OSError as error:
            raise CommandError(f"Command execution error: {error}") from error

    def _interpret(self, outcome: ProcessOutcome, scheduled: ScheduledTask) -> str:
        task = scheduled.task
        if outcome.timed_out:
            raise CommandError(self._timeout_reason(outcome, scheduled), timed_out=True)
        if outcome.exit_code != 0:
            stderr = outcome.stderr.strip()
            if stderr:
                raise CommandError(f"Command failed: {stderr}")
            raise CommandError(f"Command failed with exit code {outcome.exit_code}")
        logger.debug("Task %s finished in %.1fs", task.name, outcome.elapsed_seconds)
        return outcome.stdout

    def _timeout_reason(self, outcome: ProcessOutcome, scheduled: ScheduledTask) -> str:
        task = scheduled.task
        seconds = _format_seconds(task.timeout_seconds)
        deliver(
            self._notifier.task_timed_out,
            task.name,
            scheduled.group_name,
            task.timeout_seconds,
        )
        if looks_like_prompt(outcome.stdout, outcome.stderr):
            deliver(self._notifier.interactive_input_detected, task.name, scheduled.group_name)
            logger.warning("Task %s timed out waiting for interactive input", task.name)
            return (
                f"Command timed out after {seconds} seconds. This may indicate the command "
                "is waiting for input (like sudo password). Consider setting 'sudo = true' "
                "or 'timeout = <seconds>' in the task config."
            )
        logger.warning("Task %s timed out after %s seconds", task.name, seconds)
        return (
            f"Command timed out after {seconds} seconds. "
            "Consider raising 'timeout = <seconds>' in the task config."
        )

    def _result(
        self,
        scheduled: ScheduledTask,
        status: TaskStatus,
        start: float,
        output: str | None,
    ) -> TaskResult:
        return TaskResult(
            name=scheduled.task.name,
            group=scheduled.group_name,
            group_icon=scheduled.group_icon,
            status=status,
            duration=time.monotonic() - start,
            output=output,
        )


def looks_like_prompt(stdout: str, stderr: str) -> bool:
    """True when the tail of captured output resembles an interactive question."""

    tail = f"{stdout[-_PROMPT_TAIL_CHARS:]}\n{stderr[-_PROMPT_TAIL_CHARS:]}".lower()
    return any(pattern in tail for pattern in _INTERACTIVE_PROMPT_PATTERNS)


def _format_seconds(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def _forward_env(args: list[str], overrides: Mapping[str, str]) -> list[str]:
    """Prefix ``env K=V`` so task overrides reach the command run under sudo."""

    if not overrides:
        return args
    return [ENV_COMMAND, *(f"{key}={value}" for key, value in overrides.items()), *args]
