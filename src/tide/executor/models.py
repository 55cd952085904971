"""Domain models for task definitions, scheduling and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

DEFAULT_TIMEOUT_SECONDS = 300
DEFAULT_PARALLEL_LIMIT = 4
DEFAULT_KEYCHAIN_LABEL = "tide-sudo"
ELEVATION_COMMAND = "sudo"


class TaskStatus(str, Enum):
    """Terminal task states; each task is assigned exactly one."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class Precondition:
    """Checks that must hold before a task is worth running."""

    command: str | None = None
    path: str | None = None


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    """One configured maintenance command."""

    name: str
    command: tuple[str, ...]
    icon: str = ""
    description: str = ""
    required: bool = True
    elevate: bool = False
    enabled: bool = True
    precondition: Precondition = field(default_factory=Precondition)
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    env: dict[str, str] = field(default_factory=dict)
    working_dir: str | None = None

    @property
    def label(self) -> str:
        return format_label(self.name, self.icon)

    def resolved_command(self) -> list[str]:
        """Return the argument vector, prefixed with sudo when elevation is requested."""

        argv = list(self.command)
        if self.elevate and argv and argv[0] != ELEVATION_COMMAND:
            argv.insert(0, ELEVATION_COMMAND)
        return argv


@dataclass(frozen=True, slots=True)
class TaskGroup:
    """Ordered set of tasks sharing a parallel/sequential policy."""

    name: str
    tasks: tuple[TaskDefinition, ...] = ()
    icon: str = ""
    description: str = ""
    enabled: bool = True
    parallel: bool = False

    @property
    def label(self) -> str:
        return format_label(self.name, self.icon)


@dataclass(frozen=True, slots=True)
class ScheduledTask:
    """A task together with the group context it was selected from."""

    task: TaskDefinition
    group_name: str
    group_icon: str = ""
    group_parallel: bool = False

    @property
    def group_label(self) -> str:
        return format_label(self.group_name, self.group_icon)

    @property
    def progress_label(self) -> str:
        return f"[{self.group_label}] {self.task.label}"


@dataclass(slots=True)
class RunSettings:
    """Per-run knobs combined from the config file and the command line."""

    requested_parallel: int = DEFAULT_PARALLEL_LIMIT
    configured_parallel_limit: int = DEFAULT_PARALLEL_LIMIT
    parallel_execution: bool = False
    skip_optional_on_error: bool = False
    keychain_label: str = DEFAULT_KEYCHAIN_LABEL
    dry_run: bool = False
    verbose: bool = False
    preauthorize: bool = True
    include_groups: tuple[str, ...] | None = None
    exclude_groups: tuple[str, ...] | None = None

    @property
    def gate_size(self) -> int:
        return max(1, min(self.requested_parallel, self.configured_parallel_limit))


@dataclass(frozen=True, slots=True)
class TaskResult:
    """Outcome of one task; ``output`` holds stdout on success, the reason otherwise."""

    name: str
    group: str
    group_icon: str
    status: TaskStatus
    duration: float
    output: str | None = None

    @property
    def group_label(self) -> str:
        return format_label(self.group, self.group_icon)


def format_label(name: str, icon: str) -> str:
    icon = icon.strip()
    if not icon:
        return name
    return f"{icon} {name}"
