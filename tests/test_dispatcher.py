from __future__ import annotations

import os
import sys
import time

import allure
import pytest

from fakes import (
    BrokenNotifier,
    BrokenProgress,
    FakeElevationBackend,
    FakePrompts,
    FakeSecretStore,
    InstrumentedRunner,
    RecordingNotifier,
    RecordingProgress,
    RecordingTaskLog,
    make_task,
    schedule,
)
from tide.executor.dispatcher import TaskDispatcher, partition_tasks, select_tasks
from tide.executor.elevation import CredentialNegotiator, SessionState
from tide.executor.models import RunSettings, TaskGroup, TaskStatus
from tide.executor.runner import CommandRunner

pytestmark = [
    allure.epic("Task Execution"),
    allure.feature("Task Dispatcher"),
]


class _CountingNegotiator:
    command = "sudo"

    def __init__(self) -> None:
        self.labels: list[str] = []

    def preauthorize(self, label: str) -> SessionState:
        self.labels.append(label)
        return SessionState.CACHED_VALID


def _dispatcher(runner, settings: RunSettings | None = None, **overrides) -> TaskDispatcher:
    return TaskDispatcher(runner=runner, settings=settings or RunSettings(), **overrides)


def test_select_tasks_drops_disabled_and_filtered_groups() -> None:
    groups = [
        TaskGroup(
            name="Homebrew",
            tasks=(make_task("Update"), make_task("Doctor", enabled=False)),
        ),
        TaskGroup(name="Disabled", tasks=(make_task("Never"),), enabled=False),
        TaskGroup(name="Dev", tasks=(make_task("Rust"),), parallel=True),
        TaskGroup(name="Excluded", tasks=(make_task("Gone"),)),
    ]

    selected = select_tasks(groups, exclude_groups=("Excluded",))
    only_dev = select_tasks(groups, include_groups=("Dev",))

    assert [item.task.name for item in selected] == ["Update", "Rust"]
    assert selected[1].group_parallel is True
    assert [item.task.name for item in only_dev] == ["Rust"]


def test_partition_keeps_elevated_tasks_sequential() -> None:
    plain = schedule(make_task("Plain"))
    elevated = schedule(make_task("Root", elevate=True))
    grouped = schedule(make_task("Grouped"), parallel=True)

    assert partition_tasks([plain, elevated, grouped], parallel_execution=False) == (
        [plain, elevated],
        [grouped],
    )
    assert partition_tasks([plain, elevated, grouped], parallel_execution=True) == (
        [elevated],
        [plain, grouped],
    )


def test_disabled_tasks_yield_no_result() -> None:
    runner = InstrumentedRunner()
    groups = [TaskGroup(name="G", tasks=(make_task("On"), make_task("Off", enabled=False)))]

    results = _dispatcher(runner).dispatch(groups)

    assert [result.name for result in results] == ["On"]
    assert runner.order == ["On"]


def test_required_failure_is_failed_and_notified() -> None:
    notifier = RecordingNotifier()
    runner = InstrumentedRunner(failing={"Upgrade"})

    results = _dispatcher(runner, notifier=notifier).run([schedule(make_task("Upgrade"))])

    assert results[0].status == TaskStatus.FAILED
    assert notifier.kinds() == ["failed"]
    assert notifier.events[0][1:] == ("Upgrade", "Group", "Command failed: boom")


def test_optional_failure_is_reported_as_skipped_with_reason() -> None:
    notifier = RecordingNotifier()
    runner = InstrumentedRunner(failing={"Cleanup"})

    results = _dispatcher(runner, notifier=notifier).run(
        [schedule(make_task("Cleanup", required=False))],
    )

    assert results[0].status == TaskStatus.SKIPPED
    assert results[0].output == "Command failed: boom"
    assert notifier.events == []


def test_skip_on_error_stops_sequential_bin_after_required_failure() -> None:
    runner = InstrumentedRunner(failing={"B"})
    progress = RecordingProgress()
    settings = RunSettings(skip_optional_on_error=True)
    tasks = [schedule(make_task(name)) for name in ("A", "B", "C")]

    results = _dispatcher(runner, settings, progress=progress).run(tasks)

    assert [(result.name, result.status) for result in results] == [
        ("A", TaskStatus.SUCCESS),
        ("B", TaskStatus.FAILED),
    ]
    assert runner.order == ["A", "B"]
    assert progress.notes == ["Skipping remaining optional tasks due to failure"]


def test_without_skip_on_error_every_task_runs() -> None:
    runner = InstrumentedRunner(failing={"B"})
    tasks = [schedule(make_task(name)) for name in ("A", "B", "C")]

    results = _dispatcher(runner).run(tasks)

    assert [result.name for result in results] == ["A", "B", "C"]


def test_sequential_abort_does_not_cancel_parallel_bin() -> None:
    runner = InstrumentedRunner(failing={"A"})
    settings = RunSettings(skip_optional_on_error=True)
    tasks = [
        schedule(make_task("A")),
        schedule(make_task("B")),
        schedule(make_task("P1"), "Dev", parallel=True),
        schedule(make_task("P2"), "Dev", parallel=True),
    ]

    results = _dispatcher(runner, settings).run(tasks)

    assert results[0].name == "A"
    assert sorted(result.name for result in results[1:]) == ["P1", "P2"]
    assert "B" not in runner.order


def test_sequential_runs_interactive_and_parallel_runs_without_prompts() -> None:
    runner = InstrumentedRunner()
    tasks = [
        schedule(make_task("Seq")),
        schedule(make_task("Par"), "Dev", parallel=True),
    ]

    _dispatcher(runner).run(tasks)

    assert runner.interactive == {"Seq": True, "Par": False}
    assert runner.order[0] == "Seq"


@pytest.mark.parametrize(
    ("requested", "configured"),
    [(1, 4), (2, 2), (3, 8), (8, 3)],
)
def test_parallel_bin_never_exceeds_gate(requested: int, configured: int) -> None:
    runner = InstrumentedRunner(delay_seconds=0.05)
    settings = RunSettings(requested_parallel=requested, configured_parallel_limit=configured)
    tasks = [schedule(make_task(f"T{index}"), "Dev", parallel=True) for index in range(6)]

    results = _dispatcher(runner, settings).run(tasks)

    assert len(results) == 6
    assert runner.peak <= min(requested, configured)


def test_five_parallel_tasks_with_limit_two() -> None:
    runner = InstrumentedRunner(delay_seconds=0.1)
    settings = RunSettings(requested_parallel=2, configured_parallel_limit=4)
    tasks = [schedule(make_task(f"T{index}"), "Dev", parallel=True) for index in range(5)]

    results = _dispatcher(runner, settings).run(tasks)

    assert sorted(result.name for result in results) == [f"T{index}" for index in range(5)]
    assert runner.peak <= 2


def test_timed_out_task_releases_its_slot() -> None:
    runner = CommandRunner(environment=dict(os.environ))
    settings = RunSettings(requested_parallel=1, configured_parallel_limit=1)
    sleeper = make_task(
        "Sleeper",
        (sys.executable, "-c", "import time; time.sleep(30)"),
        timeout_seconds=0.5,
    )
    quick = make_task("Quick", (sys.executable, "-c", "print('ok')"))
    tasks = [schedule(sleeper, "Dev", parallel=True), schedule(quick, "Dev", parallel=True)]

    started = time.monotonic()
    results = _dispatcher(runner, settings).run(tasks)

    assert time.monotonic() - started < 15
    statuses = {result.name: result.status for result in results}
    assert statuses == {"Sleeper": TaskStatus.FAILED, "Quick": TaskStatus.SUCCESS}


def test_unexpected_runner_error_becomes_failed_result() -> None:
    runner = InstrumentedRunner(raising={"Crash"})
    tasks = [schedule(make_task("Crash")), schedule(make_task("After"))]

    results = _dispatcher(runner).run(tasks)

    assert results[0].status == TaskStatus.FAILED
    assert results[0].output == "Internal error: runner exploded"
    assert results[1].status == TaskStatus.SUCCESS


def test_preauthorization_happens_once_before_elevated_tasks() -> None:
    negotiator = _CountingNegotiator()
    runner = InstrumentedRunner()
    tasks = [
        schedule(make_task("Root", elevate=True)),
        schedule(make_task("Root again", elevate=True)),
    ]

    _dispatcher(
        runner,
        RunSettings(keychain_label="custom-label"),
        negotiator=negotiator,
        command_probe=lambda _name, _env: True,
    ).run(tasks)

    assert negotiator.labels == ["custom-label"]


def test_preauthorization_skipped_when_not_needed() -> None:
    negotiator = _CountingNegotiator()
    runner = InstrumentedRunner()
    elevated = [schedule(make_task("Root", elevate=True))]
    probe = lambda _name, _env: True  # noqa: E731

    _dispatcher(runner, negotiator=negotiator, command_probe=probe).run(
        [schedule(make_task("Plain"))],
    )
    _dispatcher(runner, RunSettings(dry_run=True), negotiator=negotiator, command_probe=probe).run(
        elevated,
    )
    _dispatcher(runner, negotiator=negotiator, command_probe=lambda _name, _env: False).run(
        elevated,
    )

    assert negotiator.labels == []


def test_lint_hit_triggers_preauthorization_and_verbose_note() -> None:
    negotiator = _CountingNegotiator()
    progress = RecordingProgress()
    wrapped = schedule(make_task("Wrapped", ("sh", "-c", "sudo purge")))

    _dispatcher(
        InstrumentedRunner(),
        RunSettings(verbose=True),
        negotiator=negotiator,
        progress=progress,
        command_probe=lambda _name, _env: True,
    ).run([wrapped])

    assert negotiator.labels == ["tide-sudo"]
    assert progress.notes == [
        "Task 'Wrapped' may call sudo internally. Consider setting 'sudo = true'",
    ]


def test_task_log_records_start_completion_and_output() -> None:
    task_log = RecordingTaskLog()

    _dispatcher(InstrumentedRunner(), task_log=task_log).run(
        [schedule(make_task("Echo", ("echo", "hi")))],
    )

    assert task_log.lines[0] == "▶ [Group] Echo :: echo hi"
    assert task_log.lines[1] == "✓ SUCCESS [Group] Echo (0s)"
    assert task_log.blocks == [("└ output [Group] Echo", "done")]


def test_task_log_errors_do_not_abort_run() -> None:
    results = _dispatcher(InstrumentedRunner(), task_log=RecordingTaskLog(fail=True)).run(
        [schedule(make_task("A")), schedule(make_task("B"))],
    )

    assert [result.status for result in results] == [TaskStatus.SUCCESS, TaskStatus.SUCCESS]


def test_progress_sees_every_task() -> None:
    progress = RecordingProgress()
    tasks = [
        schedule(make_task("A")),
        schedule(make_task("P"), "Dev", parallel=True),
    ]

    _dispatcher(InstrumentedRunner(failing={"A"}), progress=progress).run(tasks)

    assert sorted(progress.started) == ["A", "P"]
    assert sorted(progress.finished) == [("A", TaskStatus.FAILED), ("P", TaskStatus.SUCCESS)]


def test_broken_notifier_does_not_abort_sequential_bin() -> None:
    notifier = BrokenNotifier()
    runner = InstrumentedRunner(failing={"A"})

    results = _dispatcher(runner, notifier=notifier).run(
        [schedule(make_task("A")), schedule(make_task("B"))],
    )

    assert [(result.name, result.status) for result in results] == [
        ("A", TaskStatus.FAILED),
        ("B", TaskStatus.SUCCESS),
    ]
    assert notifier.calls == 1


def test_broken_notifier_keeps_every_parallel_result() -> None:
    runner = InstrumentedRunner(failing={"Crash"})
    tasks = [
        schedule(make_task(name), "Dev", parallel=True) for name in ("P1", "P2", "P3", "Crash")
    ]

    results = _dispatcher(runner, notifier=BrokenNotifier()).run(tasks)

    assert len(results) == 4
    assert [result.name for result in results if result.status == TaskStatus.FAILED] == ["Crash"]


def test_broken_notifier_and_messages_do_not_escape_preauthorization() -> None:
    backend = FakeElevationBackend(cached=False)

    def _broken_message(_text: str) -> None:
        raise BrokenPipeError("stdout closed")

    negotiator = CredentialNegotiator(
        secret_store=FakeSecretStore(),
        prompts=FakePrompts(["hunter2"], confirm_answer=False),
        backend=backend,
        notifier=BrokenNotifier(),
        on_message=_broken_message,
    )

    results = _dispatcher(
        InstrumentedRunner(),
        negotiator=negotiator,
        command_probe=lambda _name, _env: True,
    ).run([schedule(make_task("Root", elevate=True))])

    assert results[0].status == TaskStatus.SUCCESS
    assert backend.attempts == ["hunter2"]
    assert negotiator.state == SessionState.AUTHENTICATED


def test_broken_progress_output_does_not_abort_run() -> None:
    settings = RunSettings(skip_optional_on_error=True, verbose=True)
    tasks = [
        schedule(make_task("Wrapped", ("sh", "-c", "sudo purge"))),
        schedule(make_task("A")),
        schedule(make_task("B")),
        schedule(make_task("P"), "Dev", parallel=True),
    ]

    results = _dispatcher(
        InstrumentedRunner(failing={"A"}),
        settings,
        progress=BrokenProgress(),
    ).run(tasks)

    assert [result.name for result in results] == ["Wrapped", "A", "P"]


def test_words_containing_sudo_do_not_trigger_preauthorization() -> None:
    negotiator = _CountingNegotiator()

    _dispatcher(
        InstrumentedRunner(),
        negotiator=negotiator,
        command_probe=lambda _name, _env: True,
    ).run([schedule(make_task("Puzzle", ("sudoku-solver", "--daily")))])

    assert negotiator.labels == []
