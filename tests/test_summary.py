from __future__ import annotations

import random

import allure

from tide.executor.models import TaskResult, TaskStatus
from tide.executor.summary import format_duration, render_summary_lines, summarize_results

pytestmark = [
    allure.epic("Task Execution"),
    allure.feature("Result Aggregation"),
]


def _result(
    name: str,
    status: TaskStatus,
    duration: float,
    output: str | None = None,
) -> TaskResult:
    return TaskResult(
        name=name,
        group="Homebrew",
        group_icon="🍺",
        status=status,
        duration=duration,
        output=output,
    )


RESULTS = [
    _result("Update", TaskStatus.SUCCESS, 12.0),
    _result("Upgrade", TaskStatus.FAILED, 95.0, "Command failed: network down"),
    _result("Cleanup", TaskStatus.SKIPPED, 1.0, "Command failed: locked"),
    _result("Doctor", TaskStatus.SUCCESS, 3.0),
]


def test_summary_counts_statuses_and_longest_task() -> None:
    summary = summarize_results(RESULTS, elapsed_seconds=120.0)

    assert (summary.success, summary.failed, summary.skipped) == (2, 1, 1)
    assert summary.total == 4
    assert summary.longest is not None
    assert summary.longest.name == "Upgrade"
    assert [failure.name for failure in summary.failures] == ["Upgrade"]
    assert not summary.all_succeeded


def test_summary_counts_ignore_arrival_order() -> None:
    shuffled = list(RESULTS)
    random.Random(7).shuffle(shuffled)

    first = summarize_results(RESULTS, elapsed_seconds=1.0)
    second = summarize_results(shuffled, elapsed_seconds=1.0)

    assert (first.success, first.failed, first.skipped) == (
        second.success,
        second.failed,
        second.skipped,
    )
    assert first.longest == second.longest


def test_summarize_is_pure() -> None:
    assert summarize_results(RESULTS, elapsed_seconds=5.0) == summarize_results(
        RESULTS,
        elapsed_seconds=5.0,
    )


def test_empty_run_has_no_longest_task() -> None:
    summary = summarize_results([], elapsed_seconds=0.0)

    assert summary.total == 0
    assert summary.longest is None
    assert not summary.all_succeeded


def test_rendered_summary_lists_failures_with_reasons() -> None:
    lines = render_summary_lines(summarize_results(RESULTS, elapsed_seconds=120.0))

    assert lines[0] == "📊 Summary"
    assert "✓ 2 Success  ✗ 1 Failed  ○ 1 Skipped" in lines[2]
    assert "Total: 2m 0s" in lines[2]
    assert "  Longest task: 1m 35s [Upgrade in 🍺 Homebrew]" in lines
    failed_at = lines.index("Failed tasks:")
    assert lines[failed_at + 1 : failed_at + 3] == [
        "  ✗ Upgrade - 🍺 Homebrew",
        "    Command failed: network down",
    ]


def test_format_duration() -> None:
    assert format_duration(0.4) == "0s"
    assert format_duration(59.9) == "59s"
    assert format_duration(61) == "1m 1s"
