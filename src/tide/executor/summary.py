"""Result Aggregator: fold task results into a run summary."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from tide.executor.models import TaskResult, TaskStatus


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Aggregate view of one run, independent of result arrival order."""

    success: int
    failed: int
    skipped: int
    elapsed_seconds: float
    longest: TaskResult | None
    failures: tuple[TaskResult, ...]

    @property
    def total(self) -> int:
        return self.success + self.failed + self.skipped

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0 and self.success > 0


def summarize_results(results: Iterable[TaskResult], *, elapsed_seconds: float) -> RunSummary:
    """Count statuses, pick the longest task and collect failures. Pure."""

    ordered = list(results)
    counts = {status: 0 for status in TaskStatus}
    for result in ordered:
        counts[result.status] += 1

    longest: TaskResult | None = None
    for result in ordered:
        if longest is None or result.duration > longest.duration:
            longest = result

    return RunSummary(
        success=counts[TaskStatus.SUCCESS],
        failed=counts[TaskStatus.FAILED],
        skipped=counts[TaskStatus.SKIPPED],
        elapsed_seconds=elapsed_seconds,
        longest=longest,
        failures=tuple(result for result in ordered if result.status == TaskStatus.FAILED),
    )


def render_summary_lines(summary: RunSummary) -> list[str]:
    """Render operator-facing summary lines for CLI output."""

    lines = [
        "📊 Summary",
        "─" * 60,
        (
            f"  ✓ {summary.success} Success  ✗ {summary.failed} Failed  "
            f"○ {summary.skipped} Skipped  ⏱️  Total: {format_duration(summary.elapsed_seconds)}"
        ),
    ]
    if summary.longest is not None:
        lines.append(
            f"  Longest task: {format_duration(summary.longest.duration)} "
            f"[{summary.longest.name} in {summary.longest.group_label}]",
        )

    if summary.failures:
        lines.append("")
        lines.append("Failed tasks:")
        for result in summary.failures:
            lines.append(f"  ✗ {result.name} - {result.group_label}")
            if result.output:
                lines.append(f"    {result.output.strip()}")
    return lines


def format_duration(seconds: float) -> str:
    whole = int(seconds)
    if whole < 60:
        return f"{whole}s"
    return f"{whole // 60}m {whole % 60}s"
