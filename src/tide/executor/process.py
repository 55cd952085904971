"""Single external process execution with timeout and stdin suppression."""

from __future__ import annotations

import subprocess
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

_TERMINATE_GRACE_SECONDS = 2.0


class CommandError(RuntimeError):
    """Task-local execution failure with a human-readable reason."""

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


@dataclass(slots=True)
class ProcessOutcome:
    """Exit metadata of one child process."""

    exit_code: int
    timed_out: bool
    stdout: str
    stderr: str
    elapsed_seconds: float

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.exit_code == 0


def run_process(
    args: list[str],
    *,
    timeout_seconds: float,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
    capture_output: bool = True,
) -> ProcessOutcome:
    """Run ``args`` with stdin bound to /dev/null, killing it after ``timeout_seconds``.

    Raises ``OSError`` (including ``FileNotFoundError``) when the process cannot
    be spawned.
    """

    pipe = subprocess.PIPE if capture_output else None
    process = subprocess.Popen(  # noqa: S603
        args,
        stdin=subprocess.DEVNULL,
        stdout=pipe,
        stderr=pipe,
        env=dict(env) if env is not None else None,
        cwd=cwd,
        text=True,
        encoding="utf-8",
        errors="replace",
    )
    start_monotonic = time.monotonic()
    try:
        stdout, stderr = process.communicate(timeout=timeout_seconds)
    except subprocess.TimeoutExpired as expired:
        stdout, stderr = _terminate_process(process)
        return ProcessOutcome(
            exit_code=124,
            timed_out=True,
            stdout=stdout or _decode_partial(expired.stdout),
            stderr=stderr or _decode_partial(expired.stderr),
            elapsed_seconds=time.monotonic() - start_monotonic,
        )

    return ProcessOutcome(
        exit_code=process.returncode,
        timed_out=False,
        stdout=stdout or "",
        stderr=stderr or "",
        elapsed_seconds=time.monotonic() - start_monotonic,
    )


def _terminate_process(process: subprocess.Popen[str]) -> tuple[str, str]:
    try:
        process.terminate()
    except OSError:
        return "", ""
    try:
        stdout, stderr = process.communicate(timeout=_TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return "", ""
        try:
            stdout, stderr = process.communicate(timeout=_TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            # Grandchildren still hold the pipes; abandon them.
            return "", ""
    return stdout or "", stderr or ""


def _decode_partial(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
