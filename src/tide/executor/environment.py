"""Effective process environment resolved once per run."""

from __future__ import annotations

import os
import shutil
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType

_HOMEBREW_PREFIXES: tuple[Path, ...] = (Path("/opt/homebrew/bin"), Path("/usr/local/bin"))


def resolve_environment(
    base: Mapping[str, str] | None = None,
    *,
    home: Path | None = None,
    homebrew_prefixes: tuple[Path, ...] = _HOMEBREW_PREFIXES,
) -> Mapping[str, str]:
    """Return a read-only environment snapshot with Homebrew and ~/.local/bin on PATH.

    The first Homebrew prefix that contains ``brew`` wins; ``~/.local/bin`` is
    prepended last so it takes precedence. The calling process environment is
    left untouched.
    """

    env = dict(os.environ if base is None else base)
    for prefix in homebrew_prefixes:
        if (prefix / "brew").exists():
            env["PATH"] = _prepend_path(env.get("PATH", ""), prefix)
            break

    home_dir = home if home is not None else Path.home()
    local_bin = home_dir / ".local" / "bin"
    if local_bin.is_dir():
        env["PATH"] = _prepend_path(env.get("PATH", ""), local_bin)
    return MappingProxyType(env)


def task_environment(snapshot: Mapping[str, str], overrides: Mapping[str, str]) -> dict[str, str]:
    env = dict(snapshot)
    env.update(overrides)
    return env


def command_exists(name: str, env: Mapping[str, str] | None = None) -> bool:
    """PATH probe used by precondition checks."""

    search_path = None if env is None else env.get("PATH")
    return shutil.which(name, path=search_path) is not None


def expand_user_path(value: str, env: Mapping[str, str] | None = None) -> Path:
    if value == "~" or value.startswith("~/"):
        home = (env or {}).get("HOME") or str(Path.home())
        return Path(home + value[1:])
    return Path(value)


def _prepend_path(current: str, directory: Path) -> str:
    entries = [entry for entry in current.split(os.pathsep) if entry]
    text = str(directory)
    if text in entries:
        entries.remove(text)
    return os.pathsep.join([text, *entries])
