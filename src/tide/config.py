"""Runtime configuration loaded from the TOML config file."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from tide.executor.environment import expand_user_path
from tide.executor.models import (
    DEFAULT_KEYCHAIN_LABEL,
    DEFAULT_PARALLEL_LIMIT,
    DEFAULT_TIMEOUT_SECONDS,
    Precondition,
    TaskDefinition,
    TaskGroup,
)

CONFIG_ENV_VAR = "TIDE_CONFIG"
CONFIG_DIR_NAME = "tide"
CONFIG_FILE_NAME = "config.toml"


class ConfigError(ValueError):
    """Configuration file is missing or invalid."""


@dataclass(slots=True)
class Settings:
    """Global ``[settings]`` table."""

    show_banner: bool = True
    show_weather: bool = True
    show_system_info: bool = True
    show_progress: bool = True
    parallel_execution: bool = False
    parallel_limit: int = DEFAULT_PARALLEL_LIMIT
    skip_optional_on_error: bool = False
    keychain_label: str = DEFAULT_KEYCHAIN_LABEL
    use_colors: bool = True
    verbose: bool = False
    log_file: str | None = None
    desktop_notifications: bool = True

    def log_file_path(self, config_path: Path | None = None) -> Path | None:
        """Resolve ``log_file``; relative paths are anchored at the config directory."""

        raw = (self.log_file or "").strip()
        if not raw:
            return None
        resolved = expand_user_path(raw)
        if not resolved.is_absolute() and config_path is not None:
            resolved = config_path.parent / resolved
        return resolved


@dataclass(slots=True)
class Config:
    """Settings plus ordered task groups."""

    settings: Settings = field(default_factory=Settings)
    groups: tuple[TaskGroup, ...] = ()

    @classmethod
    def load(cls, path: Path) -> Config:
        if not path.exists():
            raise ConfigError(
                f"Config file not found: {path}\nRun 'tide --init' to create one.",
            )
        try:
            text = path.read_text("utf-8")
        except OSError as error:
            raise ConfigError(f"Failed to read config file {path}: {error}") from error
        return cls.from_toml(text)

    @classmethod
    def from_toml(cls, text: str) -> Config:
        try:
            raw = tomllib.loads(text)
        except tomllib.TOMLDecodeError as error:
            raise ConfigError(f"Failed to parse config file: {error}") from error
        return cls.from_mapping(raw)

    @classmethod
    def from_mapping(cls, raw: dict[str, Any]) -> Config:
        settings = _parse_settings(_table(raw.get("settings", {}), "settings"))
        groups_raw = raw.get("groups", [])
        if not isinstance(groups_raw, list):
            raise ConfigError("'groups' must be an array of tables ([[groups]]).")
        groups = tuple(
            _parse_group(_table(item, f"groups[{index}]"), index)
            for index, item in enumerate(groups_raw)
        )
        return cls(settings=settings, groups=groups)


def resolve_config_path(path: Path | None = None) -> Path:
    """Explicit path, then ``$TIDE_CONFIG``, then the XDG config directory."""

    if path is not None:
        return path
    from_env = os.getenv(CONFIG_ENV_VAR, "").strip()
    if from_env:
        return expand_user_path(from_env)
    return default_config_dir() / CONFIG_FILE_NAME


def default_config_dir() -> Path:
    xdg = os.getenv("XDG_CONFIG_HOME", "").strip()
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / CONFIG_DIR_NAME


def _parse_settings(raw: dict[str, Any]) -> Settings:
    defaults = Settings()
    parallel_limit = _int(raw, "parallel_limit", defaults.parallel_limit, "settings")
    if parallel_limit < 1:
        raise ConfigError("settings.parallel_limit must be >= 1.")
    keychain_label = _optional_str(raw, "keychain_label", "settings") or DEFAULT_KEYCHAIN_LABEL
    return Settings(
        show_banner=_bool(raw, "show_banner", defaults.show_banner, "settings"),
        show_weather=_bool(raw, "show_weather", defaults.show_weather, "settings"),
        show_system_info=_bool(raw, "show_system_info", defaults.show_system_info, "settings"),
        show_progress=_bool(raw, "show_progress", defaults.show_progress, "settings"),
        parallel_execution=_bool(
            raw,
            "parallel_execution",
            defaults.parallel_execution,
            "settings",
        ),
        parallel_limit=parallel_limit,
        skip_optional_on_error=_bool(
            raw,
            "skip_optional_on_error",
            defaults.skip_optional_on_error,
            "settings",
        ),
        keychain_label=keychain_label,
        use_colors=_bool(raw, "use_colors", defaults.use_colors, "settings"),
        verbose=_bool(raw, "verbose", defaults.verbose, "settings"),
        log_file=_optional_str(raw, "log_file", "settings"),
        desktop_notifications=_bool(
            raw,
            "desktop_notifications",
            defaults.desktop_notifications,
            "settings",
        ),
    )


def _parse_group(raw: dict[str, Any], index: int) -> TaskGroup:
    name = _required_str(raw, "name", f"groups[{index}]")
    where = f"group {name!r}"
    tasks_raw = raw.get("tasks", [])
    if not isinstance(tasks_raw, list):
        raise ConfigError(f"{where}: 'tasks' must be an array of tables.")
    tasks = tuple(
        _parse_task(_table(item, f"{where} tasks[{position}]"), where, position)
        for position, item in enumerate(tasks_raw)
    )
    return TaskGroup(
        name=name,
        tasks=tasks,
        icon=_optional_str(raw, "icon", where) or "",
        description=_optional_str(raw, "description", where) or "",
        enabled=_bool(raw, "enabled", True, where),
        parallel=_bool(raw, "parallel", False, where),
    )


def _parse_task(raw: dict[str, Any], group_where: str, position: int) -> TaskDefinition:
    name = _required_str(raw, "name", f"{group_where} tasks[{position}]")
    where = f"{group_where} task {name!r}"

    command = raw.get("command")
    if (
        not isinstance(command, list)
        or not command
        or not all(isinstance(part, str) for part in command)
        or not command[0].strip()
    ):
        raise ConfigError(f"{where}: 'command' must be a non-empty array of strings.")

    timeout_raw = raw.get("timeout", DEFAULT_TIMEOUT_SECONDS)
    if isinstance(timeout_raw, bool) or not isinstance(timeout_raw, int | float):
        raise ConfigError(f"{where}: 'timeout' must be a number of seconds.")
    if timeout_raw <= 0:
        raise ConfigError(f"{where}: 'timeout' must be > 0.")

    env_raw = raw.get("env", {})
    if not isinstance(env_raw, dict) or not all(
        isinstance(key, str) and isinstance(value, str) for key, value in env_raw.items()
    ):
        raise ConfigError(f"{where}: 'env' must be a table of string values.")

    return TaskDefinition(
        name=name,
        command=tuple(command),
        icon=_optional_str(raw, "icon", where) or "",
        description=_optional_str(raw, "description", where) or "",
        required=_bool(raw, "required", True, where),
        elevate=_bool(raw, "sudo", False, where),
        enabled=_bool(raw, "enabled", True, where),
        precondition=Precondition(
            command=_optional_str(raw, "check_command", where),
            path=_optional_str(raw, "check_path", where),
        ),
        timeout_seconds=timeout_raw,
        env=dict(env_raw),
        working_dir=_optional_str(raw, "working_dir", where),
    )


def _table(value: object, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"{where} must be a table.")
    return value


def _bool(raw: dict[str, Any], key: str, default: bool, where: str) -> bool:
    value = raw.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{where}: {key!r} must be true or false, got {value!r}.")
    return value


def _int(raw: dict[str, Any], key: str, default: int, where: str) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{where}: {key!r} must be an integer, got {value!r}.")
    return value


def _optional_str(raw: dict[str, Any], key: str, where: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{where}: {key!r} must be a string, got {value!r}.")
    stripped = value.strip()
    return stripped or None


def _required_str(raw: dict[str, Any], key: str, where: str) -> str:
    value = _optional_str(raw, key, where)
    if value is None:
        raise ConfigError(f"{where}: {key!r} is required.")
    return value


DEFAULT_CONFIG_TEMPLATE = """\
# Tide configuration
# Groups run in order. Tasks inside a group run one after another unless the
# group sets `parallel = true`.

[settings]
show_banner = true
show_weather = true
show_system_info = true
show_progress = true
parallel_execution = false
parallel_limit = 4
skip_optional_on_error = false
keychain_label = "tide-sudo"
use_colors = true
verbose = false
# log_file = "~/Library/Logs/tide.log"
desktop_notifications = true

[[groups]]
name = "System Updates"
icon = "🍎"
description = "macOS system updates"
parallel = false

[[groups.tasks]]
name = "macOS Updates"
icon = "🍎"
command = ["softwareupdate", "--install", "--all"]
sudo = true
check_command = "softwareupdate"
description = "Install macOS system updates"
timeout = 3600

[[groups]]
name = "Homebrew"
icon = "🍺"
description = "Homebrew package manager"
parallel = false

[[groups.tasks]]
name = "Update Formulae"
icon = "📦"
command = ["brew", "update"]
check_command = "brew"
description = "Update Homebrew package definitions"
timeout = 300

[[groups.tasks]]
name = "Upgrade Packages"
icon = "⬆️"
command = ["brew", "upgrade"]
check_command = "brew"
description = "Upgrade all outdated packages"
timeout = 1200

[[groups.tasks]]
name = "Cleanup"
icon = "🧹"
command = ["brew", "cleanup", "--prune=all"]
required = false
check_command = "brew"
description = "Remove stale downloads and old versions"
timeout = 600

[[groups]]
name = "Developer Tools"
icon = "🛠️"
description = "Language toolchains"
parallel = true

[[groups.tasks]]
name = "Rust Toolchain"
icon = "🦀"
command = ["rustup", "update"]
required = false
check_command = "rustup"
description = "Update installed Rust toolchains"

[[groups.tasks]]
name = "npm Globals"
icon = "📦"
command = ["npm", "update", "-g"]
required = false
check_command = "npm"
description = "Update globally installed npm packages"
"""
