"""Controllers for tide CLI commands."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from tide.config import DEFAULT_CONFIG_TEMPLATE, Config, Settings, resolve_config_path
from tide.executor.dispatcher import TaskDispatcher, select_tasks
from tide.executor.elevation import CredentialNegotiator
from tide.executor.environment import resolve_environment
from tide.executor.models import RunSettings
from tide.executor.ports import ElevationBackend, Notifier, PromptSource, SecretStore, deliver
from tide.executor.runner import CommandRunner
from tide.executor.summary import render_summary_lines, summarize_results
from tide.integrations.keychain import KeychainSecretStore
from tide.integrations.notifications import DesktopNotifier
from tide.integrations.prompts import ClickPromptSource
from tide.integrations.system_info import collect_system_info_lines
from tide.integrations.task_log import TaskLogFile
from tide.integrations.weather import fetch_weather, render_weather_lines
from tide.ui import BANNER, ConsoleProgress, render_task_list_lines

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunCommand:
    """CLI input for a maintenance run."""

    config_path: Path | None
    quiet: bool = False
    dry_run: bool = False
    groups: tuple[str, ...] | None = None
    skip_groups: tuple[str, ...] | None = None
    parallel: int = 4
    force: bool = False
    verbose: bool = False


@dataclass(slots=True)
class ListCommand:
    """CLI input for the task listing."""

    config_path: Path | None
    groups: tuple[str, ...] | None = None
    skip_groups: tuple[str, ...] | None = None
    verbose: bool = False


@dataclass(slots=True)
class InitCommand:
    """CLI input for writing the default config."""

    config_path: Path | None


@dataclass(slots=True)
class RunReport:
    """Final lines to render and whether every selected task avoided failure."""

    lines: list[str]
    success: bool


class TideCliController:
    """Wires configuration, collaborators and the execution engine for one invocation."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        secret_store: SecretStore | None = None,
        prompts: PromptSource | None = None,
        elevation_backend: ElevationBackend | None = None,
        notifier_factory: Callable[[bool], Notifier] | None = None,
        environment: Mapping[str, str] | None = None,
        weather_fetcher: Callable[[], str | None] = fetch_weather,
        system_info: Callable[[], list[str]] = collect_system_info_lines,
    ) -> None:
        self._secret_store = secret_store
        self._prompts = prompts
        self._elevation_backend = elevation_backend
        self._notifier_factory = notifier_factory or (
            lambda enabled: DesktopNotifier(enabled=enabled)
        )
        self._environment = environment
        self._weather_fetcher = weather_fetcher
        self._system_info = system_info

    def init_config(self, command: InitCommand) -> list[str]:
        config_path = resolve_config_path(command.config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(DEFAULT_CONFIG_TEMPLATE, "utf-8")
        return [
            f"✓ Config created: {config_path}",
            f"Edit it with: nano {config_path}",
        ]

    def list_tasks(self, command: ListCommand) -> list[str]:
        config_path = resolve_config_path(command.config_path)
        config = Config.load(config_path)
        lines = render_task_list_lines(
            config.groups,
            include_groups=command.groups,
            exclude_groups=command.skip_groups,
            verbose=command.verbose,
        )
        lines.append("")
        lines.append(f"Using config file: {config_path}")
        return lines

    def run(  # noqa: PLR0915
        self,
        command: RunCommand,
        *,
        confirm: Callable[[str], bool],
        echo: Callable[[str], None],
    ) -> RunReport:
        config_path = resolve_config_path(command.config_path)
        config = Config.load(config_path)
        settings = config.settings
        verbose = command.verbose or settings.verbose

        task_log = _open_task_log(settings, config_path)
        if task_log is not None and not command.quiet:
            echo(f"📝 Task output will be logged to {task_log.path}")

        weather_pool: ThreadPoolExecutor | None = None
        weather_future: Future[str | None] | None = None
        if not command.quiet and settings.show_weather:
            weather_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tide-weather")
            weather_future = weather_pool.submit(self._weather_fetcher)

        try:
            if not command.quiet and settings.show_banner:
                echo(BANNER)

            run_settings = RunSettings(
                requested_parallel=command.parallel,
                configured_parallel_limit=settings.parallel_limit,
                parallel_execution=settings.parallel_execution,
                skip_optional_on_error=settings.skip_optional_on_error,
                keychain_label=settings.keychain_label,
                dry_run=command.dry_run,
                verbose=verbose,
                preauthorize=not command.quiet,
                include_groups=command.groups,
                exclude_groups=command.skip_groups,
            )
            scheduled = select_tasks(
                config.groups,
                include_groups=run_settings.include_groups,
                exclude_groups=run_settings.exclude_groups,
            )
            if not scheduled:
                return RunReport(lines=["No tasks to run!"], success=True)

            if not command.force and not command.quiet:
                echo("")
                echo(f"📦 Ready to run {len(scheduled)} tasks")
                if command.dry_run:
                    echo("🔸 DRY RUN MODE - No changes will be made")
                if not confirm("Continue?"):
                    return RunReport(lines=["Cancelled by user"], success=True)

            notifier = self._notifier_factory(settings.desktop_notifications and not command.quiet)
            progress = ConsoleProgress(
                show_running=settings.show_progress and not command.quiet,
                color=settings.use_colors,
                echo=echo,
            )
            negotiator = CredentialNegotiator(
                secret_store=self._secret_store or KeychainSecretStore(),
                prompts=self._prompts or ClickPromptSource(),
                backend=self._elevation_backend,
                notifier=notifier,
                on_message=progress.note,
            )
            runner = CommandRunner(
                negotiator=negotiator,
                environment=self._environment or resolve_environment(),
                notifier=notifier,
                keychain_label=settings.keychain_label,
                dry_run=command.dry_run,
                verbose=verbose,
            )
            dispatcher = TaskDispatcher(
                runner=runner,
                settings=run_settings,
                negotiator=negotiator,
                notifier=notifier,
                progress=progress,
                task_log=task_log,
            )

            start = time.monotonic()
            results = dispatcher.run(scheduled)
            summary = summarize_results(results, elapsed_seconds=time.monotonic() - start)
            if summary.all_succeeded:
                deliver(notifier.all_tasks_complete, summary.success, summary.elapsed_seconds)

            lines = ["", *render_summary_lines(summary)]
            if not command.quiet and settings.show_system_info:
                lines.extend(self._system_info())
            if weather_future is not None:
                lines.extend(render_weather_lines(weather_future.result()))
            return RunReport(lines=lines, success=summary.failed == 0)
        finally:
            if weather_pool is not None:
                weather_pool.shutdown(wait=False, cancel_futures=True)


def _open_task_log(settings: Settings, config_path: Path) -> TaskLogFile | None:
    path = settings.log_file_path(config_path)
    if path is None:
        return None
    try:
        return TaskLogFile(path)
    except OSError as error:
        logger.warning("Task log %s is unavailable: %s", path, error)
        return None
